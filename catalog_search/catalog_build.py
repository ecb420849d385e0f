"""
Utilities to normalise raw catalog rows and construct catalog snapshots.

Product feeds (Heureka/Google-style XML exports, Shopify product dumps,
hand-maintained spreadsheets) name their columns differently.  This
module accepts rows that have already been parsed out of whatever
transport delivered them, maps arbitrary column names to the canonical
Product schema, cleans and normalises fields, infers the target audience
and returns an immutable :class:`~catalog_search.models.CatalogSnapshot`.
"""
from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from loguru import logger

from .config import (
    CATALOG_RAW_DIR,
    CATEGORY_ROOTS_TO_SKIP,
    CATEGORY_SEPARATORS,
    COLUMN_CANDIDATES,
    DESCRIPTION_MAX_CHARS,
)
from .models import CatalogSnapshot, Product
from .normalize import clean_feed_text, contains_phrase, normalize_text


# ---------------------------
# Column detection / standardisation
# ---------------------------

def _standardise_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rename columns from the raw feed to the canonical internal schema.

    The first candidate present (exact, then case-insensitive) wins for
    each canonical field.
    """
    col_map: Dict[str, str] = {}
    lower_to_original = {str(c).lower(): c for c in df.columns}

    for canon, candidates in COLUMN_CANDIDATES.items():
        for candidate in candidates:
            if candidate in df.columns:
                col_map[candidate] = canon
                break
            cand_lower = candidate.lower()
            if cand_lower in lower_to_original:
                col_map[lower_to_original[cand_lower]] = canon
                break

    logger.info("Standardising columns with map: {}", col_map)
    df_std = df.rename(columns=col_map)

    required = ["id", "title"]
    missing = [c for c in required if c not in df_std.columns]
    if missing:
        logger.warning("Raw catalog is missing required columns: {}", missing)
    return df_std


# ---------------------------
# Field parsing helpers
# ---------------------------

def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return isinstance(value, str) and not value.strip()


def parse_price(value: Any) -> Optional[float]:
    """
    Parse a feed price into a float.

    Handles numbers, ``"12,90 EUR"``, ``"1 299.00"`` and ``"12.90 €"``.
    Returns ``None`` when nothing numeric is present.
    """
    if _is_missing(value):
        return None
    if isinstance(value, (int, float)):
        return max(0.0, float(value))
    text = re.sub(r"[^\d.,]", "", str(value))
    if not text:
        return None
    if "," in text and "." in text:
        text = text.replace(",", "")
    else:
        text = text.replace(",", ".")
    try:
        return max(0.0, float(text))
    except ValueError:
        return None


def parse_availability(value: Any) -> bool:
    """
    Normalise an availability flag.  Feed strings like ``"in stock"`` or
    ``"skladom"`` count as available; ``0``, ``"no"`` and ``"false"`` do
    not.  Other numbers are read as a stock quantity.
    """
    if _is_missing(value):
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value > 0
    v = str(value).strip().lower()
    if v in {"yes", "y", "true", "1", "skladom", "available", "in stock", "in_stock"}:
        return True
    if v in {"no", "n", "false", "0", "out of stock", "out_of_stock", "preorder"}:
        return False
    if v.isdigit():
        return int(v) > 0
    return v.startswith("skladom") or v.startswith("in stock")


def parse_delivery_date(value: Any) -> bool:
    """Heureka ``DELIVERY_DATE``: ``0`` days means in stock, anything else does not."""
    if _is_missing(value):
        return False
    try:
        return float(str(value).strip()) == 0
    except ValueError:
        return False


def parse_category_path(value: Any) -> List[str]:
    """
    Split a category string into its ordered path, dropping feed roots
    such as ``Heureka.sk``.
    """
    if _is_missing(value):
        return []
    if isinstance(value, (list, tuple)):
        parts = [clean_feed_text(str(v)) for v in value]
    else:
        parts = [clean_feed_text(p) for p in re.split(CATEGORY_SEPARATORS, str(value))]
    parts = [p for p in parts if p]
    while parts and normalize_text(parts[0]) in CATEGORY_ROOTS_TO_SKIP:
        parts = parts[1:]
    return parts


# ---------------------------
# Audience inference
# ---------------------------

MALE_CUES = (
    "pre muzov", "pansky", "panske", "panska", "muzsky", "muzske", "muzi", "men", "man",
    "homme", "for men", "pour homme",
)
FEMALE_CUES = (
    "pre zeny", "damsky", "damske", "damska", "zensky", "zenske", "zeny", "women", "woman",
    "lady", "femme", "for women", "pour femme",
)
KIDS_CUES = ("detsky", "detske", "detska", "pre deti", "deti", "kids", "baby", "junior", "babatko")
SENIOR_CUES = ("senior", "pre seniorov", "zrela plet", "50 plus")


def infer_target_gender(title: str, category_path: Iterable[str], description: str = "") -> str:
    """
    Tag a product male/female/unisex from audience words in its title
    and category path.  The description is only consulted when those
    two say nothing; both cues present means unisex.
    """
    head = normalize_text(" ".join([title, *category_path]))
    male = any(contains_phrase(head, c) for c in MALE_CUES)
    female = any(contains_phrase(head, c) for c in FEMALE_CUES)
    if not male and not female and description:
        body = normalize_text(description)
        male = any(contains_phrase(body, c) for c in MALE_CUES)
        female = any(contains_phrase(body, c) for c in FEMALE_CUES)
    if male and not female:
        return "male"
    if female and not male:
        return "female"
    return "unisex"


def infer_target_age_group(title: str, category_path: Iterable[str]) -> str:
    text = normalize_text(" ".join([title, *category_path]))
    if any(contains_phrase(text, c) for c in KIDS_CUES):
        return "kids"
    if any(contains_phrase(text, c) for c in SENIOR_CUES):
        return "senior"
    return "adult"


def _text(value: Any) -> str:
    return "" if _is_missing(value) else clean_feed_text(value)


def _coerce_id(value: Any) -> str:
    if _is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _coerce_gender(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    v = str(value).strip().lower()
    return {"male": "male", "men": "male", "female": "female", "women": "female", "unisex": "unisex"}.get(v)


def _coerce_age(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    v = str(value).strip().lower()
    return {"kids": "kids", "child": "kids", "adult": "adult", "senior": "senior"}.get(v)


# ---------------------------
# Catalog normalisation
# ---------------------------

def _row_availability(row: Dict[str, Any]) -> bool:
    if _is_missing(row.get("availability")) and not _is_missing(row.get("delivery_date")):
        return parse_delivery_date(row["delivery_date"])
    return parse_availability(row.get("availability", True))


def normalise_record(row: Dict[str, Any]) -> Optional[Product]:
    """
    Convert one standardised row into a :class:`Product`.

    Rows without an id or a title are dropped (``None``).  Invalid rows
    are logged and dropped rather than aborting the whole catalog.
    """
    pid = row.get("id")
    title = _text(row.get("title"))
    if _is_missing(pid) or not title:
        return None
    category_path = parse_category_path(row.get("category"))
    description = _text(row.get("description"))[:DESCRIPTION_MAX_CHARS]
    price = parse_price(row.get("price")) or 0.0
    sale_price = parse_price(row.get("sale_price"))
    gender = _coerce_gender(row.get("target_gender")) or infer_target_gender(title, category_path, description)
    age = _coerce_age(row.get("target_age_group")) or infer_target_age_group(title, category_path)
    try:
        return Product(
            id=_coerce_id(pid),
            title=title,
            brand=_text(row.get("brand")),
            category_path=category_path,
            price=price,
            sale_price=sale_price,
            available=_row_availability(row),
            description=description,
            url=None if _is_missing(row.get("url")) else str(row.get("url")).strip(),
            image=None if _is_missing(row.get("image")) else str(row.get("image")).strip(),
            target_gender=gender,
            target_age_group=age,
        )
    except ValueError as e:
        logger.warning("Dropping invalid catalog row {}: {}", pid, e)
        return None


def normalise_catalog_df(df_raw: pd.DataFrame) -> List[Product]:
    """
    Main normalisation pipeline for a raw catalog frame.

    Output is the ordered list of valid products, deduplicated by id
    (first occurrence wins).
    """
    logger.info("Normalising catalog dataframe with {} raw rows", len(df_raw))
    df = _standardise_columns(df_raw.copy())
    if "id" not in df.columns or "title" not in df.columns:
        logger.error("No id/title column found after standardisation; catalog will be empty.")
        return []

    df["id"] = df["id"].map(_coerce_id)
    df = df[df["id"] != ""]
    df = df.drop_duplicates(subset=["id"]).reset_index(drop=True)

    products: List[Product] = []
    for record in df.to_dict(orient="records"):
        product = normalise_record(record)
        if product is not None:
            products.append(product)
    logger.info("Catalog normalisation complete. Final rows: {}", len(products))
    return products


def snapshot_from_records(records: Iterable[Dict[str, Any]]) -> CatalogSnapshot:
    """Build a snapshot from already-parsed feed rows (dicts)."""
    df_raw = pd.DataFrame(list(records))
    if df_raw.empty:
        return CatalogSnapshot(products=())
    return CatalogSnapshot(products=tuple(normalise_catalog_df(df_raw)))


# ---------------------------
# IO helpers
# ---------------------------

def load_raw_catalog(path: Optional[Path] = None) -> pd.DataFrame:
    """
    Load raw catalog rows from a local file (json, jsonl, csv, xlsx or
    parquet).  If no path is provided, the first supported file under
    ``data/catalog_raw`` is used.
    """
    if path is None:
        candidates = sorted(
            p for p in CATALOG_RAW_DIR.glob("*")
            if p.suffix.lower() in {".json", ".jsonl", ".csv", ".xlsx", ".parquet"}
        )
        if not candidates:
            raise FileNotFoundError(
                f"No catalog files found under {CATALOG_RAW_DIR}. Place an export there and re-run."
            )
        path = candidates[0]

    path = Path(path)
    logger.info("Loading raw catalog from {}", path)
    ext = path.suffix.lower()
    if ext == ".jsonl":
        df = pd.read_json(path, lines=True, dtype=False)
    elif ext == ".json":
        df = pd.read_json(path, dtype=False)
    elif ext == ".csv":
        df = pd.read_csv(path, dtype={"id": str})
    elif ext in {".xlsx", ".xls"}:
        df = pd.read_excel(path)
    elif ext == ".parquet":
        df = pd.read_parquet(path)
    else:
        raise ValueError(f"Unsupported catalog file type: {ext}")
    logger.info("Loaded {} rows from raw catalog", len(df))
    return df


def build_catalog_snapshot(raw_path: Optional[Path] = None) -> CatalogSnapshot:
    """End-to-end: load raw catalog file → normalise → snapshot."""
    df_raw = load_raw_catalog(raw_path)
    return CatalogSnapshot(products=tuple(normalise_catalog_df(df_raw)))


if __name__ == "__main__":
    # python -m catalog_search.catalog_build
    snap = build_catalog_snapshot()
    print(f"{snap.doc_count} products")
