"""
Command-line entry point for the catalog search engine.

Subcommands:
- build:  load a local catalog export, store the snapshot and publish the index
- search: run one query and print the ranked products
- batch:  run every query of a CSV/XLSX file and write a two-column results CSV
- stats:  print index statistics
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .catalog_build import build_catalog_snapshot
from .config import DEFAULT_LIMIT, INDEX_BUILD_STRATEGY, MAX_LIMIT, SCORING_MODES
from .engine import SearchEngine
from .errors import CatalogSearchError
from .models import SearchOptions


def load_queries(path: Path) -> List[str]:
    ext = path.suffix.lower()
    df = pd.read_excel(path) if ext in {".xlsx", ".xls"} else pd.read_csv(path)
    cols = {c.lower(): c for c in df.columns}
    qcol = cols.get("query")
    if not qcol:
        raise ValueError(f"Expected column 'Query' in {path}. Found: {list(df.columns)}")
    queries = df[qcol].astype(str).str.strip()
    # de-dup while preserving order
    return list(dict.fromkeys(q for q in queries if q))


def write_results_csv(preds: Dict[str, List[str]], out_path: Path) -> None:
    """One (Query, Product_id) row per returned product, in rank order."""
    rows: List[Tuple[str, str]] = []
    for q, ids in preds.items():
        for pid in ids:
            rows.append((q, pid))
    df = pd.DataFrame(rows, columns=["Query", "Product_id"])
    out_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out_path, index=False)


def _options(args: argparse.Namespace) -> SearchOptions:
    return SearchOptions(
        limit=args.limit,
        category=args.category,
        brand=args.brand,
        only_available=not args.include_unavailable,
        mode=args.mode,
    )


def _cmd_build(engine: SearchEngine, args: argparse.Namespace) -> int:
    snapshot = build_catalog_snapshot(Path(args.input) if args.input else None)
    report = engine.sync_catalog(snapshot, strategy=args.strategy)
    print(json.dumps(report.model_dump(), indent=2, ensure_ascii=False))
    return 0


def _cmd_search(engine: SearchEngine, args: argparse.Namespace) -> int:
    response = engine.search_products(args.query, _options(args))
    if response.needs_clarification:
        print(response.clarification_question)
        return 0
    if not response.source_available:
        print("No catalog has been synced yet.", file=sys.stderr)
        return 1
    print(f"{response.total} matches (tier: {response.match_tier}, mode: {response.mode})")
    for i, p in enumerate(response.products, 1):
        price = f"{p.effective_price:.2f}"
        flag = f" -{p.discount_percent}%" if p.has_discount else ""
        print(f"{i:>2}. [{p.score:7.2f}] {p.title} ({p.brand or '-'}) {price}{flag}  id={p.id}")
    return 0


def _cmd_batch(engine: SearchEngine, args: argparse.Namespace) -> int:
    queries = load_queries(Path(args.inp))
    options = _options(args)
    preds = {q: [p.id for p in engine.search_products(q, options).products] for q in queries}
    write_results_csv(preds, Path(args.out))
    print(f"Wrote results for {len(preds)} queries to {args.out}")
    return 0


def _cmd_stats(engine: SearchEngine, args: argparse.Namespace) -> int:
    print(json.dumps(engine.get_stats().model_dump(), indent=2, ensure_ascii=False))
    return 0


def _add_search_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument("--limit", type=int, default=DEFAULT_LIMIT, choices=range(1, MAX_LIMIT + 1), metavar="N")
    p.add_argument("--mode", choices=SCORING_MODES, default=None)
    p.add_argument("--category", default=None)
    p.add_argument("--brand", default=None)
    p.add_argument("--include-unavailable", action="store_true")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="catalog-search")
    sub = ap.add_subparsers(dest="command", required=True)

    p_build = sub.add_parser("build", help="sync a local catalog file into the store")
    p_build.add_argument("--input", default=None, help="catalog file (default: first file in data/catalog_raw)")
    p_build.add_argument("--strategy", choices=["in_place", "staged"], default=INDEX_BUILD_STRATEGY)
    p_build.set_defaults(func=_cmd_build)

    p_search = sub.add_parser("search", help="run a single query")
    p_search.add_argument("query")
    _add_search_flags(p_search)
    p_search.set_defaults(func=_cmd_search)

    p_batch = sub.add_parser("batch", help="run queries from a file and write a results CSV")
    p_batch.add_argument("--in", dest="inp", required=True, help="CSV/XLSX with a 'Query' column")
    p_batch.add_argument("--out", dest="out", default="artifacts/search_results.csv")
    _add_search_flags(p_batch)
    p_batch.set_defaults(func=_cmd_batch)

    p_stats = sub.add_parser("stats", help="print index statistics")
    p_stats.set_defaults(func=_cmd_stats)
    return ap


def main(argv: Optional[Sequence[str]] = None, engine: Optional[SearchEngine] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        engine = engine or SearchEngine.from_env()
        return args.func(engine, args)
    except CatalogSearchError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
