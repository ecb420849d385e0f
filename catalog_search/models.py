"""
Data model for the search engine.

Request/response shapes and catalog records are pydantic models so they
validate feed input and serialize straight into API responses.  The
catalog snapshot itself is a frozen dataclass: it is built once per
sync, never mutated, and carries a few derived lookups.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import cached_property
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .config import DEFAULT_LIMIT, MAX_LIMIT
from .normalize import normalize_text

Gender = Literal["male", "female", "unisex"]
AgeGroup = Literal["kids", "adult", "senior"]
ScoringMode = Literal["bm25", "heuristic"]
MatchTier = Literal["exact", "fuzzy", "prefix", "scan", "none"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------
# Catalog records
# ---------------------------

class Product(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    brand: str = ""
    category_path: List[str] = Field(default_factory=list)
    price: float = Field(default=0.0, ge=0)
    sale_price: Optional[float] = Field(default=None, ge=0)
    has_discount: bool = False
    discount_percent: int = Field(default=0, ge=0, le=100)
    available: bool = True
    description: str = ""
    url: Optional[str] = None
    image: Optional[str] = None
    target_gender: Gender = "unisex"
    target_age_group: AgeGroup = "adult"

    @model_validator(mode="before")
    @classmethod
    def _derive_discount(cls, data: Any) -> Any:
        # Discount is a function of the two prices; any supplied flag is ignored.
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "id" in data and data["id"] is not None:
            data["id"] = str(data["id"])
        price = float(data.get("price") or 0.0)
        sale = data.get("sale_price")
        if sale is not None and price > 0 and 0 <= float(sale) < price:
            data["has_discount"] = True
            data["discount_percent"] = int(round((1 - float(sale) / price) * 100))
        else:
            data["has_discount"] = False
            data["discount_percent"] = 0
        return data

    @property
    def category_main(self) -> str:
        return self.category_path[0] if self.category_path else ""

    @property
    def effective_price(self) -> float:
        if self.has_discount and self.sale_price is not None:
            return self.sale_price
        return self.price


@dataclass(frozen=True)
class CatalogSnapshot:
    """
    Ordered, immutable collection of products at one point in time.

    Duplicate ids are dropped at construction (first occurrence wins).
    """

    products: Tuple[Product, ...]
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        seen: Dict[str, Product] = {}
        unique: List[Product] = []
        for p in self.products:
            if p.id in seen:
                logger.warning("Duplicate product id {} in snapshot; keeping first", p.id)
                continue
            seen[p.id] = p
            unique.append(p)
        object.__setattr__(self, "products", tuple(unique))

    @property
    def doc_count(self) -> int:
        return len(self.products)

    @cached_property
    def by_id(self) -> Dict[str, Product]:
        return {p.id: p for p in self.products}

    @cached_property
    def ids_by_title(self) -> Dict[str, Tuple[str, ...]]:
        """Normalized title -> ids carrying exactly that title."""
        out: Dict[str, List[str]] = {}
        for p in self.products:
            key = normalize_text(p.title)
            if key:
                out.setdefault(key, []).append(p.id)
        return {k: tuple(v) for k, v in out.items()}

    @cached_property
    def average_token_length(self) -> float:
        from .index_build import document_tokens

        if not self.products:
            return 0.0
        return sum(len(document_tokens(p)) for p in self.products) / len(self.products)

    def get(self, product_id: str) -> Optional[Product]:
        return self.by_id.get(str(product_id))

    def brand_names(self) -> List[str]:
        return sorted({p.brand for p in self.products if p.brand})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created_at": self.created_at.isoformat(),
            "products": [p.model_dump(mode="json") for p in self.products],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogSnapshot":
        created = data.get("created_at")
        created_at = datetime.fromisoformat(created) if created else _utcnow()
        products = tuple(Product.model_validate(p) for p in data.get("products", []))
        return cls(products=products, created_at=created_at)

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "CatalogSnapshot":
        return cls(products=tuple(Product.model_validate(r) for r in records))


# ---------------------------
# Query side
# ---------------------------

class QueryAnalysis(BaseModel):
    raw_query: str
    normalized: str = ""
    tokens: List[str] = Field(default_factory=list)
    expanded_tokens: List[str] = Field(default_factory=list)
    gender: Optional[Gender] = None
    gender_explicit: bool = False
    age_group: Optional[AgeGroup] = None
    product_type: Optional[str] = None
    gender_sensitive_type: bool = False
    problems: List[str] = Field(default_factory=list)
    preferences: List[str] = Field(default_factory=list)
    wants_discount: bool = False
    brands: List[str] = Field(default_factory=list)
    product_line: Optional[str] = None
    needs_clarification: bool = False
    clarification_question: Optional[str] = None


class SearchOptions(BaseModel):
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)
    category: Optional[str] = None
    brand: Optional[str] = None
    only_available: bool = True
    mode: Optional[ScoringMode] = None


class ScoredProduct(Product):
    score: float = 0.0
    match_tier: MatchTier = "exact"
    exact_title: bool = False
    explanation: Dict[str, float] = Field(default_factory=dict)


class SearchResponse(BaseModel):
    query: str
    products: List[ScoredProduct] = Field(default_factory=list)
    total: int = 0
    recognized_terms: List[str] = Field(default_factory=list)
    detected_brands: List[str] = Field(default_factory=list)
    analysis: Optional[QueryAnalysis] = None
    needs_clarification: bool = False
    clarification_question: Optional[str] = None
    source_available: bool = True
    match_tier: MatchTier = "none"
    timed_out: bool = False
    mode: ScoringMode = "heuristic"


class CategoryCount(BaseModel):
    name: str
    count: int


class StatsResponse(BaseModel):
    product_count: int = 0
    last_update: str = "unknown"
    avg_doc_length: float = 0.0
    category_count: int = 0
    brand_count: int = 0
    top_categories: List[CategoryCount] = Field(default_factory=list)
    top_brands: List[CategoryCount] = Field(default_factory=list)


class SyncReport(BaseModel):
    product_count: int
    term_count: int
    category_count: int
    brand_count: int
    avg_doc_length: float
    strategy: str
    last_update: str
    duration_seconds: float


class HealthResponse(BaseModel):
    status: str
