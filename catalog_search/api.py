"""
HTTP surface for the search engine.

Thin FastAPI wrapper: every route delegates to :class:`SearchEngine`.
The engine is created at startup from the configured store; tests (or
an embedding application) can swap it with :func:`set_engine`.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from .config import DEFAULT_LIMIT, INDEX_BUILD_STRATEGY, MAX_LIMIT
from .engine import SearchEngine
from .errors import ConfigurationError, IndexBuildError
from .models import (
    CategoryCount,
    HealthResponse,
    Product,
    ScoringMode,
    SearchOptions,
    SearchResponse,
    StatsResponse,
    SyncReport,
)


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)
    category: Optional[str] = None
    brand: Optional[str] = None
    only_available: bool = True
    mode: Optional[ScoringMode] = None

    def options(self) -> SearchOptions:
        return SearchOptions(
            limit=self.limit,
            category=self.category,
            brand=self.brand,
            only_available=self.only_available,
            mode=self.mode,
        )


class SyncRequest(BaseModel):
    products: List[Dict[str, Any]]
    strategy: str = INDEX_BUILD_STRATEGY


# =============================================================================
# FastAPI app + startup
# =============================================================================

app = FastAPI(title="catalog-search")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_engine: Optional[SearchEngine] = None


def set_engine(engine: Optional[SearchEngine]) -> None:
    global _engine
    _engine = engine


@app.on_event("startup")
def startup_event() -> None:
    global _engine
    if _engine is not None:
        return
    logger.info("Starting search engine...")
    try:
        _engine = SearchEngine.from_env()
    except ConfigurationError as e:
        # Keep serving /health; search routes answer 503 until configured.
        logger.warning("Search engine not configured: {}", e)
        return
    logger.info("Search engine ready.")


def get_engine() -> SearchEngine:
    if _engine is None:
        raise HTTPException(status_code=503, detail="Search backend is not configured")
    return _engine


@app.exception_handler(ConfigurationError)
def _configuration_error(_request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="healthy")


@app.post("/search", response_model=SearchResponse)
def search(req: SearchRequest, engine: SearchEngine = Depends(get_engine)) -> SearchResponse:
    query = req.query.strip()
    if not query:
        raise HTTPException(status_code=422, detail="Query must be non-empty")
    return engine.search_products(query, req.options())


def _compact(p: Product) -> Dict[str, Any]:
    return {
        "id": p.id,
        "title": p.title,
        "brand": p.brand,
        "price": p.price,
        "sale_price": p.sale_price,
        "discount": f"{p.discount_percent}%" if p.has_discount else None,
        "category": p.category_main,
        "url": p.url,
    }


@app.get("/search")
def search_get(
    q: Optional[str] = None,
    type: str = Query(default="search", pattern="^(search|stats|category|brand)$"),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    engine: SearchEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Query-string variant covering search, stats, category and brand lookups."""
    if type == "stats":
        stats = engine.get_stats()
        return {
            "type": "stats",
            **stats.model_dump(),
            "categories": [c.model_dump() for c in engine.get_categories()],
            "brands": [b.model_dump() for b in engine.get_brands()],
        }
    if not q or not q.strip():
        raise HTTPException(status_code=400, detail=f"Parameter q is required for {type} search")
    if type == "category":
        products = engine.search_by_category(q, limit)
        return {"query": q, "type": type, "count": len(products), "products": [_compact(p) for p in products]}
    if type == "brand":
        products = engine.search_by_brand(q, limit)
        return {"query": q, "type": type, "count": len(products), "products": [_compact(p) for p in products]}
    result = engine.search_products(q, SearchOptions(limit=limit))
    return {
        "query": q,
        "type": "search",
        "total": result.total,
        "matched_terms": result.recognized_terms,
        "count": len(result.products),
        "match_tier": result.match_tier,
        "needs_clarification": result.needs_clarification,
        "clarification_question": result.clarification_question,
        "products": [{**_compact(p), "score": p.score} for p in result.products],
    }


@app.get("/stats", response_model=StatsResponse)
def stats(engine: SearchEngine = Depends(get_engine)) -> StatsResponse:
    return engine.get_stats()


@app.get("/categories", response_model=List[CategoryCount])
def categories(engine: SearchEngine = Depends(get_engine)) -> List[CategoryCount]:
    return engine.get_categories()


@app.get("/brands", response_model=List[CategoryCount])
def brands(engine: SearchEngine = Depends(get_engine)) -> List[CategoryCount]:
    return engine.get_brands()


@app.get("/discounts", response_model=List[Product])
def discounts(
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    engine: SearchEngine = Depends(get_engine),
) -> List[Product]:
    return engine.get_discounted_products(limit)


@app.get("/products/{product_id}", response_model=Product)
def product(product_id: str, engine: SearchEngine = Depends(get_engine)) -> Product:
    found = engine.get_product_by_id(product_id)
    if found is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return found


@app.post("/sync", response_model=SyncReport)
def sync(req: SyncRequest, engine: SearchEngine = Depends(get_engine)) -> SyncReport:
    if req.strategy not in ("in_place", "staged"):
        raise HTTPException(status_code=400, detail=f"Unknown strategy {req.strategy}")
    try:
        return engine.sync_catalog(req.products, strategy=req.strategy)
    except IndexBuildError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
