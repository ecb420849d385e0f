"""
Configuration for the catalog search engine.

Everything tunable lives here as a module constant; values that differ
between deployments are read from the environment once at import.
"""

import os
from pathlib import Path
from typing import Dict, List

# Paths
PROJECT_ROOT = Path(__file__).resolve().parents[1]
DATA_DIR = PROJECT_ROOT / "data"
CATALOG_RAW_DIR = DATA_DIR / "catalog_raw"

# Backing store
REDIS_URL = (
    os.getenv("REDIS_URL")
    or os.getenv("KV_URL")
    or os.getenv("UPSTASH_REDIS_URL")
    or ""
)
STORE_SOCKET_TIMEOUT = float(os.getenv("STORE_SOCKET_TIMEOUT", "2.0"))
STORE_CONNECT_TIMEOUT = float(os.getenv("STORE_CONNECT_TIMEOUT", "2.0"))

# Store layout (key names kept stable so existing deployments can read them)
KEY_WORDS = "idx:words"
KEY_DOC_LENGTHS = "idx:docLengths"
KEY_CATEGORIES = "idx:categories"
KEY_BRANDS = "idx:brands"
KEY_COUNT = "products:count"
KEY_AVG_DOC_LEN = "products:avgDocLen"
KEY_LAST_UPDATE = "products:lastUpdate"
KEY_SNAPSHOT = "products:snapshot"
STAGING_SUFFIX = ":staging"
INDEX_HASH_KEYS: List[str] = [KEY_WORDS, KEY_DOC_LENGTHS, KEY_CATEGORIES, KEY_BRANDS]

# Index build
INDEX_BUILD_STRATEGY = os.getenv("INDEX_BUILD_STRATEGY", "in_place")  # or "staged"
INDEX_WRITE_BATCH = 500
INDEX_DELETE_BATCH = 500

# Snapshot cache / request budget
SNAPSHOT_CACHE_TTL_SECONDS = float(os.getenv("SNAPSHOT_CACHE_TTL_SECONDS", "300"))
SEARCH_TIMEOUT_SECONDS = float(os.getenv("SEARCH_TIMEOUT_SECONDS", "2.0"))

# Text processing
MAX_INPUT_CHARS = 2_000
DESCRIPTION_MAX_CHARS = 500
MIN_TOKEN_LENGTH = 2
MIN_SUBSTRING_MATCH = 4
SHORT_BRAND_MAX_LEN = 3

# BM25
BM25_K1 = 1.2
BM25_B = 0.75
DEFAULT_AVG_DOC_LEN = 10.0

# Scoring
SCORING_MODE = os.getenv("SCORING_MODE", "heuristic")  # or "bm25"
SCORING_MODES = ("bm25", "heuristic")

TYPE_TITLE_POINTS = 40
TYPE_CATEGORY_POINTS = 28
TYPE_DESCRIPTION_POINTS = 15
TYPE_CAP = 40

LINE_FULL_POINTS = 30
LINE_PARTIAL_POINTS = 20
LINE_CAP = 30

GENDER_EXACT_POINTS = 20
GENDER_UNISEX_POINTS = 10
AGE_GROUP_POINTS = 5
TARGET_CAP = 25

PROBLEM_POINTS = 8
PROBLEM_CAP = 15

BRAND_FIELD_POINTS = 15
BRAND_TITLE_POINTS = 10
BRAND_PARTIAL_POINTS = 5
BRAND_CAP = 15

DISCOUNT_INTENT_POINTS = 10
DISCOUNT_PASSIVE_POINTS = 2
AVAILABILITY_POINTS = 5
TERM_OVERLAP_POINTS = 2
TERM_OVERLAP_CAP = 10
PREFERENCE_VIOLATION_PENALTY = 20

MIN_SCORE_WITH_TYPE = 25
MIN_SCORE_WITHOUT_TYPE = 8

# Retrieval fallback
FUZZY_MIN_TOKEN_LEN = 3
PREFIX_MIN_LENGTH = 4
PREFIX_MIN_RATIO = 0.6
SCAN_SAMPLE_LIMIT = 2_000
SCAN_STEM_TRIM = 2

# Result policy
DEFAULT_LIMIT = 5
MAX_LIMIT = 50
DIVERSIFY_MIN_QUOTA = 2
STATS_TOP_N = 5

# Catalog feed normalisation: canonical field -> likely raw column names
COLUMN_CANDIDATES: Dict[str, List[str]] = {
    "id": ["id", "g:id", "item_id", "ITEM_ID", "product_id", "sku"],
    "title": ["title", "g:title", "name", "PRODUCTNAME", "product_name"],
    "brand": ["brand", "g:brand", "vendor", "MANUFACTURER", "manufacturer"],
    "category": [
        "category",
        "g:product_type",
        "product_type",
        "CATEGORYTEXT",
        "g:google_product_category",
        "category_path",
    ],
    "price": ["price", "g:price", "PRICE_VAT", "regular_price"],
    "sale_price": ["sale_price", "g:sale_price", "salePrice", "special_price"],
    "availability": ["availability", "g:availability", "available", "in_stock"],
    "delivery_date": ["delivery_date", "DELIVERY_DATE"],
    "description": ["description", "g:description", "DESCRIPTION", "body_html"],
    "url": ["url", "g:link", "link", "URL"],
    "image": ["image", "g:image_link", "image_link", "IMGURL", "main_image"],
    "target_gender": ["target_gender", "gender", "g:gender"],
    "target_age_group": ["target_age_group", "age_group", "g:age_group"],
}
CATEGORY_SEPARATORS = r"\s*[|>/]\s*"
CATEGORY_ROOTS_TO_SKIP = {"heureka sk", "google", "vsetky produkty"}  # normalized
