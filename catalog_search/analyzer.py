"""
Query intent analysis.

Turns a raw chat query into a :class:`~catalog_search.models.QueryAnalysis`:
who the product is for, what kind of product it is, which problems or
preferences the user mentioned, whether they are hunting for a discount,
which brands they named, and whether the query is too vague to search.

All recognition is driven by the ordered static tables below.  Every
pattern is a normalized phrase matched on word boundaries against the
normalized query; tables whose order matters (product types) are
evaluated first-match-wins.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Set, Tuple

from loguru import logger

from .lexicon import brand_words, detect_brands, expand_tokens
from .models import QueryAnalysis
from .normalize import STOP_WORDS, clamp_text_length, contains_phrase, normalize_text, tokenize


# ---------------------------
# Audience tables
# ---------------------------

EXPLICIT_GENDER_PATTERNS: List[Tuple[str, Tuple[str, ...]]] = [
    ("male", (
        "pre muzov", "pre muza", "pre muzi", "pre panov", "pansky", "panske", "panska",
        "panskych", "muzsky", "muzske", "muzska", "muzskych", "muz", "muzi", "muzov",
        "for men", "men", "man", "homme",
    )),
    ("female", (
        "pre zeny", "pre zenu", "pre damy", "damsky", "damske", "damska", "damskych",
        "zensky", "zenske", "zenska", "zenskych", "zena", "zeny", "for women", "women",
        "woman", "lady", "femme",
    )),
]

INFERRED_GENDER_PATTERNS: List[Tuple[str, Tuple[str, ...]]] = [
    ("male", (
        "manzel", "manzela", "manzelovi", "otec", "otca", "otcovi", "tato", "tatovi",
        "priatel", "priatela", "priatelovi", "dedko", "dedkovi", "brat", "bratovi",
        "syn", "synovi",
    )),
    ("female", (
        "manzelka", "manzelke", "manzelku", "mama", "mame", "mamu", "priatelka",
        "priatelke", "priatelku", "babka", "babke", "sestra", "sestre", "dcera", "dcere",
    )),
]

KIDS_GENDER_PATTERNS: List[Tuple[str, Tuple[str, ...]]] = [
    ("male", ("pre chlapca", "pre chlapcov", "chlapcensky", "chlapcenske", "chlapcenska")),
    ("female", ("pre dievca", "pre dievcata", "dievcensky", "dievcenske", "dievcenska")),
]

KIDS_PATTERNS: Tuple[str, ...] = (
    "pre deti", "pre dieta", "pre babatko", "pre babatka", "detsky", "detske", "detska",
    "detskych", "deti", "dieta", "babatko", "kids", "junior",
)

AGE_GROUP_PATTERNS: List[Tuple[str, Tuple[str, ...]]] = [
    ("kids", KIDS_PATTERNS + KIDS_GENDER_PATTERNS[0][1] + KIDS_GENDER_PATTERNS[1][1]),
    ("senior", (
        "senior", "seniorov", "seniorku", "pre seniorov", "dochodca", "dochodcu", "babka",
        "babke", "dedko", "dedkovi", "zrela plet", "zrelu plet",
    )),
]


# ---------------------------
# Product tables
# ---------------------------

# (tag, patterns, gender_sensitive); order matters, first match wins.
PRODUCT_TYPES: List[Tuple[str, Tuple[str, ...], bool]] = [
    ("deodorant", (
        "dezodorant", "dezodoranty", "dezodorantu", "deodorant", "deo", "antiperspirant",
        "antiperspiranty", "roll on",
    ), True),
    ("perfume", (
        "parfum", "parfumy", "parfem", "parfemy", "toaletna voda", "toaletnu vodu",
        "parfumovana voda", "parfumovanu vodu", "vonavka", "vonavku", "kolinska", "edt", "edp",
        "perfume",
    ), True),
    ("shaving", (
        "pena na holenie", "gel na holenie", "balzam po holeni", "holenie", "holiaci",
        "holiaca", "holiace", "britva", "britvy", "britvu", "strojcek",
    ), True),
    ("shower_gel", (
        "sprchovy gel", "sprchovaci gel", "sprchovy", "sprchovaci", "shower gel",
    ), False),
    ("shampoo", ("sampon", "sampony", "shampoo"), False),
    ("conditioner", ("kondicioner", "kondicionery", "balzam na vlasy", "conditioner"), False),
    ("toothpaste", ("zubna pasta", "zubnu pastu", "zubne pasty", "pasta", "pastu", "toothpaste"), False),
    ("toothbrush", ("zubna kefka", "zubnu kefku", "kefka", "kefku", "toothbrush"), False),
    ("face_care", (
        "pletovy krem", "krem na tvar", "denny krem", "nocny krem", "pletove serum", "serum",
        "pletova voda", "micelarna voda",
    ), False),
    ("body_care", ("telove mlieko", "telovy krem", "body lotion"), False),
    ("lip_care", ("balzam na pery", "pery"), False),
    ("cream", ("krem", "kremy", "cream"), False),
    ("soap", ("tekute mydlo", "mydlo", "mydla", "soap"), False),
    ("dish_soap", ("prostriedok na riad", "na riad", "riad", "riadu"), False),
    ("laundry", ("praci prasok", "praci gel", "pracie", "na pranie", "pranie", "avivaz"), False),
    ("hair_dye", ("farba na vlasy", "farbu na vlasy"), False),
    ("diapers", ("plienky", "plienka", "plienok"), False),
    ("ski_wax", ("vosk na lyze", "vosk", "vosok", "ski wax"), False),
]

PRODUCT_TYPE_LABELS: Dict[str, str] = {
    "deodorant": "dezodorant",
    "perfume": "parfum",
    "shaving": "produkt na holenie",
}

PROBLEM_PATTERNS: List[Tuple[str, Tuple[str, ...]]] = [
    ("dry_skin", (
        "sucha plet", "suchu plet", "sucha pokozka", "suchu pokozku", "vysusena",
        "hydratacia", "hydratacny", "hydratacne",
    )),
    ("oily_skin", ("mastna plet", "mastnu plet", "mastne vlasy", "mastna pokozka")),
    ("sensitive", (
        "citliva", "citlivu", "citlive", "citlivy", "sensitive", "alergia", "alergie",
        "podrazdenie",
    )),
    ("acne", ("akne", "pupienky", "uhry", "nedokonalosti")),
    ("dandruff", ("lupiny", "lupin", "proti lupinam")),
    ("hair_loss", ("vypadavanie", "vypadavaniu", "riednutie")),
    ("sweating", ("potenie", "potim", "pot", "zapach", "48h", "72h")),
    ("wrinkles", ("vrasky", "vrasok", "starnutie", "anti age", "antiage", "anti aging")),
    ("whitening", ("bielenie", "biele zuby", "whitening")),
    ("stains", ("skvrny", "skvrn", "fleky")),
]

# (tag, query patterns, violating product patterns, satisfying product patterns)
PREFERENCE_PATTERNS: List[Tuple[str, Tuple[str, ...], Tuple[str, ...], Tuple[str, ...]]] = [
    ("fragrance_free",
     ("bez parfumacie", "bez parfumu", "bez vone", "neparfumovany", "fragrance free"),
     ("parfum", "parfumovany", "parfumovane", "vona", "vonavy"),
     ("bez parfumacie", "bez parfumu", "neparfumovany", "neparfumovane", "fragrance free")),
    ("alcohol_free",
     ("bez alkoholu", "alcohol free"),
     ("alkohol", "alcohol"),
     ("bez alkoholu", "alcohol free")),
    ("aluminium_free",
     ("bez hlinika", "bez soli hlinika", "bez aluminia", "aluminium free"),
     ("antiperspirant", "hlinik", "hlinika", "aluminium"),
     ("bez hlinika", "bez soli hlinika", "bez aluminia", "aluminium free")),
    ("paraben_free",
     ("bez parabenov", "paraben free"),
     ("paraben", "parabeny", "parabenov"),
     ("bez parabenov", "paraben free")),
    ("vegan", ("vegan", "veganska", "vegansky", "veganske"), (), ()),
    ("bio", ("bio", "organic", "organicky", "organicka", "prirodny", "prirodna", "natural"), (), ()),
]

DISCOUNT_PATTERNS: Tuple[str, ...] = (
    "zlava", "zlavy", "zlavou", "zlavnene", "zlacnene", "akcia", "akcii", "akciou",
    "akciove", "vypredaj", "promo", "sale", "discount", "lacno", "lacne", "lacny",
    "najlacnejsi", "vyhodne",
)

MARKETING_ADJECTIVES: Set[str] = {
    "fresh", "cool", "pure", "active", "original", "classic", "deep", "intense",
    "invisible", "black", "white", "pearl", "aqua", "sport", "extra", "ultra", "max",
    "dry", "protect", "silver", "gold", "wild", "natural", "soft", "clean",
}

CLARIFY_GENDER_QUESTION = "Hľadáte {label} pre mužov, pre ženy alebo pre deti?"
CLARIFY_VAGUE_QUESTION = "Čo presne hľadáte? Napíšte prosím typ produktu alebo značku."


def _words(tables: Sequence[Tuple[str, Tuple[str, ...]]]) -> Set[str]:
    out: Set[str] = set()
    for _, patterns in tables:
        for p in patterns:
            out.update(p.split())
    return out


_GENDER_WORDS = _words(EXPLICIT_GENDER_PATTERNS) | _words(KIDS_GENDER_PATTERNS) | set(
    " ".join(KIDS_PATTERNS).split()
)
_TYPE_WORDS = _words([(tag, pats) for tag, pats, _ in PRODUCT_TYPES])


# ---------------------------
# Matchers
# ---------------------------

def _any_phrase(normalized: str, patterns: Sequence[str]) -> bool:
    return any(contains_phrase(normalized, p) for p in patterns)


def _genders_in(normalized: str, table: Sequence[Tuple[str, Tuple[str, ...]]]) -> Set[str]:
    return {gender for gender, patterns in table if _any_phrase(normalized, patterns)}


def _resolve_gender(found: Set[str]) -> Optional[str]:
    if not found:
        return None
    if len(found) > 1:
        return "unisex"
    return next(iter(found))


def detect_gender(normalized: str) -> Tuple[Optional[str], bool, bool]:
    """
    Return ``(gender, explicit, kids_phrase)``.

    Explicit audience words win over inferred ones (relatives, partners).
    A kids phrase fills the gender slot with ``unisex`` unless it is a
    gendered kids phrase ("pre chlapca").
    """
    kids_gender = _resolve_gender(_genders_in(normalized, KIDS_GENDER_PATTERNS))
    if kids_gender:
        return kids_gender, True, True
    explicit = _resolve_gender(_genders_in(normalized, EXPLICIT_GENDER_PATTERNS))
    if explicit:
        return explicit, True, _any_phrase(normalized, KIDS_PATTERNS)
    if _any_phrase(normalized, KIDS_PATTERNS):
        return "unisex", True, True
    inferred = _resolve_gender(_genders_in(normalized, INFERRED_GENDER_PATTERNS))
    return inferred, False, False


def detect_age_group(normalized: str) -> Optional[str]:
    for group, patterns in AGE_GROUP_PATTERNS:
        if _any_phrase(normalized, patterns):
            return group
    return None


def detect_product_type(normalized: str) -> Tuple[Optional[str], bool]:
    for tag, patterns, gender_sensitive in PRODUCT_TYPES:
        if _any_phrase(normalized, patterns):
            return tag, gender_sensitive
    return None, False


def product_type_patterns(tag: str) -> Tuple[str, ...]:
    for t, patterns, _ in PRODUCT_TYPES:
        if t == tag:
            return patterns
    return ()


def detect_problems(normalized: str) -> List[str]:
    return [tag for tag, patterns in PROBLEM_PATTERNS if _any_phrase(normalized, patterns)]


def problem_patterns(tag: str) -> Tuple[str, ...]:
    for t, patterns in PROBLEM_PATTERNS:
        if t == tag:
            return patterns
    return ()


def detect_preferences(normalized: str) -> List[str]:
    return [tag for tag, patterns, _, _ in PREFERENCE_PATTERNS if _any_phrase(normalized, patterns)]


def violates_preference(tag: str, normalized_doc: str) -> bool:
    """True when a product text shows an attribute the preference excludes."""
    for t, _, violating, satisfying in PREFERENCE_PATTERNS:
        if t != tag:
            continue
        if not violating:
            return False
        if _any_phrase(normalized_doc, satisfying):
            return False
        return _any_phrase(normalized_doc, violating)
    return False


def detect_discount_intent(normalized: str) -> bool:
    return _any_phrase(normalized, DISCOUNT_PATTERNS)


def detect_product_line(tokens: Sequence[str], brands: Sequence[str]) -> Optional[str]:
    """
    Two-word marketing-adjective + noun heuristic ("pearl beauty",
    "cool fresh") used to spot a specific variant name.
    """
    excluded = brand_words(brands) | _TYPE_WORDS | _GENDER_WORDS | STOP_WORDS
    for first, second in zip(tokens, tokens[1:]):
        if first in MARKETING_ADJECTIVES and second not in excluded and len(second) >= 2:
            return f"{first} {second}"
    return None


# ---------------------------
# Entry point
# ---------------------------

def analyze_query(query: str, known_brands: Sequence[str] = ()) -> QueryAnalysis:
    """
    Build the structured intent for ``query``.

    ``known_brands`` extends the static brand dictionary (typically the
    brand names present in the current catalog snapshot).
    """
    raw = clamp_text_length(query or "")
    normalized = normalize_text(raw)
    tokens = tokenize(raw)
    expanded = expand_tokens(tokens)

    gender, explicit, _ = detect_gender(normalized)
    age_group = detect_age_group(normalized)
    product_type, gender_sensitive = detect_product_type(normalized)
    problems = detect_problems(normalized)
    preferences = detect_preferences(normalized)
    wants_discount = detect_discount_intent(normalized)
    brands = detect_brands(normalized, known_brands)
    product_line = detect_product_line(tokens, brands)

    question: Optional[str] = None
    if gender_sensitive and gender is None:
        label = PRODUCT_TYPE_LABELS.get(product_type or "", "produkt")
        question = CLARIFY_GENDER_QUESTION.format(label=label)
    elif len(tokens) < 2 and product_type is None and not brands:
        question = CLARIFY_VAGUE_QUESTION

    analysis = QueryAnalysis(
        raw_query=raw,
        normalized=normalized,
        tokens=tokens,
        expanded_tokens=expanded,
        gender=gender,
        gender_explicit=explicit,
        age_group=age_group,
        product_type=product_type,
        gender_sensitive_type=gender_sensitive,
        problems=problems,
        preferences=preferences,
        wants_discount=wants_discount,
        brands=brands,
        product_line=product_line,
        needs_clarification=question is not None,
        clarification_question=question,
    )
    logger.info(
        "Analyzed query '{}': type={} gender={} brands={} clarify={}",
        normalized,
        product_type,
        gender,
        brands,
        analysis.needs_clarification,
    )
    return analysis
