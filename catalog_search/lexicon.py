"""
Synonym and brand dictionaries plus the expansion helpers built on them.

``SYNONYMS`` maps a canonical concept key to its surface variants
(inflections, English loanwords, category synonyms).  The table is
bidirectional: hitting the key or any variant pulls in the whole group.
Both query tokens and document tokens are expanded with it, so an
inflected query word and a differently inflected title word still meet
on the canonical key.

``BRANDS`` is the closed brand dictionary used for query-side brand
detection.  All entries are stored already normalized.
"""
from __future__ import annotations

import re
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from .config import MIN_SUBSTRING_MATCH, SHORT_BRAND_MAX_LEN
from .normalize import normalize_text


# ---------------------------
# Synonyms
# ---------------------------

SYNONYMS: Dict[str, Tuple[str, ...]] = {
    # product kinds
    "dezodorant": ("dezodoranty", "deodorant", "deo", "antiperspirant", "antiperspiranty"),
    "parfum": ("parfem", "parfumy", "parfemy", "vonavka", "toaletna", "edt", "edp", "perfume", "kolinska"),
    "sampon": ("sampony", "shampoo"),
    "kondicioner": ("kondicionery", "conditioner", "balzam"),
    "sprcha": ("sprchovy", "sprchovaci", "shower"),
    "krem": ("kremy", "cream", "krema"),
    "mydlo": ("mydla", "soap"),
    "pasta": ("zubna", "zubne", "toothpaste"),
    "holenie": ("holiaci", "holiace", "holiaca", "britva", "britvy", "shaving", "shave", "strojcek"),
    "vlasy": ("vlasov", "hair", "vlasova", "vlasove"),
    "pletova": ("pleti", "pletove", "pletovy", "face", "skin"),
    "riad": ("riadu", "dishes", "umyvanie"),
    "pranie": ("pracie", "prasok", "laundry", "pracia"),
    "vosk": ("vosok", "wax"),
    "lyze": ("lyzovanie", "skiing", "ski", "lyziarsky", "bezky", "bezecke"),
    # audience
    "muz": ("muzi", "muzov", "muza", "muzsky", "muzske", "pansky", "panske", "panska", "men", "man", "homme"),
    "zena": ("zeny", "zien", "zensky", "zenske", "damsky", "damske", "damska", "women", "woman", "lady", "femme"),
    "dieta": ("deti", "detsky", "detske", "detska", "kids", "baby", "junior"),
    # commerce
    "zlava": ("zlavy", "akcia", "discount", "sale", "zlacnene", "promo", "kupon", "vypredaj"),
    "cena": ("ceny", "stoji", "price", "eur", "euro", "cennik"),
    "dostupny": ("skladom", "dispozicii", "sklade", "available", "dostupnost", "dostupne"),
    "velkost": ("size", "rozmer", "velkosti", "sizes"),
    "farba": ("color", "colour", "odtien", "farby", "farebny"),
}


def _entry_matches(token: str, entry: str) -> bool:
    if token == entry:
        return True
    shorter, longer = (token, entry) if len(token) <= len(entry) else (entry, token)
    return len(shorter) >= MIN_SUBSTRING_MATCH and shorter in longer


def synonym_group(token: str) -> List[str]:
    """Return ``[key, *variants]`` of every group ``token`` hits."""
    out: List[str] = []
    for key, variants in SYNONYMS.items():
        if _entry_matches(token, key) or any(_entry_matches(token, v) for v in variants):
            out.append(key)
            out.extend(variants)
    return out


def expand_tokens(tokens: Iterable[str]) -> List[str]:
    """
    Superset of ``tokens`` with canonical keys and all their variants.

    Original tokens come first, in order; additions follow in table
    order.  Multi-word variants contribute their individual words.
    """
    seen: Set[str] = set()
    out: List[str] = []

    def _add(word: str) -> None:
        for part in word.split():
            if part and part not in seen:
                seen.add(part)
                out.append(part)

    base = list(tokens)
    for tok in base:
        _add(tok)
    for tok in base:
        for word in synonym_group(tok):
            _add(word)
    return out


# ---------------------------
# Brands
# ---------------------------

BRANDS: Tuple[str, ...] = (
    # personal care
    "old spice", "nivea", "dove", "axe", "rexona", "adidas", "fa", "bac", "str8",
    "playboy", "gillette", "wilkinson", "garnier", "l oreal", "loreal", "head shoulders",
    "pantene", "syoss", "schwarzkopf", "gliss kur", "palmolive", "colgate", "sensodyne",
    "elmex", "oral b", "signal", "ziaja", "yves rocher", "la roche posay", "vichy",
    "eucerin", "bioderma", "cerave", "neutrogena", "labello", "johnsons", "bebe",
    "calvin klein", "hugo boss", "lacoste", "versace", "davidoff",
    # household
    "jar", "ariel", "persil", "lenor", "somat", "finish", "pur", "bref", "domestos",
    "savo", "frosch", "ajax", "cif",
    # kids
    "pampers", "hipp", "nuk", "avent",
    # outdoor / ski
    "swix", "toko", "holmenkol",
)


def _brand_pattern(brand: str) -> "re.Pattern[str]":
    return re.compile(r"(?<![a-z0-9])" + re.escape(brand) + r"(?![a-z0-9])")


def _ordered_brands(extra: Iterable[str]) -> List[str]:
    pool = {b for b in BRANDS}
    for b in extra:
        nb = normalize_text(b)
        if nb:
            pool.add(nb)
    multi = sorted((b for b in pool if " " in b), key=lambda b: (-len(b), b))
    single = sorted((b for b in pool if " " not in b), key=lambda b: (-len(b), b))
    return multi + single


def detect_brands(normalized_query: str, extra_brands: Sequence[str] = ()) -> List[str]:
    """
    Detect brand mentions in an already-normalized query.

    Multi-word brands are tried first, longest first, and a matched span
    is blanked so its words cannot re-match as single-word brands.
    Brands of ``SHORT_BRAND_MAX_LEN`` characters or fewer need a
    whole-word match ("fa" must not fire inside "farba"); longer names
    may match as a substring.  The result is deduplicated and ordered by
    position in the query, which keeps "nivea vs dove" in the user's
    order for comparison queries.
    """
    if not normalized_query:
        return []
    working = normalized_query
    hits: List[Tuple[int, str]] = []
    for brand in _ordered_brands(extra_brands):
        if len(brand) <= SHORT_BRAND_MAX_LEN or " " in brand:
            m = _brand_pattern(brand).search(working)
            pos = m.start() if m else -1
        else:
            pos = working.find(brand)
        if pos < 0:
            continue
        hits.append((pos, brand))
        working = working[:pos] + " " * len(brand) + working[pos + len(brand):]
    hits.sort(key=lambda h: h[0])
    out: List[str] = []
    for _, brand in hits:
        if brand not in out:
            out.append(brand)
    return out


def brand_words(brands: Iterable[str]) -> Set[str]:
    """Individual words of the given brand phrases."""
    words: Set[str] = set()
    for b in brands:
        words.update(b.split())
    return words
