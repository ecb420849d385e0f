"""
Text normalization utilities used across the search engine.

Queries arrive short, informal and usually without diacritics, while
catalog titles carry full Slovak spelling.  Everything that is compared
(query tokens, index terms, brand names, category keys) goes through
:func:`normalize_text` first so both sides meet in the same
lowercase, diacritic-free, alphanumeric form.
"""
from __future__ import annotations

import html
import re
import unicodedata
from typing import FrozenSet, List, Optional

from bs4 import BeautifulSoup

from .config import MAX_INPUT_CHARS, MIN_TOKEN_LENGTH


# ---------------------------
# Basic helpers
# ---------------------------

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_WS_RE = re.compile(r"\s+")


def clamp_text_length(text: str, max_chars: int = MAX_INPUT_CHARS) -> str:
    """
    Hard cap on input size so a pasted document cannot blow up
    tokenization cost.
    """
    if not isinstance(text, str):
        text = str(text)
    if len(text) <= max_chars:
        return text
    return text[:max_chars]


def normalize_whitespace(text: str) -> str:
    """
    Collapse all whitespace runs into a single space and strip edges.
    """
    if not text:
        return ""
    return _WS_RE.sub(" ", text).strip()


def strip_html(raw: str) -> str:
    """
    Strip HTML tags using BeautifulSoup.  Feed descriptions frequently
    carry markup and escaped entities; if parsing fails the input is
    returned unchanged to fail open rather than drop text.
    """
    if not raw:
        return ""
    if "<" not in raw and "&" not in raw:
        return raw
    try:
        soup = BeautifulSoup(raw, "lxml")
        text = soup.get_text(" ", strip=True)
        text = normalize_whitespace(text)
        text = re.sub(r"\s+([.,!?;:])", r"\1", text)
        return text
    except Exception:
        return raw


def decode_entities(text: str) -> str:
    """Decode HTML entities (``&scaron;``, ``&amp;`` ...) left in feed text."""
    if not text:
        return ""
    return html.unescape(text)


def clean_feed_text(text: Optional[str]) -> str:
    """Entity decode, tag strip and whitespace collapse for display fields."""
    if text is None:
        return ""
    text = clamp_text_length(str(text), max_chars=20_000)
    return normalize_whitespace(strip_html(decode_entities(text)))


# ---------------------------
# Normalization
# ---------------------------

def normalize_text(text: Optional[str]) -> str:
    """
    Lowercase, decompose, drop combining marks, replace anything that is
    not ``[a-z0-9]`` with a space and collapse whitespace.

    The output alphabet is lowercase ASCII letters, digits and single
    spaces, so applying the function twice changes nothing.
    """
    if not text:
        return ""
    text = str(text).lower()
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.lower()
    text = _NON_ALNUM_RE.sub(" ", text)
    return normalize_whitespace(text)


# ---------------------------
# Tokenization
# ---------------------------

# Closed list: Slovak function words, greetings and filler verbs that
# show up in chat queries, plus a handful of English ones.
STOP_WORDS: FrozenSet[str] = frozenset({
    "a", "aj", "ak", "ako", "ale", "ani", "az", "bo", "by", "co", "ci", "do",
    "ho", "im", "ja", "je", "ju", "ka", "ku", "ma", "me", "mi", "na", "ne",
    "ni", "no", "od", "po", "pri", "sa", "si", "so", "som", "su", "ta", "te",
    "ti", "to", "tu", "ty", "uz", "vo", "za", "ze", "pre", "nas", "vas",
    "aby", "alebo", "ktory", "ktora", "ktore", "nejaky", "nejaku", "nejake",
    "nieco", "prosim", "dakujem", "dobry", "den", "ahoj",
    "cau", "zdravim", "dobryden", "hladam", "chcem", "chcel", "chcela",
    "potrebujem", "potreboval", "potrebovala", "mate", "mam", "mali", "mozete",
    "mohli", "poradit", "poradte", "odporucit", "odporucte", "viete", "dajte",
    "daj", "ukaz", "ukazte", "kupit", "velmi", "trochu", "tiez", "len", "iba",
    "the", "and", "or", "is", "are", "this", "that", "for", "with", "please",
    "hi", "hello", "want", "need", "some",
})


def split_tokens(normalized: str) -> List[str]:
    """Whitespace split of already-normalized text (no filtering)."""
    if not normalized:
        return []
    return normalized.split(" ")


def is_meaningful(token: str) -> bool:
    return len(token) >= MIN_TOKEN_LENGTH and token not in STOP_WORDS


def tokenize(text: Optional[str], max_chars: int = MAX_INPUT_CHARS) -> List[str]:
    """
    Normalize ``text`` and return its filtered token sequence.

    Tokens shorter than ``MIN_TOKEN_LENGTH`` and stop words are dropped;
    order is preserved because phrase checks downstream look at adjacent
    tokens.
    """
    normalized = normalize_text(clamp_text_length(text or "", max_chars))
    return [t for t in split_tokens(normalized) if is_meaningful(t)]


def contains_phrase(normalized_text: str, phrase: str) -> bool:
    """
    Whole-word phrase test on normalized text.

    Both sides are padded with spaces so ``"deo"`` does not match inside
    ``"dezodorant"`` while ``"pre muzov"`` matches as a unit.
    """
    if not phrase or not normalized_text:
        return False
    return f" {phrase} " in f" {normalized_text} "


if __name__ == "__main__":
    sample = "Dobrý deň, hľadám <b>DEZODORANT</b> pre mužov &amp; ženy!"
    print("RAW:", sample)
    print("CLEAN:", clean_feed_text(sample))
    print("NORMALIZED:", normalize_text(sample))
    print("TOKENS:", tokenize(clean_feed_text(sample)))
