"""Normalization helpers for narrators, identifiers and textual metadata."""

from __future__ import annotations

import re
from html import unescape
from typing import Any, Optional

HONORIFICS_PATTERN = re.compile(
    r"\((?:may|may allah be pleased|رضي الله عن(?:ه|ها|هم))[^)]*\)", re.IGNORECASE
)
VERB_PATTERN = re.compile(r"\b(reported|narrated|said|stated)\b:?", re.IGNORECASE)
WHITESPACE_PATTERN = re.compile(r"\s+")
TAG_PATTERN = re.compile(r"<[^>]+>")
INTEGER_PATTERN = re.compile(r"\d+")


def extract_narrator_name(raw: Optional[str]) -> Optional[str]:
    """Return a canonical narrator name stripped of honorifics and verbs."""
    if not raw or not isinstance(raw, str):
        return None
    # Remove honorific parentheticals
    cleaned = HONORIFICS_PATTERN.sub("", raw)
    # Remove reporting verbs at start/end
    cleaned = VERB_PATTERN.sub("", cleaned)
    # Strip punctuation artifacts
    cleaned = cleaned.replace(":", "").replace("،", "")
    cleaned = WHITESPACE_PATTERN.sub(" ", cleaned)
    return cleaned.strip(" -\u200f\u200e\ufeff") or None


def normalize_text(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return WHITESPACE_PATTERN.sub(" ", value).strip()


def strip_html(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    text = TAG_PATTERN.sub(" ", value)
    text = unescape(text)
    return normalize_text(text)


def coerce_int(value: Any) -> Optional[int]:
    """Parse ``value`` leniently; ``None`` means "not a usable number".

    Accepts ints, integral floats and numeric strings such as ``"7"`` or
    ``"1.00"``. Booleans and everything else are rejected.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        if number != number or not number.is_integer():
            return None
        return int(number)
    return None


def trailing_int(value: Any) -> Optional[int]:
    """Return the last integer embedded in ``value`` (``"Book 1, Hadith 12"`` -> 12)."""
    direct = coerce_int(value)
    if direct is not None:
        return direct
    if not isinstance(value, str):
        return None
    matches = INTEGER_PATTERN.findall(value)
    if not matches:
        return None
    try:
        return int(matches[-1])
    except ValueError:
        # Beyond the interpreter's int-string digit limit.
        return None


def positive_int(value: Any) -> Optional[int]:
    number = coerce_int(value)
    if number is None or number < 1:
        return None
    return number


def normalize_slug(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


__all__ = [
    "extract_narrator_name",
    "normalize_text",
    "strip_html",
    "coerce_int",
    "trailing_int",
    "positive_int",
    "normalize_slug",
]
