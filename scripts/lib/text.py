"""
Text canonicalization for free-text CRM attributes.

Every matcher in the pipeline works on canonical text so that accents,
casing and stray whitespace never change a classification.
"""
from __future__ import annotations

import re
import unicodedata
from typing import Any

_WHITESPACE_RE = re.compile(r"\s+")


def safe_string(value: Any) -> str:
    """Stringify an attribute value; None becomes the empty string."""
    if value is None:
        return ""
    return str(value)


def canon(value: Any) -> str:
    """Lowercase, strip diacritics, collapse whitespace and trim.

    Total and idempotent: canon(canon(x)) == canon(x).
    """
    text = safe_string(value).lower()
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def capitalize_first(text: str) -> str:
    """Uppercase the first character only, leaving the rest untouched."""
    if not text:
        return text
    return text[0].upper() + text[1:]
