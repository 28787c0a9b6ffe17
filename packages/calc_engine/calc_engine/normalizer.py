"""
Turns a raw text fragment into a canonical arithmetic expression string.

Steps, in order:
  1. inline comments and tag annotations are stripped
  2. unicode math glyphs become ASCII operators
  3. currency markers and thousands separators are removed ($1,200 -> 1200)
  4. percent literals become fractions (5% -> (5/100))
  5. caret exponent becomes the power operator
  6. natural-language glue words are removed (whole words only)

normalize() is total: it never raises, and returns the trimmed input when
nothing matches.
"""
from __future__ import annotations

import re
from typing import Iterable

from .tokens import remove_tags, strip_inline_comment

GLUE_WORDS = (
    "per", "of", "on", "at", "for", "a", "an", "the", "is", "equals", "equal",
    "hours", "hour", "hrs", "person", "people", "each",
)

_GLYPHS = {"×": "*", "÷": "/", "−": "-"}

_CURRENCY_RE = re.compile(r"\$\s*([0-9]{1,3}(?:,[0-9]{3})+(?:\.[0-9]+)?|[0-9]+(?:\.[0-9]+)?)")
_PERCENT_RE = re.compile(r"([0-9]+(?:\.[0-9]+)?)\s*%")
_GLUE_RE = re.compile(r"\b(" + "|".join(GLUE_WORDS) + r")\b", re.IGNORECASE)
_SPACE_RE = re.compile(r"\s+")


def replace_glyphs(s: str) -> str:
    for glyph, op in _GLYPHS.items():
        s = s.replace(glyph, op)
    return s


def strip_currency(s: str) -> str:
    return _CURRENCY_RE.sub(lambda m: m.group(1).replace(",", ""), s)


def convert_percent(s: str) -> str:
    return _PERCENT_RE.sub(r"(\1/100)", s)


def convert_caret(s: str) -> str:
    return s.replace("^", "**")


def strip_glue(s: str, protected: Iterable[str] = ()) -> str:
    keep = {p.lower() for p in protected}

    def _drop(m: re.Match) -> str:
        return m.group(0) if m.group(0).lower() in keep else " "

    return _GLUE_RE.sub(_drop, s)


def canonical_operators(expr: str) -> str:
    """Steps 2-5 only: used on model rewrites, where glue words never appear."""
    s = replace_glyphs(expr or "")
    s = strip_currency(s)
    s = convert_percent(s)
    s = convert_caret(s)
    return _SPACE_RE.sub(" ", s).strip()


def normalize(raw: str, protected: Iterable[str] = ()) -> str:
    try:
        s = remove_tags(strip_inline_comment(raw or ""))
        s = canonical_operators(s)
        s = strip_glue(s, protected)
        return _SPACE_RE.sub(" ", s).strip()
    except (TypeError, re.error):
        return (raw or "").strip() if isinstance(raw, str) else ""
