from __future__ import annotations

import math
import re
from typing import Optional

_LONE_PERCENT_RE = re.compile(r"^\s*-?[0-9]+(?:\.[0-9]+)?\s*%\s*$")


def classify_format(raw_line: str, expression: Optional[str] = None) -> str:
    """Display hint: 'currency' if the line mentions $, 'percent' for a lone N% value."""
    if "$" in (raw_line or ""):
        return "currency"
    if expression is not None and _LONE_PERCENT_RE.match(expression):
        return "percent"
    return "number"


def format_value(value: Optional[float], fmt: str = "number") -> str:
    """
    format_value(1234.56, "currency") -> "$1,234.56"
    format_value(0.15, "percent")     -> "15.0%"
    format_value(1234.5, "number")    -> "1,234.5"
    """
    if value is None or isinstance(value, bool) or not math.isfinite(value):
        return ""
    if fmt == "currency":
        sign = "-" if value < 0 else ""
        return f"{sign}${abs(value):,.2f}"
    if fmt == "percent":
        return f"{value * 100:.1f}%"
    text = f"{value:,.2f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return text
