from __future__ import annotations

import re
from enum import Enum
from typing import NamedTuple, Optional

from .normalizer import normalize
from .tokens import (
    extract_tag,
    looks_like_math,
    normalize_var_name,
    remove_tags,
    split_top_level,
    strip_inline_comment,
)

_SUM_RE = re.compile(r"^sum\s*:\s*([A-Za-z][\w-]*)\s*$", re.IGNORECASE)


class LineKind(str, Enum):
    BLANK = "blank"
    COMMENT = "comment"
    TAGGED_SUM = "tagged-sum"
    ASSIGNMENT = "assignment"
    LABELED_VALUE = "labeled-value"
    BARE_EXPRESSION = "bare-expression"
    TEXT = "text"


class Classification(NamedTuple):
    kind: LineKind
    label: Optional[str] = None       # left-hand side for assignment / labeled value
    expression: str = ""              # raw right-hand side, comments and tags removed
    tag: Optional[str] = None         # contributor tag, or the summed tag for TAGGED_SUM


def match_tagged_sum(line: str) -> Optional[str]:
    m = _SUM_RE.match((line or "").strip())
    return m.group(1).lower() if m else None


def classify(line: str) -> Classification:
    """
    Classify one line. Precedence: blank, comment, tagged-sum, assignment,
    labeled-value, bare-expression, text.
    """
    trimmed = (line or "").strip()
    if not trimmed:
        return Classification(LineKind.BLANK)
    if trimmed.startswith("//"):
        return Classification(LineKind.COMMENT)

    sum_tag = match_tagged_sum(trimmed)
    if sum_tag:
        return Classification(LineKind.TAGGED_SUM, expression=f"sum({sum_tag})", tag=sum_tag)

    tag = extract_tag(trimmed)
    body = remove_tags(strip_inline_comment(trimmed))

    eq_idx = split_top_level(body, "=")
    if eq_idx is not None and eq_idx > 0:
        left = body[:eq_idx].strip()
        right = body[eq_idx + 1:].strip()
        if normalize_var_name(left) and right:
            return Classification(LineKind.ASSIGNMENT, label=left, expression=right, tag=tag)

    colon_idx = body.find(":")
    if colon_idx > 0:
        left = body[:colon_idx].strip()
        right = body[colon_idx + 1:].strip()
        if left and looks_like_math(normalize(right)):
            return Classification(LineKind.LABELED_VALUE, label=left, expression=right, tag=tag)

    if looks_like_math(normalize(body)):
        return Classification(LineKind.BARE_EXPRESSION, expression=body, tag=tag)

    return Classification(LineKind.TEXT, tag=tag)


def apparent_variable_name(line: str) -> Optional[str]:
    """
    The name a line appears to define: the left side of its first '=' or,
    failing that, of its first ':'. Used to register model-derived values.
    """
    body = remove_tags(strip_inline_comment(line or ""))
    if "=" in body:
        name = body.split("=", 1)[0].strip()
    elif ":" in body:
        name = body.split(":", 1)[0].strip()
    else:
        return None
    return name or None
