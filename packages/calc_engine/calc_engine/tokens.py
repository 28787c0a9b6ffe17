from __future__ import annotations

import re
from typing import Mapping, Optional

_COMMENT_RE = re.compile(r"//.*$")
_HASHTAG_RE = re.compile(r"#([A-Za-z][\w-]*)")
_TAG_KEYWORD_RE = re.compile(r"\btag\s*:\s*([A-Za-z][\w-]*)", re.IGNORECASE)
_NON_IDENT_RE = re.compile(r"[^A-Za-z0-9_]+")
_WORD_TOTAL_RE = re.compile(r"\btotal\b", re.IGNORECASE)

_FUNCTION_CALL_RE = re.compile(
    r"\b(sqrt|abs|min|max|round|floor|ceil|pow|log|log10|exp|sin|cos|tan)\s*\(",
    re.IGNORECASE,
)


def strip_inline_comment(s: str) -> str:
    """'100 + 50 // rent split' -> '100 + 50'"""
    return _COMMENT_RE.sub("", s or "").strip()


def remove_tags(line: str) -> str:
    """Drop '#tag' and 'tag: name' annotations; they are never evaluated."""
    s = _TAG_KEYWORD_RE.sub("", line or "")
    s = _HASHTAG_RE.sub("", s)
    return s.strip()


def extract_tag(line: str) -> Optional[str]:
    """
    Returns the lowercase tag of a line or None.
    Explicit 'tag: name' wins over a '#name' hashtag.
    """
    m = _TAG_KEYWORD_RE.search(line or "")
    if m:
        return m.group(1).lower()
    m = _HASHTAG_RE.search(line or "")
    if m:
        return m.group(1).lower()
    return None


def normalize_var_name(raw: str) -> Optional[str]:
    """
    Sanitize a free-form label into a safe identifier.
    'My Var!' -> 'My_Var', '2024 budget' -> 'v_2024_budget'
    """
    s = _NON_IDENT_RE.sub("_", (raw or "").strip()).strip("_")
    if not s:
        return None
    if s[0].isdigit():
        s = f"v_{s}"
    return s


def has_total_word(s: str) -> bool:
    return bool(_WORD_TOTAL_RE.search(s or ""))


def looks_like_math(s: str) -> bool:
    if not s:
        return False
    if re.search(r"[0-9$%]", s):
        return True
    if re.search(r"[+\-*/^()×÷−]", s):
        return True
    return bool(_FUNCTION_CALL_RE.search(s))


def name_pattern(name: str) -> re.Pattern:
    # Whole-name match: a name is never replaced inside a longer word.
    return re.compile(
        r"(?<![A-Za-z0-9_])" + re.escape(name) + r"(?![A-Za-z0-9_])",
        re.IGNORECASE,
    )


def substitute_names(expr: str, replacements: Mapping[str, str]) -> str:
    """
    Replace every bound name in expr, longest name first, so that
    'Total Cost' is consumed before 'Total' gets a chance to match.
    """
    out = expr or ""
    for name in sorted(replacements, key=len, reverse=True):
        if not name or not name.strip():
            continue
        replacement = replacements[name]
        out = name_pattern(name).sub(lambda _m, r=replacement: r, out)
    return out


def split_top_level(line: str, sep: str) -> Optional[int]:
    """
    Index of the first unescaped `sep` outside parentheses, or None.
    For '=' the comparison forms '==', '<=', '>=', '!=' are skipped.
    """
    depth = 0
    prev = ""
    for i, ch in enumerate(line or ""):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        elif ch == sep and depth == 0 and prev != "\\":
            if sep == "=":
                nxt = line[i + 1] if i + 1 < len(line) else ""
                if (prev and prev in "=<>!") or nxt == "=":
                    prev = ch
                    continue
            return i
        prev = ch
    return None

