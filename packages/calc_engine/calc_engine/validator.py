"""
Static checks for model-supplied rewrites, run before anything is evaluated.

The rewrite source is a language model and may hallucinate names or write
circular definitions, so a rewrite is only accepted when it is non-empty,
does not mention the variable it defines, references nothing outside the
known variables / line references / function set, and parses under the
sandboxed evaluator.
"""
from __future__ import annotations

import re
from typing import Iterable, NamedTuple, Optional

from .evaluator import CONSTANTS, FUNCTIONS, check_syntax
from .normalizer import canonical_operators
from .tokens import substitute_names

LINE_REF_RE = re.compile(r"L\{\s*(\d+|prev)\s*\}|\bL(\d+)\b", re.IGNORECASE)
SUM_CALL_RE = re.compile(r"\bsum\s*\(\s*#?([A-Za-z][\w-]*)\s*\)", re.IGNORECASE)

_FUNC_NAMES = sorted(FUNCTIONS, key=len, reverse=True)
_MATH_PREFIX_RE = re.compile(r"\bMath\s*\.\s*", re.IGNORECASE)
_FUNC_CALL_RE = re.compile(r"\b(" + "|".join(_FUNC_NAMES) + r")\s*\(", re.IGNORECASE)
_CONST_RE = re.compile(r"\b(pi|e)\b(?!\s*\()", re.IGNORECASE)
_NUMBER_RE = re.compile(r"(?<![A-Za-z_])\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|\.\d+")
_OPERATOR_RE = re.compile(r"[+\-*/^()=,%$×÷−]")
_RESIDUAL_ALLOWLIST = {"sum"}


class ValidationResult(NamedTuple):
    valid: bool
    reason: Optional[str] = None


def _squash(s: str) -> str:
    return re.sub(r"[^a-z0-9]", "", (s or "").lower())


def is_self_reference(var_name: Optional[str], rhs: str) -> bool:
    """'Staffing = Staffing * 2' style definitions, compared alphanumerics-only."""
    name = _squash(var_name or "")
    if not name or not rhs:
        return False
    return name in _squash(rhs)


def canonical_functions(expr: str) -> str:
    """Map 'Math.sqrt', 'SQRT(', 'pi' and friends onto the evaluator's names."""
    s = _MATH_PREFIX_RE.sub("", expr or "")
    s = _FUNC_CALL_RE.sub(lambda m: m.group(1).lower() + "(", s)
    return _CONST_RE.sub(lambda m: m.group(1).upper(), s)


def _residual_tokens(expr: str) -> str:
    s = _MATH_PREFIX_RE.sub("", expr)
    s = re.sub(r"\b(" + "|".join(_FUNC_NAMES) + r")\b", " ", s, flags=re.IGNORECASE)
    s = re.sub(r"\b(" + "|".join(CONSTANTS) + r")\b", " ", s, flags=re.IGNORECASE)
    s = _NUMBER_RE.sub(" ", s)
    s = _OPERATOR_RE.sub(" ", s)
    return " ".join(s.split())


def _strip_references(expr: str) -> str:
    # Line references and sum(tag) calls are resolved before variable names.
    s = LINE_REF_RE.sub("1", expr)
    return SUM_CALL_RE.sub("1", s)


def dry_run_form(rhs: str, available_vars: Iterable[str]) -> str:
    """The rewrite with every reference replaced by a placeholder `1`."""
    s = _strip_references(rhs)
    s = substitute_names(s, {name: "1" for name in available_vars})
    s = canonical_functions(s)
    return canonical_operators(s)


def validate(rhs: Optional[str], bound_var_name: Optional[str], available_vars: Iterable[str]) -> ValidationResult:
    if not rhs or not str(rhs).strip():
        return ValidationResult(False, "Empty formula")

    if bound_var_name and is_self_reference(bound_var_name, rhs):
        return ValidationResult(False, "Self-reference detected")

    names = list(available_vars or [])
    placeholder = substitute_names(_strip_references(rhs), {name: "1" for name in names})
    residual = _residual_tokens(placeholder)
    if residual and residual.lower() not in _RESIDUAL_ALLOWLIST:
        return ValidationResult(False, f'Unknown token/variable: "{residual}"')

    problem = check_syntax(dry_run_form(rhs, names))
    if problem:
        return ValidationResult(False, f"Parse error: {problem}")

    return ValidationResult(True)
