"""
Local document evaluator: one deterministic top-to-bottom pass over the text.

Local results are authoritative. Each call builds a fresh ScopeBuilder, so
nothing leaks between runs and evaluate_document() is a pure function of text.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, Tuple

from .classifier import Classification, LineKind, classify
from .evaluator import evaluate, is_finite_number
from .formatters import classify_format
from .models import DocumentEvaluation, LineResult, ScopeBuilder
from .normalizer import normalize
from .tokens import has_total_word, name_pattern, substitute_names

logger = logging.getLogger(__name__)


def split_lines(text: str) -> List[str]:
    return (text or "").split("\n")


def tagged_sum(tag: str, upto: int, values: List[Optional[float]], tags: List[Optional[str]]):
    """Sum of finite values on lines strictly before `upto` carrying `tag`."""
    total = 0.0
    count = 0
    for j in range(min(upto, len(values))):
        if tags[j] == tag and is_finite_number(values[j]):
            total += values[j]
            count += 1
    return total, count


def sum_result(tag: str, total: float, count: int) -> LineResult:
    return LineResult(
        value=total,
        kind="total",
        format="number",
        explanation=f"Sum of #{tag} ({count} lines)" if count else f"No #{tag} found",
        formula=f"sum({tag})",
        source="local",
        contributors=count,
    )


def _evaluate_rhs(expr_raw: str, builder: ScopeBuilder) -> Tuple[Optional[float], str]:
    # Friendly labels ("Total Cost") are rewritten to their identifiers first.
    expr = substitute_names(expr_raw, builder.aliases)
    expr = normalize(expr, protected=builder.identifiers.keys())
    return evaluate(expr, builder.identifiers), expr


def _line_format(raw: str, expr_raw: str, expr: str, currency_idents: Set[str]) -> str:
    fmt = classify_format(raw, expr_raw)
    if fmt == "number" and any(name_pattern(ident).search(expr) for ident in currency_idents):
        return "currency"
    return fmt


def evaluate_document(text: str) -> DocumentEvaluation:
    lines = split_lines(text)
    builder = ScopeBuilder()
    currency_idents: Set[str] = set()
    line_values: List[Optional[float]] = []
    line_tags: List[Optional[str]] = []
    results: Dict[int, LineResult] = {}

    for i, raw in enumerate(lines):
        c: Classification = classify(raw)

        if c.kind == LineKind.TAGGED_SUM:
            total, count = tagged_sum(c.tag, i, line_values, line_tags)
            results[i] = sum_result(c.tag, total, count)
            line_values.append(total)
            # A sum line aggregates its tag; it does not contribute to it.
            line_tags.append(None)
            continue

        if c.kind not in (LineKind.ASSIGNMENT, LineKind.LABELED_VALUE, LineKind.BARE_EXPRESSION):
            line_values.append(None)
            line_tags.append(c.tag)
            continue

        value, expr = _evaluate_rhs(c.expression, builder)
        if value is None:
            logger.debug("line %d did not evaluate: %r", i, raw[:100])
            line_values.append(None)
            line_tags.append(c.tag)
            continue

        fmt = _line_format(raw, c.expression, expr, currency_idents)
        if c.kind == LineKind.ASSIGNMENT:
            kind = "total" if has_total_word(c.label) else "variable"
            explanation = f"Set {c.label}"
        elif c.kind == LineKind.LABELED_VALUE:
            kind = "total" if has_total_word(raw) else "calc"
            explanation = c.label
        else:
            kind = "total" if has_total_word(raw) else "calc"
            explanation = f"Tagged #{c.tag}" if c.tag else ""

        if c.label is not None:
            ident = builder.bind(c.label, value, i)
            if ident:
                # a rebinding in any casing replaces the older spelling
                currency_idents.difference_update(
                    [name for name in currency_idents if name.lower() == ident.lower()]
                )
                if fmt == "currency":
                    currency_idents.add(ident)

        results[i] = LineResult(
            value=value,
            kind=kind,
            format=fmt,
            explanation=explanation,
            formula=c.expression,
            source="local",
        )
        line_values.append(value)
        line_tags.append(c.tag)

    return DocumentEvaluation(
        results=results,
        scope=builder.snapshot(),
        line_values=line_values,
        line_tags=line_tags,
    )
