"""
Merges authoritative local results with validated model rewrites.

  1. local results are copied verbatim and never overwritten
  2. lines without a local result take their rewrite, if it validates and
     evaluates after substitution of variables, line references and sum(tag)
  3. `sum: tag` lines are recomputed over the merged results until stable
  4. pending rewrites are retried until a full pass produces nothing new

Steps 3 and 4 stop after `max_iterations` passes even if a dependency cycle
keeps them from settling; such lines simply stay unresolved.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Set, Tuple

from .classifier import apparent_variable_name, match_tagged_sum
from .document import evaluate_document, split_lines, sum_result
from .evaluator import evaluate, is_finite_number
from .formatters import classify_format
from .models import AiRewrite, LineResult, Scope
from .normalizer import canonical_operators
from .tokens import extract_tag, has_total_word, name_pattern, substitute_names
from .validator import LINE_REF_RE, SUM_CALL_RE, canonical_functions, validate

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5

_PASSIVE_KINDS = ("header", "note")
_SKIPPED_KINDS = ("question", "skip", "ignore")
_FORMATS = ("currency", "percent", "number")
_LEGACY_TYPES = ("variable", "calc", "total")


def _literal(value: float) -> str:
    return f"({value!r})"


class Reconciler:
    def __init__(
        self,
        text: str,
        local_results: Mapping[int, LineResult],
        local_scope: Scope,
        ai_rewrites: Mapping[int, AiRewrite],
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self.lines: List[str] = split_lines(text)
        self.local = dict(local_results)
        self.rewrites = {
            int(k): v for k, v in (ai_rewrites or {}).items()
            if str(k).isdigit() and int(k) < len(self.lines)
        }
        self.max_iterations = max(1, int(max_iterations))
        self.tags: List[Optional[str]] = [
            None if match_tagged_sum(line) else extract_tag(line) for line in self.lines
        ]
        self.final: Dict[int, LineResult] = {i: r.model_copy() for i, r in self.local.items()}
        self.values: Dict[str, float] = dict(local_scope.friendly)
        # names bound from currency lines; their dependents display as currency too
        self.currency_names: Set[str] = {
            name for name, line in local_scope.lines.items()
            if line in self.local and self.local[line].format == "currency"
        }

    # -- substitution -------------------------------------------------

    def _line_value(self, idx: int) -> Optional[float]:
        res = self.final.get(idx)
        if res is not None and is_finite_number(res.value):
            return res.value
        return None

    def _previous_value(self, idx: int) -> float:
        for i in range(idx - 1, -1, -1):
            v = self._line_value(i)
            if v is not None:
                return v
        return 0.0

    def _tag_contributions(self, tag: str, upto: int) -> Tuple[float, int]:
        total = 0.0
        count = 0
        for i in range(min(upto, len(self.lines))):
            v = self._line_value(i)
            if self.tags[i] == tag and v is not None:
                total += v
                count += 1
        return total, count

    def _substitute(self, expr: str, idx: int) -> str:
        def _line_ref(m) -> str:
            ref = (m.group(1) or m.group(2) or "").lower()
            if ref == "prev":
                return _literal(self._previous_value(idx))
            n = int(ref)
            v = self._line_value(n) if n != idx else None
            return _literal(v if v is not None else 0.0)

        s = LINE_REF_RE.sub(_line_ref, expr)
        s = SUM_CALL_RE.sub(lambda m: _literal(self._tag_contributions(m.group(1).lower(), idx)[0]), s)
        s = substitute_names(s, {name: _literal(v) for name, v in self.values.items()})
        s = canonical_functions(s)
        return canonical_operators(s)

    # -- single line --------------------------------------------------

    def resolve_line(self, idx: int) -> Optional[Tuple[LineResult, Optional[str]]]:
        item = self.rewrites.get(idx)
        if item is None or item.normalized_kind != "rewrite":
            return None
        parsable = (item.expression or "").strip()
        if "=" in parsable:
            parsable = parsable.split("=", 1)[1].strip()

        raw = self.lines[idx]
        var_name = apparent_variable_name(raw)
        check = validate(parsable, var_name, self.values.keys())
        if not check.valid:
            logger.debug("rewrite for line %d rejected: %s", idx, check.reason)
            return None

        expr = self._substitute(parsable, idx)
        value = evaluate(expr) if expr else None
        if value is None:
            logger.debug("rewrite for line %d did not evaluate: %r", idx, expr)
            return None

        if item.format in _FORMATS:
            fmt = item.format
        else:
            fmt = classify_format(raw)
            if fmt == "number" and any(name_pattern(n).search(parsable) for n in self.currency_names):
                fmt = "currency"
        legacy = (item.type or "").lower()
        if (item.kind or "").lower() == "rewrite":
            kind = "total" if has_total_word(raw) else "calc"
        else:
            kind = legacy if legacy in _LEGACY_TYPES else "calc"

        result = LineResult(
            value=value,
            kind=kind,
            format=fmt,
            explanation=item.explanation or "",
            formula=item.expression or "",
            source="ai",
        )
        return result, var_name

    def _apply(self, idx: int) -> bool:
        resolved = self.resolve_line(idx)
        if resolved is None:
            # Never retract a value produced by an earlier pass.
            return False
        result, var_name = resolved
        current = self.final.get(idx)
        changed = current is None or current.value != result.value
        if changed:
            self.final[idx] = result
        if var_name:
            if result.format == "currency":
                self.currency_names.add(var_name)
            else:
                self.currency_names.discard(var_name)
            if self.values.get(var_name) != result.value:
                self.values[var_name] = result.value
                changed = True
        return changed

    # -- passes -------------------------------------------------------

    def _pending(self) -> List[int]:
        return [
            i for i in sorted(self.rewrites)
            if i not in self.local and self.rewrites[i].normalized_kind == "rewrite"
        ]

    def merge_rewrites(self) -> None:
        for idx in sorted(self.rewrites):
            if idx in self.local:
                continue
            item = self.rewrites[idx]
            kind = item.normalized_kind
            if kind in _PASSIVE_KINDS:
                if item.explanation:
                    self.final[idx] = LineResult(
                        value=None,
                        kind=kind,
                        explanation=item.explanation,
                        source="ai",
                    )
            elif kind == "rewrite":
                self._apply(idx)
            elif kind and kind not in _SKIPPED_KINDS:
                logger.debug("line %d: unknown rewrite kind %r", idx, kind)

    def recompute_sums(self) -> bool:
        changed = False
        for idx, line in enumerate(self.lines):
            tag = match_tagged_sum(line)
            if not tag:
                continue
            total, count = self._tag_contributions(tag, idx)
            current = self.final.get(idx)
            if current is None or current.value != total or current.contributors != count:
                self.final[idx] = sum_result(tag, total, count)
                changed = True

            # Heuristic: a plain text line without a value right above a sum names that sum.
            if idx > 0 and self._line_value(idx - 1) is None:
                prev = self.lines[idx - 1].strip()
                if prev and not any(ch in prev for ch in "=:") and not prev.startswith(("#", "//")):
                    if self.values.get(prev) != total:
                        self.values[prev] = total
                        changed = True
            for alias in (f"sum:{tag}", f"sum: {tag}"):
                if self.values.get(alias) != total:
                    self.values[alias] = total
                    changed = True
        return changed

    def run(self) -> Dict[int, LineResult]:
        self.merge_rewrites()

        iterations = 0
        changed = True
        while changed and iterations < self.max_iterations:
            iterations += 1
            changed = self.recompute_sums()

        iterations = 0
        changed = True
        while changed and iterations < self.max_iterations:
            iterations += 1
            changed = False
            for idx in self._pending():
                if self._apply(idx):
                    changed = True
            if self.recompute_sums():
                changed = True
        if changed:
            logger.info("reconciliation stopped at the iteration cap (%d)", self.max_iterations)

        return {i: self.final[i] for i in sorted(self.final)}


def reconcile(
    text: str,
    local_results: Mapping[int, LineResult],
    local_scope: Scope,
    ai_rewrites: Mapping[int, AiRewrite],
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> Dict[int, LineResult]:
    return Reconciler(text, local_results, local_scope, ai_rewrites, max_iterations).run()


def reconcile_text(
    text: str,
    ai_rewrites: Optional[Mapping[int, AiRewrite]] = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> Dict[int, LineResult]:
    """Local evaluation followed by reconciliation, in one call."""
    evaluation = evaluate_document(text)
    return reconcile(text, evaluation.results, evaluation.scope, ai_rewrites or {}, max_iterations)
