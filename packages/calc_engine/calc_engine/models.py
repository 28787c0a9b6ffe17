from __future__ import annotations

from types import MappingProxyType
from typing import Dict, List, Literal, Mapping, NamedTuple, Optional

from pydantic import BaseModel

from .tokens import normalize_var_name

ResultKind = Literal["variable", "calc", "total", "header", "note", "skip"]
ResultFormat = Literal["currency", "percent", "number"]
ResultSource = Literal["local", "ai"]


class LineResult(BaseModel):
    value: Optional[float] = None
    kind: ResultKind = "calc"
    format: ResultFormat = "number"
    explanation: str = ""
    formula: str = ""
    source: ResultSource = "local"
    contributors: Optional[int] = None


class AiRewrite(BaseModel):
    """
    One line of a model response. `rhs` never contains the defined name.
    `formula` / `type` / `format` are accepted from older persisted maps.
    """

    model_config = {"extra": "ignore"}

    kind: Optional[str] = None
    rhs: Optional[str] = None
    explanation: Optional[str] = ""
    confidence: Optional[float] = None
    formula: Optional[str] = None
    type: Optional[str] = None
    format: Optional[str] = None

    @property
    def normalized_kind(self) -> str:
        kind = (self.kind or "").strip().lower()
        if kind:
            return kind
        # Legacy entries carried a formula and an optional type but no kind.
        legacy = (self.type or "").strip().lower()
        if legacy in ("header", "note"):
            return legacy
        if self.formula:
            return "rewrite"
        return ""

    @property
    def expression(self) -> Optional[str]:
        return self.rhs or self.formula


class Scope:
    """
    Immutable snapshot of the bindings accumulated while scanning a document.

    Two namespaces are kept side by side:
      friendly    - label text as the user typed it ("Total Cost")
      identifiers - sanitized evaluator names ("Total_Cost")
    `lines` records the line that last bound each friendly name.
    """

    __slots__ = ("_friendly", "_identifiers", "_lines")

    def __init__(
        self,
        friendly: Optional[Mapping[str, float]] = None,
        identifiers: Optional[Mapping[str, float]] = None,
        lines: Optional[Mapping[str, int]] = None,
    ):
        self._friendly = MappingProxyType(dict(friendly or {}))
        self._identifiers = MappingProxyType(dict(identifiers or {}))
        self._lines = MappingProxyType(dict(lines or {}))

    @property
    def friendly(self) -> Mapping[str, float]:
        return self._friendly

    @property
    def identifiers(self) -> Mapping[str, float]:
        return self._identifiers

    @property
    def lines(self) -> Mapping[str, int]:
        return self._lines

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Scope):
            return NotImplemented
        return (
            dict(self._friendly) == dict(other._friendly)
            and dict(self._identifiers) == dict(other._identifiers)
            and dict(self._lines) == dict(other._lines)
        )

    def __repr__(self) -> str:
        return f"Scope(friendly={dict(self._friendly)!r})"


class ScopeBuilder:
    """Mutable accumulator used for a single top-down pass; never shared."""

    def __init__(self) -> None:
        self._friendly: Dict[str, float] = {}
        self._identifiers: Dict[str, float] = {}
        self._lines: Dict[str, int] = {}
        # friendly name -> identifier, used to rewrite later expressions
        self._aliases: Dict[str, str] = {}

    def bind(self, label: str, value: float, line: int) -> Optional[str]:
        name = (label or "").strip()
        ident = normalize_var_name(name)
        if not name or not ident:
            return None
        # Re-binding under a different case replaces the older spelling.
        for existing in [k for k in self._friendly if k.lower() == name.lower()]:
            self._friendly.pop(existing)
            self._lines.pop(existing, None)
            old_ident = self._aliases.pop(existing, None) or normalize_var_name(existing)
            if old_ident and old_ident != ident:
                self._identifiers.pop(old_ident, None)
                self._aliases.pop(old_ident, None)
        self._friendly[name] = value
        self._lines[name] = line
        self._identifiers[ident] = value
        self._aliases[name] = ident
        # Any casing of the identifier itself resolves to the latest binding.
        self._aliases[ident] = ident
        return ident

    @property
    def identifiers(self) -> Mapping[str, float]:
        return self._identifiers

    @property
    def aliases(self) -> Mapping[str, str]:
        return self._aliases

    def snapshot(self) -> Scope:
        return Scope(self._friendly, self._identifiers, self._lines)


class DocumentEvaluation(NamedTuple):
    results: Dict[int, LineResult]
    scope: Scope
    line_values: List[Optional[float]]
    line_tags: List[Optional[str]]
