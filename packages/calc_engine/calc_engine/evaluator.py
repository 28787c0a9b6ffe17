"""
Sandboxed arithmetic evaluator.

Expressions are parsed with the `ast` module in eval mode and walked against a
whitelist: numeric constants, arithmetic operators, names bound in the
supplied scope, the constants PI and E, and calls to FUNCTIONS with positional
arguments. Nothing else is reachable: no attributes, subscripts, keywords,
comprehensions, builtins or I/O. Any failure returns None.
"""
from __future__ import annotations

import ast
import logging
import math
import operator
from typing import Any, Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

MAX_EXPRESSION_LENGTH = 2000


class ExpressionError(ValueError):
    pass


def _round(x: float, digits: float = 0) -> float:
    # Half away from zero, matching how the editor displays rounded values.
    if abs(digits) > 15:
        raise ExpressionError("round() digits out of range")
    factor = 10 ** int(digits)
    scaled = abs(x) * factor
    return math.copysign(math.floor(scaled + 0.5) / factor, x)


def _min(*args: float) -> float:
    if not args:
        raise ExpressionError("min() needs at least one argument")
    return min(args)


def _max(*args: float) -> float:
    if not args:
        raise ExpressionError("max() needs at least one argument")
    return max(args)


FUNCTIONS: Dict[str, Callable[..., float]] = {
    "sqrt": math.sqrt,
    "abs": abs,
    "min": _min,
    "max": _max,
    "round": _round,
    "floor": math.floor,
    "ceil": math.ceil,
    "pow": math.pow,
    "log": math.log,
    "log10": math.log10,
    "exp": math.exp,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
}

CONSTANTS: Dict[str, float] = {
    "PI": math.pi,
    "E": math.e,
}

_BINARY_OPS: Dict[type, Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: math.pow,
}

_UNARY_OPS: Dict[type, Callable[[float], float]] = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}


def parse_expression(expr: str) -> ast.AST:
    """Parse and structurally check an expression; raises ExpressionError."""
    if not isinstance(expr, str) or not expr.strip():
        raise ExpressionError("empty expression")
    if len(expr) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError("expression too long")
    try:
        tree = ast.parse(expr.strip(), mode="eval")
    except (SyntaxError, ValueError) as e:
        raise ExpressionError(f"syntax error: {e}") from e
    for node in ast.walk(tree):
        _check_node(node)
    return tree.body


def _check_node(node: ast.AST) -> None:
    if isinstance(node, (ast.Expression, ast.Load)):
        return
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise ExpressionError(f"unsupported literal: {node.value!r}")
        return
    if isinstance(node, ast.BinOp):
        if type(node.op) not in _BINARY_OPS:
            raise ExpressionError(f"unsupported operator: {type(node.op).__name__}")
        return
    if isinstance(node, ast.UnaryOp):
        if type(node.op) not in _UNARY_OPS:
            raise ExpressionError(f"unsupported operator: {type(node.op).__name__}")
        return
    if isinstance(node, tuple(_BINARY_OPS) + tuple(_UNARY_OPS)):
        return
    if isinstance(node, ast.Name):
        return
    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
            raise ExpressionError("only whitelisted functions may be called")
        if node.keywords:
            raise ExpressionError("keyword arguments are not supported")
        return
    raise ExpressionError(f"unsupported syntax: {type(node).__name__}")


def _eval_node(node: ast.AST, scope: Mapping[str, float]) -> float:
    if isinstance(node, ast.Constant):
        return float(node.value)

    if isinstance(node, ast.BinOp):
        left = _eval_node(node.left, scope)
        right = _eval_node(node.right, scope)
        return _BINARY_OPS[type(node.op)](left, right)

    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand, scope))

    if isinstance(node, ast.Name):
        if node.id in scope:
            return float(scope[node.id])
        if node.id in CONSTANTS:
            return CONSTANTS[node.id]
        raise ExpressionError(f"unbound name: {node.id}")

    if isinstance(node, ast.Call):
        args = [_eval_node(a, scope) for a in node.args]
        return float(FUNCTIONS[node.func.id](*args))

    raise ExpressionError(f"unsupported syntax: {type(node).__name__}")


def evaluate(expr: str, scope: Optional[Mapping[str, float]] = None) -> Optional[float]:
    """
    Evaluate `expr` against `scope` (identifier -> number).
    Returns None on syntax errors, unbound names, domain errors and
    non-finite results; never raises.
    """
    try:
        tree = parse_expression(expr)
        value = _eval_node(tree, scope or {})
    except (ExpressionError, ArithmeticError, ValueError, TypeError, RecursionError) as e:
        logger.debug("evaluate failed for %r: %s", (expr or "")[:100], e)
        return None
    if not isinstance(value, float) or not math.isfinite(value):
        return None
    return value


def check_syntax(expr: str) -> Optional[str]:
    """Dry run: returns None if `expr` is structurally evaluable, else the reason."""
    try:
        parse_expression(expr)
    except (ExpressionError, RecursionError) as e:
        return str(e) or type(e).__name__
    return None


def is_finite_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )
