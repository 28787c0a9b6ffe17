from .classifier import Classification, LineKind, apparent_variable_name, classify
from .contract import (
    RequestMeta,
    ResponseCheck,
    RewriteRequest,
    RewriteResponse,
    build_request,
    compute_fingerprint,
    content_fingerprint,
    parse_rewrites,
    validate_response,
)
from .document import evaluate_document
from .evaluator import CONSTANTS, FUNCTIONS, check_syntax, evaluate
from .formatters import classify_format, format_value
from .models import AiRewrite, DocumentEvaluation, LineResult, Scope, ScopeBuilder
from .normalizer import normalize
from .reconcile import DEFAULT_MAX_ITERATIONS, Reconciler, reconcile, reconcile_text
from .tokens import extract_tag, normalize_var_name, substitute_names
from .validator import ValidationResult, is_self_reference, validate

__all__ = [
    "normalize",
    "classify",
    "Classification",
    "LineKind",
    "apparent_variable_name",
    "evaluate",
    "check_syntax",
    "FUNCTIONS",
    "CONSTANTS",
    "evaluate_document",
    "validate",
    "ValidationResult",
    "is_self_reference",
    "reconcile",
    "reconcile_text",
    "Reconciler",
    "DEFAULT_MAX_ITERATIONS",
    "LineResult",
    "AiRewrite",
    "Scope",
    "ScopeBuilder",
    "DocumentEvaluation",
    "RewriteRequest",
    "RewriteResponse",
    "RequestMeta",
    "ResponseCheck",
    "build_request",
    "compute_fingerprint",
    "content_fingerprint",
    "parse_rewrites",
    "validate_response",
    "format_value",
    "classify_format",
    "extract_tag",
    "normalize_var_name",
    "substitute_names",
]
