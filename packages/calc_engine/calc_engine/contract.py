"""
JSON contract with the rewrite model.

Request:  {"meta": {"doc_id", "lines_hash"}, "lines": {idx: text}, "variables": {name: {"line", "value"}}}
Response: {"meta": {"doc_id", "lines_hash"}, "results": {idx: {"kind", "rhs", "explanation", "confidence"}}}

`lines_hash` binds a response to the exact content that was sent; a response
that echoes a different hash or doc id is discarded as a whole.
"""
from __future__ import annotations

import hashlib
import json
import logging
import uuid
from typing import Any, Dict, NamedTuple, Optional

from pydantic import BaseModel, ValidationError

from .document import evaluate_document, split_lines
from .evaluator import is_finite_number
from .models import AiRewrite, DocumentEvaluation

logger = logging.getLogger(__name__)


class RequestMeta(BaseModel):
    doc_id: str
    lines_hash: str


class VariableBinding(BaseModel):
    line: int
    value: float


class RewriteRequest(BaseModel):
    meta: RequestMeta
    lines: Dict[str, str]
    variables: Dict[str, VariableBinding]

    def payload(self) -> Dict[str, Any]:
        return self.model_dump()


class RewriteResponse(BaseModel):
    meta: RequestMeta
    results: Dict[str, Any]


class ResponseCheck(NamedTuple):
    valid: bool
    reason: Optional[str] = None
    rewrites: Optional[Dict[int, AiRewrite]] = None


def compute_fingerprint(obj: Any) -> str:
    """First 16 hex chars of SHA-256 over key-sorted compact JSON."""
    blob = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()[:16]


def collect_lines(text: str) -> Dict[str, str]:
    return {str(i): line for i, line in enumerate(split_lines(text)) if line.strip()}


def collect_variables(evaluation: DocumentEvaluation) -> Dict[str, Dict[str, Any]]:
    # Only names the local evaluator actually bound; never guessed values.
    out: Dict[str, Dict[str, Any]] = {}
    for name, value in evaluation.scope.friendly.items():
        line = evaluation.scope.lines.get(name)
        if line is None or not is_finite_number(value):
            continue
        out[name] = {"line": line, "value": value}
    return out


def content_fingerprint(text: str, evaluation: Optional[DocumentEvaluation] = None) -> str:
    evaluation = evaluation or evaluate_document(text)
    return compute_fingerprint({"lines": collect_lines(text), "variables": collect_variables(evaluation)})


def build_request(
    text: str,
    evaluation: Optional[DocumentEvaluation] = None,
    doc_id: Optional[str] = None,
) -> RewriteRequest:
    evaluation = evaluation or evaluate_document(text)
    lines = collect_lines(text)
    variables = collect_variables(evaluation)
    return RewriteRequest(
        meta=RequestMeta(
            doc_id=doc_id or str(uuid.uuid4()),
            lines_hash=compute_fingerprint({"lines": lines, "variables": variables}),
        ),
        lines=lines,
        variables=variables,
    )


def parse_rewrites(results: Any) -> Dict[int, AiRewrite]:
    """
    Per-entry parsing of a `results` object. Entries with a non-integer key
    or a malformed body are dropped individually.
    """
    out: Dict[int, AiRewrite] = {}
    if not isinstance(results, dict):
        return out
    for key, body in results.items():
        if not str(key).strip().isdigit() or not isinstance(body, dict):
            continue
        try:
            out[int(str(key).strip())] = AiRewrite.model_validate(body)
        except ValidationError as e:
            logger.debug("dropping malformed rewrite for line %s: %s", key, e)
    return out


def validate_response(payload: Any, doc_id: str, lines_hash: str) -> ResponseCheck:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return ResponseCheck(False, f"Response is not valid JSON: {e}")

    if not isinstance(payload, dict):
        return ResponseCheck(False, "Response is not a valid JSON object")
    meta = payload.get("meta")
    if not isinstance(meta, dict):
        return ResponseCheck(False, 'Missing "meta" field in response')
    if meta.get("doc_id") != doc_id:
        return ResponseCheck(False, f"ID Mismatch: Request {doc_id} != Response {meta.get('doc_id')}")
    if meta.get("lines_hash") != lines_hash:
        return ResponseCheck(
            False,
            f"Hash Mismatch: Content changed. Req: {lines_hash}, Res: {meta.get('lines_hash')}",
        )
    results = payload.get("results")
    if not isinstance(results, dict):
        return ResponseCheck(False, 'Missing or invalid "results" object')

    try:
        RewriteResponse.model_validate(payload)
    except ValidationError as e:
        return ResponseCheck(False, f"Schema violation: {e.error_count()} errors")

    return ResponseCheck(True, None, parse_rewrites(results))
