from __future__ import annotations

import logging
import time
from typing import Any, Dict, Mapping, NamedTuple, Optional

from calc_engine import (
    AiRewrite,
    DocumentEvaluation,
    LineResult,
    ResponseCheck,
    RewriteRequest,
    build_request,
    evaluate_document,
    reconcile,
    validate_response,
)
from rewriter_prompts import extract_json_payload, get_system_prompt, render_user_message

from .config import Settings, get_settings
from .providers import ProviderError, RewriteProvider
from .trace_store import TraceStore

logger = logging.getLogger(__name__)

STATUS_UNKNOWN = "unknown"
STATUS_CONNECTING = "connecting"
STATUS_CONNECTED = "connected"
STATUS_ERROR = "error"


class RoundResult(NamedTuple):
    results: Dict[int, LineResult]
    rewrites: Dict[int, AiRewrite]
    status: str
    accepted: bool
    reason: Optional[str]
    request: RewriteRequest
    elapsed_ms: int


def decode_payload(raw: Any) -> Any:
    """Model output may arrive fenced or with chatter around the JSON object."""
    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        return extract_json_payload(text) or text
    return raw


class RewriteWorkflow:
    def __init__(
        self,
        provider: RewriteProvider,
        settings: Optional[Settings] = None,
        trace_store: Optional[TraceStore] = None,
    ):
        self.provider = provider
        self.settings = settings or get_settings()
        self.trace_store = trace_store
        self.system_prompt = get_system_prompt()

    async def request_rewrites(self, request: RewriteRequest) -> str:
        """One provider round-trip; raises ProviderError on transport failure."""
        return await self.provider.complete(self.system_prompt, render_user_message(request.payload()))

    def check(self, request: RewriteRequest, raw: Any) -> ResponseCheck:
        return validate_response(decode_payload(raw), request.meta.doc_id, request.meta.lines_hash)

    def reconcile(
        self,
        text: str,
        evaluation: DocumentEvaluation,
        rewrites: Mapping[int, AiRewrite],
    ) -> Dict[int, LineResult]:
        return reconcile(text, evaluation.results, evaluation.scope, rewrites, self.settings.max_iterations)

    def trace(self, request: RewriteRequest, **fields: Any) -> None:
        if self.trace_store is None:
            return
        record = {"doc_id": request.meta.doc_id, "lines_hash": request.meta.lines_hash}
        record.update(fields)
        try:
            self.trace_store.append(record)
        except OSError as e:
            logger.warning(f"Could not write trace record: {e}")

    async def run(
        self,
        text: str,
        doc_id: Optional[str] = None,
        ai_rewrites: Optional[Mapping[int, AiRewrite]] = None,
    ) -> RoundResult:
        """
        Local evaluation, one rewrite round, validation and reconciliation.

        A transport failure or a rejected response never changes the outcome
        beyond the status: the previously known rewrites are reconciled instead.
        """
        evaluation = evaluate_document(text)
        request = build_request(text, evaluation, doc_id=doc_id)
        previous = dict(ai_rewrites or {})
        start = time.monotonic()

        try:
            raw = await self.request_rewrites(request)
        except ProviderError as e:
            logger.error(f"Rewrite request failed: {e}")
            return self._finish(text, evaluation, request, previous, STATUS_ERROR, False, str(e), start)

        check = self.check(request, raw)
        if not check.valid:
            logger.warning(f"AI response rejected: {check.reason}")
            return self._finish(text, evaluation, request, previous, STATUS_CONNECTED, False, check.reason, start)

        return self._finish(text, evaluation, request, check.rewrites, STATUS_CONNECTED, True, None, start)

    def _finish(
        self,
        text: str,
        evaluation: DocumentEvaluation,
        request: RewriteRequest,
        rewrites: Dict[int, AiRewrite],
        status: str,
        accepted: bool,
        reason: Optional[str],
        start: float,
    ) -> RoundResult:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        results = self.reconcile(text, evaluation, rewrites)
        self.trace(
            request,
            status=status,
            accepted=accepted,
            reason=reason,
            elapsed_ms=elapsed_ms,
            lines=len(request.lines),
            rewrites=len(rewrites),
        )
        return RoundResult(results, rewrites, status, accepted, reason, request, elapsed_ms)
