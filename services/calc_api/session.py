"""
Live editing session for one document.

Every text change reschedules two independent debounce timers:
  local  (~100ms) re-runs local evaluation and reconciliation, synchronously
  ai     (~800ms) starts a rewrite round against the model

Only the most recent scheduling of each timer fires. A round that is already
in flight is not cancelled; when its response arrives it is applied only if
the request fingerprint still matches the live text.
"""
from __future__ import annotations

import asyncio
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Set

from calc_engine import AiRewrite, LineResult, RewriteRequest, build_request, content_fingerprint, reconcile_text

from .config import Settings
from .providers import ProviderError
from .workflow import STATUS_CONNECTED, STATUS_CONNECTING, STATUS_ERROR, STATUS_UNKNOWN, RewriteWorkflow

logger = logging.getLogger(__name__)


class DocumentSession:
    def __init__(
        self,
        workflow: RewriteWorkflow,
        settings: Optional[Settings] = None,
        text: str = "",
        ai_rewrites: Optional[Mapping[int, AiRewrite]] = None,
        on_change: Optional[Callable[[Mapping[int, LineResult]], None]] = None,
    ):
        self.workflow = workflow
        self.settings = settings or workflow.settings
        self.on_change = on_change
        self.last_reason: Optional[str] = None

        self._text = text
        self._ai_rewrites: Dict[int, AiRewrite] = dict(ai_rewrites or {})
        self._results: Mapping[int, LineResult] = MappingProxyType({})
        self._status = STATUS_UNKNOWN
        self._local_timer: Optional[asyncio.Task] = None
        self._ai_timer: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self.refresh()

    @property
    def text(self) -> str:
        return self._text

    @property
    def status(self) -> str:
        return self._status

    @property
    def results(self) -> Mapping[int, LineResult]:
        """Read-only snapshot; replaced as a whole on every run."""
        return self._results

    @property
    def ai_rewrites(self) -> Mapping[int, AiRewrite]:
        return MappingProxyType(self._ai_rewrites)

    # -- local path -----------------------------------------------------

    def refresh(self) -> Mapping[int, LineResult]:
        results = reconcile_text(self._text, self._ai_rewrites, self.settings.max_iterations)
        self._results = MappingProxyType(results)
        if self.on_change is not None:
            self.on_change(self._results)
        return self._results

    # -- scheduling -----------------------------------------------------

    def update_text(self, text: str) -> None:
        self._text = text
        self._local_timer = self._reschedule(self._local_timer, self.settings.local_debounce_ms, self.refresh)
        self._ai_timer = self._reschedule(self._ai_timer, self.settings.ai_debounce_ms, self._start_round)

    def _reschedule(self, timer: Optional[asyncio.Task], delay_ms: int, fire: Callable[[], Any]) -> asyncio.Task:
        if timer is not None and not timer.done():
            timer.cancel()
        return asyncio.get_running_loop().create_task(self._debounce(delay_ms / 1000.0, fire))

    async def _debounce(self, delay: float, fire: Callable[[], Any]) -> None:
        await asyncio.sleep(delay)
        fire()

    def _start_round(self) -> None:
        task = asyncio.get_running_loop().create_task(self.analyze())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    # -- ai path --------------------------------------------------------

    async def analyze(self) -> bool:
        """Run one rewrite round for the text as it is now."""
        request = build_request(self._text)
        self._status = STATUS_CONNECTING
        try:
            raw = await self.workflow.request_rewrites(request)
        except ProviderError as e:
            self._status = STATUS_ERROR
            self.last_reason = str(e)
            logger.error(f"Rewrite request failed: {e}")
            self.workflow.trace(request, status=STATUS_ERROR, accepted=False, reason=str(e))
            return False
        self._status = STATUS_CONNECTED
        return self.apply_response(request, raw)

    def apply_response(self, request: RewriteRequest, payload: Any) -> bool:
        """
        Apply a response to `request` if it still describes the live text.
        Rejected responses leave results and the known rewrites untouched.
        """
        live_hash = content_fingerprint(self._text)
        if live_hash != request.meta.lines_hash:
            self.last_reason = (
                f"Stale response: document changed. Req: {request.meta.lines_hash}, Live: {live_hash}"
            )
            logger.info(self.last_reason)
            self.workflow.trace(request, status=self._status, accepted=False, reason=self.last_reason)
            return False

        check = self.workflow.check(request, payload)
        if not check.valid:
            self.last_reason = check.reason
            logger.warning(f"AI response rejected: {check.reason}")
            self.workflow.trace(request, status=self._status, accepted=False, reason=check.reason)
            return False

        self.last_reason = None
        self._ai_rewrites = dict(check.rewrites)
        self.refresh()
        self.workflow.trace(request, status=self._status, accepted=True, rewrites=len(check.rewrites))
        return True

    # -- lifecycle ------------------------------------------------------

    def _pending(self) -> list:
        tasks = [self._local_timer, self._ai_timer, *self._inflight]
        return [t for t in tasks if t is not None and not t.done()]

    async def drain(self) -> None:
        """Wait until no timer is pending and no round is in flight."""
        while True:
            pending = self._pending()
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        for task in self._pending():
            task.cancel()
        await asyncio.gather(*self._pending(), return_exceptions=True)
