import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from .config import Settings, get_settings

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Transport-level failure talking to the rewrite model."""


class RewriteProvider(ABC):
    @abstractmethod
    async def complete(self, system: str, user: str) -> str:
        """Returns the raw assistant message for one rewrite round."""
        pass

    async def health(self) -> bool:
        return True


class MockProvider(RewriteProvider):
    """Offline stand-in: echoes the binding meta and marks every line `ignore`."""

    async def complete(self, system: str, user: str) -> str:
        try:
            request = json.loads(user)
        except json.JSONDecodeError:
            request = {}
        lines = request.get("lines") or {}
        results = {
            idx: {"kind": "ignore", "rhs": "", "explanation": "", "confidence": 1.0}
            for idx in lines
        }
        return json.dumps({"meta": request.get("meta", {}), "results": results})


class LlamaCppProvider(RewriteProvider):
    """OpenAI-compatible chat completion endpoint, as served by llama.cpp."""

    def __init__(self, base_url: str, model: str, temperature: float = 0.1, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.timeout = timeout

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = requests.post(
                f"{self.base_url}/v1/chat/completions",
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderError(f"LLM request failed: {e}") from e
        if resp.status_code != 200:
            raise ProviderError(f"HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError("LLM returned a non-JSON body") from e

    async def complete(self, system: str, user: str) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self.temperature,
        }
        # requests is blocking; keep it off the event loop
        data = await asyncio.to_thread(self._post, payload)
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("Unexpected completion shape") from e

    def _check_health(self) -> bool:
        try:
            return requests.get(f"{self.base_url}/health", timeout=min(self.timeout, 5.0)).ok
        except requests.RequestException:
            return False

    async def health(self) -> bool:
        return await asyncio.to_thread(self._check_health)


def get_provider(settings: Optional[Settings] = None) -> RewriteProvider:
    settings = settings or get_settings()
    if settings.provider == "llamacpp":
        return LlamaCppProvider(
            settings.llm_url,
            settings.llm_model,
            temperature=settings.llm_temperature,
            timeout=settings.llm_timeout,
        )
    if settings.provider != "mock":
        logger.warning(f"Unknown provider {settings.provider!r}; falling back to mock")
    return MockProvider()
