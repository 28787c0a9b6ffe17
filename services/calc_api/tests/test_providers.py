import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from services.calc_api.providers import LlamaCppProvider, MockProvider, ProviderError


def test_mock_provider_echoes_meta():
    user = json.dumps({"meta": {"doc_id": "d1", "lines_hash": "h1"}, "lines": {"0": "a", "2": "b"}, "variables": {}})
    out = json.loads(asyncio.run(MockProvider().complete("system", user)))
    assert out["meta"] == {"doc_id": "d1", "lines_hash": "h1"}
    assert set(out["results"]) == {"0", "2"}
    assert all(r["kind"] == "ignore" for r in out["results"].values())


def _response(status_code, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = body
    return resp


def test_llamacpp_completion():
    body = {"choices": [{"message": {"content": '{"meta": {}}'}}]}
    provider = LlamaCppProvider("http://llm:8080/", "qwen", temperature=0.1, timeout=2)
    with patch("services.calc_api.providers.requests.post", return_value=_response(200, body)) as post:
        assert asyncio.run(provider.complete("sys", "user")) == '{"meta": {}}'

    url = post.call_args.args[0]
    payload = post.call_args.kwargs["json"]
    assert url == "http://llm:8080/v1/chat/completions"
    assert payload["model"] == "qwen"
    assert payload["temperature"] == 0.1
    assert [m["role"] for m in payload["messages"]] == ["system", "user"]


def test_llamacpp_http_error():
    provider = LlamaCppProvider("http://llm:8080", "qwen")
    with patch("services.calc_api.providers.requests.post", return_value=_response(503)):
        with pytest.raises(ProviderError, match="HTTP 503"):
            asyncio.run(provider.complete("sys", "user"))


def test_llamacpp_unreachable():
    provider = LlamaCppProvider("http://llm:8080", "qwen")
    with patch("services.calc_api.providers.requests.post", side_effect=requests.ConnectionError("refused")):
        with pytest.raises(ProviderError):
            asyncio.run(provider.complete("sys", "user"))


def test_llamacpp_health():
    provider = LlamaCppProvider("http://llm:8080", "qwen")
    with patch("services.calc_api.providers.requests.get", return_value=MagicMock(ok=True)):
        assert asyncio.run(provider.health()) is True
    with patch("services.calc_api.providers.requests.get", side_effect=requests.ConnectionError("refused")):
        assert asyncio.run(provider.health()) is False
