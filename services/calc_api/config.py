import logging
import os
from typing import Any, Callable, Dict, NamedTuple, Optional

import yaml

logger = logging.getLogger(__name__)


class Settings(NamedTuple):
    provider: str
    llm_url: str
    llm_model: str
    llm_temperature: float
    llm_timeout: float
    local_debounce_ms: int
    ai_debounce_ms: int
    max_iterations: int
    max_logs: int
    trace_path: Optional[str]


DEFAULTS: Dict[str, Any] = {
    "provider": "mock",
    "llm_url": "http://localhost:8080",
    "llm_model": "qwen2.5-7b-instruct-q4_k_m.gguf",
    "llm_temperature": 0.1,
    "llm_timeout": 30.0,
    "local_debounce_ms": 100,
    "ai_debounce_ms": 800,
    "max_iterations": 5,
    "max_logs": 100,
    "trace_path": None,
}

ENV_VARS = {
    "provider": "NEOCALC_PROVIDER",
    "llm_url": "NEOCALC_LLM_URL",
    "llm_model": "NEOCALC_LLM_MODEL",
    "llm_temperature": "NEOCALC_LLM_TEMPERATURE",
    "llm_timeout": "NEOCALC_LLM_TIMEOUT",
    "local_debounce_ms": "NEOCALC_LOCAL_DEBOUNCE_MS",
    "ai_debounce_ms": "NEOCALC_AI_DEBOUNCE_MS",
    "max_iterations": "NEOCALC_MAX_ITERATIONS",
    "max_logs": "NEOCALC_MAX_LOGS",
    "trace_path": "NEOCALC_TRACE_PATH",
}


def load_config_file(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Optional YAML overrides. The path comes from NEOCALC_CONFIG when not
    given; a missing or malformed file is ignored with a warning.
    """
    path = path or os.getenv("NEOCALC_CONFIG")
    if not path:
        return {}
    if not os.path.exists(path):
        logger.warning(f"Config file {path} not found. Using defaults.")
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        logger.warning(f"Config file {path} is not a mapping. Using defaults.")
        return {}
    return data


def _coerce(name: str, value: Any, cast: Callable[[Any], Any]) -> Any:
    try:
        return cast(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value {value!r} for {name}; using default {DEFAULTS[name]!r}")
        return DEFAULTS[name]


def get_settings(config_path: Optional[str] = None) -> Settings:
    """
    Defaults, then the YAML file, then environment variables.
    Numeric values that fail to parse fall back to their defaults.
    """
    raw = dict(DEFAULTS)
    for key, value in load_config_file(config_path).items():
        if key in raw:
            raw[key] = value
    for key, env in ENV_VARS.items():
        value = os.getenv(env)
        if value not in (None, ""):
            raw[key] = value

    return Settings(
        provider=str(raw["provider"]).strip().lower(),
        llm_url=str(raw["llm_url"]).rstrip("/"),
        llm_model=str(raw["llm_model"]),
        llm_temperature=_coerce("llm_temperature", raw["llm_temperature"], float),
        llm_timeout=_coerce("llm_timeout", raw["llm_timeout"], float),
        local_debounce_ms=max(0, _coerce("local_debounce_ms", raw["local_debounce_ms"], int)),
        ai_debounce_ms=max(0, _coerce("ai_debounce_ms", raw["ai_debounce_ms"], int)),
        max_iterations=max(1, _coerce("max_iterations", raw["max_iterations"], int)),
        max_logs=max(1, _coerce("max_logs", raw["max_logs"], int)),
        trace_path=str(raw["trace_path"]) if raw["trace_path"] else None,
    )
