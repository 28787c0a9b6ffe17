from __future__ import annotations

import importlib.resources
import json
import re
from pathlib import Path
from typing import Any, Dict, Optional


SYSTEM_FILE = "rewriter_system.txt"


def _load_resource(filename: str) -> str:
    """
    Loads a text file from rewriter_prompts/resources.
    Tries relative path first (robust for editable/dev), then importlib (installed).
    """
    local_path = Path(__file__).parent / "resources" / filename
    if local_path.exists():
        return local_path.read_text(encoding="utf-8")

    target = importlib.resources.files("rewriter_prompts") / "resources" / filename
    if target.is_file():
        return target.read_text(encoding="utf-8")

    raise FileNotFoundError(f"Resource not found: {filename}")


def get_system_prompt(extra: Optional[str] = None) -> str:
    prompt = _load_resource(SYSTEM_FILE).strip()
    if extra:
        prompt += f"\n\n--- EXTRA INSTRUCTIONS ---\n{extra.strip()}"
    return prompt


def render_user_message(request: Dict[str, Any]) -> str:
    """The request object goes to the model verbatim as compact JSON."""
    return json.dumps(request, ensure_ascii=False, separators=(",", ":"))


_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def extract_json_payload(text: str) -> Optional[str]:
    """
    Pull the JSON object out of a chat completion.

    Small local models often wrap the answer in a ```json fence or add a
    sentence before it; returns the outermost {...} block, or None.
    """
    if not text:
        return None
    m = _FENCE_RE.search(text)
    candidate = m.group(1) if m else text
    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end <= start:
        return None
    return candidate[start:end + 1].strip()
