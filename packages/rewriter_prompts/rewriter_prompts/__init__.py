from .core import (
    extract_json_payload,
    get_system_prompt,
    render_user_message,
)

__all__ = [
    "get_system_prompt",
    "render_user_message",
    "extract_json_payload",
]
