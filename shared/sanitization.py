from __future__ import annotations

import re
from typing import Any

from shared.constants import MAX_STRING_LEN

_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_text(value: Any, max_len: int = MAX_STRING_LEN) -> str:
    text = _CONTROL_RE.sub("", str(value))
    if len(text) > max_len:
        return text[:max_len]
    return text


def sanitize_json(value: Any) -> Any:
    if isinstance(value, dict):
        return {sanitize_text(key): sanitize_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_json(item) for item in value]
    if isinstance(value, str):
        return sanitize_text(value)
    if isinstance(value, bytes):
        return sanitize_text(value.decode("utf-8", errors="replace"))
    if isinstance(value, (int, float, bool)) or value is None:
        return value
    return sanitize_text(value)
