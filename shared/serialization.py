from __future__ import annotations

import json
from collections.abc import Mapping
from enum import Enum
from typing import Any
from urllib.parse import urlencode

from pydantic import BaseModel


def canonical_json_bytes(value: BaseModel | dict[str, Any] | list[Any]) -> bytes:
    if isinstance(value, BaseModel):
        payload: Any = value.model_dump(mode="json", by_alias=True, exclude_none=True)
    else:
        payload = value
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return encoded.encode("utf-8")


def _filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def build_filter_key(filters: Mapping[str, Any] | None) -> str:
    """Return the canonical query string for ``filters``.

    None and empty values are dropped and keys are sorted, so equal filter
    sets always produce the same key. The key doubles as the query string.
    """
    if not filters:
        return ""
    pairs: list[tuple[str, str]] = []
    for key in sorted(filters):
        value = filters[key]
        if value is None:
            continue
        text = _filter_value(value)
        if not text:
            continue
        pairs.append((key, text))
    return urlencode(pairs)
