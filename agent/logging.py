from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from agent.config import ClientConfig
from shared.http import HEADER_API_KEY

REDACTED = "[REDACTED]"

_SECRET_FIELDS = ("api_key", "apikey", HEADER_API_KEY, "authorization")
_URL_FIELDS = frozenset({"base_url", "collector", "url"})
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_handler: logging.Handler | None = None


def _is_secret(key: str) -> bool:
    lowered = key.lower()
    return any(secret in lowered for secret in _SECRET_FIELDS)


def public_url(url: str) -> str:
    """Drop credentials and the query string from a collector URL."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, host, parts.path, "", ""))


def redact(key: str, value: Any) -> Any:
    if _is_secret(key):
        return REDACTED
    if key in _URL_FIELDS and isinstance(value, str):
        return public_url(value)
    if isinstance(value, Mapping):
        return {str(k): redact(str(k), v) for k, v in value.items()}
    return value


class ClientContextFilter(logging.Filter):
    """Tag records with the client's identity and mask its api key in messages."""

    def __init__(self, config: ClientConfig) -> None:
        super().__init__()
        self.api_key = config.api_key
        self.context = {
            "app_name": config.app_name,
            "environment": config.environment,
            "collector": public_url(config.base_url),
        }

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.context.items():
            if value is not None and not hasattr(record, key):
                setattr(record, key, value)
        message = record.getMessage()
        if self.api_key and self.api_key in message:
            record.msg = message.replace(self.api_key, REDACTED)
            record.args = None
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in _RECORD_ATTRS:
                continue
            payload[key] = redact(key, value)
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_logging(verbose: bool = False) -> None:
    global _handler
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    level = logging.DEBUG if verbose else logging.INFO
    handler = logging.StreamHandler()

    if os.getenv("OML_LOG_FORMAT", "json").lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    root.setLevel(level)
    root.addHandler(handler)
    # request lines carry the api key header at debug level
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    _handler = handler


def bind_client_context(config: ClientConfig) -> None:
    """Attach ``config``'s identity to records on the handler set up by ``configure_logging``."""
    if _handler is None:
        return
    for existing in list(_handler.filters):
        if isinstance(existing, ClientContextFilter):
            _handler.removeFilter(existing)
    _handler.addFilter(ClientContextFilter(config))
