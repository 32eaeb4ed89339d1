from __future__ import annotations

import logging
import os
import stat
import tomllib
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.constants import (
    DEFAULT_FLUSH_INTERVAL_SECONDS,
    DEFAULT_STREAM_RETRY_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    MAX_STREAM_RECORDS,
)

logger = logging.getLogger("oml_agent.config")

_LOCAL_HOSTS = {"127.0.0.1", "localhost", "::1"}


class ClientConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    api_key: str
    base_url: str = "http://127.0.0.1:8080"
    app_name: str | None = None
    environment: str | None = None
    flush_interval_seconds: float = Field(default=DEFAULT_FLUSH_INTERVAL_SECONDS, ge=0.01, le=60)
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, ge=1, le=120)
    stream_retry_seconds: float = Field(default=DEFAULT_STREAM_RETRY_SECONDS, ge=0, le=300)
    max_stream_records: int = Field(default=MAX_STREAM_RECORDS, ge=1, le=MAX_STREAM_RECORDS)

    @field_validator("api_key", "base_url")
    @classmethod
    def validate_non_empty(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("field cannot be empty")
        return cleaned

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("app_name", "environment")
    @classmethod
    def empty_as_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


def default_client_dir() -> Path:
    if os.name == "nt":
        appdata = os.getenv("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
        return base / "oneminutelogs"
    return Path.home() / ".oneminutelogs"


def default_config_path() -> Path:
    return default_client_dir() / "config.toml"


def _secure_path(path: Path, mode: int) -> None:
    if os.name == "nt":
        return
    path.chmod(mode)
    actual = stat.S_IMODE(path.stat().st_mode)
    if actual != mode:
        raise PermissionError(f"unable to set permissions {oct(mode)} for {path}")


def default_config_text() -> str:
    return (
        'api_key = ""\n'
        'base_url = "http://127.0.0.1:8080"\n'
        'app_name = "default"\n'
        "# environment falls back to OML_ENV, then \"development\"\n"
        f"flush_interval_seconds = {DEFAULT_FLUSH_INTERVAL_SECONDS}\n"
        f"timeout_seconds = {DEFAULT_TIMEOUT_SECONDS}\n"
        f"stream_retry_seconds = {DEFAULT_STREAM_RETRY_SECONDS}\n"
        f"max_stream_records = {MAX_STREAM_RECORDS}\n"
    )


def init_config(config_path: Path | None = None) -> Path:
    path = (config_path or default_config_path()).expanduser().resolve(strict=False)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        _secure_path(path, 0o600)
        return path
    path.write_text(default_config_text(), encoding="utf-8")
    _secure_path(path, 0o600)
    return path


def apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Merge environment variables into raw config values.

    OML_API_KEY and OML_BASE_URL replace file values. OML_APP_NAME and
    OML_ENV only fill values the file leaves empty.
    """
    merged = dict(raw)
    for env_name, key in (("OML_API_KEY", "api_key"), ("OML_BASE_URL", "base_url")):
        value = os.getenv(env_name)
        if value:
            merged[key] = value
    for env_name, key in (("OML_APP_NAME", "app_name"), ("OML_ENV", "environment")):
        value = os.getenv(env_name)
        if value and not merged.get(key):
            merged[key] = value
    return merged


def load_config(config_path: Path | None = None) -> ClientConfig:
    path = init_config(config_path)
    with path.open("rb") as handle:
        raw: dict[str, Any] = tomllib.load(handle)

    raw = apply_env_overrides(raw)
    if not str(raw.get("api_key") or "").strip():
        raise ValueError("api_key is required; set api_key in config.toml or OML_API_KEY")

    config = ClientConfig.model_validate(raw)
    parsed = urlparse(config.base_url)
    if parsed.scheme == "http" and parsed.hostname not in _LOCAL_HOSTS:
        logger.warning(
            "base_url uses plain HTTP; the api key is sent unencrypted",
            extra={"base_url": config.base_url},
        )
    return config
