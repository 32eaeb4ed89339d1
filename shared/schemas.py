from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shared.constants import MAX_MESSAGE_LEN
from shared.enums import AuthStatus, Importance, LogType, Subsystem, UserRole
from shared.sanitization import sanitize_json, sanitize_text


class LogTrack(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    user_id: str | None = None
    role: UserRole | None = None
    ip: str | None = None
    user_agent: str | None = None
    geo: str | None = None


class _OpenRecord(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def sanitize_extra(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return sanitize_json(value)
        return value


class LogSecurity(_OpenRecord):
    auth_status: AuthStatus | None = None


class LogMetrics(_OpenRecord):
    latency_ms: float | None = None


class LogTimestamps(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    event_time: str
    ingest_time: str | None = None


class LogEvent(BaseModel):
    """One structured log record as sent to the collector.

    Instances are frozen; the buffer stamps ``ingested_at`` on a copy.
    Unknown keys are dropped.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    type: LogType = LogType.INFO
    message: str
    importance: Importance | None = None
    subsystem: Subsystem | None = None
    operation: str | None = None
    service: str | None = None
    track: LogTrack | None = None
    security: LogSecurity | None = None
    metrics: LogMetrics | None = None
    timestamps: LogTimestamps | None = None
    app_name: str | None = Field(default=None, alias="appName")
    environment: str | None = None
    ingested_at: int | None = None

    @field_validator("message", mode="before")
    @classmethod
    def sanitize_message(cls, value: Any) -> str:
        return sanitize_text("" if value is None else value, max_len=MAX_MESSAGE_LEN)

    @field_validator("operation", "service", "app_name", "environment")
    @classmethod
    def sanitize_scalar(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return sanitize_text(value) or None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class IngestRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    logs: list[LogEvent] = Field(min_length=1)
