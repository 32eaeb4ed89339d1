"""Shared schemas and helpers for the oneminutelogs client."""

from shared.enums import AuthStatus, Importance, LogType, Subsystem, UserRole
from shared.errors import OmlError, QueryError, StreamConnectionError, StreamParseError, TransportError
from shared.schemas import IngestRequest, LogEvent, LogMetrics, LogSecurity, LogTimestamps, LogTrack

__all__ = [
    "LogEvent",
    "LogTrack",
    "LogSecurity",
    "LogMetrics",
    "LogTimestamps",
    "IngestRequest",
    "LogType",
    "Importance",
    "Subsystem",
    "UserRole",
    "AuthStatus",
    "OmlError",
    "TransportError",
    "QueryError",
    "StreamParseError",
    "StreamConnectionError",
]
