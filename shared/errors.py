from __future__ import annotations


class OmlError(Exception):
    """Base class for client errors."""


class TransportError(OmlError):
    """Raised when a batch could not be delivered to the collector."""


class QueryError(OmlError):
    """Raised when a log query returns a non-success response."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class StreamParseError(OmlError, ValueError):
    """Raised when a live stream message cannot be decoded."""


class StreamConnectionError(OmlError):
    """Raised when the live stream connection fails."""
