from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections import deque
from collections.abc import AsyncIterator, Callable, Iterable, Iterator, Mapping
from contextlib import aclosing
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from shared.constants import DEFAULT_APP_NAME, DEFAULT_STREAM_RETRY_SECONDS, MAX_STREAM_RECORDS
from shared.enums import LogType
from shared.errors import StreamConnectionError, StreamParseError
from shared.serialization import build_filter_key

logger = logging.getLogger("oml_reader.stream")


@dataclass(frozen=True, slots=True)
class StreamRecord:
    id: str
    ts: str
    level: LogType
    source: str
    message: str
    payload: dict[str, Any]


@dataclass(frozen=True, slots=True)
class InitialBatch:
    records: list[StreamRecord]


@dataclass(frozen=True, slots=True)
class Incremental:
    records: list[StreamRecord]


StreamMessage = InitialBatch | Incremental


def normalize_level(raw: Any) -> LogType:
    try:
        return LogType(str(raw or "info").lower())
    except ValueError:
        return LogType.INFO


def normalize_timestamp(value: Any) -> str:
    """Return ``value`` as an ISO-8601 UTC string with millisecond precision.

    Numbers are epoch seconds. Strings such as ``2024-01-02 03:04:05`` carry
    no offset and are read as UTC.
    """
    if isinstance(value, bool):
        raise StreamParseError(f"invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        try:
            moment = datetime.fromtimestamp(value, UTC)
        except (OverflowError, OSError, ValueError) as exc:
            raise StreamParseError(f"invalid timestamp: {value!r}") from exc
    elif isinstance(value, str) and value.strip():
        try:
            moment = datetime.fromisoformat(value.strip().replace(" ", "T", 1))
        except ValueError as exc:
            raise StreamParseError(f"invalid timestamp: {value!r}") from exc
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
    else:
        raise StreamParseError("record has no timestamp")
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_stream_record(raw: Any) -> StreamRecord:
    if not isinstance(raw, dict):
        raise StreamParseError(f"stream record must be an object, got {type(raw).__name__}")
    message = raw.get("message")
    return StreamRecord(
        id=str(uuid.uuid4()),
        ts=normalize_timestamp(raw.get("timestamp")),
        level=normalize_level(raw.get("type")),
        source=str(raw.get("appName") or DEFAULT_APP_NAME),
        message="" if message is None else str(message),
        payload=dict(raw),
    )


def _from_records(raw_records: Iterable[Any]) -> list[StreamRecord]:
    return [to_stream_record(raw) for raw in raw_records]


def _from_initial(envelope: dict[str, Any]) -> InitialBatch:
    logs = envelope.get("logs")
    return InitialBatch(_from_records(logs) if isinstance(logs, list) else [])


def _from_envelope(envelope: dict[str, Any]) -> Incremental:
    return Incremental(_from_records(envelope["logs"]))


def _from_array(items: list[Any]) -> Incremental:
    return Incremental(_from_records(items))


def _from_single(record: dict[str, Any]) -> Incremental:
    return Incremental([to_stream_record(record)])


def decode_message(text: str | bytes) -> StreamMessage:
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise StreamParseError(f"invalid stream message: {exc}") from exc

    if isinstance(payload, list):
        return _from_array(payload)
    if isinstance(payload, dict):
        if payload.get("type") == "initial":
            return _from_initial(payload)
        if isinstance(payload.get("logs"), list):
            return _from_envelope(payload)
        if "keyId" in payload or "message" in payload:
            return _from_single(payload)
    return Incremental([])


class StreamWindow:
    """Arrival-ordered records, capped with oldest-first eviction."""

    def __init__(self, max_records: int = MAX_STREAM_RECORDS) -> None:
        if max_records < 1:
            raise ValueError(f"max_records must be >= 1, got {max_records}")
        self._records: deque[StreamRecord] = deque(maxlen=max_records)
        self._evicted = 0

    @property
    def max_records(self) -> int:
        return self._records.maxlen or MAX_STREAM_RECORDS

    @property
    def evicted(self) -> int:
        return self._evicted

    def replace(self, records: list[StreamRecord]) -> None:
        self._evicted += max(0, len(records) - self.max_records)
        self._records = deque(records, maxlen=self.max_records)

    def extend(self, records: list[StreamRecord]) -> None:
        self._evicted += max(0, len(self._records) + len(records) - self.max_records)
        self._records.extend(records)

    def apply(self, message: StreamMessage) -> None:
        if isinstance(message, InitialBatch):
            self.replace(message.records)
        else:
            self.extend(message.records)

    def snapshot(self) -> list[StreamRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[StreamRecord]:
        return iter(self._records)


class EventSource(Protocol):
    def iter_events(self, filters: Mapping[str, Any] | None = None) -> AsyncIterator[str]: ...


class LiveStream:
    """Normalized live subscription.

    Exposes ``data``, ``is_loading``, ``error`` and ``connected``. Connection
    failures and bad messages are recorded in ``error``; the subscription
    keeps its window and reconnects until ``disconnect`` is called.
    """

    def __init__(
        self,
        client: EventSource,
        filters: Mapping[str, Any] | None = None,
        *,
        max_records: int = MAX_STREAM_RECORDS,
        retry_seconds: float = DEFAULT_STREAM_RETRY_SECONDS,
        on_update: Callable[[list[StreamRecord]], None] | None = None,
    ) -> None:
        self.client = client
        self.filters: dict[str, Any] = dict(filters or {})
        self.window = StreamWindow(max_records)
        self.retry_seconds = retry_seconds
        self.on_update = on_update
        self.is_loading = True
        self.error: Exception | None = None
        self.connected = False
        self._task: asyncio.Task[None] | None = None
        self._reconnecting = False

    @property
    def data(self) -> list[StreamRecord]:
        return self.window.snapshot()

    def handle_message(self, text: str | bytes) -> bool:
        try:
            message = decode_message(text)
        except StreamParseError as exc:
            logger.error("failed to parse stream message: %s", exc)
            self.error = exc
            self.is_loading = False
            return False
        self.window.apply(message)
        self.is_loading = False
        if self._reconnecting:
            self._reconnecting = False
            self.error = None
        if self.on_update is not None:
            try:
                self.on_update(self.window.snapshot())
            except Exception as exc:
                logger.exception("on_update callback failed")
                self.error = exc
        return True

    async def _run(self, filters: dict[str, Any]) -> None:
        while True:
            try:
                async with aclosing(self.client.iter_events(filters)) as events:
                    async for data in events:
                        self.handle_message(data)
                logger.info("stream ended; reconnecting in %.1fs", self.retry_seconds)
                self.error = StreamConnectionError("stream ended")
            except StreamConnectionError as exc:
                logger.error("stream connection error: %s", exc)
                self.error = exc
                self.is_loading = False
            except Exception as exc:
                logger.exception("stream failed; reconnecting in %.1fs", self.retry_seconds)
                self.error = exc
                self.is_loading = False
            self._reconnecting = True
            await asyncio.sleep(self.retry_seconds)

    def connect(self) -> None:
        if self._task is not None:
            return
        self.connected = True
        self.is_loading = True
        self.error = None
        self._reconnecting = False
        self._task = asyncio.get_running_loop().create_task(self._run(dict(self.filters)))

    def disconnect(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        self.connected = False

    async def aclose(self) -> None:
        task = self._task
        self.disconnect()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def set_filters(self, filters: Mapping[str, Any] | None) -> None:
        if self._task is not None and build_filter_key(filters) == build_filter_key(self.filters):
            return
        await self.aclose()
        self.filters = dict(filters or {})
        self.connect()

    async def __aenter__(self) -> LiveStream:
        self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
