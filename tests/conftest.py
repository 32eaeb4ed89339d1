from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

import pytest

from agent.config import ClientConfig
from shared.schemas import LogEvent


class RecordingTransport:
    def __init__(self, gate: asyncio.Event | None = None, fail: bool = False) -> None:
        self.batches: list[list[LogEvent]] = []
        self.gate = gate
        self.fail = fail

    async def send(self, batch: Sequence[LogEvent]) -> bool:
        self.batches.append(list(batch))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RuntimeError("collector unreachable")
        return True


class FakeLogsClient:
    def __init__(self, result: Any = None, error: Exception | None = None, gate: asyncio.Event | None = None) -> None:
        self.result = result if result is not None else {"logs": [{"message": "hello"}]}
        self.error = error
        self.gate = gate
        self.calls: list[dict[str, Any]] = []

    async def get_logs(self, filters: Mapping[str, Any] | None = None) -> Any:
        self.calls.append(dict(filters or {}))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


class QueueEventSource:
    """Live stream double fed by the test through an asyncio.Queue."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue[str | Exception] = asyncio.Queue()
        self.opened: list[dict[str, Any]] = []
        self.closed = 0

    async def iter_events(self, filters: Mapping[str, Any] | None = None) -> AsyncIterator[str]:
        self.opened.append(dict(filters or {}))
        try:
            while True:
                item = await self.queue.get()
                try:
                    if isinstance(item, Exception):
                        raise item
                    yield item
                finally:
                    self.queue.task_done()
        finally:
            self.closed += 1


@pytest.fixture()
def client_config() -> ClientConfig:
    return ClientConfig(
        api_key="test-api-key",
        base_url="http://collector.test",
        app_name="api",
        environment="test",
        flush_interval_seconds=0.05,
        stream_retry_seconds=0.01,
    )


@pytest.fixture()
def make_transport():
    return RecordingTransport


@pytest.fixture()
def make_logs_client():
    return FakeLogsClient


@pytest.fixture()
def event_source() -> QueueEventSource:
    return QueueEventSource()


def make_event(message: str, **fields: Any) -> LogEvent:
    return LogEvent(message=message, **fields)


@pytest.fixture()
def event():
    return make_event
