from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import Protocol

from shared.constants import DEFAULT_FLUSH_INTERVAL_SECONDS
from shared.schemas import LogEvent

logger = logging.getLogger("oml_agent.buffer")


class BatchTransport(Protocol):
    async def send(self, batch: Sequence[LogEvent]) -> bool: ...


class EventBuffer:
    """Append-only staging area for events that have not been sent yet."""

    def __init__(self) -> None:
        self._events: list[LogEvent] = []

    def append(self, event: LogEvent) -> None:
        self._events.append(event)

    def drain(self) -> list[LogEvent]:
        batch = self._events
        self._events = []
        return batch

    def __len__(self) -> int:
        return len(self._events)


class FlushScheduler:
    """Timer-driven, single-flight flushing of one EventBuffer.

    Appends arm at most one timer; appends made while the timer is pending
    coalesce into the same batch. At most one flush runs at a time, and a
    drained batch is never re-queued.
    """

    def __init__(
        self,
        transport: BatchTransport,
        interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
        buffer: EventBuffer | None = None,
    ) -> None:
        self.transport = transport
        self.interval_seconds = interval_seconds
        self.buffer = buffer if buffer is not None else EventBuffer()
        self._timer: asyncio.TimerHandle | None = None
        self._timer_task: asyncio.Task[None] | None = None
        self._flushing = False
        self._shutting_down = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    @property
    def flushing(self) -> bool:
        return self._flushing

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def begin_shutdown(self) -> None:
        self._shutting_down = True
        self._cancel_timer()

    def append(self, event: LogEvent) -> None:
        if self._shutting_down:
            return
        self.buffer.append(event.model_copy(update={"ingested_at": int(time.time() * 1000)}))
        self._arm()

    def _arm(self) -> None:
        if self._timer is not None or self._flushing or self._shutting_down:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop yet: events wait for an explicit flush or drain
            return
        self._timer = loop.call_later(self.interval_seconds, self._on_timer, loop)

    def _on_timer(self, loop: asyncio.AbstractEventLoop) -> None:
        self._timer = None
        self._timer_task = loop.create_task(self.flush())

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def flush(self) -> None:
        if self._flushing:
            return
        self._flushing = True
        self._idle.clear()
        self._cancel_timer()
        batch = self.buffer.drain()
        try:
            if batch:
                await self.transport.send(batch)
        except Exception:
            logger.exception("flush failed; dropped %d events", len(batch))
        finally:
            self._flushing = False
            self._idle.set()
        if len(self.buffer):
            self._arm()

    async def drain(self) -> None:
        """Wait for an in-flight flush, then flush whatever is left."""
        while self._flushing:
            await self._idle.wait()
        await self.flush()
