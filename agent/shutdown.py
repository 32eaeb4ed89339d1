from __future__ import annotations

import asyncio
import atexit
import logging
import signal
import sys
from collections.abc import Callable
from enum import Enum

from agent.buffer import FlushScheduler

logger = logging.getLogger("oml_agent.shutdown")

_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownState(str, Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class ShutdownCoordinator:
    """Runs one final flush when the host process is going away.

    Nothing is registered at construction; the host calls ``install`` to
    hook SIGINT, SIGTERM and interpreter exit, or calls ``trigger`` itself.
    """

    def __init__(
        self,
        scheduler: FlushScheduler,
        terminate: Callable[[int], object] | None = sys.exit,
    ) -> None:
        self.scheduler = scheduler
        self.terminate = terminate
        self._state = ShutdownState.RUNNING
        self._loop: asyncio.AbstractEventLoop | None = None
        self._signal_task: asyncio.Task[None] | None = None
        self._previous_handlers: dict[int, object] = {}
        self._installed = False

    @property
    def state(self) -> ShutdownState:
        return self._state

    async def trigger(self, reason: str, *, exit_process: bool = True) -> None:
        if self._state is not ShutdownState.RUNNING:
            return
        self._state = ShutdownState.SHUTTING_DOWN
        self.scheduler.begin_shutdown()
        logger.info("shutdown requested reason=%s pending_events=%d", reason, len(self.scheduler.buffer))
        try:
            await self.scheduler.drain()
        except Exception:
            logger.exception("final flush during shutdown failed")
        finally:
            self._state = ShutdownState.TERMINATED
            if exit_process and self.terminate is not None:
                self.terminate(0)

    def _on_signal(self, signame: str) -> None:
        logger.info("received signal %s", signame)
        if self._loop is None or self._signal_task is not None:
            return
        self._signal_task = self._loop.create_task(self.trigger(signame))

    def _before_exit(self) -> None:
        if self._state is not ShutdownState.RUNNING:
            return
        if not len(self.scheduler.buffer):
            self._state = ShutdownState.TERMINATED
            return
        asyncio.run(self.trigger("atexit", exit_process=False))

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if self._installed:
            return
        self._loop = loop or asyncio.get_running_loop()
        for sig in _SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._on_signal, sig.name)
            except (NotImplementedError, RuntimeError):
                self._previous_handlers[sig] = signal.signal(sig, self._threadsafe_handler)
        atexit.register(self._before_exit)
        self._installed = True

    def _threadsafe_handler(self, signum: int, frame: object) -> None:
        del frame
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._on_signal, signal.Signals(signum).name)

    def uninstall(self) -> None:
        if not self._installed:
            return
        for sig in _SIGNALS:
            if sig in self._previous_handlers:
                signal.signal(sig, self._previous_handlers.pop(sig))
            elif self._loop is not None:
                self._loop.remove_signal_handler(sig)
        atexit.unregister(self._before_exit)
        self._installed = False
