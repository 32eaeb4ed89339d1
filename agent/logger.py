from __future__ import annotations

import sys
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any

from agent.buffer import BatchTransport, FlushScheduler
from agent.config import ClientConfig
from agent.sender import DeliveryTransport
from agent.shutdown import ShutdownCoordinator
from reader.client import CollectorClient
from reader.query import LogQuery, default_query_cache
from reader.stream import LiveStream, StreamRecord
from shared.constants import DEFAULT_APP_NAME, DEFAULT_ENVIRONMENT
from shared.enums import LogType
from shared.schemas import LogEvent


class Logger:
    """Application-facing logger bound to one collector.

    ``send`` and the typed helpers only buffer; delivery happens on the flush
    timer, on ``flush`` or at shutdown.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: BatchTransport | None = None,
        client: CollectorClient | None = None,
        terminate: Callable[[int], object] | None = sys.exit,
    ) -> None:
        self.config = config
        self.transport = transport or DeliveryTransport(config)
        self.scheduler = FlushScheduler(self.transport, config.flush_interval_seconds)
        self.coordinator = ShutdownCoordinator(self.scheduler, terminate=terminate)
        self.client = client or CollectorClient(config)

    def _with_defaults(self, event: LogEvent) -> LogEvent:
        return event.model_copy(
            update={
                "app_name": event.app_name or self.config.app_name or DEFAULT_APP_NAME,
                "environment": event.environment or self.config.environment or DEFAULT_ENVIRONMENT,
            }
        )

    def send(self, payload: LogEvent | Mapping[str, Any]) -> None:
        event = payload if isinstance(payload, LogEvent) else LogEvent.model_validate(dict(payload))
        self.scheduler.append(self._with_defaults(event))

    def _send_typed(self, log_type: LogType, message: str, fields: dict[str, Any]) -> None:
        self.send({**fields, "message": message, "type": log_type})

    def info(self, message: str, **fields: Any) -> None:
        self._send_typed(LogType.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._send_typed(LogType.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._send_typed(LogType.ERROR, message, fields)

    def audit(self, message: str, **fields: Any) -> None:
        self._send_typed(LogType.AUDIT, message, fields)

    def metric(self, message: str, **fields: Any) -> None:
        self._send_typed(LogType.METRIC, message, fields)

    def debug(self, message: str, **fields: Any) -> None:
        self._send_typed(LogType.DEBUG, message, fields)

    def success(self, message: str, **fields: Any) -> None:
        self._send_typed(LogType.SUCCESS, message, fields)

    async def get(self, filters: Mapping[str, Any] | None = None) -> Any:
        return await self.client.get_logs(filters)

    def stream(self, filters: Mapping[str, Any] | None = None) -> AsyncIterator[str]:
        """Raw live stream: one JSON text per server-sent event."""
        return self.client.iter_events(filters)

    def query(self, filters: Mapping[str, Any] | None = None) -> LogQuery:
        return LogQuery(default_query_cache(self.client), filters)

    def live(
        self,
        filters: Mapping[str, Any] | None = None,
        on_update: Callable[[list[StreamRecord]], None] | None = None,
    ) -> LiveStream:
        return LiveStream(
            self.client,
            filters,
            max_records=self.config.max_stream_records,
            retry_seconds=self.config.stream_retry_seconds,
            on_update=on_update,
        )

    async def flush(self) -> None:
        await self.scheduler.flush()

    def install_shutdown_handlers(self) -> None:
        self.coordinator.install()

    async def aclose(self) -> None:
        self.coordinator.uninstall()
        await self.coordinator.trigger("close", exit_process=False)

    async def __aenter__(self) -> Logger:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def create_logger(
    config: ClientConfig,
    *,
    install_shutdown: bool = False,
    terminate: Callable[[int], object] | None = sys.exit,
) -> Logger:
    """Build a Logger; with ``install_shutdown`` the caller must be inside a running loop."""
    logger = Logger(config, terminate=terminate)
    if install_shutdown:
        logger.install_shutdown_handlers()
    return logger
