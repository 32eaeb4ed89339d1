from __future__ import annotations

import pytest

from agent.config import ClientConfig
from agent.logger import Logger, create_logger
from agent.shutdown import ShutdownState
from reader.query import LogQuery
from reader.stream import LiveStream
from shared.enums import LogType
from shared.schemas import LogEvent


@pytest.mark.asyncio
async def test_send_applies_literal_defaults(make_transport) -> None:
    transport = make_transport()
    oml = Logger(ClientConfig(api_key="k"), transport=transport, terminate=None)

    oml.send({"message": "booted"})
    await oml.flush()

    sent = transport.batches[0][0]
    assert sent.type is LogType.INFO
    assert sent.app_name == "default"
    assert sent.environment == "development"


@pytest.mark.asyncio
async def test_payload_values_win_over_config(client_config: ClientConfig, make_transport) -> None:
    transport = make_transport()
    oml = Logger(client_config, transport=transport, terminate=None)

    oml.send(LogEvent(message="a"))
    oml.send({"message": "b", "appName": "worker", "environment": "staging"})
    await oml.flush()

    first, second = transport.batches[0]
    assert (first.app_name, first.environment) == ("api", "test")
    assert (second.app_name, second.environment) == ("worker", "staging")


@pytest.mark.asyncio
async def test_send_drops_keys_it_does_not_know(client_config: ClientConfig, make_transport) -> None:
    transport = make_transport()
    oml = Logger(client_config, transport=transport, terminate=None)

    oml.send({"message": "checkout", "requestId": "r-1", "colour": "red"})
    oml.warning("slow", traceId="t-9")
    await oml.flush()

    first, second = transport.batches[0]
    assert first.to_wire()["message"] == "checkout"
    assert "requestId" not in first.to_wire()
    assert "traceId" not in second.to_wire()


@pytest.mark.asyncio
async def test_typed_helpers_fix_the_type(client_config: ClientConfig, make_transport) -> None:
    transport = make_transport()
    oml = Logger(client_config, transport=transport, terminate=None)

    oml.info("i")
    oml.warning("w", importance="high")
    oml.error("e", subsystem="db", type="info")
    oml.audit("a", track={"user_id": "u1", "role": "admin"})
    oml.metric("m", metrics={"latency_ms": 12.5, "rows": 3})
    oml.debug("d")
    oml.success("s")
    await oml.flush()

    assert [event.type.value for event in transport.batches[0]] == [
        "info",
        "warning",
        "error",
        "audit",
        "metric",
        "debug",
        "success",
    ]
    metric = transport.batches[0][4]
    assert metric.to_wire()["metrics"] == {"latency_ms": 12.5, "rows": 3}


@pytest.mark.asyncio
async def test_context_exit_flushes_without_terminating(client_config: ClientConfig, make_transport) -> None:
    transport = make_transport()
    exits: list[int] = []
    async with Logger(client_config, transport=transport, terminate=exits.append) as oml:
        oml.info("last words")

    assert len(transport.batches) == 1
    assert exits == []
    assert oml.coordinator.state is ShutdownState.TERMINATED
    oml.info("after close")
    assert len(oml.scheduler.buffer) == 0


def test_read_side_accessors_use_config(client_config: ClientConfig) -> None:
    oml = create_logger(client_config, terminate=None)
    assert isinstance(oml.query({"type": "error"}), LogQuery)
    live = oml.live({"type": "error"})
    assert isinstance(live, LiveStream)
    assert live.window.max_records == client_config.max_stream_records
    assert live.retry_seconds == client_config.stream_retry_seconds
