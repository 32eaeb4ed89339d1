from __future__ import annotations

import asyncio
import signal

import pytest

from agent.buffer import FlushScheduler
from agent.shutdown import ShutdownCoordinator, ShutdownState


@pytest.mark.asyncio
async def test_concurrent_triggers_run_one_final_flush(make_transport, event) -> None:
    transport = make_transport()
    scheduler = FlushScheduler(transport, interval_seconds=10)
    exits: list[int] = []
    coordinator = ShutdownCoordinator(scheduler, terminate=exits.append)
    scheduler.append(event("a"))
    scheduler.append(event("b"))

    await asyncio.gather(coordinator.trigger("SIGINT"), coordinator.trigger("SIGTERM"), coordinator.trigger("atexit"))

    assert len(transport.batches) == 1
    assert [item.message for item in transport.batches[0]] == ["a", "b"]
    assert exits == [0]
    assert coordinator.state is ShutdownState.TERMINATED

    scheduler.append(event("late"))
    assert len(scheduler.buffer) == 0


@pytest.mark.asyncio
async def test_termination_proceeds_when_final_flush_fails(make_transport, event) -> None:
    scheduler = FlushScheduler(make_transport(fail=True), interval_seconds=10)
    exits: list[int] = []
    coordinator = ShutdownCoordinator(scheduler, terminate=exits.append)
    scheduler.append(event("a"))

    await coordinator.trigger("SIGTERM")

    assert exits == [0]
    assert coordinator.state is ShutdownState.TERMINATED


@pytest.mark.asyncio
async def test_final_flush_waits_for_in_flight_batch(make_transport, event) -> None:
    gate = asyncio.Event()
    transport = make_transport(gate=gate)
    scheduler = FlushScheduler(transport, interval_seconds=10)
    coordinator = ShutdownCoordinator(scheduler, terminate=None)
    scheduler.append(event("a"))
    in_flight = asyncio.create_task(scheduler.flush())
    await asyncio.sleep(0)
    scheduler.append(event("b"))

    shutdown = asyncio.create_task(coordinator.trigger("SIGINT"))
    await asyncio.sleep(0)
    assert coordinator.state is ShutdownState.SHUTTING_DOWN
    gate.set()
    await asyncio.gather(in_flight, shutdown)

    assert [[item.message for item in batch] for batch in transport.batches] == [["a"], ["b"]]


@pytest.mark.asyncio
async def test_installed_signal_handler_flushes_and_terminates(make_transport, event) -> None:
    transport = make_transport()
    scheduler = FlushScheduler(transport, interval_seconds=10)
    exits: list[int] = []
    coordinator = ShutdownCoordinator(scheduler, terminate=exits.append)
    coordinator.install()
    try:
        scheduler.append(event("pending"))
        signal.raise_signal(signal.SIGTERM)
        for _ in range(50):
            if exits:
                break
            await asyncio.sleep(0.01)
    finally:
        coordinator.uninstall()

    assert exits == [0]
    assert len(transport.batches) == 1


def test_before_exit_without_pending_events_does_nothing(make_transport) -> None:
    transport = make_transport()
    coordinator = ShutdownCoordinator(FlushScheduler(transport, interval_seconds=10), terminate=None)
    coordinator._before_exit()
    assert transport.batches == []
    assert coordinator.state is ShutdownState.TERMINATED


def test_before_exit_flushes_on_fresh_loop(make_transport, event) -> None:
    transport = make_transport()
    scheduler = FlushScheduler(transport, interval_seconds=10)
    exits: list[int] = []
    coordinator = ShutdownCoordinator(scheduler, terminate=exits.append)
    scheduler.append(event("left over"))

    coordinator._before_exit()

    assert [item.message for item in transport.batches[0]] == ["left over"]
    assert exits == []
