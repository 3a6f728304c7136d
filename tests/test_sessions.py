from __future__ import annotations

import asyncio
from typing import Any

import pytest

from spawner_mcp.sessions import SessionRegistry, SessionState

IDLE_TIMEOUT = 1800.0


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(protocol_server: Any, clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(protocol_server, IDLE_TIMEOUT, clock=clock)


def test_open_then_touch_refreshes(registry: SessionRegistry, clock: FakeClock) -> None:
    async def scenario() -> None:
        first = await registry.open("abc")
        clock.now = 10.0
        again = registry.touch("abc")

        assert again is first
        assert again.last_active == 10.0
        assert first.task is not None and not first.task.done()
        assert len(registry) == 1
        await registry.close_all()

    asyncio.run(scenario())


def test_touch_unknown_or_missing_id(registry: SessionRegistry) -> None:
    assert registry.touch("nope") is None
    assert registry.touch(None) is None
    assert len(registry) == 0


def test_open_without_id_generates_one(registry: SessionRegistry) -> None:
    async def scenario() -> str:
        session = await registry.open()
        assert session.session_id in registry
        await registry.close_all()
        return session.session_id

    assert asyncio.run(scenario())


def test_open_rejects_ids_the_transport_cannot_carry(registry: SessionRegistry) -> None:
    async def scenario() -> None:
        await registry.open("has space")

    with pytest.raises(ValueError):
        asyncio.run(scenario())
    assert len(registry) == 0


def test_sweep_reclaims_only_idle_sessions(
    registry: SessionRegistry, clock: FakeClock
) -> None:
    async def scenario() -> None:
        idle = await registry.open("idle")
        await registry.open("busy")

        clock.now = IDLE_TIMEOUT - 1
        registry.touch("busy")
        clock.now = IDLE_TIMEOUT + 1

        assert await registry.sweep() == ["idle"]
        assert idle.state is SessionState.RECLAIMED
        assert idle.transport.is_terminated
        assert "idle" not in registry
        assert "busy" in registry
        await registry.close_all()

    asyncio.run(scenario())


def test_sweep_threshold_is_strict(registry: SessionRegistry) -> None:
    async def scenario() -> None:
        await registry.open("edge")

        assert await registry.sweep(now=IDLE_TIMEOUT) == []
        assert await registry.sweep(now=IDLE_TIMEOUT + 0.001) == ["edge"]

    asyncio.run(scenario())


def test_reclaimed_id_starts_fresh(registry: SessionRegistry, clock: FakeClock) -> None:
    async def scenario() -> None:
        old = await registry.open("reuse")

        clock.now = IDLE_TIMEOUT * 2
        await registry.sweep()
        new = await registry.open("reuse")

        assert new is not old
        assert new.transport is not old.transport
        assert new.state is SessionState.ACTIVE
        assert old.state is SessionState.RECLAIMED
        assert registry.get("reuse") is new
        await registry.close_all()

    asyncio.run(scenario())


def test_sweep_skips_in_flight_sessions(registry: SessionRegistry) -> None:
    async def scenario() -> list[str]:
        session = await registry.open("working")
        async with session.lock:
            reclaimed = await registry.sweep(now=IDLE_TIMEOUT * 10)
        assert "working" in registry
        await registry.close_all()
        return reclaimed

    assert asyncio.run(scenario()) == []


def test_close_and_close_all(registry: SessionRegistry) -> None:
    async def scenario() -> None:
        closed = await registry.open("a")
        other = await registry.open("b")

        assert await registry.close("a") is True
        assert await registry.close("a") is False
        assert closed.state is SessionState.CLOSED

        await registry.close_all()
        assert len(registry) == 0
        assert other.task is not None and other.task.done()

    asyncio.run(scenario())


def test_sweeper_loop_reclaims_on_its_own(
    registry: SessionRegistry, clock: FakeClock
) -> None:
    async def scenario() -> None:
        await registry.open("stale")
        clock.now = IDLE_TIMEOUT + 1
        sweeper = asyncio.create_task(registry.run_sweeper(0.01))
        for _ in range(100):
            if "stale" not in registry:
                break
            await asyncio.sleep(0.01)
        sweeper.cancel()
        await registry.close_all()

        assert "stale" not in registry

    asyncio.run(scenario())
