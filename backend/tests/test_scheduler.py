from __future__ import annotations

import asyncio
from datetime import UTC, datetime

from route_advisor.conditions import ConditionStore
from route_advisor.metrics_store import metrics_snapshot, reset_metrics
from route_advisor.road_network import default_network
from route_advisor.scheduler import PeriodicTask, SessionScheduler, fire_and_forget
from route_advisor.session import NavigationSession

NOW = datetime(2026, 3, 2, 7, 30, tzinfo=UTC)


def _session() -> NavigationSession:
    network = default_network()
    store = ConditionStore(
        (seg.id for seg in network.segments()),
        speed_delta=0.05,
        crowd_delta=0.08,
        safety_delta=3.0,
        seed=3,
    )
    return NavigationSession(network=network, condition_store=store, active_key="balanced", now=NOW)


def test_scheduler_ticks_conditions_and_tears_down() -> None:
    session = _session()

    async def scenario() -> SessionScheduler:
        scheduler = SessionScheduler(session, condition_interval_s=0.01, progress_interval_s=0.01)
        scheduler.start()
        await asyncio.sleep(0.08)
        await scheduler.aclose()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert session.conditions.snapshot().version >= 1
    assert not scheduler.conditions.running
    assert not scheduler.progress.running


def test_stop_simulation_cancels_progress_timer() -> None:
    session = _session()

    async def scenario() -> tuple[int, int]:
        scheduler = SessionScheduler(session, condition_interval_s=60.0, progress_interval_s=0.01)
        scheduler.start()
        scheduler.start_simulation()
        await asyncio.sleep(0.05)
        await scheduler.stop_simulation()
        stopped_at = session.progress.state.path_index
        await asyncio.sleep(0.05)
        after = session.progress.state.path_index
        running = scheduler.progress.running
        await scheduler.aclose()
        assert not running
        return stopped_at, after

    stopped_at, after = asyncio.run(scenario())
    assert stopped_at >= 1
    assert after == stopped_at


def test_periodic_task_survives_failing_callback() -> None:
    reset_metrics()
    calls: list[datetime] = []

    def flaky(now: datetime) -> None:
        calls.append(now)
        raise RuntimeError("transient")

    async def scenario() -> None:
        task = PeriodicTask("flaky", 0.005, flaky, clock=lambda: NOW)
        task.start()
        await asyncio.sleep(0.05)
        assert task.running
        await task.cancel()
        assert not task.running

    asyncio.run(scenario())
    assert len(calls) >= 2
    assert set(calls) == {NOW}
    flaky_stats = metrics_snapshot()["drivers"]["flaky"]
    assert flaky_stats["error_count"] == len(calls)
    assert flaky_stats["last_error"] == "RuntimeError: transient"
    assert flaky_stats["last_tick_at"] == NOW.isoformat()


def test_fire_and_forget_voice_never_raises() -> None:
    heard: list[str] = []

    async def speaker(text: str) -> None:
        heard.append(text)

    async def broken(text: str) -> None:
        raise ConnectionError("speech service down")

    async def scenario() -> None:
        fire_and_forget(speaker)("Continue along Beacon St")
        fire_and_forget(broken)("Continue along Beacon St")
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert heard == ["Continue along Beacon St"]
