from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress
from datetime import UTC, datetime

from .logging_utils import log_context, log_event
from .metrics_store import record_tick
from .session import NavigationSession
from .settings import settings

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


class PeriodicTask:
    """One cancellable asyncio timer calling ``callback(now)`` every ``interval_s``."""

    def __init__(
        self,
        name: str,
        interval_s: float,
        callback: Callable[[datetime], object],
        *,
        clock: Clock = _utc_now,
    ) -> None:
        self.name = name
        self.interval_s = max(0.001, float(interval_s))
        self._callback = callback
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"periodic:{self.name}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            now = self._clock()
            t0 = time.perf_counter()
            with log_context(driver=self.name):
                try:
                    self._callback(now)
                except Exception as e:
                    # A failed tick is logged and skipped; the timer keeps running.
                    record_tick(
                        self.name,
                        duration_ms=(time.perf_counter() - t0) * 1000,
                        error=f"{type(e).__name__}: {e}",
                        at=now,
                    )
                    log_event(
                        "periodic_task_failed",
                        level=logging.ERROR,
                        error=str(e),
                        error_type=type(e).__name__,
                    )

    async def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


def fire_and_forget(sink: Callable[[str], Awaitable[object]]) -> Callable[[str], None]:
    """Adapt an async voice sink so the progress tick never waits on it."""
    pending: set[asyncio.Task[object]] = set()

    async def _guarded(text: str) -> object:
        try:
            return await sink(text)
        except Exception as e:
            log_event("voice_unavailable", error=str(e), error_type=type(e).__name__)
            return None

    def _dispatch(text: str) -> None:
        task = asyncio.get_running_loop().create_task(_guarded(text))
        pending.add(task)
        task.add_done_callback(pending.discard)

    return _dispatch


class SessionScheduler:
    """Drives a session's condition and progress ticks from the event loop."""

    def __init__(
        self,
        session: NavigationSession,
        *,
        condition_interval_s: float | None = None,
        progress_interval_s: float | None = None,
        clock: Clock = _utc_now,
    ) -> None:
        self.session = session
        self._clock = clock
        self.conditions = PeriodicTask(
            "conditions",
            condition_interval_s if condition_interval_s is not None else settings.condition_tick_s,
            session.tick_conditions,
            clock=clock,
        )
        self.progress = PeriodicTask(
            "progress",
            progress_interval_s if progress_interval_s is not None else settings.progress_tick_ms / 1000.0,
            session.tick_progress,
            clock=clock,
        )

    def start(self) -> None:
        self.conditions.start()
        if self.session.progress.running:
            self.progress.start()

    def start_simulation(self) -> None:
        self.session.start_simulation(now=self._clock())
        self.progress.start()

    async def stop_simulation(self) -> None:
        self.session.stop_simulation()
        await self.progress.cancel()

    async def aclose(self) -> None:
        await self.progress.cancel()
        await self.conditions.cancel()
