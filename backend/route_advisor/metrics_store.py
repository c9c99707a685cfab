from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass
class DriverStats:
    tick_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    last_tick_at: datetime | None = None
    last_error: str | None = None


class MetricsStore:
    """Per-driver tick counters for the periodic drivers and the evaluator.

    ``at`` is the driver's own clock (synthetic in tests and the headless demo), so
    ``last_tick_at`` shows where each driver is in simulated time. Single-threaded
    callers only.
    """

    def __init__(self) -> None:
        self._created_at = datetime.now(UTC).isoformat()
        self._drivers: dict[str, DriverStats] = {}

    def record(
        self,
        driver: str,
        *,
        duration_ms: float,
        error: str | None = None,
        at: datetime | None = None,
    ) -> None:
        name = driver.strip() or "unknown"
        d_ms = max(float(duration_ms), 0.0)

        stats = self._drivers.setdefault(name, DriverStats())
        stats.tick_count += 1
        stats.total_duration_ms += d_ms
        stats.max_duration_ms = max(stats.max_duration_ms, d_ms)
        if at is not None:
            stats.last_tick_at = at
        if error is not None:
            stats.error_count += 1
            stats.last_error = error

    def snapshot(self) -> dict[str, object]:
        drivers: dict[str, dict[str, object]] = {}
        for name in sorted(self._drivers):
            stats = self._drivers[name]
            drivers[name] = {
                "tick_count": stats.tick_count,
                "error_count": stats.error_count,
                "avg_duration_ms": round(stats.total_duration_ms / stats.tick_count, 3) if stats.tick_count else 0.0,
                "max_duration_ms": round(stats.max_duration_ms, 3),
                "last_tick_at": stats.last_tick_at.isoformat() if stats.last_tick_at is not None else None,
                "last_error": stats.last_error,
            }

        return {
            "created_at": self._created_at,
            "total_ticks": sum(s.tick_count for s in self._drivers.values()),
            "total_errors": sum(s.error_count for s in self._drivers.values()),
            "driver_count": len(drivers),
            "drivers": drivers,
        }

    def reset(self) -> None:
        self._created_at = datetime.now(UTC).isoformat()
        self._drivers.clear()


METRICS = MetricsStore()


def record_tick(
    driver: str,
    *,
    duration_ms: float,
    error: str | None = None,
    at: datetime | None = None,
) -> None:
    METRICS.record(driver, duration_ms=duration_ms, error=error, at=at)


def metrics_snapshot() -> dict[str, object]:
    return METRICS.snapshot()


def reset_metrics() -> None:
    METRICS.reset()
