from __future__ import annotations

import random
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType

SPEED_FACTOR_BOUNDS = (0.7, 1.3)
CROWD_BOUNDS = (0.0, 1.0)
SAFETY_ADJUSTMENT_BOUNDS = (-20.0, 20.0)


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return min(high, max(low, value))


@dataclass(frozen=True)
class SegmentCondition:
    speed_factor: float = 1.0
    crowd: float = 0.3
    safety_adjustment: float = 0.0


NEUTRAL_CONDITION = SegmentCondition()


@dataclass(frozen=True)
class ConditionSnapshot:
    """Read-only view of every segment's live condition at one version."""

    version: int
    conditions: Mapping[str, SegmentCondition]
    taken_at: datetime | None = None

    def get(self, segment_id: str) -> SegmentCondition:
        return self.conditions.get(segment_id, NEUTRAL_CONDITION)


def neutral_snapshot(segment_ids: Iterable[str]) -> ConditionSnapshot:
    return ConditionSnapshot(
        version=0,
        conditions=MappingProxyType({seg_id: NEUTRAL_CONDITION for seg_id in segment_ids}),
    )


class ConditionStore:
    """Bounded random walk of per-segment live conditions.

    ``tick()`` is the only writer and swaps in a whole new snapshot, so readers
    never see a half-updated map.
    """

    def __init__(
        self,
        segment_ids: Iterable[str],
        *,
        speed_delta: float,
        crowd_delta: float,
        safety_delta: float,
        seed: int | None = None,
    ) -> None:
        self._segment_ids = tuple(segment_ids)
        self._speed_delta = abs(float(speed_delta))
        self._crowd_delta = abs(float(crowd_delta))
        self._safety_delta = abs(float(safety_delta))
        self._rng = random.Random(seed)
        self._snapshot = neutral_snapshot(self._segment_ids)

    @property
    def segment_ids(self) -> tuple[str, ...]:
        return self._segment_ids

    def snapshot(self) -> ConditionSnapshot:
        return self._snapshot

    def _perturb(self, current: SegmentCondition) -> SegmentCondition:
        rng = self._rng
        return SegmentCondition(
            speed_factor=_clamp(
                current.speed_factor + rng.uniform(-self._speed_delta, self._speed_delta),
                SPEED_FACTOR_BOUNDS,
            ),
            crowd=_clamp(
                current.crowd + rng.uniform(-self._crowd_delta, self._crowd_delta),
                CROWD_BOUNDS,
            ),
            safety_adjustment=_clamp(
                current.safety_adjustment + rng.uniform(-self._safety_delta, self._safety_delta),
                SAFETY_ADJUSTMENT_BOUNDS,
            ),
        )

    def tick(self, now: datetime | None = None) -> ConditionSnapshot:
        previous = self._snapshot
        updated = {seg_id: self._perturb(previous.get(seg_id)) for seg_id in self._segment_ids}
        self._snapshot = ConditionSnapshot(
            version=previous.version + 1,
            conditions=MappingProxyType(updated),
            taken_at=now,
        )
        return self._snapshot

    def reset(self) -> ConditionSnapshot:
        self._snapshot = neutral_snapshot(self._segment_ids)
        return self._snapshot
