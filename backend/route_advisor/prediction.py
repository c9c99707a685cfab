from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass
from datetime import datetime

from .road_network import Segment
from .settings import settings

# Per forecast hour, scaled by the periodic wave in [0, 1].
CONGESTION_BASE_PER_H = 0.06
CONGESTION_SWING_PER_H = 0.14
RISK_BASE_PER_H = 2.0
RISK_SWING_PER_H = 6.0


@dataclass(frozen=True)
class Forecast:
    speed_factor: float = 1.0
    safety_adjustment: float = 0.0


def _segment_phase_offset(segment_id: str) -> float:
    digest = hashlib.sha1(f"forecast|{segment_id}".encode("utf-8")).hexdigest()[:8]
    return int(digest, 16) / float(0xFFFFFFFF)


def predict(
    segment: Segment,
    horizon_minutes: float,
    now: datetime,
    *,
    period_min: float | None = None,
    min_speed_factor: float | None = None,
) -> Forecast:
    """Deterministic forecast of a segment's conditions ``horizon_minutes`` ahead.

    A smooth daily-style wave (phase shifted per segment) sets how heavy the
    expected congestion and risk are; the horizon length scales both, so looking
    further ahead predicts slower and less safe travel. The segment's lighting
    penalty is applied regardless of horizon.
    """
    period = float(period_min if period_min is not None else settings.prediction_period_min)
    floor = float(min_speed_factor if min_speed_factor is not None else settings.prediction_min_speed_factor)
    horizon_h = max(0.0, float(horizon_minutes)) / 60.0

    target_min = (now.timestamp() / 60.0) + (horizon_h * 60.0)
    phase = 2.0 * math.pi * ((target_min / max(period, 1e-9)) + _segment_phase_offset(segment.id))
    wave = 0.5 * (1.0 + math.sin(phase))

    congestion = horizon_h * (CONGESTION_BASE_PER_H + (CONGESTION_SWING_PER_H * wave))
    risk = horizon_h * (RISK_BASE_PER_H + (RISK_SWING_PER_H * wave))
    return Forecast(
        speed_factor=max(floor, 1.0 - congestion),
        safety_adjustment=-(risk + max(0.0, float(segment.lighting_penalty))),
    )
