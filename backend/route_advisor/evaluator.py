from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from .candidates import CANDIDATES, CandidateKey, CandidateProfile, candidate_segments
from .conditions import ConditionSnapshot
from .geometry import build_path, path_length_m, segment_start_indices
from .models import ColoredSegment, EvaluatedRoute, Maneuver, Preferences, RouteStep
from .prediction import Forecast, predict
from .road_network import RoadNetwork, Segment
from .settings import settings

MIN_EFFECTIVE_SPEED_KMH = 5.0
MIN_WEIGHT_DISTANCE_M = 1.0
LANE_HINT_STRIDE = 3

WELL_LIT_SAFETY = 75.0
LOW_VISIBILITY_SAFETY = 45.0
WELL_LIT_NOTE = "Well-lit area with cameras"
LOW_VISIBILITY_NOTE = "Low visibility, avoid late hours"

# (lower bound inclusive, band, display color), best first.
SAFETY_BANDS: tuple[tuple[float, str, str], ...] = (
    (80.0, "high", "#10b981"),
    (60.0, "good", "#84cc16"),
    (40.0, "medium", "#f59e0b"),
    (20.0, "low", "#f97316"),
)
CRITICAL_BAND = ("critical", "#ef4444")

Predictor = Callable[[Segment, float, datetime], Forecast]


@dataclass(frozen=True)
class ScoreWeights:
    baseline_weight: float = 0.5
    crowd_scale: float = 0.8
    eta_normalizer_min: float = 30.0

    @classmethod
    def from_settings(cls) -> ScoreWeights:
        return cls(
            baseline_weight=settings.score_baseline_weight,
            crowd_scale=settings.score_crowd_scale,
            eta_normalizer_min=settings.score_eta_normalizer_min,
        )


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def safety_band(score: float) -> tuple[str, str]:
    for lower, band, color in SAFETY_BANDS:
        if score >= lower:
            return band, color
    return CRITICAL_BAND


def hazard_note(safety: float) -> str | None:
    if safety >= WELL_LIT_SAFETY:
        return WELL_LIT_NOTE
    if safety <= LOW_VISIBILITY_SAFETY:
        return LOW_VISIBILITY_NOTE
    return None


def desirability_score(
    *,
    avg_safety: float,
    eta_min: float,
    avg_crowd: float,
    preferences: Preferences,
    weights: ScoreWeights,
) -> float:
    """Linear utility: reward safety, penalise time and crowding (higher is better)."""
    b = weights.baseline_weight
    safety_term = (avg_safety / 100.0) * (b + ((1.0 - b) * preferences.prefer_lit))
    time_term = (eta_min / weights.eta_normalizer_min) * (b + ((1.0 - b) * (1.0 - preferences.comfort)))
    crowd_term = avg_crowd * preferences.avoid_busy * weights.crowd_scale
    return safety_term - time_term - crowd_term


def build_maneuvers(
    key: str,
    segments: Sequence[Segment],
    path: Sequence[tuple[float, float]],
    *,
    join_spacing_m: float | None = None,
) -> list[Maneuver]:
    starts = segment_start_indices(segments, join_spacing_m=join_spacing_m)
    maneuvers: list[Maneuver] = []
    for idx in range(1, len(segments)):
        prev_seg, next_seg = segments[idx - 1], segments[idx]
        path_index = starts[idx]
        maneuvers.append(
            Maneuver(
                boundary_id=f"{key}:{idx}:{prev_seg.id}->{next_seg.id}",
                path_index=path_index,
                anchor=tuple(path[path_index]),
                label=f"Continue along {next_seg.street_name}",
                from_segment_id=prev_seg.id,
                to_segment_id=next_seg.id,
            )
        )
    return maneuvers


def evaluate(
    candidate: CandidateProfile,
    network: RoadNetwork,
    conditions: ConditionSnapshot,
    horizon_minutes: float,
    preferences: Preferences,
    *,
    now: datetime,
    weights: ScoreWeights | None = None,
    predictor: Predictor = predict,
) -> EvaluatedRoute:
    """Score one candidate against a fixed conditions snapshot and forecast time."""
    weights = weights or ScoreWeights.from_settings()
    segments = candidate_segments(network, candidate)
    path = build_path(segments, join_spacing_m=network.max_point_spacing_m)

    total_m = 0.0
    total_h = 0.0
    safety_weighted = 0.0
    crowd_weighted = 0.0
    weight_total = 0.0
    steps: list[RouteStep] = []
    colored: list[ColoredSegment] = []

    for idx, seg in enumerate(segments):
        condition = conditions.get(seg.id)
        forecast = predictor(seg, horizon_minutes, now)

        seg_m = path_length_m(seg.coords)
        total_m += seg_m

        speed_kmh = max(
            MIN_EFFECTIVE_SPEED_KMH,
            seg.base_speed_kmh * condition.speed_factor * forecast.speed_factor,
        )
        total_h += (seg_m / 1000.0) / speed_kmh

        safety = _clamp(
            seg.base_safety + condition.safety_adjustment + forecast.safety_adjustment,
            0.0,
            100.0,
        )
        safety_weighted += safety * seg_m
        crowd_weighted += condition.crowd * seg_m
        weight_total += seg_m

        verb = "Head onto" if idx == 0 else "Continue along"
        steps.append(
            RouteStep(
                segment_id=seg.id,
                instruction=f"{verb} {seg.street_name}",
                street=seg.street_name,
                distance_m=seg_m,
                safety=safety,
                note=hazard_note(safety),
            )
        )
        band, color = safety_band(safety)
        colored.append(
            ColoredSegment(segment_id=seg.id, coords=list(seg.coords), band=band, color=color)
        )

    divisor = max(weight_total, MIN_WEIGHT_DISTANCE_M)
    avg_safety = safety_weighted / divisor
    avg_crowd = crowd_weighted / divisor
    eta_min = total_h * 60.0

    return EvaluatedRoute(
        key=candidate.key.value,
        label=candidate.label,
        color=candidate.color,
        segment_ids=list(candidate.segment_ids),
        path=list(path),
        distance_m=total_m,
        eta_min=eta_min,
        steps=steps,
        colored=colored,
        maneuvers=build_maneuvers(
            candidate.key.value, segments, path, join_spacing_m=network.max_point_spacing_m
        ),
        lane_hints=[path[i] for i in range(0, max(0, len(path) - 1), LANE_HINT_STRIDE)],
        avg_safety=avg_safety,
        avg_crowd=avg_crowd,
        score=desirability_score(
            avg_safety=avg_safety,
            eta_min=eta_min,
            avg_crowd=avg_crowd,
            preferences=preferences,
            weights=weights,
        ),
        condition_version=conditions.version,
        evaluated_at=now,
    )


def evaluate_all(
    network: RoadNetwork,
    conditions: ConditionSnapshot,
    preferences: Preferences,
    *,
    now: datetime,
    candidates: Sequence[CandidateProfile] = CANDIDATES,
    weights: ScoreWeights | None = None,
    predictor: Predictor = predict,
) -> dict[CandidateKey, EvaluatedRoute]:
    """Evaluate every candidate against one snapshot and one ``now``, in declaration order."""
    weights = weights or ScoreWeights.from_settings()
    return {
        candidate.key: evaluate(
            candidate,
            network,
            conditions,
            preferences.forecast_horizon_minutes,
            preferences,
            now=now,
            weights=weights,
            predictor=predictor,
        )
        for candidate in candidates
    }
