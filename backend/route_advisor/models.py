from __future__ import annotations

import math
from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from .settings import settings

LatLonPair = tuple[float, float]

UNIT_PREFERENCE_FIELDS = ("avoid_busy", "prefer_lit", "comfort")


def _clamp_unit(value: object) -> float:
    v = float(value)  # type: ignore[arg-type]
    if math.isnan(v):
        return 0.0
    return min(1.0, max(0.0, v))


def _clamp_horizon(value: object) -> int:
    v = float(value)  # type: ignore[arg-type]
    upper = int(settings.prediction_max_horizon_min)
    if math.isnan(v):
        return 1
    if math.isinf(v):
        return upper if v > 0 else 1
    return min(upper, max(1, int(round(v))))


class Preferences(BaseModel):
    """User weights for scoring. Out-of-range values are clamped, never rejected."""

    avoid_busy: float = 0.5
    prefer_lit: float = 0.5
    comfort: float = 0.5
    forecast_horizon_minutes: int = 15

    @model_validator(mode="before")
    @classmethod
    def clamp_to_domain(cls, value: object) -> object:
        if not isinstance(value, dict):
            return value
        data = dict(value)
        for key in UNIT_PREFERENCE_FIELDS:
            if data.get(key) is not None:
                data[key] = _clamp_unit(data[key])
        if data.get("forecast_horizon_minutes") is not None:
            data["forecast_horizon_minutes"] = _clamp_horizon(data["forecast_horizon_minutes"])
        return data

    @classmethod
    def from_settings(cls) -> Preferences:
        return cls(
            avoid_busy=settings.default_avoid_busy,
            prefer_lit=settings.default_prefer_lit,
            comfort=settings.default_comfort,
            forecast_horizon_minutes=settings.default_horizon_min,
        )


class PreferencesUpdate(BaseModel):
    avoid_busy: float | None = None
    prefer_lit: float | None = None
    comfort: float | None = None
    forecast_horizon_minutes: float | None = None


class SelectCandidateRequest(BaseModel):
    key: str


class RouteStep(BaseModel):
    segment_id: str
    instruction: str
    street: str
    distance_m: float = Field(..., ge=0.0)
    safety: float = Field(..., ge=0.0, le=100.0)
    note: str | None = None


class ColoredSegment(BaseModel):
    segment_id: str
    coords: list[LatLonPair]
    band: str
    color: str


class Maneuver(BaseModel):
    boundary_id: str
    path_index: int = Field(..., ge=0)
    anchor: LatLonPair
    label: str
    from_segment_id: str
    to_segment_id: str


class EvaluatedRoute(BaseModel):
    key: str
    label: str
    color: str
    segment_ids: list[str]
    path: list[LatLonPair]
    distance_m: float = Field(..., ge=0.0)
    eta_min: float = Field(..., ge=0.0)
    steps: list[RouteStep]
    colored: list[ColoredSegment]
    maneuvers: list[Maneuver]
    lane_hints: list[LatLonPair] = Field(default_factory=list)
    avg_safety: float
    avg_crowd: float
    score: float
    condition_version: int = 0
    evaluated_at: datetime | None = None


class Suggestion(BaseModel):
    candidate_key: str
    label: str
    time_saved_min: float = Field(..., ge=0.0)
    safety_gain: float = Field(..., ge=0.0)
    score_gain: float = Field(..., ge=0.0)


class ProgressView(BaseModel):
    running: bool
    path_index: int = Field(..., ge=0)
    position: LatLonPair | None = None
    current_maneuver: Maneuver | None = None
    distance_to_maneuver_m: float | None = None


class IntersectionView(BaseModel):
    id: str
    coord: LatLonPair


class RouteSummary(BaseModel):
    distance_km: float
    eta_min_rounded: int
    avg_safety: float


class RenderPayload(BaseModel):
    active_key: str
    route: EvaluatedRoute
    summary: RouteSummary
    suggestion: Suggestion | None = None
    progress: ProgressView
    start: LatLonPair
    end: LatLonPair
    intersections: list[IntersectionView]
    signals: list[LatLonPair]


class CandidateListResponse(BaseModel):
    active_key: str
    condition_version: int
    routes: list[EvaluatedRoute]
    suggestion: Suggestion | None = None
