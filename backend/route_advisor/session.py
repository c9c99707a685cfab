from __future__ import annotations

import time
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from .candidates import CANDIDATES, CandidateKey, CandidateProfile, candidate_segments, resolve_candidate_key
from .conditions import ConditionStore
from .engine_errors import EngineError
from .evaluator import Predictor, ScoreWeights, evaluate_all
from .logging_utils import log_event
from .metrics_store import record_tick
from .models import (
    CandidateListResponse,
    EvaluatedRoute,
    IntersectionView,
    Preferences,
    PreferencesUpdate,
    ProgressView,
    RenderPayload,
    RouteSummary,
    Suggestion,
)
from .prediction import predict
from .progress import ManeuverAnnouncement, ProgressSimulator, VoiceSink
from .road_network import TRIP_END, TRIP_START, RoadNetwork, default_network
from .settings import settings
from .suggestions import SuggestionTracker


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _elapsed_ms(t0: float) -> float:
    return round((time.perf_counter() - t0) * 1000, 3)


class NavigationSession:
    """Long-lived simulation context.

    Owns the live conditions, preferences, active candidate, evaluated routes,
    the pending suggestion and the progress simulator. Every time-dependent
    method takes ``now`` so callers (scheduler, tests, scripts) control the clock.
    """

    def __init__(
        self,
        *,
        network: RoadNetwork | None = None,
        candidates: Sequence[CandidateProfile] = CANDIDATES,
        preferences: Preferences | None = None,
        active_key: str | CandidateKey | None = None,
        condition_store: ConditionStore | None = None,
        voice: VoiceSink | None = None,
        weights: ScoreWeights | None = None,
        predictor: Predictor = predict,
        tick_ms: int | None = None,
        proximity_m: float | None = None,
        now: datetime | None = None,
    ) -> None:
        self.network = network or default_network()
        self.candidates = tuple(candidates)
        for candidate in self.candidates:
            candidate_segments(self.network, candidate)
        self.conditions = condition_store or ConditionStore(
            (seg.id for seg in self.network.segments()),
            speed_delta=settings.condition_speed_delta,
            crowd_delta=settings.condition_crowd_delta,
            safety_delta=settings.condition_safety_delta,
            seed=settings.condition_seed,
        )
        self.preferences = preferences or Preferences.from_settings()
        self.active_key = resolve_candidate_key(active_key or settings.default_candidate)
        if self.active_key not in {c.key for c in self.candidates}:
            self.active_key = self.candidates[0].key
        self.weights = weights or ScoreWeights.from_settings()
        self.predictor = predictor
        self.progress = ProgressSimulator(
            tick_ms=tick_ms if tick_ms is not None else settings.progress_tick_ms,
            proximity_m=proximity_m if proximity_m is not None else settings.maneuver_proximity_m,
            voice=voice,
        )
        self.suggestions = SuggestionTracker()
        self.routes: dict[CandidateKey, EvaluatedRoute] = {}
        self.refresh(now or _utc_now())

    @property
    def active_route(self) -> EvaluatedRoute:
        return self.routes[self.active_key]

    @property
    def suggestion(self) -> Suggestion | None:
        return self.suggestions.current

    def refresh(self, now: datetime) -> dict[CandidateKey, EvaluatedRoute]:
        """Re-evaluate every candidate and recompute the suggestion."""
        t0 = time.perf_counter()
        self.routes = evaluate_all(
            self.network,
            self.conditions.snapshot(),
            self.preferences,
            now=now,
            candidates=self.candidates,
            weights=self.weights,
            predictor=self.predictor,
        )
        self.progress.load_route(self.active_route, now=now)
        self.suggestions.update(self.routes, self.active_key.value)
        record_tick("evaluation", duration_ms=_elapsed_ms(t0), at=now)
        log_event(
            "routes_evaluated",
            condition_version=self.conditions.snapshot().version,
            active_key=self.active_key.value,
            scores={key.value: round(route.score, 4) for key, route in self.routes.items()},
        )
        return self.routes

    def tick_conditions(self, now: datetime) -> dict[CandidateKey, EvaluatedRoute]:
        t0 = time.perf_counter()
        snapshot = self.conditions.tick(now)
        log_event("conditions_tick", condition_version=snapshot.version)
        routes = self.refresh(now)
        record_tick("conditions", duration_ms=_elapsed_ms(t0), at=now)
        return routes

    def tick_progress(self, now: datetime) -> list[ManeuverAnnouncement]:
        t0 = time.perf_counter()
        announcements = self.progress.tick(now)
        record_tick("progress", duration_ms=_elapsed_ms(t0), at=now)
        return announcements

    def set_preferences(
        self,
        update: PreferencesUpdate | None = None,
        *,
        now: datetime | None = None,
        **changes: Any,
    ) -> Preferences:
        requested: dict[str, Any] = {}
        if update is not None:
            requested.update(update.model_dump(exclude_none=True))
        requested.update({k: v for k, v in changes.items() if v is not None})

        merged = self.preferences.model_dump()
        merged.update(requested)
        applied = Preferences.model_validate(merged)

        for name, raw in requested.items():
            value = getattr(applied, name, None)
            if value is not None and float(raw) != float(value):
                log_event("preference_clamped", preference=name, requested=raw, applied=value)

        self.preferences = applied
        log_event("preferences_updated", **applied.model_dump())
        self.refresh(now or _utc_now())
        return applied

    def select_candidate(self, key: str | CandidateKey, *, now: datetime | None = None) -> EvaluatedRoute:
        resolved = resolve_candidate_key(key)
        if resolved not in self.routes:
            raise EngineError(
                reason_code="unknown_candidate",
                message=f"route candidate {resolved.value!r} is not offered in this session",
            )
        previous = self.active_key
        self.active_key = resolved
        route = self.active_route
        if resolved != previous:
            self.progress.load_route(route, now=now)
            log_event("candidate_selected", previous_key=previous.value, active_key=resolved.value)
        self.suggestions.update(self.routes, self.active_key.value)
        return route

    def accept_suggestion(self, *, now: datetime | None = None) -> EvaluatedRoute | None:
        pending = self.suggestion
        if pending is None:
            return None
        return self.select_candidate(pending.candidate_key, now=now)

    def start_simulation(self, *, now: datetime | None = None) -> None:
        self.progress.start(now=now)
        log_event("simulation_started", active_key=self.active_key.value)

    def stop_simulation(self) -> None:
        self.progress.stop()
        log_event("simulation_stopped", active_key=self.active_key.value)

    def candidate_list(self) -> CandidateListResponse:
        return CandidateListResponse(
            active_key=self.active_key.value,
            condition_version=self.conditions.snapshot().version,
            routes=list(self.routes.values()),
            suggestion=self.suggestion,
        )

    def progress_view(self) -> ProgressView:
        maneuver = self.progress.current_maneuver()
        return ProgressView(
            running=self.progress.running,
            path_index=self.progress.state.path_index,
            position=self.progress.position(),
            current_maneuver=maneuver,
            distance_to_maneuver_m=self.progress.distance_to(maneuver) if maneuver is not None else None,
        )

    def render_payload(self) -> RenderPayload:
        route = self.active_route
        signals: list[tuple[float, float]] = []
        for seg_id in route.segment_ids:
            for coord in self.network.segment(seg_id).signals:
                if coord not in signals:
                    signals.append(coord)
        return RenderPayload(
            active_key=self.active_key.value,
            route=route,
            summary=RouteSummary(
                distance_km=round(route.distance_m / 1000.0, 2),
                eta_min_rounded=int(round(route.eta_min)),
                avg_safety=round(route.avg_safety, 1),
            ),
            suggestion=self.suggestion,
            progress=self.progress_view(),
            start=TRIP_START,
            end=TRIP_END,
            intersections=[
                IntersectionView(id=ix.id, coord=ix.coord) for ix in self.network.intersections
            ],
            signals=signals,
        )
