from __future__ import annotations

from collections.abc import Iterable, Mapping

from .logging_utils import log_event
from .models import EvaluatedRoute, Suggestion


def best_route(routes: Iterable[EvaluatedRoute]) -> EvaluatedRoute | None:
    """Strictly highest score; ties keep the first route in iteration order."""
    best: EvaluatedRoute | None = None
    for route in routes:
        if best is None or route.score > best.score:
            best = route
    return best


def compute_suggestion(routes: Mapping[str, EvaluatedRoute], active_key: str) -> Suggestion | None:
    active = routes.get(active_key)
    if active is None:
        return None
    best = best_route(routes.values())
    if best is None or best.key == active.key or not best.score > active.score:
        return None
    return Suggestion(
        candidate_key=best.key,
        label=best.label,
        time_saved_min=max(0.0, active.eta_min - best.eta_min),
        safety_gain=max(0.0, best.avg_safety - active.avg_safety),
        score_gain=max(0.0, best.score - active.score),
    )


class SuggestionTracker:
    """Holds the current switch recommendation and logs raise/clear transitions."""

    def __init__(self) -> None:
        self._current: Suggestion | None = None

    @property
    def current(self) -> Suggestion | None:
        return self._current

    def update(self, routes: Mapping[str, EvaluatedRoute], active_key: str) -> Suggestion | None:
        previous = self._current
        self._current = compute_suggestion(routes, active_key)
        if self._current is not None and (
            previous is None or previous.candidate_key != self._current.candidate_key
        ):
            log_event(
                "suggestion_raised",
                active_key=active_key,
                candidate_key=self._current.candidate_key,
                time_saved_min=round(self._current.time_saved_min, 3),
                safety_gain=round(self._current.safety_gain, 3),
            )
        elif self._current is None and previous is not None:
            log_event("suggestion_cleared", active_key=active_key, previous_key=previous.candidate_key)
        return self._current

    def clear(self) -> None:
        self._current = None
