from __future__ import annotations

import random

from route_advisor.models import EvaluatedRoute
from route_advisor.suggestions import SuggestionTracker, best_route, compute_suggestion


def _route(key: str, *, score: float, eta_min: float = 10.0, avg_safety: float = 60.0) -> EvaluatedRoute:
    return EvaluatedRoute(
        key=key,
        label=key.title(),
        color="#000000",
        segment_ids=["S1", "S2"],
        path=[(0.0, 0.0), (0.0, 0.001)],
        distance_m=111.0,
        eta_min=eta_min,
        steps=[],
        colored=[],
        maneuvers=[],
        avg_safety=avg_safety,
        avg_crowd=0.3,
        score=score,
    )


def _routes(*items: EvaluatedRoute) -> dict[str, EvaluatedRoute]:
    return {item.key: item for item in items}


def test_no_suggestion_when_active_is_best() -> None:
    routes = _routes(_route("fastest", score=0.1), _route("safest", score=0.4))
    assert compute_suggestion(routes, "safest") is None


def test_ties_keep_first_declared_route() -> None:
    routes = _routes(_route("fastest", score=0.4), _route("safest", score=0.4))
    assert best_route(routes.values()).key == "fastest"
    assert compute_suggestion(routes, "safest") is None
    assert compute_suggestion(routes, "fastest") is None


def test_suggestion_reports_only_improving_dimensions() -> None:
    routes = _routes(
        _route("fastest", score=0.1, eta_min=8.0, avg_safety=50.0),
        _route("safest", score=0.3, eta_min=12.0, avg_safety=79.0),
    )
    suggestion = compute_suggestion(routes, "fastest")

    assert suggestion is not None
    assert suggestion.candidate_key == "safest"
    assert suggestion.time_saved_min == 0.0
    assert suggestion.safety_gain == 29.0
    assert abs(suggestion.score_gain - 0.2) < 1e-12


def test_unknown_active_key_yields_no_suggestion() -> None:
    assert compute_suggestion(_routes(_route("fastest", score=1.0)), "night") is None
    assert best_route([]) is None


def test_suggestion_deltas_never_negative_randomized() -> None:
    rng = random.Random(7)
    keys = ["fastest", "safest", "balanced", "night", "female"]
    for _ in range(200):
        routes = _routes(
            *[
                _route(
                    key,
                    score=rng.uniform(-2.0, 1.0),
                    eta_min=rng.uniform(3.0, 20.0),
                    avg_safety=rng.uniform(0.0, 100.0),
                )
                for key in keys
            ]
        )
        active = rng.choice(keys)
        suggestion = compute_suggestion(routes, active)
        best = best_route(routes.values())
        if best.key == active:
            assert suggestion is None
            continue
        assert suggestion is not None
        assert suggestion.candidate_key == best.key
        assert suggestion.time_saved_min >= 0.0
        assert suggestion.safety_gain >= 0.0


def test_tracker_raises_and_clears() -> None:
    tracker = SuggestionTracker()
    routes = _routes(_route("fastest", score=0.1), _route("safest", score=0.4))

    raised = tracker.update(routes, "fastest")
    assert raised is not None and tracker.current is raised

    assert tracker.update(routes, "safest") is None
    assert tracker.current is None

    tracker.update(routes, "fastest")
    tracker.clear()
    assert tracker.current is None
