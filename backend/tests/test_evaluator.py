from __future__ import annotations

from datetime import UTC, datetime

import pytest

from route_advisor.candidates import CANDIDATES, CandidateKey, CandidateProfile, get_candidate
from route_advisor.conditions import ConditionSnapshot, SegmentCondition, neutral_snapshot
from route_advisor.evaluator import (
    LOW_VISIBILITY_NOTE,
    WELL_LIT_NOTE,
    ScoreWeights,
    desirability_score,
    evaluate,
    evaluate_all,
    hazard_note,
    safety_band,
)
from route_advisor.geometry import path_length_m
from route_advisor.models import Preferences
from route_advisor.prediction import Forecast
from route_advisor.road_network import build_network, default_network

NOW = datetime(2026, 3, 2, 22, 40, tzinfo=UTC)
WEIGHTS = ScoreWeights()


def _neutral(network=None) -> ConditionSnapshot:
    network = network or default_network()
    return neutral_snapshot(seg.id for seg in network.segments())


def test_safest_route_under_neutral_conditions_matches_closed_form() -> None:
    network = default_network()
    d1 = path_length_m(network.segment("B1").coords)
    d2 = path_length_m(network.segment("B2").coords)

    route = evaluate(get_candidate("safest"), network, _neutral(), 0, Preferences(), now=NOW, weights=WEIGHTS)

    assert route.distance_m == pytest.approx(d1 + d2, rel=1e-12)
    assert route.eta_min == pytest.approx((route.distance_m / 1000.0) / 30.0 * 60.0, rel=1e-12)
    assert route.avg_safety == pytest.approx((80.0 * d1 + 78.0 * d2) / (d1 + d2), rel=1e-12)
    assert abs(route.avg_safety - 79.0) < 1.0
    assert route.avg_crowd == pytest.approx(0.3)


def test_evaluate_is_deterministic_for_fixed_inputs() -> None:
    network = default_network()
    conditions = ConditionSnapshot(
        version=4,
        conditions={"C1": SegmentCondition(0.8, 0.9, -12.0), "A2": SegmentCondition(1.2, 0.1, 7.5)},
    )
    prefs = Preferences(avoid_busy=0.7, prefer_lit=0.2, comfort=0.9, forecast_horizon_minutes=40)
    first = evaluate(get_candidate("fastest"), network, conditions, 40, prefs, now=NOW, weights=WEIGHTS)
    second = evaluate(get_candidate("fastest"), network, conditions, 40, prefs, now=NOW, weights=WEIGHTS)

    assert first.model_dump() == second.model_dump()
    assert first.condition_version == 4


@pytest.mark.parametrize("forecast_adjustment, expected", [(500.0, 100.0), (-500.0, 0.0)])
def test_effective_safety_is_clamped(forecast_adjustment: float, expected: float) -> None:
    network = default_network()
    conditions = ConditionSnapshot(
        version=1,
        conditions={seg.id: SegmentCondition(1.0, 0.3, 20.0 if expected else -20.0) for seg in network.segments()},
    )

    route = evaluate(
        get_candidate("balanced"),
        network,
        conditions,
        30,
        Preferences(),
        now=NOW,
        weights=WEIGHTS,
        predictor=lambda seg, horizon, now: Forecast(1.0, forecast_adjustment),
    )

    assert all(step.safety == expected for step in route.steps)
    assert route.avg_safety == pytest.approx(expected)


def test_effective_speed_has_a_floor() -> None:
    network = default_network()
    route = evaluate(
        get_candidate("safest"),
        network,
        _neutral(),
        0,
        Preferences(),
        now=NOW,
        weights=WEIGHTS,
        predictor=lambda seg, horizon, now: Forecast(0.0, 0.0),
    )
    assert route.eta_min == pytest.approx((route.distance_m / 1000.0) / 5.0 * 60.0, rel=1e-12)


def test_steps_instructions_and_hazard_notes() -> None:
    network = default_network()
    route = evaluate(get_candidate("fastest"), network, _neutral(), 0, Preferences(), now=NOW, weights=WEIGHTS)

    assert [step.instruction for step in route.steps] == [
        "Head onto Cobalt Blvd",
        "Continue along Cobalt Blvd",
        "Continue along Aurora Ave",
    ]
    # Cobalt 45/42 minus lighting 8, Aurora 55 minus lighting 4.
    assert [step.safety for step in route.steps] == pytest.approx([37.0, 34.0, 51.0])
    assert [step.note for step in route.steps] == [LOW_VISIBILITY_NOTE, LOW_VISIBILITY_NOTE, None]
    assert [c.band for c in route.colored] == ["low", "low", "medium"]


def test_hazard_note_dead_zone() -> None:
    assert hazard_note(75.0) == WELL_LIT_NOTE
    assert hazard_note(45.0) == LOW_VISIBILITY_NOTE
    assert hazard_note(60.0) is None
    assert hazard_note(45.01) is None
    assert hazard_note(74.99) is None


def test_safety_bands_are_five_ordered_classes() -> None:
    assert safety_band(100.0) == ("high", "#10b981")
    assert safety_band(80.0)[0] == "high"
    assert safety_band(79.99)[0] == "good"
    assert safety_band(60.0)[0] == "good"
    assert safety_band(40.0)[0] == "medium"
    assert safety_band(20.0)[0] == "low"
    assert safety_band(19.99) == ("critical", "#ef4444")
    assert safety_band(0.0)[0] == "critical"


def test_desirability_score_linear_utility() -> None:
    prefs = Preferences(avoid_busy=1.0, prefer_lit=1.0, comfort=0.0)
    score = desirability_score(avg_safety=80.0, eta_min=15.0, avg_crowd=0.5, preferences=prefs, weights=WEIGHTS)
    assert score == pytest.approx(0.8 - 0.5 - 0.4)

    custom = ScoreWeights(baseline_weight=1.0, crowd_scale=0.0, eta_normalizer_min=60.0)
    score = desirability_score(avg_safety=50.0, eta_min=30.0, avg_crowd=1.0, preferences=prefs, weights=custom)
    assert score == pytest.approx(0.5 - 0.5)


def test_avoid_busy_penalises_crowded_candidates() -> None:
    network = default_network()
    conditions = ConditionSnapshot(
        version=1,
        conditions={
            seg.id: SegmentCondition(1.0, 0.1 if seg.street_id == "B" else 0.6, 0.0) for seg in network.segments()
        },
    )
    calm = Preferences(avoid_busy=0.0, prefer_lit=0.0, comfort=0.0)
    busy = Preferences(avoid_busy=1.0, prefer_lit=0.0, comfort=0.0)

    calm_routes = evaluate_all(network, conditions, calm, now=NOW, weights=WEIGHTS)
    busy_routes = evaluate_all(network, conditions, busy, now=NOW, weights=WEIGHTS)
    min_crowd = min(route.avg_crowd for route in calm_routes.values())

    checked = 0
    for key, route in calm_routes.items():
        if route.avg_crowd > min_crowd:
            assert busy_routes[key].score < route.score
            checked += 1
    assert checked >= 1


def test_evaluate_all_samples_now_once_in_declaration_order() -> None:
    seen: list[datetime] = []

    def recording(seg, horizon, now):
        seen.append(now)
        return Forecast()

    routes = evaluate_all(default_network(), _neutral(), Preferences(), now=NOW, weights=WEIGHTS, predictor=recording)

    assert list(routes) == [c.key for c in CANDIDATES]
    assert set(seen) == {NOW}
    assert routes[CandidateKey.SAFEST].evaluated_at == NOW


def test_maneuvers_and_lane_hints() -> None:
    network = default_network(max_point_spacing_m=0)
    safest = evaluate(get_candidate("safest"), network, _neutral(), 0, Preferences(), now=NOW, weights=WEIGHTS)
    fastest = evaluate(get_candidate("fastest"), network, _neutral(), 0, Preferences(), now=NOW, weights=WEIGHTS)

    assert len(safest.path) == 5
    assert [m.path_index for m in safest.maneuvers] == [2]
    assert safest.maneuvers[0].anchor == (37.776, -122.4145)
    assert safest.maneuvers[0].label == "Continue along Beacon St"
    assert safest.lane_hints == [safest.path[0], safest.path[3]]

    assert [m.path_index for m in fastest.maneuvers] == [2, 5]
    assert fastest.maneuvers[1].label == "Continue along Aurora Ave"


def test_resampled_network_keeps_maneuver_anchors_on_segment_starts() -> None:
    network = default_network()
    fastest = evaluate(get_candidate("fastest"), network, _neutral(), 0, Preferences(), now=NOW, weights=WEIGHTS)

    assert [m.label for m in fastest.maneuvers] == ["Continue along Cobalt Blvd", "Continue along Aurora Ave"]
    for maneuver in fastest.maneuvers:
        assert fastest.path[maneuver.path_index] == network.segment(maneuver.to_segment_id).coords[0]
        assert maneuver.anchor == tuple(fastest.path[maneuver.path_index])
    assert fastest.maneuvers[1].anchor == (37.7772, -122.416)
    assert fastest.distance_m == pytest.approx(
        sum(path_length_m(network.segment(seg_id).coords) for seg_id in ("C1", "C2", "A2"))
    )


def test_degenerate_weights_guarded_for_tiny_candidates() -> None:
    network = build_network(
        [
            {
                "id": "T",
                "name": "Tiny Ln",
                "segments": [
                    {"coords": [(1.0, 1.0), (1.0, 1.0)], "speed": 20, "safety": 70},
                    {"coords": [(1.0, 1.0), (1.0, 1.0)], "speed": 20, "safety": 90},
                ],
            }
        ]
    )
    candidate = CandidateProfile(CandidateKey.BALANCED, "Tiny", "#000000", ("T1", "T2"))

    route = evaluate(candidate, network, _neutral(network), 0, Preferences(), now=NOW, weights=WEIGHTS)

    assert route.distance_m == 0.0
    assert route.eta_min == 0.0
    assert route.avg_safety == 0.0
    assert route.avg_crowd == 0.0
