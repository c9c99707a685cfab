from __future__ import annotations

import argparse
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Sequence

from route_advisor.candidates import CANDIDATES
from route_advisor.conditions import ConditionStore
from route_advisor.logging_utils import log_context
from route_advisor.models import Preferences
from route_advisor.road_network import default_network
from route_advisor.session import NavigationSession
from route_advisor.settings import settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Drive a navigation session on a synthetic clock and summarise what it announced."
    )
    parser.add_argument("--seconds", type=float, default=60.0)
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--active", default=settings.default_candidate, choices=[c.key.value for c in CANDIDATES])
    parser.add_argument("--avoid-busy", type=float, default=settings.default_avoid_busy)
    parser.add_argument("--prefer-lit", type=float, default=settings.default_prefer_lit)
    parser.add_argument("--comfort", type=float, default=settings.default_comfort)
    parser.add_argument("--horizon-min", type=int, default=settings.default_horizon_min)
    parser.add_argument("--accept-suggestions", action="store_true")
    parser.add_argument("--start-time", default="2026-01-01T08:00:00+00:00")
    parser.add_argument("--out-file", default=None)
    return parser


def run_demo(args: argparse.Namespace) -> dict[str, Any]:
    start = datetime.fromisoformat(args.start_time)
    if start.tzinfo is None:
        start = start.replace(tzinfo=UTC)

    spoken: list[str] = []
    network = default_network()
    session = NavigationSession(
        network=network,
        condition_store=ConditionStore(
            (seg.id for seg in network.segments()),
            speed_delta=settings.condition_speed_delta,
            crowd_delta=settings.condition_crowd_delta,
            safety_delta=settings.condition_safety_delta,
            seed=args.seed,
        ),
        preferences=Preferences(
            avoid_busy=args.avoid_busy,
            prefer_lit=args.prefer_lit,
            comfort=args.comfort,
            forecast_horizon_minutes=args.horizon_min,
        ),
        active_key=args.active,
        voice=spoken.append,
        now=start,
    )
    session.start_simulation(now=start)

    tick = timedelta(milliseconds=settings.progress_tick_ms)
    condition_every = max(1, round((settings.condition_tick_s * 1000.0) / settings.progress_tick_ms))
    total_ticks = max(0, int((args.seconds * 1000.0) // settings.progress_tick_ms))

    suggestions: list[dict[str, Any]] = []
    switches: list[dict[str, str]] = []
    now = start
    for idx in range(1, total_ticks + 1):
        now = start + (tick * idx)
        if idx % condition_every == 0:
            session.tick_conditions(now)
            pending = session.suggestion
            if pending is not None:
                suggestions.append({"at": now.isoformat(), **pending.model_dump()})
                if args.accept_suggestions:
                    previous = session.active_key.value
                    session.accept_suggestion(now=now)
                    switches.append({"at": now.isoformat(), "from": previous, "to": session.active_key.value})
        session.tick_progress(now)

    payload = session.render_payload()
    return {
        "started_at": start.isoformat(),
        "finished_at": now.isoformat(),
        "seed": args.seed,
        "condition_version": session.conditions.snapshot().version,
        "active_key": payload.active_key,
        "summary": payload.summary.model_dump(),
        "scores": {key.value: route.score for key, route in session.routes.items()},
        "announcements": spoken,
        "suggestions": suggestions,
        "switches": switches,
        "progress": payload.progress.model_dump(),
    }


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    with log_context(run="headless_demo", seed=args.seed):
        summary = run_demo(args)
    text = json.dumps(summary, indent=2, default=str)
    if args.out_file:
        out = Path(args.out_file)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
    print(text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
