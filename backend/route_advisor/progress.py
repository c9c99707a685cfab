from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from .geometry import path_length_m
from .logging_utils import log_event
from .models import EvaluatedRoute, Maneuver

VoiceSink = Callable[[str], object]


@dataclass
class ProgressState:
    path_index: int = 0
    last_update: datetime | None = None


@dataclass(frozen=True)
class ManeuverAnnouncement:
    boundary_id: str
    label: str
    path_index: int
    anchor: tuple[float, float]
    distance_m: float


class ProgressSimulator:
    """Walks a simulated position along the active route's path.

    Each tick advances by a whole number of path points sized so the full path
    takes roughly the route's own ETA. Each maneuver boundary is announced at
    most once until the route changes.
    """

    def __init__(
        self,
        *,
        tick_ms: int,
        proximity_m: float,
        voice: VoiceSink | None = None,
    ) -> None:
        self.tick_ms = max(1, int(tick_ms))
        self.proximity_m = float(proximity_m)
        self.voice = voice
        self.state = ProgressState()
        self.running = False
        self._route: EvaluatedRoute | None = None
        self._announced: set[str] = set()

    @property
    def route(self) -> EvaluatedRoute | None:
        return self._route

    @property
    def announced(self) -> frozenset[str]:
        return frozenset(self._announced)

    def load_route(self, route: EvaluatedRoute, *, now: datetime | None = None) -> None:
        """Follow ``route``; progress resets only when the candidate changes."""
        switched = self._route is None or self._route.key != route.key
        self._route = route
        if switched:
            self.reset(now=now)
        else:
            self.state.path_index = min(self.state.path_index, self._last_index())

    def reset(self, *, now: datetime | None = None) -> None:
        self.state = ProgressState(path_index=0, last_update=now)
        self._announced.clear()
        log_event(
            "progress_reset",
            route_key=self._route.key if self._route is not None else None,
        )

    def start(self, *, now: datetime | None = None) -> None:
        self.running = True
        self.state.last_update = now

    def stop(self) -> None:
        self.running = False

    def _last_index(self) -> int:
        if self._route is None:
            return 0
        return max(0, len(self._route.path) - 1)

    def step_size(self) -> int:
        if self._route is None:
            return 1
        point_count = len(self._route.path)
        total_eta_ms = self._route.eta_min * 60_000.0
        tick_count = max(1.0, total_eta_ms / self.tick_ms)
        return max(1, round(point_count / tick_count))

    def position(self) -> tuple[float, float] | None:
        if self._route is None or not self._route.path:
            return None
        return self._route.path[self.state.path_index]

    def current_maneuver(self) -> Maneuver | None:
        if self._route is None:
            return None
        ahead = [m for m in self._route.maneuvers if m.path_index > self.state.path_index]
        if not ahead:
            return None
        return min(ahead, key=lambda m: m.path_index)

    def distance_to(self, maneuver: Maneuver) -> float:
        if self._route is None:
            return 0.0
        start = self.state.path_index
        return path_length_m(self._route.path[start : maneuver.path_index + 1])

    def tick(self, now: datetime) -> list[ManeuverAnnouncement]:
        if not self.running or self._route is None:
            return []
        self.state.path_index = min(self._last_index(), self.state.path_index + self.step_size())
        self.state.last_update = now
        announcement = self.check_maneuver()
        return [announcement] if announcement is not None else []

    def check_maneuver(self) -> ManeuverAnnouncement | None:
        maneuver = self.current_maneuver()
        if maneuver is None or maneuver.boundary_id in self._announced:
            return None
        remaining_m = self.distance_to(maneuver)
        if remaining_m >= self.proximity_m:
            return None
        self._announced.add(maneuver.boundary_id)
        announcement = ManeuverAnnouncement(
            boundary_id=maneuver.boundary_id,
            label=maneuver.label,
            path_index=maneuver.path_index,
            anchor=maneuver.anchor,
            distance_m=remaining_m,
        )
        log_event(
            "maneuver_announced",
            boundary_id=maneuver.boundary_id,
            label=maneuver.label,
            distance_m=round(remaining_m, 2),
        )
        self._speak(maneuver.label)
        return announcement

    def _speak(self, text: str) -> None:
        if self.voice is None:
            return
        try:
            self.voice(text)
        except Exception as e:  # voice output must never stall the simulation
            log_event("voice_unavailable", error=str(e), error_type=type(e).__name__)
