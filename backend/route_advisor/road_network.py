from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Any

from .geometry import Coordinate, densify
from .settings import settings


@dataclass(frozen=True)
class Segment:
    id: str
    coords: tuple[Coordinate, ...]
    base_speed_kmh: float
    base_safety: float
    street_id: str
    street_name: str
    signals: tuple[Coordinate, ...] = ()
    lanes: int = 1
    # Forecast safety bias for poorly lit, high-throughput roads (>= 0).
    lighting_penalty: float = 0.0

    def __post_init__(self) -> None:
        if len(self.coords) < 2:
            raise ValueError(f"segment {self.id!r} needs at least 2 coordinates")
        if self.base_speed_kmh <= 0:
            raise ValueError(f"segment {self.id!r} base speed must be positive")
        if not 0.0 <= self.base_safety <= 100.0:
            raise ValueError(f"segment {self.id!r} base safety must be within [0, 100]")
        if self.lanes < 1:
            raise ValueError(f"segment {self.id!r} needs at least one lane")
        if self.lighting_penalty < 0:
            raise ValueError(f"segment {self.id!r} lighting penalty must be non-negative")


@dataclass(frozen=True)
class Street:
    id: str
    name: str
    segments: tuple[Segment, ...]


@dataclass(frozen=True)
class Intersection:
    id: str
    coord: Coordinate


@dataclass(frozen=True)
class RoadNetwork:
    streets: tuple[Street, ...]
    intersections: tuple[Intersection, ...] = ()
    segment_index: Mapping[str, Segment] = field(default_factory=dict, compare=False, repr=False)
    # Spacing the segment polylines were resampled to, if any; reused for synthetic joins.
    max_point_spacing_m: float | None = None

    def segment(self, segment_id: str) -> Segment:
        try:
            return self.segment_index[segment_id]
        except KeyError as e:
            raise KeyError(f"unknown segment {segment_id!r}") from e

    def segments(self) -> tuple[Segment, ...]:
        return tuple(seg for street in self.streets for seg in street.segments)


def _coord(raw: Any) -> Coordinate:
    lat, lon = raw
    return Coordinate(float(lat), float(lon))


def build_network(
    streets: Iterable[dict[str, Any]],
    intersections: Iterable[dict[str, Any]] = (),
    *,
    max_point_spacing_m: float | None = None,
) -> RoadNetwork:
    """Build an immutable network from plain street/segment rows.

    Segment ids default to ``<street id><1-based position>`` so ``A1`` is the first
    segment of street ``A``. With ``max_point_spacing_m`` every polyline is
    resampled so consecutive points are at most that far apart.
    """
    spacing = max_point_spacing_m if max_point_spacing_m and max_point_spacing_m > 0 else None
    built_streets: list[Street] = []
    index: dict[str, Segment] = {}
    for street_row in streets:
        street_id = str(street_row["id"])
        street_name = str(street_row["name"])
        lighting_penalty = float(street_row.get("lighting_penalty", 0.0))
        segs: list[Segment] = []
        for pos, seg_row in enumerate(street_row["segments"], start=1):
            seg = Segment(
                id=str(seg_row.get("id") or f"{street_id}{pos}"),
                coords=tuple(densify([_coord(pt) for pt in seg_row["coords"]], spacing)),
                base_speed_kmh=float(seg_row["speed"]),
                base_safety=float(seg_row["safety"]),
                street_id=street_id,
                street_name=street_name,
                signals=tuple(_coord(pt) for pt in seg_row.get("signals", ())),
                lanes=int(seg_row.get("lanes", 1)),
                lighting_penalty=float(seg_row.get("lighting_penalty", lighting_penalty)),
            )
            if seg.id in index:
                raise ValueError(f"duplicate segment id {seg.id!r}")
            index[seg.id] = seg
            segs.append(seg)
        built_streets.append(Street(id=street_id, name=street_name, segments=tuple(segs)))

    built_intersections = tuple(
        Intersection(id=str(row["id"]), coord=_coord(row["coord"])) for row in intersections
    )
    return RoadNetwork(
        streets=tuple(built_streets),
        intersections=built_intersections,
        segment_index=MappingProxyType(index),
        max_point_spacing_m=spacing,
    )


TRIP_START = Coordinate(37.7745, -122.423)
TRIP_END = Coordinate(37.7782, -122.4095)

_DEMO_STREETS: tuple[dict[str, Any], ...] = (
    {
        "id": "A",
        "name": "Aurora Ave",
        "lighting_penalty": 4.0,
        "segments": [
            {
                "coords": [(37.776, -122.424), (37.7765, -122.421), (37.7768, -122.4185), (37.7772, -122.416)],
                "speed": 40,
                "safety": 62,
                "signals": [(37.7765, -122.421), (37.7772, -122.416)],
                "lanes": 2,
            },
            {
                "coords": [(37.7772, -122.416), (37.7783, -122.4135), (37.779, -122.4115)],
                "speed": 40,
                "safety": 55,
                "signals": [(37.7783, -122.4135)],
                "lanes": 2,
            },
        ],
    },
    {
        "id": "B",
        "name": "Beacon St",
        "lighting_penalty": 0.0,
        "segments": [
            {
                "coords": [(37.7745, -122.419), (37.7752, -122.417), (37.776, -122.4145)],
                "speed": 30,
                "safety": 80,
                "signals": [(37.7752, -122.417)],
                "lanes": 1,
            },
            {
                "coords": [(37.776, -122.4145), (37.777, -122.412), (37.7778, -122.41)],
                "speed": 30,
                "safety": 78,
                "signals": [(37.777, -122.412)],
                "lanes": 1,
            },
        ],
    },
    {
        "id": "C",
        "name": "Cobalt Blvd",
        "lighting_penalty": 8.0,
        "segments": [
            {
                "coords": [(37.7735, -122.4235), (37.773, -122.421), (37.7725, -122.418)],
                "speed": 50,
                "safety": 45,
                "signals": [(37.773, -122.421)],
                "lanes": 3,
            },
            {
                "coords": [(37.7725, -122.418), (37.772, -122.4155), (37.7715, -122.413)],
                "speed": 50,
                "safety": 42,
                "signals": [(37.772, -122.4155)],
                "lanes": 3,
            },
        ],
    },
)

_DEMO_INTERSECTIONS: tuple[dict[str, Any], ...] = (
    {"id": "I1", "coord": (37.7765, -122.421)},
    {"id": "I2", "coord": (37.7772, -122.416)},
    {"id": "I3", "coord": (37.7752, -122.417)},
    {"id": "I4", "coord": (37.776, -122.4145)},
    {"id": "I5", "coord": (37.773, -122.421)},
    {"id": "I6", "coord": (37.772, -122.4155)},
)


@lru_cache(maxsize=4)
def default_network(max_point_spacing_m: float | None = None) -> RoadNetwork:
    """The demo network, resampled to ``MAX_POINT_SPACING_M`` unless a spacing is given."""
    spacing = settings.max_point_spacing_m if max_point_spacing_m is None else max_point_spacing_m
    return build_network(_DEMO_STREETS, _DEMO_INTERSECTIONS, max_point_spacing_m=spacing)
