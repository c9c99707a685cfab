from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from .road_network import Segment

EARTH_RADIUS_M = 6_371_000.0


class Coordinate(NamedTuple):
    """(latitude, longitude) in degrees."""

    lat: float
    lon: float


def distance_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle (haversine) distance in metres."""
    if a == b:
        return 0.0
    phi1 = math.radians(a[0])
    phi2 = math.radians(b[0])
    dphi = phi2 - phi1
    dlambda = math.radians(b[1] - a[1])
    h = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    h = min(1.0, max(0.0, h))
    return 2.0 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))


def path_length_m(points: Sequence[Coordinate]) -> float:
    if len(points) < 2:
        return 0.0
    total = 0.0
    for prev, cur in zip(points, points[1:]):
        total += distance_m(prev, cur)
    return total


def densify(points: Sequence[Coordinate], max_spacing_m: float | None) -> list[Coordinate]:
    """Insert evenly spaced points so no gap is longer than ``max_spacing_m``.

    Original vertices are kept as-is, so junctions and signal positions still match.
    A missing or non-positive spacing returns the points unchanged.
    """
    if not max_spacing_m or max_spacing_m <= 0 or len(points) < 2:
        return list(points)
    out: list[Coordinate] = [points[0]]
    for prev, cur in zip(points, points[1:]):
        pieces = math.ceil(distance_m(prev, cur) / max_spacing_m)
        for k in range(1, pieces):
            t = k / pieces
            out.append(Coordinate(prev[0] + ((cur[0] - prev[0]) * t), prev[1] + ((cur[1] - prev[1]) * t)))
        out.append(cur)
    return out


def _join_points(a: Coordinate, b: Coordinate, spacing_m: float | None) -> list[Coordinate]:
    # interior points only; both ends already belong to a segment
    return densify([a, b], spacing_m)[1:-1]


def build_path(segments: Iterable[Segment], *, join_spacing_m: float | None = None) -> list[Coordinate]:
    """Concatenate segment geometries, dropping the duplicated point at shared junctions.

    Segments that do not share an endpoint are joined by a straight synthetic edge,
    resampled to ``join_spacing_m`` when given.
    """
    path: list[Coordinate] = []
    for seg in segments:
        coords = list(seg.coords)
        if path and coords:
            if coords[0] == path[-1]:
                coords = coords[1:]
            else:
                path.extend(_join_points(path[-1], coords[0], join_spacing_m))
        path.extend(coords)
    return path


def segment_start_indices(
    segments: Sequence[Segment],
    *,
    join_spacing_m: float | None = None,
) -> list[int]:
    """Path index at which each segment begins inside ``build_path(segments)``.

    For a shared junction this is the junction point itself; for a synthetic join
    it is the first point of the segment.
    """
    starts: list[int] = []
    count = 0
    prev_last: Coordinate | None = None
    for seg in segments:
        coords = seg.coords
        if count and coords[0] == prev_last:
            starts.append(count - 1)
            count += len(coords) - 1
        else:
            if count and prev_last is not None:
                count += len(_join_points(prev_last, coords[0], join_spacing_m))
            starts.append(count)
            count += len(coords)
        prev_last = coords[-1]
    return starts
