from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .engine_errors import EngineError
from .road_network import RoadNetwork, Segment


class CandidateKey(str, Enum):
    FASTEST = "fastest"
    SAFEST = "safest"
    BALANCED = "balanced"
    NIGHT = "night"
    FEMALE = "female"


@dataclass(frozen=True)
class CandidateProfile:
    key: CandidateKey
    label: str
    color: str
    segment_ids: tuple[str, ...]


# Declaration order is the tie-break order for best-route selection.
CANDIDATES: tuple[CandidateProfile, ...] = (
    CandidateProfile(CandidateKey.FASTEST, "Fastest", "#0ea5e9", ("C1", "C2", "A2")),
    CandidateProfile(CandidateKey.SAFEST, "Safest", "#10b981", ("B1", "B2")),
    CandidateProfile(CandidateKey.BALANCED, "Balanced", "#f59e0b", ("A1", "B1", "B2")),
    CandidateProfile(CandidateKey.NIGHT, "Night-Safe", "#6366f1", ("A1", "A2")),
    CandidateProfile(CandidateKey.FEMALE, "Female-Friendly", "#ec4899", ("B1", "A2")),
)

_BY_KEY: dict[CandidateKey, CandidateProfile] = {c.key: c for c in CANDIDATES}


def resolve_candidate_key(key: str | CandidateKey) -> CandidateKey:
    try:
        return CandidateKey(str(getattr(key, "value", key)).strip().lower())
    except ValueError as e:
        raise EngineError(
            reason_code="unknown_candidate",
            message=f"unknown route candidate {key!r}",
            details={"known": [c.key.value for c in CANDIDATES]},
        ) from e


def get_candidate(key: str | CandidateKey) -> CandidateProfile:
    return _BY_KEY[resolve_candidate_key(key)]


def candidate_segments(network: RoadNetwork, candidate: CandidateProfile) -> tuple[Segment, ...]:
    return tuple(network.segment(seg_id) for seg_id in candidate.segment_ids)
