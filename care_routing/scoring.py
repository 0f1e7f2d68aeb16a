"""
Candidate scoring
Blends specialty match, operational capacity, travel time and distance into
one composite score.
"""

from typing import Iterable, Optional

from data_sources.places import Capacity, CapacityStatus, PlaceCategory
from data_sources.utils import unique_lower

SCORE_WEIGHTS = {
    'specialty_match': 0.45,
    'capacity': 0.30,
    'eta': 0.20,
    'distance': 0.05,
}

# Stand-ins for a missing ETA/distance; keep the inverse terms near zero
MISSING_ETA_SECONDS = 99999
MISSING_DISTANCE_METERS = 9e9

NEUTRAL_SPECIALTY_SCORE = 0.5   # patient has no specialty requirement
NO_SPECIALTY_DATA_SCORE = 0.2   # place publishes no specialties
NEUTRAL_CAPACITY_SCORE = 0.5    # non-hospital, or hospital without data
NOT_ACCEPTING_SCORE = 0.05

ACCEPTING_STATUS_SCORES = {
    CapacityStatus.GREEN: 1.0,
    CapacityStatus.YELLOW: 0.6,
    CapacityStatus.RED: 0.2,
}


def specialty_match_score(required: Iterable[str], specialties: Optional[Iterable[str]]) -> float:
    """Fraction of required specialties the place offers (exact lowercase match)."""
    req = unique_lower(required)
    if not req:
        return NEUTRAL_SPECIALTY_SCORE
    have = set(unique_lower(specialties))
    if not have:
        return NO_SPECIALTY_DATA_SCORE
    hits = sum(1 for r in req if r in have)
    return hits / len(req)


def capacity_status_score(status: CapacityStatus, accepting_patients: bool) -> float:
    if not accepting_patients:
        return NOT_ACCEPTING_SCORE
    return ACCEPTING_STATUS_SCORES.get(status, ACCEPTING_STATUS_SCORES[CapacityStatus.RED])


def capacity_score(category: PlaceCategory, capacity: Optional[Capacity]) -> float:
    """Capacity score; only hospitals with capacity data move off neutral."""
    if category != PlaceCategory.HOSPITAL or capacity is None:
        return NEUTRAL_CAPACITY_SCORE
    return capacity_status_score(capacity.status, capacity.accepting_patients)


def composite_score(specialty: float, capacity: float,
                    eta_seconds: Optional[float] = None,
                    distance_meters: Optional[float] = None) -> float:
    eta = MISSING_ETA_SECONDS if eta_seconds is None else eta_seconds
    dist = MISSING_DISTANCE_METERS if distance_meters is None else distance_meters
    return (
        SCORE_WEIGHTS['specialty_match'] * specialty
        + SCORE_WEIGHTS['capacity'] * capacity
        + SCORE_WEIGHTS['eta'] * (1.0 / (eta + 1))
        + SCORE_WEIGHTS['distance'] * (1.0 / (dist + 1))
    )
