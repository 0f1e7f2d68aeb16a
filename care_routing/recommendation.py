"""
Care Recommendation
Ranks nearby care places for a patient and picks one to recommend.

Pipeline:
1. Resolve places around the origin (Overpass) and enrich hospitals with
   seeded capacity/specialty data
2. Emergency filter: emergencies only consider hospitals
3. Estimate travel for at most `max_estimated_candidates` places, fanned out
   concurrently and paired back by index
4. Score each candidate and sort by composite score (stable, descending)
5. Pick the recommendation: top score, or under the emergency override the
   nearest hospital that is accepting and not red, then the nearest
   hospital of any status, then the top score
6. Explain the pick with ordered reasoning strings
"""

import math
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from data_sources import overpass_api
from data_sources.error_handling import with_fallback
from data_sources.osrm_api import DRIVING, TravelEstimate, TravelEstimator, get_default_estimator
from data_sources.places import CLINICAL_CATEGORIES, CapacityStatus, Place, PlaceCategory
from data_sources.provider_config import ProviderSettings, get_provider_settings
from data_sources.utils import unique_lower
from logging_config import get_logger, log_performance, log_recommendation
from .enrichment import enrich_places
from .scoring import capacity_score, composite_score, specialty_match_score

logger = get_logger(__name__)

# ETA used to order hospitals that have no estimate under the emergency override
_UNKNOWN_ETA = 9e9
MAX_ESTIMATE_WORKERS = 8

PlaceSource = Callable[[float, float, float, List[PlaceCategory]], List[Place]]


class Severity(str, Enum):
    ROUTINE = "routine"
    SOON = "soon"
    EMERGENCY = "emergency"


@dataclass
class PatientNeeds:
    severity: Severity = Severity.ROUTINE
    required_specialties: List[str] = field(default_factory=list)
    flags: List[str] = field(default_factory=list)
    complaint: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.severity, Severity):
            try:
                self.severity = Severity(str(self.severity or "").strip().lower())
            except ValueError:
                self.severity = Severity.ROUTINE
        self.required_specialties = unique_lower(self.required_specialties)
        self.flags = unique_lower(self.flags)

    @property
    def is_emergency(self) -> bool:
        return self.severity == Severity.EMERGENCY or "emergency" in self.flags

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PatientNeeds":
        data = data or {}
        return cls(
            severity=data.get("severity") or Severity.ROUTINE,
            required_specialties=list(data.get("required_specialties") or []),
            flags=list(data.get("flags") or []),
            complaint=data.get("complaint"),
        )


@dataclass
class RankedCandidate:
    place: Place
    specialty_match_score: float
    capacity_score: float
    composite_score: float
    distance_meters: Optional[float] = None
    eta_seconds: Optional[float] = None
    eta_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        out = self.place.to_dict()
        out.update({
            "distance_meters": self.distance_meters,
            "eta_seconds": self.eta_seconds,
            "eta_fallback": self.eta_fallback,
            "specialty_match_score": self.specialty_match_score,
            "capacity_score": self.capacity_score,
            "composite_score": self.composite_score,
        })
        return out


@dataclass
class Recommendation:
    recommended_place: Optional[RankedCandidate]
    ranked_places: List[RankedCandidate]
    reasoning: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommended_place": self.recommended_place.to_dict() if self.recommended_place else None,
            "ranked_places": [c.to_dict() for c in self.ranked_places],
            "reasoning": list(self.reasoning),
        }


def nearby(lat: float, lon: float, radius_m: float,
           categories: Optional[Iterable[PlaceCategory]] = None,
           settings: Optional[ProviderSettings] = None,
           place_source: Optional[PlaceSource] = None) -> List[Place]:
    """Nearby places of the given categories, hospitals enriched with seed data."""
    categories = list(categories) if categories else list(CLINICAL_CATEGORIES)
    if place_source is None:
        places = overpass_api.get_nearby_places(lat, lon, radius_m, categories, settings=settings)
    else:
        places = place_source(lat, lon, radius_m, categories)
    return enrich_places(places)


@with_fallback(None)
def _estimate_travel(estimator: TravelEstimator, lat: float, lon: float, place: Place) -> Optional[TravelEstimate]:
    return estimator.summary((lat, lon), (place.lat, place.lng), DRIVING)


def _estimate_all(estimator: TravelEstimator, lat: float, lon: float,
                  places: List[Place]) -> List[Optional[TravelEstimate]]:
    """Concurrent summaries, returned in the same order as `places`."""
    if not places:
        return []
    with ThreadPoolExecutor(max_workers=min(MAX_ESTIMATE_WORKERS, len(places))) as executor:
        futures = [executor.submit(_estimate_travel, estimator, lat, lon, p) for p in places]
        return [f.result() for f in futures]


def score_candidate(place: Place, required: List[str],
                    estimate: Optional[TravelEstimate]) -> RankedCandidate:
    distance = estimate.distance_meters if estimate is not None else None
    eta = estimate.duration_seconds if estimate is not None else None
    specialty = specialty_match_score(required, place.specialties)
    capacity = capacity_score(place.category, place.capacity)
    return RankedCandidate(
        place=place,
        specialty_match_score=specialty,
        capacity_score=capacity,
        composite_score=composite_score(specialty, capacity, eta, distance),
        distance_meters=distance,
        eta_seconds=eta,
        eta_fallback=bool(estimate and estimate.fallback),
    )


def _nearest_by_eta(candidates: List[RankedCandidate]) -> Optional[RankedCandidate]:
    if not candidates:
        return None
    return min(candidates, key=lambda c: _UNKNOWN_ETA if c.eta_seconds is None else c.eta_seconds)


def choose_recommendation(ranked: List[RankedCandidate], emergency: bool) -> Optional[RankedCandidate]:
    """
    Pick the recommended candidate from a ranked list.

    Non-emergency: the top composite score. Emergency: the nearest hospital
    (by ETA) that reports accepting patients with a non-red status, else the
    nearest hospital of any status, else the top of the list.
    """
    top = ranked[0] if ranked else None
    if not emergency:
        return top

    hospitals = [c for c in ranked if c.place.category == PlaceCategory.HOSPITAL]
    accepting = [
        c for c in hospitals
        if c.place.capacity is not None
        and c.place.capacity.accepting_patients
        and c.place.capacity.status != CapacityStatus.RED
    ]
    return _nearest_by_eta(accepting) or _nearest_by_eta(hospitals) or top


def build_reasoning(best: Optional[RankedCandidate], required: List[str], emergency: bool) -> List[str]:
    if best is None:
        return []

    reasoning = []
    if emergency:
        reasoning.append("Emergency override: routing to an ER/hospital first.")
    if (best.eta_seconds or 0) > 0:
        reasoning.append(f"Short travel time (ETA ~{math.floor(best.eta_seconds / 60 + 0.5)} min).")
    if required:
        have = set(best.place.specialties)
        hits = [r for r in required if r in have]
        if hits:
            reasoning.append(f"Specialty match: {', '.join(hits)}.")
        else:
            reasoning.append("Limited specialty match found nearby; consider calling ahead.")
    capacity = best.place.capacity
    if capacity is not None:
        accepting = "accepting" if capacity.accepting_patients else "not accepting"
        reasoning.append(f"Capacity: {capacity.status.value.upper()} ({accepting}).")
    elif best.place.category == PlaceCategory.HOSPITAL:
        reasoning.append("Capacity data not available for this hospital.")
    return reasoning


def recommend(lat: float, lon: float, radius_m: float,
              categories: Optional[Iterable[PlaceCategory]],
              patient_needs: Optional[PatientNeeds] = None,
              estimator: Optional[TravelEstimator] = None,
              settings: Optional[ProviderSettings] = None,
              place_source: Optional[PlaceSource] = None,
              request_id: Optional[str] = None) -> Recommendation:
    """
    Rank nearby care places for a patient and recommend one.

    Provider failures degrade the answer (fewer places, approximate or
    missing ETAs) instead of raising.

    Args:
        lat, lon: Patient location
        radius_m: Search radius in meters
        categories: Place categories to consider (default: the clinical five)
        patient_needs: Severity, required specialties and flags
        estimator: Travel estimator (default: process-wide OSRM estimator)
        settings: Provider settings (default: loaded from the environment)
        place_source: Replacement for the Overpass lookup, same signature

    Returns:
        Recommendation with the pick, the ranked list and reasoning strings
    """
    start = time.time()
    settings = settings or get_provider_settings()
    needs = patient_needs or PatientNeeds()
    emergency = needs.is_emergency
    required = needs.required_specialties

    places = nearby(lat, lon, radius_m, categories, settings=settings, place_source=place_source)
    if emergency:
        places = [p for p in places if p.category == PlaceCategory.HOSPITAL]
    bounded = places[:settings.max_estimated_candidates]

    estimates = _estimate_all(estimator or get_default_estimator(), lat, lon, bounded)
    candidates = [score_candidate(p, required, est) for p, est in zip(bounded, estimates)]
    ranked = sorted(candidates, key=lambda c: c.composite_score, reverse=True)

    recommended = choose_recommendation(ranked, emergency)
    reasoning = build_reasoning(recommended, required, emergency)

    log_recommendation(
        logger,
        recommended.place.name if recommended else None,
        len(ranked),
        emergency,
        request_id=request_id,
        lat=lat,
        lon=lon,
    )
    log_performance(logger, "recommend", time.time() - start, request_id=request_id)
    return Recommendation(recommended_place=recommended, ranked_places=ranked, reasoning=reasoning)
