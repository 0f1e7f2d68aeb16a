"""
Facility enrichment
Attaches curated capacity/specialty data to hospital places.
"""

from dataclasses import replace
from typing import Iterable, List, Optional

from data_sources.capacity_seeds import CapacitySeed, SeedIndex, DEFAULT_SEED_INDEX
from data_sources.places import Place, PlaceCategory
from data_sources.utils import unique_lower
from logging_config import get_logger

logger = get_logger(__name__)


def apply_seed(place: Place, seed: CapacitySeed) -> Place:
    """
    Merge a seed into a place.

    Specialties are unioned (place's own first), capacity comes from the seed,
    and phone/website are only filled where the directory had none.
    """
    return replace(
        place,
        specialties=unique_lower(list(place.specialties) + list(seed.specialties)),
        capacity=seed.capacity,
        phone=place.phone or seed.phone,
        website=place.website or seed.website,
    )


def enrich_place(place: Place, index: Optional[SeedIndex] = None) -> Place:
    """Enrich a single hospital; other categories and unmatched names pass through."""
    if place.category != PlaceCategory.HOSPITAL:
        return place
    seed = (index or DEFAULT_SEED_INDEX).lookup(place.name)
    if seed is None:
        return place
    logger.debug(f"Matched {place.name!r} to capacity seed {seed.id}")
    return apply_seed(place, seed)


def enrich_places(places: Iterable[Place], index: Optional[SeedIndex] = None) -> List[Place]:
    """Return a new list with every hospital enriched where a seed matches."""
    return [enrich_place(p, index) for p in places]
