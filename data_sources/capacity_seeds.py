"""
Hospital capacity/specialty seed table
Curated stand-in for a real capacity feed (seeded for Pittsburgh). Built once
at import time and never mutated afterwards.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from .error_handling import NoMatchFound
from .places import Capacity, CapacityStatus


@dataclass(frozen=True)
class CapacitySeed:
    id: str
    name: str
    specialties: Tuple[str, ...]
    capacity: Capacity
    phone: Optional[str] = None
    website: Optional[str] = None


def normalize_name(name: Optional[str]) -> str:
    """Lowercase, '&' -> 'and', drop punctuation, collapse whitespace."""
    s = (name or "").lower().replace("&", " and ")
    s = re.sub(r"[^a-z0-9 ]", " ", s)
    return re.sub(r"\s+", " ", s).strip()


_SEEDED_AT = datetime.now(timezone.utc).isoformat()


def _capacity(status: CapacityStatus, beds_open: int, accepting: bool) -> Capacity:
    return Capacity(status=status, beds_open=beds_open, accepting_patients=accepting, updated_at=_SEEDED_AT)


# Table order matters: fuzzy lookups return the first containing match.
SEEDED_HOSPITALS: Tuple[CapacitySeed, ...] = (
    CapacitySeed(
        id="upmc-presbyterian",
        name="UPMC Presbyterian",
        specialties=("emergency", "cardiology", "orthopedics", "neurology", "pulmonology", "gastroenterology"),
        capacity=_capacity(CapacityStatus.YELLOW, 12, True),
        website="https://www.upmc.com/locations/hospitals/presbyterian",
    ),
    CapacitySeed(
        id="upmc-mercy",
        name="UPMC Mercy",
        specialties=("emergency", "cardiology", "neurology", "orthopedics"),
        capacity=_capacity(CapacityStatus.GREEN, 24, True),
        website="https://www.upmc.com/locations/hospitals/mercy",
    ),
    CapacitySeed(
        id="allegheny-general",
        name="Allegheny General Hospital",
        specialties=("emergency", "cardiology", "orthopedics", "neurology"),
        capacity=_capacity(CapacityStatus.RED, 3, False),
        website="https://www.ahn.org/locations/hospitals/allegheny-general",
    ),
    CapacitySeed(
        id="upmc-shadyside",
        name="UPMC Shadyside",
        specialties=("emergency", "cardiology", "dermatology", "gastroenterology", "pulmonology"),
        capacity=_capacity(CapacityStatus.YELLOW, 9, True),
        website="https://www.upmc.com/locations/hospitals/shadyside",
    ),
)


class SeedIndex:
    """Name lookup over an ordered seed table: exact first, then substring."""

    def __init__(self, seeds: Tuple[CapacitySeed, ...]):
        self.seeds = tuple(seeds)
        self._normalized = tuple((normalize_name(s.name), s) for s in self.seeds)
        self._exact: Dict[str, CapacitySeed] = {}
        for key, seed in self._normalized:
            self._exact.setdefault(key, seed)

    def lookup(self, name: Optional[str]) -> Optional[CapacitySeed]:
        """
        Find the seed for a facility name, or None.

        Substring containment is checked both ways in table order and the
        first hit wins, even when a later seed would match more closely.
        Short names embedded in longer unrelated names can false-positive.
        """
        n = normalize_name(name)
        if not n:
            return None
        if n in self._exact:
            return self._exact[n]
        for seed_name, seed in self._normalized:
            if seed_name and (seed_name in n or n in seed_name):
                return seed
        return None

    def require(self, name: Optional[str]) -> CapacitySeed:
        """Like lookup(), but raises NoMatchFound on a miss."""
        seed = self.lookup(name)
        if seed is None:
            raise NoMatchFound(f"No capacity seed for {name!r}")
        return seed


DEFAULT_SEED_INDEX = SeedIndex(SEEDED_HOSPITALS)


def get_hospital_seed_by_name(name: Optional[str]) -> Optional[CapacitySeed]:
    return DEFAULT_SEED_INDEX.lookup(name)
