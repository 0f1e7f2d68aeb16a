"""
Care place data model
Canonical records produced by the directory resolver and enriched downstream
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class PlaceCategory(str, Enum):
    """Kinds of care-seeking destinations."""
    HOSPITAL = "hospital"
    URGENT_CARE = "urgent_care"
    PRIMARY_CARE = "primary_care"
    SPECIALIST = "specialist"
    PHARMACY = "pharmacy"
    TRANSIT = "transit"


# Default category set for recommendations (everything except transit)
CLINICAL_CATEGORIES = (
    PlaceCategory.HOSPITAL,
    PlaceCategory.URGENT_CARE,
    PlaceCategory.PRIMARY_CARE,
    PlaceCategory.SPECIALIST,
    PlaceCategory.PHARMACY,
)


class CapacityStatus(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


@dataclass(frozen=True)
class Capacity:
    """Operational capacity snapshot for a hospital."""
    status: CapacityStatus
    beds_open: int
    accepting_patients: bool
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "beds_open": self.beds_open,
            "accepting_patients": self.accepting_patients,
            "updated_at": self.updated_at,
        }


@dataclass
class Place:
    """A single care destination discovered from the geo-data provider."""
    id: str
    category: PlaceCategory
    name: str
    lat: float
    lng: float
    address: str = ""
    phone: Optional[str] = None
    website: Optional[str] = None
    specialties: List[str] = field(default_factory=list)
    capacity: Optional[Capacity] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "name": self.name,
            "lat": self.lat,
            "lng": self.lng,
            "address": self.address,
            "phone": self.phone,
            "website": self.website,
            "specialties": list(self.specialties),
            "capacity": self.capacity.to_dict() if self.capacity else None,
        }


def parse_categories(raw: Optional[Iterable], default: Iterable[PlaceCategory] = CLINICAL_CATEGORIES) -> List[PlaceCategory]:
    """
    Turn user-supplied category names into PlaceCategory values.

    Accepts a comma-separated string or an iterable of strings/enums. Unknown
    names are ignored; if nothing valid remains, `default` is returned.
    """
    if raw is None:
        return list(default)
    if isinstance(raw, str):
        raw = raw.split(",")

    out: List[PlaceCategory] = []
    for item in raw:
        name = item.value if isinstance(item, PlaceCategory) else str(item).strip().lower()
        try:
            category = PlaceCategory(name)
        except ValueError:
            continue
        if category not in out:
            out.append(category)
    return out or list(default)
