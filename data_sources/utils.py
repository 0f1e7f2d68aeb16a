"""
Shared utilities for CareNav data sources
Distance calculations and coordinate helpers
"""

import math
from typing import Iterable, List, Optional


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in meters using the Haversine formula.

    Args:
        lat1, lon1: First point coordinates
        lat2, lon2: Second point coordinates

    Returns:
        Distance in meters
    """
    R = 6371000  # Earth radius in meters
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = math.sin(delta_phi/2)**2 + math.cos(phi1) * \
        math.cos(phi2) * math.sin(delta_lambda/2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1-a))

    return R * c


def clamp_radius(radius_m: float, min_radius_m: int = 100, max_radius_m: int = 50000) -> int:
    """Clamp a search radius into [min_radius_m, max_radius_m] meters."""
    try:
        radius = float(radius_m)
    except (TypeError, ValueError):
        return max_radius_m
    if math.isnan(radius):
        return max_radius_m
    return int(round(max(min_radius_m, min(radius, max_radius_m))))


def is_finite_number(value) -> bool:
    """True for int/float values that are not NaN or infinite (bools excluded)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def safe_number(value, fallback: float) -> float:
    """Return value if it is a finite number, otherwise fallback."""
    return float(value) if is_finite_number(value) else fallback


def unique_lower(values: Optional[Iterable]) -> List[str]:
    """
    Lowercase, strip and deduplicate strings, keeping first-seen order.
    Empty strings and None are dropped.
    """
    seen = set()
    out = []
    for value in values or []:
        item = ("" if value is None else str(value)).strip().lower()
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out
