"""
OpenStreetMap Overpass API Client
Resolves nearby care places (hospitals, clinics, pharmacies, transit) into
canonical Place records
"""

import math
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import requests

from .error_handling import (
    CareNavError,
    DataShapeError,
    ProviderError,
    handle_api_timeout,
)
from .places import Place, PlaceCategory
from .provider_config import ProviderSettings, get_provider_settings
from .utils import clamp_radius, is_finite_number, unique_lower
from logging_config import get_logger, log_api_call, log_error

logger = get_logger(__name__)

DEFAULT_PLACE_NAME = "Care option"

# Source filters per category. Filters overlap on purpose (a generic clinic
# may be urgent care or primary care); category inference sorts them out.
CATEGORY_FILTERS: Dict[PlaceCategory, Tuple[str, ...]] = {
    PlaceCategory.HOSPITAL: (
        'nwr["amenity"="hospital"]',
    ),
    PlaceCategory.URGENT_CARE: (
        'nwr["healthcare"="urgent_care"]',
        'nwr["amenity"="clinic"]["healthcare"="urgent_care"]',
    ),
    PlaceCategory.PRIMARY_CARE: (
        'nwr["amenity"="clinic"]',
        'nwr["amenity"="doctors"]',
        'nwr["healthcare"="doctor"]',
        'nwr["healthcare"="clinic"]',
    ),
    PlaceCategory.SPECIALIST: (
        'nwr["healthcare"="specialist"]',
        'nwr["healthcare:speciality"]',
        'nwr["healthcare:specialty"]',
    ),
    PlaceCategory.PHARMACY: (
        'nwr["amenity"="pharmacy"]',
        'nwr["healthcare"="pharmacy"]',
    ),
    PlaceCategory.TRANSIT: (
        'nwr["highway"="bus_stop"]',
        'nwr["railway"="station"]',
        'nwr["public_transport"="platform"]',
        'nwr["public_transport"="station"]',
    ),
}

_ADDRESS_PARTS = ("addr:housenumber", "addr:street", "addr:city", "addr:state", "addr:postcode")
_ADDRESS_FALLBACKS = ("addr:full", "contact:address")
_PHONE_KEYS = ("phone", "contact:phone")
_WEBSITE_KEYS = ("website", "contact:website", "url")
_SPECIALITY_KEYS = ("healthcare:speciality", "healthcare:specialty")


def _clean_str(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _tag(tags: Dict[str, Any], key: str) -> str:
    """Lowercased, stripped tag value ('' when absent)."""
    return (_clean_str(tags.get(key)) or "").lower()


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first_tag(tags: Dict[str, Any], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = _clean_str(tags.get(key))
        if value:
            return value
    return None


# Category inference: evaluated top to bottom, first match wins.
def _is_pharmacy(tags: Dict[str, Any]) -> bool:
    return _tag(tags, "amenity") == "pharmacy" or _tag(tags, "healthcare") == "pharmacy"


def _is_hospital(tags: Dict[str, Any]) -> bool:
    return (_tag(tags, "amenity") == "hospital"
            or _tag(tags, "healthcare") == "hospital"
            or _tag(tags, "emergency") == "yes")


def _is_urgent_care(tags: Dict[str, Any]) -> bool:
    return _tag(tags, "healthcare") == "urgent_care"


def _is_transit(tags: Dict[str, Any]) -> bool:
    return (_tag(tags, "highway") == "bus_stop"
            or _tag(tags, "railway") == "station"
            or _tag(tags, "public_transport") in ("platform", "station"))


def _is_specialist(tags: Dict[str, Any]) -> bool:
    return _tag(tags, "healthcare") == "specialist" or _first_tag(tags, _SPECIALITY_KEYS) is not None


def _is_primary_care(tags: Dict[str, Any]) -> bool:
    return (_tag(tags, "amenity") in ("clinic", "doctors")
            or _tag(tags, "healthcare") in ("clinic", "doctor"))


CATEGORY_RULES: Tuple[Tuple[Callable[[Dict[str, Any]], bool], PlaceCategory], ...] = (
    (_is_pharmacy, PlaceCategory.PHARMACY),
    (_is_hospital, PlaceCategory.HOSPITAL),
    (_is_urgent_care, PlaceCategory.URGENT_CARE),
    (_is_transit, PlaceCategory.TRANSIT),
    (_is_specialist, PlaceCategory.SPECIALIST),
    (_is_primary_care, PlaceCategory.PRIMARY_CARE),
)
DEFAULT_CATEGORY = PlaceCategory.PRIMARY_CARE


def infer_category(tags: Dict[str, Any]) -> PlaceCategory:
    """Infer a place category from OSM tags using CATEGORY_RULES."""
    for matches, category in CATEGORY_RULES:
        if matches(tags):
            return category
    return DEFAULT_CATEGORY


def parse_specialties(tags: Dict[str, Any]) -> List[str]:
    """Split `healthcare:speciality` on ';' or ',' into a lowercase unique list."""
    raw = _first_tag(tags, _SPECIALITY_KEYS)
    if not raw:
        return []
    return unique_lower(re.split(r"[;,]", raw))


def build_address(tags: Dict[str, Any]) -> str:
    """Assemble a one-line address from structured addr:* tags, else freeform tags."""
    parts = [_clean_str(tags.get(key)) for key in _ADDRESS_PARTS]
    line = " ".join(p for p in parts if p).strip()
    if line:
        return line
    return _first_tag(tags, _ADDRESS_FALLBACKS) or ""


def resolve_coordinates(elem: Dict[str, Any]) -> Tuple[Optional[float], Optional[float]]:
    """
    Representative coordinate for an Overpass element.

    Nodes carry lat/lon directly; ways and relations carry a `center` with
    `out center`, and otherwise fall back to the middle of `bounds` or the
    mean of a `geometry` point list.
    """
    lat, lon = elem.get("lat"), elem.get("lon")
    if is_finite_number(lat) and is_finite_number(lon):
        return float(lat), float(lon)

    center = _as_dict(elem.get("center"))
    lat, lon = center.get("lat"), center.get("lon")
    if is_finite_number(lat) and is_finite_number(lon):
        return float(lat), float(lon)

    bounds = _as_dict(elem.get("bounds"))
    corners = [bounds.get(k) for k in ("minlat", "minlon", "maxlat", "maxlon")]
    if all(is_finite_number(c) for c in corners):
        return (corners[0] + corners[2]) / 2.0, (corners[1] + corners[3]) / 2.0

    geometry = elem.get("geometry")
    points = [
        (p.get("lat"), p.get("lon")) for p in (geometry if isinstance(geometry, list) else [])
        if isinstance(p, dict) and is_finite_number(p.get("lat")) and is_finite_number(p.get("lon"))
    ]
    if points:
        return (sum(p[0] for p in points) / len(points),
                sum(p[1] for p in points) / len(points))

    return None, None


def build_overpass_query(lat: float, lon: float, radius_m: float,
                         categories: Iterable[PlaceCategory],
                         timeout_s: float = 15,
                         min_radius_m: int = 100, max_radius_m: int = 50000) -> Optional[str]:
    """
    Build one batched Overpass QL query for all requested categories.

    Returns None when no category maps to a filter.
    """
    filters: List[str] = []
    for category in categories:
        for f in CATEGORY_FILTERS.get(category, ()):
            if f not in filters:
                filters.append(f)
    if not filters:
        return None

    radius = clamp_radius(radius_m, min_radius_m, max_radius_m)
    around = f"(around:{radius},{lat},{lon})"
    body = "\n".join(f"  {f}{around};" for f in filters)
    return f"""[out:json][timeout:{int(math.ceil(timeout_s))}];
(
{body}
);
out center tags;"""


def _place_id(elem: Dict[str, Any], name: str, lat: float, lon: float) -> str:
    elem_type = elem.get("type") or "nwr"
    elem_id = elem.get("id")
    ident = elem_id if elem_id is not None else name
    return f"{elem_type}/{ident}-{round(lat * 1e5)}-{round(lon * 1e5)}"


def element_to_place(elem: Dict[str, Any]) -> Optional[Place]:
    """Normalize one Overpass element; None if it has no usable coordinate."""
    if not isinstance(elem, dict):
        return None
    lat, lon = resolve_coordinates(elem)
    if lat is None or lon is None:
        return None

    tags = elem.get("tags")
    if not isinstance(tags, dict):
        tags = {}
    name = _clean_str(tags.get("name")) or DEFAULT_PLACE_NAME

    return Place(
        id=_place_id(elem, name, lat, lon),
        category=infer_category(tags),
        name=name,
        lat=lat,
        lng=lon,
        address=build_address(tags),
        phone=_first_tag(tags, _PHONE_KEYS),
        website=_first_tag(tags, _WEBSITE_KEYS),
        specialties=parse_specialties(tags),
    )


def _dedup_key(place: Place) -> Tuple[str, str, int, int]:
    # 1e-4 degrees is roughly 10 m
    return (place.category.value, place.name.lower(),
            round(place.lat * 1e4), round(place.lng * 1e4))


def deduplicate_places(places: Iterable[Place]) -> List[Place]:
    """Drop repeats of (category, name, ~10 m location); first occurrence wins."""
    seen = set()
    unique = []
    for place in places:
        key = _dedup_key(place)
        if key in seen:
            continue
        seen.add(key)
        unique.append(place)
    return unique


def normalize_elements(elements: Iterable[Dict[str, Any]],
                       categories: Iterable[PlaceCategory]) -> List[Place]:
    """Convert raw elements into deduplicated Places of the requested categories."""
    wanted = set(categories)
    places = []
    skipped_coords = 0
    for elem in elements:
        place = element_to_place(elem)
        if place is None:
            skipped_coords += 1
            continue
        # Overlapping filters pull in entities of other categories
        if place.category not in wanted:
            continue
        places.append(place)

    if skipped_coords:
        logger.debug(f"Skipped {skipped_coords} elements without usable coordinates")
    return deduplicate_places(places)


@handle_api_timeout("overpass")
def _fetch_elements(query: str, settings: ProviderSettings) -> List[Dict[str, Any]]:
    """POST the query and return raw elements; raises CareNavError subclasses."""
    log_api_call(logger, "overpass", settings.overpass_url)
    try:
        resp = requests.post(
            settings.overpass_url,
            data={"data": query},
            timeout=settings.overpass_timeout_s,
            headers={"User-Agent": settings.user_agent},
        )
    except requests.Timeout:
        raise
    except requests.RequestException as e:
        raise ProviderError(f"Overpass request failed: {e}", "overpass")

    if resp.status_code != 200:
        raise ProviderError(
            f"Overpass failed: HTTP {resp.status_code} {resp.text[:200]}",
            "overpass",
            resp.status_code,
        )

    try:
        data = resp.json()
    except ValueError as e:
        raise DataShapeError(f"Overpass returned invalid JSON: {e}")
    if not isinstance(data, dict):
        raise DataShapeError("Overpass response is not an object")
    elements = data.get("elements", [])
    if not isinstance(elements, list):
        raise DataShapeError("Overpass 'elements' is not a list")
    return elements


def get_nearby_places(lat: float, lon: float, radius_m: float,
                      categories: Iterable[PlaceCategory],
                      settings: Optional[ProviderSettings] = None) -> List[Place]:
    """
    Query Overpass for care places of the given categories around a point.

    Provider timeouts, errors and malformed responses are logged and yield an
    empty list; this function does not raise for provider problems.

    Args:
        lat, lon: Search center
        radius_m: Search radius in meters (clamped to the configured bounds)
        categories: Requested PlaceCategory values

    Returns:
        Unordered list of Place records
    """
    settings = settings or get_provider_settings()
    categories = list(categories)
    query = build_overpass_query(
        lat, lon, radius_m, categories,
        timeout_s=settings.overpass_timeout_s,
        min_radius_m=settings.min_radius_m,
        max_radius_m=settings.max_radius_m,
    )
    if query is None:
        return []

    try:
        elements = _fetch_elements(query, settings)
    except CareNavError as e:
        log_error(
            logger,
            type(e).__name__,
            f"Overpass lookup failed - returning empty results: {e}",
            api_name="overpass",
            lat=lat,
            lon=lon,
        )
        return []

    places = normalize_elements(elements, categories)
    logger.debug(
        f"Overpass returned {len(elements)} elements, {len(places)} places",
        extra={"place_count": len(places), "lat": lat, "lon": lon},
    )
    return places
