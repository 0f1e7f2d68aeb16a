"""
Geocoding API Client
Free-text place search through OpenStreetMap Nominatim
"""

from typing import Dict, List, Optional

import requests

from .cache import cached, CACHE_TTL
from .provider_config import get_provider_settings
from .utils import is_finite_number
from logging_config import get_logger, log_api_call, log_error

logger = get_logger(__name__)

MAX_RESULTS = 5


def _to_result(item) -> Optional[Dict]:
    if not isinstance(item, dict):
        return None
    try:
        lat = float(item.get("lat"))
        lng = float(item.get("lon"))
    except (TypeError, ValueError):
        return None
    if not (is_finite_number(lat) and is_finite_number(lng)):
        return None
    return {"name": item.get("display_name") or "", "lat": lat, "lng": lng}


@cached(ttl_seconds=CACHE_TTL['geocoding'], cache_type='geocoding')
def _search(query: str, country: Optional[str]) -> Optional[List[Dict]]:
    """Returns None on provider failure so the failure is not cached."""
    settings = get_provider_settings()
    params = {"q": query, "format": "json", "limit": MAX_RESULTS}
    if country:
        params["countrycodes"] = country

    log_api_call(logger, "nominatim", settings.nominatim_url)
    try:
        response = requests.get(
            settings.nominatim_url,
            params=params,
            headers={"User-Agent": settings.user_agent},
            timeout=settings.geocode_timeout_s,
        )
    except requests.RequestException as e:
        error_type = "ProviderTimeout" if isinstance(e, requests.Timeout) else "ProviderError"
        log_error(logger, error_type, f"Nominatim request failed: {e}", api_name="nominatim")
        return None

    if response.status_code != 200:
        log_error(logger, "ProviderError", f"Nominatim failed: HTTP {response.status_code}",
                  api_name="nominatim")
        return None

    try:
        data = response.json()
    except ValueError:
        log_error(logger, "DataShapeError", "Nominatim returned invalid JSON", api_name="nominatim")
        return None
    if not isinstance(data, list):
        log_error(logger, "DataShapeError", "Nominatim response is not a list", api_name="nominatim")
        return None

    return [r for r in (_to_result(item) for item in data) if r is not None]


def geocode(query: str, country: Optional[str] = None) -> List[Dict]:
    """
    Search for a place by free text.

    Args:
        query: Address, landmark or place name
        country: Optional ISO country code filter (e.g. "us")

    Returns:
        Up to five {"name", "lat", "lng"} results; [] on provider failure
    """
    query = (query or "").strip()
    if not query:
        return []
    country = (country or "").strip().lower() or None
    return _search(query, country) or []
