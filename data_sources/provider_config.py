"""
Centralized Provider Configuration for CareNav
Endpoints, timeouts, cache TTLs and ranking bounds for the external providers.
"""

import os
from dataclasses import dataclass
from typing import Optional
from logging_config import get_logger

logger = get_logger(__name__)


DEFAULT_OVERPASS_URL = "https://overpass-api.de/api/interpreter"
DEFAULT_OSRM_BASE_URL = "http://router.project-osrm.org/route/v1"
DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_USER_AGENT = "CareNav/1.0 (care map)"


@dataclass(frozen=True)
class ProviderSettings:
    """Configuration for the geo-data, routing and geocoding providers."""
    overpass_url: str = DEFAULT_OVERPASS_URL
    overpass_timeout_s: float = 15.0
    osrm_base_url: str = DEFAULT_OSRM_BASE_URL
    summary_timeout_s: float = 8.0
    detailed_timeout_s: float = 12.0
    summary_ttl_s: float = 30.0
    detailed_ttl_s: float = 120.0
    nominatim_url: str = DEFAULT_NOMINATIM_URL
    geocode_timeout_s: float = 10.0
    user_agent: str = DEFAULT_USER_AGENT
    driving_speed_kmh: float = 50.0
    walking_speed_kmh: float = 5.0
    min_radius_m: int = 100
    max_radius_m: int = 50000
    max_estimated_candidates: int = 25

    def __post_init__(self):
        """Validate configuration."""
        for name in ("overpass_timeout_s", "summary_timeout_s", "detailed_timeout_s",
                     "summary_ttl_s", "detailed_ttl_s", "geocode_timeout_s"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.driving_speed_kmh <= 0 or self.walking_speed_kmh <= 0:
            raise ValueError("fallback speeds must be > 0")
        if self.min_radius_m < 0:
            raise ValueError("min_radius_m must be >= 0")
        if self.max_radius_m < self.min_radius_m:
            raise ValueError("max_radius_m must be >= min_radius_m")
        if self.max_estimated_candidates < 0:
            raise ValueError("max_estimated_candidates must be >= 0")

    @property
    def osrm_base(self) -> str:
        return self.osrm_base_url.rstrip("/")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}; using {default}")
        return default


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    return raw.strip() if raw and raw.strip() else default


def load_provider_settings() -> ProviderSettings:
    """
    Build ProviderSettings from environment variables.

    Unset or blank variables keep their defaults; non-numeric values for
    numeric settings are logged and ignored.
    """
    return ProviderSettings(
        overpass_url=_env_str("OVERPASS_URL", DEFAULT_OVERPASS_URL),
        overpass_timeout_s=_env_float("OVERPASS_TIMEOUT_S", 15.0),
        osrm_base_url=_env_str("OSRM_BASE_URL", DEFAULT_OSRM_BASE_URL),
        summary_timeout_s=_env_float("OSRM_SUMMARY_TIMEOUT_S", 8.0),
        detailed_timeout_s=_env_float("OSRM_DETAILED_TIMEOUT_S", 12.0),
        nominatim_url=_env_str("NOMINATIM_URL", DEFAULT_NOMINATIM_URL),
        user_agent=_env_str("HTTP_USER_AGENT", DEFAULT_USER_AGENT),
        max_estimated_candidates=int(_env_float("MAX_ESTIMATED_CANDIDATES", 25)),
    )


_settings: Optional[ProviderSettings] = None


def get_provider_settings() -> ProviderSettings:
    """Process-wide settings, loaded from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = load_provider_settings()
    return _settings


def reset_provider_settings() -> None:
    """Forget the loaded settings so the next call re-reads the environment."""
    global _settings
    _settings = None
