"""
Error handling and fallback mechanisms for CareNav
Provides graceful degradation when external providers fail
"""

import math
import os
from typing import Any, Optional, Dict, Callable
from functools import wraps

import requests

from logging_config import get_logger

logger = get_logger(__name__)


class CareNavError(Exception):
    """Base exception for CareNav errors."""
    pass


class ProviderError(CareNavError):
    """A provider answered, but not with a usable success response."""
    def __init__(self, message: str, api_name: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.api_name = api_name
        self.status_code = status_code


class ProviderTimeout(ProviderError):
    """A provider did not answer within its timeout."""
    def __init__(self, message: str, api_name: str):
        super().__init__(message, api_name, 408)


class DataShapeError(CareNavError):
    """A provider response is missing fields or has malformed ones."""
    pass


class NoMatchFound(CareNavError):
    """
    Enrichment miss.

    A neutral state rather than a failure: lookups return None instead of
    raising it, but callers that prefer exceptions can use this type.
    """
    pass


class InvalidInputError(CareNavError, ValueError):
    """Caller supplied malformed input (e.g. coordinates out of range)."""
    pass


def check_provider_configuration() -> Dict[str, bool]:
    """
    Report which providers are configured explicitly through the environment.
    All providers have public defaults, so False means "using the default".

    Returns:
        Dict mapping provider names to "explicitly configured" status
    """
    return {
        "overpass": bool(os.getenv("OVERPASS_URL")),
        "osrm": bool(os.getenv("OSRM_BASE_URL")),
        "nominatim": bool(os.getenv("NOMINATIM_URL")),
        "redis": bool(os.getenv("REDIS_URL")),
    }


def validate_coordinates(lat: Any, lng: Any, label: str = "coordinates") -> None:
    """
    Validate a latitude/longitude pair.

    Raises:
        InvalidInputError: if either value is not a finite number in range
    """
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{label}: lat and lng must be numbers")

    if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
        raise InvalidInputError(f"{label}: lat and lng must be finite")
    if not -90.0 <= lat_f <= 90.0:
        raise InvalidInputError(f"{label}: lat must be within [-90, 90]")
    if not -180.0 <= lng_f <= 180.0:
        raise InvalidInputError(f"{label}: lng must be within [-180, 180]")


def with_fallback(fallback_value: Any, log_error: bool = True):
    """
    Decorator to provide fallback values when functions fail.

    Args:
        fallback_value: Value to return if function fails
        log_error: Whether to log the error
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log_error:
                    logger.warning(f"Function {func.__name__} failed: {e}. Using fallback.")
                return fallback_value
        return wrapper
    return decorator


def handle_api_timeout(api_name: str):
    """
    Decorator that maps transport timeouts to ProviderTimeout.
    The timeout itself is enforced by the HTTP library (every provider call
    passes an explicit `timeout=`).

    Args:
        api_name: Provider name carried on the raised error
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except requests.Timeout as e:
                raise ProviderTimeout(f"{api_name} timed out: {e}", api_name)
        return wrapper
    return decorator
