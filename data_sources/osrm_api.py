"""
OSRM Routing API Client
Travel distance/duration (and optional path geometry) between two points,
with TTL caching and a great-circle fallback when the router is unavailable.
"""

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import requests

from .cache import TTLCache, get_default_cache
from .error_handling import CareNavError, DataShapeError, ProviderError, handle_api_timeout
from .provider_config import ProviderSettings, get_provider_settings
from .utils import haversine_distance, safe_number
from logging_config import get_logger, log_api_call, log_error

logger = get_logger(__name__)

DRIVING = "driving"
WALKING = "walking"

FALLBACK_STEP_INSTRUCTION = "Head toward the destination (approximate route, routing server unavailable)."

Coordinate = Tuple[float, float]  # (lat, lng)


@dataclass(frozen=True)
class RouteStep:
    instruction: str
    distance_meters: float
    duration_seconds: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "instruction": self.instruction,
            "distance_meters": self.distance_meters,
            "duration_seconds": self.duration_seconds,
        }


@dataclass(frozen=True)
class TravelEstimate:
    """Distance/duration between two points, real or approximate."""
    distance_meters: float
    duration_seconds: float
    fallback: bool = False
    note: Optional[str] = None
    steps: Tuple[RouteStep, ...] = field(default_factory=tuple)
    geometry: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "distance_meters": self.distance_meters,
            "duration_seconds": self.duration_seconds,
            "fallback": self.fallback,
            "note": self.note,
            "steps": [s.to_dict() for s in self.steps],
            "geometry": self.geometry,
        }

    def summary_dict(self) -> Dict[str, Any]:
        return {
            "distance_meters": self.distance_meters,
            "duration_seconds": self.duration_seconds,
            "fallback": self.fallback,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TravelEstimate":
        return cls(
            distance_meters=data["distance_meters"],
            duration_seconds=data["duration_seconds"],
            fallback=bool(data.get("fallback", False)),
            note=data.get("note"),
            steps=tuple(
                RouteStep(s["instruction"], s["distance_meters"], s["duration_seconds"])
                for s in data.get("steps") or []
            ),
            geometry=copy.deepcopy(data.get("geometry")),
        )


def normalize_mode(mode: Optional[str]) -> str:
    """Only walking is special; everything else routes as driving."""
    return WALKING if (mode or "").strip().lower() == WALKING else DRIVING


def route_cache_key(kind: str, mode: str, origin: Coordinate, dest: Coordinate) -> str:
    """Cache key with coordinates rounded to 5 decimals (~1 m)."""
    def r(x: float) -> float:
        return round(x, 5)
    return f"{kind}:{mode}:{r(origin[0])},{r(origin[1])}->{r(dest[0])},{r(dest[1])}"


def step_instruction(step: Dict[str, Any]) -> str:
    """Readable instruction from an OSRM step: '<type> <modifier> onto <road>'."""
    maneuver = step.get("maneuver") or {}
    if not isinstance(maneuver, dict):
        raise DataShapeError("OSRM step maneuver is not an object")
    action = " ".join(
        str(part) for part in (maneuver.get("type"), maneuver.get("modifier")) if part
    )
    name = step.get("name") or ""
    text = (action or "Continue") + (f" onto {name}" if name else "")
    return re.sub(r"\s+", " ", text).strip()


def _first_route(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise DataShapeError("OSRM response is not an object")
    if data.get("code") != "Ok":
        raise ProviderError(f"OSRM returned code {data.get('code')!r}: {data.get('message', '')}", "osrm")
    routes = data.get("routes")
    if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
        raise DataShapeError("OSRM response has no routes")
    return routes[0]


def parse_summary(data: Any) -> TravelEstimate:
    route = _first_route(data)
    return TravelEstimate(
        distance_meters=safe_number(route.get("distance"), 0.0),
        duration_seconds=safe_number(route.get("duration"), 0.0),
    )


def parse_detailed(data: Any) -> TravelEstimate:
    route = _first_route(data)
    legs = route.get("legs") or []
    if not isinstance(legs, list):
        raise DataShapeError("OSRM route legs is not a list")
    leg = legs[0] if legs and isinstance(legs[0], dict) else {}
    raw_steps = leg.get("steps") or []
    if not isinstance(raw_steps, list) or not all(isinstance(s, dict) for s in raw_steps):
        raise DataShapeError("OSRM leg steps is not a list of objects")
    steps = tuple(
        RouteStep(
            instruction=step_instruction(s),
            distance_meters=safe_number(s.get("distance"), 0.0),
            duration_seconds=safe_number(s.get("duration"), 0.0),
        )
        for s in raw_steps
    )
    return TravelEstimate(
        distance_meters=safe_number(route.get("distance"), 0.0),
        duration_seconds=safe_number(route.get("duration"), 0.0),
        steps=steps,
        geometry=route.get("geometry"),
    )


class TravelEstimator:
    """
    Route summaries and detailed routes from an OSRM server.

    Every call returns a TravelEstimate. When the router times out, answers
    with an error, or sends something unparseable, a straight-line estimate
    at a fixed speed is returned with `fallback=True`; that fallback is cached
    like a real answer so a degraded router is not hit again until the TTL
    expires.
    """

    def __init__(self, cache: Optional[TTLCache] = None,
                 settings: Optional[ProviderSettings] = None,
                 session: Optional[requests.Session] = None):
        self._cache = cache
        self.settings = settings or get_provider_settings()
        self._http = session or requests

    @property
    def cache(self) -> TTLCache:
        return self._cache if self._cache is not None else get_default_cache()

    def summary(self, origin: Coordinate, dest: Coordinate, mode: str = DRIVING) -> TravelEstimate:
        """Distance and duration only."""
        return self._estimate("route_summary", origin, dest, mode)

    def detailed(self, origin: Coordinate, dest: Coordinate, mode: str = DRIVING) -> TravelEstimate:
        """Distance, duration, GeoJSON geometry and turn-by-turn steps."""
        return self._estimate("route_detailed", origin, dest, mode)

    def _estimate(self, kind: str, origin: Coordinate, dest: Coordinate, mode: str) -> TravelEstimate:
        mode = normalize_mode(mode)
        key = route_cache_key(kind, mode, origin, dest)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Route cache hit", extra={"cache_key": key})
            return TravelEstimate.from_dict(cached)

        detailed = kind == "route_detailed"
        try:
            data = self._request(origin, dest, mode, detailed)
            estimate = parse_detailed(data) if detailed else parse_summary(data)
        except CareNavError as e:
            log_error(
                logger,
                type(e).__name__,
                f"OSRM unavailable, using straight-line estimate: {e}",
                api_name="osrm",
                cache_key=key,
            )
            estimate = self._fallback(origin, dest, mode, detailed, e)

        ttl = self.settings.detailed_ttl_s if detailed else self.settings.summary_ttl_s
        self.cache.set(key, copy.deepcopy(estimate.to_dict()), ttl)
        return estimate

    @handle_api_timeout("osrm")
    def _request(self, origin: Coordinate, dest: Coordinate, mode: str, detailed: bool) -> Any:
        url = (f"{self.settings.osrm_base}/{mode}/"
               f"{origin[1]},{origin[0]};{dest[1]},{dest[0]}")
        if detailed:
            params = {"overview": "full", "geometries": "geojson", "steps": "true"}
            timeout = self.settings.detailed_timeout_s
        else:
            params = {"overview": "false"}
            timeout = self.settings.summary_timeout_s

        log_api_call(logger, "osrm", url)
        try:
            resp = self._http.get(
                url,
                params=params,
                timeout=timeout,
                headers={"User-Agent": self.settings.user_agent},
            )
        except requests.Timeout:
            raise
        except requests.RequestException as e:
            raise ProviderError(f"OSRM request failed: {e}", "osrm")

        try:
            data = resp.json()
        except ValueError:
            data = None
        if resp.status_code != 200:
            raise ProviderError(f"OSRM route failed: HTTP {resp.status_code}", "osrm", resp.status_code)
        if data is None:
            raise DataShapeError("OSRM returned invalid JSON")
        return data

    def _fallback(self, origin: Coordinate, dest: Coordinate, mode: str,
                  detailed: bool, error: Exception) -> TravelEstimate:
        distance_m = haversine_distance(origin[0], origin[1], dest[0], dest[1])
        speed_kmh = self.settings.walking_speed_kmh if mode == WALKING else self.settings.driving_speed_kmh
        seconds = (distance_m / 1000.0) / speed_kmh * 3600
        note = f"Routing provider unavailable: {error}"

        if not detailed:
            return TravelEstimate(
                distance_meters=round(distance_m),
                duration_seconds=round(seconds),
                fallback=True,
                note=note,
            )

        duration = max(60, round(seconds))
        return TravelEstimate(
            distance_meters=round(distance_m),
            duration_seconds=duration,
            fallback=True,
            note=note,
            steps=(RouteStep(FALLBACK_STEP_INSTRUCTION, round(distance_m), duration),),
            geometry={
                "type": "LineString",
                "coordinates": [[origin[1], origin[0]], [dest[1], dest[0]]],
            },
        )


_default_estimator: Optional[TravelEstimator] = None


def get_default_estimator() -> TravelEstimator:
    """Process-wide estimator backed by the default cache."""
    global _default_estimator
    if _default_estimator is None:
        _default_estimator = TravelEstimator()
    return _default_estimator


def get_route_summary(from_lat: float, from_lng: float, to_lat: float, to_lng: float,
                      mode: str = DRIVING) -> TravelEstimate:
    return get_default_estimator().summary((from_lat, from_lng), (to_lat, to_lng), mode)


def get_detailed_route(from_lat: float, from_lng: float, to_lat: float, to_lng: float,
                       mode: str = DRIVING) -> TravelEstimate:
    return get_default_estimator().detailed((from_lat, from_lng), (to_lat, to_lng), mode)
