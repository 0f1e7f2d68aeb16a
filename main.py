from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from dotenv import load_dotenv
import os
import uuid
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlencode
from logging_config import get_logger, setup_logging

# Load environment variables before any provider settings are read
load_dotenv()

setup_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    json_format=os.getenv("LOG_JSON", "true").lower() != "false",
)

logger = get_logger(__name__)

from data_sources.cache import clear_cache, get_cache_stats
from data_sources.error_handling import InvalidInputError, check_provider_configuration, validate_coordinates
from data_sources.geocoding import geocode
from data_sources.osrm_api import get_default_estimator, normalize_mode
from data_sources.places import parse_categories
from data_sources.provider_config import get_provider_settings
from care_routing.recommendation import PatientNeeds, nearby, recommend

DEFAULT_RADIUS_M = 8000
VERSION = "1.0.0"

app = FastAPI(
    title="CareNav API",
    description="Nearby care recommendations from live map data, travel times and hospital capacity",
    version=VERSION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class PatientNeedsBody(BaseModel):
    complaint: Optional[str] = None
    severity: Optional[str] = "routine"
    flags: List[str] = Field(default_factory=list)
    required_specialties: List[str] = Field(default_factory=list)


class RecommendRequest(BaseModel):
    lat: float
    lng: float
    radius_m: float = DEFAULT_RADIUS_M
    types: Optional[Union[str, List[str]]] = None
    patient_needs: PatientNeedsBody = Field(default_factory=PatientNeedsBody)


def _require_coordinates(lat: Any, lng: Any, label: str = "coordinates") -> None:
    try:
        validate_coordinates(lat, lng, label)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/")
def root():
    """Health check endpoint."""
    return {
        "service": "CareNav API",
        "status": "running",
        "version": VERSION,
        "endpoints": {
            "nearby": "/geo/nearby?lat=LAT&lng=LNG&radius_m=8000&types=hospital,pharmacy",
            "recommend": "POST /geo/recommend",
            "route": "/geo/route?from_lat=&from_lng=&to_lat=&to_lng=&mode=driving",
            "route_summary": "/geo/route/summary?from_lat=&from_lng=&to_lat=&to_lng=&mode=driving",
            "geocode": "/geo/geocode?q=ADDRESS",
            "docs": "/docs"
        }
    }


@app.get("/geo/nearby")
def nearby_endpoint(lat: float, lng: float,
                    radius_m: float = DEFAULT_RADIUS_M,
                    types: Optional[str] = None):
    """Nearby care places; hospitals carry capacity data when known."""
    _require_coordinates(lat, lng)
    places = nearby(lat, lng, radius_m, parse_categories(types))
    return {"places": [p.to_dict() for p in places]}


@app.post("/geo/recommend")
def recommend_endpoint(body: RecommendRequest):
    """Rank nearby care and recommend one place for the patient."""
    _require_coordinates(body.lat, body.lng)
    request_id = str(uuid.uuid4())
    needs = PatientNeeds.from_dict(body.patient_needs.model_dump())
    result = recommend(
        body.lat,
        body.lng,
        body.radius_m,
        parse_categories(body.types),
        needs,
        request_id=request_id,
    )
    return result.to_dict()


@app.get("/geo/route")
def route_endpoint(from_lat: float, from_lng: float, to_lat: float, to_lng: float,
                   mode: str = "driving"):
    """Detailed route with geometry and steps; approximate when the router is down."""
    _require_coordinates(from_lat, from_lng, "origin")
    _require_coordinates(to_lat, to_lng, "destination")
    route = get_default_estimator().detailed((from_lat, from_lng), (to_lat, to_lng), normalize_mode(mode))
    return route.to_dict()


@app.get("/geo/route/summary")
def route_summary_endpoint(from_lat: float, from_lng: float, to_lat: float, to_lng: float,
                           mode: str = "driving"):
    """Distance and duration only."""
    _require_coordinates(from_lat, from_lng, "origin")
    _require_coordinates(to_lat, to_lng, "destination")
    route = get_default_estimator().summary((from_lat, from_lng), (to_lat, to_lng), normalize_mode(mode))
    return route.summary_dict()


@app.get("/geo/geocode")
def geocode_endpoint(q: str = Query(..., min_length=1), country: Optional[str] = None):
    """Best-effort free-text geocoding."""
    if not q.strip():
        raise HTTPException(status_code=400, detail="q required")
    return {"results": geocode(q, country)}


@app.get("/transport/options")
def transport_options(to_lat: float, to_lng: float):
    """Ways to get to a destination; the client supplies its own pickup location."""
    _require_coordinates(to_lat, to_lng, "destination")
    params = urlencode({
        "action": "setPickup",
        "pickup": "my_location",
        "dropoff[latitude]": to_lat,
        "dropoff[longitude]": to_lng,
    })
    return {
        "uber_deeplink": f"https://m.uber.com/ul/?{params}",
        "public_transport": {
            "available": False,
            "note": "Public transit routing is not integrated.",
        },
        "walking": {"available": True},
        "driving": {"available": True},
    }


@app.get("/health")
def health_check():
    """Provider configuration and cache status."""
    settings = get_provider_settings()
    configured = check_provider_configuration()
    return {
        "status": "healthy",
        "version": VERSION,
        "providers": {
            "overpass": {"url": settings.overpass_url, "configured": configured["overpass"]},
            "osrm": {"url": settings.osrm_base, "configured": configured["osrm"]},
            "nominatim": {"url": settings.nominatim_url, "configured": configured["nominatim"]},
        },
        "cache_stats": get_cache_stats(),
    }


@app.post("/cache/clear")
def clear_cache_endpoint(cache_type: Optional[str] = None):
    """Clear cache entries."""
    try:
        removed = clear_cache(cache_type)
        return {
            "status": "success",
            "message": f"Cache cleared for {cache_type or 'all'}",
            "removed": removed,
        }
    except Exception as e:
        logger.error(f"Cache clear failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Cache clear failed: {e}")


@app.get("/cache/stats")
def cache_stats_endpoint() -> Dict[str, Any]:
    """Get cache statistics."""
    try:
        return {
            "status": "success",
            "cache_stats": get_cache_stats()
        }
    except Exception as e:
        logger.error(f"Cache stats failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Cache stats failed: {e}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
