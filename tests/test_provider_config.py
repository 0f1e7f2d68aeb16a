import math

import pytest

from data_sources.error_handling import InvalidInputError, validate_coordinates
from data_sources.provider_config import ProviderSettings, load_provider_settings
from data_sources.utils import clamp_radius, haversine_distance, unique_lower


def test_defaults():
    settings = ProviderSettings()
    assert settings.overpass_timeout_s == 15.0
    assert (settings.summary_timeout_s, settings.detailed_timeout_s) == (8.0, 12.0)
    assert (settings.summary_ttl_s, settings.detailed_ttl_s) == (30.0, 120.0)
    assert (settings.driving_speed_kmh, settings.walking_speed_kmh) == (50.0, 5.0)
    assert settings.max_estimated_candidates == 25


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("OSRM_BASE_URL", "http://localhost:5000/route/v1/")
    monkeypatch.setenv("OVERPASS_TIMEOUT_S", "25")
    monkeypatch.setenv("MAX_ESTIMATED_CANDIDATES", "10")
    monkeypatch.setenv("OSRM_SUMMARY_TIMEOUT_S", "fast")

    settings = load_provider_settings()

    assert settings.osrm_base == "http://localhost:5000/route/v1"
    assert settings.overpass_timeout_s == 25.0
    assert settings.max_estimated_candidates == 10
    assert settings.summary_timeout_s == 8.0


def test_invalid_settings_rejected():
    with pytest.raises(ValueError):
        ProviderSettings(summary_ttl_s=0)
    with pytest.raises(ValueError):
        ProviderSettings(min_radius_m=500, max_radius_m=100)


@pytest.mark.parametrize("radius,expected", [
    (5, 100),
    (100, 100),
    (1234.4, 1234),
    (50000, 50000),
    (10 ** 7, 50000),
    (float("nan"), 50000),
    ("abc", 50000),
])
def test_clamp_radius(radius, expected):
    assert clamp_radius(radius) == expected


def test_haversine_distance():
    # Pittsburgh downtown to Oakland, about 4.4 km
    d = haversine_distance(40.4406, -79.9959, 40.4433, -79.9436)
    assert 4300 < d < 4500
    assert haversine_distance(40.0, -80.0, 40.0, -80.0) == 0


def test_unique_lower():
    assert unique_lower(["B", "a", " b ", None, ""]) == ["b", "a"]
    assert unique_lower(None) == []


@pytest.mark.parametrize("lat,lng", [
    (91, 0),
    (0, -181),
    (math.inf, 0),
    (float("nan"), 0),
    ("north", 0),
    (None, 0),
])
def test_validate_coordinates_rejects(lat, lng):
    with pytest.raises(InvalidInputError):
        validate_coordinates(lat, lng)


def test_validate_coordinates_accepts_bounds():
    validate_coordinates(-90, 180)
    validate_coordinates("40.44", "-79.99")
