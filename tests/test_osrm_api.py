import copy
import unittest
from unittest.mock import MagicMock

import requests

from data_sources.cache import InMemoryTTLCache
from data_sources.osrm_api import (
    FALLBACK_STEP_INSTRUCTION,
    TravelEstimator,
    normalize_mode,
    route_cache_key,
    step_instruction,
)
from data_sources.provider_config import ProviderSettings
from data_sources.utils import haversine_distance

ORIGIN = (40.4406, -79.9959)
DEST = (40.4433, -79.9436)


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = copy.deepcopy(payload)
    return resp


SUMMARY_OK = {"code": "Ok", "routes": [{"distance": 5234.5, "duration": 612.3}]}

DETAILED_OK = {
    "code": "Ok",
    "routes": [{
        "distance": 5234.5,
        "duration": 612.3,
        "geometry": {"type": "LineString", "coordinates": [[-79.9959, 40.4406], [-79.9436, 40.4433]]},
        "legs": [{
            "steps": [
                {"maneuver": {"type": "depart"}, "name": "Grant  Street", "distance": 120.0, "duration": 30.0},
                {"maneuver": {"type": "turn", "modifier": "left"}, "name": "Forbes Ave",
                 "distance": 5000.0, "duration": 570.0},
                {"maneuver": {"type": "arrive"}, "name": "", "distance": 0, "duration": 0},
                {"distance": 5.0, "duration": 1.0},
            ]
        }],
    }],
}


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestTravelEstimator(unittest.TestCase):
    """OSRM client with an injected session and cache; no network."""

    def setUp(self):
        self.clock = FakeClock()
        self.cache = InMemoryTTLCache(clock=self.clock)
        self.session = MagicMock()
        self.settings = ProviderSettings(osrm_base_url="http://osrm.test/route/v1/")
        self.estimator = TravelEstimator(cache=self.cache, settings=self.settings, session=self.session)

    def test_summary_success(self):
        self.session.get.return_value = _response(200, SUMMARY_OK)

        est = self.estimator.summary(ORIGIN, DEST)

        self.assertEqual(est.distance_meters, 5234.5)
        self.assertEqual(est.duration_seconds, 612.3)
        self.assertFalse(est.fallback)
        self.assertIsNone(est.geometry)
        args, kwargs = self.session.get.call_args
        self.assertEqual(args[0], "http://osrm.test/route/v1/driving/-79.9959,40.4406;-79.9436,40.4433")
        self.assertEqual(kwargs["params"], {"overview": "false"})
        self.assertEqual(kwargs["timeout"], 8.0)

    def test_summary_is_cached(self):
        self.session.get.return_value = _response(200, SUMMARY_OK)

        first = self.estimator.summary(ORIGIN, DEST)
        second = self.estimator.summary(ORIGIN, DEST)

        self.assertEqual(first, second)
        self.assertEqual(self.session.get.call_count, 1)

    def test_summary_expires_after_ttl(self):
        self.session.get.return_value = _response(200, SUMMARY_OK)
        self.estimator.summary(ORIGIN, DEST)

        self.clock.now += 29
        self.estimator.summary(ORIGIN, DEST)
        self.assertEqual(self.session.get.call_count, 1)

        self.clock.now += 2
        self.estimator.summary(ORIGIN, DEST)
        self.assertEqual(self.session.get.call_count, 2)

    def test_modes_are_cached_separately(self):
        self.session.get.return_value = _response(200, SUMMARY_OK)

        self.estimator.summary(ORIGIN, DEST, "driving")
        self.estimator.summary(ORIGIN, DEST, "walking")

        self.assertEqual(self.session.get.call_count, 2)
        urls = [c.args[0] for c in self.session.get.call_args_list]
        self.assertIn("/walking/", urls[1])

    def test_detailed_success(self):
        self.session.get.return_value = _response(200, DETAILED_OK)

        est = self.estimator.detailed(ORIGIN, DEST)

        self.assertFalse(est.fallback)
        self.assertEqual(est.geometry["type"], "LineString")
        self.assertEqual([s.instruction for s in est.steps], [
            "depart onto Grant Street",
            "turn left onto Forbes Ave",
            "arrive",
            "Continue",
        ])
        self.assertEqual(est.steps[1].distance_meters, 5000.0)
        _, kwargs = self.session.get.call_args
        self.assertEqual(kwargs["params"], {"overview": "full", "geometries": "geojson", "steps": "true"})
        self.assertEqual(kwargs["timeout"], 12.0)

    def test_cached_geometry_is_not_shared(self):
        self.session.get.return_value = _response(200, DETAILED_OK)

        first = self.estimator.detailed(ORIGIN, DEST)
        first.geometry["coordinates"].append([0, 0])
        second = self.estimator.detailed(ORIGIN, DEST)

        self.assertEqual(len(second.geometry["coordinates"]), 2)

    def test_detailed_fallback_on_connection_error(self):
        self.session.get.side_effect = requests.ConnectionError("refused")

        est = self.estimator.detailed(ORIGIN, DEST)

        expected = haversine_distance(ORIGIN[0], ORIGIN[1], DEST[0], DEST[1])
        self.assertTrue(est.fallback)
        self.assertAlmostEqual(est.distance_meters, expected, delta=1)
        self.assertGreaterEqual(est.duration_seconds, 60)
        self.assertEqual(est.geometry, {
            "type": "LineString",
            "coordinates": [[ORIGIN[1], ORIGIN[0]], [DEST[1], DEST[0]]],
        })
        self.assertEqual(len(est.steps), 1)
        self.assertEqual(est.steps[0].instruction, FALLBACK_STEP_INSTRUCTION)
        self.assertIn("unavailable", est.note)

    def test_detailed_fallback_floor_for_short_trips(self):
        self.session.get.side_effect = requests.ConnectionError("refused")
        near = (ORIGIN[0] + 0.0001, ORIGIN[1])

        est = self.estimator.detailed(ORIGIN, near)

        self.assertEqual(est.duration_seconds, 60)

    def test_fallback_is_cached(self):
        self.session.get.side_effect = requests.ConnectionError("refused")

        first = self.estimator.detailed(ORIGIN, DEST)
        second = self.estimator.detailed(ORIGIN, DEST)

        self.assertTrue(second.fallback)
        self.assertEqual(first, second)
        self.assertEqual(self.session.get.call_count, 1)

    def test_summary_fallback_on_timeout(self):
        self.session.get.side_effect = requests.Timeout("read timed out")

        est = self.estimator.summary(ORIGIN, DEST)

        distance = haversine_distance(ORIGIN[0], ORIGIN[1], DEST[0], DEST[1])
        self.assertTrue(est.fallback)
        self.assertIn("timed out", est.note)
        self.assertEqual(est.duration_seconds, round(distance / 1000.0 / 50.0 * 3600))

    def test_walking_fallback_uses_walking_speed(self):
        self.session.get.side_effect = requests.ConnectionError("refused")

        est = self.estimator.summary(ORIGIN, DEST, "walking")

        distance = haversine_distance(ORIGIN[0], ORIGIN[1], DEST[0], DEST[1])
        self.assertEqual(est.duration_seconds, round(distance / 1000.0 / 5.0 * 3600))

    def test_fallback_on_http_error(self):
        self.session.get.return_value = _response(503, {"message": "busy"})
        self.assertTrue(self.estimator.summary(ORIGIN, DEST).fallback)

    def test_fallback_on_bad_code(self):
        self.session.get.return_value = _response(200, {"code": "NoRoute", "routes": []})
        self.assertTrue(self.estimator.summary(ORIGIN, DEST).fallback)

    def test_fallback_on_empty_routes(self):
        self.session.get.return_value = _response(200, {"code": "Ok", "routes": []})
        self.assertTrue(self.estimator.detailed(ORIGIN, DEST).fallback)

    def test_fallback_on_invalid_json(self):
        resp = _response(200)
        resp.json.side_effect = ValueError("no json")
        self.session.get.return_value = resp
        self.assertTrue(self.estimator.summary(ORIGIN, DEST).fallback)

    def _detailed_with_route(self, route):
        payload = {"code": "Ok", "routes": [dict({"distance": 100.0, "duration": 20.0}, **route)]}
        self.session.get.return_value = _response(200, payload)
        return self.estimator.detailed(ORIGIN, DEST)

    def test_fallback_on_non_object_maneuver(self):
        est = self._detailed_with_route({"legs": [{"steps": [{"maneuver": "turn"}]}]})
        self.assertTrue(est.fallback)
        self.assertEqual(est.steps[0].instruction, FALLBACK_STEP_INSTRUCTION)

    def test_fallback_on_legs_object(self):
        est = self._detailed_with_route({"legs": {"steps": []}})
        self.assertTrue(est.fallback)

    def test_fallback_on_non_object_step(self):
        est = self._detailed_with_route({"legs": [{"steps": ["turn left"]}]})
        self.assertTrue(est.fallback)

    def test_fallback_on_steps_object(self):
        est = self._detailed_with_route({"legs": [{"steps": {"0": {}}}]})
        self.assertTrue(est.fallback)

    def test_detailed_without_legs_has_no_steps(self):
        est = self._detailed_with_route({})
        self.assertFalse(est.fallback)
        self.assertEqual(est.steps, ())


def test_route_cache_key_rounds_coordinates():
    a = route_cache_key("route_summary", "driving", (40.123456789, -79.1), (40.2, -79.987654321))
    b = route_cache_key("route_summary", "driving", (40.123457, -79.1), (40.2, -79.987654))
    assert a == b
    assert a.startswith("route_summary:driving:")


def test_normalize_mode():
    assert normalize_mode("WALKING") == "walking"
    assert normalize_mode("cycling") == "driving"
    assert normalize_mode(None) == "driving"


def test_step_instruction_without_road_name():
    assert step_instruction({"maneuver": {"type": "roundabout", "modifier": "right"}}) == "roundabout right"
    assert step_instruction({}) == "Continue"
