import unittest
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

import main
from data_sources.cache import InMemoryTTLCache, set_default_cache
from data_sources.osrm_api import RouteStep, TravelEstimate
from data_sources.places import CLINICAL_CATEGORIES, Place, PlaceCategory
from care_routing.recommendation import RankedCandidate, Recommendation


def _place():
    return Place(id="node/1-4044000--7994000", category=PlaceCategory.HOSPITAL,
                 name="UPMC Mercy", lat=40.44, lng=-79.94)


class TestApi(unittest.TestCase):
    """HTTP layer only; pipeline functions are stubbed."""

    def setUp(self):
        self.client = TestClient(main.app)
        set_default_cache(InMemoryTTLCache())

    def tearDown(self):
        set_default_cache(None)

    def test_root(self):
        resp = self.client.get("/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "running")

    def test_nearby(self):
        with patch.object(main, "nearby", return_value=[_place()]) as nearby:
            resp = self.client.get("/geo/nearby", params={
                "lat": 40.44, "lng": -79.94, "radius_m": 2000, "types": "hospital,bogus,pharmacy",
            })

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["places"][0]["name"], "UPMC Mercy")
        args = nearby.call_args.args
        self.assertEqual(args[3], [PlaceCategory.HOSPITAL, PlaceCategory.PHARMACY])

    def test_nearby_default_types(self):
        with patch.object(main, "nearby", return_value=[]) as nearby:
            self.client.get("/geo/nearby", params={"lat": 40.44, "lng": -79.94})
        self.assertEqual(nearby.call_args.args[3], list(CLINICAL_CATEGORIES))

    def test_nearby_rejects_out_of_range_coordinates(self):
        with patch.object(main, "nearby") as nearby:
            resp = self.client.get("/geo/nearby", params={"lat": 91, "lng": -79.94})
        self.assertEqual(resp.status_code, 400)
        nearby.assert_not_called()

    def test_recommend(self):
        candidate = RankedCandidate(place=_place(), specialty_match_score=0.5, capacity_score=1.0,
                                    composite_score=0.6, distance_meters=2500.0, eta_seconds=300.0)
        stub = Recommendation(recommended_place=candidate, ranked_places=[candidate],
                              reasoning=["Short travel time (ETA ~5 min)."])

        with patch.object(main, "recommend", return_value=stub) as recommend:
            resp = self.client.post("/geo/recommend", json={
                "lat": 40.44,
                "lng": -79.99,
                "types": ["hospital"],
                "patient_needs": {"severity": "emergency", "required_specialties": ["Cardiology"]},
            })

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["recommended_place"]["name"], "UPMC Mercy")
        self.assertEqual(body["reasoning"], ["Short travel time (ETA ~5 min)."])
        args = recommend.call_args.args
        self.assertEqual(args[2], main.DEFAULT_RADIUS_M)
        self.assertEqual(args[3], [PlaceCategory.HOSPITAL])
        self.assertTrue(args[4].is_emergency)
        self.assertEqual(args[4].required_specialties, ["cardiology"])
        self.assertIsNotNone(recommend.call_args.kwargs["request_id"])

    def test_recommend_rejects_bad_coordinates(self):
        resp = self.client.post("/geo/recommend", json={"lat": 40.44, "lng": 200})
        self.assertEqual(resp.status_code, 400)

    def test_recommend_requires_coordinates(self):
        resp = self.client.post("/geo/recommend", json={"lat": 40.44})
        self.assertEqual(resp.status_code, 422)

    def test_route(self):
        estimator = MagicMock()
        estimator.detailed.return_value = TravelEstimate(
            distance_meters=1000.0, duration_seconds=120.0,
            steps=(RouteStep("depart onto Forbes Ave", 1000.0, 120.0),),
            geometry={"type": "LineString", "coordinates": [[-79.99, 40.44], [-79.94, 40.44]]},
        )
        with patch.object(main, "get_default_estimator", return_value=estimator):
            resp = self.client.get("/geo/route", params={
                "from_lat": 40.44, "from_lng": -79.99, "to_lat": 40.44, "to_lng": -79.94, "mode": "WALKING",
            })

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertFalse(body["fallback"])
        self.assertEqual(body["steps"][0]["instruction"], "depart onto Forbes Ave")
        estimator.detailed.assert_called_once_with((40.44, -79.99), (40.44, -79.94), "walking")

    def test_route_summary(self):
        estimator = MagicMock()
        estimator.summary.return_value = TravelEstimate(distance_meters=1000.0, duration_seconds=72.0,
                                                        fallback=True, note="down")
        with patch.object(main, "get_default_estimator", return_value=estimator):
            resp = self.client.get("/geo/route/summary", params={
                "from_lat": 40.44, "from_lng": -79.99, "to_lat": 40.44, "to_lng": -79.94,
            })

        self.assertEqual(resp.json(), {"distance_meters": 1000.0, "duration_seconds": 72.0, "fallback": True})

    def test_route_rejects_bad_destination(self):
        resp = self.client.get("/geo/route", params={
            "from_lat": 40.44, "from_lng": -79.99, "to_lat": -95, "to_lng": -79.94,
        })
        self.assertEqual(resp.status_code, 400)
        self.assertIn("destination", resp.json()["detail"])

    def test_geocode(self):
        with patch.object(main, "geocode", return_value=[{"name": "Pittsburgh", "lat": 40.44, "lng": -79.99}]) as geocode:
            resp = self.client.get("/geo/geocode", params={"q": "Pittsburgh", "country": "us"})
        self.assertEqual(resp.json()["results"][0]["name"], "Pittsburgh")
        geocode.assert_called_once_with("Pittsburgh", "us")

    def test_geocode_blank_query(self):
        resp = self.client.get("/geo/geocode", params={"q": "   "})
        self.assertEqual(resp.status_code, 400)

    def test_transport_options(self):
        resp = self.client.get("/transport/options", params={"to_lat": 40.44, "to_lng": -79.94})
        body = resp.json()
        self.assertIn("dropoff%5Blatitude%5D=40.44", body["uber_deeplink"])
        self.assertFalse(body["public_transport"]["available"])

    def test_health(self):
        resp = self.client.get("/health")
        body = resp.json()
        self.assertEqual(body["status"], "healthy")
        self.assertIn("osrm", body["providers"])
        self.assertEqual(body["cache_stats"]["backend"], "memory")

    def test_cache_clear_and_stats(self):
        from data_sources.cache import get_default_cache
        get_default_cache().set("geocoding:abc", [1], 60)

        resp = self.client.post("/cache/clear", params={"cache_type": "geocoding"})
        self.assertEqual(resp.json()["removed"], 1)

        stats = self.client.get("/cache/stats").json()
        self.assertEqual(stats["cache_stats"]["total_entries"], 0)
