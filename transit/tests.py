import io
import json
import random
import zipfile
from datetime import datetime, timedelta, timezone
from unittest import mock

import requests
from django.core.management import call_command
from django.test import Client, SimpleTestCase, override_settings

from . import feeds, services
from .catalog import Route, RouteCatalog, Stop, StopIndex
from .exceptions import (
    DuplicateIdentifier, EmptyCatalog, EmptyIndex, InvalidKind, UnknownRoute,
)
from .geo import Coordinate, distance_km
from .recommendation import (
    RandomRouteSelector, RecommendationEngine, estimate_duration_minutes,
)
from .reports import ReportKind, ReportLog
from .simulation import LiveLocationSimulator

CITY_TOWER = Coordinate(-1.9534, 30.0616)
AIRPORT = Coordinate(-1.9686, 30.1344)
FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

STOPS = [
    Stop("A", "City Tower", Coordinate(-1.9534, 30.0616)),
    Stop("B", "Airport", Coordinate(-1.9686, 30.1344)),
    Stop("C", "Kagugu B", Coordinate(-1.912372, 30.082796)),
]
ROUTES = [
    Route("419", "419", "Nyabugogo-Cyumbati", "e92121"),
    Route("101", "101", "Downtown-Remera", "B55C93"),
]


class FirstRouteSelector:
    def __init__(self):
        self.calls = 0

    def select(self, routes):
        self.calls += 1
        return routes[0]


class GeoMathTests(SimpleTestCase):
    def test_distance_is_symmetric(self):
        rng = random.Random(7)
        for _ in range(50):
            a = Coordinate(rng.uniform(-90, 90), rng.uniform(-180, 180))
            b = Coordinate(rng.uniform(-90, 90), rng.uniform(-180, 180))
            self.assertAlmostEqual(distance_km(a, b), distance_km(b, a), places=9)

    def test_distance_to_self_is_zero(self):
        self.assertEqual(distance_km(CITY_TOWER, CITY_TOWER), 0.0)

    def test_city_tower_to_airport(self):
        self.assertAlmostEqual(distance_km(CITY_TOWER, AIRPORT), 8.265, delta=0.01)

    def test_one_degree_of_latitude(self):
        self.assertAlmostEqual(
            distance_km(Coordinate(0.0, 0.0), Coordinate(1.0, 0.0)),
            111.195,
            delta=0.001,
        )


class StopIndexTests(SimpleTestCase):
    def test_nearest_returns_exact_match(self):
        index = StopIndex(STOPS[:2])
        self.assertEqual(index.nearest(Coordinate(-1.9534, 30.0616)).id, "A")

    def test_nearest_has_minimum_distance(self):
        index = StopIndex(STOPS)
        rng = random.Random(3)
        for _ in range(25):
            point = Coordinate(rng.uniform(-2.1, -1.8), rng.uniform(29.9, 30.3))
            best = index.nearest(point)
            self.assertIn(best, STOPS)
            for stop in STOPS:
                self.assertGreaterEqual(
                    distance_km(point, stop.position),
                    distance_km(point, best.position),
                )

    def test_first_stop_wins_ties(self):
        twin = Stop("A2", "City Tower twin", STOPS[0].position)
        index = StopIndex([STOPS[0], twin])
        self.assertEqual(index.nearest(Coordinate(-1.96, 30.07)).id, "A")

        reversed_index = StopIndex([twin, STOPS[0]])
        self.assertEqual(reversed_index.nearest(Coordinate(-1.96, 30.07)).id, "A2")

    def test_empty_index_raises(self):
        index = StopIndex([])
        with self.assertRaises(EmptyIndex):
            index.nearest(CITY_TOWER)
        with self.assertRaises(EmptyIndex):
            index.choose(random.Random(1))

    def test_duplicate_stop_ids_rejected(self):
        with self.assertRaises(DuplicateIdentifier):
            StopIndex([STOPS[0], STOPS[0]])

    def test_get_by_id(self):
        index = StopIndex(STOPS)
        self.assertEqual(index.get("C").name, "Kagugu B")
        with self.assertRaises(KeyError):
            index.get("missing")


class RouteCatalogTests(SimpleTestCase):
    def test_routes_keep_stored_order(self):
        catalog = RouteCatalog(ROUTES)
        self.assertEqual([route.id for route in catalog.routes()], ["419", "101"])
        self.assertEqual(len(catalog), 2)

    def test_get_unknown_route(self):
        catalog = RouteCatalog(ROUTES)
        self.assertEqual(catalog.get("101").long_name, "Downtown-Remera")
        with self.assertRaises(UnknownRoute):
            catalog.get("999")

    def test_duplicate_route_ids_rejected(self):
        with self.assertRaises(DuplicateIdentifier):
            RouteCatalog([ROUTES[0], ROUTES[0]])


class RecommendationEngineTests(SimpleTestCase):
    def test_recommendation_uses_nearest_stops_and_selector(self):
        selector = FirstRouteSelector()
        engine = RecommendationEngine(StopIndex(STOPS), RouteCatalog(ROUTES), selector=selector)

        recommendation = engine.recommend(CITY_TOWER, AIRPORT)

        self.assertEqual(recommendation.route.id, "419")
        self.assertEqual(recommendation.start_stop.id, "A")
        self.assertEqual(recommendation.end_stop.id, "B")
        self.assertEqual(recommendation.estimated_duration_minutes, 17)
        self.assertEqual(selector.calls, 1)

    def test_same_start_and_end_takes_zero_minutes(self):
        engine = RecommendationEngine(
            StopIndex(STOPS), RouteCatalog(ROUTES), selector=FirstRouteSelector()
        )
        self.assertEqual(engine.recommend(AIRPORT, AIRPORT).estimated_duration_minutes, 0)

    def test_duration_uses_average_speed(self):
        start, end = Coordinate(0.0, 0.0), Coordinate(1.0, 0.0)
        self.assertEqual(estimate_duration_minutes(start, end), 222)
        self.assertEqual(estimate_duration_minutes(start, end, 60.0), 111)

    def test_half_minutes_round_up(self):
        # 3.75 km at 10 km/h is exactly 22.5 minutes; round() would give 22.
        with mock.patch("transit.recommendation.distance_km", return_value=3.75):
            self.assertEqual(estimate_duration_minutes(CITY_TOWER, AIRPORT, 10.0), 23)

    @override_settings(TRANSIT_CONFIG={"average_speed_kmh": 60.0})
    def test_configured_speed_reaches_engine(self):
        registry = services.build_registry(STOPS, ROUTES, selector=FirstRouteSelector())

        self.assertEqual(registry.engine.average_speed_kmh, 60.0)
        recommendation = registry.engine.recommend(Coordinate(0.0, 0.0), Coordinate(1.0, 0.0))
        self.assertEqual(recommendation.estimated_duration_minutes, 111)

    def test_non_positive_speed_rejected(self):
        for speed in (0.0, -5.0):
            with self.assertRaises(ValueError):
                RecommendationEngine(StopIndex(STOPS), RouteCatalog(ROUTES), average_speed_kmh=speed)
        engine = RecommendationEngine(StopIndex(STOPS), RouteCatalog(ROUTES), average_speed_kmh=0.5)
        self.assertEqual(engine.average_speed_kmh, 0.5)

    def test_empty_catalog_raises(self):
        selector = FirstRouteSelector()
        engine = RecommendationEngine(StopIndex(STOPS), RouteCatalog([]), selector=selector)
        with self.assertRaises(EmptyCatalog):
            engine.recommend(CITY_TOWER, AIRPORT)
        self.assertEqual(selector.calls, 0)

    def test_empty_index_raises(self):
        engine = RecommendationEngine(
            StopIndex([]), RouteCatalog(ROUTES), selector=FirstRouteSelector()
        )
        with self.assertRaises(EmptyIndex):
            engine.recommend(CITY_TOWER, AIRPORT)

    def test_random_selector_picks_known_route(self):
        selector = RandomRouteSelector(random.Random(11))
        picks = {selector.select(ROUTES).id for _ in range(30)}
        self.assertTrue(picks <= {"419", "101"})

    def test_payload_shape(self):
        engine = RecommendationEngine(
            StopIndex(STOPS), RouteCatalog(ROUTES), selector=FirstRouteSelector()
        )
        payload = engine.recommend(CITY_TOWER, AIRPORT).as_dict()
        self.assertEqual(payload["route"]["route_id"], "419")
        self.assertEqual(payload["startStop"]["stop_id"], "A")
        self.assertEqual(payload["endStop"]["stop_lat"], -1.9686)
        self.assertEqual(payload["estimatedDuration"], 17)


class LiveLocationSimulatorTests(SimpleTestCase):
    def setUp(self):
        self.simulator = LiveLocationSimulator(
            StopIndex(STOPS), RouteCatalog(ROUTES), rng=random.Random(5)
        )

    def test_first_poll_starts_at_a_stop_then_drifts(self):
        first = self.simulator.poll("419")
        self.assertIn(first, [stop.position for stop in STOPS])

        second = self.simulator.poll("419")
        self.assertLessEqual(abs(second.latitude - first.latitude), 0.0005)
        self.assertLessEqual(abs(second.longitude - first.longitude), 0.0005)

    def test_poll_all_covers_every_route_once(self):
        snapshot = self.simulator.poll_all()
        self.assertEqual(list(snapshot), ["419", "101"])

        self.simulator.poll_all()
        self.assertEqual(set(self.simulator.snapshot()), {"419", "101"})

    def test_snapshot_does_not_advance(self):
        polled = self.simulator.poll_all()
        self.assertEqual(self.simulator.snapshot(), polled)
        self.assertEqual(self.simulator.snapshot(), polled)

    def test_empty_index_raises_on_first_poll(self):
        simulator = LiveLocationSimulator(StopIndex([]), RouteCatalog(ROUTES))
        with self.assertRaises(EmptyIndex):
            simulator.poll_all()
        self.assertEqual(simulator.snapshot(), {})


class ReportLogTests(SimpleTestCase):
    def setUp(self):
        self.now = FIXED_NOW
        self.log = ReportLog(clock=lambda: self.now)

    def _append_at(self, created_at, kind="TRAFFIC"):
        self.now = created_at
        return self.log.append(kind, CITY_TOWER, "Heavy traffic")

    def test_window_boundaries(self):
        expired = self._append_at(FIXED_NOW - timedelta(milliseconds=3600001))
        visible = self._append_at(FIXED_NOW - timedelta(milliseconds=3599999))

        recent = self.log.recent(FIXED_NOW)

        self.assertNotIn(expired, recent)
        self.assertIn(visible, recent)
        self.assertEqual(len(self.log), 2)

    def test_naive_now_is_treated_as_utc(self):
        visible = self._append_at(FIXED_NOW - timedelta(minutes=59))
        expired = self._append_at(FIXED_NOW - timedelta(minutes=61))

        recent = self.log.recent(FIXED_NOW.replace(tzinfo=None))

        self.assertEqual(recent, [visible])
        self.assertNotIn(expired, recent)

    def test_recent_keeps_insertion_order(self):
        first = self._append_at(FIXED_NOW - timedelta(minutes=10))
        second = self._append_at(FIXED_NOW - timedelta(minutes=30), kind="ACCIDENT")
        third = self._append_at(FIXED_NOW, kind=ReportKind.OTHER)

        self.assertEqual(self.log.recent(FIXED_NOW), [first, second, third])

    def test_invalid_kind_leaves_log_untouched(self):
        with self.assertRaises(InvalidKind):
            self.log.append("BOGUS", CITY_TOWER, "???")
        self.assertEqual(len(self.log), 0)

    def test_report_ids_are_unique(self):
        ids = {self.log.append("OTHER", CITY_TOWER, "").id for _ in range(20)}
        self.assertEqual(len(ids), 20)

    def test_payload_shape(self):
        report = self.log.append("ACCIDENT", CITY_TOWER, "Collision")
        payload = report.as_dict()
        self.assertEqual(payload["type"], "ACCIDENT")
        self.assertEqual(payload["location"], {"lat": -1.9534, "lon": 30.0616})
        self.assertEqual(payload["timestamp"], int(FIXED_NOW.timestamp() * 1000))


def _gtfs_zip(stops_rows, routes_rows) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(
            "stops.txt",
            "stop_id,stop_name,stop_lat,stop_lon,location_type\n" + "\n".join(stops_rows),
        )
        archive.writestr(
            "routes.txt",
            "route_id,route_short_name,route_long_name,route_color\n" + "\n".join(routes_rows),
        )
    return buffer.getvalue()


class ReferenceFeedTests(SimpleTestCase):
    def test_parse_gtfs_zip(self):
        payload = _gtfs_zip(
            ["s1,Remera,-1.9578,30.1087,0", "station,Parent,,,1"],
            ["r1,1,Remera-Kimironko,FF0000"],
        )
        data = feeds.parse_gtfs_zip(payload, source="test")

        self.assertEqual([stop.id for stop in data.stops], ["s1"])
        self.assertEqual(data.stops[0].position, Coordinate(-1.9578, 30.1087))
        self.assertEqual(data.routes[0].long_name, "Remera-Kimironko")

    @override_settings(TRANSIT_CONFIG={"feed_url": ""})
    def test_no_feed_uses_sample_data(self):
        data = feeds.load_reference_data()
        self.assertEqual(data.source, "fallback-sample")
        self.assertGreater(len(data.stops), 0)
        self.assertIn("419", [route.id for route in data.routes])

    @override_settings(TRANSIT_CONFIG={"feed_url": "https://example.test/gtfs.zip"})
    def test_feed_download(self):
        response = mock.Mock(content=_gtfs_zip(["s1,Remera,-1.9578,30.1087,0"], ["r1,1,A-B,00FF00"]))
        with mock.patch("transit.feeds.requests.get", return_value=response) as get:
            data = feeds.load_reference_data()

        get.assert_called_once_with("https://example.test/gtfs.zip", timeout=10)
        self.assertEqual(data.source, "https://example.test/gtfs.zip")
        self.assertEqual([route.id for route in data.routes], ["r1"])

    @override_settings(TRANSIT_CONFIG={"feed_url": "https://example.test/gtfs.zip"})
    def test_feed_failure_falls_back(self):
        with mock.patch(
            "transit.feeds.requests.get",
            side_effect=requests.exceptions.ConnectionError("offline"),
        ):
            data = feeds.load_reference_data()
        self.assertEqual(data.source, "fallback-sample")

    @override_settings(TRANSIT_CONFIG={"feed_url": "https://example.test/gtfs.zip"})
    def test_corrupt_feed_falls_back(self):
        with mock.patch(
            "transit.feeds.requests.get",
            return_value=mock.Mock(content=b"not a zip"),
        ):
            data = feeds.load_reference_data()
        self.assertEqual(data.source, "fallback-sample")

    def test_parse_rejects_repeated_ids(self):
        with self.assertRaises(DuplicateIdentifier):
            feeds.parse_gtfs_zip(
                _gtfs_zip(["s1,Remera,-1.9578,30.1087,0", "s1,Remera,-1.9578,30.1087,0"], ["r1,1,A-B,00FF00"])
            )
        with self.assertRaises(DuplicateIdentifier):
            feeds.parse_gtfs_zip(
                _gtfs_zip(["s1,Remera,-1.9578,30.1087,0"], ["r1,1,A-B,00FF00", "r1,1,A-B,00FF00"])
            )

    @override_settings(TRANSIT_CONFIG={"feed_url": "https://example.test/gtfs.zip"})
    def test_repeated_stop_ids_fall_back_once(self):
        payload = _gtfs_zip(
            ["s1,Remera,-1.9578,30.1087,0", "s1,Remera,-1.9578,30.1087,0"],
            ["r1,1,A-B,00FF00"],
        )
        services.set_registry(None)
        self.addCleanup(services.set_registry, None)
        client = Client()

        with mock.patch(
            "transit.feeds.requests.get",
            return_value=mock.Mock(content=payload),
        ) as get:
            responses = [client.get("/api/stops/") for _ in range(3)]

        self.assertEqual([response.status_code for response in responses], [200, 200, 200])
        self.assertEqual(get.call_count, 1)
        self.assertEqual(services.get_registry().source, "fallback-sample")
        self.assertIn("3a7a", [stop["stop_id"] for stop in responses[0].json()])


class TransitAPITests(SimpleTestCase):
    def setUp(self):
        self.now = FIXED_NOW
        services.set_registry(
            services.build_registry(
                STOPS,
                ROUTES,
                selector=FirstRouteSelector(),
                rng=random.Random(2),
                clock=lambda: self.now,
            )
        )
        self.client = Client()

    def tearDown(self):
        services.set_registry(None)

    def _post(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json")

    def test_stops_and_routes(self):
        stops = self.client.get("/api/stops/").json()
        self.assertEqual([stop["stop_id"] for stop in stops], ["A", "B", "C"])

        routes = self.client.get("/api/routes/").json()
        self.assertEqual(routes[1]["route_long_name"], "Downtown-Remera")

    def test_route_detail(self):
        response = self.client.get("/api/routes/101/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["route_color"], "B55C93")

        self.assertEqual(self.client.get("/api/routes/nope/").status_code, 404)

    def test_recommend_route(self):
        response = self._post(
            "/api/recommend-route/",
            {"start": {"lat": -1.9534, "lon": 30.0616}, "end": {"lat": -1.9686, "lon": 30.1344}},
        )
        self.assertEqual(response.status_code, 200)

        payload = response.json()
        self.assertEqual(payload["route"]["route_id"], "419")
        self.assertEqual(payload["startStop"]["stop_id"], "A")
        self.assertEqual(payload["endStop"]["stop_id"], "B")
        self.assertEqual(payload["estimatedDuration"], 17)

    def test_non_utf8_body_is_rejected(self):
        for url in ("/api/reports/", "/api/recommend-route/"):
            response = self.client.post(
                url, data=b'{"type": "\x80"}', content_type="application/json"
            )
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()["error"], "Invalid JSON")
        self.assertEqual(len(services.get_registry().reports), 0)

    def test_recommend_rejects_bad_input(self):
        response = self.client.post(
            "/api/recommend-route/", data="{", content_type="application/json"
        )
        self.assertEqual(response.status_code, 400)

        response = self._post(
            "/api/recommend-route/",
            {"start": {"lat": 95, "lon": 30.0}, "end": {"lat": -1.9, "lon": 30.1}},
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("start", response.json()["fields"])

        response = self._post("/api/recommend-route/", {"start": {"lat": -1.9, "lon": 30.1}})
        self.assertEqual(response.status_code, 400)

    def test_recommend_without_routes(self):
        services.set_registry(services.build_registry(STOPS, []))
        response = self._post(
            "/api/recommend-route/",
            {"start": {"lat": -1.9534, "lon": 30.0616}, "end": {"lat": -1.9686, "lon": 30.1344}},
        )
        self.assertEqual(response.status_code, 503)
        self.assertIn("error", response.json())

    def test_bus_locations(self):
        first = self.client.get("/api/bus-locations/").json()
        self.assertEqual(set(first), {"419", "101"})

        second = self.client.get("/api/bus-locations/").json()
        for route_id, point in second.items():
            self.assertAlmostEqual(point["lat"], first[route_id]["lat"], delta=0.0005)
            self.assertAlmostEqual(point["lon"], first[route_id]["lon"], delta=0.0005)

    def test_bus_locations_without_stops(self):
        services.set_registry(services.build_registry([], ROUTES))
        self.assertEqual(self.client.get("/api/bus-locations/").status_code, 503)

    def test_submit_and_list_reports(self):
        response = self._post(
            "/api/reports/",
            {
                "type": "TRAFFIC",
                "location": {"lat": -1.9534, "lon": 30.0616},
                "description": "Heavy traffic due to road construction",
            },
        )
        self.assertEqual(response.status_code, 201)
        created = response.json()
        self.assertEqual(created["type"], "TRAFFIC")

        reports = self.client.get("/api/reports/").json()
        self.assertEqual([report["id"] for report in reports], [created["id"]])

        self.now = FIXED_NOW + timedelta(hours=2)
        self.assertEqual(self.client.get("/api/reports/").json(), [])

    def test_submit_unknown_report_type(self):
        response = self._post(
            "/api/reports/",
            {"type": "BOGUS", "location": {"lat": -1.9534, "lon": 30.0616}},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(len(services.get_registry().reports), 0)

    def test_submit_report_requires_location(self):
        response = self._post("/api/reports/", {"type": "OTHER"})
        self.assertEqual(response.status_code, 400)


@override_settings(TRANSIT_CONFIG={"feed_url": ""})
class TransitDemoCommandTests(SimpleTestCase):
    def setUp(self):
        services.set_registry(None)

    def tearDown(self):
        services.set_registry(None)

    def test_demo_prints_each_section(self):
        out = io.StringIO()
        call_command("transit_demo", stdout=out)

        output = out.getvalue()
        self.assertIn("Route Recommendation:", output)
        self.assertIn("Simulated Bus Locations:", output)
        self.assertIn("Heavy traffic due to road construction", output)
        self.assertEqual(len(services.get_registry().reports), 1)
