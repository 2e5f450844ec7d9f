"""
Process-wide transit state and the operations the views and commands call.

The registry is built lazily from the reference feed on first use and then
shared by every request for the life of the process.
"""
from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from django.conf import settings

from .catalog import Route, RouteCatalog, Stop, StopIndex
from .feeds import load_reference_data
from .geo import Coordinate
from .recommendation import RecommendationEngine, RouteSelector
from .reports import ReportLog
from .simulation import LiveLocationSimulator

logger = logging.getLogger(__name__)


@dataclass
class TransitRegistry:
    source: str
    stops: StopIndex
    routes: RouteCatalog
    engine: RecommendationEngine
    simulator: LiveLocationSimulator
    reports: ReportLog


_REGISTRY: Optional[TransitRegistry] = None
_REGISTRY_LOCK = threading.Lock()


def build_registry(
    stops: Iterable[Stop],
    routes: Iterable[Route],
    *,
    source: str = "custom",
    selector: Optional[RouteSelector] = None,
    rng: Optional[random.Random] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> TransitRegistry:
    config = getattr(settings, "TRANSIT_CONFIG", {})
    stop_index = StopIndex(stops)
    catalog = RouteCatalog(routes)
    return TransitRegistry(
        source=source,
        stops=stop_index,
        routes=catalog,
        engine=RecommendationEngine(
            stop_index,
            catalog,
            selector=selector,
            average_speed_kmh=config.get("average_speed_kmh", 30.0),
        ),
        simulator=LiveLocationSimulator(
            stop_index,
            catalog,
            rng=rng,
            jitter_degrees=config.get("jitter_degrees", 0.001),
        ),
        reports=ReportLog(
            clock=clock,
            window=timedelta(seconds=config.get("report_window_seconds", 3600)),
        ),
    )


def get_registry() -> TransitRegistry:
    global _REGISTRY
    with _REGISTRY_LOCK:
        if _REGISTRY is None:
            data = load_reference_data()
            _REGISTRY = build_registry(data.stops, data.routes, source=data.source)
            logger.info("Transit registry ready (source=%s)", data.source)
        return _REGISTRY


def set_registry(registry: Optional[TransitRegistry]) -> None:
    """Replace the shared registry; ``None`` forces a rebuild on next use."""
    global _REGISTRY
    with _REGISTRY_LOCK:
        _REGISTRY = registry


def recommend_route(start: Coordinate, end: Coordinate) -> Dict:
    recommendation = get_registry().engine.recommend(start, end)
    logger.info(
        "Recommended route %s from stop %s to stop %s (%d min)",
        recommendation.route.id,
        recommendation.start_stop.id,
        recommendation.end_stop.id,
        recommendation.estimated_duration_minutes,
    )
    return recommendation.as_dict()


def list_stops() -> List[Dict]:
    return [stop.as_dict() for stop in get_registry().stops]


def list_routes() -> List[Dict]:
    return [route.as_dict() for route in get_registry().routes]


def get_route(route_id: str) -> Dict:
    return get_registry().routes.get(route_id).as_dict()


def poll_all_locations() -> Dict[str, Dict]:
    positions = get_registry().simulator.poll_all()
    return {route_id: position.as_dict() for route_id, position in positions.items()}


def submit_report(kind: str, position: Coordinate, description: str) -> Dict:
    report = get_registry().reports.append(kind, position, description)
    logger.info("Stored %s report %s", report.kind.value, report.id)
    return report.as_dict()


def recent_reports(now: Optional[datetime] = None) -> List[Dict]:
    return [report.as_dict() for report in get_registry().reports.recent(now)]
