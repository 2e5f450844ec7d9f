"""
Route recommendation between two arbitrary points.

The route pick is a placeholder: ``RandomRouteSelector`` ignores the start and
end stops entirely. Swap in a different ``RouteSelector`` once real route
topology is available; the rest of the engine does not change.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Sequence

from .catalog import Route, RouteCatalog, Stop, StopIndex
from .exceptions import EmptyCatalog
from .geo import Coordinate, distance_km

DEFAULT_AVERAGE_SPEED_KMH = 30.0


class RouteSelector(Protocol):
    def select(self, routes: Sequence[Route]) -> Route:
        ...


class RandomRouteSelector:
    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def select(self, routes: Sequence[Route]) -> Route:
        return self.rng.choice(routes)


@dataclass(frozen=True)
class RouteRecommendation:
    route: Route
    start_stop: Stop
    end_stop: Stop
    estimated_duration_minutes: int

    def as_dict(self) -> Dict:
        return {
            "route": self.route.as_dict(),
            "startStop": self.start_stop.as_dict(),
            "endStop": self.end_stop.as_dict(),
            "estimatedDuration": self.estimated_duration_minutes,
        }


def estimate_duration_minutes(
    start: Coordinate,
    end: Coordinate,
    average_speed_kmh: float = DEFAULT_AVERAGE_SPEED_KMH,
) -> int:
    """Straight-line travel time, rounded half up to the nearest minute."""
    minutes = distance_km(start, end) / average_speed_kmh * 60
    return int(math.floor(minutes + 0.5))


class RecommendationEngine:
    def __init__(
        self,
        stops: StopIndex,
        routes: RouteCatalog,
        selector: Optional[RouteSelector] = None,
        average_speed_kmh: float = DEFAULT_AVERAGE_SPEED_KMH,
    ):
        self.stops = stops
        self.routes = routes
        self.selector = selector or RandomRouteSelector()
        if average_speed_kmh <= 0:
            raise ValueError(f"Average speed must be positive, got {average_speed_kmh!r}")
        self.average_speed_kmh = average_speed_kmh

    def recommend(self, start: Coordinate, end: Coordinate) -> RouteRecommendation:
        start_stop = self.stops.nearest(start)
        end_stop = self.stops.nearest(end)

        candidates = self.routes.routes()
        if not candidates:
            raise EmptyCatalog()
        route = self.selector.select(candidates)

        return RouteRecommendation(
            route=route,
            start_stop=start_stop,
            end_stop=end_stop,
            estimated_duration_minutes=estimate_duration_minutes(
                start, end, self.average_speed_kmh
            ),
        )
