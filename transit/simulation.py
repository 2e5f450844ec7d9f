"""
Simulated real-time bus positions.

Each route starts at a random known stop on its first poll and then drifts by
a small random offset on every poll after that.
"""
from __future__ import annotations

import random
import threading
from typing import Dict, Optional

from .catalog import RouteCatalog, StopIndex
from .geo import Coordinate

DEFAULT_JITTER_DEGREES = 0.001


class LiveLocationSimulator:
    def __init__(
        self,
        stops: StopIndex,
        routes: RouteCatalog,
        rng: Optional[random.Random] = None,
        jitter_degrees: float = DEFAULT_JITTER_DEGREES,
    ):
        self.stops = stops
        self.routes = routes
        self.rng = rng or random.Random()
        self.jitter_degrees = jitter_degrees
        self._positions: Dict[str, Coordinate] = {}
        self._lock = threading.Lock()

    def poll(self, route_id: str) -> Coordinate:
        """Advance one route and return its new position."""
        with self._lock:
            current = self._positions.get(route_id)
            if current is None:
                position = self.stops.choose(self.rng).position
            else:
                position = Coordinate(
                    current.latitude + self._offset(),
                    current.longitude + self._offset(),
                )
            self._positions[route_id] = position
            return position

    def poll_all(self) -> Dict[str, Coordinate]:
        return {route.id: self.poll(route.id) for route in self.routes}

    def snapshot(self) -> Dict[str, Coordinate]:
        with self._lock:
            return dict(self._positions)

    def _offset(self) -> float:
        return (self.rng.random() - 0.5) * self.jitter_degrees
