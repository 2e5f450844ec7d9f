"""
Static reference data: stops and routes, loaded once and never mutated.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Tuple

from .exceptions import DuplicateIdentifier, EmptyIndex, UnknownRoute, UnknownStop
from .geo import Coordinate, distance_km


@dataclass(frozen=True)
class Stop:
    id: str
    name: str
    position: Coordinate

    def as_dict(self) -> Dict:
        return {
            "stop_id": self.id,
            "stop_name": self.name,
            "stop_lat": self.position.latitude,
            "stop_lon": self.position.longitude,
        }


@dataclass(frozen=True)
class Route:
    id: str
    short_name: str
    long_name: str
    color_hex: str

    def as_dict(self) -> Dict:
        return {
            "route_id": self.id,
            "route_short_name": self.short_name,
            "route_long_name": self.long_name,
            "route_color": self.color_hex,
        }


def _index_by_id(items: Iterable, collection: str) -> Dict[str, object]:
    by_id: Dict[str, object] = {}
    for item in items:
        if item.id in by_id:
            raise DuplicateIdentifier(collection, item.id)
        by_id[item.id] = item
    return by_id


class StopIndex:
    """
    Nearest-stop lookups over a fixed collection of stops.

    Queries are a linear scan; the collection is small reference data, and
    collection order decides ties.
    """

    def __init__(self, stops: Iterable[Stop]):
        self._stops: Tuple[Stop, ...] = tuple(stops)
        self._by_id = _index_by_id(self._stops, "stop")

    @property
    def stops(self) -> Tuple[Stop, ...]:
        return self._stops

    def __len__(self) -> int:
        return len(self._stops)

    def __iter__(self) -> Iterator[Stop]:
        return iter(self._stops)

    def get(self, stop_id: str) -> Stop:
        try:
            return self._by_id[stop_id]
        except KeyError:
            raise UnknownStop(stop_id) from None

    def nearest(self, point: Coordinate) -> Stop:
        if not self._stops:
            raise EmptyIndex()

        best = self._stops[0]
        best_distance = distance_km(point, best.position)
        for stop in self._stops[1:]:
            distance = distance_km(point, stop.position)
            # Strict comparison keeps the earlier stop on ties.
            if distance < best_distance:
                best, best_distance = stop, distance
        return best

    def choose(self, rng: random.Random) -> Stop:
        if not self._stops:
            raise EmptyIndex()
        return rng.choice(self._stops)


class RouteCatalog:
    def __init__(self, routes: Iterable[Route]):
        self._routes: Tuple[Route, ...] = tuple(routes)
        self._by_id = _index_by_id(self._routes, "route")

    def __len__(self) -> int:
        return len(self._routes)

    def __iter__(self) -> Iterator[Route]:
        return iter(self._routes)

    def routes(self) -> List[Route]:
        return list(self._routes)

    def get(self, route_id: str) -> Route:
        try:
            return self._by_id[route_id]
        except KeyError:
            raise UnknownRoute(route_id) from None
