"""
Geographic primitives shared by the stop index, recommender and simulator.
"""
from __future__ import annotations

import math
from typing import NamedTuple

EARTH_RADIUS_KM = 6371.0


class Coordinate(NamedTuple):
    latitude: float
    longitude: float

    def as_dict(self) -> dict:
        return {"lat": self.latitude, "lon": self.longitude}


def distance_km(start: Coordinate, end: Coordinate) -> float:
    """
    Haversine distance in kilometres. Inputs are not range-checked.
    """
    phi1 = math.radians(start.latitude)
    phi2 = math.radians(end.latitude)
    half_d_phi = math.radians(end.latitude - start.latitude) / 2
    half_d_lambda = math.radians(end.longitude - start.longitude) / 2

    h = math.sin(half_d_phi) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(half_d_lambda) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))
