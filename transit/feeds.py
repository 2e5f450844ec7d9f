"""
Helpers for loading stop and route reference data from a GTFS static feed.
Falls back to bundled Kigali sample data when no feed URL is configured.
"""
from __future__ import annotations

import csv
import io
import logging
import zipfile
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import requests
from django.conf import settings

from .catalog import Route, RouteCatalog, Stop, StopIndex
from .geo import Coordinate

LOGGER = logging.getLogger(__name__)

SAMPLE_ROUTES: Tuple[Dict[str, str], ...] = (
    {
        "route_id": "419",
        "route_short_name": "419",
        "route_long_name": "Nyabugogo-Cyumbati",
        "route_color": "e92121",
    },
    {
        "route_id": "101",
        "route_short_name": "101",
        "route_long_name": "Downtown-Remera",
        "route_color": "B55C93",
    },
    {
        "route_id": "302",
        "route_short_name": "302",
        "route_long_name": "Downtown-Kimironko",
        "route_color": "1F7A4D",
    },
)

SAMPLE_STOPS: Tuple[Dict[str, object], ...] = (
    {
        "stop_id": "3a7a",
        "stop_name": "Kwa Rwahama",
        "stop_lat": -1.952559,
        "stop_lon": 30.120783,
    },
    {
        "stop_id": "936d1650-82dc-4b35-8b4e-4a5608978387",
        "stop_name": "Kagugu B",
        "stop_lat": -1.912372,
        "stop_lon": 30.082796,
    },
    {
        "stop_id": "nyabugogo-bus-park",
        "stop_name": "Nyabugogo Bus Park",
        "stop_lat": -1.939300,
        "stop_lon": 30.044500,
    },
    {
        "stop_id": "downtown-bus-park",
        "stop_name": "Downtown Bus Park",
        "stop_lat": -1.944100,
        "stop_lon": 30.058800,
    },
    {
        "stop_id": "kimironko-market",
        "stop_name": "Kimironko Market",
        "stop_lat": -1.949600,
        "stop_lon": 30.126200,
    },
)


@dataclass(frozen=True)
class ReferenceData:
    source: str
    stops: List[Stop]
    routes: List[Route]


def load_reference_data() -> ReferenceData:
    config = getattr(settings, "TRANSIT_CONFIG", {})
    feed_url = (config.get("feed_url") or "").strip()

    data: Optional[ReferenceData] = None
    if feed_url:
        data = _gtfs_reference_data(feed_url, config.get("timeout_seconds", 10))

    if data is None:
        data = _fallback_reference_data()

    LOGGER.info(
        "Loaded %d stops and %d routes from %s",
        len(data.stops),
        len(data.routes),
        data.source,
    )
    return data


def _gtfs_reference_data(url: str, timeout: float) -> Optional[ReferenceData]:
    LOGGER.info("Requesting GTFS static feed from %s", url)

    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        return parse_gtfs_zip(response.content, source=url)
    except requests.exceptions.RequestException as error:
        LOGGER.warning("GTFS feed request failed: %s", error)
    except (zipfile.BadZipFile, KeyError, ValueError) as error:
        LOGGER.warning("GTFS feed could not be parsed: %s", error)
    return None


def parse_gtfs_zip(payload: bytes, source: str = "gtfs") -> ReferenceData:
    """
    Read ``stops.txt`` and ``routes.txt`` out of a GTFS zip archive.

    Stops without coordinates (stations, entrances) are skipped. Repeated
    stop or route ids raise ``DuplicateIdentifier``.
    """
    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        stops = [_stop_from_row(row) for row in _read_table(archive, "stops.txt")
                 if row.get("stop_lat") and row.get("stop_lon")]
        routes = [_route_from_row(row) for row in _read_table(archive, "routes.txt")]
    # Reject repeated ids here so a bad feed falls back instead of failing later.
    StopIndex(stops)
    RouteCatalog(routes)
    return ReferenceData(source=source, stops=stops, routes=routes)


def _read_table(archive: zipfile.ZipFile, name: str) -> Iterator[Dict[str, str]]:
    with archive.open(name) as handle:
        reader = csv.DictReader(io.TextIOWrapper(handle, encoding="utf-8-sig", newline=""))
        for row in reader:
            yield {key.strip(): (value or "").strip() for key, value in row.items() if key}


def _stop_from_row(row: Dict) -> Stop:
    return Stop(
        id=str(row["stop_id"]),
        name=str(row.get("stop_name", "")),
        position=Coordinate(float(row["stop_lat"]), float(row["stop_lon"])),
    )


def _route_from_row(row: Dict) -> Route:
    return Route(
        id=str(row["route_id"]),
        short_name=str(row.get("route_short_name", "")),
        long_name=str(row.get("route_long_name", "")),
        color_hex=str(row.get("route_color", "")),
    )


def _fallback_reference_data() -> ReferenceData:
    return ReferenceData(
        source="fallback-sample",
        stops=[_stop_from_row(row) for row in SAMPLE_STOPS],
        routes=[_route_from_row(row) for row in SAMPLE_ROUTES],
    )
