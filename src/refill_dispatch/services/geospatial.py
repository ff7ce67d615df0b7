"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Any

from ..exceptions import InvalidCoordinates

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres rounded to two decimals. NaN inputs propagate."""

    return round(haversine_km(lat1, lon1, lat2, lon2), 2)


def trip_distance_km(
    agent: tuple[float, float],
    kitchen: tuple[float, float],
    destination: tuple[float, float],
) -> float:
    """Total trip for a refiller: agent -> kitchen -> destination -> back to kitchen.

    The return leg to the kitchen is part of the trip and must not be dropped.
    """

    to_kitchen = distance_km(*agent, *kitchen)
    to_destination = distance_km(*kitchen, *destination)
    back_to_kitchen = distance_km(*destination, *kitchen)
    return round(to_kitchen + to_destination + back_to_kitchen, 2)


def parse_coordinate(value: Any) -> float | None:
    """Parse a coordinate that may arrive as a number or a numeric string."""

    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed) or math.isinf(parsed):
        return None
    return parsed


def parse_point(entity_id: str, latitude: Any, longitude: Any) -> tuple[float, float]:
    lat = parse_coordinate(latitude)
    lon = parse_coordinate(longitude)
    if lat is None or lon is None or not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        raise InvalidCoordinates(entity_id, latitude, longitude)
    return lat, lon
