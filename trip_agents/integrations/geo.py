"""Straight-line geometry helpers."""

import math
from typing import Iterable, Optional

from trip_agents.shared.contracts.trip_request import Location


EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two coordinates in kilometers."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_km(a: Location, b: Location) -> float:
    return haversine_km(a.lat, a.lng, b.lat, b.lng)


def centroid(locations: Iterable[Location], name: str = "Itinerary center") -> Optional[Location]:
    """Arithmetic mean of the locations that carry coordinates, or None."""
    points = [loc for loc in locations if loc.has_coordinates()]
    if not points:
        return None
    return Location(
        name=name,
        lat=sum(p.lat for p in points) / len(points),
        lng=sum(p.lng for p in points) / len(points),
    )
