"""Distance and travel-time estimation between coordinates."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from .models import Coordinates
from .time_utils import round_half_up

EARTH_RADIUS_MILES = 3959.0
AVERAGE_SPEED_MPH = 20.0

Point = Coordinates | tuple[float, float]


@dataclass(frozen=True)
class BoundingBox:
    north: float
    south: float
    east: float
    west: float

    def to_dict(self) -> dict[str, float]:
        return {"north": self.north, "south": self.south, "east": self.east, "west": self.west}


def _lat_lng(point: Point) -> tuple[float, float]:
    if isinstance(point, Coordinates):
        return point.latitude, point.longitude
    lat, lng = point
    return float(lat), float(lng)


def distance(a: Point, b: Point) -> float:
    """Great-circle (haversine) distance in miles."""
    lat1, lng1 = _lat_lng(a)
    lat2, lng2 = _lat_lng(b)
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def distance_or_none(a: Point | None, b: Point | None) -> float | None:
    """Distance in miles, or None when either coordinate is unknown."""
    if a is None or b is None:
        return None
    return distance(a, b)


def travel_time(miles: float, *, speed_mph: float = AVERAGE_SPEED_MPH) -> int:
    """Estimated driving minutes for a distance at an average road speed."""
    if miles < 0:
        raise ValueError(f"distance must not be negative, got {miles}")
    if speed_mph <= 0:
        raise ValueError(f"speed_mph must be positive, got {speed_mph}")
    return max(round_half_up(miles / speed_mph * 60), 0)


def bounds_of(points: Iterable[Point | None], *, padding_ratio: float = 0.1) -> BoundingBox | None:
    """Bounding box around the located points, for map framing.

    Padding is a share of the span on each axis, 0.01 degrees on an axis
    with no span.
    """
    located = [_lat_lng(p) for p in points if p is not None]
    if not located:
        return None

    lats = [lat for lat, _ in located]
    lngs = [lng for _, lng in located]
    north, south = max(lats), min(lats)
    east, west = max(lngs), min(lngs)

    if padding_ratio > 0:
        lat_pad = (north - south) * padding_ratio or 0.01
        lng_pad = (east - west) * padding_ratio or 0.01
        north, south = north + lat_pad, south - lat_pad
        east, west = east + lng_pad, west - lng_pad

    return BoundingBox(north=north, south=south, east=east, west=west)


def center_of(points: Iterable[Point | None]) -> Coordinates | None:
    located = [_lat_lng(p) for p in points if p is not None]
    if not located:
        return None
    return Coordinates(
        latitude=sum(lat for lat, _ in located) / len(located),
        longitude=sum(lng for _, lng in located) / len(located),
    )
