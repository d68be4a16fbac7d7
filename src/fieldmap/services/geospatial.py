"""Geospatial helper functions.

Every distance and bearing in the application goes through this module so that
route statistics, marker visibility and navigation all agree on the numbers.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

from shapely.geometry import LineString

from ..models.domain import BoundingBox, Coordinate, RouteStats

EARTH_RADIUS_M = 6_371_000.0
CARDINAL_DIRECTIONS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


def round_half_up(value: float) -> int:
    """Round .5 toward positive infinity, matching the figures shown to field users."""
    return int(math.floor(value + 0.5))


def is_valid_coordinate(latitude: object, longitude: object) -> bool:
    """Return True for finite numbers inside the WGS84 lat/lng ranges."""
    if isinstance(latitude, bool) or isinstance(longitude, bool):
        return False
    if not isinstance(latitude, (int, float)) or not isinstance(longitude, (int, float)):
        return False
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return False
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def _to_float(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return math.nan


def parse_coordinate_line(text: str) -> Optional[Coordinate]:
    """Parse one KML ``lng,lat[,alt]`` tuple; None when it is not a usable point."""
    parts = text.split(",")
    if len(parts) < 2:
        return None
    longitude = _to_float(parts[0])
    latitude = _to_float(parts[1])
    if not is_valid_coordinate(latitude, longitude):
        return None
    altitude = _to_float(parts[2]) if len(parts) >= 3 else 0.0
    if not math.isfinite(altitude):
        altitude = 0.0
    return Coordinate(latitude=latitude, longitude=longitude, altitude=altitude)


def parse_coordinate_block(text: Optional[str]) -> list[Coordinate]:
    """Parse a whitespace separated KML coordinates payload, dropping bad tuples."""
    if not text or not isinstance(text, str):
        return []
    points = []
    for token in text.split():
        point = parse_coordinate_line(token)
        if point is not None:
            points.append(point)
    return points


def format_coordinate_block(path: Sequence[Coordinate]) -> str:
    """Serialize a path back into the KML ``lng,lat,alt`` text form."""
    return " ".join(f"{point.longitude!r},{point.latitude!r},{point.altitude!r}" for point in path)


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """Compute great-circle distance in meters between two points."""

    phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Rounding can push near-antipodal points past 1.
    h = min(h, 1.0)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c


def bearing_degrees(origin: Coordinate, target: Coordinate) -> float:
    """Calculate the initial compass bearing from origin to target, in [0, 360)."""

    phi1 = math.radians(origin.latitude)
    phi2 = math.radians(target.latitude)
    delta_lambda = math.radians(target.longitude - origin.longitude)
    y = math.sin(delta_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda)
    bearing = math.degrees(math.atan2(y, x))
    return (bearing + 360) % 360


def bearing_to_cardinal(bearing: float) -> str:
    """Map a bearing onto the 8-point compass, each sector 45 degrees wide."""
    index = int(math.floor(bearing / 45 + 0.5)) % 8
    return CARDINAL_DIRECTIONS[index]


def path_length_m(path: Sequence[Coordinate]) -> float:
    return sum(haversine_m(path[i - 1], path[i]) for i in range(1, len(path)))


def route_stats(path: Sequence[Coordinate]) -> Optional[RouteStats]:
    """Summarize a path: point count, length, bounding box and box center."""
    if not path or len(path) < 2:
        return None

    west, south, east, north = LineString([(p.longitude, p.latitude) for p in path]).bounds
    return RouteStats(
        point_count=len(path),
        total_distance_meters=round_half_up(path_length_m(path)),
        bounding_box=BoundingBox(north=north, south=south, east=east, west=west),
        center=Coordinate(latitude=(north + south) / 2, longitude=(east + west) / 2),
    )
