"""GPS-driven marker visibility, nearest stop lookup and navigation figures."""

from __future__ import annotations

import math
from typing import Any, Iterable, Optional, Sequence

from ..config import settings
from ..models.domain import Coordinate, Location, MarkerView, NavigationInfo, NearestStop, Stop
from .geospatial import bearing_degrees, bearing_to_cardinal, haversine_m, is_valid_coordinate, round_half_up

DEFAULT_PIN_COLOR = "#FFD800"


def _usable_fix(location: Optional[Location], accuracy_threshold: Optional[float]) -> bool:
    """A fix is usable when it has valid coordinates and, if reported, an accuracy within the threshold."""
    if location is None or not is_valid_coordinate(location.latitude, location.longitude):
        return False
    threshold = settings.gps_accuracy_threshold_meters if accuracy_threshold is None else accuracy_threshold
    if location.accuracy is not None and location.accuracy > threshold:
        return False
    return True


def _stop_point(stop: Stop) -> Optional[Coordinate]:
    if not is_valid_coordinate(stop.latitude, stop.longitude):
        return None
    return Coordinate(stop.latitude, stop.longitude)


def _fix_point(location: Location) -> Coordinate:
    return Coordinate(location.latitude, location.longitude)


def visible_stops(
    location: Optional[Location],
    stops: Iterable[Stop],
    radius_meters: Optional[float] = None,
    accuracy_threshold: Optional[float] = None,
) -> list[MarkerView]:
    """Stops within the radius of a reliable fix, nearest first.

    An absent fix, invalid coordinates or an accuracy worse than the threshold
    all mean "no position": no markers are returned.
    """
    if not _usable_fix(location, accuracy_threshold):
        return []
    radius = settings.marker_radius_meters if radius_meters is None else radius_meters
    origin = _fix_point(location)

    found: list[tuple[float, Stop]] = []
    for stop in stops:
        point = _stop_point(stop)
        if point is None:
            continue
        distance = haversine_m(origin, point)
        if distance <= radius:
            found.append((distance, stop))

    found.sort(key=lambda item: item[0])
    return [MarkerView(stop=stop, distance=round_half_up(distance)) for distance, stop in found]


def nearest_stop(
    location: Optional[Location],
    stops: Iterable[Stop],
    accuracy_threshold: Optional[float] = None,
) -> Optional[NearestStop]:
    if not _usable_fix(location, accuracy_threshold):
        return None
    origin = _fix_point(location)

    best: Optional[Stop] = None
    best_point: Optional[Coordinate] = None
    best_distance = math.inf
    for stop in stops:
        point = _stop_point(stop)
        if point is None:
            continue
        distance = haversine_m(origin, point)
        if distance < best_distance:
            best, best_point, best_distance = stop, point, distance

    if best is None:
        return None
    bearing = bearing_degrees(origin, best_point)
    return NearestStop(
        stop=best,
        distance=round_half_up(best_distance),
        bearing=round_half_up(bearing) % 360,
        direction=bearing_to_cardinal(bearing),
    )


def format_distance(distance: float) -> str:
    if distance < 1000:
        return f"{round_half_up(distance)}m"
    return f"{distance / 1000:.1f}km"


def format_eta(eta_minutes: int) -> str:
    if eta_minutes < 1:
        return "< 1 min"
    if eta_minutes < 60:
        return f"{eta_minutes} min"
    hours, minutes = divmod(eta_minutes, 60)
    return f"{hours}h {minutes}m" if minutes > 0 else f"{hours}h"


def navigation_info(
    stop: Optional[Stop],
    location: Optional[Location],
    walking_speed_kmh: Optional[float] = None,
) -> NavigationInfo:
    """Distance, bearing and walking ETA from a fix to a stop.

    Accuracy is reported but not gated here: a selected stop keeps its banner
    even on a poor fix.
    """
    if location is None or not is_valid_coordinate(location.latitude, location.longitude):
        return NavigationInfo(
            can_navigate=False,
            distance_text="GPS position not available",
            reason="location_unavailable",
        )
    point = _stop_point(stop) if stop is not None else None
    if point is None:
        return NavigationInfo(
            can_navigate=False,
            distance_text="Stop coordinates are not valid",
            reason="invalid_stop_coordinates",
        )

    origin = _fix_point(location)
    distance = haversine_m(origin, point)
    bearing = bearing_degrees(origin, point)
    speed_m_per_hour = (settings.walking_speed_kmh if walking_speed_kmh is None else walking_speed_kmh) * 1000
    eta = round_half_up(distance / speed_m_per_hour * 60)

    return NavigationInfo(
        can_navigate=True,
        distance_text=format_distance(distance),
        distance=round_half_up(distance),
        bearing=round_half_up(bearing) % 360,
        direction=bearing_to_cardinal(bearing),
        eta=eta,
        eta_text=format_eta(eta),
        accuracy=location.accuracy,
    )


def nearby_stops_stats(
    location: Optional[Location],
    stops: Sequence[Stop],
    radius_meters: Optional[float] = None,
) -> dict[str, Any]:
    radius = settings.marker_radius_meters if radius_meters is None else radius_meters
    visible = visible_stops(location, stops, radius)
    if not visible:
        return {
            "count": 0,
            "nearest_distance": None,
            "average_distance": None,
            "total_stops": len(stops),
            "radius": radius,
        }
    distances = [marker.distance for marker in visible]
    return {
        "count": len(visible),
        "nearest_distance": min(distances),
        "average_distance": round_half_up(sum(distances) / len(distances)),
        "total_stops": len(stops),
        "radius": radius,
    }


def filter_stops_by_zone(stops: Iterable[Stop], zone: int, plan: str) -> list[Stop]:
    plan = plan.upper()
    return [stop for stop in stops if stop.zone_id == zone and stop.plan == plan]


def build_markers(visible: Sequence[MarkerView], existing: Sequence[MarkerView] = ()) -> list[MarkerView]:
    """Fresh markers for the visible stops, keeping manual markers already on the map."""
    visible_ids = {marker.id for marker in visible}
    kept = [marker for marker in existing if marker.is_manual and marker.id not in visible_ids]
    return [*visible, *kept]
