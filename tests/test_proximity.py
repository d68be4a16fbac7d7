import math

import pytest

from conftest import make_stop
from fieldmap.models.domain import Coordinate, Location, MarkerView
from fieldmap.services.geospatial import haversine_m
from fieldmap.services.proximity import (
    DEFAULT_PIN_COLOR,
    build_markers,
    filter_stops_by_zone,
    format_distance,
    format_eta,
    navigation_info,
    nearby_stops_stats,
    nearest_stop,
    visible_stops,
)

HERE = Location(latitude=44.96544, longitude=9.58337, accuracy=10.0)


def _north_of(location: Location, meters: float) -> tuple[float, float]:
    return location.latitude + math.degrees(meters / 6_371_000.0), location.longitude


def test_visible_stops_sorted_and_within_radius() -> None:
    near = make_stop(1, *_north_of(HERE, 50))
    nearer = make_stop(2, *_north_of(HERE, 10))
    far = make_stop(3, *_north_of(HERE, 500))
    broken = make_stop(4, None, None)

    markers = visible_stops(HERE, [near, far, nearer, broken])

    assert [marker.id for marker in markers] == [2, 1]
    assert [marker.distance for marker in markers] == [10, 50]
    assert all(marker.pin_color == DEFAULT_PIN_COLOR for marker in markers)


def test_visible_stops_radius_is_inclusive() -> None:
    stop = make_stop(1, 44.96700, 9.58500)
    exact = haversine_m(Coordinate(HERE.latitude, HERE.longitude), Coordinate(stop.latitude, stop.longitude))

    assert len(visible_stops(HERE, [stop], radius_meters=exact)) == 1
    assert visible_stops(HERE, [stop], radius_meters=exact - 0.01) == []


@pytest.mark.parametrize(
    "location",
    [
        None,
        Location(latitude=None, longitude=None),
        Location(latitude=91.0, longitude=9.5),
        Location(latitude=44.96544, longitude=9.58337, accuracy=60.0),
    ],
)
def test_unusable_fix_shows_no_markers(location) -> None:
    stops = [make_stop(1, *_north_of(HERE, 10))]

    assert visible_stops(location, stops) == []
    assert nearest_stop(location, stops) is None


def test_accuracy_at_threshold_is_accepted() -> None:
    location = Location(latitude=HERE.latitude, longitude=HERE.longitude, accuracy=50.0)

    assert len(visible_stops(location, [make_stop(1, *_north_of(HERE, 10))])) == 1


def test_nearest_stop_distance_and_direction() -> None:
    location = Location(latitude=44.96544, longitude=9.58337)
    close = make_stop(1, 44.96552, 9.58331)
    far = make_stop(2, 44.97000, 9.59000)

    nearest = nearest_stop(location, [far, close])

    assert nearest.stop is close
    assert nearest.distance < 15
    assert nearest.direction == "NW"
    assert 315 <= nearest.bearing < 340


def test_format_distance_and_eta() -> None:
    assert format_distance(0) == "0m"
    assert format_distance(149.5) == "150m"
    assert format_distance(999.4) == "999m"
    assert format_distance(1000) == "1.0km"
    assert format_distance(1549) == "1.5km"

    assert format_eta(0) == "< 1 min"
    assert format_eta(45) == "45 min"
    assert format_eta(60) == "1h"
    assert format_eta(75) == "1h 15m"


def test_navigation_info_for_reachable_stop() -> None:
    stop = make_stop(1, *_north_of(HERE, 1200))

    info = navigation_info(stop, HERE)

    assert info.can_navigate
    assert info.distance == 1200
    assert info.distance_text == "1.2km"
    assert info.direction == "N"
    assert info.bearing == 0
    # 1.2 km at 5 km/h
    assert info.eta == 14
    assert info.eta_text == "14 min"
    assert info.accuracy == 10.0


def test_navigation_info_without_position_or_coordinates() -> None:
    stop = make_stop(1, 44.9, 9.5)

    no_fix = navigation_info(stop, None)
    assert not no_fix.can_navigate
    assert no_fix.distance_text == "GPS position not available"
    assert no_fix.reason == "location_unavailable"

    bad_stop = navigation_info(make_stop(2, 120.0, 9.5), HERE)
    assert not bad_stop.can_navigate
    assert bad_stop.distance_text == "Stop coordinates are not valid"


def test_navigation_info_ignores_accuracy_threshold() -> None:
    poor_fix = Location(latitude=HERE.latitude, longitude=HERE.longitude, accuracy=500.0)

    assert navigation_info(make_stop(1, *_north_of(HERE, 20)), poor_fix).can_navigate


def test_nearby_stops_stats() -> None:
    stops = [make_stop(1, *_north_of(HERE, 10)), make_stop(2, *_north_of(HERE, 31)), make_stop(3, 45.5, 9.9)]

    stats = nearby_stops_stats(HERE, stops)

    assert stats == {"count": 2, "nearest_distance": 10, "average_distance": 21, "total_stops": 3, "radius": 200.0}
    assert nearby_stops_stats(None, stops)["count"] == 0


def test_filter_stops_by_zone() -> None:
    stops = [make_stop(1, 44.9, 9.5), make_stop(2, 44.9, 9.5, plan="A"), make_stop(3, 44.9, 9.5, zone=4)]

    assert [stop.id for stop in filter_stops_by_zone(stops, 9, "b")] == [1]


def test_build_markers_keeps_manual_markers() -> None:
    regular = MarkerView(stop=make_stop(1, 44.9, 9.5), distance=10)
    stale = MarkerView(stop=make_stop(2, 44.9, 9.5), distance=150)
    manual = MarkerView(stop=make_stop("manual_1", 44.9, 9.5, is_manual=True), distance=400)

    markers = build_markers([regular], [stale, manual])

    assert [marker.id for marker in markers] == [1, "manual_1"]
