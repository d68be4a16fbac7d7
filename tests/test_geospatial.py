import math

import pytest

from fieldmap.models.domain import Coordinate
from fieldmap.services.geospatial import (
    bearing_degrees,
    bearing_to_cardinal,
    format_coordinate_block,
    haversine_m,
    is_valid_coordinate,
    parse_coordinate_block,
    parse_coordinate_line,
    path_length_m,
    round_half_up,
    route_stats,
)


@pytest.mark.parametrize(
    "lat, lon, expected",
    [
        (44.96544, 9.58337, True),
        (90, 180, True),
        (-90, -180, True),
        (90.0001, 0, False),
        (0, 180.5, False),
        (math.nan, 9.5, False),
        (44.9, math.inf, False),
        (True, 9.5, False),
        ("44.9", 9.5, False),
        (None, None, False),
    ],
)
def test_is_valid_coordinate(lat, lon, expected) -> None:
    assert is_valid_coordinate(lat, lon) is expected


def test_parse_coordinate_line_reads_lng_lat_alt() -> None:
    point = parse_coordinate_line("9.58337,44.96544,12.5")

    assert point == Coordinate(latitude=44.96544, longitude=9.58337, altitude=12.5)
    assert parse_coordinate_line("9.58337,44.96544").altitude == 0.0
    assert parse_coordinate_line("9.58337") is None
    assert parse_coordinate_line("abc,44.9") is None
    assert parse_coordinate_line("200,44.9") is None


def test_parse_coordinate_block_drops_bad_tuples() -> None:
    text = """
        9.58337,44.96544,0
        garbage 9.1
        9.58331,44.96552,0\t9.58320,44.96570
    """
    points = parse_coordinate_block(text)

    assert [p.longitude for p in points] == [9.58337, 9.58331, 9.58320]
    assert parse_coordinate_block("") == []
    assert parse_coordinate_block(None) == []


def test_format_coordinate_block_is_parseable() -> None:
    path = [Coordinate(44.96544, 9.58337), Coordinate(44.96552, 9.58331, 3.0)]

    assert parse_coordinate_block(format_coordinate_block(path)) == path


def test_haversine_one_degree_of_latitude() -> None:
    distance = haversine_m(Coordinate(0.0, 0.0), Coordinate(1.0, 0.0))

    assert distance == pytest.approx(111_194.93, abs=1.0)
    assert haversine_m(Coordinate(44.9, 9.5), Coordinate(44.9, 9.5)) == 0.0


@pytest.mark.parametrize(
    "a, b, c",
    [
        (Coordinate(44.96544, 9.58337), Coordinate(44.96552, 9.58331), Coordinate(44.96570, 9.58320)),
        (Coordinate(45.0, 9.0), Coordinate(45.0, 9.6), Coordinate(44.5, 9.3)),
        (Coordinate(0.0, 179.9), Coordinate(0.0, -179.9), Coordinate(1.0, 180.0)),
        (Coordinate(89.9, 0.0), Coordinate(89.9, 180.0), Coordinate(-89.9, 90.0)),
        (Coordinate(-33.9, 151.2), Coordinate(51.5, -0.1), Coordinate(44.9, 9.6)),
    ],
)
def test_haversine_behaves_as_a_metric(a: Coordinate, b: Coordinate, c: Coordinate) -> None:
    ab = haversine_m(a, b)

    assert ab >= 0.0
    assert ab == pytest.approx(haversine_m(b, a))
    assert ab <= haversine_m(a, c) + haversine_m(c, b) + 1e-6


def test_bearing_degrees_cardinal_axes() -> None:
    origin = Coordinate(0.0, 0.0)

    assert bearing_degrees(origin, Coordinate(1.0, 0.0)) == pytest.approx(0.0)
    assert bearing_degrees(origin, Coordinate(0.0, 1.0)) == pytest.approx(90.0)
    assert bearing_degrees(origin, Coordinate(-1.0, 0.0)) == pytest.approx(180.0)
    assert bearing_degrees(origin, Coordinate(0.0, -1.0)) == pytest.approx(270.0)


@pytest.mark.parametrize(
    "bearing, direction",
    [
        (0, "N"),
        (22.4, "N"),
        (22.5, "NE"),
        (90, "E"),
        (180, "S"),
        (270, "W"),
        (332, "NW"),
        (337.5, "N"),
        (359.9, "N"),
    ],
)
def test_bearing_to_cardinal_sectors(bearing: float, direction: str) -> None:
    assert bearing_to_cardinal(bearing) == direction


def test_round_half_up() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(2.4999) == 2
    assert round_half_up(-0.5) == 0


def test_route_stats_summarizes_path() -> None:
    path = [Coordinate(44.96544, 9.58337), Coordinate(44.96552, 9.58331), Coordinate(44.96570, 9.58320)]
    stats = route_stats(path)

    assert stats is not None
    assert stats.point_count == 3
    assert stats.total_distance_meters == round_half_up(path_length_m(path))
    assert stats.bounding_box.north == 44.96570
    assert stats.bounding_box.south == 44.96544
    assert stats.bounding_box.east == 9.58337
    assert stats.bounding_box.west == 9.58320
    assert stats.center.latitude == pytest.approx((44.96570 + 44.96544) / 2)
    assert route_stats(path[:1]) is None
    assert route_stats([]) is None
