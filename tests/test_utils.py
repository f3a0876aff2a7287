import random

import pytest

from darkstore_sim import utils
from darkstore_sim.city import CITY_POLYGON, DEFAULT_HUB

from conftest import SQUARE


def test_haversine_zero_and_symmetric():
    assert utils.haversine_distance(30.7, 76.7, 30.7, 76.7) == 0.0
    a = utils.haversine_distance(30.70, 76.70, 30.75, 76.80)
    b = utils.haversine_distance(30.75, 76.80, 30.70, 76.70)
    assert a == pytest.approx(b)


def test_one_hundredth_degree_of_latitude():
    d = utils.get_distance(DEFAULT_HUB, (DEFAULT_HUB[0] + 0.01, DEFAULT_HUB[1]))
    assert d == pytest.approx(1.112, abs=0.001)


def test_point_in_polygon_basic():
    assert utils.point_in_polygon((76.75, 30.75), SQUARE)
    assert not utils.point_in_polygon((76.85, 30.75), SQUARE)
    assert utils.location_in_polygon(DEFAULT_HUB, CITY_POLYGON)


def test_point_in_polygon_independent_of_start_vertex():
    ring = CITY_POLYGON[:-1]
    points = [(76.78, 30.73), (76.69, 30.80), (76.84, 30.70), (76.60, 30.73), (76.76, 30.665)]
    expected = [utils.point_in_polygon(p, CITY_POLYGON) for p in points]
    for shift in range(len(ring)):
        rotated = ring[shift:] + ring[:shift]
        assert [utils.point_in_polygon(p, rotated) for p in points] == expected


def test_uniform_samples_inside_polygon():
    points = utils.sample_uniform_in_polygon(50, CITY_POLYGON, random.Random(3))
    assert len(points) == 50
    assert all(utils.location_in_polygon(p, CITY_POLYGON) for p in points)


def test_uniform_sampling_degenerate_polygon():
    assert utils.sample_uniform_in_polygon(5, [(76.7, 30.7), (76.8, 30.8)], random.Random(0)) == []
    assert utils.sample_uniform_in_polygon(0, SQUARE, random.Random(0)) == []

    collinear = [(76.7, 30.7), (76.75, 30.75), (76.8, 30.8), (76.7, 30.7)]
    points = utils.sample_uniform_in_polygon(3, collinear, random.Random(0))
    assert len(points) < 3


def test_gaussian_samples_inside_polygon():
    points = utils.sample_gaussian_in_polygon(DEFAULT_HUB, 0.01, 20, CITY_POLYGON, random.Random(5))
    assert len(points) == 20
    assert all(utils.location_in_polygon(p, CITY_POLYGON) for p in points)


def test_waypoints_empty_for_zero_count_or_short_leg():
    start = DEFAULT_HUB
    assert utils.generate_waypoints(start, (start[0] + 0.05, start[1]), 0) == []
    assert utils.generate_waypoints(start, (start[0] + 0.001, start[1]), 3) == []


def test_waypoints_count_and_offsets():
    start = DEFAULT_HUB
    end = (start[0] + 0.05, start[1] + 0.05)
    waypoints = utils.generate_waypoints(start, end, 3, random.Random(9))
    assert len(waypoints) == 3

    leg_km = utils.get_distance(start, end)
    max_offset = min(0.005, leg_km * 0.0001)
    for i, (lat, lng) in enumerate(waypoints, start=1):
        base = utils.interpolate(start, end, i / 4)
        assert abs(lat - base[0]) <= max_offset + 1e-12
        assert abs(lng - base[1]) <= max_offset + 1e-12


def test_build_route_endpoints():
    end = (DEFAULT_HUB[0] + 0.03, DEFAULT_HUB[1])
    route = utils.build_route(DEFAULT_HUB, end, 2, random.Random(1))
    assert route[0] == DEFAULT_HUB
    assert route[-1] == end
    assert len(route) == 4


def test_format_time_duration():
    assert utils.format_time_duration(45) == "45m"
    assert utils.format_time_duration(83) == "1h 23m"
