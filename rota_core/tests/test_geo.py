"""Tests for distance, travel time and bounding boxes."""

import pytest

from rota_core.geo import bounds_of, center_of, distance, distance_or_none, travel_time
from rota_core.models import Coordinates

LONDON = Coordinates(51.5074, -0.1278)
PARIS = Coordinates(48.8566, 2.3522)


class TestDistance:
    def test_same_point_is_zero(self):
        assert distance(LONDON, LONDON) == 0

    def test_symmetric(self):
        assert distance(LONDON, PARIS) == pytest.approx(distance(PARIS, LONDON))

    def test_known_distance(self):
        assert distance(LONDON, PARIS) == pytest.approx(213.5, abs=2)

    def test_accepts_tuples(self):
        assert distance((51.5, -0.12), (51.5, -0.12)) == 0
        assert distance(LONDON, PARIS) == pytest.approx(distance(LONDON.as_tuple(), PARIS.as_tuple()))

    def test_one_degree_latitude(self):
        assert distance((50.0, 0.0), (51.0, 0.0)) == pytest.approx(69.1, abs=0.05)

    def test_unknown_when_missing(self):
        assert distance_or_none(LONDON, None) is None
        assert distance_or_none(None, PARIS) is None
        assert distance_or_none(LONDON, LONDON) == 0


class TestTravelTime:
    def test_zero(self):
        assert travel_time(0) == 0

    def test_default_speed(self):
        assert travel_time(10) == 30
        assert travel_time(1) == 3

    def test_rounds_half_up(self):
        assert travel_time(0.5) == 2
        assert travel_time(0.49) == 1

    def test_custom_speed(self):
        assert travel_time(10, speed_mph=30) == 20

    def test_negative_distance_rejected(self):
        with pytest.raises(ValueError):
            travel_time(-1)

    def test_non_positive_speed_rejected(self):
        with pytest.raises(ValueError):
            travel_time(5, speed_mph=0)


class TestBounds:
    def test_empty(self):
        assert bounds_of([]) is None
        assert bounds_of([None, None]) is None

    def test_single_point_minimum_padding(self):
        box = bounds_of([LONDON])
        assert box.north == pytest.approx(LONDON.latitude + 0.01)
        assert box.south == pytest.approx(LONDON.latitude - 0.01)
        assert box.east == pytest.approx(LONDON.longitude + 0.01)
        assert box.west == pytest.approx(LONDON.longitude - 0.01)

    def test_span_padding(self):
        box = bounds_of([(51.0, -1.0), (52.0, 1.0), None])
        assert box.north == pytest.approx(52.1)
        assert box.south == pytest.approx(50.9)
        assert box.east == pytest.approx(1.2)
        assert box.west == pytest.approx(-1.2)

    def test_no_padding(self):
        box = bounds_of([(51.0, -1.0), (52.0, 1.0)], padding_ratio=0)
        assert box.to_dict() == {"north": 52.0, "south": 51.0, "east": 1.0, "west": -1.0}

    def test_center(self):
        center = center_of([(51.0, -1.0), (52.0, 1.0), None])
        assert center == Coordinates(51.5, 0.0)
        assert center_of([None]) is None
