import pytest

from restaurant_catalog.core.geo import distance_km, format_distance


def test_distance_zero_for_same_point():
    assert distance_km(-8.05, -34.88, -8.05, -34.88) == 0


def test_distance_recife_to_olinda():
    km = distance_km(-8.0476, -34.8770, -7.9914, -34.8416)
    assert km == pytest.approx(7.36, abs=0.1)


def test_distance_is_symmetric():
    there = distance_km(-8.0476, -34.8770, -8.2833, -35.0333)
    back = distance_km(-8.2833, -35.0333, -8.0476, -34.8770)
    assert there == pytest.approx(back)


def test_format_distance_boundary():
    assert format_distance(0.999) == "999m"
    assert format_distance(1.0) == "1.0km"


def test_format_distance_units():
    assert format_distance(0.35) == "350m"
    assert format_distance(2.34) == "2.3km"
    assert format_distance(0) == "0m"
