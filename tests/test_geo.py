import math

import pytest

from cityflux.utils.geo import (
    coordinates_in_range,
    extract_location,
    geo_bucket,
    haversine_meters,
    to_coordinate,
)


def test_geo_bucket_rounds_to_precision():
    assert geo_bucket(1.0, 103.0) == "1,000_103,000"
    assert geo_bucket(12.97184, 77.59401) == "12,972_77,594"


def test_geo_bucket_is_deterministic():
    assert geo_bucket(18.5074, 73.8077) == geo_bucket(18.5074, 73.8077)


def test_geo_bucket_merges_coordinates_below_precision():
    assert geo_bucket(1.00001, 103.00004) == geo_bucket(1.00002, 103.00001)


def test_geo_bucket_folds_negative_zero():
    assert geo_bucket(-0.0001, -0.0002) == geo_bucket(0.0001, 0.0002) == "0,000_0,000"


def test_geo_bucket_has_no_realtime_db_forbidden_characters():
    key = geo_bucket(-33.86785, 151.20732)
    assert not any(c in key for c in ".$#[]/")


def test_geo_bucket_custom_precision():
    assert geo_bucket(1.23456, 2.34567, precision=1) == "1,2_2,3"


def test_haversine_zero_distance():
    assert haversine_meters(1.0, 103.0, 1.0, 103.0) == 0


def test_haversine_one_degree_latitude():
    # one degree of latitude on a 6371km sphere
    assert haversine_meters(0.0, 0.0, 1.0, 0.0) == pytest.approx(111195, rel=1e-3)


def test_haversine_is_symmetric():
    d1 = haversine_meters(1.0, 103.0, 1.002, 103.001)
    d2 = haversine_meters(1.002, 103.001, 1.0, 103.0)
    assert d1 == pytest.approx(d2)


@pytest.mark.parametrize("value, expected", [
    (1.5, 1.5),
    (3, 3.0),
    ("  2.25 ", 2.25),
    ("abc", None),
    (None, None),
    (True, None),
    (float("nan"), None),
    (math.inf, None),
    ([1.0], None),
])
def test_to_coordinate(value, expected):
    assert to_coordinate(value) == expected


def test_coordinates_in_range_boundaries():
    assert coordinates_in_range(90, 180)
    assert coordinates_in_range(-90, -180)
    assert not coordinates_in_range(90.0001, 0)
    assert not coordinates_in_range(0, -180.5)


def test_extract_location_from_map_and_geopoint():
    class GeoPoint:
        latitude = 1.5
        longitude = 103.8

    assert extract_location({"latitude": 1, "longitude": 2}) == (1.0, 2.0)
    assert extract_location(GeoPoint()) == (1.5, 103.8)
    assert extract_location({"latitude": "1", "longitude": 2}) is None
    assert extract_location(None) is None
