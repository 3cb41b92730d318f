"""
Tests for geographic helpers: point encoding, coordinate validation and distance filtering.
"""

import pytest

from sports_buddy.utils.errors import ValidationError
from sports_buddy.utils.geo_utils import (
    GeoPoint,
    decode_point,
    encode_point,
    filter_by_distance,
    haversine_distance_meters,
    make_point,
    parse_coordinates,
    parse_lat_lng_string,
    point_from_pair,
)


# ============================================================================
# Encoding
# ============================================================================

def test_point_round_trip_preserves_coordinates():
    point = GeoPoint(-122.4194155, 37.7749295)
    decoded = decode_point(encode_point(point))
    assert decoded.longitude == pytest.approx(point.longitude)
    assert decoded.latitude == pytest.approx(point.latitude)


def test_encode_point_puts_longitude_first():
    assert encode_point(GeoPoint(-122.4, 37.8)) == "POINT(-122.4 37.8)"


@pytest.mark.parametrize("text", [None, "", "POINT()", "POINT(1)", "LINESTRING(1 2, 3 4)", "POINT(a b)"])
def test_decode_point_rejects_malformed_text(text):
    assert decode_point(text) is None


def test_decode_point_tolerates_whitespace_and_case():
    assert decode_point("  point( 10.5   -3.25 ) ") == GeoPoint(10.5, -3.25)


# ============================================================================
# Validation
# ============================================================================

def test_parse_coordinates_requires_both_values():
    with pytest.raises(ValidationError, match="Latitude and longitude are required"):
        parse_coordinates(None, "10")
    with pytest.raises(ValidationError, match="Latitude and longitude are required"):
        parse_coordinates("10", "")


@pytest.mark.parametrize("lat,lng", [("91", "0"), ("0", "-181"), ("abc", "10"), ("nan", "0")])
def test_parse_coordinates_rejects_invalid_values(lat, lng):
    with pytest.raises(ValidationError, match="Invalid latitude or longitude"):
        parse_coordinates(lat, lng)


def test_parse_coordinates_accepts_boundaries():
    assert parse_coordinates("90", "-180") == GeoPoint(-180.0, 90.0)


def test_make_point_error_is_a_validation_error_with_code():
    with pytest.raises(ValidationError) as exc_info:
        make_point(200, 0)
    assert exc_info.value.code == "validation_error"
    assert exc_info.value.status_code == 400


def test_parse_lat_lng_string_orders_latitude_first():
    assert parse_lat_lng_string("37.8, -122.4") == GeoPoint(-122.4, 37.8)


@pytest.mark.parametrize("value", ["37.8", "a,b", "95,0", "1,2,3"])
def test_parse_lat_lng_string_returns_none_when_unusable(value):
    assert parse_lat_lng_string(value) is None


def test_point_from_pair_requires_two_numbers():
    assert point_from_pair([-122.4, 37.8]) == GeoPoint(-122.4, 37.8)
    with pytest.raises(ValidationError):
        point_from_pair([1.0])
    with pytest.raises(ValidationError):
        point_from_pair("POINT(1 2)")


# ============================================================================
# Distance
# ============================================================================

def test_haversine_distance_is_zero_for_same_point():
    point = GeoPoint(2.35, 48.85)
    assert haversine_distance_meters(point, point) == 0


def test_haversine_distance_known_value():
    # One degree of latitude is ~111.19 km on a 6371 km sphere
    distance = haversine_distance_meters(GeoPoint(0, 0), GeoPoint(0, 1))
    assert distance == pytest.approx(111195, rel=1e-3)


def test_filter_by_distance_sorts_and_excludes():
    origin = GeoPoint(-122.41, 37.81)
    items = [
        {"name": "far", "point": GeoPoint(-121.0, 37.0)},
        {"name": "near", "point": GeoPoint(-122.4, 37.8)},
        {"name": "here", "point": origin},
        {"name": "unknown", "point": None},
    ]
    result = filter_by_distance(items, origin, 5000, lambda item: item["point"])

    assert [item["name"] for item, _ in result] == ["here", "near"]
    distances = [distance for _, distance in result]
    assert distances == sorted(distances)
    assert all(isinstance(d, int) and d <= 5000 for d in distances)


def test_filter_by_distance_compares_unrounded_distance():
    origin = GeoPoint(-122.41, 37.81)
    point = GeoPoint(-122.4, 37.8)
    exact = haversine_distance_meters(origin, point)
    items = [{"name": "near", "point": point}]

    # A radius below the exact distance excludes the item whatever it rounds to
    assert filter_by_distance(items, origin, exact - 0.4, lambda item: item["point"]) == []

    result = filter_by_distance(items, origin, exact, lambda item: item["point"])
    assert [(item["name"], distance) for item, distance in result] == [("near", round(exact))]
