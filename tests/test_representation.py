"""Coordinate, Point and the representation adapters"""
import math

import pytest

from location_sync.exceptions import CoordinateValidationError, ValidationError
from location_sync.sync.representation import (
    EPSILON,
    Coordinate,
    PairAdapter,
    Point,
    PointAdapter,
    decode_document,
    get_adapter,
    to_pair,
    to_point,
)


@pytest.mark.parametrize("latitude,longitude", [
    (14.5995, 120.9842),
    (-90, -180),
    (90, 180),
    (0, 0),
    (-33.8688, 151.2093),
])
def test_pair_point_round_trip(latitude, longitude):
    coordinate = Coordinate(latitude, longitude)
    assert to_pair(to_point(coordinate)).matches(coordinate)

    point = Point(x=longitude, y=latitude)
    assert to_point(to_pair(point)).matches(point)


def test_point_axis_order():
    point = to_point(Coordinate(14.5995, 120.9842))
    assert point.x == 120.9842
    assert point.y == 14.5995
    assert point.srid == 4326


@pytest.mark.parametrize("latitude,longitude", [
    (90.0001, 0),
    (-91, 0),
    (0, 180.5),
    (0, -181),
    (math.nan, 0),
    (0, math.inf),
    ("north", 0),
    (True, 0),
])
def test_invalid_coordinates_rejected(latitude, longitude):
    with pytest.raises(CoordinateValidationError):
        Coordinate(latitude, longitude)


def test_coordinate_validation_error_is_validation_error():
    with pytest.raises(ValidationError):
        Coordinate(100, 0)


def test_from_values_null_and_half_set():
    assert Coordinate.from_values(None, None) is None
    with pytest.raises(CoordinateValidationError):
        Coordinate.from_values(14.5, None)
    with pytest.raises(CoordinateValidationError):
        Coordinate.from_values(None, 120.9)


def test_from_values_normalizes_numbers():
    coordinate = Coordinate.from_values("14.5995", 121)
    assert coordinate.latitude == 14.5995
    assert isinstance(coordinate.longitude, float)


def test_to_pair_rejects_foreign_srid():
    with pytest.raises(CoordinateValidationError):
        to_pair(Point(x=120.0, y=14.0, srid=3857))


def test_point_adapter_encodes_geojson():
    document = PointAdapter().encode(Coordinate(14.5995, 120.9842))
    assert document == {"type": "Point", "coordinates": [120.9842, 14.5995]}


def test_pair_adapter_encodes_object():
    document = PairAdapter().encode(Coordinate(14.5995, 120.9842))
    assert document == {"latitude": 14.5995, "longitude": 120.9842}


@pytest.mark.parametrize("adapter", [PointAdapter(), PairAdapter()])
def test_adapters_encode_none_as_none(adapter):
    assert adapter.encode(None) is None
    assert adapter.decode(None) is None


@pytest.mark.parametrize("adapter", [PointAdapter(), PairAdapter()])
def test_adapters_decode_both_shapes(adapter):
    expected = Coordinate(14.5995, 120.9842)
    assert adapter.decode({"type": "Point", "coordinates": [120.9842, 14.5995]}).matches(expected)
    assert adapter.decode({"latitude": 14.5995, "longitude": 120.9842}).matches(expected)


def test_decode_lat_lng_import_shape():
    assert decode_document({"lat": 1.5, "lng": 2.5}) == Coordinate(1.5, 2.5)


@pytest.mark.parametrize("document", [
    {"type": "LineString", "coordinates": [[0, 0], [1, 1]]},
    {"type": "Point", "coordinates": [120.0]},
    {"foo": "bar"},
    [14.5, 120.9],
])
def test_decode_rejects_unknown_documents(document):
    with pytest.raises(CoordinateValidationError):
        decode_document(document)


def test_is_current_shape():
    geojson = {"type": "Point", "coordinates": [120.9842, 14.5995]}
    pair = {"latitude": 14.5995, "longitude": 120.9842}
    assert PointAdapter().is_current_shape(geojson)
    assert not PointAdapter().is_current_shape(pair)
    assert PairAdapter().is_current_shape(pair)
    assert not PairAdapter().is_current_shape({"type": "Point", "coordinates": [999, 0]})


def test_get_adapter_by_name():
    assert isinstance(get_adapter("point"), PointAdapter)
    assert isinstance(get_adapter("PAIR"), PairAdapter)
    with pytest.raises(ValueError):
        get_adapter("wkt")


def test_get_adapter_defaults_to_settings():
    assert isinstance(get_adapter(), PointAdapter)


def test_matches_within_epsilon():
    a = Coordinate(10.0, 20.0)
    assert a.matches(Coordinate(10.0 + EPSILON / 2, 20.0))
    assert not a.matches(Coordinate(10.0 + 1e-6, 20.0))
    assert not a.matches(None)
