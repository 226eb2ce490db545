"""
Coordinate representation adapter.

The canonical in-memory value is Coordinate (a latitude/longitude pair). A
spatial Point is the other shape coordinates have been stored in. Everything
that persists or reads a cached point goes through a RepresentationAdapter, so
switching the stored shape is a settings change followed by a reconciliation
run.

    to_pair(to_point(c)) == c and to_point(to_pair(p)) == p within EPSILON
"""
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from location_sync.exceptions import CoordinateValidationError

EPSILON = 1e-9
WGS84_SRID = 4326

Number = Union[int, float, Decimal, str]


def _as_degrees(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise CoordinateValidationError(f"{name} must be a number, got {value!r}")
    try:
        degrees = float(value)
    except (TypeError, ValueError):
        raise CoordinateValidationError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(degrees):
        raise CoordinateValidationError(f"{name} must be finite, got {value!r}")
    return degrees


@dataclass(frozen=True)
class Coordinate:
    """Validated WGS84 latitude/longitude pair."""
    latitude: float
    longitude: float

    def __post_init__(self):
        latitude = _as_degrees(self.latitude, "latitude")
        longitude = _as_degrees(self.longitude, "longitude")
        if not -90 <= latitude <= 90:
            raise CoordinateValidationError(f"Latitude must be between -90 and 90, got {latitude}")
        if not -180 <= longitude <= 180:
            raise CoordinateValidationError(f"Longitude must be between -180 and 180, got {longitude}")
        object.__setattr__(self, "latitude", latitude)
        object.__setattr__(self, "longitude", longitude)

    @classmethod
    def from_values(cls, latitude: Optional[Number], longitude: Optional[Number]) -> Optional["Coordinate"]:
        """Build from nullable column values. Both null means "no coordinates"."""
        if latitude is None and longitude is None:
            return None
        if latitude is None or longitude is None:
            raise CoordinateValidationError(
                f"Latitude and longitude must be set together, got ({latitude}, {longitude})"
            )
        return cls(latitude, longitude)

    def matches(self, other: Optional["Coordinate"], epsilon: float = EPSILON) -> bool:
        if other is None:
            return False
        return (abs(self.latitude - other.latitude) <= epsilon
                and abs(self.longitude - other.longitude) <= epsilon)

    def as_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class Point:
    """Spatial point, x = longitude, y = latitude (GeoJSON / PostGIS axis order)."""
    x: float
    y: float
    srid: int = WGS84_SRID

    def to_geojson(self) -> Dict[str, Any]:
        return {"type": "Point", "coordinates": [self.x, self.y]}

    @classmethod
    def from_geojson(cls, document: Dict[str, Any]) -> "Point":
        if document.get("type") != "Point":
            raise CoordinateValidationError(f"Not a GeoJSON Point: {document!r}")
        position = document.get("coordinates")
        if not isinstance(position, (list, tuple)) or len(position) < 2:
            raise CoordinateValidationError(f"GeoJSON Point needs [lng, lat], got {position!r}")
        return cls(x=_as_degrees(position[0], "longitude"), y=_as_degrees(position[1], "latitude"))

    def matches(self, other: "Point", epsilon: float = EPSILON) -> bool:
        return (self.srid == other.srid
                and abs(self.x - other.x) <= epsilon
                and abs(self.y - other.y) <= epsilon)


def to_point(coordinate: Coordinate) -> Point:
    return Point(x=coordinate.longitude, y=coordinate.latitude)


def to_pair(point: Point) -> Coordinate:
    if point.srid != WGS84_SRID:
        raise CoordinateValidationError(f"Only SRID {WGS84_SRID} points are supported, got {point.srid}")
    return Coordinate(latitude=point.y, longitude=point.x)


def decode_document(document: Optional[Dict[str, Any]]) -> Optional[Coordinate]:
    """Read a stored coordinate document in either historical shape."""
    if document is None:
        return None
    if not isinstance(document, dict):
        raise CoordinateValidationError(f"Coordinate document must be an object, got {document!r}")
    if "type" in document:
        return to_pair(Point.from_geojson(document))
    if "latitude" in document or "longitude" in document:
        return Coordinate.from_values(document.get("latitude"), document.get("longitude"))
    if "lat" in document or "lng" in document:
        return Coordinate.from_values(document.get("lat"), document.get("lng"))
    raise CoordinateValidationError(f"Unrecognized coordinate document: {document!r}")


class RepresentationAdapter:
    """Converts between the canonical Coordinate and one stored document shape."""

    name: str = ""

    def encode(self, coordinate: Optional[Coordinate]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def decode(self, document: Optional[Dict[str, Any]]) -> Optional[Coordinate]:
        return decode_document(document)

    def is_current_shape(self, document: Optional[Dict[str, Any]]) -> bool:
        """True when document is exactly what this adapter writes for its own value."""
        try:
            return document == self.encode(self.decode(document))
        except CoordinateValidationError:
            return False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class PointAdapter(RepresentationAdapter):
    """Stores a GeoJSON Point, indexable as a PostGIS geometry."""

    name = "point"

    def encode(self, coordinate: Optional[Coordinate]) -> Optional[Dict[str, Any]]:
        if coordinate is None:
            return None
        return to_point(coordinate).to_geojson()


class PairAdapter(RepresentationAdapter):
    """Stores a plain {latitude, longitude} object."""

    name = "pair"

    def encode(self, coordinate: Optional[Coordinate]) -> Optional[Dict[str, Any]]:
        if coordinate is None:
            return None
        return coordinate.as_dict()


ADAPTERS = {
    PointAdapter.name: PointAdapter,
    PairAdapter.name: PairAdapter,
}


def get_adapter(name: Optional[str] = None) -> RepresentationAdapter:
    """Adapter by name, defaulting to the configured representation."""
    if name is None:
        from location_sync.config import get_settings
        name = get_settings().coordinate_representation
    try:
        return ADAPTERS[name.lower()]()
    except KeyError:
        raise ValueError(f"Unknown coordinate representation {name!r}, expected one of {sorted(ADAPTERS)}") from None
