"""
Geographic helpers: the point type, its textual store encoding, and
great-circle distance.

Points travel through the code as ``GeoPoint`` values. The ``POINT(lng lat)``
text form only exists at the store boundary (see ``database.models.PointType``)
and in request payloads that send ``[lng, lat]`` pairs.
"""

import math
import re
from typing import Any, Callable, Iterable, List, NamedTuple, Optional, Sequence, Tuple, TypeVar

from sports_buddy.utils.constants import EARTH_RADIUS_METERS
from sports_buddy.utils.errors import ValidationError

T = TypeVar("T")

_POINT_RE = re.compile(r"^\s*POINT\s*\(\s*([^\s()]+)\s+([^\s()]+)\s*\)\s*$", re.IGNORECASE)


class GeoPoint(NamedTuple):
    """A WGS84 point. Longitude first, matching the store encoding."""

    longitude: float
    latitude: float

    def to_dict(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude}


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    """Check that latitude is in [-90, 90] and longitude in [-180, 180]."""
    if math.isnan(latitude) or math.isnan(longitude):
        return False
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def make_point(longitude: Any, latitude: Any) -> GeoPoint:
    """
    Build a validated GeoPoint from raw values.

    Raises:
        ValidationError: If either value is not numeric or is out of range
    """
    try:
        lng = float(longitude)
        lat = float(latitude)
    except (TypeError, ValueError):
        raise ValidationError("Invalid latitude or longitude")
    if not is_valid_coordinate(lat, lng):
        raise ValidationError("Invalid latitude or longitude")
    return GeoPoint(lng, lat)


def parse_coordinates(latitude: Any, longitude: Any) -> GeoPoint:
    """
    Validate query-string coordinates for a proximity search.

    Raises:
        ValidationError: If either value is missing, non-numeric or out of range
    """
    if latitude in (None, "") or longitude in (None, ""):
        raise ValidationError("Latitude and longitude are required")
    return make_point(longitude, latitude)


def parse_lat_lng_string(value: str) -> Optional[GeoPoint]:
    """
    Parse a "lat,lng" query value (used by match and profile search).

    Returns None when the value cannot be parsed, so callers skip distance
    filtering rather than failing the whole search.
    """
    parts = value.split(",")
    if len(parts) != 2:
        return None
    try:
        return make_point(parts[1].strip(), parts[0].strip())
    except ValidationError:
        return None


def point_from_pair(pair: Sequence[Any]) -> GeoPoint:
    """
    Convert a ``[lng, lat]`` request pair into a GeoPoint.

    Raises:
        ValidationError: If the pair is not two numbers in range
    """
    if not isinstance(pair, (list, tuple)) or len(pair) != 2:
        raise ValidationError("Location must be a [longitude, latitude] pair")
    return make_point(pair[0], pair[1])


def encode_point(point: GeoPoint) -> str:
    """Encode a point as ``POINT(lng lat)`` text for the store."""
    return f"POINT({point.longitude!r} {point.latitude!r})"


def decode_point(text: Optional[str]) -> Optional[GeoPoint]:
    """
    Decode ``POINT(lng lat)`` text read from the store.

    Returns None for empty values or text that does not match the point pattern.
    """
    if not text:
        return None
    match = _POINT_RE.match(text)
    if not match:
        return None
    try:
        return GeoPoint(float(match.group(1)), float(match.group(2)))
    except ValueError:
        return None


def haversine_distance_meters(origin: GeoPoint, target: GeoPoint) -> float:
    """
    Great-circle distance between two points in meters (haversine formula).
    """
    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(target.latitude)
    d_lat = math.radians(target.latitude - origin.latitude)
    d_lng = math.radians(target.longitude - origin.longitude)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def filter_by_distance(
    items: Iterable[T],
    origin: GeoPoint,
    radius_meters: float,
    point_of: Callable[[T], Optional[GeoPoint]],
) -> List[Tuple[T, int]]:
    """
    Keep items within ``radius_meters`` of ``origin``, nearest first.

    The radius is compared against the exact distance; the returned distance
    is rounded to whole meters. Items whose point is missing are dropped.

    Returns:
        List of (item, distance_meters) tuples sorted ascending by distance
    """
    nearby = []
    for item in items:
        point = point_of(item)
        if point is None:
            continue
        distance = haversine_distance_meters(origin, point)
        if distance <= radius_meters:
            nearby.append((item, distance))
    nearby.sort(key=lambda pair: pair[1])
    return [(item, round(distance)) for item, distance in nearby]
