# logisync/services/logistics/geolocation.py
import math
from typing import NamedTuple, Optional

EARTH_RADIUS_KM = 6371.0


class Coordinate(NamedTuple):
    lat: float
    lng: float


def haversine_km(origin: Coordinate, destination: Coordinate) -> float:
    """Great-circle distance between two points in kilometres"""
    d_lat = math.radians(destination.lat - origin.lat)
    d_lng = math.radians(destination.lng - origin.lng)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(origin.lat))
        * math.cos(math.radians(destination.lat))
        * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def is_valid_coordinate(lat, lng) -> bool:
    return lat is not None and lng is not None and -90 <= lat <= 90 and -180 <= lng <= 180


def to_coordinate(lat, lng) -> Optional[Coordinate]:
    """Build a Coordinate from loosely typed values (Decimal, str, float); None if either is missing"""
    if lat is None or lng is None or lat == "" or lng == "":
        return None
    try:
        point = Coordinate(float(lat), float(lng))
    except (TypeError, ValueError):
        return None
    if not is_valid_coordinate(point.lat, point.lng):
        return None
    return point


def parse_coordinate_pair(value: Optional[str]) -> Optional[Coordinate]:
    """Parse a "lat, lng" string as sent by the driver app; None for free-text locations"""
    if not value or "," not in value:
        return None
    parts = value.split(",")
    if len(parts) != 2:
        return None
    return to_coordinate(parts[0].strip(), parts[1].strip())


def format_coordinate_pair(point: Coordinate, precision: int = 6) -> str:
    return f"{point.lat:.{precision}f}, {point.lng:.{precision}f}"
