# munchies/core/geo.py
"""
Great-circle distance and bounding-box helpers.

Flat-earth approximations are fine at city/county scale, which is all the
directory ever asks of them. Two unit conventions are in use:
  - miles  (R = 3959)  → nearby search, distance annotations
  - km     (R = 6371)  → map proximity on the client side
"""
from __future__ import annotations

import math
from typing import Literal

from munchies.core.contracts import BBox4
from munchies.core.errors import InvalidBoundsError

DistanceUnit = Literal["mi", "km"]

EARTH_RADIUS_MI = 3959.0
EARTH_RADIUS_KM = 6371.0
MILES_PER_DEG_LAT = 69.0

_RADIUS_BY_UNIT: dict[str, float] = {
    "mi": EARTH_RADIUS_MI,
    "km": EARTH_RADIUS_KM,
}


def haversine_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    unit: DistanceUnit = "mi",
) -> float:
    """
    Great-circle distance between two (lat, lon) points.

    >>> round(haversine_distance(42.3314, -83.0458, 42.2808, -83.7430), 1)
    35.8
    """
    try:
        R = _RADIUS_BY_UNIT[unit]
    except KeyError:
        raise ValueError(f"unknown distance unit: {unit!r}") from None

    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def bounding_box_from_center(lat: float, lng: float, radius_miles: float = 10.0) -> BBox4:
    lat_range = radius_miles / MILES_PER_DEG_LAT
    lng_range = radius_miles / (MILES_PER_DEG_LAT * math.cos(math.radians(lat)))
    return BBox4(
        minLng=lng - lng_range,
        minLat=lat - lat_range,
        maxLng=lng + lng_range,
        maxLat=lat + lat_range,
    )


def point_in_bbox(lng: float, lat: float, bbox: BBox4) -> bool:
    """Edges are inclusive."""
    return bbox.minLng <= lng <= bbox.maxLng and bbox.minLat <= lat <= bbox.maxLat


def validate_bbox(min_lng: float, min_lat: float, max_lng: float, max_lat: float) -> BBox4:
    vals = (min_lng, min_lat, max_lng, max_lat)
    if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in vals):
        raise InvalidBoundsError(f"bounding box values must be finite numbers: {vals}")
    if not (-180.0 <= min_lng <= 180.0 and -180.0 <= max_lng <= 180.0):
        raise InvalidBoundsError(f"longitude out of range: {min_lng}, {max_lng}")
    if not (-90.0 <= min_lat <= 90.0 and -90.0 <= max_lat <= 90.0):
        raise InvalidBoundsError(f"latitude out of range: {min_lat}, {max_lat}")
    if min_lng >= max_lng:
        raise InvalidBoundsError(f"minLng ({min_lng}) must be less than maxLng ({max_lng})")
    if min_lat >= max_lat:
        raise InvalidBoundsError(f"minLat ({min_lat}) must be less than maxLat ({max_lat})")
    return BBox4(minLng=float(min_lng), minLat=float(min_lat), maxLng=float(max_lng), maxLat=float(max_lat))
