"""Geographic primitives: positions, bounding boxes, distances and geohash cells."""
from __future__ import annotations

import math
from dataclasses import dataclass

import pygeohash as pgh

from vibefield.domain.common.errors import InvalidPositionError, ValidationError

EARTH_RADIUS_M = 6371000.0
METERS_PER_DEG_LAT = 111320.0

MIN_RESOLUTION = 1
MAX_RESOLUTION = 9


@dataclass(frozen=True)
class Position:
    lat: float
    lng: float

    @classmethod
    def validated(cls, lat: float, lng: float) -> "Position":
        """Build a position, raising InvalidPositionError for non-finite or out-of-range values."""
        try:
            lat_f = float(lat)
            lng_f = float(lng)
        except (TypeError, ValueError):
            raise InvalidPositionError(lat, lng)
        if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
            raise InvalidPositionError(lat, lng)
        if not (-90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0):
            raise InvalidPositionError(lat, lng)
        return cls(lat=lat_f, lng=lng_f)

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class BBox:
    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    @classmethod
    def validated(cls, min_lat: float, min_lng: float, max_lat: float, max_lng: float) -> "BBox":
        sw = Position.validated(min_lat, min_lng)
        ne = Position.validated(max_lat, max_lng)
        if sw.lat > ne.lat or sw.lng > ne.lng:
            raise ValidationError("Bounding box corners are inverted")
        return cls(sw.lat, sw.lng, ne.lat, ne.lng)

    @classmethod
    def around(cls, center: Position, radius_m: float) -> "BBox":
        """Smallest lat/lng box containing a circle of radius_m around center."""
        dlat = radius_m / METERS_PER_DEG_LAT
        cos_lat = max(1e-6, math.cos(math.radians(center.lat)))
        dlng = radius_m / (METERS_PER_DEG_LAT * cos_lat)
        return cls(
            max(-90.0, center.lat - dlat),
            max(-180.0, center.lng - dlng),
            min(90.0, center.lat + dlat),
            min(180.0, center.lng + dlng),
        )

    def contains(self, position: Position) -> bool:
        return (
            self.min_lat <= position.lat <= self.max_lat
            and self.min_lng <= position.lng <= self.max_lng
        )

    def area_km2(self) -> float:
        mid_lat = (self.min_lat + self.max_lat) / 2
        height_m = (self.max_lat - self.min_lat) * METERS_PER_DEG_LAT
        width_m = (self.max_lng - self.min_lng) * METERS_PER_DEG_LAT * math.cos(math.radians(mid_lat))
        return abs(height_m * width_m) / 1e6


def haversine_m(a: Position, b: Position) -> float:
    """Great-circle distance in meters."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def local_offset_m(origin: Position, point: Position) -> tuple[float, float]:
    """(east, north) offset in meters of point from origin, equirectangular."""
    mid_lat = math.radians((origin.lat + point.lat) / 2)
    dx = (point.lng - origin.lng) * METERS_PER_DEG_LAT * math.cos(mid_lat)
    dy = (point.lat - origin.lat) * METERS_PER_DEG_LAT
    return dx, dy


def displace(origin: Position, east_m: float, north_m: float) -> Position:
    """Move origin by a local (east, north) offset; result is clamped into valid range."""
    lat = origin.lat + north_m / METERS_PER_DEG_LAT
    cos_lat = max(1e-6, math.cos(math.radians(origin.lat)))
    lng = origin.lng + east_m / (METERS_PER_DEG_LAT * cos_lat)
    lat = max(-90.0, min(90.0, lat))
    lng = ((lng + 180.0) % 360.0) - 180.0
    return Position(lat=lat, lng=lng)


def midpoint(a: Position, b: Position) -> Position:
    return Position(lat=(a.lat + b.lat) / 2, lng=(a.lng + b.lng) / 2)


def check_resolution(resolution: int) -> None:
    if not (MIN_RESOLUTION <= resolution <= MAX_RESOLUTION):
        raise ValidationError(
            f"Resolution must be between {MIN_RESOLUTION} and {MAX_RESOLUTION}, got {resolution}"
        )


def geohash_encode(position: Position, resolution: int) -> str:
    """Geohash cell id of the cell containing position at the given precision."""
    check_resolution(resolution)
    return pgh.encode(position.lat, position.lng, precision=resolution)


def _decode_exactly(cell_id: str) -> tuple[float, float, float, float]:
    if not cell_id:
        raise ValidationError("Empty cell id")
    try:
        lat, lng, lat_err, lng_err = pgh.decode_exactly(cell_id)
    except (KeyError, ValueError):
        raise ValidationError(f"Invalid geohash cell id {cell_id!r}")
    return lat, lng, lat_err, lng_err


def geohash_bounds(cell_id: str) -> BBox:
    """Bounding box of a geohash cell."""
    lat, lng, lat_err, lng_err = _decode_exactly(cell_id)
    return BBox(lat - lat_err, lng - lng_err, lat + lat_err, lng + lng_err)


def geohash_center(cell_id: str) -> Position:
    lat, lng, _, _ = _decode_exactly(cell_id)
    return Position(lat=lat, lng=lng)
