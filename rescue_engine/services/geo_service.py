"""Geospatial helpers: coordinate validation, bounding boxes, distances."""

from __future__ import annotations

import math
from dataclasses import dataclass

from sqlalchemy import ColumnElement, and_

from rescue_engine.core.errors import ValidationError

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two lat/lng points in kilometers."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _coordinate(value: object, field: str, limit: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number", field=field)
    number = float(value)
    if not math.isfinite(number) or not -limit <= number <= limit:
        raise ValidationError(f"{field} must be within [-{limit:g}, {limit:g}]", field=field)
    return number


def validate_coordinates(latitude: object, longitude: object) -> tuple[float, float]:
    """Return WGS84 (lat, lng) as floats or raise ValidationError."""
    return _coordinate(latitude, "latitude", 90), _coordinate(longitude, "longitude", 180)


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned lat/lng box, inclusive on every edge."""

    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @classmethod
    def world(cls) -> Bounds:
        return cls(-90.0, 90.0, -180.0, 180.0)

    @classmethod
    def from_values(
        cls,
        min_lat: float | None,
        max_lat: float | None,
        min_lng: float | None,
        max_lng: float | None,
    ) -> Bounds:
        """Build a box from optional query values; all four or none."""
        values = (min_lat, max_lat, min_lng, max_lng)
        if all(v is None for v in values):
            return cls.world()
        if any(v is None for v in values):
            raise ValidationError("minLat, maxLat, minLng and maxLng must be given together", field="bounds")
        lo_lat = _coordinate(min_lat, "minLat", 90)
        hi_lat = _coordinate(max_lat, "maxLat", 90)
        # Map widgets report longitudes past +-180 when the view wraps; clamp them.
        lo_lng = max(-180.0, _coordinate(min_lng, "minLng", 720))
        hi_lng = min(180.0, _coordinate(max_lng, "maxLng", 720))
        if lo_lat > hi_lat:
            raise ValidationError("minLat must not exceed maxLat", field="minLat")
        if lo_lng > hi_lng:
            raise ValidationError("minLng must not exceed maxLng", field="minLng")
        return cls(lo_lat, hi_lat, lo_lng, hi_lng)

    def contains(self, latitude: float, longitude: float) -> bool:
        return self.min_lat <= latitude <= self.max_lat and self.min_lng <= longitude <= self.max_lng

    def clause(self, lat_column, lng_column) -> ColumnElement[bool]:
        """SQL predicate served by the (latitude, longitude) index."""
        return and_(
            lat_column.between(self.min_lat, self.max_lat),
            lng_column.between(self.min_lng, self.max_lng),
        )
