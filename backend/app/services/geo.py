"""
Great-circle distance and geofence checks for GPS fixes.

Points are any object exposing ``latitude``/``longitude`` attributes, or a
mapping with those keys. Coordinates must be finite numbers in degrees;
anything else raises ``InvalidLocation`` instead of being coerced.
"""

import math
from collections.abc import Mapping
from typing import Any

from app.core.errors import InvalidLocation, LocationAdjustmentTooFar

EARTH_RADIUS_METERS = 6_371_000.0


def _coordinate(point: Any, name: str) -> float:
    if point is None:
        raise InvalidLocation(f"Missing point for {name}")
    if isinstance(point, Mapping):
        value = point.get(name)
    else:
        value = getattr(point, name, None)

    # bool is an int subclass; True/False are never coordinates
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidLocation(f"Invalid {name}: {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidLocation(f"Invalid {name}: {value!r}")
    return value


def coordinates(point: Any) -> tuple[float, float]:
    """Validated ``(latitude, longitude)`` of a point."""
    lat = _coordinate(point, "latitude")
    lon = _coordinate(point, "longitude")
    if not -90.0 <= lat <= 90.0:
        raise InvalidLocation(f"Latitude out of range: {lat}")
    if not -180.0 <= lon <= 180.0:
        raise InvalidLocation(f"Longitude out of range: {lon}")
    return lat, lon


def distance_meters(a: Any, b: Any) -> float:
    """Haversine distance between two points, in meters."""
    lat1, lon1 = coordinates(a)
    lat2, lon2 = coordinates(b)

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_METERS * c


def within_geofence(
    point: Any,
    center: Any,
    radius_meters: float,
    accuracy_meters: float,
    accuracy_tolerance_meters: float,
) -> bool:
    """True only when the point is inside the radius AND the fix is accurate enough."""
    if distance_meters(point, center) > radius_meters:
        return False
    return accuracy_meters <= accuracy_tolerance_meters


def check_pin_adjustment(original: Any, adjusted: Any, max_distance_meters: float) -> float:
    """
    Validate a manually moved map pin against the GPS fix it started from.

    Returns the relocation distance; raises ``LocationAdjustmentTooFar`` when
    the pin was dragged farther than ``max_distance_meters``.
    """
    moved = distance_meters(original, adjusted)
    if moved > max_distance_meters:
        raise LocationAdjustmentTooFar(
            f"Adjusted location is {moved:.0f} m from the GPS position "
            f"(max {max_distance_meters:.0f} m)"
        )
    return moved
