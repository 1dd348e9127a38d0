"""GPS verification - distance between a captured fix and the task location."""

import logging
import math
from dataclasses import dataclass, field

from fieldgate.config import settings
from fieldgate.models.event import CapturedLocation
from fieldgate.models.task import GeoLocation

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6_371_000.0

DISTANCE_WARNING = "distance exceeds threshold"
ACCURACY_WARNING = "low GPS accuracy"


@dataclass(frozen=True)
class LocationCheck:
    distance_meters: float | None
    warnings: list[str] = field(default_factory=list)


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two points given in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Clamp against rounding drift for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def verify_location(
    captured: CapturedLocation,
    reference: GeoLocation | None,
    threshold_meters: float | None = None,
    low_accuracy_meters: float | None = None,
) -> LocationCheck:
    """
    Compare a captured fix with the task's reference point.

    Warnings never block the caller; they are recorded on the event payload.
    Without a reference point the distance check is skipped.
    """
    if threshold_meters is None:
        threshold_meters = settings.gps_distance_threshold_meters
    if low_accuracy_meters is None:
        low_accuracy_meters = settings.gps_low_accuracy_meters

    warnings: list[str] = []
    distance: float | None = None

    if reference is not None:
        distance = haversine_distance(captured.lat, captured.lng, reference.lat, reference.lng)
        if distance > threshold_meters:
            warnings.append(DISTANCE_WARNING)

    if captured.accuracy_meters is not None and captured.accuracy_meters > low_accuracy_meters:
        warnings.append(ACCURACY_WARNING)

    if warnings:
        logger.warning(
            "GPS verification warnings %s (distance=%s, accuracy=%s)",
            warnings,
            f"{distance:.1f}m" if distance is not None else "n/a",
            captured.accuracy_meters,
        )
    return LocationCheck(distance_meters=distance, warnings=warnings)
