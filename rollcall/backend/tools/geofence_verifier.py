# rollcall/backend/tools/geofence_verifier.py

import math
from typing import Optional

from ..models.db_models import GeoPoint, Geofence

EARTH_RADIUS_METERS = 6371000


def haversine_distance(a: GeoPoint, b: GeoPoint) -> float:
    """
    Great-circle distance between two coordinates, in meters.
    """
    phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)
    h = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def verify_location(geofence: Geofence, user_location: Optional[GeoPoint]) -> bool:
    """
    Checks whether the user stands inside the session's geofence.

    Args:
        geofence (Geofence): Center point and radius of the venue.
        user_location (GeoPoint): Position reported by the user's device, if any.

    Returns:
        bool: True if the distance to the center is within the radius. A missing
        location never verifies.
    """
    if user_location is None:
        return False
    return haversine_distance(user_location, geofence) <= geofence.radius_meters
