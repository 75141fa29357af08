"""
Geofence validation service.
Great-circle distances between GPS fixes and project sites.
"""
import math
from typing import NamedTuple, Optional

from ..config import settings

EARTH_RADIUS_M = 6371000


class SiteCheck(NamedTuple):
    inside: bool
    distance_m: float
    radius_m: float
    accuracy_risk: bool


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in meters between two (lat, lon) points given in degrees."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def is_within_radius(
    lat1: float, lon1: float, lat2: float, lon2: float, radius_m: float
) -> bool:
    return haversine_distance_m(lat1, lon1, lat2, lon2) <= radius_m


def check_site(
    lat: float,
    lng: float,
    site_lat: float,
    site_lng: float,
    radius_m: Optional[float] = None,
    accuracy_m: Optional[float] = None,
) -> SiteCheck:
    """
    Check a fix against a site's circle.

    A missing radius uses GEO_RADIUS_M_DEFAULT. accuracy_risk is set when the
    reported GPS accuracy is worse than GPS_ACCURACY_RISK_M; the fix is still
    judged on its coordinates alone.
    """
    radius = float(radius_m or settings.geo_radius_m_default)
    distance = haversine_distance_m(lat, lng, site_lat, site_lng)
    risk = accuracy_m is not None and accuracy_m > settings.gps_accuracy_risk_m
    return SiteCheck(inside=distance <= radius, distance_m=distance, radius_m=radius, accuracy_risk=risk)
