# utils/geofence.py

import re
from math import atan2, cos, isfinite, radians, sin, sqrt
from typing import NamedTuple, Optional, Sequence

EARTH_RADIUS_KM = 6371.0

# Circular geofence around every registered site
GEOFENCE_RADIUS_KM = 0.1


class Coordinates(NamedTuple):
    latitude: float
    longitude: float

    @classmethod
    def from_raw(cls, latitude, longitude) -> Optional["Coordinates"]:
        """
        Normalize a raw (lat, lng) pair coming from a request body or query.

        Returns None when either part is missing, not numeric, not finite or
        out of range, so callers only ever deal with a valid pair or nothing.
        """
        if latitude is None or longitude is None:
            return None
        if isinstance(latitude, bool) or isinstance(longitude, bool):
            return None
        try:
            lat = float(latitude)
            lng = float(longitude)
        except (TypeError, ValueError):
            return None
        if not (isfinite(lat) and isfinite(lng)):
            return None
        if abs(lat) > 90 or abs(lng) > 180:
            return None
        return cls(lat, lng)

    def map_link(self) -> str:
        return f"https://www.google.com/maps?q={self.latitude},{self.longitude}"


class SitePoint(NamedTuple):
    """Immutable copy of a site row, as seen by the resolver."""

    id: int
    name: str
    latitude: Optional[float]
    longitude: Optional[float]


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    φ1, φ2 = radians(lat1), radians(lat2)
    Δφ = radians(lat2 - lat1)
    Δλ = radians(lng2 - lng1)

    a = sin(Δφ/2)**2 + cos(φ1) * cos(φ2) * sin(Δλ/2)**2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def is_within_radius(
    lat: float,
    lng: float,
    center_lat: float,
    center_lng: float,
    radius_km: float = GEOFENCE_RADIUS_KM,
) -> bool:

    return haversine_km(lat, lng, center_lat, center_lng) <= radius_km


def resolve_site(
    coordinates: Optional[Coordinates],
    sites: Sequence[SitePoint],
    radius_km: float = GEOFENCE_RADIUS_KM,
) -> Optional[SitePoint]:
    """
    Map a coordinate to a registered site.

    Sites are scanned in registry order and the FIRST one inside the radius
    wins, even if a later site is closer. Report labels depend on this order,
    so do not switch it to a nearest-match without checking with HR.
    """
    if coordinates is None:
        return None

    for site in sites:
        center = Coordinates.from_raw(site.latitude, site.longitude)
        if center is None:
            continue  # bookmark-only site, nothing to measure against
        if is_within_radius(
            coordinates.latitude,
            coordinates.longitude,
            center.latitude,
            center.longitude,
            radius_km,
        ):
            return site

    return None


_MAP_LINK_PATTERNS = (
    re.compile(r"[?&](?:q|query|ll)=(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)"),
    re.compile(r"@(-?\d+(?:\.\d+)?),(-?\d+(?:\.\d+)?)"),
)


def coordinates_from_map_link(link: Optional[str]) -> Optional[Coordinates]:
    """Pull '40.71,-74.00' out of a Google Maps style link, if it has one."""
    if not link:
        return None
    for pattern in _MAP_LINK_PATTERNS:
        match = pattern.search(link)
        if match:
            return Coordinates.from_raw(match.group(1), match.group(2))
    return None
