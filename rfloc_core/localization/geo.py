"""
Geodetic primitives.

Small-area approximations used throughout the coverage model: a fixed
meters-per-degree constant for latitude, a cosine correction for longitude,
and a monotonically growing bounding box.

Distances between coverage centres use the haversine great-circle formula.
"""

import math
from typing import Optional, Tuple

DEG_TO_METER = 111225.0
METER_TO_DEG = 1.0 / DEG_TO_METER

# Floor for cos(latitude) so longitude conversions stay finite near the poles
MIN_COS = 0.01

EARTH_RADIUS_M = 6371000.0

NULL_ISLAND_DISTANCE_M = 1000.0


def cos_lat(lat: float) -> float:
    """
    Cosine of latitude, floored at MIN_COS.

    Args:
        lat: Latitude in degrees

    Returns:
        cos(lat) clamped to [MIN_COS, 1]
    """
    return max(MIN_COS, math.cos(math.radians(lat)))


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points.

    Args:
        lat1, lon1: First point (degrees)
        lat2, lon2: Second point (degrees)

    Returns:
        Distance in meters
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lam = math.radians(lon2 - lon1)
    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lam / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Initial compass bearing from the first point to the second.

    Returns:
        Bearing in degrees, [0, 360), 0 = north, 90 = east
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_lam = math.radians(lon2 - lon1)
    y = math.sin(d_lam) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lam)
    return math.degrees(math.atan2(y, x)) % 360.0


def is_null_island(lat: float, lon: float) -> bool:
    """
    True if a position is suspiciously close to (0, 0).

    Location providers that have no fix sometimes report zeros; such
    samples must never be used as a reference.
    """
    return distance_m(lat, lon, 0.0, 0.0) < NULL_ISLAND_DISTANCE_M


class BoundingBox:
    """
    Axis-aligned latitude/longitude box that only grows.

    Starts with impossible extents (north below south, east below west) so
    the first expand() sets every edge.

    Usage:
        box = BoundingBox()
        box.expand(lat, lon, 150.0)     # point plus radius
        box.expand(other_lat, other_lon)  # bare point
        if box.contains(lat, lon):
            ...
    """

    def __init__(self, lat: Optional[float] = None, lon: Optional[float] = None,
                 radius_m: Optional[float] = None):
        self.north = -91.0      # Impossibly south
        self.south = 91.0       # Impossibly north
        self.east = -181.0      # Impossibly west
        self.west = 181.0       # Impossibly east

        if lat is not None and lon is not None:
            self.expand(lat, lon, radius_m)

    def expand(self, lat: float, lon: float, radius_m: Optional[float] = None):
        """
        Expand the box to include a point, or a disk around it.

        Args:
            lat: Latitude of the point (degrees)
            lon: Longitude of the point (degrees)
            radius_m: Radius around the point (meters); None for a bare point
        """
        if not radius_m:
            self.north = max(self.north, lat)
            self.south = min(self.south, lat)
            self.east = max(self.east, lon)
            self.west = min(self.west, lon)
            return

        d_lat = radius_m * METER_TO_DEG
        d_lon = d_lat / cos_lat(lat)

        self.north = max(self.north, lat + d_lat)
        self.south = min(self.south, lat - d_lat)
        self.east = max(self.east, lon + d_lon)
        self.west = min(self.west, lon - d_lon)

    @property
    def is_empty(self) -> bool:
        """True until the first expand()."""
        return self.north < self.south or self.east < self.west

    def contains(self, lat: float, lon: float) -> bool:
        """True if the point lies inside the box (edges inclusive)."""
        if self.is_empty:
            return False
        return self.south <= lat <= self.north and self.west <= lon <= self.east

    @property
    def center(self) -> Tuple[float, float]:
        """(lat, lon) of the box centre."""
        return ((self.north + self.south) / 2.0, (self.east + self.west) / 2.0)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            'north': self.north,
            'south': self.south,
            'east': self.east,
            'west': self.west,
        }

    def __repr__(self) -> str:
        return f"BoundingBox(N={self.north:.6f}, S={self.south:.6f}, E={self.east:.6f}, W={self.west:.6f})"
