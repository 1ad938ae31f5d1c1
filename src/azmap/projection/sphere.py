"""
Spherical-earth helpers shared by the projection engine and its consumers.

Everything here uses a single spherical radius. An ellipsoidal model would buy
a few kilometres of accuracy that an interactive map cannot show, so we keep
the math short and easy to check by hand.

The functions accept plain floats or NumPy arrays. Scalar callers get NumPy
scalars back and can wrap them in `float(...)`.
"""

from __future__ import annotations

# `math` provides pi and scalar trig for the haversine/azimuth formulas.
import math
from typing import Any

# NumPy lets the same formula serve one point or a whole coastline.
import numpy as np

# Mean earth radius in kilometres (spherical approximation).
EARTH_RADIUS_KM = 6371.0
# Great-circle distance to the antipode: the rim of the azimuthal equidistant disc.
EARTH_MAX_PROJ_RADIUS_KM = math.pi * EARTH_RADIUS_KM
# Tolerance used for "this angle is zero" tests throughout the engine.
NEAR_ZERO = 1e-10


def normalize_lon(lon_deg: Any) -> Any:
    # Fold any longitude into [-180, 180) so round trips compare cleanly.
    return (np.asarray(lon_deg, dtype=float) + 180.0) % 360.0 - 180.0


def angular_separation(lat1_deg: Any, lon1_deg: Any, lat2_deg: Any, lon2_deg: Any) -> Any:
    """
    Central angle (radians) between two points by the spherical law of cosines.

    The cosine is clamped to [-1, 1] before `arccos`; rounding can push it a hair
    outside the domain for coincident or antipodal points.
    """
    lat1 = np.radians(lat1_deg)
    lat2 = np.radians(lat2_deg)
    dlon = np.radians(np.asarray(lon2_deg, dtype=float) - np.asarray(lon1_deg, dtype=float))
    cos_d = np.sin(lat1) * np.sin(lat2) + np.cos(lat1) * np.cos(lat2) * np.cos(dlon)
    return np.arccos(np.clip(cos_d, -1.0, 1.0))


def unit_vector(lat_deg: Any, lon_deg: Any) -> np.ndarray:
    # Earth-centred unit vector(s); the last axis holds (x, y, z).
    lat = np.radians(lat_deg)
    lon = np.radians(lon_deg)
    cos_lat = np.cos(lat)
    return np.stack([cos_lat * np.cos(lon), cos_lat * np.sin(lon), np.sin(lat)], axis=-1)


def from_unit_vector(xyz: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    # Inverse of `unit_vector`; the vector does not need to be normalized.
    x, y, z = xyz[..., 0], xyz[..., 1], xyz[..., 2]
    lat = np.degrees(np.arctan2(z, np.hypot(x, y)))
    lon = np.degrees(np.arctan2(y, x))
    return lat, lon


def distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine great-circle distance in kilometres."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2.0) ** 2
    b = math.sin(dlon / 2.0) ** 2
    h = a + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * b
    # `h` can exceed 1 by a rounding error for antipodal points.
    return 2.0 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, max(0.0, h))))


def azimuth(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing from point 1 to point 2, degrees in [0, 360), 0 = north."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dlon = math.radians(lon2 - lon1)

    y = math.sin(dlon) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlon)
    az = (math.degrees(math.atan2(y, x)) + 360.0) % 360.0
    # A tiny negative bearing rounds to exactly 360.0 under `%`.
    return 0.0 if az >= 360.0 else az
