"""
Great-circle paths between two points.

Samples are spherical linear interpolations of the endpoints' unit vectors,
so they are evenly spaced along the path, and are projected with
`forward_clamped`: under the orthographic model the part of the path behind
the globe is drawn along the horizon instead of vanishing.
"""

from __future__ import annotations

import math

import numpy as np

from azmap.errors import AntipodalUndefined
from azmap.geometry.buffers import GeometryBuilder, ProjectedGeometry
from azmap.projection.engine import ProjectionState, forward_clamped_array
from azmap.projection.sphere import NEAR_ZERO, angular_separation, from_unit_vector, unit_vector

GC_LINE_POINTS = 101


def great_circle_points(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    *,
    points: int = GC_LINE_POINTS,
) -> tuple[np.ndarray, np.ndarray]:
    # Geographic samples (lat, lon) along the path, endpoints included.
    if points < 2:
        raise ValueError("points must be >= 2")
    d = float(angular_separation(lat1, lon1, lat2, lon2))
    if d < NEAR_ZERO:
        return np.array([float(lat1)]), np.array([float(lon1)])

    sin_d = math.sin(d)
    if sin_d < NEAR_ZERO:
        # Every meridian-like great circle through antipodes is equally short.
        raise AntipodalUndefined(f"({lat1}, {lon1}) and ({lat2}, {lon2}) are antipodal; the path is not unique")

    # Slerp weights: sin((1 - t) d) / sin d and sin(t d) / sin d keep every sample on the unit sphere.
    t = np.linspace(0.0, 1.0, points)
    a = np.sin((1.0 - t) * d) / sin_d
    b = np.sin(t * d) / sin_d
    xyz = a[:, None] * unit_vector(lat1, lon1) + b[:, None] * unit_vector(lat2, lon2)
    return from_unit_vector(xyz)


def great_circle_path(
    state: ProjectionState,
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    *,
    points: int = GC_LINE_POINTS,
    generation: int = 0,
) -> ProjectedGeometry:
    lats, lons = great_circle_points(lat1, lon1, lat2, lon2, points=points)
    # Clamped projection keeps the hidden part of the path on the horizon, one vertex per sample.
    x, y = forward_clamped_array(state, lats, lons)
    builder = GeometryBuilder()
    builder.reserve(lats.shape[0])
    builder.add_run(np.column_stack([x, y]))
    return builder.build(generation=generation)
