"""
Locating the orthographic horizon between a visible and a hidden point.

Ring clipping and the horizon-extended graticule both need the point where an
edge leaves the front hemisphere. They share this one routine so both produce
identical boundary vertices.
"""

from __future__ import annotations

import numpy as np

from azmap.projection.engine import ProjectionState, forward_array
from azmap.projection.sphere import from_unit_vector, unit_vector

# Each iteration halves the bracket; 20 halvings of a 5 degree edge is ~0.5 m.
CROSSING_ITERATIONS = 20

LatLon = tuple[float, float]


def is_front(state: ProjectionState, lat: float, lon: float) -> bool:
    _, _, valid = forward_array(state, lat, lon)
    return bool(valid)


def _point_at(va: np.ndarray, vb: np.ndarray, t: float) -> LatLon:
    # Normalized chord interpolation: stays on the great circle through a and b
    # and behaves across the antimeridian, unlike lat/lon interpolation.
    v = (1.0 - t) * va + t * vb
    if float(np.linalg.norm(v)) < 1e-12:
        # Antipodal endpoints have no unique midpoint; stay on the a side.
        v = va
    lat, lon = from_unit_vector(v)
    return float(lat), float(lon)


def find_horizon_crossing(
    state: ProjectionState,
    a: LatLon,
    b: LatLon,
    *,
    iterations: int = CROSSING_ITERATIONS,
) -> LatLon:
    """
    Bisect the edge a -> b for the hemisphere boundary.

    Exactly one of `a` and `b` must be on the front hemisphere. The returned
    (lat, lon) is the front end of the final bracket, so projecting it with
    `forward_clamped` lands on, or just inside, the visible disc.
    """
    front_a = is_front(state, *a)
    front_b = is_front(state, *b)
    if front_a == front_b:
        raise ValueError(f"Edge {a} -> {b} does not cross the horizon")

    va = unit_vector(*a)
    vb = unit_vector(*b)
    # Invariant: parameter `lo` has a's class, `hi` has b's class.
    lo, hi = 0.0, 1.0
    for _ in range(int(iterations)):
        # Keep the half whose ends still disagree about the hemisphere.
        mid = 0.5 * (lo + hi)
        if is_front(state, *_point_at(va, vb, mid)) == front_a:
            lo = mid
        else:
            hi = mid
    return _point_at(va, vb, lo if front_a else hi)
