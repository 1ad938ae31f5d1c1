from __future__ import annotations

import math

import numpy as np

from azmap.geometry.buffers import GeometryBuilder, ProjectedGeometry
from azmap.projection.crossing import CROSSING_ITERATIONS, find_horizon_crossing
from azmap.projection.engine import ProjectionState, forward_array, forward_clamped
from azmap.projection.sphere import EARTH_MAX_PROJ_RADIUS_KM

# Azimuthal equidistant grid: range rings and bearing lines.
RING_STEP_KM = 5000.0
AZIMUTH_STEP_DEG = 30.0
CIRCLE_POINTS = 72

# Orthographic graticule: parallels/meridians and their sampling.
GEO_LAT_STEP_DEG = 30.0
GEO_LON_STEP_DEG = 30.0
GEO_SAMPLE_STEP_DEG = 5.0
GEO_MAX_PARALLEL_DEG = 60.0


def build_range_grid(*, max_radius_km: float = EARTH_MAX_PROJ_RADIUS_KM, generation: int = 0) -> ProjectedGeometry:
    """Range rings every 5000 km and radial bearing lines every 30 degrees."""
    num_rings = int(max_radius_km // RING_STEP_KM)
    num_radials = int(round(360.0 / AZIMUTH_STEP_DEG))

    builder = GeometryBuilder()
    builder.reserve(num_rings * (CIRCLE_POINTS + 1) + num_radials * 2)

    # Closed rings: the last sample repeats the first.
    theta = np.linspace(0.0, 2.0 * math.pi, CIRCLE_POINTS + 1)
    for ri in range(1, num_rings + 1):
        r = ri * RING_STEP_KM
        builder.add_run(np.column_stack([r * np.cos(theta), r * np.sin(theta)]))

    # Radials run from the center to the rim at fixed bearings.
    for i in range(num_radials):
        a = 2.0 * math.pi * i / num_radials
        builder.add_run([[0.0, 0.0], [max_radius_km * math.cos(a), max_radius_km * math.sin(a)]])

    return builder.build(generation=generation)


def _add_sampled_line(
    builder: GeometryBuilder,
    state: ProjectionState,
    lats: np.ndarray,
    lons: np.ndarray,
    *,
    extend_to_horizon: bool,
    crossing_iterations: int,
) -> None:
    # Split one sampled parallel/meridian into its visible runs.
    x, y, front = forward_array(state, lats, lons)
    n = lats.shape[0]

    def horizon(i: int, j: int) -> tuple[float, float]:
        lat, lon = find_horizon_crossing(
            state,
            (float(lats[i]), float(lons[i])),
            (float(lats[j]), float(lons[j])),
            iterations=crossing_iterations,
        )
        return forward_clamped(state, lat, lon)

    i = 0
    while i < n:
        # Skip hidden samples until the next visible run starts.
        if not front[i]:
            i += 1
            continue
        # Advance j to one past the last visible sample of this run.
        j = i
        while j < n and front[j]:
            j += 1
        run: list[tuple[float, float]] = [(float(px), float(py)) for px, py in zip(x[i:j], y[i:j])]
        if extend_to_horizon:
            # A run that starts or ends inside the line was cut by the horizon on that side.
            if i > 0:
                run.insert(0, horizon(i, i - 1))
            if j < n:
                run.append(horizon(j - 1, j))
        # A lone visible sample is discarded.
        if len(run) >= 2:
            builder.add_run(run)
        i = j


def build_geo_graticule(
    state: ProjectionState,
    *,
    extend_to_horizon: bool = False,
    crossing_iterations: int = CROSSING_ITERATIONS,
    generation: int = 0,
) -> ProjectedGeometry:
    """
    Parallels every 30 degrees between -60 and 60, meridians every 30 degrees,
    sampled every 5 degrees and broken wherever a sample is hidden.

    By default lines stop at their last visible sample. With
    `extend_to_horizon=True` each broken end is carried to the horizon using
    the same crossing search as ring clipping.
    """
    builder = GeometryBuilder()

    # Parallels are sampled along longitude, meridians along latitude.
    n_par = int(round(2 * GEO_MAX_PARALLEL_DEG / GEO_LAT_STEP_DEG)) + 1
    par_lons = np.linspace(-180.0, 180.0, int(round(360.0 / GEO_SAMPLE_STEP_DEG)) + 1)
    for lat in np.linspace(-GEO_MAX_PARALLEL_DEG, GEO_MAX_PARALLEL_DEG, n_par):
        _add_sampled_line(
            builder,
            state,
            np.full_like(par_lons, lat),
            par_lons,
            extend_to_horizon=extend_to_horizon,
            crossing_iterations=crossing_iterations,
        )

    n_mer = int(round(360.0 / GEO_LON_STEP_DEG))
    mer_lats = np.linspace(-90.0, 90.0, int(round(180.0 / GEO_SAMPLE_STEP_DEG)) + 1)
    for lon in -180.0 + GEO_LON_STEP_DEG * np.arange(n_mer):
        _add_sampled_line(
            builder,
            state,
            mer_lats,
            np.full_like(mer_lats, lon),
            extend_to_horizon=extend_to_horizon,
            crossing_iterations=crossing_iterations,
        )

    return builder.build(generation=generation)


def build_grid(
    state: ProjectionState,
    *,
    extend_to_horizon: bool = False,
    crossing_iterations: int = CROSSING_ITERATIONS,
    generation: int = 0,
) -> ProjectedGeometry:
    # The range grid does not depend on the center; the graticule does.
    if state.is_orthographic:
        return build_geo_graticule(
            state,
            extend_to_horizon=extend_to_horizon,
            crossing_iterations=crossing_iterations,
            generation=generation,
        )
    return build_range_grid(generation=generation)
