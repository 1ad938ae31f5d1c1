"""
Projecting vector map layers for display.

Two post-processing strategies, chosen by how the layer is drawn:

- "split" for open polylines (coastlines, borders). Every vertex is projected;
  a ring is cut wherever two consecutive projected vertices are more than
  `split_threshold_km` apart. Those jumps are chords across the disc between
  points near the antipode, and drawing them would streak lines across the
  map. The vertex buffer always has one entry per input vertex.

- "clip" for closed polygons drawn as fills (land). Rings are cut at the
  orthographic horizon and closed along it, so a fill never reaches into the
  hidden hemisphere.

`MapLayer` owns one raw ring collection and its latest projection.
"""

from __future__ import annotations

import logging
from typing import Literal

import numpy as np

from azmap.errors import AllocationFailure
from azmap.geometry.buffers import GeometryBuilder, ProjectedGeometry
from azmap.geometry.rings import RingCollection
from azmap.projection.crossing import CROSSING_ITERATIONS, find_horizon_crossing
from azmap.projection.engine import ProjectionState, forward_array, forward_clamped

logger = logging.getLogger(__name__)

# Consecutive projected vertices further apart than this start a new segment.
SPLIT_THRESHOLD_KM = 5000.0

Strategy = Literal["split", "clip"]
STRATEGIES = ("split", "clip")


def project_split(
    rings: RingCollection,
    state: ProjectionState,
    *,
    threshold_km: float = SPLIT_THRESHOLD_KM,
    max_segments: int | None = None,
    generation: int = 0,
) -> ProjectedGeometry:
    builder = GeometryBuilder(max_segments=max_segments)
    builder.reserve(rings.vertex_count)

    # Project every vertex of every ring in one vectorized call.
    x, y, valid = forward_array(state, rings.lats, rings.lons)
    builder.extend(np.column_stack([x, y]))

    # breaks[i] is True when vertex i cannot continue the run ending at i - 1:
    # a jump over the threshold, or a hidden (NaN) vertex on either side.
    breaks = np.zeros(rings.vertex_count, dtype=bool)
    if rings.vertex_count > 1:
        with np.errstate(invalid="ignore"):
            jump = np.diff(x) ** 2 + np.diff(y) ** 2 > threshold_km * threshold_km
        breaks[1:] = jump | ~valid[1:] | ~valid[:-1]

    for start, count in zip(rings.starts.tolist(), rings.counts.tolist()):
        # Breaks are global indices; the first vertex of a ring always starts a run.
        cuts = np.flatnonzero(breaks[start + 1 : start + count]) + 1
        bounds = [0, *cuts.tolist(), count]
        # Consecutive bounds delimit one candidate segment each.
        for a, b in zip(bounds[:-1], bounds[1:]):
            # A lone vertex (including a hidden one boxed in by breaks) is not drawable.
            if b - a >= 2:
                builder.add_segment(start + a, b - a)

    return builder.build(generation=generation)


def project_clip(
    rings: RingCollection,
    state: ProjectionState,
    *,
    max_segments: int | None = None,
    crossing_iterations: int = CROSSING_ITERATIONS,
    generation: int = 0,
) -> ProjectedGeometry:
    builder = GeometryBuilder(max_segments=max_segments)
    # Front vertices plus, typically, two horizon points per ring.
    builder.reserve(rings.vertex_count + 2 * len(rings))

    # `front` doubles as the hemisphere classification for every vertex.
    x, y, front = forward_array(state, rings.lats, rings.lons)

    for ring_index, (start, count) in enumerate(zip(rings.starts.tolist(), rings.counts.tolist())):
        end = start + count
        f = front[start:end]

        if not f.any():
            builder.mark_degenerate(ring_index)
            continue

        # Two vertices cannot bound an area, whichever side of the horizon they sit.
        if count < 3:
            builder.mark_degenerate(ring_index)
            continue

        if f.all():
            builder.add_run(np.column_stack([x[start:end], y[start:end]]))
            continue

        out: list[tuple[float, float]] = []
        # Walk edges i -> j with j wrapping to 0, so the closing edge is checked too.
        for i in range(count):
            j = (i + 1) % count
            if f[i]:
                out.append((float(x[start + i]), float(y[start + i])))
            # A class change means this edge crosses the horizon exactly once.
            if f[i] != f[j]:
                lat, lon = find_horizon_crossing(
                    state,
                    (float(rings.lats[start + i]), float(rings.lons[start + i])),
                    (float(rings.lats[start + j]), float(rings.lons[start + j])),
                    iterations=crossing_iterations,
                )
                out.append(forward_clamped(state, lat, lon))

        # The horizon cut can leave too little for a polygon.
        if len(out) < 3:
            builder.mark_degenerate(ring_index)
            continue
        builder.add_run(out)

    return builder.build(generation=generation)


class MapLayer:
    def __init__(
        self,
        name: str,
        rings: RingCollection,
        *,
        strategy: Strategy = "split",
        split_threshold_km: float = SPLIT_THRESHOLD_KM,
        max_segments: int | None = None,
        crossing_iterations: int = CROSSING_ITERATIONS,
    ) -> None:
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy {strategy!r}; expected one of {STRATEGIES}")
        if split_threshold_km <= 0:
            raise ValueError("split_threshold_km must be > 0")
        self.name = name
        self.rings = rings
        self.strategy = strategy
        self.split_threshold_km = float(split_threshold_km)
        self.max_segments = max_segments
        self.crossing_iterations = int(crossing_iterations)
        self.geometry = ProjectedGeometry.empty()
        self._generation = 0

    def clear(self) -> None:
        self.geometry = ProjectedGeometry.empty(generation=self._generation)

    def reproject(self, state: ProjectionState) -> ProjectedGeometry:
        """
        Replace this layer's geometry with a fresh projection under `state`.

        On allocation failure the layer is left empty and the error re-raised,
        so the caller can skip drawing it.
        """
        self._generation += 1
        try:
            if self.strategy == "split":
                geometry = project_split(
                    self.rings,
                    state,
                    threshold_km=self.split_threshold_km,
                    max_segments=self.max_segments,
                    generation=self._generation,
                )
            else:
                geometry = project_clip(
                    self.rings,
                    state,
                    max_segments=self.max_segments,
                    crossing_iterations=self.crossing_iterations,
                    generation=self._generation,
                )
        except MemoryError as exc:
            self.clear()
            raise AllocationFailure(f"layer {self.name}: out of memory during reprojection") from exc
        except AllocationFailure:
            self.clear()
            raise

        self.geometry = geometry
        logger.debug(
            "layer %s: %d vertices, %d segments (%s, gen %d)",
            self.name,
            geometry.vertex_count,
            geometry.segment_count,
            self.strategy,
            geometry.generation,
        )
        return geometry
