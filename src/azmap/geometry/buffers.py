"""
Projected vertex buffers and their segment tables.

A `ProjectedGeometry` is a flat (N, 2) array of planar kilometres plus an
(S, 2) table of `(start, count)` rows; each row is one independently drawable
line strip or polygon ring. Geometry objects are read-only: a rebuild always
produces a new object and the previous one is simply dropped by its owner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator

import numpy as np

from azmap.errors import AllocationFailure

logger = logging.getLogger(__name__)


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True)
class ProjectedGeometry:
    vertices: np.ndarray
    segments: np.ndarray
    degenerate: tuple[int, ...] = ()
    warnings: tuple[str, ...] = ()
    truncated: bool = False
    generation: int = 0

    @classmethod
    def empty(cls, *, generation: int = 0, warnings: tuple[str, ...] = ()) -> "ProjectedGeometry":
        return cls(
            vertices=_frozen(np.empty((0, 2), dtype=float)),
            segments=_frozen(np.empty((0, 2), dtype=np.int64)),
            warnings=warnings,
            generation=generation,
        )

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def segment_count(self) -> int:
        return int(self.segments.shape[0])

    def segment(self, index: int) -> np.ndarray:
        start, count = (int(v) for v in self.segments[index])
        return self.vertices[start : start + count]

    def iter_segments(self) -> Iterator[np.ndarray]:
        for i in range(self.segment_count):
            yield self.segment(i)


class GeometryBuilder:
    """
    Growable vertex buffer used while one geometry is being assembled.

    `reserve` sizes the buffer up front when the caller knows the vertex count,
    so a rebuild normally allocates once. `build` hands the buffer over to the
    returned geometry; the builder must not be used afterwards.
    """

    def __init__(self, *, max_segments: int | None = None) -> None:
        if max_segments is not None and max_segments <= 0:
            raise ValueError("max_segments must be > 0")
        self.max_segments = max_segments
        self._vertices = np.empty((0, 2), dtype=float)
        self._size = 0
        self._segments: list[tuple[int, int]] = []
        self._degenerate: list[int] = []
        self._warnings: list[str] = []
        self._dropped = 0
        self._built = False

    @property
    def vertex_count(self) -> int:
        return self._size

    def reserve(self, capacity: int) -> None:
        if capacity <= self._vertices.shape[0]:
            return
        try:
            grown = np.empty((int(capacity), 2), dtype=float)
        except MemoryError as exc:
            raise AllocationFailure(f"Cannot allocate {capacity} vertices") from exc
        grown[: self._size] = self._vertices[: self._size]
        self._vertices = grown

    def extend(self, xy: Any) -> int:
        # Append vertices without touching the segment table; returns their start index.
        if self._built:
            raise RuntimeError("GeometryBuilder already built")
        pts = np.asarray(xy, dtype=float).reshape(-1, 2)
        start = self._size
        needed = start + pts.shape[0]
        if needed > self._vertices.shape[0]:
            self.reserve(max(needed, 2 * self._vertices.shape[0], 64))
        self._vertices[start:needed] = pts
        self._size = needed
        return start

    def add_segment(self, start: int, count: int) -> bool:
        if start < 0 or count <= 0 or start + count > self._size:
            raise ValueError(f"Segment ({start}, {count}) outside buffer of {self._size} vertices")
        if self.max_segments is not None and len(self._segments) >= self.max_segments:
            self._dropped += 1
            return False
        self._segments.append((int(start), int(count)))
        return True

    def add_run(self, xy: Any) -> bool:
        # A full table drops the run without storing its vertices.
        if self.max_segments is not None and len(self._segments) >= self.max_segments:
            self._dropped += 1
            return False
        pts = np.asarray(xy, dtype=float).reshape(-1, 2)
        start = self.extend(pts)
        return self.add_segment(start, pts.shape[0])

    def mark_degenerate(self, ring_index: int) -> None:
        self._degenerate.append(int(ring_index))

    def warn(self, message: str) -> None:
        self._warnings.append(message)

    def build(self, *, generation: int = 0) -> ProjectedGeometry:
        if self._dropped:
            msg = (
                f"Segment table capacity {self.max_segments} exceeded; "
                f"dropped {self._dropped} segment(s)"
            )
            logger.warning(msg)
            self._warnings.append(msg)

        vertices = self._vertices[: self._size]
        if self._size < self._vertices.shape[0]:
            # Release the unused reserve instead of pinning it behind a view.
            vertices = vertices.copy()
        segments = np.asarray(self._segments, dtype=np.int64).reshape(-1, 2)

        geometry = ProjectedGeometry(
            vertices=_frozen(vertices),
            segments=_frozen(segments),
            degenerate=tuple(self._degenerate),
            warnings=tuple(self._warnings),
            truncated=self._dropped > 0,
            generation=generation,
        )
        # The buffer now belongs to the geometry.
        self._vertices = np.empty((0, 2), dtype=float)
        self._size = 0
        self._built = True
        return geometry


def geometry_to_geojson(
    geometry: ProjectedGeometry,
    *,
    kind: str = "line",
    properties: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Export a geometry as a GeoJSON FeatureCollection in planar kilometres.

    `kind="line"` emits one MultiLineString; `kind="polygon"` emits one
    MultiPolygon with every segment as a closed outer ring. NaN vertices never
    appear inside a segment, so the output is plain JSON.
    """
    if kind not in {"line", "polygon"}:
        raise ValueError(f"Unknown geometry kind: {kind}")

    parts: list[list[list[float]]] = []
    for seg in geometry.iter_segments():
        coords = [[float(x), float(y)] for x, y in seg]
        if kind == "polygon" and coords and coords[0] != coords[-1]:
            coords.append(coords[0])
        parts.append(coords)

    props: dict[str, Any] = {
        "units": "km",
        "segments": geometry.segment_count,
        "vertices": geometry.vertex_count,
        "generation": geometry.generation,
        "truncated": geometry.truncated,
        "degenerate_rings": list(geometry.degenerate),
        "warnings": list(geometry.warnings),
    }
    if properties:
        props.update(properties)

    if kind == "line":
        geom: dict[str, Any] = {"type": "MultiLineString", "coordinates": parts}
    else:
        geom = {"type": "MultiPolygon", "coordinates": [[ring] for ring in parts]}
    return {"type": "FeatureCollection", "features": [{"type": "Feature", "geometry": geom, "properties": props}]}
