"""
Night shading mesh over the visible disc.

The disc is covered by a polar grid. Each grid vertex is inverse-projected,
its solar zenith angle turned into a darkness alpha, and the grid triangulated:
a fan around the center, then two triangles per cell further out. Cells that
are fully lit (all corners alpha 0) are left out, so the mesh mostly covers
the night side and the twilight band.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import numpy as np

from azmap.projection.engine import ProjectionState, inverse_array, radius_for_mode
from azmap.solar.subsolar import SubsolarPoint, zenith_angle

ANGULAR_DIVS = 180
RADIAL_DIVS = 60
# Translucent so the map stays readable under the night side.
MAX_ALPHA = 0.75
# Pull the outer ring in slightly so it never lands just outside the disc.
EDGE_INSET_KM = 0.5

DAY_ZENITH_DEG = 80.0
NIGHT_ZENITH_DEG = 108.0


def zenith_to_alpha(zenith_deg: Any) -> Any:
    # 0 up to 80 degrees, smoothstep up to MAX_ALPHA at 108 degrees (end of astronomical twilight).
    t = np.clip((np.asarray(zenith_deg, dtype=float) - DAY_ZENITH_DEG) / (NIGHT_ZENITH_DEG - DAY_ZENITH_DEG), 0.0, 1.0)
    alpha = MAX_ALPHA * t * t * (3.0 - 2.0 * t)
    return float(alpha) if np.ndim(alpha) == 0 else alpha


@dataclass(frozen=True)
class NightMesh:
    # (3 * T, 3) rows of (x_km, y_km, alpha); every three rows form a triangle.
    vertices: np.ndarray

    @classmethod
    def empty(cls) -> "NightMesh":
        v = np.empty((0, 3), dtype=float)
        v.flags.writeable = False
        return cls(vertices=v)

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def triangle_count(self) -> int:
        return self.vertex_count // 3

    @property
    def triangles(self) -> np.ndarray:
        return self.vertices.reshape(-1, 3, 3)


def build_night_mesh(
    state: ProjectionState,
    sun: SubsolarPoint,
    *,
    angular_divs: int = ANGULAR_DIVS,
    radial_divs: int = RADIAL_DIVS,
    inset_km: float = EDGE_INSET_KM,
) -> NightMesh:
    if angular_divs < 3 or radial_divs < 1:
        raise ValueError("night mesh needs angular_divs >= 3 and radial_divs >= 1")

    max_r = radius_for_mode(state) - inset_km
    radii = np.arange(radial_divs + 1) * (max_r / radial_divs)
    angles = np.arange(angular_divs) * (2.0 * math.pi / angular_divs)

    gx = radii[:, None] * np.cos(angles)[None, :]
    gy = radii[:, None] * np.sin(angles)[None, :]

    lat, lon, valid = inverse_array(state, gx, gy)
    with np.errstate(invalid="ignore"):
        alpha = np.where(valid, zenith_to_alpha(zenith_angle(lat, lon, sun)), MAX_ALPHA)

    # grid[ri, ai] = (x, y, alpha); row 0 is the center repeated.
    grid = np.stack([gx, gy, alpha], axis=-1)
    nxt = np.roll(np.arange(angular_divs), -1)

    center = np.broadcast_to(np.array([0.0, 0.0, alpha[0, 0]]), (angular_divs, 3))
    fan = np.stack([center, grid[1], grid[1, nxt]], axis=1)
    fan_keep = (fan[:, :, 2] != 0.0).any(axis=1)
    parts = [fan[fan_keep].reshape(-1, 3)]

    if radial_divs > 1:
        p00 = grid[1:-1]
        p01 = grid[1:-1][:, nxt]
        p10 = grid[2:]
        p11 = grid[2:][:, nxt]
        quad_keep = ~((p00[..., 2] == 0.0) & (p01[..., 2] == 0.0) & (p10[..., 2] == 0.0) & (p11[..., 2] == 0.0))
        quads = np.stack([p00, p10, p11, p00, p11, p01], axis=2)
        parts.append(quads[quad_keep].reshape(-1, 3))

    vertices = np.ascontiguousarray(np.concatenate(parts, axis=0))
    vertices.flags.writeable = False
    return NightMesh(vertices=vertices)
