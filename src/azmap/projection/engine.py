"""
Forward/inverse projection around an arbitrary center point.

Two azimuthal models are supported:
- azimuthal equidistant: true distance and bearing from the center, the whole
  globe fits in a disc of radius pi * R,
- orthographic: the globe as seen from infinitely far away, only the front
  hemisphere is visible (disc of radius R).

All projection math takes an explicit, immutable `ProjectionState`. The
`ProjectionEngine` class is a thin mutable holder around the current state for
interactive callers; it never lets a half-updated center leak out because
changing the center builds a brand new state.
"""

from __future__ import annotations

# `math` provides pi and scalar trig for state construction.
import math
# Dataclasses give us a small frozen value type without boilerplate.
from dataclasses import dataclass, field, replace
# `Enum` keeps the projection mode a closed set of values.
from enum import Enum
from typing import Any

# NumPy lets one implementation serve single points and whole coastlines.
import numpy as np

from azmap.errors import AntipodalUndefined, OutOfDomain
from azmap.projection import sphere
from azmap.projection.sphere import EARTH_MAX_PROJ_RADIUS_KM, EARTH_RADIUS_KM, NEAR_ZERO, normalize_lon

# Back-hemisphere points clamped to the horizon are placed where cos(c) equals
# this value, i.e. just inside the orthographic disc.
CLAMP_COS_EPS = 1e-4

# Inverse longitudes this close past +-180 are rounding noise, not a wrap.
LON_WRAP_EPS_DEG = 1e-9


class ProjMode(str, Enum):
    AZIMUTHAL_EQUIDISTANT = "azeq"
    ORTHOGRAPHIC = "ortho"

    @classmethod
    def parse(cls, value: Any) -> "ProjMode":
        # Accept enum members, short codes ("azeq") and long names ("orthographic").
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().replace("-", "_")
        aliases = {
            "azeq": cls.AZIMUTHAL_EQUIDISTANT,
            "azimuthal_equidistant": cls.AZIMUTHAL_EQUIDISTANT,
            "ortho": cls.ORTHOGRAPHIC,
            "orthographic": cls.ORTHOGRAPHIC,
        }
        if text not in aliases:
            raise ValueError(f"Unknown projection mode: {value!r}")
        return aliases[text]


@dataclass(frozen=True)
class ProjectionState:
    center_lat: float = 0.0
    center_lon: float = 0.0
    mode: ProjMode = ProjMode.AZIMUTHAL_EQUIDISTANT
    # Cached trig of the center; always derived in `__post_init__`, never set directly.
    center_lat_rad: float = field(init=False, repr=False, compare=False)
    center_lon_rad: float = field(init=False, repr=False, compare=False)
    sin_center_lat: float = field(init=False, repr=False, compare=False)
    cos_center_lat: float = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        lat = float(self.center_lat)
        lon = float(self.center_lon)
        # Written as negated ranges so NaN is rejected too.
        if not -90.0 <= lat <= 90.0:
            raise ValueError(f"center_lat must be within [-90, 90], got {self.center_lat!r}")
        if not -180.0 <= lon <= 180.0:
            raise ValueError(f"center_lon must be within [-180, 180], got {self.center_lon!r}")
        lat_rad = math.radians(lat)
        object.__setattr__(self, "center_lat", lat)
        object.__setattr__(self, "center_lon", lon)
        object.__setattr__(self, "mode", ProjMode.parse(self.mode))
        object.__setattr__(self, "center_lat_rad", lat_rad)
        object.__setattr__(self, "center_lon_rad", math.radians(lon))
        object.__setattr__(self, "sin_center_lat", math.sin(lat_rad))
        object.__setattr__(self, "cos_center_lat", math.cos(lat_rad))

    def with_center(self, lat: float, lon: float) -> "ProjectionState":
        return replace(self, center_lat=lat, center_lon=lon)

    def with_mode(self, mode: ProjMode | str) -> "ProjectionState":
        return replace(self, mode=ProjMode.parse(mode))

    @property
    def is_orthographic(self) -> bool:
        return self.mode is ProjMode.ORTHOGRAPHIC


def radius_for_mode(state: ProjectionState) -> float:
    # Radius of the projected disc: the horizon (ortho) or the antipode (azeq).
    return EARTH_RADIUS_KM if state.is_orthographic else EARTH_MAX_PROJ_RADIUS_KM


def _direction_terms(state: ProjectionState, lat_deg: Any, lon_deg: Any) -> tuple[Any, Any, Any]:
    # Shared terms of both azimuthal projections:
    # cos(c) is the cosine of the angular distance from the center, and (u, v) is
    # the projected direction with magnitude sin(c).
    lat = np.radians(lat_deg)
    dlon = np.radians(lon_deg) - state.center_lon_rad
    sin_lat = np.sin(lat)
    cos_lat = np.cos(lat)
    cos_dlon = np.cos(dlon)

    cos_c = state.sin_center_lat * sin_lat + state.cos_center_lat * cos_lat * cos_dlon
    # Clamp for numerical safety before `arccos`.
    cos_c = np.clip(cos_c, -1.0, 1.0)
    u = cos_lat * np.sin(dlon)
    v = state.cos_center_lat * sin_lat - state.sin_center_lat * cos_lat * cos_dlon
    return cos_c, u, v


def _unit_direction(u: Any, v: Any) -> tuple[Any, Any]:
    # Normalize (u, v); a zero vector (exact antipode) has no direction, use north.
    norm = np.hypot(u, v)
    has_dir = norm > 1e-15
    with np.errstate(divide="ignore", invalid="ignore"):
        du = np.where(has_dir, u / norm, 0.0)
        dv = np.where(has_dir, v / norm, 1.0)
    return du, dv


def forward_array(state: ProjectionState, lat_deg: Any, lon_deg: Any) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Vectorized forward projection.

    Returns `(x_km, y_km, valid)`. In orthographic mode back-hemisphere points are
    not valid and their coordinates are NaN. Azimuthal equidistant is valid
    everywhere: points at (or numerically at) the antipode are placed on the rim
    of the disc.
    """
    lat_deg = np.asarray(lat_deg, dtype=float)
    lon_deg = np.asarray(lon_deg, dtype=float)
    cos_c, u, v = _direction_terms(state, lat_deg, lon_deg)

    if state.is_orthographic:
        valid = cos_c > 0.0
        x = np.where(valid, EARTH_RADIUS_KM * u, np.nan)
        y = np.where(valid, EARTH_RADIUS_KM * v, np.nan)
        return x, y, valid

    c = np.arccos(cos_c)
    sin_c = np.sin(c)
    # k = c / sin(c) is singular at the antipode; those points go to the rim instead.
    regular = sin_c > NEAR_ZERO
    with np.errstate(divide="ignore", invalid="ignore"):
        k = np.where(regular, c / sin_c, 0.0) * EARTH_RADIUS_KM
    x = k * u
    y = k * v

    rim = ~regular & (c > math.pi / 2.0)
    if np.any(rim):
        du, dv = _unit_direction(u, v)
        x = np.where(rim, du * EARTH_MAX_PROJ_RADIUS_KM, x)
        y = np.where(rim, dv * EARTH_MAX_PROJ_RADIUS_KM, y)

    # Point coincides with the center.
    at_center = c < NEAR_ZERO
    x = np.where(at_center, 0.0, x)
    y = np.where(at_center, 0.0, y)
    return x, y, np.ones(np.shape(x), dtype=bool)


def forward_clamped_array(state: ProjectionState, lat_deg: Any, lon_deg: Any) -> tuple[np.ndarray, np.ndarray]:
    # Like `forward_array`, but back-hemisphere points are pulled onto the near
    # side of the horizon along their bearing from the center.
    x, y, valid = forward_array(state, lat_deg, lon_deg)
    if not state.is_orthographic:
        return x, y

    _, u, v = _direction_terms(state, np.asarray(lat_deg, dtype=float), np.asarray(lon_deg, dtype=float))
    du, dv = _unit_direction(u, v)
    edge = EARTH_RADIUS_KM * math.sqrt(1.0 - CLAMP_COS_EPS * CLAMP_COS_EPS)
    return np.where(valid, x, du * edge), np.where(valid, y, dv * edge)


def _fold_lon(lon_deg: np.ndarray) -> np.ndarray:
    # center_lon + atan2 spans (-360, 360]. Only wrap what actually left
    # [-180, 180], so a point on the antimeridian keeps the +180 it came in as.
    with np.errstate(invalid="ignore"):
        outside = np.abs(lon_deg) > 180.0 + LON_WRAP_EPS_DEG
    return np.where(outside, normalize_lon(lon_deg), np.clip(lon_deg, -180.0, 180.0))


def inverse_array(state: ProjectionState, x_km: Any, y_km: Any) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Vectorized inverse projection.

    Returns `(lat_deg, lon_deg, valid)`. Points outside the mode's disc are not
    valid and come back as NaN.
    """
    x = np.asarray(x_km, dtype=float)
    y = np.asarray(y_km, dtype=float)
    rho = np.hypot(x, y)

    if state.is_orthographic:
        valid = rho <= EARTH_RADIUS_KM
        c = np.arcsin(np.clip(rho / EARTH_RADIUS_KM, 0.0, 1.0))
    else:
        c = rho / EARTH_RADIUS_KM
        valid = c <= math.pi
    sin_c = np.sin(c)
    cos_c = np.cos(c)

    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(rho > 0.0, y * sin_c * state.cos_center_lat / rho, 0.0)
        lat = np.arcsin(np.clip(cos_c * state.sin_center_lat + ratio, -1.0, 1.0))

        if abs(state.cos_center_lat) < NEAR_ZERO:
            # Center at a pole: the general formula degenerates to 0/0.
            lon = state.center_lon_rad + np.arctan2(x, -y if state.center_lat > 0 else y)
        else:
            lon = state.center_lon_rad + np.arctan2(
                x * sin_c,
                rho * state.cos_center_lat * cos_c - y * state.sin_center_lat * sin_c,
            )

    lat_deg = np.degrees(lat)
    lon_deg = _fold_lon(np.degrees(lon))

    at_center = rho < NEAR_ZERO
    lat_deg = np.where(at_center, state.center_lat, lat_deg)
    lon_deg = np.where(at_center, state.center_lon, lon_deg)

    lat_deg = np.where(valid, lat_deg, np.nan)
    lon_deg = np.where(valid, lon_deg, np.nan)
    return lat_deg, lon_deg, valid


def forward(state: ProjectionState, lat_deg: float, lon_deg: float) -> tuple[float, float]:
    x, y, valid = forward_array(state, lat_deg, lon_deg)
    if not bool(valid):
        raise AntipodalUndefined(
            f"({lat_deg:.4f}, {lon_deg:.4f}) is on the far hemisphere of "
            f"({state.center_lat:.4f}, {state.center_lon:.4f})"
        )
    return float(x), float(y)


def forward_clamped(state: ProjectionState, lat_deg: float, lon_deg: float) -> tuple[float, float]:
    x, y = forward_clamped_array(state, lat_deg, lon_deg)
    return float(x), float(y)


def inverse(state: ProjectionState, x_km: float, y_km: float) -> tuple[float, float]:
    lat, lon, valid = inverse_array(state, x_km, y_km)
    if not bool(valid):
        raise OutOfDomain(
            f"({x_km:.1f}, {y_km:.1f}) km is outside the {state.mode.value} disc "
            f"of radius {radius_for_mode(state):.1f} km"
        )
    return float(lat), float(lon)


class ProjectionEngine:
    """
    Holds the current projection state for interactive callers.

    Every projection method reads one snapshot of the state, so a method call
    never sees a center and a mode from two different updates. Code that runs
    outside the UI thread should take `snapshot()` once and use the module-level
    functions with it.
    """

    def __init__(
        self,
        center_lat: float = 0.0,
        center_lon: float = 0.0,
        mode: ProjMode | str = ProjMode.AZIMUTHAL_EQUIDISTANT,
    ) -> None:
        self._state = ProjectionState(center_lat=center_lat, center_lon=center_lon, mode=ProjMode.parse(mode))

    def snapshot(self) -> ProjectionState:
        return self._state

    def set_mode(self, mode: ProjMode | str) -> None:
        self._state = self._state.with_mode(mode)

    def get_mode(self) -> ProjMode:
        return self._state.mode

    def toggle_mode(self) -> ProjMode:
        nxt = (
            ProjMode.ORTHOGRAPHIC
            if self._state.mode is ProjMode.AZIMUTHAL_EQUIDISTANT
            else ProjMode.AZIMUTHAL_EQUIDISTANT
        )
        self.set_mode(nxt)
        return nxt

    def set_center(self, lat: float, lon: float) -> None:
        # A new state recomputes the cached trig together with the angles.
        self._state = self._state.with_center(lat, lon)

    def get_center(self) -> tuple[float, float]:
        return self._state.center_lat, self._state.center_lon

    def radius_for_mode(self) -> float:
        return radius_for_mode(self._state)

    def forward(self, lat: float, lon: float) -> tuple[float, float]:
        return forward(self._state, lat, lon)

    def forward_clamped(self, lat: float, lon: float) -> tuple[float, float]:
        return forward_clamped(self._state, lat, lon)

    def inverse(self, x_km: float, y_km: float) -> tuple[float, float]:
        return inverse(self._state, x_km, y_km)

    @staticmethod
    def distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        return sphere.distance(lat1, lon1, lat2, lon2)

    @staticmethod
    def azimuth(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        return sphere.azimuth(lat1, lon1, lat2, lon2)
