"""
Map scene: everything drawn for one view, kept in step with the center.

`MapScene` is the controller an interactive front end (or the CLI `build`
command) drives. Changing the center or the mode reprojects every layer, the
grid, the markers and the target path in one pass. The night mesh is cheaper
to leave alone, so it is only marked stale and rebuilt on the next
`update_night()` call, which also refreshes it on a fixed clock cadence.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from azmap.errors import AllocationFailure, AntipodalUndefined
from azmap.geometry.buffers import ProjectedGeometry
from azmap.geometry.great_circle import great_circle_path
from azmap.geometry.grid import build_grid
from azmap.geometry.map_data import SPLIT_THRESHOLD_KM, MapLayer
from azmap.geometry.rings import load_rings
from azmap.projection.crossing import CROSSING_ITERATIONS
from azmap.projection.engine import ProjectionEngine, ProjectionState, ProjMode, forward
from azmap.projection.sphere import EARTH_RADIUS_KM, NEAR_ZERO, normalize_lon
from azmap.solar.nightmesh import ANGULAR_DIVS, EDGE_INSET_KM, RADIAL_DIVS, NightMesh, build_night_mesh
from azmap.solar.subsolar import SubsolarPoint, as_utc, subsolar_point

logger = logging.getLogger(__name__)

NIGHT_UPDATE_INTERVAL_S = 60.0
NORTH_POLE = (90.0, 0.0)

# Zoom is the visible span in km; the largest is the full Earth circumference.
MIN_ZOOM_KM = 10.0
MAX_ZOOM_KM = 40030.0
# Arrow-key panning moves this fraction of the visible span per step.
PAN_STEP_FRACTION = 0.05

KM_PER_DEG = EARTH_RADIUS_KM * math.pi / 180.0


@dataclass(frozen=True)
class Location:
    lat: float
    lon: float
    name: str | None = None

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lon <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lon}")

    @property
    def label(self) -> str:
        return build_label(self.name, self.lat, self.lon)


@dataclass(frozen=True)
class TargetInfo:
    distance_km: float
    azimuth_to_deg: float
    azimuth_from_deg: float


def format_coord(lat: float, lon: float) -> str:
    """'40.42N, 3.70W' style label with two decimals."""
    ns = "N" if lat >= 0 else "S"
    ew = "E" if lon >= 0 else "W"
    return f"{abs(lat):.2f}{ns}, {abs(lon):.2f}{ew}"


def build_label(name: str | None, lat: float, lon: float) -> str:
    coord = format_coord(lat, lon)
    if name:
        return f"{name} ({coord})"
    return coord


def pan_center(lat: float, lon: float, dx_km: float, dy_km: float) -> tuple[float, float]:
    """
    Shift (lat, lon) by a planar delta in km: +x is east, +y is north.

    Longitude degrees shrink with cos(lat); at the poles an east-west move
    has no defined longitude change and is ignored.
    """
    dlat = dy_km / KM_PER_DEG
    cos_lat = math.cos(math.radians(lat))
    dlon = dx_km / (KM_PER_DEG * cos_lat) if abs(cos_lat) > NEAR_ZERO else 0.0
    new_lat = max(-90.0, min(90.0, lat + dlat))
    return new_lat, float(normalize_lon(lon + dlon))


def clamp_zoom(zoom_km: float) -> float:
    return max(MIN_ZOOM_KM, min(MAX_ZOOM_KM, float(zoom_km)))


def pan_step_km(zoom_km: float) -> float:
    return clamp_zoom(zoom_km) * PAN_STEP_FRACTION


class MapScene:
    def __init__(
        self,
        engine: ProjectionEngine,
        *,
        home: Location,
        target: Location | None = None,
        layers: list[MapLayer] | None = None,
        extend_grid_to_horizon: bool = False,
        crossing_iterations: int = CROSSING_ITERATIONS,
        night_interval_s: float = NIGHT_UPDATE_INTERVAL_S,
        night_angular_divs: int = ANGULAR_DIVS,
        night_radial_divs: int = RADIAL_DIVS,
        night_inset_km: float = EDGE_INSET_KM,
        clock: Any = time.monotonic,
    ) -> None:
        self.engine = engine
        self.home = home
        self.target = target
        self.layers: dict[str, MapLayer] = {layer.name: layer for layer in (layers or [])}
        self.extend_grid_to_horizon = extend_grid_to_horizon
        self.crossing_iterations = crossing_iterations
        self.night_interval_s = float(night_interval_s)
        self.night_angular_divs = night_angular_divs
        self.night_radial_divs = night_radial_divs
        self.night_inset_km = night_inset_km
        self._clock = clock

        self.generation = 0
        self.grid = ProjectedGeometry.empty()
        self.target_path = ProjectedGeometry.empty()
        self.markers: dict[str, tuple[float, float] | None] = {}
        self.layer_errors: dict[str, str] = {}
        self.errors: list[str] = []

        self.sun: SubsolarPoint | None = None
        self.night = NightMesh.empty()
        self._night_stale = True
        self._night_built_at: float | None = None

    @property
    def state(self) -> ProjectionState:
        return self.engine.snapshot()

    @property
    def night_stale(self) -> bool:
        return self._night_stale

    # -- view changes -------------------------------------------------------

    def set_center(self, lat: float, lon: float) -> None:
        self.engine.set_center(lat, lon)
        self.rebuild()

    def set_mode(self, mode: ProjMode | str) -> None:
        self.engine.set_mode(mode)
        self.rebuild()

    def toggle_mode(self) -> ProjMode:
        mode = self.engine.toggle_mode()
        self.rebuild()
        return mode

    def pan(self, dx_km: float, dy_km: float) -> tuple[float, float]:
        lat, lon = self.engine.get_center()
        new_lat, new_lon = pan_center(lat, lon, dx_km, dy_km)
        self.set_center(new_lat, new_lon)
        return new_lat, new_lon

    def reset(self) -> None:
        self.set_center(self.home.lat, self.home.lon)

    def set_target(self, lat: float, lon: float, name: str | None = None) -> None:
        self.target = Location(lat=lat, lon=lon, name=name)
        self.rebuild()

    # -- derived data -------------------------------------------------------

    def rebuild(self) -> None:
        """Reproject everything that depends on the center or the mode."""
        state = self.engine.snapshot()
        self.generation += 1
        self.layer_errors = {}
        self.errors = []

        for name, layer in self.layers.items():
            try:
                layer.reproject(state)
            except AllocationFailure as exc:
                logger.warning("layer %s skipped: %s", name, exc)
                self.layer_errors[name] = str(exc)

        self.grid = build_grid(
            state,
            extend_to_horizon=self.extend_grid_to_horizon,
            crossing_iterations=self.crossing_iterations,
            generation=self.generation,
        )

        self.markers = {
            "center": self._marker(self.home.lat, self.home.lon),
            "north_pole": self._marker(*NORTH_POLE),
        }
        if self.target is not None:
            self.markers["target"] = self._marker(self.target.lat, self.target.lon)

        self.target_path = ProjectedGeometry.empty(generation=self.generation)
        if self.target is not None:
            try:
                self.target_path = great_circle_path(
                    state,
                    self.home.lat,
                    self.home.lon,
                    self.target.lat,
                    self.target.lon,
                    generation=self.generation,
                )
            except AntipodalUndefined as exc:
                logger.warning("target path not drawn: %s", exc)
                self.errors.append(str(exc))

        self._night_stale = True
        logger.debug(
            "scene rebuilt: center=%s mode=%s gen=%d",
            format_coord(state.center_lat, state.center_lon),
            state.mode.value,
            self.generation,
        )

    def _marker(self, lat: float, lon: float) -> tuple[float, float] | None:
        # Hidden markers (back hemisphere) are not drawn.
        try:
            return forward(self.engine.snapshot(), lat, lon)
        except AntipodalUndefined:
            return None

    def update_night(self, now: datetime | float | None = None, *, force: bool = False) -> bool:
        """Rebuild the night mesh if stale or due; returns True when it was rebuilt."""
        tick = self._clock()
        due = self._night_built_at is None or tick - self._night_built_at >= self.night_interval_s
        if not (force or self._night_stale or due):
            return False

        self.sun = subsolar_point(as_utc(now))
        try:
            self.night = build_night_mesh(
                self.engine.snapshot(),
                self.sun,
                angular_divs=self.night_angular_divs,
                radial_divs=self.night_radial_divs,
                inset_km=self.night_inset_km,
            )
        except MemoryError:
            logger.warning("night mesh skipped: out of memory")
            self.night = NightMesh.empty()
        self._night_stale = False
        self._night_built_at = tick
        return True

    def target_info(self) -> TargetInfo | None:
        if self.target is None:
            return None
        h, t = self.home, self.target
        return TargetInfo(
            distance_km=ProjectionEngine.distance(h.lat, h.lon, t.lat, t.lon),
            azimuth_to_deg=ProjectionEngine.azimuth(h.lat, h.lon, t.lat, t.lon),
            azimuth_from_deg=ProjectionEngine.azimuth(t.lat, t.lon, h.lat, h.lon),
        )

    def summary(self) -> dict[str, Any]:
        state = self.engine.snapshot()
        info = self.target_info()
        return {
            "center": {"lat": state.center_lat, "lon": state.center_lon, "label": format_coord(state.center_lat, state.center_lon)},
            "home": {"lat": self.home.lat, "lon": self.home.lon, "label": self.home.label},
            "target": None
            if self.target is None
            else {"lat": self.target.lat, "lon": self.target.lon, "label": self.target.label},
            "mode": state.mode.value,
            "radius_km": self.engine.radius_for_mode(),
            "generation": self.generation,
            "target_info": None if info is None else info.__dict__,
            "markers": {k: (None if v is None else list(v)) for k, v in self.markers.items()},
            "layers": {
                name: {
                    "strategy": layer.strategy,
                    "rings": len(layer.rings),
                    "vertices": layer.geometry.vertex_count,
                    "segments": layer.geometry.segment_count,
                    "truncated": layer.geometry.truncated,
                }
                for name, layer in self.layers.items()
            },
            "layer_errors": dict(self.layer_errors),
            "errors": list(self.errors),
            "subsolar": None if self.sun is None else {"lat": self.sun.lat, "lon": self.sun.lon},
        }


def _location(raw: dict[str, Any] | None) -> Location | None:
    if not raw:
        return None
    return Location(lat=float(raw["lat"]), lon=float(raw["lon"]), name=raw.get("name"))


def load_layers(settings: dict[str, Any]) -> list[MapLayer]:
    data_dir = Path(settings["paths"]["data_dir"])
    geom = settings.get("geometry", {}) or {}
    layers: list[MapLayer] = []
    for name, cfg in (settings.get("layers", {}) or {}).items():
        cfg = cfg or {}
        path = Path(cfg["path"])
        if not path.is_absolute():
            path = data_dir / path
        # Missing data is expected on a fresh checkout; the layer is just not drawn.
        if not path.exists():
            logger.warning("layer %s: file not found, skipping: %s", name, path)
            continue
        rings = load_rings(path, max_rings=geom.get("max_rings"))
        layers.append(
            MapLayer(
                name,
                rings,
                strategy=cfg.get("strategy", "split"),
                split_threshold_km=float(geom.get("split_threshold_km", SPLIT_THRESHOLD_KM)),
                max_segments=geom.get("max_segments"),
                crossing_iterations=int(geom.get("crossing_iterations", CROSSING_ITERATIONS)),
            )
        )
        logger.info("layer %s: %d rings from %s", name, len(rings), path.name)
    return layers


def build_scene(settings: dict[str, Any], *, rebuild: bool = True) -> MapScene:
    view = settings.get("view", {}) or {}
    home = _location(view.get("center")) or Location(0.0, 0.0)
    engine = ProjectionEngine(home.lat, home.lon, ProjMode.parse(view.get("mode", "azeq")))
    night = settings.get("night", {}) or {}
    scene = MapScene(
        engine,
        home=home,
        target=_location(settings.get("target")),
        layers=load_layers(settings),
        extend_grid_to_horizon=bool((settings.get("grid", {}) or {}).get("extend_to_horizon", False)),
        crossing_iterations=int((settings.get("geometry", {}) or {}).get("crossing_iterations", CROSSING_ITERATIONS)),
        night_interval_s=float(night.get("update_interval_s", NIGHT_UPDATE_INTERVAL_S)),
        night_angular_divs=int(night.get("angular_divs", ANGULAR_DIVS)),
        night_radial_divs=int(night.get("radial_divs", RADIAL_DIVS)),
        night_inset_km=float(night.get("inset_km", EDGE_INSET_KM)),
    )
    if rebuild:
        scene.rebuild()
    return scene
