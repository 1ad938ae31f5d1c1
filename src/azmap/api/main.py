from __future__ import annotations

import os
from contextlib import contextmanager
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterator

from fastapi import FastAPI, HTTPException, Query

from azmap.api.schemas import (
    DistanceResult,
    ForwardResult,
    InverseResult,
    LayerInfo,
    NightMeshResult,
    SubsolarResult,
    ViewState,
)
from azmap.errors import AllocationFailure, AntipodalUndefined, OutOfDomain
from azmap.geometry.buffers import geometry_to_geojson
from azmap.geometry.great_circle import GC_LINE_POINTS, great_circle_path
from azmap.geometry.grid import build_grid
from azmap.geometry.map_data import SPLIT_THRESHOLD_KM, MapLayer
from azmap.geometry.rings import RingCollection, load_rings
from azmap.projection.crossing import CROSSING_ITERATIONS
from azmap.projection.engine import ProjectionState, ProjMode, forward, forward_clamped, inverse, radius_for_mode
from azmap.projection.sphere import azimuth, distance
from azmap.run_meta import utc_now_iso
from azmap.scene import format_coord
from azmap.settings import load_settings
from azmap.solar.nightmesh import ANGULAR_DIVS, EDGE_INSET_KM, RADIAL_DIVS, build_night_mesh
from azmap.solar.subsolar import parse_utc, subsolar_point

app = FastAPI(title="azmap API", version="0.1.0")


def _config_path() -> Path:
    # Read at call time so tests (and reloads) can point the app at another config.
    return Path(os.getenv("AZMAP_CONFIG", "config/default.yaml")).resolve()


def _profile() -> str | None:
    return os.getenv("AZMAP_PROFILE") or None


@lru_cache(maxsize=8)
def _settings_for(config_path: str, profile: str | None) -> dict[str, Any]:
    return load_settings(Path(config_path), profile=profile)


def _settings() -> dict[str, Any]:
    return _settings_for(str(_config_path()), _profile())


@contextmanager
def _memory_guard(what: str) -> Iterator[None]:
    # Geometry endpoints answer 503 on memory exhaustion; the process keeps serving.
    try:
        yield
    except AllocationFailure as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except MemoryError as e:
        raise HTTPException(status_code=503, detail=f"{what}: out of memory") from e


def _layer_path(settings: dict[str, Any], cfg: dict[str, Any]) -> Path:
    path = Path(cfg["path"])
    if not path.is_absolute():
        path = Path(settings["paths"]["data_dir"]) / path
    return path


@lru_cache(maxsize=32)
def _rings_for(config_path: str, profile: str | None, name: str) -> RingCollection:
    # Raw rings do not depend on the view, so they are loaded once per config.
    settings = _settings_for(config_path, profile)
    cfg = (settings.get("layers", {}) or {})[name]
    return load_rings(_layer_path(settings, cfg), max_rings=(settings.get("geometry", {}) or {}).get("max_rings"))


def _state(center_lat: float | None, center_lon: float | None, mode: str | None) -> ProjectionState:
    view = _settings().get("view", {}) or {}
    center = view.get("center", {}) or {}
    try:
        return ProjectionState(
            center_lat=float(center.get("lat", 0.0) if center_lat is None else center_lat),
            center_lon=float(center.get("lon", 0.0) if center_lon is None else center_lon),
            mode=ProjMode.parse(view.get("mode", "azeq") if mode is None else mode),
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


def _view(state: ProjectionState) -> ViewState:
    return ViewState(
        center_lat=state.center_lat,
        center_lon=state.center_lon,
        mode=state.mode.value,
        radius_km=radius_for_mode(state),
    )


def _when(at: str | None) -> datetime:
    try:
        return parse_utc(at)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@app.get("/health")
def health() -> dict[str, Any]:
    settings = _settings()
    layers = settings.get("layers", {}) or {}
    return {
        "ok": True,
        "generated_at": utc_now_iso(),
        "config_path": str(_config_path()),
        "profile": (settings.get("_meta", {}) or {}).get("profile"),
        "view": settings.get("view", {}),
        "layers": {name: _layer_path(settings, cfg or {}).exists() for name, cfg in layers.items()},
    }


@app.get("/projection/forward", response_model=ForwardResult)
def projection_forward(
    lat: float = Query(ge=-90.0, le=90.0),
    lon: float = Query(ge=-180.0, le=180.0),
    clamp: bool = False,
    center_lat: float | None = None,
    center_lon: float | None = None,
    mode: str | None = None,
) -> ForwardResult:
    state = _state(center_lat, center_lon, mode)
    try:
        x, y = forward_clamped(state, lat, lon) if clamp else forward(state, lat, lon)
    except AntipodalUndefined as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return ForwardResult(view=_view(state), lat=lat, lon=lon, x_km=x, y_km=y, clamped=clamp)


@app.get("/projection/inverse", response_model=InverseResult)
def projection_inverse(
    x_km: float,
    y_km: float,
    center_lat: float | None = None,
    center_lon: float | None = None,
    mode: str | None = None,
) -> InverseResult:
    state = _state(center_lat, center_lon, mode)
    try:
        lat, lon = inverse(state, x_km, y_km)
    except OutOfDomain as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return InverseResult(view=_view(state), x_km=x_km, y_km=y_km, lat=lat, lon=lon, label=format_coord(lat, lon))


@app.get("/distance", response_model=DistanceResult)
def distance_between(
    lat1: float = Query(ge=-90.0, le=90.0),
    lon1: float = Query(ge=-180.0, le=180.0),
    lat2: float = Query(ge=-90.0, le=90.0),
    lon2: float = Query(ge=-180.0, le=180.0),
) -> DistanceResult:
    return DistanceResult(
        lat1=lat1,
        lon1=lon1,
        lat2=lat2,
        lon2=lon2,
        distance_km=distance(lat1, lon1, lat2, lon2),
        azimuth_to_deg=azimuth(lat1, lon1, lat2, lon2),
        azimuth_from_deg=azimuth(lat2, lon2, lat1, lon1),
    )


@app.get("/subsolar", response_model=SubsolarResult)
def subsolar(at: str | None = None) -> SubsolarResult:
    when = _when(at)
    sun = subsolar_point(when)
    return SubsolarResult(at=when.isoformat(), lat=sun.lat, lon=sun.lon, label=format_coord(sun.lat, sun.lon))


@app.get("/layers", response_model=list[LayerInfo])
def list_layers() -> list[LayerInfo]:
    settings = _settings()
    out: list[LayerInfo] = []
    for name, cfg in (settings.get("layers", {}) or {}).items():
        cfg = cfg or {}
        path = _layer_path(settings, cfg)
        info = LayerInfo(name=name, path=str(path), strategy=cfg.get("strategy", "split"), available=path.exists())
        if info.available:
            rings = _rings_for(str(_config_path()), _profile(), name)
            info.rings = len(rings)
            info.vertices = rings.vertex_count
            info.warnings = list(rings.warnings)
        out.append(info)
    return out


@app.get("/layers/{name}")
def layer_geojson(
    name: str,
    center_lat: float | None = None,
    center_lon: float | None = None,
    mode: str | None = None,
) -> dict[str, Any]:
    settings = _settings()
    layers = settings.get("layers", {}) or {}
    if name not in layers:
        raise HTTPException(status_code=404, detail=f"Unknown layer: {name}")
    cfg = layers[name] or {}
    if not _layer_path(settings, cfg).exists():
        raise HTTPException(status_code=404, detail=f"Missing layer data: {_layer_path(settings, cfg)}")

    state = _state(center_lat, center_lon, mode)
    geom_cfg = settings.get("geometry", {}) or {}
    layer = MapLayer(
        name,
        _rings_for(str(_config_path()), _profile(), name),
        strategy=cfg.get("strategy", "split"),
        split_threshold_km=float(geom_cfg.get("split_threshold_km", SPLIT_THRESHOLD_KM)),
        max_segments=geom_cfg.get("max_segments"),
        crossing_iterations=int(geom_cfg.get("crossing_iterations", CROSSING_ITERATIONS)),
    )
    with _memory_guard(f"layer {name}"):
        geometry = layer.reproject(state)
    kind = "polygon" if layer.strategy == "clip" else "line"
    return geometry_to_geojson(geometry, kind=kind, properties={"layer": name, "strategy": layer.strategy, "mode": state.mode.value})


@app.get("/grid")
def grid_geojson(
    center_lat: float | None = None,
    center_lon: float | None = None,
    mode: str | None = None,
    extend_to_horizon: bool | None = None,
) -> dict[str, Any]:
    settings = _settings()
    state = _state(center_lat, center_lon, mode)
    if extend_to_horizon is None:
        extend_to_horizon = bool((settings.get("grid", {}) or {}).get("extend_to_horizon", False))
    with _memory_guard("grid"):
        geometry = build_grid(state, extend_to_horizon=extend_to_horizon)
    return geometry_to_geojson(geometry, properties={"layer": "grid", "mode": state.mode.value})


@app.get("/great-circle")
def great_circle_geojson(
    lat1: float = Query(ge=-90.0, le=90.0),
    lon1: float = Query(ge=-180.0, le=180.0),
    lat2: float = Query(ge=-90.0, le=90.0),
    lon2: float = Query(ge=-180.0, le=180.0),
    points: int = Query(default=GC_LINE_POINTS, ge=2, le=4096),
    center_lat: float | None = None,
    center_lon: float | None = None,
    mode: str | None = None,
) -> dict[str, Any]:
    state = _state(center_lat, center_lon, mode)
    try:
        with _memory_guard("great circle"):
            geometry = great_circle_path(state, lat1, lon1, lat2, lon2, points=points)
    except AntipodalUndefined as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return geometry_to_geojson(
        geometry,
        properties={"layer": "great_circle", "mode": state.mode.value, "distance_km": distance(lat1, lon1, lat2, lon2)},
    )


@app.get("/night", response_model=NightMeshResult)
def night_mesh(
    at: str | None = None,
    angular_divs: int | None = Query(default=None, ge=3, le=720),
    radial_divs: int | None = Query(default=None, ge=1, le=240),
    center_lat: float | None = None,
    center_lon: float | None = None,
    mode: str | None = None,
) -> NightMeshResult:
    settings = _settings()
    night = settings.get("night", {}) or {}
    state = _state(center_lat, center_lon, mode)
    when = _when(at)
    sun = subsolar_point(when)
    with _memory_guard("night mesh"):
        mesh = build_night_mesh(
            state,
            sun,
            angular_divs=int(angular_divs or night.get("angular_divs", ANGULAR_DIVS)),
            radial_divs=int(radial_divs or night.get("radial_divs", RADIAL_DIVS)),
            inset_km=float(night.get("inset_km", EDGE_INSET_KM)),
        )
    return NightMeshResult(
        view=_view(state),
        at=when.isoformat(),
        subsolar=SubsolarResult(at=when.isoformat(), lat=sun.lat, lon=sun.lon, label=format_coord(sun.lat, sun.lon)),
        triangle_count=mesh.triangle_count,
        vertices=mesh.vertices.tolist(),
        meta={"units": "km", "columns": ["x_km", "y_km", "alpha"]},
    )
