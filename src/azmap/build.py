from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from azmap.geometry.buffers import geometry_to_geojson
from azmap.run_meta import build_run_meta, file_meta, new_run_id, utc_now_iso, write_json
from azmap.scene import MapScene, build_scene


def _write_geojson(path: Path, data: dict[str, Any]) -> None:
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")


def night_mesh_payload(scene: MapScene, when: datetime) -> dict[str, Any]:
    sun = scene.sun
    return {
        "at": when.isoformat(),
        "subsolar": None if sun is None else {"lat": sun.lat, "lon": sun.lon},
        "mode": scene.engine.get_mode().value,
        "columns": ["x_km", "y_km", "alpha"],
        "triangle_count": scene.night.triangle_count,
        "vertices": scene.night.vertices.tolist(),
    }


def build_outputs(settings: dict[str, Any], *, out_dir: Path, when: datetime) -> list[Path]:
    """Build the scene for the configured view and write every layer to `out_dir`."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    run_id = new_run_id()
    generated_at = utc_now_iso()

    scene = build_scene(settings)
    scene.update_night(when, force=True)
    mode = scene.engine.get_mode().value

    written: list[Path] = []
    for name, layer in scene.layers.items():
        if name in scene.layer_errors:
            continue
        path = out_dir / f"{name}.geojson"
        kind = "polygon" if layer.strategy == "clip" else "line"
        _write_geojson(path, geometry_to_geojson(layer.geometry, kind=kind, properties={"layer": name, "mode": mode}))
        written.append(path)

    grid_path = out_dir / "grid.geojson"
    _write_geojson(grid_path, geometry_to_geojson(scene.grid, properties={"layer": "grid", "mode": mode}))
    written.append(grid_path)

    if scene.target is not None:
        path_path = out_dir / "target_path.geojson"
        _write_geojson(path_path, geometry_to_geojson(scene.target_path, properties={"layer": "target_path", "mode": mode}))
        written.append(path_path)

    night_path = out_dir / "night_mesh.json"
    write_json(night_path, night_mesh_payload(scene, when))
    written.append(night_path)

    scene_path = out_dir / "scene.json"
    write_json(scene_path, scene.summary())
    written.append(scene_path)

    # Write run metadata so outputs can be traced back to the config that produced them.
    meta = settings.get("_meta", {}) or {}
    data_dir = Path(settings["paths"]["data_dir"])
    input_sources = [
        file_meta(Path(str(meta[key]))) for key in ("config_path", "profile_path") if meta.get(key)
    ]
    for cfg in (settings.get("layers", {}) or {}).values():
        p = Path((cfg or {}).get("path", ""))
        input_sources.append(file_meta(p if p.is_absolute() else data_dir / p))

    run_meta_path = out_dir / "run_meta.json"
    run_meta = build_run_meta(
        run_id=run_id,
        generated_at=generated_at,
        settings=settings,
        view={"mode": mode, "center": list(scene.engine.get_center()), "at": when.isoformat()},
        input_sources=input_sources,
        outputs=[file_meta(p) for p in written],
    )
    write_json(run_meta_path, run_meta)
    written.append(run_meta_path)
    return written
