import json
from pathlib import Path

import pytest

from azmap.errors import AllocationFailure
from azmap.geometry.map_data import MapLayer
from azmap.geometry.rings import rings_from_lonlat
from azmap.projection.engine import ProjectionEngine, ProjMode
from azmap.scene import (
    KM_PER_DEG,
    Location,
    MapScene,
    build_label,
    build_scene,
    clamp_zoom,
    format_coord,
    pan_center,
    pan_step_km,
)

MADRID = Location(40.4168, -3.7038, "Madrid")
NEW_YORK = Location(40.7128, -74.0060, "New York")
COAST = [(-10.0, 36.0), (-9.0, 39.0), (-8.8, 42.0), (-2.0, 43.5)]


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _FailingLayer(MapLayer):
    def reproject(self, state):
        self.clear()
        raise AllocationFailure(f"layer {self.name}: out of memory during reprojection")


def _scene(**kwargs) -> MapScene:
    engine = ProjectionEngine(MADRID.lat, MADRID.lon)
    layers = kwargs.pop("layers", [MapLayer("coast", rings_from_lonlat([COAST]))])
    return MapScene(engine, home=MADRID, target=kwargs.pop("target", NEW_YORK), layers=layers, **kwargs)


def test_format_coord_and_labels() -> None:
    assert format_coord(12.344, -1.234) == "12.34N, 1.23W"
    assert format_coord(-33.8688, 151.2093) == "33.87S, 151.21E"
    assert build_label("Madrid", 40.4168, -3.7038) == "Madrid (40.42N, 3.70W)"
    assert build_label(None, 0.0, 0.0) == "0.00N, 0.00E"
    assert MADRID.label == "Madrid (40.42N, 3.70W)"


def test_pan_center_moves_by_kilometres() -> None:
    assert pan_center(0.0, 0.0, 0.0, KM_PER_DEG) == pytest.approx((1.0, 0.0))
    lat, lon = pan_center(60.0, 10.0, KM_PER_DEG * 0.5, 0.0)
    assert lat == pytest.approx(60.0)
    assert lon == pytest.approx(11.0)


def test_pan_center_clamps_and_wraps() -> None:
    assert pan_center(89.0, 0.0, 0.0, 5.0 * KM_PER_DEG)[0] == 90.0
    assert pan_center(-89.0, 0.0, 0.0, -5.0 * KM_PER_DEG)[0] == -90.0
    assert pan_center(0.0, 179.0, 2.0 * KM_PER_DEG, 0.0)[1] == pytest.approx(-179.0)
    # East-west moves at a pole leave longitude alone.
    assert pan_center(90.0, 10.0, 100.0, 0.0) == (90.0, 10.0)


def test_zoom_limits() -> None:
    assert clamp_zoom(1.0) == 10.0
    assert clamp_zoom(1e6) == 40030.0
    assert pan_step_km(1000.0) == pytest.approx(50.0)


def test_rebuild_projects_everything() -> None:
    scene = _scene()
    scene.rebuild()

    assert scene.generation == 1
    assert scene.layers["coast"].geometry.segment_count == 1
    assert scene.grid.segment_count == 16
    assert scene.target_path.vertex_count == 101
    assert scene.markers["center"] == pytest.approx((0.0, 0.0), abs=1e-6)
    assert scene.markers["target"] is not None
    assert scene.markers["north_pole"] is not None
    assert scene.layer_errors == {}
    assert scene.night_stale


def test_target_info_from_home() -> None:
    info = _scene().target_info()
    assert info is not None
    assert 5700.0 < info.distance_km < 5850.0
    assert 280.0 < info.azimuth_to_deg < 310.0
    assert 40.0 < info.azimuth_from_deg < 80.0
    assert _scene(target=None).target_info() is None


def test_failing_layer_does_not_stop_rebuild() -> None:
    bad = _FailingLayer("land", rings_from_lonlat([COAST]), strategy="clip")
    good = MapLayer("coast", rings_from_lonlat([COAST]))
    scene = _scene(layers=[bad, good])
    scene.rebuild()

    assert "land" in scene.layer_errors
    assert scene.layers["land"].geometry.vertex_count == 0
    assert scene.layers["coast"].geometry.segment_count == 1
    assert scene.grid.segment_count > 0


def test_antipodal_target_leaves_path_empty() -> None:
    engine = ProjectionEngine(0.0, 0.0)
    scene = MapScene(engine, home=Location(0.0, 0.0), target=Location(0.0, 180.0))
    scene.rebuild()
    assert scene.target_path.vertex_count == 0
    assert scene.errors and "antipodal" in scene.errors[0]


def test_mode_toggle_hides_far_markers() -> None:
    engine = ProjectionEngine(0.0, 0.0)
    scene = MapScene(engine, home=Location(0.0, 0.0), target=Location(10.0, 170.0))
    scene.rebuild()
    assert scene.markers["target"] is not None

    assert scene.toggle_mode() is ProjMode.ORTHOGRAPHIC
    assert scene.generation == 2
    assert scene.markers["target"] is None
    # The path is still drawn, clamped to the horizon.
    assert scene.target_path.vertex_count == 101


def test_pan_and_reset() -> None:
    scene = _scene()
    scene.rebuild()
    lat, lon = scene.pan(0.0, KM_PER_DEG)
    assert lat == pytest.approx(MADRID.lat + 1.0)
    assert scene.engine.get_center() == pytest.approx((MADRID.lat + 1.0, MADRID.lon))
    # Markers follow the home location, not the view center.
    assert scene.markers["center"][1] < 0.0

    scene.reset()
    assert scene.engine.get_center() == pytest.approx((MADRID.lat, MADRID.lon))

    scene.set_target(51.5074, -0.1278, "London")
    assert scene.target.label.startswith("London")
    assert scene.target_info().distance_km < 1300.0


def test_night_update_cadence() -> None:
    clock = _Clock()
    scene = _scene(clock=clock, night_angular_divs=12, night_radial_divs=4)
    scene.rebuild()

    assert scene.update_night(now=0)
    assert scene.sun is not None
    assert scene.night.triangle_count > 0
    assert not scene.night_stale
    assert not scene.update_night(now=0)

    clock.now += 30.0
    assert not scene.update_night(now=0)
    assert scene.update_night(now=0, force=True)

    clock.now += 61.0
    assert scene.update_night(now=0)

    scene.set_center(10.0, 10.0)
    assert scene.night_stale
    assert scene.update_night(now=0)


def test_summary_is_json_serializable() -> None:
    scene = _scene(night_angular_divs=12, night_radial_divs=4)
    scene.rebuild()
    scene.update_night(now=0)
    summary = json.loads(json.dumps(scene.summary()))
    assert summary["mode"] == "azeq"
    assert summary["home"]["label"] == MADRID.label
    assert summary["layers"]["coast"]["segments"] == 1
    assert summary["subsolar"] is not None


def test_build_scene_from_settings(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    fc = {"type": "Feature", "geometry": {"type": "LineString", "coordinates": [list(p) for p in COAST]}}
    (data_dir / "coast.geojson").write_text(json.dumps(fc), encoding="utf-8")

    settings = {
        "paths": {"data_dir": str(data_dir)},
        "view": {"mode": "ortho", "center": {"name": "Madrid", "lat": MADRID.lat, "lon": MADRID.lon}},
        "target": {"name": "New York", "lat": NEW_YORK.lat, "lon": NEW_YORK.lon},
        "layers": {
            "coast": {"path": "coast.geojson", "strategy": "split"},
            "missing": {"path": "nothing.geojson", "strategy": "clip"},
        },
        "geometry": {"split_threshold_km": 5000.0, "max_segments": 10, "max_rings": 10},
        "grid": {"extend_to_horizon": True},
        "night": {"angular_divs": 12, "radial_divs": 4},
    }
    scene = build_scene(settings)

    assert list(scene.layers) == ["coast"]
    assert scene.engine.get_mode() is ProjMode.ORTHOGRAPHIC
    assert scene.home.name == "Madrid"
    assert scene.extend_grid_to_horizon
    assert scene.night_angular_divs == 12
    assert scene.layers["coast"].max_segments == 10
    assert scene.generation == 1
