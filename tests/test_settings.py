import logging
from pathlib import Path

import pytest

from azmap.settings import load_settings


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text.strip() + "\n", encoding="utf-8")


def test_load_settings_merges_profile(tmp_path: Path) -> None:
    _write(
        tmp_path / "config" / "default.yaml",
        """
view:
  mode: azeq
  center: {name: Madrid, lat: 40.4168, lon: -3.7038}
geometry:
  max_segments: 100
""",
    )
    _write(
        tmp_path / "config" / "profiles" / "globe.yaml",
        """
view:
  mode: ortho
""",
    )

    settings = load_settings(tmp_path / "config" / "default.yaml", profile="globe")

    assert settings["view"]["mode"] == "ortho"
    # Keys the profile does not name survive the merge.
    assert settings["view"]["center"]["name"] == "Madrid"
    assert settings["geometry"]["max_segments"] == 100
    # Defaults fill in what the config leaves out.
    assert settings["geometry"]["split_threshold_km"] == 5000.0
    assert settings["night"]["angular_divs"] == 180

    assert settings["paths"]["root"] == str(tmp_path.resolve())
    for key in ("data_dir", "output_dir", "logs_dir"):
        assert Path(settings["paths"][key]).is_dir()
    assert settings["_meta"]["profile"] == "globe"


def test_missing_profile_is_empty_override(tmp_path: Path) -> None:
    _write(tmp_path / "config" / "default.yaml", "view: {mode: ortho}")
    settings = load_settings(tmp_path / "config" / "default.yaml", profile="nope")
    assert settings["view"]["mode"] == "ortho"
    assert settings["_meta"]["profile"] == "nope"


def test_defaults_are_not_shared_between_loads(tmp_path: Path) -> None:
    _write(tmp_path / "config" / "default.yaml", "project: {log_level: INFO}")
    first = load_settings(tmp_path / "config" / "default.yaml")
    first["geometry"]["max_segments"] = 1
    second = load_settings(tmp_path / "config" / "default.yaml")
    assert second["geometry"]["max_segments"] == 4096


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    _write(tmp_path / "config" / "default.yaml", "- a\n- b")
    with pytest.raises(ValueError, match="mapping"):
        load_settings(tmp_path / "config" / "default.yaml")


def test_repository_config_loads() -> None:
    root = Path(__file__).resolve().parents[1]
    settings = load_settings(root / "config" / "default.yaml", profile="ortho")
    assert settings["view"]["mode"] == "ortho"
    assert settings["grid"]["extend_to_horizon"] is True
    assert set(settings["layers"]) == {"coastline", "borders", "land"}


def test_module_log_levels_from_config(tmp_path: Path) -> None:
    _write(
        tmp_path / "config" / "default.yaml",
        """
project:
  log_levels: {solar.nightmesh: DEBUG}
""",
    )
    load_settings(tmp_path / "config" / "default.yaml")
    assert logging.getLogger("azmap.solar.nightmesh").level == logging.DEBUG
    logging.getLogger("azmap.solar.nightmesh").setLevel(logging.NOTSET)
