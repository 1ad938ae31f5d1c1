"""
Settings bootstrap for azmap.

Every entry point (CLI command, API process, scene construction in scripts)
reads configuration through `load_settings()` first. The base config is a
version-controlled YAML file; an optional profile under
`config/profiles/<name>.yaml` overrides just the keys it names (for example a
profile that starts in orthographic mode).
"""

from __future__ import annotations

import copy

# `Path` makes path handling cross-platform (Windows/macOS/Linux).
from pathlib import Path
# `Any` is used because YAML is dynamic; typed access happens in `azmap.scene`.
from typing import Any

# PyYAML provides YAML parsing for config files (human-editable settings).
import yaml

# Logging is configured early so later modules can rely on consistent logs.
from azmap.log import configure_logging

# Defaults applied under every config file, so a minimal YAML is enough.
DEFAULTS: dict[str, Any] = {
    "project": {
        "data_dir": "data",
        "output_dir": "output",
        "logs_dir": "logs",
        "log_level": "INFO",
        # Per-module overrides, e.g. {"geometry.map_data": "DEBUG"}.
        "log_levels": {},
    },
    "view": {
        "mode": "azeq",
        "center": {"name": None, "lat": 0.0, "lon": 0.0},
    },
    "target": None,
    "layers": {},
    "geometry": {
        "split_threshold_km": 5000.0,
        "max_segments": 4096,
        "max_rings": 4096,
        "crossing_iterations": 20,
    },
    "grid": {"extend_to_horizon": False},
    "night": {
        "angular_divs": 180,
        "radial_divs": 60,
        "inset_km": 0.5,
        "update_interval_s": 60.0,
    },
    "api": {"host": "127.0.0.1", "port": 8000},
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    # Copy the base mapping so we never mutate caller-owned dictionaries.
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        # If both sides are dictionaries, merge recursively so profiles can override a nested subset.
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            # For non-dicts the override replaces the base value.
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> dict[str, Any]:
    # Treat missing YAML files as "no overrides" so profiles are optional.
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        # `safe_load` avoids executing arbitrary YAML tags.
        data = yaml.safe_load(f) or {}
    # We expect config files to be YAML mappings, not lists or scalars.
    if not isinstance(data, dict):
        raise ValueError(f"YAML must be a mapping: {path}")
    return data


def _resolve_project_root(config_path: Path) -> Path:
    config_dir = config_path.resolve().parent
    # config/default.yaml lives one level below the project root.
    if config_dir.name == "config":
        return config_dir.parent
    return config_dir


def _ensure_dirs(paths: dict[str, Path]) -> None:
    for p in paths.values():
        # `exist_ok=True` makes this idempotent (safe to call multiple times).
        p.mkdir(parents=True, exist_ok=True)


def load_settings(config_path: Path, profile: str | None = None) -> dict[str, Any]:
    """
    Load base config and merge a profile override file if one is named.
    Also initializes runtime directories and logging.
    """
    config_path = Path(config_path).resolve()
    root = _resolve_project_root(config_path)

    settings = _deep_merge(copy.deepcopy(DEFAULTS), _load_yaml(config_path))
    profile_path: Path | None = None
    if profile:
        # A missing profile file is an empty override, so profiles can stay minimal.
        profile_path = root / "config" / "profiles" / f"{profile}.yaml"
        settings = _deep_merge(settings, _load_yaml(profile_path))

    project = settings["project"]
    paths = {
        "root": root,
        # Ring files named in `layers` are resolved against this directory.
        "data_dir": root / project.get("data_dir", "data"),
        # `azmap build` writes GeoJSON/JSON artifacts here.
        "output_dir": root / project.get("output_dir", "output"),
        "logs_dir": root / project.get("logs_dir", "logs"),
    }
    _ensure_dirs(paths)

    logger = configure_logging(
        paths["logs_dir"],
        level=str(project.get("log_level", "INFO")),
        module_levels=project.get("log_levels") or {},
    )

    settings["_meta"] = {
        "config_path": str(config_path),
        "profile": profile,
        "profile_path": str(profile_path) if profile_path else None,
    }
    # Store resolved paths as strings so settings stay JSON-serializable.
    settings["paths"] = {k: str(v) for k, v in paths.items()}
    logger.info("Loaded settings: config=%s profile=%s", config_path, profile or "-")
    return settings
