import argparse
import logging
from pathlib import Path

from azmap.settings import load_settings

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default="config/default.yaml", help="Path to config YAML")
    common.add_argument("--profile", default=None, help="Profile name (config/profiles/<name>.yaml)")

    parser = argparse.ArgumentParser(prog="azmap", description="azmap CLI", parents=[common])

    sub = parser.add_subparsers(dest="command", required=True)
    info = sub.add_parser("info", parents=[common], help="Print center, target, distance and bearings")
    info.add_argument("--center", nargs=2, type=float, metavar=("LAT", "LON"), default=None, help="Override view center")
    info.add_argument("--target", nargs=2, type=float, metavar=("LAT", "LON"), default=None, help="Override target")
    info.add_argument("--mode", default=None, help="Projection mode (azeq or ortho)")

    build = sub.add_parser("build", parents=[common], help="Project every layer and write GeoJSON/JSON outputs")
    build.add_argument("--at", default=None, help="UTC time for the night mesh (ISO 8601, default now)")
    build.add_argument("--out", default=None, help="Output directory (default: project.output_dir)")
    build.add_argument("--mode", default=None, help="Projection mode (azeq or ortho)")

    solar = sub.add_parser("subsolar", parents=[common], help="Print the subsolar point")
    solar.add_argument("--at", default=None, help="UTC time (ISO 8601, default now)")

    sub.add_parser("api-info", parents=[common], help="Print API run instructions")
    return parser


def _apply_view_overrides(settings: dict, args: argparse.Namespace) -> dict:
    # CLI overrides change only this run, never the config file.
    view = dict(settings.get("view", {}) or {})
    if getattr(args, "center", None):
        lat, lon = args.center
        view["center"] = {"name": None, "lat": lat, "lon": lon}
    if getattr(args, "mode", None):
        view["mode"] = args.mode
    settings = {**settings, "view": view}
    if getattr(args, "target", None):
        lat, lon = args.target
        settings["target"] = {"name": None, "lat": lat, "lon": lon}
    return settings


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = load_settings(Path(args.config), profile=args.profile)

    if args.command == "api-info":
        host = settings["api"]["host"]
        port = settings["api"]["port"]
        print(f"Run: uvicorn azmap.api.main:app --reload --host {host} --port {port}")
        return

    if args.command == "subsolar":
        from azmap.scene import format_coord
        from azmap.solar.subsolar import parse_utc, subsolar_point

        when = parse_utc(args.at)
        sun = subsolar_point(when)
        print(f"Subsolar at {when.isoformat()}: {format_coord(sun.lat, sun.lon)}")
        return

    if args.command == "info":
        from azmap.scene import build_label, build_scene

        # Layers are not needed to report distance and bearings.
        scene = build_scene({**_apply_view_overrides(settings, args), "layers": {}})
        home = scene.home
        print(f"Center: {home.label}")
        print(f"Mode: {scene.engine.get_mode().value}")
        info = scene.target_info()
        if info is None or scene.target is None:
            print("Target: -")
            return
        print(f"Target: {build_label(scene.target.name, scene.target.lat, scene.target.lon)}")
        print(f"Distance: {info.distance_km:.0f} km")
        print(f"Az to: {info.azimuth_to_deg:.1f} deg")
        print(f"Az from: {info.azimuth_from_deg:.1f} deg")
        return

    if args.command == "build":
        from azmap.build import build_outputs
        from azmap.solar.subsolar import parse_utc

        out_dir = Path(args.out) if args.out else Path(settings["paths"]["output_dir"])
        written = build_outputs(_apply_view_overrides(settings, args), out_dir=out_dir, when=parse_utc(args.at))
        for path in written:
            print(path)
        return

    raise SystemExit(f"Unknown command: {args.command}")


if __name__ == "__main__":
    main()
