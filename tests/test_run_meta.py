from pathlib import Path

from azmap.run_meta import build_run_meta, config_fingerprint, file_meta, json_hash


def test_json_hash_ignores_key_order() -> None:
    assert json_hash({"a": 1, "b": [1, 2]}) == json_hash({"b": [1, 2], "a": 1})
    assert json_hash({"a": 1}) != json_hash({"a": 2})


def test_file_meta_for_missing_and_present_files(tmp_path: Path) -> None:
    missing = file_meta(tmp_path / "nope.geojson")
    assert not missing.exists
    assert missing.size_bytes is None

    p = tmp_path / "coast.geojson"
    p.write_text("{}", encoding="utf-8")
    present = file_meta(p)
    assert present.exists
    assert present.size_bytes == 2


def test_config_hash_ignores_paths(tmp_path: Path) -> None:
    base = {"view": {"mode": "azeq"}, "layers": {}, "_meta": {"profile": None}}
    a = dict(base, paths={"root": "/a"})
    b = dict(base, paths={"root": "/b"})
    assert config_fingerprint(a) == config_fingerprint(b)

    meta_a = build_run_meta(run_id="x", generated_at="t", settings=a, view={}, input_sources=[], outputs=[])
    meta_b = build_run_meta(run_id="y", generated_at="t", settings=b, view={}, input_sources=[], outputs=[])
    assert meta_a["config_hash"] == meta_b["config_hash"]
    assert meta_a["outputs"] == []
