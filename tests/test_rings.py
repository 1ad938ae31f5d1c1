import json
from pathlib import Path

import pytest

from azmap.errors import CapacityExceeded
from azmap.geometry.rings import load_rings, load_rings_csv, load_rings_geojson, rings_from_lonlat


def _write_csv(path: Path, text: str) -> None:
    path.write_text(text.strip() + "\n", encoding="utf-8")


def test_rings_from_lonlat_flattens_and_skips_single_points() -> None:
    rings = rings_from_lonlat([[(0.0, 1.0), (2.0, 3.0)], [(5.0, 5.0)], [(10.0, 20.0), (11.0, 21.0), (12.0, 22.0)]])
    assert len(rings) == 2
    assert rings.vertex_count == 5
    assert rings.starts.tolist() == [0, 2]
    assert rings.counts.tolist() == [2, 3]
    # Input pairs are (lon, lat).
    assert rings.lats.tolist()[:2] == [1.0, 3.0]
    assert rings.lons.tolist()[:2] == [0.0, 2.0]
    assert len(rings.ring(1)) == 3
    assert [len(r) for r in rings] == [2, 3]


def test_rings_capacity_truncates_or_raises() -> None:
    data = [[(0.0, 0.0), (1.0, 1.0)]] * 3
    rings = rings_from_lonlat(data, max_rings=2)
    assert len(rings) == 2
    assert rings.truncated
    assert rings.warnings and "capacity" in rings.warnings[0]

    with pytest.raises(CapacityExceeded):
        rings_from_lonlat(data, max_rings=2, strict=True)

    assert not rings_from_lonlat(data, max_rings=3).truncated


def test_rings_reject_out_of_range_coordinates() -> None:
    with pytest.raises(ValueError):
        rings_from_lonlat([[(0.0, 0.0), (0.0, 95.0)]])
    with pytest.raises(ValueError):
        rings_from_lonlat([[(190.0, 0.0), (0.0, 0.0)]])


def test_load_rings_csv_accepts_common_columns(tmp_path: Path) -> None:
    path = tmp_path / "coast.csv"
    _write_csv(
        path,
        """
ring_id,latitude,longitude
b,10,20
b,11,21
a,0,0
a,1,1
a,x,2
a,2,2
""",
    )
    rings = load_rings_csv(path)
    # Rings keep first-appearance order; the non-numeric row is dropped.
    assert rings.counts.tolist() == [2, 3]
    assert rings.lats.tolist() == [10.0, 11.0, 0.0, 1.0, 2.0]
    assert rings.lons.tolist() == [20.0, 21.0, 0.0, 1.0, 2.0]


def test_load_rings_csv_missing_columns(tmp_path: Path) -> None:
    path = tmp_path / "bad.csv"
    _write_csv(path, "id,lat\n1,0\n")
    with pytest.raises(ValueError, match="missing ring columns"):
        load_rings_csv(path)


def test_load_rings_geojson_geometry_types(tmp_path: Path) -> None:
    fc = {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "geometry": {"type": "LineString", "coordinates": [[0, 0], [1, 1]]}},
            {
                "type": "Feature",
                "geometry": {
                    "type": "Polygon",
                    "coordinates": [[[0, 0], [10, 0], [10, 10], [0, 0]], [[2, 2], [3, 2], [3, 3], [2, 2]]],
                },
            },
            {
                "type": "Feature",
                "geometry": {
                    "type": "MultiLineString",
                    "coordinates": [[[5, 5, 100.0], [6, 6, 120.0]], [[7, 7]]],
                },
            },
            {"type": "Feature", "geometry": None},
        ],
    }
    path = tmp_path / "land.geojson"
    path.write_text(json.dumps(fc), encoding="utf-8")

    rings = load_rings_geojson(path)
    # The single-vertex line is skipped; altitude is dropped.
    assert rings.counts.tolist() == [2, 4, 4, 2]
    assert rings.lons.tolist()[-2:] == [5.0, 6.0]

    assert load_rings(path).counts.tolist() == rings.counts.tolist()


def test_load_rings_unsupported_suffix(tmp_path: Path) -> None:
    path = tmp_path / "coast.shp"
    path.write_bytes(b"")
    with pytest.raises(ValueError, match="Unsupported"):
        load_rings(path)
