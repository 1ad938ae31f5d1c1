"""
Raw geographic rings: the input side of the map-data projector.

A vector layer (coastlines, borders, land) arrives as a collection of rings,
each an ordered list of (lon, lat) pairs, already parsed from whatever file
format it came in. We store the whole layer flat, the same shape as the
projected output: one lat array, one lon array, and a (start, count) table.

Loaders:
- `rings_from_lonlat`: plain Python sequences (tests, API callers),
- `load_rings_csv`: one row per vertex with a ring id column (pandas),
- `load_rings_geojson`: LineString/Polygon features and their Multi* forms.

Rings with fewer than two vertices cannot be drawn and are skipped.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

import numpy as np
import pandas as pd

from azmap.errors import CapacityExceeded

logger = logging.getLogger(__name__)


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True)
class GeoRing:
    lats: np.ndarray
    lons: np.ndarray

    def __len__(self) -> int:
        return int(self.lats.shape[0])


@dataclass(frozen=True)
class RingCollection:
    lats: np.ndarray
    lons: np.ndarray
    starts: np.ndarray
    counts: np.ndarray
    warnings: tuple[str, ...] = ()
    truncated: bool = False

    def __len__(self) -> int:
        return int(self.starts.shape[0])

    def __iter__(self) -> Iterator[GeoRing]:
        for i in range(len(self)):
            yield self.ring(i)

    @property
    def vertex_count(self) -> int:
        return int(self.lats.shape[0])

    def ring(self, index: int) -> GeoRing:
        start = int(self.starts[index])
        end = start + int(self.counts[index])
        return GeoRing(lats=self.lats[start:end], lons=self.lons[start:end])


def _collect(
    rings: Iterable[np.ndarray],
    *,
    max_rings: int | None,
    strict: bool,
    source: str,
) -> RingCollection:
    # `rings` yields (n, 2) arrays of (lon, lat).
    kept: list[np.ndarray] = []
    skipped = 0
    total = 0
    for ring in rings:
        if ring.shape[0] <= 1:
            skipped += 1
            continue
        total += 1
        if max_rings is None or len(kept) < max_rings:
            kept.append(ring)

    warnings: list[str] = []
    truncated = max_rings is not None and total > max_rings
    if truncated:
        msg = f"{source}: {total} rings exceed capacity {max_rings}; truncating"
        if strict:
            raise CapacityExceeded(msg)
        logger.warning(msg)
        warnings.append(msg)
    if skipped:
        logger.debug("%s: skipped %d ring(s) with fewer than 2 vertices", source, skipped)

    counts = np.asarray([r.shape[0] for r in kept], dtype=np.int64)
    starts = np.concatenate([[0], np.cumsum(counts)[:-1]]).astype(np.int64) if kept else np.empty(0, dtype=np.int64)
    flat = np.concatenate(kept, axis=0) if kept else np.empty((0, 2), dtype=float)

    lons = np.ascontiguousarray(flat[:, 0], dtype=float)
    lats = np.ascontiguousarray(flat[:, 1], dtype=float)
    bad = (np.abs(lats) > 90.0) | (np.abs(lons) > 180.0)
    if np.any(bad):
        raise ValueError(f"{source}: {int(bad.sum())} vertex(es) outside lat [-90, 90] / lon [-180, 180]")

    return RingCollection(
        lats=_frozen(lats),
        lons=_frozen(lons),
        starts=_frozen(starts),
        counts=_frozen(counts),
        warnings=tuple(warnings),
        truncated=truncated,
    )


def rings_from_lonlat(
    rings: Iterable[Sequence[Sequence[float]]],
    *,
    max_rings: int | None = None,
    strict: bool = False,
    source: str = "rings",
) -> RingCollection:
    arrays = (np.asarray(r, dtype=float).reshape(-1, 2) for r in rings)
    return _collect(arrays, max_rings=max_rings, strict=strict, source=source)


def _rename_common_columns(df: pd.DataFrame) -> pd.DataFrame:
    # Accept the usual spellings of the coordinate columns.
    rename: dict[str, str] = {}
    if "lat" not in df.columns and "latitude" in df.columns:
        rename["latitude"] = "lat"
    if "lon" not in df.columns and "longitude" in df.columns:
        rename["longitude"] = "lon"
    if "lon" not in df.columns and "lng" in df.columns:
        rename["lng"] = "lon"
    return df.rename(columns=rename) if rename else df


def load_rings_csv(
    path: Path,
    *,
    ring_col: str = "ring_id",
    max_rings: int | None = None,
    strict: bool = False,
) -> RingCollection:
    """
    Load rings from a vertex-per-row CSV.

    Vertices keep their file order inside each ring; rings are ordered by first
    appearance of their id. Rows with non-numeric coordinates are dropped.
    """
    df = _rename_common_columns(pd.read_csv(path))
    missing = {ring_col, "lat", "lon"} - set(df.columns)
    if missing:
        raise ValueError(f"{path}: missing ring columns: {sorted(missing)}")

    for c in ["lat", "lon"]:
        df[c] = pd.to_numeric(df[c], errors="coerce")
    bad = int(df[["lat", "lon"]].isna().any(axis=1).sum())
    if bad:
        logger.warning("%s: dropping %d row(s) with missing coordinates", path, bad)
        df = df.dropna(subset=["lat", "lon"])

    groups = df.groupby(ring_col, sort=False)[["lon", "lat"]]
    arrays = (g.to_numpy(dtype=float) for _, g in groups)
    return _collect(arrays, max_rings=max_rings, strict=strict, source=str(path))


def _geojson_rings(geometry: dict[str, Any] | None) -> Iterator[list[Any]]:
    if not geometry:
        return
    gtype = geometry.get("type")
    coords = geometry.get("coordinates") or []
    if gtype == "LineString":
        yield coords
    elif gtype in {"MultiLineString", "Polygon"}:
        yield from coords
    elif gtype == "MultiPolygon":
        for polygon in coords:
            yield from polygon
    elif gtype == "GeometryCollection":
        for child in geometry.get("geometries") or []:
            yield from _geojson_rings(child)


def load_rings_geojson(path: Path, *, max_rings: int | None = None, strict: bool = False) -> RingCollection:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if data.get("type") == "FeatureCollection":
        geometries = [f.get("geometry") for f in data.get("features") or []]
    elif data.get("type") == "Feature":
        geometries = [data.get("geometry")]
    else:
        geometries = [data]

    def arrays() -> Iterator[np.ndarray]:
        for geometry in geometries:
            for ring in _geojson_rings(geometry):
                # Drop any altitude component.
                yield np.asarray([p[:2] for p in ring], dtype=float).reshape(-1, 2)

    return _collect(arrays(), max_rings=max_rings, strict=strict, source=str(path))


def load_rings(path: Path, *, max_rings: int | None = None, strict: bool = False) -> RingCollection:
    suffix = Path(path).suffix.lower()
    if suffix == ".csv":
        return load_rings_csv(path, max_rings=max_rings, strict=strict)
    if suffix in {".geojson", ".json"}:
        return load_rings_geojson(path, max_rings=max_rings, strict=strict)
    raise ValueError(f"Unsupported ring file type: {path}")
