import numpy as np
import pytest

from azmap.geometry.buffers import GeometryBuilder, ProjectedGeometry, geometry_to_geojson


def test_builder_segments_and_ownership() -> None:
    builder = GeometryBuilder()
    builder.reserve(5)
    start = builder.extend([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0]])
    assert start == 0
    assert builder.add_segment(0, 3)
    assert builder.add_run([[5.0, 5.0], [6.0, 6.0]])
    builder.mark_degenerate(7)

    geom = builder.build(generation=3)
    assert geom.vertex_count == 5
    assert geom.segments.tolist() == [[0, 3], [3, 2]]
    assert geom.degenerate == (7,)
    assert geom.generation == 3
    assert not geom.truncated

    # The arrays now belong to the geometry and cannot be modified.
    with pytest.raises(ValueError):
        geom.vertices[0, 0] = 99.0
    with pytest.raises(RuntimeError):
        builder.extend([[0.0, 0.0]])


def test_builder_grows_past_reserve() -> None:
    builder = GeometryBuilder()
    builder.reserve(2)
    for i in range(100):
        builder.add_run([[i, 0.0], [i, 1.0]])
    geom = builder.build()
    assert geom.vertex_count == 200
    assert geom.segment_count == 100
    np.testing.assert_array_equal(geom.segment(99), [[99.0, 0.0], [99.0, 1.0]])


def test_builder_rejects_segments_outside_buffer() -> None:
    builder = GeometryBuilder()
    builder.extend([[0.0, 0.0], [1.0, 1.0]])
    with pytest.raises(ValueError):
        builder.add_segment(1, 2)
    with pytest.raises(ValueError):
        GeometryBuilder(max_segments=0)


def test_builder_capacity_drops_extra_segments() -> None:
    builder = GeometryBuilder(max_segments=2)
    results = [builder.add_run([[0.0, 0.0], [1.0, 1.0]]) for _ in range(4)]
    assert results == [True, True, False, False]
    geom = builder.build()
    assert geom.segment_count == 2
    # Dropped runs never reach the vertex buffer.
    assert geom.vertex_count == 4
    assert geom.truncated
    assert "dropped 2" in geom.warnings[0]


def test_empty_geometry() -> None:
    geom = ProjectedGeometry.empty(generation=4)
    assert geom.vertex_count == 0
    assert geom.segment_count == 0
    assert list(geom.iter_segments()) == []
    assert geom.generation == 4


def test_geometry_to_geojson_line_and_polygon() -> None:
    builder = GeometryBuilder()
    builder.add_run([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0]])
    geom = builder.build(generation=2)

    line = geometry_to_geojson(geom, properties={"layer": "coast"})
    feature = line["features"][0]
    assert line["type"] == "FeatureCollection"
    assert feature["geometry"]["type"] == "MultiLineString"
    assert feature["geometry"]["coordinates"] == [[[0.0, 0.0], [1.0, 0.0], [1.0, 1.0]]]
    assert feature["properties"]["layer"] == "coast"
    assert feature["properties"]["units"] == "km"
    assert feature["properties"]["generation"] == 2

    poly = geometry_to_geojson(geom, kind="polygon")
    ring = poly["features"][0]["geometry"]["coordinates"][0][0]
    assert poly["features"][0]["geometry"]["type"] == "MultiPolygon"
    assert ring[0] == ring[-1]
    assert len(ring) == 4

    with pytest.raises(ValueError):
        geometry_to_geojson(geom, kind="points")
