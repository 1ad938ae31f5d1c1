import math

import numpy as np
import pytest

from azmap.geometry.grid import build_geo_graticule, build_grid, build_range_grid
from azmap.projection.engine import ProjectionState
from azmap.projection.sphere import EARTH_MAX_PROJ_RADIUS_KM, EARTH_RADIUS_KM


def test_range_grid_rings_and_radials() -> None:
    geom = build_range_grid()
    # Four rings (5000..20000 km) of 73 samples, twelve 2-point radials.
    assert geom.segment_count == 16
    assert geom.vertex_count == 4 * 73 + 12 * 2

    first = geom.segment(0)
    np.testing.assert_allclose(first[0], [5000.0, 0.0], atol=1e-9)
    np.testing.assert_allclose(first[-1], first[0], atol=1e-9)
    outer = geom.segment(3)
    assert np.hypot(outer[:, 0], outer[:, 1]) == pytest.approx(20000.0)

    radial = geom.segment(4)
    assert radial.tolist()[0] == [0.0, 0.0]
    assert math.hypot(*radial[1]) == pytest.approx(EARTH_MAX_PROJ_RADIUS_KM)


def test_azeq_grid_does_not_depend_on_center() -> None:
    a = build_grid(ProjectionState(0.0, 0.0, "azeq"))
    b = build_grid(ProjectionState(40.0, -3.0, "azeq"))
    np.testing.assert_array_equal(a.vertices, b.vertices)
    np.testing.assert_array_equal(a.segments, b.segments)


def test_graticule_stays_inside_disc() -> None:
    geom = build_geo_graticule(ProjectionState(40.4168, -3.7038, "ortho"))
    assert geom.segment_count > 0
    radii = np.hypot(geom.vertices[:, 0], geom.vertices[:, 1])
    assert np.isfinite(radii).all()
    assert (radii <= EARTH_RADIUS_KM + 1e-6).all()
    for seg in geom.iter_segments():
        assert seg.shape[0] >= 2


def test_graticule_extension_reaches_horizon() -> None:
    state = ProjectionState(0.0, 0.0, "ortho")
    plain = build_geo_graticule(state)
    extended = build_geo_graticule(state, extend_to_horizon=True)

    assert extended.vertex_count > plain.vertex_count
    plain_max = np.hypot(plain.vertices[:, 0], plain.vertices[:, 1]).max()
    ext_r = np.hypot(extended.vertices[:, 0], extended.vertices[:, 1])
    assert ext_r.max() <= EARTH_RADIUS_KM
    assert ext_r.max() >= plain_max
    assert ext_r.max() == pytest.approx(EARTH_RADIUS_KM, abs=1.0)


def test_build_grid_dispatches_on_mode() -> None:
    ortho = build_grid(ProjectionState(10.0, 20.0, "ortho"), generation=5)
    azeq = build_grid(ProjectionState(10.0, 20.0, "azeq"))
    assert ortho.generation == 5
    assert ortho.vertex_count != azeq.vertex_count
