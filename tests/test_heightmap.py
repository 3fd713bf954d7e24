"""Tests for HeightMapSurface."""

import numpy as np
import pytest

from brep_mc.config import Tolerances
from brep_mc.errors import ConfigurationError, InternalConsistencyFault
from brep_mc.surfaces.heightmap import HeightMapSurface


@pytest.fixture
def flat():
    return HeightMapSurface(0.0, 0.0, 1.0, 1.0, np.zeros((3, 3)))


@pytest.fixture
def slope():
    """z = 0.5 x on [0, 2] x [0, 2]."""
    data = np.array([[0.5 * i] * 3 for i in range(3)])
    return HeightMapSurface(0.0, 0.0, 1.0, 1.0, data)


SLOPE_NORMAL = np.array([-0.5, 0.0, 1.0]) / np.sqrt(1.25)


class TestContains:

    def test_flat_below_and_above(self, flat):
        assert flat.contains([0.5, 0.5, -1.0])
        assert not flat.contains([0.5, 0.5, 1.0])
        above = HeightMapSurface(0.0, 0.0, 1.0, 1.0, np.zeros((3, 3)), is_below=False)
        assert above.contains([0.5, 0.5, 1.0])
        assert not above.contains([0.5, 0.5, -1.0])

    def test_surface_point_belongs_to_both(self, flat):
        above = HeightMapSurface(0.0, 0.0, 1.0, 1.0, np.zeros((3, 3)), is_below=False)
        assert flat.contains([0.7, 1.2, 0.0])
        assert above.contains([0.7, 1.2, 0.0])

    def test_surface_point_follows_direction(self, flat):
        p = [0.7, 1.2, 0.0]
        assert flat.contains(p, [0.7, 1.2, -1.0])
        assert not flat.contains(p, [0.7, 1.2, 1.0])

    def test_outside_the_sampled_extent(self, flat):
        assert flat.contains([-5.0, 10.0, -0.1])
        assert not flat.contains([50.0, -3.0, 0.1])


class TestHeightAt:

    def test_interior(self, slope):
        assert slope.height_at(0.3, 0.4) == pytest.approx(0.15)
        assert slope.height_at(1.7, 1.1) == pytest.approx(0.85)

    def test_extrapolation(self, slope):
        # Beyond y the x slope continues; beyond x the edge height holds
        assert slope.height_at(0.5, -2.0) == pytest.approx(0.25)
        assert slope.height_at(3.0, 1.0) == pytest.approx(1.0)
        # Corner columns are flat at the corner node height
        assert slope.height_at(5.0, 5.0) == pytest.approx(1.0)
        assert slope.height_at(-5.0, -5.0) == pytest.approx(0.0)


class TestFirstNormal:

    def test_vertical_ray_from_below(self, flat):
        nv = flat.first_normal([0.3, 0.4, -1.0], [0.3, 0.4, 1.0])
        assert nv.u == pytest.approx(0.5)
        np.testing.assert_allclose(nv.normal, [0.0, 0.0, 1.0])

    def test_vertical_ray_from_above(self, flat):
        # Normal is the outward normal of the region below
        nv = flat.first_normal([0.3, 0.4, 1.0], [0.3, 0.4, -1.0])
        assert nv.u == pytest.approx(0.5)
        np.testing.assert_allclose(nv.normal, [0.0, 0.0, 1.0])

    def test_region_above_reverses_normal(self):
        above = HeightMapSurface(0.0, 0.0, 1.0, 1.0, np.zeros((3, 3)), is_below=False)
        nv = above.first_normal([0.3, 0.4, 1.0], [0.3, 0.4, -1.0])
        np.testing.assert_allclose(nv.normal, [0.0, 0.0, -1.0])

    def test_sloped_surface(self, slope):
        nv = slope.first_normal([0.3, 0.4, -1.0], [0.3, 0.4, 1.0])
        assert nv.u == pytest.approx(0.575)
        np.testing.assert_allclose(nv.normal, SLOPE_NORMAL)

    def test_horizontal_ray_crosses_columns(self, slope):
        # Crosses a diagonal and a grid line before meeting z = 0.5 x at x = 1.2
        nv = slope.first_normal([0.2, 0.4, 0.6], [2.2, 0.4, 0.6])
        assert nv.u == pytest.approx(0.5, abs=1e-6)
        np.testing.assert_allclose(nv.normal, SLOPE_NORMAL, atol=1e-6)

    def test_miss(self, flat):
        assert not flat.first_normal([0.2, 0.4, 0.5], [2.5, 1.9, 0.3]).hit
        assert not flat.first_normal([0.2, 0.4, -0.5], [0.2, 0.4, -0.1]).hit

    def test_node_start_is_deterministic(self):
        data = np.zeros((2, 2))
        data[1, 1] = 1.0e-9
        surf = HeightMapSurface(0.0, 0.0, 1.0, 1.0, data)
        p0, p1 = [1.0, 1.0, -1.0], [1.0, 1.0, 1.0]

        iB, jB, w, _ = surf.locate(p0, p1)
        assert (iB, jB, w) == (1, 1, 1)

        first = surf.first_normal(p0, p1)
        assert first.u == pytest.approx(0.5)
        for _ in range(3):
            again = surf.first_normal(p0, p1)
            assert again.u == first.u
            assert np.array_equal(again.normal, first.normal)

    def test_column_cap(self):
        surf = HeightMapSurface(0.0, 0.0, 1.0, 1.0, np.zeros((10, 2)),
                                tolerances=Tolerances(max_column_steps=1))
        with pytest.raises(InternalConsistencyFault):
            surf.first_normal([0.2, 0.3, 0.5], [8.5, 0.3, 0.5])


class TestLocate:

    def test_without_direction(self, flat):
        iB, jB, w, _ = flat.locate([0.3, 1.4, 0.0])
        assert (iB, jB, w) == (1, 2, 0)
        iB, jB, w, _ = flat.locate([0.8, 1.4, 0.0])
        assert (iB, jB, w) == (1, 2, 1)

    def test_clamped_outside(self, flat):
        iB, jB, _, _ = flat.locate([-4.0, 9.0, 0.0])
        assert (iB, jB) == (0, 3)

    def test_grid_line_follows_direction(self, flat):
        iB, _, _, cur = flat.locate([1.0, 0.5, 0.0], [2.0, 0.5, 0.0])
        assert iB == 2
        assert cur[0] > 1.0
        iB, _, _, cur = flat.locate([1.0, 0.5, 0.0], [0.0, 0.5, 0.0])
        assert iB == 1
        assert cur[0] < 1.0


class TestConstruction:

    def test_bad_data(self):
        with pytest.raises(ConfigurationError):
            HeightMapSurface(0.0, 0.0, 1.0, 1.0, np.zeros((0, 3)))
        with pytest.raises(ConfigurationError):
            HeightMapSurface(0.0, 0.0, 1.0, 1.0, [[0.0, np.nan], [0.0, 0.0]])
        with pytest.raises(ConfigurationError):
            HeightMapSurface(0.0, 0.0, -1.0, 1.0, np.zeros((2, 2)))

    def test_one_dimensional_row(self):
        surf = HeightMapSurface(0.0, 0.0, 1.0, 0.0, [0.0, 1.0, 2.0])
        assert surf.x_1d
        assert surf.contains([0.5, 7.0, 0.4])
        assert not surf.contains([0.5, 7.0, 0.6])
        assert surf.height_at(1.5, -3.0) == pytest.approx(1.5)

    def test_single_point(self):
        surf = HeightMapSurface(0.0, 0.0, 1.0, 1.0, [[2.0]])
        assert surf.contains([10.0, -10.0, 1.9])
        assert not surf.contains([-10.0, 10.0, 2.1])
        nv = surf.first_normal([3.0, 3.0, 5.0], [3.0, 3.0, 0.0])
        assert nv.u == pytest.approx(0.6)

    def test_block_cache(self, flat):
        flat.contains([0.5, 0.5, 0.0])
        assert flat.cache_size > 0
        blk = flat.block(1, 1, 0, True)
        assert flat.block(1, 1, 0, True) is blk
        flat.clear_cache()
        assert flat.cache_size == 0
        with pytest.raises(IndexError):
            flat.block(7, 0, 0, True)


class TestTransforms:

    def test_translate(self, flat):
        flat.translate([1.0, 2.0, 3.0])
        assert flat.x0 == 1.0 and flat.y0 == 2.0
        assert flat.contains([1.5, 2.5, 2.9])
        assert not flat.contains([1.5, 2.5, 3.1])

    def test_rotate_not_supported(self, flat):
        with pytest.raises(TypeError):
            flat.rotate([0.0, 0.0, 0.0], 0.1, 0.0, 0.0)
