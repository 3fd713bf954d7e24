"""Tests for ConvexPolytope, Sphere and the tie-break rule."""

import numpy as np
import pytest

from brep_mc.core.polytope import ConvexPolytope, block, half_space, slab
from brep_mc.core.shape import NO_CROSSING, tie_break_inside, side_of_boundary
from brep_mc.core.sphere import Sphere
from brep_mc.errors import ConfigurationError


@pytest.fixture
def unit_box():
    return block([1.0, 1.0, 1.0], [0.5, 0.5, 0.5])


class TestTieBreak:

    @pytest.mark.parametrize("normal, inside", [
        ((1.0, 0.0, 0.0), True),
        ((-1.0, 0.0, 0.0), False),
        ((0.0, 1.0, 0.0), True),
        ((0.0, -1.0, 0.0), False),
        ((0.0, 0.0, 1.0), True),
        ((0.0, 0.0, -1.0), False),
        ((0.0, -0.0, -1.0), False),
        ((0.5, -0.5, -0.7), True),
    ])
    def test_first_nonzero_component_decides(self, normal, inside):
        assert tie_break_inside(*normal) is inside

    def test_opposite_normals_disagree(self):
        n = np.array([0.3, -0.4, 0.5])
        assert tie_break_inside(*n) != tie_break_inside(*-n)

    def test_direction_dominates(self):
        assert side_of_boundary(0.0, 0.0, -1.0, 0.0, 0.0, 1.0)
        assert not side_of_boundary(0.0, 0.0, 1.0, 0.0, 0.0, 1.0)


class TestConvexPolytope:

    def test_contains(self, unit_box):
        assert unit_box.contains([0.5, 0.5, 0.5])
        assert not unit_box.contains([1.5, 0.5, 0.5])
        # Boundary counts as inside without a direction
        assert unit_box.contains([1.0, 0.5, 0.5])

    def test_boundary_point_uses_direction(self, unit_box):
        p = [1.0, 0.5, 0.5]
        assert unit_box.contains(p, [0.9, 0.5, 0.5])
        assert not unit_box.contains(p, [1.1, 0.5, 0.5])
        # Sliding along the x = 1 face: outward normal +x, assigned inside
        assert unit_box.contains(p, [1.0, 0.7, 0.5])
        # Sliding along the x = 0 face: outward normal -x, assigned outside
        assert not unit_box.contains([0.0, 0.5, 0.5], [0.0, 0.7, 0.5])

    def test_entry_crossing(self, unit_box):
        nv = unit_box.first_normal([0.5, 0.5, -1.0], [0.5, 0.5, 1.0])
        assert nv.u == pytest.approx(0.5)
        np.testing.assert_allclose(nv.normal, [0.0, 0.0, -1.0])

    def test_exit_crossing(self, unit_box):
        nv = unit_box.first_normal([0.5, 0.5, 0.5], [0.5, 0.5, 2.5])
        assert nv.u == pytest.approx(0.25)
        np.testing.assert_allclose(nv.normal, [0.0, 0.0, 1.0])
        assert unit_box.previous_normal is nv

    def test_no_crossing(self, unit_box):
        assert unit_box.first_intersection([0.2, 0.2, 0.2], [0.8, 0.8, 0.8]) == NO_CROSSING
        assert unit_box.first_intersection([2.0, 2.0, 2.0], [3.0, 3.0, 3.0]) == NO_CROSSING
        # Crossing beyond p1
        assert unit_box.first_intersection([0.5, 0.5, -2.0], [0.5, 0.5, -1.0]) > 1.0

    def test_parallel_outside_never_crosses(self, unit_box):
        assert unit_box.first_intersection([2.0, 0.5, -1.0], [2.0, 0.5, 2.0]) == NO_CROSSING

    def test_edge_hit_sets_tie(self, unit_box):
        nv = unit_box.first_normal([0.5, 0.5, 0.5], [1.5, 1.5, 0.5])
        assert nv.u == pytest.approx(0.5)
        assert unit_box.last_tie

    def test_crossing_consistent_with_contains(self, unit_box):
        rng = np.random.default_rng(7)
        for _ in range(200):
            p0, p1 = rng.uniform(-0.5, 1.5, size=(2, 3))
            u = unit_box.first_intersection(p0, p1)
            inside0 = unit_box.contains(p0)
            if u > 1.0:
                # No crossing: both ends on the same side
                assert unit_box.contains(p1) == inside0
            else:
                x = p0 + u * (p1 - p0)
                just_before = p0 + 0.999 * u * (p1 - p0)
                assert unit_box.contains(just_before) == inside0
                assert np.all(x >= -1e-12) and np.all(x <= 1.0 + 1e-12)

    def test_unbounded_half_space(self):
        hs = half_space([0.0, 0.0, 2.0], [0.0, 0.0, 1.0])
        assert hs.num_planes == 1
        np.testing.assert_allclose(hs.normal(0), [0.0, 0.0, 1.0])
        assert hs.offset(0) == pytest.approx(1.0)
        assert hs.contains([100.0, -50.0, 0.0])
        assert not hs.contains([0.0, 0.0, 1.5])

    def test_slab(self):
        film = slab([0.0, 0.0, 1.0], [0.0, 0.0, 0.0], 0.1)
        assert film.contains([3.0, 4.0, -0.05])
        assert not film.contains([3.0, 4.0, -0.15])
        with pytest.raises(ConfigurationError):
            slab([0.0, 0.0, 1.0], [0.0, 0.0, 0.0], 0.0)

    def test_from_arrays(self):
        poly = ConvexPolytope([[0.0, 0.0, 2.0], [0.0, 0.0, -1.0]], [2.0, 0.0])
        np.testing.assert_allclose(poly.offsets, [1.0, 0.0])
        assert poly.contains([0.0, 0.0, 0.5])

    def test_add_plane_from_points(self):
        poly = ConvexPolytope()
        # Counter-clockwise from above: normal +z
        poly.add_plane_from_points([0, 0, 1], [1, 0, 1], [0, 1, 1])
        np.testing.assert_allclose(poly.normal(0), [0.0, 0.0, 1.0])
        with pytest.raises(ConfigurationError):
            poly.add_plane_from_points([0, 0, 0], [1, 1, 1], [2, 2, 2])

    def test_bad_planes(self):
        with pytest.raises(ConfigurationError):
            ConvexPolytope().add_plane([0, 0, 0], [1, 1, 1])
        with pytest.raises(ConfigurationError):
            ConvexPolytope([[1.0, 0.0, 0.0]], [1.0, 2.0])
        with pytest.raises(ValueError):
            ConvexPolytope().add_plane([0, 1], [0, 0, 0])

    def test_translate_and_rotate(self, unit_box):
        unit_box.translate([1.0, 0.0, 0.0])
        assert unit_box.contains([1.5, 0.5, 0.5])
        assert not unit_box.contains([0.5, 0.5, 0.5])

        rotated = block([2.0, 0.5, 0.5], [0.0, 0.0, 0.0], phi=np.pi / 2)
        assert rotated.contains([0.0, 0.9, 0.0])
        assert not rotated.contains([0.9, 0.0, 0.0])


class TestSphere:

    def test_contains(self):
        s = Sphere([0.0, 0.0, 0.0], 1.0)
        assert s.contains([0.5, 0.0, 0.0])
        assert not s.contains([1.5, 0.0, 0.0])
        assert s.contains([1.0, 0.0, 0.0])
        assert s.contains([1.0, 0.0, 0.0], [0.5, 0.0, 0.0])
        assert not s.contains([1.0, 0.0, 0.0], [1.5, 0.0, 0.0])

    def test_tangent_direction_uses_tie_break(self):
        s = Sphere([0.0, 0.0, 0.0], 1.0)
        # Outward normal +x: first nonzero component positive, inside
        assert s.contains([1.0, 0.0, 0.0], [1.0, 1.0, 0.0])
        # Outward normal -x: outside
        assert not s.contains([-1.0, 0.0, 0.0], [-1.0, 1.0, 0.0])
        assert s.contains([0.0, 1.0, 0.0], [0.0, 1.0, 1.0])
        assert not s.contains([0.0, 0.0, -1.0], [1.0, 0.0, -1.0])

    def test_crossings(self):
        s = Sphere([0.0, 0.0, 0.0], 1.0)
        nv = s.first_normal([-2.0, 0.0, 0.0], [2.0, 0.0, 0.0])
        assert nv.u == pytest.approx(0.25)
        np.testing.assert_allclose(nv.normal, [-1.0, 0.0, 0.0])
        nv = s.first_normal([0.0, 0.0, 0.0], [0.0, 4.0, 0.0])
        assert nv.u == pytest.approx(0.25)
        np.testing.assert_allclose(nv.normal, [0.0, 1.0, 0.0])

    def test_tangent_ray_misses(self):
        s = Sphere([0.0, 0.0, 0.0], 1.0)
        assert s.first_intersection([-2.0, 1.0, 0.0], [2.0, 1.0, 0.0]) == NO_CROSSING

    def test_bad_radius(self):
        with pytest.raises(ConfigurationError):
            Sphere([0.0, 0.0, 0.0], 0.0)

    def test_translate(self):
        s = Sphere([0.0, 0.0, 0.0], 1.0)
        s.translate([5.0, 0.0, 0.0])
        assert s.contains([5.5, 0.0, 0.0])
