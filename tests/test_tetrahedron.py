"""Tests for Tetrahedron geometry, navigation and potentials."""

import numpy as np
import pytest

from brep_mc.core.shape import NO_CROSSING
from brep_mc.errors import ConfigurationError
from brep_mc.mesh.connectivity import ConnectivityTable, LINE, NO_ELEMENT, TETRAHEDRON
from brep_mc.mesh.mesh import Mesh


def test_geometry_of_unit_corner_tet(two_tets):
    tet = two_tets.tetrahedron(1)   # (0,0,0), (1,0,0), (0,1,0), (0,0,1)
    assert tet.volume == pytest.approx(1.0 / 6.0)
    np.testing.assert_allclose(tet.center, [0.25, 0.25, 0.25])
    assert tet.equivalent_sphere_radius == pytest.approx((3.0 / (4.0 * np.pi * 6.0)) ** (1.0 / 3.0))

    # Face 3 omits the apex (0,0,1): the bottom face z = 0, pointing down
    np.testing.assert_allclose(tet.face_normal(3), [0.0, 0.0, -1.0])
    assert tet.face_area(3) == pytest.approx(0.5)
    assert tet.face_area(0) == pytest.approx(np.sqrt(3.0) / 2.0)


def test_face_normals_point_outward(grid_mesh):
    for index in grid_mesh.table.tetrahedra[:30]:
        tet = grid_mesh.tetrahedron(int(index))
        for face in range(4):
            # The omitted node lies behind its face
            opposite = tet.node_coordinates(face)
            n = tet.face_normal(face)
            assert np.dot(n, opposite) < tet.face_offset(face)
            assert np.linalg.norm(n) == pytest.approx(1.0)


def test_shared_faces_have_exactly_opposite_planes(grid_mesh):
    table = grid_mesh.table
    for index in table.tetrahedra:
        for face in range(4):
            other = table.adjacent_volume(int(index), face)
            if other == NO_ELEMENT:
                continue
            a = grid_mesh.tetrahedron(int(index))
            b = grid_mesh.tetrahedron(other)
            back = [f for f in range(4) if table.adjacent_volume(other, f) == index]
            assert len(back) == 1
            assert np.array_equal(a.face_normal(face), -b.face_normal(back[0]))
            assert a.face_offset(face) == -b.face_offset(back[0])


def test_non_tetrahedron_element_rejected():
    nodes = [[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, 0, 1]]
    table = ConnectivityTable(nodes, [[0, 1, 2, 3], [0, 1]], element_types=[TETRAHEDRON, LINE])
    mesh = Mesh(table)
    with pytest.raises(ConfigurationError):
        mesh.tetrahedron(1)


def test_contains_and_first_normal_from_inside(two_tets):
    tet = two_tets.tetrahedron(1)
    assert tet.contains([0.1, 0.1, 0.1])
    assert not tet.contains([0.5, 0.5, 0.5])

    nv = tet.first_normal([0.1, 0.1, 0.1], [0.1, 0.1, -0.3])
    assert nv.u == pytest.approx(0.25)
    np.testing.assert_allclose(nv.normal, [0.0, 0.0, -1.0])
    assert tet.intersected_face == 3
    assert tet.tie is False

    assert tet.first_intersection([0.1, 0.1, 0.1], [0.15, 0.1, 0.1]) == NO_CROSSING
    assert tet.intersected_face == -1


def test_ray_ending_on_shared_face_moves_to_neighbour(two_tets):
    # Ends exactly on the common face; the continuation lies in the upper tet
    lower = two_tets.tetrahedron(0)
    upper = two_tets.tetrahedron(1)
    p0 = np.array([0.2, 0.2, -0.3])
    p1 = np.array([0.2, 0.2, 0.0])

    nv = lower.first_normal(p0, p1)
    assert nv.u == 1.0
    np.testing.assert_array_equal(nv.normal, [0.0, 0.0, 1.0])
    assert lower.next_element() is upper

    # Point on the face: ownership follows the direction of travel
    assert upper.contains(p1, p1 + [0.0, 0.0, 0.1])
    assert not lower.contains(p1, p1 + [0.0, 0.0, 0.1])
    assert lower.contains(p1, p1 - [0.0, 0.0, 0.1])
    assert not upper.contains(p1, p1 - [0.0, 0.0, 0.1])


def test_leaving_the_mesh_gives_no_next_element(two_tets):
    upper = two_tets.tetrahedron(1)
    upper.first_normal([0.2, 0.2, 0.2], [0.2, 0.2, 2.0])
    assert upper.next_element() is None


def test_edge_hit_picks_element_across_the_edge(quadrant_tets):
    # Straight through the z axis from the +x+y quadrant into the -x-y one
    first = quadrant_tets.tetrahedron(0)
    p0 = np.array([0.25, 0.25, 0.25])
    p1 = np.array([-0.25, -0.25, 0.25])

    nv = first.first_normal(p0, p1)
    assert nv.u == 0.5
    assert first.tie is True
    assert first.next_element() is quadrant_tets.tetrahedron(2)


def test_potential_is_linear_fit_of_node_values(kuhn_cube):
    table = kuhn_cube.table
    coeff = np.array([1.0, 2.0, -3.0, 0.5])
    table.set_node_potentials(coeff[0] + table.nodes @ coeff[1:])
    kuhn_cube.update_all_potentials()

    tet = kuhn_cube.tetrahedron(2)
    tet.update_potentials()
    assert tet.v0 == pytest.approx(1.0)
    np.testing.assert_allclose(tet.e_field, [-2.0, 3.0, -0.5], atol=1e-12)
    x = tet.center
    assert tet.potential(x) == pytest.approx(coeff[0] + x @ coeff[1:])


def test_charge_accessors_write_through_to_table(kuhn_cube):
    tet = kuhn_cube.tetrahedron(4)
    tet.set_charge_number(3)
    tet.increment_charge_number()
    tet.decrement_charge_number()
    tet.decrement_charge_number()
    assert tet.charge_number == 2
    assert kuhn_cube.table.charge_number(4) == 2
    assert tet.charge_density == pytest.approx(2.0 / (1.0 / 6.0))


def test_update_geom_after_node_move(two_tets):
    tet = two_tets.tetrahedron(1)
    two_tets.table.set_node_coordinates(4, [0.0, 0.0, 2.0])
    tet.update_geom()
    assert tet.volume == pytest.approx(2.0 / 6.0)
    assert tet.contains([0.1, 0.1, 1.5])
