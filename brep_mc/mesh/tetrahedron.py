"""
Tetrahedral volume element of a mesh.

A Tetrahedron is a four-plane convex polytope whose planes come from the
node coordinates held by the mesh's connectivity table. It also knows its
neighbours (by index) and carries the linear potential interpolated from its
four node potentials.

Face planes are computed from the face's node ids in ascending order and then
flipped to point outward. Two tetrahedra sharing a face therefore hold
bitwise-opposite planes, and the tie-break gives a point on that face to
exactly one of them.
"""

import logging
import numpy as np
from scipy import linalg
from typing import Optional

from brep_mc.core.polytope import clip_segment, halfspaces_contain, halfspaces_contain_point
from brep_mc.core.shape import (
    ConnectedShape, ShapeKind, Intersection, as_point, no_intersection,
)
from brep_mc.errors import ConfigurationError
from brep_mc.mesh.connectivity import NO_ELEMENT

logger = logging.getLogger(__name__)


def canonical_face_plane(nodes: np.ndarray, face_nodes: np.ndarray,
                         opposite: np.ndarray):
    """
    Outward plane of a tetrahedron face.

    Parameters:
        nodes: (N, 3) node coordinates
        face_nodes: The three node ids of the face
        opposite: Coordinates of the node not on the face

    Returns:
        (unit normal, offset) with n.x = offset on the face and n pointing
        away from `opposite`
    """
    a, b, c = nodes[np.sort(face_nodes)]
    normal = np.cross(b - a, c - a)
    normal = normal / np.linalg.norm(normal)
    offset = normal[0] * a[0] + normal[1] * a[1] + normal[2] * a[2]
    if np.dot(normal, opposite - a) > 0.0:
        return -normal, -offset
    return normal, offset


class Tetrahedron(ConnectedShape):
    """
    A 4-node tetrahedron owned by a Mesh.

    Obtain instances through Mesh.tetrahedron(index), which caches them.
    After node coordinates change call update_geom(); after node potentials
    change call update_potentials().
    """

    kind = ShapeKind.TETRAHEDRON

    def __init__(self, mesh, index: int):
        """
        Initialize tetrahedron.

        Parameters:
            mesh: Owning Mesh
            index: Element index in the mesh's connectivity table
        """
        super().__init__()
        table = mesh.table
        if not 0 <= index < table.num_elements or not table.is_tetrahedron(index):
            raise ConfigurationError(f"Element {index} is not a tetrahedron")
        self.mesh = mesh
        self.index = int(index)
        self.node_indices = table.node_indices(index)

        self._normals = np.zeros((4, 3))
        self._offsets = np.zeros(4)
        self._areas = np.zeros(4)
        self._center = np.zeros(3)

        # Set by first_normal
        self.intersected_face = -1
        self.tie = False
        self._segment = None

        self._sphere_radius = None
        self._coefficients = np.zeros(4)
        self.update_geom()

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def update_geom(self) -> None:
        """Recompute face planes, center and potentials from the node coordinates."""
        table = self.mesh.table
        nodes = table.nodes
        corners = nodes[self.node_indices]
        for face in range(4):
            face_nodes = table.tet_face_node_indices(self.index, face)
            normal, offset = canonical_face_plane(nodes, face_nodes, corners[face])
            self._normals[face] = normal
            self._offsets[face] = offset
            a, b, c = nodes[face_nodes]
            self._areas[face] = 0.5 * np.linalg.norm(np.cross(b - a, c - a))
        self._center = corners.mean(axis=0)
        self._sphere_radius = None
        self.update_potentials()

    @property
    def center(self) -> np.ndarray:
        """Centroid (mean of the four nodes)."""
        return self._center.copy()

    @property
    def volume(self) -> float:
        return self.mesh.table.volume(self.index)

    def face_area(self, face: int) -> float:
        return float(self._areas[face])

    def face_normal(self, face: int) -> np.ndarray:
        """Outward unit normal of face `face` (the face omitting node `face`)."""
        return self._normals[face].copy()

    def face_offset(self, face: int) -> float:
        return float(self._offsets[face])

    @property
    def equivalent_sphere_radius(self) -> float:
        """Radius of the sphere with the same volume."""
        if self._sphere_radius is None:
            self._sphere_radius = (3.0 * self.volume / (4.0 * np.pi)) ** (1.0 / 3.0)
        return self._sphere_radius

    def node_coordinates(self, local: int) -> np.ndarray:
        return self.mesh.table.node_coordinates(self.node_indices[local])

    # ------------------------------------------------------------------
    # Shape contract
    # ------------------------------------------------------------------

    def contains(self, p0, p1=None) -> bool:
        p0 = as_point(p0)
        if p1 is None:
            return halfspaces_contain_point(self._normals, self._offsets, p0)
        return halfspaces_contain(self._normals, self._offsets, p0, as_point(p1))

    def first_normal(self, p0, p1) -> Intersection:
        p0 = as_point(p0)
        p1 = as_point(p1)
        face, u, tie = clip_segment(self._normals, self._offsets, p0, p1)
        self.intersected_face = face
        self.tie = tie
        if face < 0:
            self._segment = None
            return self._record(no_intersection())
        self._segment = (p0.copy(), p1.copy()) if tie else None
        return self._record(Intersection(self._normals[face].copy(), u))

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def adjacent_index(self, face: int) -> int:
        """Index of the element across `face`, or NO_ELEMENT."""
        return self.mesh.table.adjacent_volume(self.index, face)

    def adjacent(self, face: int) -> Optional['Tetrahedron']:
        other = self.adjacent_index(face)
        if other == NO_ELEMENT:
            return None
        return self.mesh.tetrahedron(other)

    def containing_element(self) -> 'Tetrahedron':
        return self

    def next_element(self) -> Optional['Tetrahedron']:
        """
        Element on the other side of the face hit by the last first_normal.

        Returns:
            The neighbour across the face, or None when the segment left the
            mesh. When the hit was exactly on an edge or vertex the neighbour
            is chosen among every element touching the face: the first (most
            shared nodes, then lowest index) that the same segment enters
            within (0, 1].
        """
        if self.intersected_face < 0:
            return None
        if not self.tie:
            return self.adjacent(self.intersected_face)

        p0, p1 = self._segment
        candidates = self.mesh.table.extended_adjacent_volumes(self.index, self.intersected_face)
        for index in candidates:
            candidate = self.mesh.tetrahedron(int(index))
            u = candidate.first_intersection(p0, p1)
            if 0.0 < u <= 1.0:
                return candidate
        return None

    # ------------------------------------------------------------------
    # Potential and charge
    # ------------------------------------------------------------------

    def update_potentials(self) -> None:
        """
        Fit the linear potential V(x) = v0 - E.x through the four node potentials.
        """
        table = self.mesh.table
        corners = table.nodes[self.node_indices]
        matrix = np.column_stack([np.ones(4), corners])
        values = table.node_potentials[self.node_indices]
        self._coefficients = linalg.solve(matrix, values)

    @property
    def v0(self) -> float:
        return float(self._coefficients[0])

    @property
    def e_field(self) -> np.ndarray:
        """Uniform electric field inside the element (minus the potential gradient)."""
        return -self._coefficients[1:]

    def potential(self, x) -> float:
        x = as_point(x)
        return float(self._coefficients[0] + np.dot(self._coefficients[1:], x))

    @property
    def charge_number(self) -> int:
        return self.mesh.table.charge_number(self.index)

    def set_charge_number(self, n: int) -> None:
        self.mesh.table.set_charge_number(self.index, n)

    def increment_charge_number(self) -> None:
        self.mesh.table.increment_charge_number(self.index)

    def decrement_charge_number(self) -> None:
        self.mesh.table.decrement_charge_number(self.index)

    @property
    def charge_density(self) -> float:
        """Charge number per unit volume."""
        return self.charge_number / self.volume

    def __repr__(self):
        return f"Tetrahedron(index={self.index})"
