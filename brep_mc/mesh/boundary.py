"""
Mesh surface and walk-based point location.

The mesh surface is the set of tetrahedron faces with no neighbour. Each such
face is a Triangle; MeshBoundary is the Shape formed by all of them.

Point location (MeshBoundary.contains) walks from a tetrahedron known to be
inside the mesh toward the query point. Each step intersects the segment
"current element center -> target" with the current element and moves to the
element across the face that was hit. Leaving the mesh switches to the
outside state, where the next step is a scan of the surface triangles. The
walk ends when the target lies before the next crossing.
"""

import logging
import numpy as np

from brep_mc.config import resolve
from brep_mc.core.shape import (
    ConnectedShape, ShapeKind, Intersection, NO_CROSSING, tie_break_inside,
    as_point, no_intersection,
)
from brep_mc.errors import ConfigurationError, InternalConsistencyFault
from brep_mc.mesh.connectivity import NO_ELEMENT

logger = logging.getLogger(__name__)

# Doublings tried when stepping off the mesh surface
MAX_NUDGES = 64


class Triangle:
    """
    A face of the mesh surface.

    The triangle shares the plane of face `face` of element `inside`, so its
    normal points out of the mesh. Sides run counterclockwise seen from
    outside: side i goes from vertex i to vertex i+1.
    """

    def __init__(self, mesh, inside: int, face: int):
        self.mesh = mesh
        self.inside = int(inside)
        self.face = int(face)
        self.node_indices = mesh.table.tet_face_node_indices(inside, face)
        self.next_index = NO_ELEMENT
        self.update_geom()

    def update_geom(self) -> None:
        tet = self.mesh.tetrahedron(self.inside)
        self.normal = tet.face_normal(self.face)
        self.offset = tet.face_offset(self.face)
        self.vertices = self.mesh.table.nodes[self.node_indices]
        self.sides = np.roll(self.vertices, -1, axis=0) - self.vertices

    def _inside_edge(self, side: int, x: np.ndarray) -> float:
        """Positive if x is inside edge `side`, negative outside, 0 on it."""
        return float(np.dot(np.cross(self.sides[side], x - self.vertices[side]), self.normal))

    def _associated_intersection(self, p0, p1) -> float:
        """Crossing of the segment with the element that owns this face."""
        self.next_index = self.inside
        return self.mesh.tetrahedron(self.inside).first_intersection(p0, p1)

    def first_normal(self, p0: np.ndarray, p1: np.ndarray) -> Intersection:
        """
        Crossing of p0 -> p1 with the triangle.

        Returns:
            Intersection(outward normal, u). u > 1 if the segment misses.
            next_index is left at the element on the far side of the crossing.
        """
        n = self.normal
        delta = p1 - p0
        denominator = n[0] * delta[0] + n[1] * delta[1] + n[2] * delta[2]
        numerator = self.offset - (p0[0] * n[0] + p0[1] * n[1] + p0[2] * n[2])

        if denominator == 0.0:
            # Edge-on: the owning element decides
            if numerator == 0.0 and tie_break_inside(n[0], n[1], n[2]):
                return Intersection(n.copy(), self._associated_intersection(p0, p1))
            return Intersection(n.copy(), NO_CROSSING)

        u = numerator / denominator
        self.next_index = self.inside if numerator < 0.0 else NO_ELEMENT
        if u <= 0.0 or u > 1.0:
            return Intersection(n.copy(), NO_CROSSING)

        x = p0 + u * delta
        on_side = False
        for side in range(3):
            val = self._inside_edge(side, x)
            if val < 0.0:
                return Intersection(n.copy(), NO_CROSSING)
            on_side = on_side or val == 0.0
        # On a side the owning element decides, unless the segment ends there
        if on_side and u < 1.0:
            u = self._associated_intersection(p0, p1)
        return Intersection(n.copy(), u)

    def __repr__(self):
        return f"Triangle(inside={self.inside}, face={self.face})"


class MeshBoundary(ConnectedShape):
    """
    The closed region covered by a mesh's tetrahedra.

    Usage:
        shape = mesh.shape
        shape.contains(point)                  # walk from the anchor element
        shape.containing_element()             # Tetrahedron holding the point
        shape.first_normal(p0, p1)             # nearest surface crossing
    """

    kind = ShapeKind.MESH_BOUNDARY

    def __init__(self, mesh):
        super().__init__()
        self.mesh = mesh
        self.tolerances = resolve(mesh.tolerances)
        self._containing = None
        self._next_index = NO_ELEMENT
        self.anchor = self._find_anchor()
        self.inside_point = self.anchor.center
        self._collect_planes()

    def _find_anchor(self):
        """The tetrahedron nearest the middle element index."""
        table = self.mesh.table
        n = table.num_elements
        middle = n // 2
        for index in list(range(middle, n)) + list(range(middle - 1, -1, -1)):
            if table.is_tetrahedron(index):
                return self.mesh.tetrahedron(index)
        raise ConfigurationError("No tetrahedra in the mesh")

    def update_geom(self) -> None:
        """Refresh the anchor point after the nodes moved."""
        self.anchor = self.mesh.tetrahedron(self.anchor.index)
        self.anchor.update_geom()
        self.inside_point = self.anchor.center
        self._collect_planes()
        if self._containing is not None:
            self._containing = self.mesh.tetrahedron(self._containing.index)
            self._containing.update_geom()

    def _collect_planes(self) -> None:
        triangles = self.mesh.boundary_triangles
        self._surface_normals = np.array([t.normal for t in triangles]).reshape(-1, 3)
        self._surface_offsets = np.array([t.offset for t in triangles], dtype=np.float64)

    @property
    def triangles(self):
        return self.mesh.boundary_triangles

    # ------------------------------------------------------------------
    # Surface crossing
    # ------------------------------------------------------------------

    def first_normal(self, p0, p1) -> Intersection:
        """Nearest crossing with any surface triangle, scanning them all."""
        p0 = as_point(p0)
        p1 = as_point(p1)
        best = no_intersection()
        self._next_index = NO_ELEMENT
        for triangle in self.triangles:
            nv = triangle.first_normal(p0, p1)
            if 0.0 < nv.u < best.u:
                best = nv
                self._next_index = triangle.next_index
        return self._record(best)

    def next_element(self):
        """Element entered at the last surface crossing."""
        if self._next_index == NO_ELEMENT:
            return None
        return self.mesh.tetrahedron(self._next_index)

    def containing_element(self):
        """Tetrahedron found to hold the point of the last contains() call."""
        return self._containing

    # ------------------------------------------------------------------
    # Point location
    # ------------------------------------------------------------------

    def contains(self, p0, p1=None, start=None, start_point=None) -> bool:
        """
        Is p0 inside the mesh?

        Parameters:
            p0: Point under test
            p1: Optional direction point used when p0 lies on a face
            start: Tetrahedron to start the walk from (default: the anchor)
            start_point: Point inside `start` (default: its center)

        Returns:
            True if p0 is in some element. containing_element() then
            returns that element, otherwise None.
        """
        p0 = as_point(p0)
        if p1 is not None:
            p1 = as_point(p1)
        current = self.anchor if start is None else start
        position = current.center if start_point is None else as_point(start_point)
        return self._walk(p0, p1, current, position)

    def _walk(self, p0, p1, current, position) -> bool:
        tol = self.tolerances
        cap = tol.walk_cap(self.mesh.table.num_volume_elements)
        previous = None
        inside = True
        self._containing = None

        u = current.first_intersection(position, p0)
        steps = 0
        while u < 1.0:
            steps += 1
            if steps > cap:
                raise InternalConsistencyFault(
                    f"Mesh walk exceeded {cap} steps locating {p0}", steps=steps)

            nxt = current.next_element()
            if (nxt is not None and nxt is previous) or \
                    (nxt is None and previous is self and u > 1.0 - tol.backtrack_tolerance):
                return self._resolve_backtrack(p0, p1, current, nxt)

            previous = current
            current = nxt
            if inside and current is None:
                # Leaving the mesh: step just past the surface
                position = self._step_outside(position, p0, u, previous, steps)
                current = self
                inside = False
            elif current is None:
                raise InternalConsistencyFault(
                    "Surface crossing did not lead into an element", steps=steps)
            else:
                inside = True
                position = current.center
            u = current.first_intersection(position, p0)

        if inside:
            if p1 is None:
                self._containing = current
                return True
            return self._settle(p0, p1, current)
        # p0 is exactly on the mesh surface, or on a side the scan could not
        # attribute to a triangle
        nxt = current.next_element() if u == 1.0 else None
        if nxt is None:
            return self._surface_owner(p0, p1)
        if p1 is None:
            self._containing = nxt
            return True
        return self._settle(p0, p1, nxt)

    def _settle(self, p0, p1, element) -> bool:
        """
        Owner of p0 (given direction p1, if any) once the walk has reached `element`.

        p0 may lie on a face, edge or vertex of `element`, in which case the
        owner is `element` or one of the elements sharing a node with it.
        None of them owning p0 means p1 points out through the mesh surface.
        """
        if element.contains(p0, p1):
            self._containing = element
            return True
        neighbours = self._node_neighbours(element.node_indices)
        return self._first_owner(p0, p1, neighbours[neighbours != element.index])

    def _surface_owner(self, p0, p1) -> bool:
        """
        Owner of a p0 the outside scan did not reach.

        A target on a surface edge or vertex can slip between the triangles
        of the scan. It still lies in the plane of a surface triangle, and
        only elements sharing a node with such a triangle can hold it.
        """
        residual = np.abs(self._surface_offsets - self._surface_normals @ p0)
        limit = self.tolerances.backtrack_tolerance * max(1.0, float(np.max(np.abs(p0))))
        coplanar = np.nonzero(residual <= limit)[0]
        if coplanar.size == 0:
            return False
        triangles = self.triangles
        nodes = np.concatenate([triangles[t].node_indices for t in coplanar])
        return self._first_owner(p0, p1, self._node_neighbours(np.unique(nodes)))

    def _node_neighbours(self, node_indices) -> np.ndarray:
        """Sorted indices of the tetrahedra using any of `node_indices`."""
        table = self.mesh.table
        return np.unique(np.concatenate(
            [table.node_adjacent_volumes(int(n)) for n in node_indices]))

    def _first_owner(self, p0, p1, candidates) -> bool:
        for index in candidates:
            candidate = self.mesh.tetrahedron(int(index))
            if candidate.contains(p0, p1):
                self._containing = candidate
                return True
        return False

    def _step_outside(self, position, p0, u, element, steps) -> np.ndarray:
        """A point on the segment just outside `element`, past its exit face."""
        exit_point = position + u * (p0 - position)
        leg = p0 - exit_point
        fraction = self.tolerances.boundary_nudge
        for _ in range(MAX_NUDGES):
            candidate = exit_point + fraction * leg
            if not element.contains(candidate):
                return candidate
            fraction *= 2.0
        raise InternalConsistencyFault(
            f"Could not step off the mesh surface near {exit_point}", steps=steps)

    def _resolve_backtrack(self, p0, p1, current, other) -> bool:
        """
        Settle a walk that bounced between two candidates.

        The owner is a candidate or an element sharing a node with one. When
        one side is outside the mesh, p0 is outside unless it lies on the
        surface; otherwise every element is checked.
        """
        if current is self:
            current, other = other, None
        if self._settle(p0, p1, current):
            return True
        if other is None or other is self:
            return self._surface_owner(p0, p1)
        if self._settle(p0, p1, other):
            return True
        logger.warning(f"Walk backtracked between elements {current.index} and "
                       f"{other.index}; falling back to a full scan for {p0}")
        return self.brute_force_contains(p0, p1)

    def brute_force_contains(self, p0, p1=None) -> bool:
        """Test every tetrahedron in turn (the lowest index containing p0 wins)."""
        p0 = as_point(p0)
        for index in self.mesh.table.tetrahedra:
            tet = self.mesh.tetrahedron(int(index))
            found = tet.contains(p0) if p1 is None else tet.contains(p0, p1)
            if found:
                self._containing = tet
                return True
        self._containing = None
        return False

    # ------------------------------------------------------------------
    # Transforms are applied to the whole mesh
    # ------------------------------------------------------------------

    @property
    def supports_transform(self) -> bool:
        return True

    def translate(self, distance) -> None:
        self.mesh.translate(distance)

    def rotate(self, pivot, phi: float, theta: float, psi: float) -> None:
        self.mesh.rotate(pivot, phi, theta, psi)

    def __repr__(self):
        return f"MeshBoundary(triangles={len(self.triangles)})"
