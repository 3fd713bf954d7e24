"""
Mesh aggregate: connectivity table plus cached elements and surface shape.

The Mesh owns every derived object built from a ConnectivityTable:

    tetrahedra       built on first request, kept in an index-keyed cache
    surface          Triangle per boundary face
    shape            MeshBoundary used for point location

All of them are rebuilt by initialize_if_needed() when the table's revision
has moved on since they were made.

Usage:
    table = ConnectivityTable(nodes, tets)
    mesh = Mesh(table)
    mesh.shape.contains([0.2, 0.1, 0.3])
    mesh.potential_at(points)
"""

import logging
import numpy as np
from tqdm import tqdm
from typing import Optional

from brep_mc.config import Tolerances, resolve
from brep_mc.core.shape import as_point
from brep_mc.core.transform import rotate_points, translate_points
from brep_mc.mesh.boundary import MeshBoundary, Triangle
from brep_mc.mesh.connectivity import ConnectivityTable, is_volume_type
from brep_mc.mesh.tetrahedron import Tetrahedron

logger = logging.getLogger(__name__)


class Mesh:
    """
    Tetrahedral mesh with element cache and point-location shape.

    Element cross-references are indices into `table`; Tetrahedron objects
    are only a cached view of one row of it.
    """

    def __init__(self, table: ConnectivityTable, tolerances: Optional[Tolerances] = None):
        """
        Initialize mesh.

        Parameters:
            table: Node/element connectivity
            tolerances: Numerical tolerances (default: DEFAULT_TOLERANCES)
        """
        self.table = table
        self.tolerances = resolve(tolerances)
        self._elements = {}
        self._revision = -1
        self.boundary_triangles = []
        self.shape = None
        self.initialize_if_needed()

    # ------------------------------------------------------------------
    # Caches
    # ------------------------------------------------------------------

    def initialize_if_needed(self) -> bool:
        """
        Rebuild the caches if the table changed since the last build.

        Returns:
            True if a rebuild was done
        """
        if self.table.revision == self._revision:
            return False
        self._elements = {}
        faces = self.table.boundary_faces()
        self.boundary_triangles = [Triangle(self, int(e), int(f)) for e, f in faces]
        self.shape = MeshBoundary(self)
        self._revision = self.table.revision
        logger.info(f"Mesh initialised: {self.table.num_volume_elements} tetrahedra, "
                    f"{len(self.boundary_triangles)} surface triangles, "
                    f"revision {self._revision}")
        return True

    def tetrahedron(self, index: int) -> Tetrahedron:
        """
        Cached Tetrahedron for element `index` (built on first request).

        The revision is not checked here. After editing nodes or topology
        through the ConnectivityTable directly, call initialize_if_needed()
        before querying; until then cached elements keep their old geometry.
        """
        tet = self._elements.get(index)
        if tet is None:
            tet = Tetrahedron(self, index)
            self._elements[index] = tet
        return tet

    def has_tetrahedron(self, index: int) -> bool:
        """True if element `index` is already in the cache."""
        return index in self._elements

    @property
    def cache_size(self) -> int:
        return len(self._elements)

    def clear_elements_cache(self) -> None:
        """
        Drop cached elements.

        Elements held elsewhere are no longer updated by update_all_potentials().
        """
        self._elements = {}

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def _move_nodes(self, coords: np.ndarray) -> None:
        self.table.set_all_node_coordinates(coords)
        self._elements = {}
        for triangle in self.boundary_triangles:
            triangle.update_geom()
        self.shape.update_geom()
        # Node motion is not a topology change
        self._revision = self.table.revision

    def translate(self, distance) -> None:
        self._move_nodes(translate_points(self.table.nodes, as_point(distance)))

    def rotate(self, pivot, phi: float, theta: float, psi: float) -> None:
        self._move_nodes(rotate_points(self.table.nodes, as_point(pivot), phi, theta, psi))

    # ------------------------------------------------------------------
    # Charges and potentials
    # ------------------------------------------------------------------

    def update_all_potentials(self) -> None:
        """Refit the potential of every cached element."""
        for tet in self._elements.values():
            tet.update_potentials()

    def update_element_potentials_if_exists(self, index: int) -> None:
        tet = self._elements.get(index)
        if tet is not None:
            tet.update_potentials()

    def set_node_potentials(self, indices, values) -> None:
        """
        Set the potential of several nodes.

        Parameters:
            indices: Node indices
            values: Potentials, same length as indices
        """
        indices = np.asarray(indices, dtype=np.int64)
        values = np.asarray(values, dtype=np.float64)
        if indices.shape != values.shape:
            raise ValueError(
                f"set_node_potentials got {indices.size} indices and {values.size} values")
        for index, value in zip(indices, values):
            self.table.set_node_potential(int(index), float(value))

    def clear_electrical(self) -> None:
        """Zero all charges and node potentials."""
        self.table.clear_charges()
        self.table.clear_potentials()
        self.update_all_potentials()

    def charge_from_tag(self, tag: int) -> int:
        """Total charge number of the volume elements whose first tag is `tag`."""
        total = 0
        for index in range(self.table.num_elements):
            tags = self.table.tags(index)
            if is_volume_type(self.table.element_type(index)) and tags and tags[0] == tag:
                total += self.table.charge_number(index)
        return total

    # ------------------------------------------------------------------
    # Batch queries
    # ------------------------------------------------------------------

    def _locate_all(self, points, desc: str):
        """Yield the containing Tetrahedron (or None) for each point."""
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        for p in tqdm(points, desc=desc, disable=not self.tolerances.progress):
            if self.shape.contains(p):
                yield self.shape.containing_element()
            else:
                yield None

    def potential_at(self, points) -> np.ndarray:
        """Potential at each point; 0 outside the mesh."""
        values = [0.0 if tet is None else tet.potential(p)
                  for p, tet in zip(np.atleast_2d(points), self._locate_all(points, "potential"))]
        return np.array(values)

    def charge_number_at(self, points) -> np.ndarray:
        """Charge number of the element containing each point; 0 outside."""
        values = [0 if tet is None else tet.charge_number
                  for tet in self._locate_all(points, "charge number")]
        return np.array(values, dtype=np.int64)

    def charge_density_at(self, points) -> np.ndarray:
        """Charge density of the element containing each point; 0 outside."""
        values = [0.0 if tet is None else tet.charge_density
                  for tet in self._locate_all(points, "charge density")]
        return np.array(values)

    def __repr__(self):
        return (f"Mesh(tetrahedra={self.table.num_volume_elements}, "
                f"surface={len(self.boundary_triangles)}, revision={self._revision})")
