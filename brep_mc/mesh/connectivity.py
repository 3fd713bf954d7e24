"""
Mesh connectivity table: nodes, elements, tags and face adjacency.

This module holds no geometry beyond element volumes. Element and node
indices are 0-based; NO_ELEMENT (-1) marks a face with nothing across it.

Element types follow the Gmsh numbering. Lines (1), triangles (2) and
tetrahedra (4) are supported. Tetrahedron faces follow the convention
"face i omits node i", ordered so (n2 - n1) x (n3 - n1) points outward
for a positively oriented tetrahedron.
"""

import logging
import numpy as np
from scipy import sparse
from typing import Optional, Sequence

from brep_mc.errors import ConfigurationError

logger = logging.getLogger(__name__)

NO_ELEMENT = -1

LINE = 1
TRIANGLE = 2
TETRAHEDRON = 4

# Nodes per supported element type
ELEMENT_NODE_COUNTS = {LINE: 2, TRIANGLE: 3, TETRAHEDRON: 4}

# Gmsh types that describe volumes (tets, hexes, prisms, pyramids and their
# higher-order variants)
VOLUME_TYPES = frozenset(list(range(4, 8)) + list(range(11, 15))
                         + list(range(17, 20)) + list(range(29, 32)))

# Local node indices of tetrahedron face i (face i omits node i)
TET_FACES = np.array([[1, 2, 3],
                      [0, 3, 2],
                      [0, 1, 3],
                      [0, 2, 1]], dtype=np.int64)


def tet_volumes(nodes: np.ndarray, connectivity: np.ndarray) -> np.ndarray:
    """Signed volumes a.(b x c)/6 of tetrahedra given as (m, 4) node indices."""
    p0 = nodes[connectivity[:, 0]]
    a = nodes[connectivity[:, 1]] - p0
    b = nodes[connectivity[:, 2]] - p0
    c = nodes[connectivity[:, 3]] - p0
    return np.einsum('ij,ij->i', a, np.cross(b, c)) / 6.0


def is_volume_type(element_type: int) -> bool:
    return int(element_type) in VOLUME_TYPES


class ConnectivityTable:
    """
    Node and element storage with derived adjacency.

    Usage:
        table = ConnectivityTable(nodes, tets)          # all elements tetrahedra
        table.adjacent_volume(0, 2)                     # element across face 2 of element 0
        table.boundary_faces()                          # (element, face) pairs on the surface

    Derived tables (face adjacency) are built on first use and record the
    revision they were built against. Every coordinate or topology change
    increments `revision`.
    """

    def __init__(self, nodes, elements: Sequence[Sequence[int]],
                 element_types: Optional[Sequence[int]] = None,
                 tags: Optional[Sequence[Sequence[int]]] = None,
                 node_potentials=None, charge_numbers=None):
        """
        Initialize table.

        Parameters:
            nodes: (N, 3) node coordinates
            elements: Node indices of each element (ragged allowed)
            element_types: Gmsh type of each element (default: all tetrahedra)
            tags: Integer tags of each element (region/material ids)
            node_potentials: (N,) node potentials (default zeros)
            charge_numbers: (M,) element charge numbers (default zeros)
        """
        self.revision = 0
        self._adjacency = None
        self._adjacency_revision = -1
        self._load(nodes, elements, element_types, tags)

        if node_potentials is not None:
            self.set_node_potentials(node_potentials)
        if charge_numbers is not None:
            charge_numbers = np.asarray(charge_numbers, dtype=np.int64)
            if charge_numbers.shape != (self.num_elements,):
                raise ConfigurationError(
                    f"Expected {self.num_elements} charge numbers, got shape {charge_numbers.shape}")
            self._charges = charge_numbers.copy()

    # ------------------------------------------------------------------
    # Loading and validation
    # ------------------------------------------------------------------

    def _load(self, nodes, elements, element_types, tags) -> None:
        nodes = np.array(nodes, dtype=np.float64)
        if nodes.ndim != 2 or nodes.shape[1] != 3:
            raise ConfigurationError(f"Node coordinates must have shape (N, 3), got {nodes.shape}")
        if not np.all(np.isfinite(nodes)):
            raise ConfigurationError("Node coordinates contain non-finite values")
        n_nodes = nodes.shape[0]

        elements = [list(e) for e in elements]
        n_elem = len(elements)
        if element_types is None:
            types = np.full(n_elem, TETRAHEDRON, dtype=np.int64)
        else:
            types = np.asarray(element_types, dtype=np.int64)
            if types.shape != (n_elem,):
                raise ConfigurationError(
                    f"{n_elem} elements but {types.shape[0]} element types")

        connectivity = np.full((n_elem, 4), NO_ELEMENT, dtype=np.int64)
        valid = np.zeros((n_elem, 4), dtype=bool)
        for index, (etype, node_list) in enumerate(zip(types, elements)):
            etype = int(etype)
            if etype not in ELEMENT_NODE_COUNTS:
                if 1 <= etype <= 31:
                    raise ConfigurationError(
                        f"Element {index} is unimplemented type {etype}")
                raise ConfigurationError(
                    f"Encountered invalid element type = {etype} at element # {index}")
            expected = ELEMENT_NODE_COUNTS[etype]
            if len(node_list) != expected:
                raise ConfigurationError(
                    f"Element {index} of type {etype} needs {expected} nodes, got {len(node_list)}")
            connectivity[index, :expected] = node_list
            valid[index, :expected] = True

        used = connectivity[valid]
        if used.size and (used.min() < 0 or used.max() >= n_nodes):
            raise ConfigurationError(
                f"Element node index out of range [0, {n_nodes - 1}]")

        if tags is None:
            tag_list = [()] * n_elem
        else:
            tag_list = [tuple(int(t) for t in tg) for tg in tags]
            if len(tag_list) != n_elem:
                raise ConfigurationError(f"{n_elem} elements but {len(tag_list)} tag entries")

        is_tet = types == TETRAHEDRON
        volumes = np.zeros(n_elem)
        if np.any(is_tet):
            tet_idx = np.flatnonzero(is_tet)
            vols = tet_volumes(nodes, connectivity[tet_idx])
            zero = tet_idx[vols == 0.0]
            if zero.size:
                raise ConfigurationError(f"Tetrahedron {zero[0]} has zero volume")
            flipped = tet_idx[vols < 0.0]
            if flipped.size:
                # Reorient by swapping local nodes 2 and 3
                logger.debug(f"Reorienting {flipped.size} negatively oriented tetrahedra")
                connectivity[flipped, 2], connectivity[flipped, 3] = \
                    connectivity[flipped, 3].copy(), connectivity[flipped, 2].copy()
            volumes[tet_idx] = np.abs(vols)

        self._nodes = nodes
        self._types = types
        self._connectivity = connectivity
        self._tags = tag_list
        self._volumes = volumes
        self._potentials = np.zeros(n_nodes)
        self._charges = np.zeros(n_elem, dtype=np.int64)
        self._node_volumes = self._build_node_incidence()

        logger.debug(f"Connectivity table: {n_nodes} nodes, {n_elem} elements "
                     f"({int(np.count_nonzero(is_tet))} tetrahedra)")

    def _build_node_incidence(self) -> sparse.csr_matrix:
        """Sparse node x element incidence restricted to tetrahedra."""
        tets = np.flatnonzero(self._types == TETRAHEDRON)
        rows = self._connectivity[tets].reshape(-1)
        cols = np.repeat(tets, 4)
        data = np.ones(rows.shape[0], dtype=np.int8)
        incidence = sparse.coo_matrix(
            (data, (rows, cols)), shape=(self.num_nodes, self.num_elements)).tocsr()
        incidence.sort_indices()
        return incidence

    def replace_topology(self, nodes, elements, element_types=None, tags=None) -> None:
        """
        Swap in a new node/element set (e.g. after refinement).

        Potentials and charges are reset. The revision advances and the
        adjacency table is rebuilt on next use.
        """
        self._load(nodes, elements, element_types, tags)
        self._adjacency = None
        self.revision += 1
        logger.info(f"Mesh topology replaced, revision {self.revision}")

    # ------------------------------------------------------------------
    # Counts and element data
    # ------------------------------------------------------------------

    @property
    def num_nodes(self) -> int:
        return self._nodes.shape[0]

    @property
    def num_elements(self) -> int:
        return self._types.shape[0]

    @property
    def num_volume_elements(self) -> int:
        return int(np.count_nonzero(self._types == TETRAHEDRON))

    def element_type(self, index: int) -> int:
        return int(self._types[index])

    def is_volume_type(self, index: int) -> bool:
        return is_volume_type(self._types[index])

    def is_tetrahedron(self, index: int) -> bool:
        return self._types[index] == TETRAHEDRON

    @property
    def tetrahedra(self) -> np.ndarray:
        """Indices of all tetrahedral elements."""
        return np.flatnonzero(self._types == TETRAHEDRON)

    def node_indices(self, index: int) -> np.ndarray:
        count = ELEMENT_NODE_COUNTS[int(self._types[index])]
        return self._connectivity[index, :count].copy()

    def tags(self, index: int) -> tuple:
        return self._tags[index]

    def num_tags(self, index: int) -> int:
        return len(self._tags[index])

    def volume(self, index: int) -> float:
        return float(self._volumes[index])

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> np.ndarray:
        """Read-only view of the node coordinates."""
        view = self._nodes.view()
        view.setflags(write=False)
        return view

    def node_coordinates(self, index: int) -> np.ndarray:
        return self._nodes[index].copy()

    def set_node_coordinates(self, index: int, coords) -> None:
        """
        Move one node. Volumes of its tetrahedra are recomputed.

        Bumps the revision. Tetrahedra already cached by a Mesh keep their
        old geometry until Mesh.initialize_if_needed() is called.
        """
        coords = np.asarray(coords, dtype=np.float64)
        if coords.shape != (3,):
            raise ConfigurationError(f"Node coordinates must be a 3-vector, got {coords.shape}")
        old = self._nodes[index].copy()
        self._nodes[index] = coords
        affected = self.node_adjacent_volumes(index)
        try:
            self._update_volumes(affected)
        except ConfigurationError:
            self._nodes[index] = old
            raise
        self.revision += 1

    def set_all_node_coordinates(self, coords) -> None:
        """Replace every node position (used by rigid transforms)."""
        coords = np.array(coords, dtype=np.float64)
        if coords.shape != self._nodes.shape:
            raise ConfigurationError(
                f"Expected node array of shape {self._nodes.shape}, got {coords.shape}")
        old = self._nodes
        self._nodes = coords
        try:
            self._update_volumes(self.tetrahedra)
        except ConfigurationError:
            self._nodes = old
            raise
        self.revision += 1

    def _update_volumes(self, elements: np.ndarray) -> None:
        if elements.size == 0:
            return
        vols = tet_volumes(self._nodes, self._connectivity[elements])
        bad = elements[vols <= 0.0]
        if bad.size:
            raise ConfigurationError(f"Node move inverts or flattens tetrahedron {bad[0]}")
        self._volumes[elements] = vols

    def node_potential(self, index: int) -> float:
        return float(self._potentials[index])

    def set_node_potential(self, index: int, value: float) -> None:
        self._potentials[index] = value

    @property
    def node_potentials(self) -> np.ndarray:
        return self._potentials.copy()

    def set_node_potentials(self, values) -> None:
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (self.num_nodes,):
            raise ConfigurationError(
                f"Expected {self.num_nodes} node potentials, got shape {values.shape}")
        self._potentials = values.copy()

    def node_adjacent_volumes(self, index: int) -> np.ndarray:
        """Sorted indices of the tetrahedra that use node `index`."""
        start, stop = self._node_volumes.indptr[index], self._node_volumes.indptr[index + 1]
        return self._node_volumes.indices[start:stop].astype(np.int64)

    # ------------------------------------------------------------------
    # Charges
    # ------------------------------------------------------------------

    def charge_number(self, index: int) -> int:
        return int(self._charges[index])

    def set_charge_number(self, index: int, n: int) -> None:
        self._charges[index] = n

    def increment_charge_number(self, index: int) -> None:
        self._charges[index] += 1

    def decrement_charge_number(self, index: int) -> None:
        self._charges[index] -= 1

    @property
    def charge_numbers(self) -> np.ndarray:
        return self._charges.copy()

    def clear_charges(self) -> None:
        self._charges[:] = 0

    def clear_potentials(self) -> None:
        self._potentials[:] = 0.0

    # ------------------------------------------------------------------
    # Faces and adjacency
    # ------------------------------------------------------------------

    def tet_face_node_indices(self, index: int, face: int) -> np.ndarray:
        """Node indices of face `face` of tetrahedron `index`."""
        if not 0 <= face < 4:
            raise ValueError(f"Face index must be 0..3, got {face}")
        return self._connectivity[index, TET_FACES[face]].copy()

    def _build_adjacency(self) -> np.ndarray:
        tets = self.tetrahedra
        adjacency = np.full((self.num_elements, 4), NO_ELEMENT, dtype=np.int64)
        if tets.size == 0:
            return adjacency

        faces = self._connectivity[tets][:, TET_FACES].reshape(-1, 3)
        keys = np.sort(faces, axis=1)
        _, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
        inverse = inverse.reshape(-1)
        if counts.max() > 2:
            raise ConfigurationError(
                f"A face is shared by {counts.max()} volume elements (at most 2 allowed)")

        # Entries of the same face end up adjacent after a stable sort
        order = np.argsort(inverse, kind='stable')
        paired = order[counts[inverse[order]] == 2].reshape(-1, 2)
        a, b = paired[:, 0], paired[:, 1]
        adjacency[tets[a // 4], a % 4] = tets[b // 4]
        adjacency[tets[b // 4], b % 4] = tets[a // 4]

        logger.debug(f"Adjacency built: {paired.shape[0]} shared faces, "
                     f"{int(np.count_nonzero(counts == 1))} boundary faces")
        return adjacency

    def _ensure_adjacency(self) -> np.ndarray:
        if self._adjacency is None or self._adjacency_revision != self.revision:
            self._adjacency = self._build_adjacency()
            self._adjacency_revision = self.revision
        return self._adjacency

    def adjacent_volume(self, index: int, face: int) -> int:
        """Element across face `face` of element `index`, or NO_ELEMENT."""
        return int(self._ensure_adjacency()[index, face])

    def boundary_faces(self) -> np.ndarray:
        """(K, 2) array of (element, face) pairs with nothing across them."""
        adjacency = self._ensure_adjacency()
        tets = self.tetrahedra
        elem, face = np.nonzero(adjacency[tets] == NO_ELEMENT)
        return np.column_stack([tets[elem], face]).astype(np.int64)

    def extended_adjacent_volumes(self, index: int, face: int) -> np.ndarray:
        """
        Tetrahedra sharing at least one node with a face, most specific first.

        Elements sharing all 3 face nodes come first, then those sharing 2,
        then 1; ties are ordered by ascending index. Element `index` itself
        is excluded.

        Parameters:
            index: Tetrahedron index
            face: Local face index

        Returns:
            Candidate element indices
        """
        face_nodes = self.tet_face_node_indices(index, face)
        candidates = np.concatenate([self.node_adjacent_volumes(n) for n in face_nodes])
        candidates = candidates[candidates != index]
        if candidates.size == 0:
            return candidates
        ids, counts = np.unique(candidates, return_counts=True)
        order = np.lexsort((ids, -counts))
        return ids[order]

    def __repr__(self):
        return (f"ConnectivityTable(nodes={self.num_nodes}, elements={self.num_elements}, "
                f"revision={self.revision})")
