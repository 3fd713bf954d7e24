"""Shared fixtures: small tetrahedral meshes with known geometry."""

from itertools import permutations

import numpy as np
import pytest

from brep_mc.mesh.connectivity import ConnectivityTable
from brep_mc.mesh.mesh import Mesh


def kuhn_grid(n, size=1.0, skip=None):
    """
    Cube [0, size]^3 cut into n^3 cells, each split into 6 Kuhn tetrahedra.

    Cell (i, j, k) yields tetrahedra 6*c .. 6*c + 5 (c = cell order), one per
    axis permutation: the path corner -> +e_a -> +e_b -> +e_c. All cells are
    split the same way, so shared faces match.

    Parameters:
        n: Cells per side
        size: Cube edge length
        skip: Optional predicate skip(i, j, k) removing cells

    Returns:
        (nodes, tets)
    """
    m = n + 1

    def node_id(i, j, k):
        return i + m * (j + m * k)

    coords = [(i, j, k) for k in range(m) for j in range(m) for i in range(m)]
    nodes = np.array(coords, dtype=np.float64) * (size / n)

    tets = []
    for k in range(n):
        for j in range(n):
            for i in range(n):
                if skip is not None and skip(i, j, k):
                    continue
                for perm in permutations(range(3)):
                    corner = [i, j, k]
                    tet = [node_id(*corner)]
                    for axis in perm:
                        corner[axis] += 1
                        tet.append(node_id(*corner))
                    tets.append(tet)
    return nodes, tets


@pytest.fixture
def kuhn_cube():
    """Unit cube as 6 tetrahedra around the (0,0,0)-(1,1,1) diagonal."""
    nodes, tets = kuhn_grid(1)
    return Mesh(ConnectivityTable(nodes, tets))


@pytest.fixture
def grid_mesh():
    """Unit cube as 3 x 3 x 3 cells (162 tetrahedra)."""
    nodes, tets = kuhn_grid(3)
    return Mesh(ConnectivityTable(nodes, tets))


@pytest.fixture
def l_shaped_mesh():
    """2 x 2 x 1 cells of side 1 with cell (1, 1, 0) removed (non-convex)."""
    nodes, tets = kuhn_grid(2, size=2.0, skip=lambda i, j, k: k == 1 or (i == 1 and j == 1))
    return Mesh(ConnectivityTable(nodes, tets))


@pytest.fixture
def two_tets():
    """Tetrahedra below (0) and above (1) the shared face z = 0."""
    nodes = [[0.0, 0.0, 0.0],
             [1.0, 0.0, 0.0],
             [0.0, 1.0, 0.0],
             [0.0, 0.0, -1.0],
             [0.0, 0.0, 1.0]]
    tets = [[0, 1, 2, 3], [0, 1, 2, 4]]
    return Mesh(ConnectivityTable(nodes, tets))


@pytest.fixture
def quadrant_tets():
    """Four tetrahedra around the edge (0,0,0)-(0,0,1), one per xy quadrant."""
    nodes = [[0.0, 0.0, 0.0],
             [0.0, 0.0, 1.0],
             [1.0, 0.0, 0.0],
             [0.0, 1.0, 0.0],
             [-1.0, 0.0, 0.0],
             [0.0, -1.0, 0.0]]
    tets = [[0, 1, 2, 3], [0, 1, 3, 4], [0, 1, 4, 5], [0, 1, 5, 2]]
    return Mesh(ConnectivityTable(nodes, tets))
