"""Mesh module: tetrahedral connectivity, elements and point location."""

from brep_mc.mesh.connectivity import ConnectivityTable, NO_ELEMENT
from brep_mc.mesh.tetrahedron import Tetrahedron
from brep_mc.mesh.boundary import MeshBoundary, Triangle
from brep_mc.mesh.mesh import Mesh

__all__ = [
    "ConnectivityTable",
    "NO_ELEMENT",
    "Tetrahedron",
    "MeshBoundary",
    "Triangle",
    "Mesh",
]
