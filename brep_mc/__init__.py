"""
BREP_MC: Boundary-representation geometry for Monte Carlo transport

Answers the two questions a particle tracker asks of a sample: is this
point inside, and where does this step first cross a boundary.

Modules:
    core: Shape contract, convex polytopes, spheres, transforms
    csg: Unions, intersections and differences of shapes
    surfaces: Regions bounded by a height map
    mesh: Tetrahedral meshes with walk-based point location
    io: Height-map files and mesh charge/potential files
"""

__version__ = "0.1.0"
__author__ = "William Comaskey"

from brep_mc.config import Tolerances, load_tolerances
from brep_mc.errors import GeometryError, ConfigurationError, InternalConsistencyFault
from brep_mc.core.polytope import ConvexPolytope
from brep_mc.core.sphere import Sphere
from brep_mc.csg.union import Union2, UnionN
from brep_mc.surfaces.heightmap import HeightMapSurface
from brep_mc.mesh.connectivity import ConnectivityTable
from brep_mc.mesh.mesh import Mesh

__all__ = [
    "Tolerances",
    "load_tolerances",
    "GeometryError",
    "ConfigurationError",
    "InternalConsistencyFault",
    "ConvexPolytope",
    "Sphere",
    "Union2",
    "UnionN",
    "HeightMapSurface",
    "ConnectivityTable",
    "Mesh",
]
