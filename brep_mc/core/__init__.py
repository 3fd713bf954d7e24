"""Core module: shape contract, convex polytopes and transforms."""

from brep_mc.core.shape import Shape, ConnectedShape, ShapeKind, Intersection, NO_CROSSING
from brep_mc.core.polytope import ConvexPolytope, half_space, slab, block
from brep_mc.core.sphere import Sphere

__all__ = [
    "Shape",
    "ConnectedShape",
    "ShapeKind",
    "Intersection",
    "NO_CROSSING",
    "ConvexPolytope",
    "half_space",
    "slab",
    "block",
    "Sphere",
]
