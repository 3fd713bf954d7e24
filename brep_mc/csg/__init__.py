"""CSG module: unions, intersections and differences of shapes."""

from brep_mc.csg.union import Union2, UnionN
from brep_mc.csg.intersection import Complement, Intersection2, Difference2

__all__ = ["Union2", "UnionN", "Complement", "Intersection2", "Difference2"]
