"""
Shape contract shared by every geometric variant.

A shape answers two questions about a line segment p0 -> p1:

    contains(p0, p1)      is p0 inside? (p1 only breaks exact boundary ties)
    first_normal(p0, p1)  nearest boundary crossing p0 + u*(p1 - p0), u in (0, 1]

A crossing with u > 1 means "none in this segment"; NO_CROSSING is the
conventional value. The normal returned with a crossing is the outward unit
normal of the boundary at that point.

Boundary tie-break:
    With delta = p1 - p0 and n the outward normal of the boundary p0 lies on,
    delta.n > 0 is outside, delta.n < 0 is inside. When delta.n == 0 the
    trajectory lies in the boundary and the sign of the first nonzero
    component of n decides (positive: inside). Two shapes sharing a face have
    opposite normals there, so exactly one of them claims the point.
"""

import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import NamedTuple, Optional

import numpy as np
import numba


# Sentinel u for "no crossing in this segment"
NO_CROSSING = sys.float_info.max


class Intersection(NamedTuple):
    """Result of first_normal: outward unit normal and segment parameter u."""
    normal: np.ndarray
    u: float

    @property
    def hit(self) -> bool:
        """True when the crossing lies within the segment."""
        return self.u <= 1.0


def no_intersection() -> Intersection:
    """The 'no crossing' result (zero normal, u = NO_CROSSING)."""
    return Intersection(np.zeros(3), NO_CROSSING)


class ShapeKind(Enum):
    """Closed set of shape variants."""
    POLYTOPE = "polytope"
    SPHERE = "sphere"
    UNION2 = "union2"
    UNION_N = "union_n"
    COMPLEMENT = "complement"
    INTERSECTION = "intersection"
    DIFFERENCE = "difference"
    HEIGHT_MAP = "height_map"
    TETRAHEDRON = "tetrahedron"
    MESH_BOUNDARY = "mesh_boundary"


# ============================================================================
# Tie-break kernels
# ============================================================================

@numba.njit(cache=True)
def tie_break_inside(nx: float, ny: float, nz: float) -> bool:
    """
    Lexicographic ownership rule for a trajectory lying in a boundary plane.

    Parameters:
        nx, ny, nz: Outward normal of the boundary

    Returns:
        True if the point is assigned to the inside
    """
    if nx < 0.0:
        return False
    if nx == 0.0:
        if ny < 0.0:
            return False
        if ny == 0.0 and nz < 0.0:
            return False
    return True


@numba.njit(cache=True)
def side_of_boundary(dx: float, dy: float, dz: float,
                     nx: float, ny: float, nz: float) -> bool:
    """Inside/outside decision for a point exactly on a boundary with normal n."""
    s = dx * nx + dy * ny + dz * nz
    if s > 0.0:
        return False
    if s < 0.0:
        return True
    return tie_break_inside(nx, ny, nz)


def as_point(p) -> np.ndarray:
    """Convert a 3-vector argument to a float64 array."""
    arr = np.asarray(p, dtype=np.float64)
    if arr.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {arr.shape}")
    return arr


def inside_by_direction(delta: np.ndarray, normal: np.ndarray) -> bool:
    """Tie-break for a point on a boundary of outward normal `normal`."""
    return side_of_boundary(delta[0], delta[1], delta[2],
                            normal[0], normal[1], normal[2])


# ============================================================================
# Contract
# ============================================================================

class Shape(ABC):
    """
    Base class of every shape variant.

    Subclasses set `kind` and implement contains() and first_normal().
    """

    kind: ShapeKind

    def __init__(self):
        self._previous_normal = no_intersection()

    @abstractmethod
    def contains(self, p0, p1=None) -> bool:
        """
        Is p0 inside the shape?

        Parameters:
            p0: Point under test
            p1: Optional second point. Only used when p0 lies exactly on the
                boundary; the direction p1 - p0 then decides.

        Returns:
            True if inside (boundary points count as inside when p1 is None)
        """

    @abstractmethod
    def first_normal(self, p0, p1) -> Intersection:
        """
        Nearest boundary crossing along p0 -> p1.

        Parameters:
            p0: Segment start
            p1: Segment end

        Returns:
            Intersection(normal, u). u > 1 means no crossing in the segment.
        """

    def first_intersection(self, p0, p1) -> float:
        """The u of first_normal(p0, p1)."""
        return self.first_normal(p0, p1).u

    @property
    def previous_normal(self) -> Intersection:
        """Last result of first_normal (diagnostics only)."""
        return self._previous_normal

    def _record(self, result: Intersection) -> Intersection:
        self._previous_normal = result
        return result

    # Rigid transforms. Shapes that can move override these.

    @property
    def supports_transform(self) -> bool:
        return False

    def translate(self, distance) -> None:
        raise TypeError(f"{type(self).__name__} does not support transformation")

    def rotate(self, pivot, phi: float, theta: float, psi: float) -> None:
        raise TypeError(f"{type(self).__name__} does not support transformation")

    def __repr__(self):
        return f"{type(self).__name__}()"


class ConnectedShape(Shape):
    """A shape that belongs to a mesh and knows its neighbours."""

    @abstractmethod
    def containing_element(self) -> Optional['Shape']:
        """Element found to contain the last tested point."""

    @abstractmethod
    def next_element(self) -> Optional['Shape']:
        """Element entered through the boundary hit by the last first_normal."""
