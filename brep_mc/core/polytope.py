"""
Convex polytope: the intersection of a finite set of half-spaces.

Each half-space is stored as an outward unit normal n and an offset b, and
contains the points p with n.p <= b. The polytope may be unbounded (a single
plane is a half-space, two parallel planes a slab).

The ray-clipping kernel here is shared by Tetrahedron and by the height-map
column blocks, so all of them classify boundary points identically.
"""

import numpy as np
import numba
from typing import Tuple, Optional

from brep_mc.config import Tolerances, resolve
from brep_mc.core.shape import (
    Shape, ShapeKind, Intersection, NO_CROSSING, tie_break_inside,
    as_point, no_intersection,
)
from brep_mc.core.transform import rotate_points, rotate_vectors
from brep_mc.errors import ConfigurationError


# ============================================================================
# Numba-accelerated clipping kernels
# ============================================================================
# No fastmath: exact comparisons (u == umax, numerator == 0) carry the
# tie-break semantics.

@numba.njit(cache=True)
def clip_segment(normals: np.ndarray, offsets: np.ndarray,
                 p0: np.ndarray, p1: np.ndarray) -> Tuple[int, float, bool]:
    """
    Clip the segment p0 -> p1 against a set of half-spaces.

    The parametric interval [umin, umax] of the line that lies inside every
    half-space is narrowed plane by plane. The crossing reported is the
    entry at umin when umin > 0, otherwise the exit at umax when
    0 < umax <= 1.

    Parameters:
        normals: (m, 3) outward unit normals
        offsets: (m,) plane offsets, n.p = b on the plane
        p0: Segment start
        p1: Segment end

    Returns:
        (plane index, u, tie). Index -1 and u = NO_CROSSING when there is no
        crossing in (0, 1]. tie is True when a second plane produced the same
        bound (an edge or vertex hit) or the segment lies in a plane.
    """
    umin = -np.inf
    umax = np.inf
    minindex = -1
    maxindex = -1
    mintie = False
    maxtie = False
    within = False

    d0 = p1[0] - p0[0]
    d1 = p1[1] - p0[1]
    d2 = p1[2] - p0[2]

    for i in range(normals.shape[0]):
        n0 = normals[i, 0]
        n1 = normals[i, 1]
        n2 = normals[i, 2]
        numerator = (p0[0] * n0 + p0[1] * n1 + p0[2] * n2) - offsets[i]
        denominator = d0 * n0 + d1 * n1 + d2 * n2

        if denominator == 0.0:
            # Parallel: either always inside this plane or always outside
            if numerator < 0.0 or (numerator == 0.0 and tie_break_inside(n0, n1, n2)):
                if numerator == 0.0:
                    within = True
                continue
            return -1, NO_CROSSING, False

        u = -numerator / denominator
        if denominator > 0.0:
            # inside -> outside for this plane, bounds umax
            if u < umax:
                # Exit behind the start, or before the entry (includes the
                # tangent case umax == umin)
                if u < 0.0 or u <= umin:
                    return -1, NO_CROSSING, False
                maxtie = False
                umax = u
                maxindex = i
            elif u == umax:
                maxtie = True
        else:
            # outside -> inside, bounds umin
            if u > umin:
                if u > 1.0 or u >= umax:
                    return -1, NO_CROSSING, False
                mintie = False
                umin = u
                minindex = i
            elif u == umin:
                mintie = True

    if umin > 0.0:
        return minindex, umin, mintie or within
    if umax <= 1.0 and umax > 0.0:
        return maxindex, umax, maxtie or within
    return -1, NO_CROSSING, False


@numba.njit(cache=True)
def halfspaces_contain_point(normals: np.ndarray, offsets: np.ndarray,
                             p: np.ndarray) -> bool:
    """Closed containment test: boundary points are inside."""
    for i in range(normals.shape[0]):
        s = p[0] * normals[i, 0] + p[1] * normals[i, 1] + p[2] * normals[i, 2]
        if s > offsets[i]:
            return False
    return True


@numba.njit(cache=True)
def halfspaces_contain(normals: np.ndarray, offsets: np.ndarray,
                       p0: np.ndarray, p1: np.ndarray) -> bool:
    """Containment of p0, using direction p1 - p0 to settle boundary points."""
    d0 = p1[0] - p0[0]
    d1 = p1[1] - p0[1]
    d2 = p1[2] - p0[2]
    for i in range(normals.shape[0]):
        n0 = normals[i, 0]
        n1 = normals[i, 1]
        n2 = normals[i, 2]
        s = p0[0] * n0 + p0[1] * n1 + p0[2] * n2
        if s > offsets[i]:
            return False
        if s == offsets[i]:
            deltadotn = d0 * n0 + d1 * n1 + d2 * n2
            if deltadotn > 0.0:
                return False
            if deltadotn == 0.0 and not tie_break_inside(n0, n1, n2):
                return False
    return True


# ============================================================================
# Shape class
# ============================================================================

class ConvexPolytope(Shape):
    """
    Convex region bounded by planes.

    Usage:
        box = ConvexPolytope()
        box.add_plane([0, 0, 1], [0, 0, 1])   # z <= 1
        box.add_plane([0, 0, -1], [0, 0, 0])  # z >= 0
        box.contains([0.2, 0.3, 0.5])
        hit = box.first_normal([0, 0, -1], [0, 0, 2])
    """

    kind = ShapeKind.POLYTOPE

    def __init__(self, normals: Optional[np.ndarray] = None,
                 offsets: Optional[np.ndarray] = None,
                 tolerances: Optional[Tolerances] = None):
        """
        Initialize polytope, optionally from existing plane arrays.

        Parameters:
            normals: (m, 3) outward normals (normalized here)
            offsets: (m,) offsets matching the given (unnormalized) normals
            tolerances: Numerical tolerances (defaults if None)
        """
        super().__init__()
        self.tolerances = resolve(tolerances)
        self._normals = np.zeros((0, 3))
        self._offsets = np.zeros(0)
        self.last_face = -1
        self.last_tie = False

        if normals is not None:
            normals = np.asarray(normals, dtype=np.float64).reshape(-1, 3)
            offsets = np.asarray(offsets, dtype=np.float64).reshape(-1)
            if offsets.shape[0] != normals.shape[0]:
                raise ConfigurationError(
                    f"{normals.shape[0]} normals but {offsets.shape[0]} offsets")
            norms = np.linalg.norm(normals, axis=1)
            if np.any(norms == 0.0):
                raise ConfigurationError("Plane normal must be nonzero")
            self._normals = normals / norms[:, None]
            self._offsets = offsets / norms

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_plane(self, normal, point) -> None:
        """
        Add the half-space behind a plane.

        Parameters:
            normal: Outward normal (any nonzero length)
            point: Any point on the plane
        """
        n = as_point(normal)
        mag = np.linalg.norm(n)
        if mag == 0.0:
            raise ConfigurationError("Plane normal must be nonzero")
        n = n / mag
        self._normals = np.vstack([self._normals, n])
        self._offsets = np.append(self._offsets, np.dot(n, as_point(point)))

    def add_plane_from_points(self, p1, p2, p3) -> None:
        """
        Add the plane through three points.

        The outward normal is (p2 - p1) x (p3 - p1), so the points run
        counter-clockwise when seen from outside.
        """
        p1 = as_point(p1)
        normal = np.cross(as_point(p2) - p1, as_point(p3) - p1)
        if np.linalg.norm(normal) == 0.0:
            raise ConfigurationError("add_plane_from_points: 3 supplied points must be non-colinear")
        self.add_plane(normal, p1)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def num_planes(self) -> int:
        return self._normals.shape[0]

    @property
    def normals(self) -> np.ndarray:
        return self._normals.copy()

    @property
    def offsets(self) -> np.ndarray:
        return self._offsets.copy()

    def normal(self, index: int) -> np.ndarray:
        return self._normals[index].copy()

    def offset(self, index: int) -> float:
        return float(self._offsets[index])

    # ------------------------------------------------------------------
    # Shape contract
    # ------------------------------------------------------------------

    def contains(self, p0, p1=None) -> bool:
        p0 = as_point(p0)
        if p1 is None:
            return halfspaces_contain_point(self._normals, self._offsets, p0)
        return halfspaces_contain(self._normals, self._offsets, p0, as_point(p1))

    def first_normal(self, p0, p1) -> Intersection:
        index, u, tie = clip_segment(self._normals, self._offsets,
                                     as_point(p0), as_point(p1))
        self.last_face = index
        self.last_tie = tie
        if index < 0:
            return self._record(no_intersection())
        return self._record(Intersection(self._normals[index].copy(), u))

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    @property
    def supports_transform(self) -> bool:
        return True

    def translate(self, distance) -> None:
        self._offsets = self._offsets + self._normals @ as_point(distance)

    def rotate(self, pivot, phi: float, theta: float, psi: float) -> None:
        # Rotate the foot point of each plane, then recompute the offsets
        feet = self._normals * self._offsets[:, None]
        feet = rotate_points(feet, pivot, phi, theta, psi)
        self._normals = rotate_vectors(self._normals, phi, theta, psi)
        self._offsets = np.einsum('ij,ij->i', self._normals, feet)

    def __repr__(self):
        return f"ConvexPolytope(planes={self.num_planes})"


# ============================================================================
# Factory helpers
# ============================================================================

def half_space(normal, point, tolerances: Optional[Tolerances] = None) -> ConvexPolytope:
    """All points behind the plane through `point` with outward `normal`."""
    poly = ConvexPolytope(tolerances=tolerances)
    poly.add_plane(normal, point)
    return poly


def slab(normal, point, thickness: float,
         tolerances: Optional[Tolerances] = None) -> ConvexPolytope:
    """
    Film of given thickness.

    `point` lies on the top face, `normal` is the top face's outward normal
    and the film extends thickness along -normal.
    """
    if thickness <= 0.0:
        raise ConfigurationError(f"Slab thickness must be positive, got {thickness}")
    n = as_point(normal)
    n = n / np.linalg.norm(n)
    top = as_point(point)
    poly = ConvexPolytope(tolerances=tolerances)
    poly.add_plane(n, top)
    poly.add_plane(-n, top - thickness * n)
    return poly


def block(dimensions, center, phi: float = 0.0, theta: float = 0.0,
          psi: float = 0.0, tolerances: Optional[Tolerances] = None) -> ConvexPolytope:
    """
    Rectangular block.

    Parameters:
        dimensions: (lx, ly, lz) edge lengths
        center: Block center
        phi, theta, psi: Z-Y-Z Euler rotation about the center
        tolerances: Numerical tolerances

    Returns:
        ConvexPolytope with 6 planes
    """
    dims = as_point(dimensions)
    if np.any(dims <= 0.0):
        raise ConfigurationError(f"Block dimensions must be positive, got {dims}")
    c = as_point(center)
    poly = ConvexPolytope(tolerances=tolerances)
    for axis in range(3):
        n = np.zeros(3)
        n[axis] = 1.0
        poly.add_plane(n, c + 0.5 * dims[axis] * n)
        poly.add_plane(-n, c - 0.5 * dims[axis] * n)
    if phi != 0.0 or theta != 0.0 or psi != 0.0:
        poly.rotate(c, phi, theta, psi)
    return poly
