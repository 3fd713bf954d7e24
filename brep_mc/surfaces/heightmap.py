"""
Height-map surface: a single-valued z(x, y) sampled on a uniform grid.

The surface is triangulated. Each grid cell is split by the diagonal from
node (i+1, j) to node (i, j+1) into a lower-left triangle (w = 0) and an
upper-right triangle (w = 1). Each triangle extruded vertically gives a
column; the part of the column below the surface is a convex polytope
("lower block"), the part above another one ("upper block"). Beyond the
sampled extent the surface continues as the plane of the boundary edge
(edge columns) or as a horizontal plane at the corner height (corner
columns).

Columns are addressed by (iB, jB, w):
    iB = floor((x - x0) / dX) + 1, clamped to [0, nx]
    jB = floor((y - y0) / dY) + 1, clamped to [0, ny]
so iB = 0 and iB = nx are the edge columns outside the grid. Plane 0 of
every block is its top (surface) plane; the others are vertical sides.

Blocks are built on first use and cached; a 1000 x 1000 map would
otherwise need 8 million polytopes.
"""

import logging
import numpy as np
from typing import Optional, Tuple

from brep_mc.config import Tolerances, resolve
from brep_mc.core.polytope import ConvexPolytope
from brep_mc.core.shape import (
    Shape, ShapeKind, Intersection, NO_CROSSING, as_point, no_intersection,
    side_of_boundary,
)
from brep_mc.errors import ConfigurationError, InternalConsistencyFault

logger = logging.getLogger(__name__)

POS_X = np.array([1.0, 0.0, 0.0])
NEG_X = np.array([-1.0, 0.0, 0.0])
POS_Y = np.array([0.0, 1.0, 0.0])
NEG_Y = np.array([0.0, -1.0, 0.0])
POS_Z = np.array([0.0, 0.0, 1.0])

# Column chosen when the start point sits exactly on a grid node, indexed by
# the direction octant v (bit 1: dx > 0, bit 2: dy > 0, bit 4: dx/dX + dy/dY > 0).
# Entries: (iB offset, jB offset, w, x push, y push) in units of the push.
NODE_CASES = {
    7: (0, 0, 0, 1.0, 1.0),
    5: (0, -1, 1, 2.0, -1.0),
    1: (0, -1, 0, 1.0, -2.0),
    0: (-1, -1, 1, -1.0, -1.0),
    2: (-1, 0, 0, -2.0, 1.0),
    6: (-1, 0, 1, -1.0, 2.0),
}


class HeightMapSurface(Shape):
    """
    Region below (or above) a gridded height surface.

    Usage:
        data = np.zeros((nx, ny))          # data[i, j] = z at (x0 + i*dX, y0 + j*dY)
        surf = HeightMapSurface(0.0, 0.0, 1.0, 1.0, data, is_below=True)
        surf.contains([0.5, 0.5, -1.0])    # True: below the surface
    """

    kind = ShapeKind.HEIGHT_MAP

    def __init__(self, x0: float, y0: float, dX: float, dY: float, data,
                 is_below: bool = True, tolerances: Optional[Tolerances] = None):
        """
        Initialize height map.

        Parameters:
            x0, y0: Coordinates of data[0, 0]
            dX, dY: Grid spacings (0 marks a one-dimensional map)
            data: (nx, ny) heights, first index along x
            is_below: True if the shape is the region below the surface
            tolerances: Numerical tolerances (defaults if None)
        """
        super().__init__()
        data = np.array(data, dtype=np.float64)
        if data.ndim == 1:
            data = data[:, None]
        if data.ndim != 2 or data.size == 0:
            raise ConfigurationError(f"Height data must be a non-empty 2-D array, got shape {data.shape}")
        if not np.all(np.isfinite(data)):
            raise ConfigurationError("Height data contains non-finite values")
        if dX < 0.0 or dY < 0.0:
            raise ConfigurationError(f"Grid spacings must be non-negative, got dX={dX}, dY={dY}")

        self.tolerances = resolve(tolerances)
        self.x0 = float(x0)
        self.y0 = float(y0)
        self.dX = float(dX)
        self.dY = float(dY)
        self.data = data
        self.data.setflags(write=False)
        self.is_below = bool(is_below)

        self.nx, self.ny = data.shape
        # Number of columns along each axis minus one
        self._xlen = self.nx + 1
        self._ylen = self.ny + 1

        # A single row (or zero spacing) is one-dimensional along x
        self.x_1d = False
        self.y_1d = False
        if self._ylen == 2 or self.dY == 0.0:
            self.dY = 1.0
            self._ylen = 2
            self.x_1d = True
        if self._xlen == 2 or self.dX == 0.0:
            self.dX = 1.0
            self._xlen = 2
            self.y_1d = True

        self._blocks = {}
        logger.debug(f"HeightMapSurface {self.nx}x{self.ny} "
                     f"(x_1d={self.x_1d}, y_1d={self.y_1d}, is_below={self.is_below})")

    # ------------------------------------------------------------------
    # Block cache
    # ------------------------------------------------------------------

    @property
    def cache_size(self) -> int:
        return len(self._blocks)

    def clear_cache(self) -> None:
        """Drop all cached column blocks."""
        self._blocks.clear()

    invalidate = clear_cache

    def _is_interior(self, iB: int, jB: int) -> bool:
        return (not (self.x_1d or self.y_1d)
                and 1 <= iB <= self._xlen - 2 and 1 <= jB <= self._ylen - 2)

    def block(self, iB: int, jB: int, w: int, lower: bool) -> ConvexPolytope:
        """
        Polytope for one column, building it on a cache miss.

        Parameters:
            iB, jB: Column indices
            w: Triangle (0 lower-left, 1 upper-right); ignored outside the grid
            lower: True for the part below the surface

        Returns:
            ConvexPolytope whose plane 0 is the top plane
        """
        if not (0 <= iB < self._xlen and 0 <= jB < self._ylen and w in (0, 1)):
            raise IndexError(f"Column ({iB}, {jB}, {w}) out of range")
        if not self._is_interior(iB, jB):
            w = 0
        key = (iB, jB, w, bool(lower))
        blk = self._blocks.get(key)
        if blk is None:
            blk = self._build_block(iB, jB, w, bool(lower))
            self._blocks[key] = blk
        return blk

    def _node(self, i: int, j: int) -> np.ndarray:
        return np.array([self.x0 + i * self.dX, self.y0 + j * self.dY, self.data[i, j]])

    def _build_block(self, iB: int, jB: int, w: int, lower: bool) -> ConvexPolytope:
        planes = self._column_planes(iB, jB, w)
        top_normal, top_point = planes[0]
        if not lower:
            planes[0] = (-top_normal, top_point)
        blk = ConvexPolytope(tolerances=self.tolerances)
        for normal, point in planes:
            blk.add_plane(normal, point)
        return blk

    def _column_planes(self, iB: int, jB: int, w: int):
        """(normal, point) list of the lower block, top plane first."""
        last_x = self._xlen - 1
        last_y = self._ylen - 1

        if self.x_1d and self.y_1d:
            # Single data point: four corner columns around it
            node = np.array([self.x0, self.y0, self.data[0, 0]])
            side_x = POS_X if iB == 0 else NEG_X
            side_y = POS_Y if jB == 0 else NEG_Y
            return [(POS_Z, node), (side_x, node), (side_y, node)]

        if self.x_1d:
            # One row of data along x
            i = min(max(iB - 1, 0), self._xlen - 3)
            node1 = np.array([self.x0 + i * self.dX, self.y0, self.data[i, 0]])
            node2 = np.array([self.x0 + (i + 1) * self.dX, self.y0, self.data[i + 1, 0]])
            side_y = POS_Y if jB == 0 else NEG_Y
            if iB == 0:
                return [(POS_Z, node1), (POS_X, node1), (side_y, node1)]
            if iB == last_x:
                return [(POS_Z, node2), (NEG_X, node2), (side_y, node2)]
            v12 = node2 - node1
            top = np.array([-v12[2], 0.0, v12[0]])
            return [(top, node1), (NEG_X, node1), (POS_X, node2), (side_y, node1)]

        if self.y_1d:
            # One column of data along y
            j = min(max(jB - 1, 0), self._ylen - 3)
            node1 = np.array([self.x0, self.y0 + j * self.dY, self.data[0, j]])
            node3 = np.array([self.x0, self.y0 + (j + 1) * self.dY, self.data[0, j + 1]])
            side_x = POS_X if iB == 0 else NEG_X
            if jB == 0:
                return [(POS_Z, node1), (side_x, node1), (POS_Y, node1)]
            if jB == last_y:
                return [(POS_Z, node3), (side_x, node3), (NEG_Y, node3)]
            v13 = node3 - node1
            top = np.array([0.0, -v13[2], v13[1]])
            return [(top, node1), (side_x, node1), (POS_Y, node3), (NEG_Y, node1)]

        # Two-dimensional grid
        i = min(max(iB - 1, 0), self._xlen - 3)
        j = min(max(jB - 1, 0), self._ylen - 3)
        node1 = self._node(i, j)
        node2 = self._node(i + 1, j)
        node3 = self._node(i, j + 1)
        node4 = self._node(i + 1, j + 1)

        x_edge = iB == 0 or iB == last_x
        y_edge = jB == 0 or jB == last_y

        if x_edge and y_edge:
            # Corner: horizontal top at the corner node height
            if iB == 0 and jB == 0:
                return [(POS_Z, node1), (POS_X, node1), (POS_Y, node1)]
            if iB == 0:
                return [(POS_Z, node3), (POS_X, node3), (NEG_Y, node3)]
            if jB == 0:
                return [(POS_Z, node2), (NEG_X, node2), (POS_Y, node2)]
            return [(POS_Z, node4), (NEG_X, node4), (NEG_Y, node4)]

        if iB == 0:
            v13 = node3 - node1
            top = np.array([0.0, -v13[2], v13[1]])
            return [(top, node1), (POS_X, node1), (POS_Y, node3), (NEG_Y, node1)]
        if iB == last_x:
            v24 = node4 - node2
            top = np.array([0.0, -v24[2], v24[1]])
            return [(top, node2), (NEG_X, node2), (POS_Y, node4), (NEG_Y, node2)]
        if jB == 0:
            v12 = node2 - node1
            top = np.array([-v12[2], 0.0, v12[0]])
            return [(top, node1), (NEG_X, node1), (POS_X, node2), (POS_Y, node1)]
        if jB == last_y:
            v34 = node4 - node3
            top = np.array([-v34[2], 0.0, v34[0]])
            return [(top, node3), (NEG_X, node3), (POS_X, node4), (NEG_Y, node3)]

        # Interior triangle
        diagonal = np.array([node3[1] - node2[1], -(node3[0] - node2[0]), 0.0])
        if w == 0:
            top = np.cross(node2 - node1, node3 - node1)
            return [(top, node1), (NEG_X, node1), (NEG_Y, node1), (diagonal, node2)]
        top = np.cross(node4 - node2, node3 - node2)
        return [(top, node4), (POS_X, node4), (POS_Y, node4), (-diagonal, node2)]

    # ------------------------------------------------------------------
    # Point location
    # ------------------------------------------------------------------

    def _clamp(self, iB: int, jB: int) -> Tuple[int, int]:
        iB = min(max(iB, 0), self._xlen - 1)
        jB = min(max(jB, 0), self._ylen - 1)
        return iB, jB

    def _push(self, x: float, y: float) -> float:
        """Nudge distance in grid units, never below a few ulps of the coordinates."""
        push = self.tolerances.grid_push
        push = max(push, 4.0 * np.spacing(abs(x)) / self.dX)
        push = max(push, 4.0 * np.spacing(abs(y)) / self.dY)
        return push

    def locate(self, point, p1=None) -> Tuple[int, int, int, np.ndarray]:
        """
        Column containing a point.

        Without p1 the column is assigned from the coordinates alone. With p1,
        a point within grid_tolerance of a grid line, node or cell diagonal is
        assigned to the column the direction p1 - point heads into, and is
        moved slightly into that column's interior.

        Parameters:
            point: Query point
            p1: Optional point giving the direction of travel

        Returns:
            (iB, jB, w, point) where point is the possibly-nudged copy
        """
        cur = as_point(point).copy()
        xpos = (cur[0] - self.x0) / self.dX
        ypos = (cur[1] - self.y0) / self.dY
        xval = int(np.floor(xpos)) + 1
        yval = int(np.floor(ypos)) + 1
        diag = xpos + ypos - xval - yval + 1.0

        if p1 is None:
            iB, jB = self._clamp(xval, yval)
            return iB, jB, (1 if diag > 0.0 else 0), cur

        p1 = as_point(p1)
        dx = p1[0] - cur[0]
        dy = p1[1] - cur[1]
        v = 0
        if dx > 0.0:
            v |= 1
        if dy > 0.0:
            v |= 2
        if dx / self.dX + dy / self.dY > 0.0:
            v |= 4

        tol = self.tolerances.grid_tolerance
        x_boundary = y_boundary = False
        if xpos - np.floor(xpos) < tol:
            x_boundary = True
        elif np.ceil(xpos) - xpos < tol:
            x_boundary = True
            xval += 1
        if ypos - np.floor(ypos) < tol:
            y_boundary = True
        elif np.ceil(ypos) - ypos < tol:
            y_boundary = True
            yval += 1

        # Grid line coordinates in grid units
        xnode = float(xval - 1)
        ynode = float(yval - 1)
        push = self._push(cur[0], cur[1])

        if x_boundary and y_boundary:
            di, dj, w, px, py = NODE_CASES.get(v, NODE_CASES[0])
            iB, jB = xval + di, yval + dj
            cur[0] = self.x0 + (xnode + px * push) * self.dX
            cur[1] = self.y0 + (ynode + py * push) * self.dY
        elif x_boundary:
            if dx > 0.0:
                iB, jB, w = xval, yval, 0
                cur[0] = self.x0 + (xnode + push) * self.dX
            else:
                iB, jB, w = xval - 1, yval, 1
                cur[0] = self.x0 + (xnode - push) * self.dX
        elif y_boundary:
            if dy > 0.0:
                iB, jB, w = xval, yval, 0
                cur[1] = self.y0 + (ynode + push) * self.dY
            else:
                iB, jB, w = xval, yval - 1, 1
                cur[1] = self.y0 + (ynode - push) * self.dY
        elif (abs(diag) < tol and 0.0 < xpos < self._xlen - 2
              and 0.0 < ypos < self._ylen - 2):
            # On the cell diagonal, away from nodes
            y_diag = xval + yval - 1.0 - xpos
            iB, jB = xval, yval
            if v & 4:
                w = 1
                cur[1] = self.y0 + (y_diag + push) * self.dY
                cur[0] += push * self.dX
            else:
                w = 0
                cur[1] = self.y0 + (y_diag - push) * self.dY
                cur[0] -= push * self.dX
        else:
            iB, jB, w = xval, yval, (1 if diag > 0.0 else 0)

        iB, jB = self._clamp(iB, jB)
        return iB, jB, w, cur

    def _below(self, iB: int, jB: int, w: int, point: np.ndarray,
               delta: Optional[np.ndarray]) -> bool:
        """Is point on or below the top plane of the given column?"""
        blk = self.block(iB, jB, w, True)
        n = blk.normal(0)
        s = np.dot(n, point) - blk.offset(0)
        if s < 0.0:
            return True
        if s > 0.0:
            return False
        if delta is None:
            return True
        return side_of_boundary(delta[0], delta[1], delta[2], n[0], n[1], n[2])

    def height_at(self, x: float, y: float) -> float:
        """Surface height at (x, y), including the extrapolated region."""
        iB, jB, w, _ = self.locate([x, y, 0.0])
        blk = self.block(iB, jB, w, True)
        n = blk.normal(0)
        return float((blk.offset(0) - n[0] * x - n[1] * y) / n[2])

    # ------------------------------------------------------------------
    # Shape contract
    # ------------------------------------------------------------------

    def contains(self, p0, p1=None) -> bool:
        p0 = as_point(p0)
        if p1 is None:
            iB, jB, w, cur = self.locate(p0)
            blk = self.block(iB, jB, w, True)
            s = np.dot(blk.normal(0), cur) - blk.offset(0)
            # Surface points belong to both sides
            return bool(s <= 0.0) if self.is_below else bool(s >= 0.0)
        p1 = as_point(p1)
        iB, jB, w, cur = self.locate(p0, p1)
        below = self._below(iB, jB, w, cur, p1 - p0)
        return below if self.is_below else not below

    def _surface_hit(self, normal: np.ndarray, u: float, start_below: bool) -> Intersection:
        # Block normals point out of the start side; flip when that is the
        # outside of the shape
        if start_below != self.is_below:
            normal = -normal
        return self._record(Intersection(normal, u))

    def first_normal(self, p0, p1) -> Intersection:
        p0 = as_point(p0)
        p1 = as_point(p1)
        delta = p1 - p0

        iB, jB, w, cur = self.locate(p0, p1)
        start_below = self._below(iB, jB, w, cur, delta)
        extra_u = self.tolerances.extra_u
        t = 0.0
        cap = self.tolerances.column_cap(self.nx, self.ny)

        for _ in range(cap):
            blk = self.block(iB, jB, w, start_below)
            nv = blk.first_normal(cur, p1)

            if nv.u <= 1.0:
                u_total = t + nv.u * (1.0 - t)
                if nv.normal[2] != 0.0:
                    return self._surface_hit(nv.normal, u_total, start_below)
                # Left the column through a side: continue in the neighbour
                t_next = u_total if u_total > t else t + extra_u
            elif blk.contains(cur, p1):
                # The rest of the segment stays in this column
                return self._record(no_intersection())
            else:
                # Round-off put the start just outside its column
                t_next = t + extra_u

            if t_next >= 1.0:
                return self._record(no_intersection())
            t = t_next
            iB, jB, w, cur = self.locate(p0 + t * delta, p1)
            if self._below(iB, jB, w, cur, delta) != start_below:
                # Changed sides exactly at the column boundary
                top = self.block(iB, jB, w, start_below).normal(0)
                return self._surface_hit(top, t, start_below)

        raise InternalConsistencyFault(
            f"Height-map column walk exceeded {cap} steps", steps=cap)

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    @property
    def supports_transform(self) -> bool:
        return True

    def translate(self, distance) -> None:
        d = as_point(distance)
        self.x0 += d[0]
        self.y0 += d[1]
        data = self.data + d[2]
        data.setflags(write=False)
        self.data = data
        self.clear_cache()

    def rotate(self, pivot, phi: float, theta: float, psi: float) -> None:
        raise TypeError("HeightMapSurface supports translation only")

    def __repr__(self):
        return (f"HeightMapSurface({self.nx}x{self.ny}, origin=({self.x0}, {self.y0}), "
                f"spacing=({self.dX}, {self.dY}), is_below={self.is_below})")
