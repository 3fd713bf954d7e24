"""
Constructive-solid-geometry unions.

Union2 combines exactly two shapes with a depth-counting walk along the
segment: the union boundary is wherever the number of member shapes
containing the advancing point changes to or from zero. UnionN handles any
number of shapes with a simpler (slower) farthest-exit stepping scheme.
"""

import logging
import numpy as np
from typing import Optional, Sequence

from brep_mc.config import Tolerances, resolve
from brep_mc.core.shape import (
    Shape, ShapeKind, Intersection, NO_CROSSING, as_point, no_intersection,
)
from brep_mc.errors import ConfigurationError, InternalConsistencyFault

logger = logging.getLogger(__name__)


# ============================================================================
# Stepping helpers (shared with csg.intersection)
# ============================================================================

def step_past(shape: Shape, p0: np.ndarray, p1: np.ndarray, delta: np.ndarray,
              u: float, extra_u: float) -> Intersection:
    """
    Next crossing of `shape` after parameter u on the segment p0 -> p1.

    The query restarts at u + extra_u so round-off cannot rediscover the
    crossing at u. The returned u is rescaled to the original segment.

    Parameters:
        shape: Shape to re-query
        p0, p1: Original segment
        delta: p1 - p0
        u: Parameter of the crossing just consumed
        extra_u: Overshoot

    Returns:
        Intersection in the original parametrization
    """
    start_u = u + extra_u
    if start_u >= 1.0:
        # Restart point is past p1
        return no_intersection()
    nv = shape.first_normal(p0 + start_u * delta, p1)
    if nv.u < NO_CROSSING:
        return Intersection(nv.normal, nv.u * (1.0 - start_u) + start_u)
    return nv


def exiting(delta: np.ndarray, nv: Intersection) -> int:
    """1 if the crossing nv is inside -> outside along delta, else 0."""
    return 1 if np.dot(delta, nv.normal) > 0.0 else 0


def averaged(nva: Intersection, nvb: Intersection) -> Intersection:
    return Intersection((nva.normal + nvb.normal) / 2.0, nva.u)


def _transform_all(shapes: Sequence[Shape], method: str, *args) -> None:
    for shape in shapes:
        if not shape.supports_transform:
            raise TypeError(f"{shape!r} does not support transformation")
    for shape in shapes:
        getattr(shape, method)(*args)


# ============================================================================
# Binary union
# ============================================================================

class Union2(Shape):
    """
    Union of two shapes.

    Usage:
        u = Union2(Sphere([0, 0, 0], 1.0), half_space([0, 0, 1], [0, 0, 0]))
        hit = u.first_normal([0, 0, -2], [0, 0, 2])
    """

    kind = ShapeKind.UNION2

    def __init__(self, shape_a: Shape, shape_b: Shape,
                 tolerances: Optional[Tolerances] = None):
        super().__init__()
        self.shape_a = shape_a
        self.shape_b = shape_b
        self.tolerances = resolve(tolerances)

    @property
    def shapes(self):
        return (self.shape_a, self.shape_b)

    def contains(self, p0, p1=None) -> bool:
        return self.shape_a.contains(p0, p1) or self.shape_b.contains(p0, p1)

    def first_normal(self, p0, p1) -> Intersection:
        p0 = as_point(p0)
        p1 = as_point(p1)
        delta = p1 - p0
        extra_u = self.tolerances.extra_u
        shape_a, shape_b = self.shape_a, self.shape_b

        # Seed depths: 1 means p0 is inside that shape
        nva = shape_a.first_normal(p0, p1)
        if nva.u <= 1.0:
            adepth = exiting(delta, nva)
        else:
            if shape_a.contains(p0, p1):
                # Inside A for the whole segment
                return self._record(no_intersection())
            adepth = 0

        nvb = shape_b.first_normal(p0, p1)
        if nvb.u <= 1.0:
            bdepth = exiting(delta, nvb)
        else:
            if shape_b.contains(p0, p1):
                return self._record(no_intersection())
            # B is absent along the segment
            return self._record(nva)

        cdepth = adepth + bdepth

        for _ in range(self.tolerances.max_csg_steps):
            if nva.u < nvb.u:
                if adepth == cdepth:
                    # Depth goes to or from 0 together with A
                    return self._record(nva)
                cdepth = 2 if cdepth == 1 else 1
                nva = step_past(shape_a, p0, p1, delta, nva.u, extra_u)
                if nva.u > 1.0:
                    if cdepth == bdepth:
                        return self._record(nvb)
                    return self._record(no_intersection())
                adepth ^= 1

            elif nva.u > nvb.u:
                if bdepth == cdepth:
                    return self._record(nvb)
                cdepth = 2 if cdepth == 1 else 1
                nvb = step_past(shape_b, p0, p1, delta, nvb.u, extra_u)
                if nvb.u > 1.0:
                    if cdepth == adepth:
                        return self._record(nva)
                    return self._record(no_intersection())
                bdepth ^= 1

            else:
                # Both boundaries at the same u: depth changes by 0 or 2
                depth_change = ((adepth ^ 1) - adepth) + ((bdepth ^ 1) - bdepth)
                if depth_change != 0:
                    return self._record(averaged(nva, nvb))

                # Entered one as we left the other
                nva = step_past(shape_a, p0, p1, delta, nva.u, extra_u)
                nvb = step_past(shape_b, p0, p1, delta, nvb.u, extra_u)
                # Depths are not toggled yet, so cdepth != bdepth here means
                # cdepth will equal the toggled bdepth
                if nva.u > 1.0:
                    if cdepth != bdepth:
                        return self._record(nvb)
                    return self._record(no_intersection())
                if nvb.u > 1.0:
                    if cdepth != adepth:
                        return self._record(nva)
                    return self._record(no_intersection())
                adepth ^= 1
                bdepth ^= 1

        raise InternalConsistencyFault(
            f"Union2 stepping exceeded {self.tolerances.max_csg_steps} steps",
            steps=self.tolerances.max_csg_steps)

    @property
    def supports_transform(self) -> bool:
        return self.shape_a.supports_transform and self.shape_b.supports_transform

    def translate(self, distance) -> None:
        _transform_all(self.shapes, 'translate', distance)

    def rotate(self, pivot, phi: float, theta: float, psi: float) -> None:
        _transform_all(self.shapes, 'rotate', pivot, phi, theta, psi)

    def __repr__(self):
        return f"Union2({self.shape_a!r}, {self.shape_b!r})"


# ============================================================================
# N-ary union
# ============================================================================

class UnionN(Shape):
    """
    Union of any number of shapes.

    Starting inside, the point is advanced past the farthest exit of the
    members that contain it until no member does. Starting outside, the
    nearest entry among all members is the answer.

    When two members report the same crossing u, the member listed first
    wins, in both branches.
    """

    kind = ShapeKind.UNION_N

    def __init__(self, shapes: Sequence[Shape], tolerances: Optional[Tolerances] = None):
        super().__init__()
        self.shapes = list(shapes)
        if not self.shapes:
            raise ConfigurationError("UnionN requires at least one shape")
        self.tolerances = resolve(tolerances)

    def add_shape(self, shape: Shape) -> None:
        self.shapes.append(shape)

    def contains(self, p0, p1=None) -> bool:
        for shape in self.shapes:
            if shape.contains(p0, p1):
                return True
        return False

    def first_normal(self, p0, p1) -> Intersection:
        p0 = as_point(p0)
        p1 = as_point(p1)

        if not self.contains(p0, p1):
            best = no_intersection()
            for shape in self.shapes:
                nv = shape.first_normal(p0, p1)
                if 0.0 < nv.u < best.u:
                    best = nv
            return self._record(best)

        delta = p1 - p0
        extra_u = self.tolerances.extra_u
        start = p0
        base = 0.0
        saved = no_intersection()

        for _ in range(self.tolerances.max_csg_steps):
            u_inc = 0.0
            farthest = None
            for shape in self.shapes:
                if shape.contains(start, p1):
                    nv = shape.first_normal(start, p1)
                    if nv.u > u_inc:
                        u_inc = nv.u
                        farthest = nv
            if farthest is None:
                # No member contains the point just past the last exit
                return self._record(saved)
            if u_inc > 1.0:
                # Some member contains the rest of the segment
                return self._record(no_intersection())

            u = base + (1.0 - base) * u_inc
            saved = Intersection(farthest.normal, u)
            base = u + extra_u
            if base >= 1.0:
                probe = p0 + base * delta
                for shape in self.shapes:
                    if shape.contains(probe):
                        return self._record(no_intersection())
                return self._record(saved)
            start = p0 + base * delta

        raise InternalConsistencyFault(
            f"UnionN stepping exceeded {self.tolerances.max_csg_steps} steps",
            steps=self.tolerances.max_csg_steps)

    @property
    def supports_transform(self) -> bool:
        return all(shape.supports_transform for shape in self.shapes)

    def translate(self, distance) -> None:
        _transform_all(self.shapes, 'translate', distance)

    def rotate(self, pivot, phi: float, theta: float, psi: float) -> None:
        _transform_all(self.shapes, 'rotate', pivot, phi, theta, psi)

    def __repr__(self):
        return f"UnionN({len(self.shapes)} shapes)"
