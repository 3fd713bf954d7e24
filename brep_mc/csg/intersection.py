"""
Intersection, complement and difference of shapes.

Intersection2 uses the same depth-counting walk as Union2, except that a
boundary of one member only counts while the point is inside the other.
"""

from typing import Optional

from brep_mc.config import Tolerances, resolve
from brep_mc.core.shape import Shape, ShapeKind, Intersection, as_point, no_intersection
from brep_mc.csg.union import step_past, exiting, averaged, _transform_all
from brep_mc.errors import InternalConsistencyFault


class Complement(Shape):
    """Everything outside a shape. Normals are reversed."""

    kind = ShapeKind.COMPLEMENT

    def __init__(self, shape: Shape):
        super().__init__()
        self.shape = shape

    def contains(self, p0, p1=None) -> bool:
        return not self.shape.contains(p0, p1)

    def first_normal(self, p0, p1) -> Intersection:
        nv = self.shape.first_normal(p0, p1)
        return self._record(Intersection(-nv.normal, nv.u))

    @property
    def supports_transform(self) -> bool:
        return self.shape.supports_transform

    def translate(self, distance) -> None:
        _transform_all([self.shape], 'translate', distance)

    def rotate(self, pivot, phi: float, theta: float, psi: float) -> None:
        _transform_all([self.shape], 'rotate', pivot, phi, theta, psi)

    def __repr__(self):
        return f"Complement({self.shape!r})"


class Intersection2(Shape):
    """Points inside both shapes."""

    kind = ShapeKind.INTERSECTION

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
        return self.shape_a.contains(p0, p1) and self.shape_b.contains(p0, p1)

    def first_normal(self, p0, p1) -> Intersection:
        p0 = as_point(p0)
        p1 = as_point(p1)
        delta = p1 - p0
        extra_u = self.tolerances.extra_u
        shape_a, shape_b = self.shape_a, self.shape_b

        nva = shape_a.first_normal(p0, p1)
        if nva.u <= 1.0:
            adepth = exiting(delta, nva)
        else:
            if not shape_a.contains(p0, p1):
                # Outside A along the whole segment
                return self._record(no_intersection())
            adepth = 1

        nvb = shape_b.first_normal(p0, p1)
        if nvb.u <= 1.0:
            bdepth = exiting(delta, nvb)
        else:
            if not shape_b.contains(p0, p1):
                return self._record(no_intersection())
            if adepth == 1:
                # Inside B throughout, so A's boundary is ours
                return self._record(nva)
            bdepth = 1

        cdepth = adepth + bdepth

        for _ in range(self.tolerances.max_csg_steps):
            if nva.u < nvb.u:
                if bdepth == 1:
                    return self._record(nva)
                cdepth ^= 1
                nva = step_past(shape_a, p0, p1, delta, nva.u, extra_u)
                if nva.u > 1.0:
                    if cdepth == 0:
                        return self._record(no_intersection())
                    return self._record(nvb)
                adepth ^= 1

            elif nva.u > nvb.u:
                if adepth == 1:
                    return self._record(nvb)
                cdepth ^= 1
                nvb = step_past(shape_b, p0, p1, delta, nvb.u, extra_u)
                if nvb.u > 1.0:
                    if cdepth == 0:
                        return self._record(no_intersection())
                    return self._record(nva)
                bdepth ^= 1

            else:
                depth_change = ((adepth ^ 1) - adepth) + ((bdepth ^ 1) - bdepth)
                if depth_change != 0:
                    return self._record(averaged(nva, nvb))

                nva = step_past(shape_a, p0, p1, delta, nva.u, extra_u)
                nvb = step_past(shape_b, p0, p1, delta, nvb.u, extra_u)
                # adepth and bdepth still hold their pre-crossing values
                if nva.u > 1.0:
                    if adepth == 0:
                        return self._record(nvb)
                    return self._record(no_intersection())
                if nvb.u > 1.0:
                    if bdepth == 0:
                        return self._record(nva)
                    return self._record(no_intersection())
                adepth ^= 1
                bdepth ^= 1

        raise InternalConsistencyFault(
            f"Intersection2 stepping exceeded {self.tolerances.max_csg_steps} steps",
            steps=self.tolerances.max_csg_steps)

    @property
    def supports_transform(self) -> bool:
        return self.shape_a.supports_transform and self.shape_b.supports_transform

    def translate(self, distance) -> None:
        _transform_all(self.shapes, 'translate', distance)

    def rotate(self, pivot, phi: float, theta: float, psi: float) -> None:
        _transform_all(self.shapes, 'rotate', pivot, phi, theta, psi)

    def __repr__(self):
        return f"Intersection2({self.shape_a!r}, {self.shape_b!r})"


class Difference2(Intersection2):
    """Points inside shape_a but not inside shape_b."""

    kind = ShapeKind.DIFFERENCE

    def __init__(self, shape_a: Shape, shape_b: Shape,
                 tolerances: Optional[Tolerances] = None):
        super().__init__(shape_a, Complement(shape_b), tolerances)
        self.subtracted = shape_b

    def __repr__(self):
        return f"Difference2({self.shape_a!r}, {self.subtracted!r})"
