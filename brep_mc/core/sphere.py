"""Sphere shape."""

import numpy as np
from typing import Optional

from brep_mc.config import Tolerances, resolve
from brep_mc.core.shape import (
    Shape, ShapeKind, Intersection, NO_CROSSING, as_point, side_of_boundary,
)
from brep_mc.core.transform import rotate_points
from brep_mc.errors import ConfigurationError


class Sphere(Shape):
    """
    Solid sphere.

    On the surface, a point counts as inside when the trajectory heads
    inward (delta . (p - center) < 0). A tangent trajectory follows the
    shared tie-break on the outward normal. A tangent ray never crosses.
    """

    kind = ShapeKind.SPHERE

    def __init__(self, center, radius: float, tolerances: Optional[Tolerances] = None):
        super().__init__()
        if not radius > 0.0:
            raise ConfigurationError(f"Sphere radius must be positive, got {radius}")
        self.center = as_point(center).copy()
        self.radius = float(radius)
        self.tolerances = resolve(tolerances)

    def contains(self, p0, p1=None) -> bool:
        rel = as_point(p0) - self.center
        dist_sq = np.dot(rel, rel)
        r_sq = self.radius * self.radius
        if dist_sq != r_sq or p1 is None:
            return bool(dist_sq <= r_sq)
        delta = as_point(p1) - as_point(p0)
        n = rel / self.radius
        return bool(side_of_boundary(delta[0], delta[1], delta[2], n[0], n[1], n[2]))

    def first_normal(self, p0, p1) -> Intersection:
        p0 = as_point(p0)
        delta = as_point(p1) - p0
        rel = p0 - self.center

        # Quadratic in u, with b halved
        a = np.dot(delta, delta)
        b = np.dot(rel, delta)
        c = np.dot(rel, rel) - self.radius * self.radius
        term = b * b - a * c

        # term == 0 is a tangent ray: no transition, so no crossing
        if a == 0.0 or term <= 0.0:
            return self._record(Intersection(np.zeros(3), NO_CROSSING))

        term = np.sqrt(term) / a
        u1 = -b / a + term
        u2 = -b / a - term
        u = NO_CROSSING
        if u1 > 0.0:
            u = u1
        if u2 > 0.0 and u2 < u1:
            u = u2
        if u == NO_CROSSING:
            return self._record(Intersection(np.zeros(3), NO_CROSSING))

        normal = (rel + u * delta) / self.radius
        return self._record(Intersection(normal, float(u)))

    @property
    def supports_transform(self) -> bool:
        return True

    def translate(self, distance) -> None:
        self.center = self.center + as_point(distance)

    def rotate(self, pivot, phi: float, theta: float, psi: float) -> None:
        self.center = rotate_points(self.center, pivot, phi, theta, psi)

    def __repr__(self):
        return f"Sphere(center={self.center.tolist()}, radius={self.radius})"
