"""
Planar vector arithmetic.

Vectors are immutable (x, y) tuples with the usual operators, plus the
distance and angle helpers the shape model and the solvers rely on.
"""

import math
from typing import NamedTuple, Optional, Tuple


class Vector(NamedTuple):
    """An immutable 2-d vector."""
    x: float
    y: float

    def __add__(self, other):
        return Vector(self.x + other[0], self.y + other[1])

    def __sub__(self, other):
        return Vector(self.x - other[0], self.y - other[1])

    def __neg__(self):
        return Vector(-self.x, -self.y)

    def __mul__(self, scalar):
        return Vector(self.x * scalar, self.y * scalar)

    __rmul__ = __mul__

    def __truediv__(self, scalar):
        return Vector(self.x / scalar, self.y / scalar)

    @classmethod
    def zero(cls):
        return cls(0.0, 0.0)

    def dot(self, other):
        return self.x * other[0] + self.y * other[1]

    def cross(self, other):
        return self.x * other[1] - self.y * other[0]

    def length_squared(self):
        return self.x * self.x + self.y * self.y

    def length(self):
        return math.hypot(self.x, self.y)

    def normalized(self):
        """Unit vector in the same direction; the zero vector stays zero."""
        length = self.length()
        if length == 0:
            return Vector(0.0, 0.0)
        return Vector(self.x / length, self.y / length)

    def distance_to_point_squared(self, point):
        return (self - point).length_squared()

    def distance_to_point(self, point):
        return math.sqrt(self.distance_to_point_squared(point))

    def distance_to_segment_squared(self, start, end) -> Tuple[float, float]:
        """
        Squared distance from this point to the segment [start, end].

        Returns (distance_sqr, alpha) where alpha is the parameter of the
        projection onto the supporting line, NOT clamped to [0, 1]. The
        distance itself is measured to the clamped closest point. A segment
        whose ends coincide degenerates to the distance to that point with
        alpha 0.
        """
        direction = Vector(end[0] - start[0], end[1] - start[1])
        offset = Vector(self.x - start[0], self.y - start[1])
        length_sqr = direction.length_squared()
        if length_sqr == 0:
            return offset.length_squared(), 0.0

        alpha = direction.dot(offset) / length_sqr
        if alpha < 0:
            return offset.length_squared(), alpha
        if alpha > 1:
            return self.distance_to_point_squared(end), alpha
        closest = Vector(start[0] + direction.x * alpha, start[1] + direction.y * alpha)
        return self.distance_to_point_squared(closest), alpha

    def distance_to_segment(self, start, end):
        return math.sqrt(self.distance_to_segment_squared(start, end)[0])

    @staticmethod
    def angle_between(v1, v2):
        """
        Signed angle rotating v1 onto v2, in (-pi, pi].

        Zero when either vector has zero length.
        """
        cross = v1[0] * v2[1] - v1[1] * v2[0]
        dot = v1[0] * v2[0] + v1[1] * v2[1]
        if cross == 0 and dot == 0:
            return 0.0
        return normalize_angle(math.atan2(cross, dot))


def normalize_angle(angle):
    """Wrap an angle to (-pi, pi]."""
    result = math.fmod(angle, 2 * math.pi)
    if result > math.pi:
        result -= 2 * math.pi
    elif result <= -math.pi:
        result += 2 * math.pi
    return result


def trunc(value, lower, upper):
    """Clamp value to [lower, upper]."""
    return min(max(value, lower), upper)


def line_intersection(point1, direction1, point2, direction2, eps=1e-12) -> Optional[Tuple[float, float]]:
    """
    Intersect two parametric lines.

    Solves point1 + t1 * direction1 == point2 + t2 * direction2 and returns
    (t1, t2), or None when the directions are parallel or degenerate.
    """
    denominator = direction1[0] * direction2[1] - direction1[1] * direction2[0]
    if abs(denominator) < eps:
        return None

    dx = point2[0] - point1[0]
    dy = point2[1] - point1[1]
    t1 = (dx * direction2[1] - dy * direction2[0]) / denominator
    t2 = (dx * direction1[1] - dy * direction1[0]) / denominator
    return t1, t2
