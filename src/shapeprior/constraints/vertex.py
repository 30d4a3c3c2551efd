"""
Axis-aligned admissible regions for shape vertices.
"""

from shapeprior.geometry.range import Range
from shapeprior.geometry.vector import Vector, trunc


class VertexConstraints:
    """
    A closed box [min_coord, max_coord] a vertex must lie in.

    Zero-area boxes (segments and single points) are valid. Corners are
    always listed in the same order: (min.x, min.y), (min.x, max.y),
    (max.x, max.y), (max.x, min.y), so consecutive corners span the box
    sides.
    """

    __slots__ = ("_min_coord", "_max_coord", "_corners")

    def __init__(self, min_coord, max_coord):
        min_coord = Vector(float(min_coord[0]), float(min_coord[1]))
        max_coord = Vector(float(max_coord[0]), float(max_coord[1]))
        if min_coord.x > max_coord.x or min_coord.y > max_coord.y:
            raise ValueError(f"Vertex box min {tuple(min_coord)} exceeds max {tuple(max_coord)}")

        self._min_coord = min_coord
        self._max_coord = max_coord
        self._corners = (
            min_coord,
            Vector(min_coord.x, max_coord.y),
            max_coord,
            Vector(max_coord.x, min_coord.y),
        )

    @classmethod
    def from_point(cls, point):
        return cls(point, point)

    @property
    def min_coord(self):
        return self._min_coord

    @property
    def max_coord(self):
        return self._max_coord

    @property
    def corners(self):
        return self._corners

    @property
    def x_range(self):
        return Range(self._min_coord.x, self._max_coord.x)

    @property
    def y_range(self):
        return Range(self._min_coord.y, self._max_coord.y)

    @property
    def middle(self):
        return (self._min_coord + self._max_coord) * 0.5

    @property
    def freedom(self):
        """Longest side of the box."""
        size = self._max_coord - self._min_coord
        return max(size.x, size.y)

    @property
    def area(self):
        size = self._max_coord - self._min_coord
        return size.x * size.y

    def contains(self, point):
        return (self._min_coord.x <= point[0] <= self._max_coord.x and
                self._min_coord.y <= point[1] <= self._max_coord.y)

    def clamp(self, point):
        return Vector(
            trunc(point[0], self._min_coord.x, self._max_coord.x),
            trunc(point[1], self._min_coord.y, self._max_coord.y))

    def closest_point(self, point):
        """
        Projection of an outside point onto the box side facing it.

        Only defined when the point lies within the box's x or y slab;
        returns None otherwise, and for points strictly inside the box.
        """
        lo, hi = self._min_coord, self._max_coord
        x, y = point[0], point[1]
        if lo.x <= x <= hi.x:
            if y <= lo.y:
                return Vector(x, lo.y)
            if y >= hi.y:
                return Vector(x, hi.y)
        if lo.y <= y <= hi.y:
            if x <= lo.x:
                return Vector(lo.x, y)
            if x >= hi.x:
                return Vector(hi.x, y)
        return None

    def __eq__(self, other):
        return (isinstance(other, VertexConstraints) and
                self._min_coord == other._min_coord and self._max_coord == other._max_coord)

    def __hash__(self):
        return hash((self._min_coord, self._max_coord))

    def __repr__(self):
        return f"VertexConstraints({tuple(self._min_coord)}, {tuple(self._max_coord)})"
