"""
Convex polygons backed by shapely geometries.
"""

import shapely
from shapely.geometry import MultiPoint, Point

from shapeprior.geometry.vector import Vector


class Polygon:
    """
    A polygon given by its vertices in boundary order.

    Point containment treats the boundary as inside. Degenerate polygons
    (a single point or a segment) are allowed and contain exactly their
    own points.
    """

    def __init__(self, vertices, geometry=None):
        self._vertices = tuple(Vector(float(x), float(y)) for x, y in vertices)
        if not self._vertices:
            raise ValueError("Polygon needs at least one vertex")
        if geometry is None:
            geometry = _geometry_from_vertices(self._vertices)
        self._geometry = geometry

    @classmethod
    def convex_hull(cls, points):
        """
        Minimal convex polygon containing all points.

        Duplicate points and points lying on hull edges are not hull
        vertices. The result does not depend on the order of ``points``.
        """
        points = [(float(x), float(y)) for x, y in points]
        if not points:
            raise ValueError("Cannot build a convex hull of no points")

        hull = MultiPoint(points).convex_hull
        if hull.geom_type == "Polygon":
            vertices = list(hull.exterior.coords)[:-1]
        elif hull.geom_type == "LineString":
            vertices = list(hull.coords)
        else:
            vertices = [(hull.x, hull.y)]
        return cls(vertices, geometry=hull)

    @property
    def vertices(self):
        return self._vertices

    @property
    def geometry(self):
        return self._geometry

    def is_point_inside(self, point):
        return self._geometry.intersects(Point(point[0], point[1]))

    def points_inside(self, xs, ys):
        """Vectorized containment test over coordinate arrays."""
        return shapely.intersects_xy(self._geometry, xs, ys)


def _geometry_from_vertices(vertices):
    if len(vertices) == 1:
        return Point(vertices[0])
    if len(vertices) == 2:
        return shapely.LineString(vertices)
    return shapely.Polygon(vertices)
