"""
Constraint snapshots for a whole shape.

A ShapeConstraints instance pairs a shape model with one vertex box per
vertex and one width range per edge. It is immutable: narrowing the
constraints means building a new instance.
"""

import math

from shapeprior.constraints.edge import EdgeConstraints, EdgeLimits
from shapeprior.constraints.vertex import VertexConstraints
from shapeprior.geometry.polygon import Polygon
from shapeprior.geometry.range import Range
from shapeprior.geometry.vector import Vector
from shapeprior.shapes.shape import Shape


class ShapeConstraints:
    """Immutable vertex and edge constraints tied to one shape model."""

    def __init__(self, model, vertex_constraints, edge_constraints):
        if model is None:
            raise TypeError("model is required")
        if vertex_constraints is None or edge_constraints is None:
            raise TypeError("vertex_constraints and edge_constraints are required")

        vertex_constraints = tuple(vertex_constraints)
        edge_constraints = tuple(edge_constraints)
        if len(vertex_constraints) != model.vertex_count:
            raise ValueError(
                f"Expected {model.vertex_count} vertex constraints, got {len(vertex_constraints)}")
        if len(edge_constraints) != len(model.edges):
            raise ValueError(
                f"Expected {len(model.edges)} edge constraints, got {len(edge_constraints)}")

        self._model = model
        self._vertex_constraints = vertex_constraints
        self._edge_constraints = edge_constraints
        self._hull_cache = {}

    @classmethod
    def create_from_constraints(cls, model, vertex_constraints, edge_constraints):
        return cls(model, vertex_constraints, edge_constraints)

    @classmethod
    def create_from_bounds(cls, model, coord_min, coord_max, min_edge_width, max_edge_width):
        """Every vertex may lie anywhere in one box, every edge has one width range."""
        if model is None:
            raise TypeError("model is required")
        vertex = VertexConstraints(coord_min, coord_max)
        edge = EdgeConstraints(min_edge_width, max_edge_width)
        return cls(model, [vertex] * model.vertex_count, [edge] * len(model.edges))

    @classmethod
    def create_from_shape(cls, shape):
        """Constraints admitting exactly the given shape."""
        if shape is None:
            raise TypeError("shape is required")
        return cls(
            shape.model,
            [VertexConstraints.from_point(p) for p in shape.vertex_positions],
            [EdgeConstraints.from_width(w) for w in shape.edge_widths],
        )

    @property
    def model(self):
        return self._model

    @property
    def vertex_constraints(self):
        return self._vertex_constraints

    @property
    def edge_constraints(self):
        return self._edge_constraints

    def edge_vertex_constraints(self, edge_index):
        """Boxes of the two endpoints of an edge."""
        edge = self._model.edges[edge_index]
        return self._vertex_constraints[edge.index1], self._vertex_constraints[edge.index2]

    def determine_edge_limits(self, edge_index):
        """
        Admissible length and signed angle (from the x axis) of an edge.

        The angle range is an outside range when the second box lies
        strictly to the left of the first with overlapping y extents, as the
        admissible directions then wrap across +-pi.
        """
        constraint1, constraint2 = self.edge_vertex_constraints(edge_index)

        x_intersection = constraint1.x_range.intersects_with(constraint2.x_range)
        y_intersection = constraint1.y_range.intersects_with(constraint2.y_range)

        min_length = math.inf
        max_length = 0.0

        if x_intersection and y_intersection:
            angle_range = Range(-math.pi, math.pi)
            min_length = 0.0
        else:
            angle_sign_changes = constraint1.min_coord.x > constraint2.max_coord.x and y_intersection

            min_angle = -math.pi if angle_sign_changes else math.pi
            max_angle = math.pi if angle_sign_changes else -math.pi
            for point1 in constraint1.corners:
                for point2 in constraint2.corners:
                    angle = Vector.angle_between(Vector(1.0, 0.0), point2 - point1)
                    if angle_sign_changes:
                        if angle < 0:
                            min_angle = max(min_angle, angle)
                        else:
                            max_angle = min(max_angle, angle)
                    else:
                        min_angle = min(min_angle, angle)
                        max_angle = max(max_angle, angle)
            angle_range = Range(min_angle, max_angle, angle_sign_changes)

            # Boxes stacked along one axis are closest across the gap
            if x_intersection:
                if constraint1.min_coord.y > constraint2.max_coord.y:
                    min_length = constraint1.min_coord.y - constraint2.max_coord.y
                else:
                    min_length = constraint2.min_coord.y - constraint1.max_coord.y
            elif y_intersection:
                if constraint1.max_coord.x < constraint2.min_coord.x:
                    min_length = constraint2.min_coord.x - constraint1.max_coord.x
                else:
                    min_length = constraint1.min_coord.x - constraint2.max_coord.x

        for point1 in constraint1.corners:
            for point2 in constraint2.corners:
                length = (point1 - point2).length()
                min_length = min(min_length, length)
                max_length = max(max_length, length)

        return EdgeLimits(Range(min_length, max_length), angle_range)

    def get_convex_hull_for_vertex_pair(self, vertex_index1, vertex_index2):
        """Convex hull of the corners of two vertex boxes, memoized per pair."""
        key = (vertex_index1, vertex_index2)
        hull = self._hull_cache.get(key)
        if hull is None:
            points = (self._vertex_constraints[vertex_index1].corners +
                      self._vertex_constraints[vertex_index2].corners)
            hull = Polygon.convex_hull(points)
            self._hull_cache[key] = hull
        return hull

    def middle_shape(self):
        """Shape with every vertex at its box centre and every width at its range middle."""
        return Shape(
            self._model,
            [c.middle for c in self._vertex_constraints],
            [c.middle_width for c in self._edge_constraints],
        )

    def __repr__(self):
        return (f"ShapeConstraints(vertices={len(self._vertex_constraints)}, "
                f"edges={len(self._edge_constraints)})")
