"""
Concrete shapes: vertex positions and edge widths for a shape model.
"""

import math

from shapeprior.geometry.vector import Vector
from shapeprior.tracer import get_tracer, trace


class Shape:
    """An immutable placement of every vertex and edge width of a model."""

    def __init__(self, model, vertex_positions, edge_widths):
        if model is None:
            raise TypeError("model is required")
        vertex_positions = tuple(Vector(float(p[0]), float(p[1])) for p in vertex_positions)
        edge_widths = tuple(float(w) for w in edge_widths)
        if len(vertex_positions) != model.vertex_count:
            raise ValueError(
                f"Expected {model.vertex_count} vertex positions, got {len(vertex_positions)}")
        if len(edge_widths) != len(model.edges):
            raise ValueError(f"Expected {len(model.edges)} edge widths, got {len(edge_widths)}")
        if any(w < 0 for w in edge_widths):
            raise ValueError("Edge widths must not be negative")

        self._model = model
        self._vertex_positions = vertex_positions
        self._edge_widths = edge_widths

    @property
    def model(self):
        return self._model

    @property
    def vertex_positions(self):
        return self._vertex_positions

    @property
    def edge_widths(self):
        return self._edge_widths

    def get_edge_vector(self, edge_index):
        edge = self._model.edges[edge_index]
        return self._vertex_positions[edge.index2] - self._vertex_positions[edge.index1]

    def calculate_energy(self):
        """Weighted sum of edge width terms and constrained pair terms."""
        model = self._model
        energy = 0.0
        for edge_index in range(len(model.edges)):
            energy += model.calculate_edge_width_energy_term(
                edge_index, self._edge_widths[edge_index], self.get_edge_vector(edge_index).length())

        for edge_index1, edge_index2 in model.constrained_edge_pairs:
            energy += model.calculate_edge_pair_energy_term(
                edge_index1, edge_index2,
                self.get_edge_vector(edge_index1), self.get_edge_vector(edge_index2))

        return energy * model.shape_energy_weight

    def bounding_box(self):
        """Return (min_corner, max_corner) of the vertex positions."""
        xs = [p.x for p in self._vertex_positions]
        ys = [p.y for p in self._vertex_positions]
        return Vector(min(xs), min(ys)), Vector(max(xs), max(ys))

    def to_dict(self):
        return {
            "vertices": [[p.x, p.y] for p in self._vertex_positions],
            "edge_widths": list(self._edge_widths),
        }


@trace(label="fit_mean_shape")
def fit_mean_shape(model, width, height):
    """
    Place every edge at its mean length and angle, then fit the result into
    a width x height rectangle.

    Edge 0 starts as the unit vector along x; every other edge is reached by
    a depth-first walk over the constrained pair tree and attached to the
    vertex it shares with its parent. The final shape is scaled uniformly to
    80% of the rectangle and centred in it.
    """
    if model is None:
        raise TypeError("model is required")
    if width <= 0 or height <= 0:
        raise ValueError("Target size must be positive")

    positions = [None] * model.vertex_count
    root = model.edges[0]
    positions[root.index1] = Vector(0.0, 0.0)
    positions[root.index2] = Vector(1.0, 0.0)

    visited = {0}
    stack = [0]
    while stack:
        parent_index = stack.pop()
        parent = model.edges[parent_index]
        parent_vector = positions[parent.index2] - positions[parent.index1]
        parent_angle = Vector.angle_between(Vector(1.0, 0.0), parent_vector)

        for child_index in model.iterate_neighboring_edge_indices(parent_index):
            if child_index in visited:
                continue
            visited.add(child_index)
            stack.append(child_index)

            params = model.get_edge_pair_params(parent_index, child_index)
            child = model.edges[child_index]
            length = parent_vector.length() / params.length_ratio
            angle = parent_angle + params.mean_angle
            child_vector = Vector(math.cos(angle), math.sin(angle)) * length

            # Attach at whichever endpoint is already placed
            if positions[child.index1] is not None:
                positions[child.index2] = positions[child.index1] + child_vector
            else:
                positions[child.index1] = positions[child.index2] - child_vector

    # Vertices not touched by any edge sit at the origin
    positions = [p if p is not None else Vector(0.0, 0.0) for p in positions]

    xs = [p.x for p in positions]
    ys = [p.y for p in positions]
    extent_x = max(xs) - min(xs)
    extent_y = max(ys) - min(ys)
    scales = []
    if extent_x > 0:
        scales.append(width / extent_x)
    if extent_y > 0:
        scales.append(height / extent_y)
    scale = min(scales) * 0.8 if scales else 1.0

    center = Vector((max(xs) + min(xs)) * 0.5, (max(ys) + min(ys)) * 0.5)
    target_center = Vector(width * 0.5, height * 0.5)
    positions = [(p - center) * scale + target_center for p in positions]

    widths = []
    for edge_index, edge in enumerate(model.edges):
        length = (positions[edge.index2] - positions[edge.index1]).length()
        widths.append(length * model.get_edge_params(edge_index).width_to_edge_length_ratio)

    get_tracer().event("Mean shape fitted", scale=scale, vertices=len(positions))
    return Shape(model, positions, widths)
