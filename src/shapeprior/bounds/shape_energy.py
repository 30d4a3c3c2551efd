"""
Lower bound of the shape energy over all shapes admitted by constraints.

The pair constraints form a tree over edges, so the minimum can be found by
dynamic programming from the leaves towards edge 0. Each child edge is
summarized by a 2-d generalized distance transform over the (scaled length,
shifted angle) of its parent: the pair term is quadratic in the difference
between the parent's length and the child's scaled length, and between the
parent's angle and the child's angle minus the mean relative angle.
"""

import math

from shapeprior.geometry.range import Range
from shapeprior.geometry.vector import trunc
from shapeprior.tracer import get_tracer, trace
from shapeprior.transforms.gdt import GeneralizedDistanceTransform2D


class ShapeEnergyLowerBoundCalculator:
    """Grid-based shape energy lower bound."""

    def __init__(self, length_grid_size=201, angle_grid_size=201):
        if length_grid_size < 2 or angle_grid_size < 2:
            raise ValueError("Grid sizes must be at least 2")
        self.length_grid_size = length_grid_size
        self.angle_grid_size = angle_grid_size

    @trace(label="shape_energy_lower_bound")
    def calculate_lower_bound(self, image_size, constraints):
        """
        Lower bound of ``Shape.calculate_energy()`` for shapes inside an
        image of ``image_size`` = (width, height) satisfying ``constraints``.
        """
        if constraints is None:
            raise TypeError("constraints are required")

        model = constraints.model
        limits = [constraints.determine_edge_limits(i) for i in range(len(model.edges))]

        if model.pairwise_edge_constraint_count == 0:
            return self._single_edge_lower_bound(constraints, limits[0]) * model.shape_energy_weight

        max_ratio = max(
            max(params.length_ratio, 1.0 / params.length_ratio)
            for params in (model.get_edge_pair_params(i, j) for i, j in model.constrained_edge_pairs))
        # Constraint boxes may reach past the image, so the grid covers the longest admitted edge too
        max_length = max(math.hypot(image_size[0], image_size[1]), max(limit.length_range.right for limit in limits))
        max_scaled_length = max_length * max_ratio

        child_transforms = [
            self._min_energies_for_parent(constraints, limits, max_scaled_length, 0, child)
            for child in model.iterate_neighboring_edge_indices(0)
        ]

        root_length_range, root_angle_range = limits[0]
        grid = child_transforms[0]
        min_energy = math.inf
        for length_index in range(grid.coord_to_grid_index_x(root_length_range.left),
                                  grid.coord_to_grid_index_x(root_length_range.right) + 1):
            length = grid.grid_index_to_coord_x(length_index)
            best_pairwise = math.inf
            for angle_index in _angle_indices(grid, root_angle_range):
                angle = grid.grid_index_to_coord_y(angle_index)
                best_pairwise = min(best_pairwise, _min_pairwise_energy(length, angle, child_transforms))

            unary = _min_unary_energy(constraints, 0, length)
            min_energy = min(min_energy, best_pairwise + unary)

        get_tracer().event("Shape energy bound", level="DEBUG", bound=min_energy)
        return min_energy * model.shape_energy_weight

    def _single_edge_lower_bound(self, constraints, limits):
        """Closed-form minimum of the width term over the length and width ranges."""
        length_range = limits.length_range
        edge_constraints = constraints.edge_constraints[0]
        params = constraints.model.get_edge_params(0)
        ratio = params.width_to_edge_length_ratio

        scaled = Range(length_range.left * ratio, length_range.right * ratio)
        if scaled.intersects_with(edge_constraints.width_range):
            return 0.0
        if scaled.left > edge_constraints.max_width:
            # Every edge is too long for the widest allowed stroke
            return constraints.model.calculate_edge_width_energy_term(
                0, edge_constraints.max_width, length_range.left)
        return constraints.model.calculate_edge_width_energy_term(
            0, edge_constraints.min_width, length_range.right)

    def _min_energies_for_parent(self, constraints, limits, max_scaled_length, parent_index, edge_index):
        model = constraints.model
        children = [
            self._min_energies_for_parent(constraints, limits, max_scaled_length, edge_index, child)
            for child in model.iterate_neighboring_edge_indices(edge_index)
            if child != parent_index
        ]

        length_range, angle_range = limits[edge_index]
        params = model.get_edge_pair_params(parent_index, edge_index)

        transform = GeneralizedDistanceTransform2D(
            Range(0.0, max_scaled_length), Range(-2 * math.pi, 2 * math.pi),
            self.length_grid_size, self.angle_grid_size)
        transform.add_finite_penalty_range_x(
            Range(length_range.left * params.length_ratio, length_range.right * params.length_ratio))
        if angle_range.outside:
            transform.add_finite_penalty_range_y(
                Range(-math.pi - params.mean_angle, angle_range.left - params.mean_angle))
            transform.add_finite_penalty_range_y(
                Range(angle_range.right - params.mean_angle, math.pi - params.mean_angle))
        else:
            transform.add_finite_penalty_range_y(
                Range(angle_range.left - params.mean_angle, angle_range.right - params.mean_angle))

        def penalty(scaled_length, shifted_angle, length_radius, angle_radius):
            length = scaled_length / params.length_ratio
            angle = shifted_angle + params.mean_angle
            return (_min_unary_energy(constraints, edge_index, length) +
                    _min_pairwise_energy(length, angle, children))

        transform.compute(
            1.0 / params.length_deviation ** 2,
            1.0 / params.angle_deviation ** 2,
            penalty)
        return transform


def _angle_indices(transform, angle_range):
    if angle_range.outside:
        upper = range(transform.coord_to_grid_index_y(angle_range.right),
                      transform.coord_to_grid_index_y(math.pi) + 1)
        lower = range(transform.coord_to_grid_index_y(-math.pi),
                      transform.coord_to_grid_index_y(angle_range.left) + 1)
        return list(upper) + list(lower)
    return range(transform.coord_to_grid_index_y(angle_range.left),
                 transform.coord_to_grid_index_y(angle_range.right) + 1)


def _min_unary_energy(constraints, edge_index, length):
    edge_constraints = constraints.edge_constraints[edge_index]
    ratio = constraints.model.get_edge_params(edge_index).width_to_edge_length_ratio
    width = trunc(length * ratio, edge_constraints.min_width, edge_constraints.max_width)
    return constraints.model.calculate_edge_width_energy_term(edge_index, width, length)


def _min_pairwise_energy(length, angle, transforms):
    """Sum of child transform values, trying both representations of the angle."""
    total = 0.0
    for transform in transforms:
        energy = transform.get_value_by_coords(length, angle)
        if transform.coord_to_grid_index_y(angle) == transform.coord_to_grid_index_y(0.0):
            energy = min(energy,
                         transform.get_value_by_coords(length, -2 * math.pi),
                         transform.get_value_by_coords(length, 2 * math.pi))
        else:
            other_angle = angle - 2 * math.pi if angle > 0 else angle + 2 * math.pi
            energy = min(energy, transform.get_value_by_coords(length, other_angle))
        total += energy
    return total
