"""
Dual-decomposition lower bound on the joint segmentation and shape energy
for single-edge shape models.

Every pixel gets its own copy of the edge, tied to one shared master copy by
per-pixel Lagrange multipliers. For fixed multipliers the problem splits
into a segmentation problem (solved by the oracle on the per-pixel shape
terms) and the master problem (a linear function of the master endpoints,
minimized at a corner pair). Their sum is a lower bound; subgradient ascent
on the multipliers tightens it.
"""

from concurrent.futures import Future

import numpy as np

from shapeprior.bounds.segment_solver import (
    MultiplierPair,
    SegmentDistanceSolver,
    SeparableSegmentDistanceSolver,
)
from shapeprior.bounds.shape_terms import edge_distance_bounds
from shapeprior.config import LowerBoundConfig
from shapeprior.models import LowerBoundIteration, LowerBoundResult
from shapeprior.tracer import get_tracer, trace


class LowerBoundCalculator:
    """
    Subgradient ascent driver.

    ``diagnostics_sink`` receives one LowerBoundIteration per iteration,
    ``should_cancel`` is polled before every iteration and ``debug_writer``
    (a DebugArtifactWriter) dumps images of selected iterations.
    """

    def __init__(self, oracle, config=None, diagnostics_sink=None, should_cancel=None, debug_writer=None):
        if oracle is None:
            raise TypeError("oracle is required")
        self.oracle = oracle
        self.config = config if config is not None else LowerBoundConfig()
        self.diagnostics_sink = diagnostics_sink
        self.should_cancel = should_cancel
        self.debug_writer = debug_writer

    @property
    def multiplier_scale(self):
        """Multipliers enter the shape terms divided by the oracle's weights."""
        return 1.0 / (self.oracle.unary_term_weight * self.oracle.shape_unary_term_weight)

    @trace(label="dual_decomposition_lower_bound")
    def calculate_lower_bound(self, constraints):
        """Run the configured number of iterations; returns a LowerBoundResult."""
        if constraints is None:
            raise TypeError("constraints are required")
        model = constraints.model
        if len(model.edges) != 1:
            raise ValueError(f"Only single-edge models are supported, got {len(model.edges)} edges")

        tracer = get_tracer()
        width, height = self.oracle.image_size
        box1, box2 = constraints.edge_vertex_constraints(0)
        scale = self.multiplier_scale
        solver = SegmentDistanceSolver(box1, box2, scale)
        separable_solver = SeparableSegmentDistanceSolver(box1, box2, scale)

        _, max_distance_sqr = edge_distance_bounds(width, height, box1, box2)
        background_penalties = model.calculate_background_penalty_for_edge(
            max_distance_sqr, constraints.edge_constraints[0].min_width)

        multipliers = np.zeros((height, width, 4))
        result = LowerBoundResult(max_lower_bound=-np.inf)

        for iteration in range(self.config.iterations):
            if self.should_cancel is not None and self.should_cancel():
                tracer.event("Lower bound cancelled", level="INFO", iteration=iteration)
                result.cancelled = True
                break

            background_values, background_segments = self._background_step(box1, box2, multipliers, scale)
            object_values, object_segments = self._object_step(
                solver, separable_solver, multipliers, width, height)
            master_multipliers, master_penalty, master_segment = self._master_step(box1, box2, multipliers)

            shape_terms = np.stack([object_values, background_values + background_penalties], axis=-1)
            segmentation = self.oracle.segment(shape_terms)
            if isinstance(segmentation, Future):
                segmentation = segmentation.result()
            mask, energy = segmentation

            lower_bound = energy + master_penalty
            record = LowerBoundIteration(
                iteration=iteration,
                lower_bound=lower_bound,
                segmentation_energy=energy,
                master_segment=[list(master_segment[:2]), list(master_segment[2:])],
                master_multipliers=[list(master_multipliers[:2]), list(master_multipliers[2:])],
                master_penalty=master_penalty,
                object_pixel_count=int(np.count_nonzero(mask)),
            )
            tracer.event("Iteration done", level="DEBUG", iteration=iteration,
                         lower_bound=lower_bound, master_penalty=master_penalty)

            if result.first_lower_bound is None:
                result.first_lower_bound = lower_bound
            result.max_lower_bound = max(result.max_lower_bound, lower_bound)
            result.completed_iterations = iteration + 1
            result.iterations.append(record)

            if self.diagnostics_sink is not None:
                self.diagnostics_sink(record)
            if self.debug_writer is not None and self.debug_writer.should_write(iteration):
                self.debug_writer.write_iteration(iteration, self.oracle, record)

            selected = np.where(mask[..., np.newaxis], object_segments, background_segments)
            updated = multipliers + self.config.step_size * (selected - master_segment)
            if not np.all(np.isfinite(updated)):
                raise FloatingPointError(f"Multipliers became non-finite at iteration {iteration}")
            multipliers = updated

        tracer.event("Lower bound done", level="INFO", max_lower_bound=result.max_lower_bound,
                     iterations=result.completed_iterations)
        return result

    def _background_step(self, box1, box2, multipliers, scale):
        """Cheapest corner pair under every pixel's multipliers."""
        height, width = multipliers.shape[:2]
        best_values = np.full((height, width), np.inf)
        best_segments = np.zeros((height, width, 4))
        for corner1 in box1.corners:
            for corner2 in box2.corners:
                values = (multipliers[..., 0] * corner1.x + multipliers[..., 1] * corner1.y +
                          multipliers[..., 2] * corner2.x + multipliers[..., 3] * corner2.y)
                better = values < best_values
                best_values[better] = values[better]
                best_segments[better] = (corner1.x, corner1.y, corner2.x, corner2.y)
        return best_values * scale, best_segments

    def _object_step(self, solver, separable_solver, multipliers, width, height):
        first = multipliers[0, 0]
        if self.config.use_separable_transform and np.all(multipliers == first):
            return separable_solver.object_bound_map(width, height, MultiplierPair.from_array(first))
        return solver.object_bound_grid(multipliers)

    def _master_step(self, box1, box2, multipliers):
        """
        The master copy carries the negated sum of all multipliers; returns
        (master multipliers, master penalty, master segment) as flat arrays.
        """
        master_multipliers = -multipliers.sum(axis=(0, 1))
        bound = SegmentDistanceSolver(box1, box2).background_bound(MultiplierPair.from_array(master_multipliers))
        return master_multipliers, float(bound.value), bound.segment.as_array()
