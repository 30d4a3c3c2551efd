"""
Per-pixel lower bounds for a single edge whose endpoints are confined to
two boxes.

For a pixel x, boxes B1, B2 and multipliers (lambda1, lambda2) the object
term is a lower bound on

    min_{p1 in B1, p2 in B2} dist^2(x, [p1, p2]) + s * (lambda1.p1 + lambda2.p2)

obtained by fixing one endpoint at a corner of its box and minimizing over
the other box: once at the unconstrained optimum of the free endpoint and
once along each side of the free box. The background term drops the
distance and minimizes the linear part over corner pairs.

Candidates are compared with strict ``<`` in one fixed order, so the
earliest candidate wins ties:

1. box 1 corners 0..3 as the fixed end, then box 2 corners 0..3;
2. for each fixed corner, the interior candidate, then free-box sides 0..3;
3. on each side, the penalty corner is the side's first corner when both
   corners cost the same.
"""

from typing import NamedTuple

import numpy as np

from shapeprior.bounds.shape_terms import pixel_grid
from shapeprior.geometry.range import Range
from shapeprior.geometry.vector import Vector, line_intersection, trunc
from shapeprior.tracer import trace
from shapeprior.transforms.gdt import GeneralizedDistanceTransform2D

SIDE_TOLERANCE = 1e-9
PARALLEL_TOLERANCE = 1e-12


class Segment(NamedTuple):
    """A hypothesized placement of an edge."""
    point1: Vector
    point2: Vector

    def as_array(self):
        return np.array([self.point1.x, self.point1.y, self.point2.x, self.point2.y])

    @classmethod
    def from_array(cls, values):
        return cls(Vector(float(values[0]), float(values[1])), Vector(float(values[2]), float(values[3])))


class MultiplierPair(NamedTuple):
    """Lagrange multipliers attached to the two endpoints of one edge copy."""
    lambda1: Vector
    lambda2: Vector

    def as_array(self):
        return np.array([self.lambda1.x, self.lambda1.y, self.lambda2.x, self.lambda2.y])

    @classmethod
    def from_array(cls, values):
        return cls(Vector(float(values[0]), float(values[1])), Vector(float(values[2]), float(values[3])))

    @classmethod
    def zero(cls):
        return cls(Vector(0.0, 0.0), Vector(0.0, 0.0))


class FixedCornerBound(NamedTuple):
    """Best candidate for one fixed corner."""
    value: float
    distance_point: Vector
    penalty_point: Vector


class SegmentBound(NamedTuple):
    """A bound value and the segment realizing it."""
    value: float
    segment: Segment


def lower_bound_for_fixed_corner(point, fixed_corner, free_constraints, fixed_multiplier,
                                 free_multiplier, multiplier_scale=1.0, interior_point=None):
    """
    Lower bound with one endpoint fixed at ``fixed_corner`` and the other
    free in ``free_constraints``.

    ``interior_point`` overrides the unconstrained candidate of the free
    endpoint; by default it is the minimizer of the point-distance
    relaxation, point - s * free_multiplier / 2, clamped into the box.
    """
    point = Vector(*point)
    fixed_corner = Vector(*fixed_corner)

    if interior_point is None:
        interior_point = point - free_multiplier * (0.5 * multiplier_scale)
    closest = free_constraints.clamp(interior_point)
    best_value = (multiplier_scale * closest.dot(free_multiplier) +
                  point.distance_to_segment_squared(fixed_corner, closest)[0])
    best_distance_point = best_penalty_point = closest

    corners = free_constraints.corners
    ray = point - fixed_corner
    for i in range(4):
        corner1 = corners[i]
        corner2 = corners[(i + 1) % 4]
        side = corner2 - corner1
        penalty1 = corner1.dot(free_multiplier)
        penalty2 = corner2.dot(free_multiplier)

        intersection = line_intersection(fixed_corner, ray, corner1, side)
        if (intersection is not None and intersection[0] >= 1 and
                -SIDE_TOLERANCE <= intersection[1] <= 1 + SIDE_TOLERANCE):
            closest = corner1 + side * trunc(intersection[1], 0.0, 1.0)
        else:
            closest = Vector(
                trunc(point.x, min(corner1.x, corner2.x), max(corner1.x, corner2.x)),
                trunc(point.y, min(corner1.y, corner2.y), max(corner1.y, corner2.y)))

        if penalty1 <= penalty2:
            penalty_point, penalty = corner1, penalty1
        else:
            penalty_point, penalty = corner2, penalty2

        value = point.distance_to_segment_squared(fixed_corner, closest)[0] + penalty * multiplier_scale
        if value < best_value:
            best_value = value
            best_distance_point = closest
            best_penalty_point = penalty_point

    best_value += multiplier_scale * fixed_corner.dot(fixed_multiplier)
    return FixedCornerBound(best_value, best_distance_point, best_penalty_point)


def _distance_to_segment_sqr(xs, ys, start_x, start_y, end_x, end_y):
    """Elementwise Vector.distance_to_segment_squared, distance only."""
    direction_x = end_x - start_x
    direction_y = end_y - start_y
    offset_x = xs - start_x
    offset_y = ys - start_y
    length_sqr = direction_x * direction_x + direction_y * direction_y
    alpha = (direction_x * offset_x + direction_y * offset_y) / np.where(length_sqr == 0, 1.0, length_sqr)

    start_sqr = offset_x * offset_x + offset_y * offset_y
    end_dx = xs - end_x
    end_dy = ys - end_y
    end_sqr = end_dx * end_dx + end_dy * end_dy
    middle_dx = xs - (start_x + direction_x * alpha)
    middle_dy = ys - (start_y + direction_y * alpha)
    middle_sqr = middle_dx * middle_dx + middle_dy * middle_dy

    return np.where((length_sqr == 0) | (alpha < 0), start_sqr, np.where(alpha > 1, end_sqr, middle_sqr))


def fixed_corner_bound_arrays(xs, ys, fixed_corner, free_constraints, fixed_multiplier, free_multiplier,
                              multiplier_scale=1.0, interior_points=None):
    """
    lower_bound_for_fixed_corner for many pixels at once.

    Multiplier components may be scalars or arrays broadcastable to ``xs``.
    ``interior_points`` is an optional (xs, ys) pair of arrays overriding
    the interior candidate; NaN entries keep the default one. Returns
    (values, distance_xs, distance_ys, penalty_xs, penalty_ys).
    """
    fixed_x, fixed_y = fixed_corner
    free_mx, free_my = free_multiplier
    lo, hi = free_constraints.min_coord, free_constraints.max_coord

    interior_x = xs - free_mx * (0.5 * multiplier_scale)
    interior_y = ys - free_my * (0.5 * multiplier_scale)
    if interior_points is not None:
        interior_x = np.where(np.isnan(interior_points[0]), interior_x, interior_points[0])
        interior_y = np.where(np.isnan(interior_points[1]), interior_y, interior_points[1])
    closest_x = np.clip(interior_x, lo.x, hi.x)
    closest_y = np.clip(interior_y, lo.y, hi.y)

    best = (multiplier_scale * (closest_x * free_mx + closest_y * free_my) +
            _distance_to_segment_sqr(xs, ys, fixed_x, fixed_y, closest_x, closest_y))
    distance_x, distance_y = closest_x, closest_y
    penalty_x, penalty_y = closest_x, closest_y

    corners = free_constraints.corners
    ray_x = xs - fixed_x
    ray_y = ys - fixed_y
    for i in range(4):
        corner1 = corners[i]
        corner2 = corners[(i + 1) % 4]
        side_x = corner2.x - corner1.x
        side_y = corner2.y - corner1.y
        penalty1 = corner1.x * free_mx + corner1.y * free_my
        penalty2 = corner2.x * free_mx + corner2.y * free_my

        denominator = ray_x * side_y - ray_y * side_x
        parallel = np.abs(denominator) < PARALLEL_TOLERANCE
        denominator = np.where(parallel, 1.0, denominator)
        dx = corner1.x - fixed_x
        dy = corner1.y - fixed_y
        ray_t = (dx * side_y - dy * side_x) / denominator
        side_t = (dx * ray_y - dy * ray_x) / denominator
        hit = ~parallel & (ray_t >= 1) & (side_t >= -SIDE_TOLERANCE) & (side_t <= 1 + SIDE_TOLERANCE)

        side_t = np.clip(side_t, 0.0, 1.0)
        candidate_x = np.where(hit, corner1.x + side_x * side_t,
                               np.clip(xs, min(corner1.x, corner2.x), max(corner1.x, corner2.x)))
        candidate_y = np.where(hit, corner1.y + side_y * side_t,
                               np.clip(ys, min(corner1.y, corner2.y), max(corner1.y, corner2.y)))

        first = penalty1 <= penalty2
        penalty = np.where(first, penalty1, penalty2)
        value = (_distance_to_segment_sqr(xs, ys, fixed_x, fixed_y, candidate_x, candidate_y) +
                 penalty * multiplier_scale)

        better = value < best
        best = np.where(better, value, best)
        distance_x = np.where(better, candidate_x, distance_x)
        distance_y = np.where(better, candidate_y, distance_y)
        penalty_x = np.where(better, np.where(first, corner1.x, corner2.x), penalty_x)
        penalty_y = np.where(better, np.where(first, corner1.y, corner2.y), penalty_y)

    fixed_mx, fixed_my = fixed_multiplier
    best = best + multiplier_scale * (fixed_x * fixed_mx + fixed_y * fixed_my)
    return best, distance_x, distance_y, penalty_x, penalty_y


class SegmentDistanceSolver:
    """
    Object and background bounds for one edge between two vertex boxes.

    The solver holds no state besides its inputs, so repeated calls with
    the same arguments return identical results.
    """

    def __init__(self, constraints1, constraints2, multiplier_scale=1.0):
        if constraints1 is None or constraints2 is None:
            raise TypeError("Both vertex constraints are required")
        if multiplier_scale <= 0:
            raise ValueError("multiplier_scale must be positive")
        self.constraints1 = constraints1
        self.constraints2 = constraints2
        self.multiplier_scale = float(multiplier_scale)

    def object_bound(self, point, multipliers, interior_points=(None, None)):
        """
        Object term at one pixel and the segment realizing it.

        ``interior_points`` optionally supplies the interior candidate for
        box 2 (when a box 1 corner is fixed) and for box 1 (when a box 2
        corner is fixed).
        """
        scale = self.multiplier_scale
        best = None
        swapped = False

        for corner in self.constraints1.corners:
            candidate = lower_bound_for_fixed_corner(
                point, corner, self.constraints2, multipliers.lambda1, multipliers.lambda2,
                scale, interior_points[0])
            if best is None or candidate.value < best[0].value:
                best = (candidate, corner)

        for corner in self.constraints2.corners:
            candidate = lower_bound_for_fixed_corner(
                point, corner, self.constraints1, multipliers.lambda2, multipliers.lambda1,
                scale, interior_points[1])
            if candidate.value < best[0].value:
                best = (candidate, corner)
                swapped = True

        candidate, fixed = best
        free_end = (candidate.distance_point + candidate.penalty_point) * 0.5
        segment = Segment(free_end, fixed) if swapped else Segment(fixed, free_end)
        return SegmentBound(candidate.value, segment)

    def background_bound(self, multipliers):
        """Minimum of the scaled linear penalty over corner pairs."""
        best_value = None
        best_segment = None
        for corner1 in self.constraints1.corners:
            for corner2 in self.constraints2.corners:
                value = corner1.dot(multipliers.lambda1) + corner2.dot(multipliers.lambda2)
                if best_value is None or value < best_value:
                    best_value = value
                    best_segment = Segment(corner1, corner2)
        return SegmentBound(self.multiplier_scale * best_value, best_segment)

    def object_bound_map(self, width, height, multipliers):
        """
        Object terms for every pixel of a width x height image sharing one
        multiplier pair, one object_bound call per pixel.

        Returns (values, segments): values has shape (height, width),
        segments has shape (height, width, 4) holding point1.x, point1.y,
        point2.x, point2.y.
        """
        values = np.empty((height, width))
        segments = np.empty((height, width, 4))
        for y in range(height):
            for x in range(width):
                bound = self.object_bound(Vector(float(x), float(y)), multipliers)
                values[y, x] = bound.value
                segments[y, x] = bound.segment.as_array()
        return values, segments

    @trace(label="object_bound_grid")
    def object_bound_grid(self, multipliers):
        """
        Object terms for a (height, width, 4) grid of per-pixel multipliers,
        evaluated for all pixels at once. Same results as object_bound.
        """
        multipliers = np.asarray(multipliers, dtype=np.float64)
        height, width = multipliers.shape[:2]
        lambda1 = (multipliers[..., 0], multipliers[..., 1])
        lambda2 = (multipliers[..., 2], multipliers[..., 3])
        return self._object_bounds(width, height, lambda1, lambda2)

    def _object_bounds(self, width, height, lambda1, lambda2, interior_points=(None, None)):
        """Running strict-< minimum over the eight fixed corners, in object_bound order."""
        xs, ys = pixel_grid(width, height)
        scale = self.multiplier_scale
        values = None
        segments = np.empty((height, width, 4))

        fixed_ends = [(corner, self.constraints2, lambda1, lambda2, interior_points[0], False)
                      for corner in self.constraints1.corners]
        fixed_ends += [(corner, self.constraints1, lambda2, lambda1, interior_points[1], True)
                       for corner in self.constraints2.corners]

        for corner, free_constraints, fixed_multiplier, free_multiplier, interior, swapped in fixed_ends:
            value, distance_x, distance_y, penalty_x, penalty_y = fixed_corner_bound_arrays(
                xs, ys, corner, free_constraints, fixed_multiplier, free_multiplier, scale, interior)
            if values is None:
                better = np.ones((height, width), dtype=bool)
                values = value
            else:
                better = value < values
                values = np.where(better, value, values)

            free_x = (distance_x + penalty_x) * 0.5
            free_y = (distance_y + penalty_y) * 0.5
            if swapped:
                candidate = (free_x, free_y, corner.x, corner.y)
            else:
                candidate = (corner.x, corner.y, free_x, free_y)
            for k in range(4):
                segments[..., k] = np.where(better, candidate[k], segments[..., k])

        return values, segments


class SeparableSegmentDistanceSolver(SegmentDistanceSolver):
    """
    Whole-image object terms for one shared multiplier pair.

    The interior minimizer of dist^2(x, p) + s * lambda.p over a box does
    not depend on the fixed corner, so one 2-d generalized distance
    transform per free box (seeded only inside that box, with the linear
    penalty as seed value) gives the interior candidates of every pixel.
    The transforms live on the integer pixel grid extended to cover both
    boxes; the corner and side candidates are then evaluated for all pixels
    at once.
    """

    @trace(label="separable_object_bound_map")
    def object_bound_map(self, width, height, multipliers):
        interior_points = (
            self._interior_argmins(width, height, self.constraints2, multipliers.lambda2),
            self._interior_argmins(width, height, self.constraints1, multipliers.lambda1),
        )
        return self._object_bounds(width, height, multipliers.lambda1, multipliers.lambda2, interior_points)

    def _interior_argmins(self, width, height, free_constraints, free_multiplier):
        """(xs, ys) arrays of shape (height, width) of the transform argmins."""
        lo = free_constraints.min_coord
        hi = free_constraints.max_coord
        min_x = int(np.floor(min(0.0, lo.x)))
        min_y = int(np.floor(min(0.0, lo.y)))
        max_x = int(np.ceil(max(width - 1.0, hi.x)))
        max_y = int(np.ceil(max(height - 1.0, hi.y)))
        # Keep at least two grid points per axis
        max_x = max(max_x, min_x + 1)
        max_y = max(max_y, min_y + 1)

        transform = GeneralizedDistanceTransform2D(
            Range(min_x, max_x), Range(min_y, max_y), max_x - min_x + 1, max_y - min_y + 1)
        transform.add_finite_penalty_range_x(free_constraints.x_range)
        transform.add_finite_penalty_range_y(free_constraints.y_range)

        scale = self.multiplier_scale
        transform.compute(
            1.0, 1.0,
            lambda px, py, rx, ry: scale * (free_multiplier.x * px + free_multiplier.y * py))

        best_xs, best_ys = transform.best_coords
        x_indices = [transform.coord_to_grid_index_x(float(x)) for x in range(width)]
        y_indices = [transform.coord_to_grid_index_y(float(y)) for y in range(height)]
        rows = np.ix_(x_indices, y_indices)
        return best_xs[rows].T, best_ys[rows].T
