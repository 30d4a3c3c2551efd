"""
Generalized distance transforms on regular grids.

For seed penalties f(j) on a grid the 1-d transform computes, for every
grid point i,

    D(i) = min_j f(j) + scale * (coord(i) - coord(j))^2

with the linear-time lower-envelope-of-parabolas sweep of Felzenszwalb and
Huttenlocher. The 2-d transform is separable: one sweep along x for every
row, then one sweep along y for every column of the row results.

Only grid points inside the registered finite-penalty ranges act as seeds;
everywhere else the penalty is treated as +inf and never evaluated.
"""

import math

import numpy as np

from shapeprior.geometry.range import Range


def lower_envelope(penalties, distance_scale, grid_step):
    """
    Run the 1-d sweep over a list of seed penalties.

    Non-finite penalties are not seeds. Returns (values, best_indices) as
    numpy arrays; with no seeds at all every value is +inf and every best
    index is -1.
    """
    count = len(penalties)
    values = np.full(count, np.inf)
    best = np.full(count, -1, dtype=np.int64)

    seeds = [j for j in range(count) if math.isfinite(penalties[j])]
    if not seeds:
        return values, best

    coeff = distance_scale * grid_step * grid_step
    if coeff == 0:
        seed = min(seeds, key=lambda j: penalties[j])
        values[:] = penalties[seed]
        best[:] = seed
        return values, best

    # envelope[k] is the lowest parabola on [bounds[k], bounds[k + 1]]
    envelope = [seeds[0]]
    bounds = [-math.inf, math.inf]
    for j in seeds[1:]:
        while True:
            k = envelope[-1]
            crossing = ((penalties[j] - penalties[k]) / coeff + j * j - k * k) / (2.0 * (j - k))
            if crossing >= bounds[-2]:
                break
            envelope.pop()
            bounds.pop()
        bounds[-1] = crossing
        envelope.append(j)
        bounds.append(math.inf)

    k = 0
    for i in range(count):
        while bounds[k + 1] < i:
            k += 1
        seed = envelope[k]
        values[i] = penalties[seed] + coeff * (i - seed) * (i - seed)
        best[i] = seed

    return values, best


class _Axis:
    """A regular grid over a closed coordinate range."""

    def __init__(self, coord_range, grid_size):
        if grid_size < 2:
            raise ValueError("Grid size must be at least 2")
        if coord_range.outside or not math.isfinite(coord_range.length) or coord_range.length <= 0:
            raise ValueError(f"Grid range must be a finite non-empty interval, got {coord_range}")

        self.range = coord_range
        self.size = grid_size
        self.step = coord_range.length / (grid_size - 1)
        self.finite_ranges = []

    def coord_to_grid_index(self, coord):
        index = int(math.floor((coord - self.range.left) / self.step + 0.5))
        if index < 0 or index >= self.size:
            raise ValueError(f"Coordinate {coord} is outside of the grid range {self.range}")
        return index

    def grid_index_to_coord(self, index):
        return self.range.left + index * self.step

    def finite_indices(self):
        if not self.finite_ranges:
            return list(range(self.size))

        indices = set()
        half_step = self.step * 0.5
        for finite_range in self.finite_ranges:
            if finite_range.right < self.range.left - half_step or finite_range.left > self.range.right + half_step:
                continue
            first = self.coord_to_grid_index(max(finite_range.left, self.range.left))
            last = self.coord_to_grid_index(min(finite_range.right, self.range.right))
            indices.update(range(first, last + 1))
        return sorted(indices)


def _check_finite_range(finite_range):
    if finite_range is None:
        raise TypeError("finite_range is required")
    if finite_range.outside:
        raise ValueError("Finite penalty ranges must not be outside ranges")


class GeneralizedDistanceTransform1D:
    """1-d distance transform over a regular grid."""

    def __init__(self, coord_range, grid_size):
        if not isinstance(coord_range, Range):
            coord_range = Range(*coord_range)
        self._axis = _Axis(coord_range, grid_size)
        self._values = None
        self._best = None

    @property
    def grid_size(self):
        return self._axis.size

    @property
    def grid_step(self):
        return self._axis.step

    @property
    def is_computed(self):
        return self._values is not None

    def coord_to_grid_index(self, coord):
        return self._axis.coord_to_grid_index(coord)

    def grid_index_to_coord(self, index):
        return self._axis.grid_index_to_coord(index)

    def add_finite_penalty_range(self, finite_range):
        _check_finite_range(finite_range)
        self._axis.finite_ranges.append(finite_range)

    def reset_finite_penalty_range(self):
        self._axis.finite_ranges = []

    def compute(self, distance_scale, penalty_function):
        """
        Evaluate ``penalty_function(coord, radius)`` at the seed grid points
        and sweep. ``radius`` is half the grid step.
        """
        if distance_scale < 0:
            raise ValueError("distance_scale must not be negative")

        axis = self._axis
        radius = axis.step * 0.5
        penalties = [math.inf] * axis.size
        for index in axis.finite_indices():
            penalties[index] = penalty_function(axis.grid_index_to_coord(index), radius)

        self._values, self._best = lower_envelope(penalties, distance_scale, axis.step)

    def _require_computed(self):
        if self._values is None:
            raise RuntimeError("Distance transform has not been computed yet")

    def get_value_by_grid_index(self, index):
        self._require_computed()
        return float(self._values[index])

    def get_value_by_coord(self, coord):
        return self.get_value_by_grid_index(self.coord_to_grid_index(coord))

    def get_best_index_by_grid_index(self, index):
        self._require_computed()
        return int(self._best[index])

    def get_best_coord_by_coord(self, coord):
        best = self.get_best_index_by_grid_index(self.coord_to_grid_index(coord))
        if best < 0:
            return math.nan
        return self.grid_index_to_coord(best)

    @property
    def values(self):
        self._require_computed()
        return self._values.copy()


class GeneralizedDistanceTransform2D:
    """
    Separable 2-d distance transform.

    The transform value at (x, y) is

        min_{x', y'} f(x', y') + scale_x * (x - x')^2 + scale_y * (y - y')^2

    over the seed grid points (x', y').
    """

    def __init__(self, range_x, range_y, grid_size_x, grid_size_y):
        if not isinstance(range_x, Range):
            range_x = Range(*range_x)
        if not isinstance(range_y, Range):
            range_y = Range(*range_y)
        self._axis_x = _Axis(range_x, grid_size_x)
        self._axis_y = _Axis(range_y, grid_size_y)
        self._values = None
        self._best_x = None
        self._best_y = None

    @property
    def grid_size(self):
        return self._axis_x.size, self._axis_y.size

    @property
    def grid_step(self):
        return self._axis_x.step, self._axis_y.step

    @property
    def is_computed(self):
        return self._values is not None

    def coord_to_grid_index_x(self, coord):
        return self._axis_x.coord_to_grid_index(coord)

    def coord_to_grid_index_y(self, coord):
        return self._axis_y.coord_to_grid_index(coord)

    def grid_index_to_coord_x(self, index):
        return self._axis_x.grid_index_to_coord(index)

    def grid_index_to_coord_y(self, index):
        return self._axis_y.grid_index_to_coord(index)

    def add_finite_penalty_range_x(self, finite_range):
        _check_finite_range(finite_range)
        self._axis_x.finite_ranges.append(finite_range)

    def add_finite_penalty_range_y(self, finite_range):
        _check_finite_range(finite_range)
        self._axis_y.finite_ranges.append(finite_range)

    def reset_finite_penalty_range(self):
        self._axis_x.finite_ranges = []
        self._axis_y.finite_ranges = []
        self._values = None

    def compute(self, distance_scale_x, distance_scale_y, penalty_function):
        """
        Evaluate ``penalty_function(x, y, radius_x, radius_y)`` at the seed
        grid points and sweep rows, then columns.
        """
        if distance_scale_x < 0 or distance_scale_y < 0:
            raise ValueError("Distance scales must not be negative")

        axis_x, axis_y = self._axis_x, self._axis_y
        radius_x, radius_y = axis_x.step * 0.5, axis_y.step * 0.5
        finite_x = axis_x.finite_indices()

        row_values = np.full((axis_y.size, axis_x.size), np.inf)
        row_best = np.full((axis_y.size, axis_x.size), -1, dtype=np.int64)
        for y_index in axis_y.finite_indices():
            y = axis_y.grid_index_to_coord(y_index)
            penalties = [math.inf] * axis_x.size
            for x_index in finite_x:
                penalties[x_index] = penalty_function(
                    axis_x.grid_index_to_coord(x_index), y, radius_x, radius_y)
            row_values[y_index], row_best[y_index] = lower_envelope(
                penalties, distance_scale_x, axis_x.step)

        values = np.full((axis_x.size, axis_y.size), np.inf)
        best_x = np.full((axis_x.size, axis_y.size), -1, dtype=np.int64)
        best_y = np.full((axis_x.size, axis_y.size), -1, dtype=np.int64)
        for x_index in range(axis_x.size):
            column = row_values[:, x_index].tolist()
            column_values, column_best = lower_envelope(column, distance_scale_y, axis_y.step)
            values[x_index] = column_values
            best_y[x_index] = column_best
            found = column_best >= 0
            best_x[x_index, found] = row_best[column_best[found], x_index]

        self._values = values
        self._best_x = best_x
        self._best_y = best_y

    def _require_computed(self):
        if self._values is None:
            raise RuntimeError("Distance transform has not been computed yet")

    def get_value_by_grid_indices(self, x_index, y_index):
        self._require_computed()
        return float(self._values[x_index, y_index])

    def get_value_by_coords(self, x, y):
        return self.get_value_by_grid_indices(self.coord_to_grid_index_x(x), self.coord_to_grid_index_y(y))

    def get_best_indices_by_grid_indices(self, x_index, y_index):
        """Grid indices of the seed realizing the value, (-1, -1) when there is none."""
        self._require_computed()
        return int(self._best_x[x_index, y_index]), int(self._best_y[x_index, y_index])

    def get_best_coords_by_coords(self, x, y):
        best_x, best_y = self.get_best_indices_by_grid_indices(
            self.coord_to_grid_index_x(x), self.coord_to_grid_index_y(y))
        if best_x < 0:
            return None
        return self.grid_index_to_coord_x(best_x), self.grid_index_to_coord_y(best_y)

    @property
    def values(self):
        """Transform values indexed [x_index, y_index]."""
        self._require_computed()
        return self._values.copy()

    @property
    def best_coords(self):
        """
        Seed coordinates (xs, ys) realizing every value, indexed
        [x_index, y_index]; NaN where no seed reaches.
        """
        self._require_computed()
        found = self._best_x >= 0
        xs = np.where(found, self._axis_x.range.left + self._best_x * self._axis_x.step, np.nan)
        ys = np.where(found, self._axis_y.range.left + self._best_y * self._axis_y.step, np.nan)
        return xs, ys
