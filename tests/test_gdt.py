"""Tests for generalized distance transforms."""

import math

import numpy as np
import pytest

from shapeprior.geometry.range import Range
from shapeprior.transforms.gdt import (
    GeneralizedDistanceTransform1D,
    GeneralizedDistanceTransform2D,
    lower_envelope,
)


class TestLowerEnvelope:
    """Tests for the 1-d sweep."""

    def test_simple_envelope(self):
        """Test values and argmins of a three point sweep."""
        values, best = lower_envelope([0.0, 3.0, 1.1], 1.0, 1.0)

        assert values.tolist() == pytest.approx([0.0, 1.0, 1.1])
        assert best.tolist() == [0, 0, 2]

    def test_no_seeds(self):
        """Test that an all-infinite input stays infinite."""
        values, best = lower_envelope([math.inf, math.inf], 1.0, 1.0)

        assert np.all(np.isinf(values))
        assert best.tolist() == [-1, -1]

    def test_zero_scale(self):
        """Test that without a distance cost the global minimum wins everywhere."""
        values, best = lower_envelope([2.0, -1.0, 5.0], 0.0, 1.0)

        assert values.tolist() == [-1.0, -1.0, -1.0]
        assert best.tolist() == [1, 1, 1]

    def test_matches_brute_force(self):
        """Test the sweep against direct minimization."""
        rng = np.random.default_rng(3)
        penalties = rng.uniform(-5, 5, size=25).tolist()
        penalties[4] = math.inf
        penalties[11] = math.inf

        values, best = lower_envelope(penalties, 0.3, 0.5)

        for i in range(25):
            candidates = [penalties[j] + 0.3 * ((i - j) * 0.5) ** 2 for j in range(25)]
            assert values[i] == pytest.approx(min(candidates))
            assert best[i] == int(np.argmin(candidates))


class TestTransform1D:
    """Tests for the 1-d transform over coordinates."""

    def test_finite_ranges(self):
        """Test that only grid points in the finite ranges act as seeds."""
        table = {-2: 4.0, -1: 3.1, 1: 3.0, 2: -1.0}
        transform = GeneralizedDistanceTransform1D(Range(-3, 3), 7)
        transform.add_finite_penalty_range(Range(-2, -1))
        transform.add_finite_penalty_range(Range(1, 2))

        transform.compute(1.0, lambda coord, radius: table[int(round(coord))])

        assert transform.values.tolist() == pytest.approx([5.0, 4.0, 3.1, 3.0, 0.0, -1.0, 0.0])
        best = [transform.get_best_index_by_grid_index(i) for i in range(7)]
        assert best == [1, 1, 2, 5, 5, 5, 5]

    def test_coordinate_mapping(self):
        """Test conversions between coordinates and grid indices."""
        transform = GeneralizedDistanceTransform1D(Range(-5, 1), 7)

        for i in range(7):
            assert transform.grid_index_to_coord(i) == pytest.approx(i - 5)
            assert transform.coord_to_grid_index(i - 5) == i
        assert transform.coord_to_grid_index(-4.6) == 0
        with pytest.raises(ValueError):
            transform.coord_to_grid_index(3.0)

    def test_requires_compute(self):
        """Test that reading values before computing fails."""
        transform = GeneralizedDistanceTransform1D((0, 1), 2)

        with pytest.raises(RuntimeError):
            transform.get_value_by_grid_index(0)

    def test_radius_passed(self):
        """Test that the penalty function receives half the grid step."""
        radii = []
        transform = GeneralizedDistanceTransform1D(Range(0, 2), 5)

        transform.compute(1.0, lambda coord, radius: radii.append(radius) or 0.0)

        assert radii == [0.25] * 5


class TestTransform2D:
    """Tests for the separable 2-d transform."""

    def test_matches_brute_force(self):
        """Test values and argmins against direct minimization."""
        rng = np.random.default_rng(11)
        table = rng.uniform(0, 10, size=(5, 4))
        transform = GeneralizedDistanceTransform2D(Range(0, 4), Range(0, 3), 5, 4)
        transform.add_finite_penalty_range_x(Range(1, 3))
        transform.add_finite_penalty_range_y(Range(0, 2))

        transform.compute(0.5, 2.0, lambda x, y, rx, ry: table[int(round(x)), int(round(y))])

        values = transform.values
        for x in range(5):
            for y in range(4):
                best_value = math.inf
                best_seed = None
                for sx in range(1, 4):
                    for sy in range(0, 3):
                        value = table[sx, sy] + 0.5 * (x - sx) ** 2 + 2.0 * (y - sy) ** 2
                        if value < best_value:
                            best_value, best_seed = value, (sx, sy)
                assert values[x, y] == pytest.approx(best_value)
                assert transform.get_best_indices_by_grid_indices(x, y) == best_seed

    def test_best_coords(self):
        """Test argmin lookup by coordinates with a single seed."""
        transform = GeneralizedDistanceTransform2D(Range(-2, 2), Range(-2, 2), 5, 5)
        transform.add_finite_penalty_range_x(Range(1, 1))
        transform.add_finite_penalty_range_y(Range(-1, -1))

        transform.compute(1.0, 1.0, lambda x, y, rx, ry: 0.5)

        assert transform.get_best_coords_by_coords(-2, 2) == pytest.approx((1.0, -1.0))
        assert transform.get_value_by_coords(-2, 2) == pytest.approx(0.5 + 9 + 9)

    def test_best_coords_arrays(self):
        """Test the whole-grid argmin arrays against per-cell lookups."""
        rng = np.random.default_rng(3)
        table = rng.uniform(0, 4, size=(6, 5))
        transform = GeneralizedDistanceTransform2D(Range(-1, 4), Range(0, 4), 6, 5)
        transform.add_finite_penalty_range_x(Range(0, 2))
        transform.add_finite_penalty_range_y(Range(1, 3))

        transform.compute(1.0, 1.0, lambda x, y, rx, ry: table[int(round(x)) + 1, int(round(y))])

        xs, ys = transform.best_coords
        assert xs.shape == (6, 5)
        for x_index in range(6):
            for y_index in range(5):
                coords = transform.get_best_coords_by_coords(x_index - 1, y_index)
                assert (xs[x_index, y_index], ys[x_index, y_index]) == pytest.approx(coords)

    def test_best_coords_without_seeds(self):
        """Test that unreached cells report NaN coordinates."""
        transform = GeneralizedDistanceTransform2D(Range(0, 1), Range(0, 1), 2, 2)
        transform.add_finite_penalty_range_x(Range(5, 6))

        transform.compute(1.0, 1.0, lambda x, y, rx, ry: 0.0)

        xs, ys = transform.best_coords
        assert np.all(np.isnan(xs))
        assert np.all(np.isnan(ys))

    def test_no_seeds(self):
        """Test that finite ranges off the grid leave every value infinite."""
        transform = GeneralizedDistanceTransform2D(Range(0, 1), Range(0, 1), 2, 2)
        transform.add_finite_penalty_range_x(Range(5, 6))

        transform.compute(1.0, 1.0, lambda x, y, rx, ry: 0.0)

        assert np.all(np.isinf(transform.values))
        assert transform.get_best_coords_by_coords(0, 0) is None
