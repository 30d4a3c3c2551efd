"""Tests for vertex, edge and shape constraints."""

import math
import random

import pytest

from shapeprior.constraints.edge import EdgeConstraints
from shapeprior.constraints.vertex import VertexConstraints
from shapeprior.geometry.vector import Vector


class TestVertexConstraints:
    """Tests for vertex boxes."""

    def test_corner_order(self):
        """Test that corners follow the box boundary."""
        box = VertexConstraints((1, 2), (3, 5))

        assert box.corners == ((1, 2), (1, 5), (3, 5), (3, 2))

    def test_invalid_box(self):
        """Test that min must not exceed max."""
        with pytest.raises(ValueError):
            VertexConstraints((2, 0), (1, 1))

    def test_degenerate_box(self):
        """Test that single points are valid boxes."""
        box = VertexConstraints.from_point((4, 4))

        assert box.area == 0
        assert box.freedom == 0
        assert box.contains((4, 4))

    def test_clamp_and_closest_point(self):
        """Test clamping and facing-side projection."""
        box = VertexConstraints((0, 0), (4, 4))

        assert box.clamp((6, -1)) == Vector(4.0, 0.0)
        assert box.closest_point((2, 7)) == Vector(2.0, 4.0)
        assert box.closest_point((-3, 1)) == Vector(0.0, 1.0)
        assert box.closest_point((6, 6)) is None

    def test_equality(self):
        """Test value equality and hashing."""
        assert VertexConstraints((0, 0), (1, 1)) == VertexConstraints((0.0, 0.0), (1.0, 1.0))
        assert len({VertexConstraints((0, 0), (1, 1)), VertexConstraints((0, 0), (1, 1))}) == 1


class TestEdgeConstraints:
    """Tests for edge width ranges."""

    def test_width_range(self):
        """Test width range accessors."""
        edge = EdgeConstraints(1, 3)

        assert edge.middle_width == 2
        assert edge.freedom == 2
        assert EdgeConstraints.from_width(2).freedom == 0

    def test_invalid_widths(self):
        """Test that widths must be ordered and non-negative."""
        with pytest.raises(ValueError):
            EdgeConstraints(3, 1)
        with pytest.raises(ValueError):
            EdgeConstraints(-1, 1)


class TestShapeConstraints:
    """Tests for whole-shape constraints."""

    def test_count_mismatch(self, single_edge_model):
        """Test that one box per vertex is required."""
        from shapeprior.constraints.shape_constraints import ShapeConstraints

        with pytest.raises(ValueError):
            ShapeConstraints(single_edge_model, [VertexConstraints((0, 0), (1, 1))], [EdgeConstraints(1, 2)])

    def test_middle_shape(self, single_edge_model):
        """Test the shape at the centre of the constraints."""
        from shapeprior.constraints.shape_constraints import ShapeConstraints

        constraints = ShapeConstraints(
            single_edge_model,
            [VertexConstraints((0, 0), (2, 2)), VertexConstraints((10, 0), (12, 4))],
            [EdgeConstraints(1, 3)],
        )
        shape = constraints.middle_shape()

        assert shape.vertex_positions == ((1.0, 1.0), (11.0, 2.0))
        assert shape.edge_widths == (2.0,)

    def test_create_from_shape(self, single_edge_model):
        """Test constraints admitting exactly one shape."""
        from shapeprior.constraints.shape_constraints import ShapeConstraints
        from shapeprior.shapes.shape import Shape

        shape = Shape(single_edge_model, [(1, 2), (5, 6)], [1.5])
        constraints = ShapeConstraints.create_from_shape(shape)

        assert constraints.vertex_constraints[1] == VertexConstraints.from_point((5, 6))
        assert constraints.edge_constraints[0] == EdgeConstraints.from_width(1.5)

    def test_hull_is_cached(self, single_edge_model):
        """Test that vertex pair hulls are memoized."""
        from shapeprior.constraints.shape_constraints import ShapeConstraints

        constraints = ShapeConstraints.create_from_bounds(single_edge_model, (0, 0), (5, 5), 1, 2)

        assert constraints.get_convex_hull_for_vertex_pair(0, 1) is constraints.get_convex_hull_for_vertex_pair(0, 1)

    def test_overlapping_boxes_limits(self, single_edge_model):
        """Test that overlapping boxes admit every angle and zero length."""
        from shapeprior.constraints.shape_constraints import ShapeConstraints

        constraints = ShapeConstraints.create_from_bounds(single_edge_model, (0, 0), (5, 5), 1, 2)
        length_range, angle_range = constraints.determine_edge_limits(0)

        assert length_range.left == 0.0
        assert length_range.right == pytest.approx(math.hypot(5, 5))
        assert angle_range.left == -math.pi and angle_range.right == math.pi

    def test_wrapping_angle_limits(self, single_edge_model):
        """Test that a second box to the left gives an outside angle range."""
        from shapeprior.constraints.shape_constraints import ShapeConstraints

        constraints = ShapeConstraints(
            single_edge_model,
            [VertexConstraints((10, -1), (11, 1)), VertexConstraints((0, -1), (1, 1))],
            [EdgeConstraints(1, 2)],
        )
        length_range, angle_range = constraints.determine_edge_limits(0)

        assert angle_range.outside
        assert angle_range.contains(math.pi)
        assert not angle_range.contains(0.0)
        assert length_range.left == pytest.approx(9.0)

    def test_edge_limits_cover_samples(self, single_edge_model):
        """Test that sampled edges always fall inside the computed limits."""
        from shapeprior.constraints.shape_constraints import ShapeConstraints

        rng = random.Random(666)
        for _ in range(200):
            boxes = []
            for _ in range(2):
                x1, x2 = sorted(rng.randint(0, 20) for _ in range(2))
                y1, y2 = sorted(rng.randint(0, 20) for _ in range(2))
                boxes.append(VertexConstraints((x1, y1), (x2, y2)))
            constraints = ShapeConstraints(single_edge_model, boxes, [EdgeConstraints(1, 2)])
            length_range, angle_range = constraints.determine_edge_limits(0)

            for _ in range(20):
                p1 = Vector(rng.uniform(boxes[0].min_coord.x, boxes[0].max_coord.x),
                            rng.uniform(boxes[0].min_coord.y, boxes[0].max_coord.y))
                p2 = Vector(rng.uniform(boxes[1].min_coord.x, boxes[1].max_coord.x),
                            rng.uniform(boxes[1].min_coord.y, boxes[1].max_coord.y))
                length = (p2 - p1).length()
                assert length_range.left - 1e-9 <= length <= length_range.right + 1e-9

                if length == 0:
                    continue
                angle = Vector.angle_between(Vector(1.0, 0.0), p2 - p1)
                if angle_range.outside:
                    assert angle <= angle_range.left + 1e-9 or angle >= angle_range.right - 1e-9
                else:
                    assert angle_range.left - 1e-9 <= angle <= angle_range.right + 1e-9
