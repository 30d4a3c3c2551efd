"""
Shape unary terms implied by a set of constraints.

For every pixel and edge, the squared distance from the pixel to any
admissible placement of the edge lies between two bounds computed from the
corner-to-corner segments of the two vertex boxes. Those bounds turn into
the cheapest possible object penalty and background penalty of the pixel.
"""

from collections import OrderedDict

import numpy as np

from shapeprior.tracer import get_tracer, trace


def pixel_grid(width, height):
    """Float coordinate arrays (xs, ys) of shape (height, width)."""
    ys, xs = np.mgrid[0:height, 0:width]
    return xs.astype(np.float64), ys.astype(np.float64)


def segment_distance_sqr(xs, ys, start_x, start_y, end_x, end_y):
    """
    Squared distance from points to segments, elementwise.

    Segment ends may be scalars or arrays broadcastable to ``xs``. Segments
    with coincident ends fall back to the point distance.
    """
    dx = np.asarray(end_x - start_x, dtype=np.float64)
    dy = np.asarray(end_y - start_y, dtype=np.float64)
    ox = xs - start_x
    oy = ys - start_y
    length_sqr = dx * dx + dy * dy
    safe_length_sqr = np.where(length_sqr > 0, length_sqr, 1.0)
    alpha = np.where(length_sqr > 0, (ox * dx + oy * dy) / safe_length_sqr, 0.0)
    alpha = np.clip(alpha, 0.0, 1.0)
    px = ox - alpha * dx
    py = oy - alpha * dy
    return px * px + py * py


def facing_side_projection(xs, ys, constraints):
    """
    Vectorized VertexConstraints.closest_point.

    Returns (px, py, valid); entries where the projection is undefined are
    marked invalid.
    """
    lo, hi = constraints.min_coord, constraints.max_coord
    in_x_slab = (xs >= lo.x) & (xs <= hi.x)
    in_y_slab = (ys >= lo.y) & (ys <= hi.y)

    conditions = [
        in_x_slab & (ys <= lo.y),
        in_x_slab & (ys >= hi.y),
        in_y_slab & (xs <= lo.x),
        in_y_slab & (xs >= hi.x),
    ]
    px = np.select(conditions, [xs, xs, np.full_like(xs, lo.x), np.full_like(xs, hi.x)], default=0.0)
    py = np.select(conditions, [np.full_like(ys, lo.y), np.full_like(ys, hi.y), ys, ys], default=0.0)
    valid = np.logical_or.reduce(conditions)
    return px, py, valid


def edge_distance_bounds(width, height, constraints1, constraints2):
    """
    Lower and upper bounds on the squared pixel-to-edge distance.

    Returns (min_distance_sqr, max_distance_sqr), each of shape
    (height, width), over all edges with one end in each box.
    """
    xs, ys = pixel_grid(width, height)
    min_distance_sqr = np.full((height, width), np.inf)
    max_distance_sqr = np.zeros((height, width))

    for corner1 in constraints1.corners:
        for corner2 in constraints2.corners:
            distance_sqr = segment_distance_sqr(xs, ys, corner1.x, corner1.y, corner2.x, corner2.y)
            np.minimum(min_distance_sqr, distance_sqr, out=min_distance_sqr)
            np.maximum(max_distance_sqr, distance_sqr, out=max_distance_sqr)

    px, py, valid = facing_side_projection(xs, ys, constraints1)
    for corner2 in constraints2.corners:
        distance_sqr = segment_distance_sqr(xs, ys, px, py, corner2.x, corner2.y)
        min_distance_sqr = np.where(valid, np.minimum(min_distance_sqr, distance_sqr), min_distance_sqr)

    px, py, valid = facing_side_projection(xs, ys, constraints2)
    for corner1 in constraints1.corners:
        distance_sqr = segment_distance_sqr(xs, ys, corner1.x, corner1.y, px, py)
        min_distance_sqr = np.where(valid, np.minimum(min_distance_sqr, distance_sqr), min_distance_sqr)

    return min_distance_sqr, max_distance_sqr


class ShapeTermsCalculator:
    """
    Lower bounds of the shape unary terms for every shape admitted by a
    ShapeConstraints instance.

    Per-edge term maps are kept in an LRU cache keyed by the edge's vertex
    boxes and width range. The cache only helps callers that keep one
    calculator across calls, e.g. refining constraints edge by edge; a
    calculator built for a single call, like the debug render in the
    pipeline, never hits it.
    """

    def __init__(self, cache_capacity=500):
        if cache_capacity < 1:
            raise ValueError("cache_capacity must be at least 1")
        self.cache_capacity = cache_capacity
        self._cache = OrderedDict()
        self._cache_owner = None

    @trace(label="calculate_shape_terms")
    def calculate_shape_terms(self, constraints, width, height):
        """
        Return an array of shape (height, width, 2) holding the object term
        (channel 0) and the background term (channel 1) of every pixel.
        """
        if constraints is None:
            raise TypeError("constraints are required")

        owner = (constraints.model, width, height)
        if self._cache_owner != owner:
            self._cache.clear()
            self._cache_owner = owner

        object_terms = np.full((height, width), np.inf)
        background_terms = np.zeros((height, width))
        cache_hits = 0

        for edge_index, edge in enumerate(constraints.model.edges):
            vertex1, vertex2 = constraints.edge_vertex_constraints(edge_index)
            edge_constraints = constraints.edge_constraints[edge_index]
            key = (vertex1, vertex2, edge_constraints)

            terms = self._cache.get(key)
            if terms is not None:
                self._cache.move_to_end(key)
                cache_hits += 1
            else:
                terms = self._edge_terms(constraints, edge_index, width, height)
                self._cache[key] = terms
                if len(self._cache) > self.cache_capacity:
                    self._cache.popitem(last=False)

            np.minimum(object_terms, terms[..., 0], out=object_terms)
            np.maximum(background_terms, terms[..., 1], out=background_terms)

        get_tracer().event("Shape terms ready", level="DEBUG", cache_hits=cache_hits)
        return np.stack([object_terms, background_terms], axis=-1)

    def _edge_terms(self, constraints, edge_index, width, height):
        model = constraints.model
        edge = model.edges[edge_index]
        vertex1, vertex2 = constraints.edge_vertex_constraints(edge_index)
        edge_constraints = constraints.edge_constraints[edge_index]

        min_distance_sqr, max_distance_sqr = edge_distance_bounds(width, height, vertex1, vertex2)

        hull = constraints.get_convex_hull_for_vertex_pair(edge.index1, edge.index2)
        xs, ys = pixel_grid(width, height)
        min_distance_sqr[hull.points_inside(xs, ys)] = 0.0

        object_terms = model.calculate_object_penalty_for_edge(min_distance_sqr, edge_constraints.max_width)
        background_terms = model.calculate_background_penalty_for_edge(max_distance_sqr, edge_constraints.min_width)
        return np.stack([object_terms, background_terms], axis=-1)
