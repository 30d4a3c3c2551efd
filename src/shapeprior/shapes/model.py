"""
Graph-structured shape model.

A shape model is a set of skeletal edges with learned statistics: each
edge has an expected width-to-length ratio, and each constrained pair of
edges has an expected relative angle and length ratio. The model turns a
hypothesized geometry into energy terms and into the per-pixel object and
background penalties used by the segmentation bounds.
"""

import math

import networkx as nx

from shapeprior.geometry.vector import Vector, normalize_angle
from shapeprior.models import ShapeEdge, ShapeEdgePairParams, ShapeEdgeParams


class ShapeStructure:
    """Edges of a shape template and the vertex count they imply."""

    def __init__(self, edges):
        edges = tuple(e if isinstance(e, ShapeEdge) else ShapeEdge(index1=e[0], index2=e[1]) for e in edges)
        if not edges:
            raise ValueError("Shape structure needs at least one edge")

        self._edges = edges
        self._vertex_count = max(max(e.index1, e.index2) for e in edges) + 1

    @property
    def edges(self):
        return self._edges

    @property
    def vertex_count(self):
        return self._vertex_count

    def __eq__(self, other):
        return isinstance(other, ShapeStructure) and self._edges == other._edges

    def __hash__(self):
        return hash(self._edges)

    def __repr__(self):
        return f"ShapeStructure(edges={len(self._edges)}, vertices={self._vertex_count})"


class ShapeModel:
    """
    Read-only shape statistics for one optimization run.

    Build instances with ``ShapeModel.create``, which validates the
    parameters. Constrained edge pairs must share a vertex and must form a
    tree spanning every edge.
    """

    def __init__(self, structure, edge_params, edge_pair_params,
                 background_distance_coeff=1.0, shape_energy_weight=1.0):
        if structure is None:
            raise TypeError("structure is required")
        if len(edge_params) != len(structure.edges):
            raise ValueError(
                f"Expected {len(structure.edges)} edge parameter sets, got {len(edge_params)}")
        if background_distance_coeff <= 0:
            raise ValueError("background_distance_coeff must be positive")
        if shape_energy_weight < 0:
            raise ValueError("shape_energy_weight must not be negative")

        self._structure = structure
        self._edge_params = tuple(edge_params)
        self._edge_pair_params = {}
        self._pair_graph = nx.Graph()
        self._pair_graph.add_nodes_from(range(len(structure.edges)))
        self.background_distance_coeff = float(background_distance_coeff)
        self.shape_energy_weight = float(shape_energy_weight)

        edge_count = len(structure.edges)
        for (i, j), params in edge_pair_params.items():
            if not (0 <= i < edge_count and 0 <= j < edge_count):
                raise ValueError(f"Edge pair ({i}, {j}) references an unknown edge")
            if i == j:
                raise ValueError(f"Edge {i} cannot be paired with itself")
            if (j, i) in self._edge_pair_params:
                raise ValueError(f"Edge pair ({i}, {j}) is registered twice")
            if not structure.edges[i].shares_vertex_with(structure.edges[j]):
                raise ValueError(f"Constrained edges {i} and {j} must share a vertex")
            self._edge_pair_params[(i, j)] = params
            self._pair_graph.add_edge(i, j)

        if not nx.is_tree(self._pair_graph):
            raise ValueError("Constrained edge pairs must form a tree spanning all edges")

    @classmethod
    def create(cls, edges, edge_params, edge_pair_params,
               background_distance_coeff=1.0, shape_energy_weight=1.0):
        """
        Build a model from raw edges and parameters.

        ``edge_pair_params`` maps (edge_index1, edge_index2) to
        ShapeEdgePairParams.
        """
        if edges is None or edge_params is None or edge_pair_params is None:
            raise TypeError("edges, edge_params and edge_pair_params are required")
        return cls(
            ShapeStructure(edges),
            edge_params,
            edge_pair_params,
            background_distance_coeff=background_distance_coeff,
            shape_energy_weight=shape_energy_weight,
        )

    @property
    def structure(self):
        return self._structure

    @property
    def edges(self):
        return self._structure.edges

    @property
    def vertex_count(self):
        return self._structure.vertex_count

    @property
    def constrained_edge_pairs(self):
        return list(self._edge_pair_params)

    @property
    def pairwise_edge_constraint_count(self):
        return len(self._edge_pair_params)

    @property
    def pair_graph(self):
        return self._pair_graph

    def get_edge_params(self, edge_index):
        return self._edge_params[edge_index]

    def has_pair_constraint(self, edge_index1, edge_index2):
        return (edge_index1, edge_index2) in self._edge_pair_params or \
            (edge_index2, edge_index1) in self._edge_pair_params

    def get_edge_pair_params(self, edge_index1, edge_index2) -> ShapeEdgePairParams:
        """
        Statistics of a constrained pair, oriented from edge_index1 to edge_index2.

        Raises KeyError if the pair is not constrained.
        """
        params = self._edge_pair_params.get((edge_index1, edge_index2))
        if params is not None:
            return params
        params = self._edge_pair_params.get((edge_index2, edge_index1))
        if params is not None:
            return params.swap()
        raise KeyError(f"Edge pair ({edge_index1}, {edge_index2}) is not constrained")

    def iterate_neighboring_edge_indices(self, edge_index):
        """Edges constrained together with the given one, in ascending order."""
        return iter(sorted(self._pair_graph.neighbors(edge_index)))

    def calculate_edge_width_energy_term(self, edge_index, edge_width, edge_length):
        """
        Squared normalized deviation of width/length from the learned ratio.

        A zero-length edge costs nothing with zero width and infinitely
        much otherwise.
        """
        params = self._edge_params[edge_index]
        if edge_length <= 0:
            return 0.0 if edge_width == 0 else math.inf
        diff = edge_length * params.width_to_edge_length_ratio - edge_width
        std = params.relative_width_deviation * edge_length
        return diff * diff / (std * std)

    def calculate_edge_pair_energy_term(self, edge_index1, edge_index2, edge_vector1, edge_vector2):
        params = self.get_edge_pair_params(edge_index1, edge_index2)
        edge_vector1 = Vector(*edge_vector1)
        edge_vector2 = Vector(*edge_vector2)

        length_diff = edge_vector1.length() - edge_vector2.length() * params.length_ratio
        length_term = length_diff * length_diff / (params.length_deviation ** 2)

        angle = Vector.angle_between(edge_vector1, edge_vector2)
        angle_diff = abs(normalize_angle(angle - params.mean_angle))
        angle_term = angle_diff * angle_diff / (params.angle_deviation ** 2)

        return length_term + angle_term

    def calculate_object_penalty_for_edge(self, distance_sqr, edge_width):
        return distance_sqr

    def calculate_background_penalty_for_edge(self, distance_sqr, edge_width):
        """
        Penalty for labelling a pixel as background near an edge.

        Largest on the edge itself, decreasing in the squared distance and
        zero from width^2 * (1 + c) / c onward, c being the background
        distance coefficient. Works elementwise on numpy arrays too.
        """
        c = self.background_distance_coeff
        value = edge_width * edge_width * (1 + c) - c * distance_sqr
        if hasattr(value, "shape"):
            return value.clip(min=0)
        return max(value, 0.0)

    def __repr__(self):
        return (f"ShapeModel(edges={len(self.edges)}, vertices={self.vertex_count}, "
                f"pairs={self.pairwise_edge_constraint_count})")
