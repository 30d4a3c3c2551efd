"""
Segmentation oracles.

An oracle takes per-pixel shape terms (object and background channels),
combines them with its colour terms into unary potentials and returns the
binary labelling minimizing its energy together with that energy. The
lower-bound driver treats oracles as black boxes.
"""

from abc import ABC, abstractmethod
from typing import NamedTuple

import networkx as nx
from networkx.algorithms.flow import boykov_kolmogorov
import numpy as np

from shapeprior.tracer import get_tracer, trace

SOURCE = "source"
SINK = "sink"


class SegmentationResult(NamedTuple):
    """Object mask (True for object) of shape (height, width) and its energy."""
    mask: np.ndarray
    energy: float


class SegmentationOracle(ABC):
    """
    Base class for segmentation oracles.

    Colour terms and shape terms are arrays of shape (height, width, 2),
    channel 0 being the cost of labelling the pixel as object and channel 1
    the cost of labelling it as background. The unary potential of a pixel
    is (color + shape * shape_unary_term_weight) * unary_term_weight.
    """

    def __init__(self, color_terms, unary_term_weight=1.0, shape_unary_term_weight=1.0):
        color_terms = np.asarray(color_terms, dtype=np.float64)
        if color_terms.ndim != 3 or color_terms.shape[2] != 2:
            raise ValueError(f"Color terms must have shape (height, width, 2), got {color_terms.shape}")
        if not np.all(np.isfinite(color_terms)):
            raise ValueError("Color terms must be finite")
        if unary_term_weight <= 0 or shape_unary_term_weight <= 0:
            raise ValueError("Unary term weights must be positive")

        self._color_terms = color_terms
        self.unary_term_weight = float(unary_term_weight)
        self.shape_unary_term_weight = float(shape_unary_term_weight)
        self._last_unary_terms = None
        self._last_shape_terms = None
        self._last_mask = None

    @property
    def image_size(self):
        """(width, height) of the segmented image."""
        return self._color_terms.shape[1], self._color_terms.shape[0]

    @property
    def color_terms(self):
        return self._color_terms

    def segment(self, shape_terms):
        """Label every pixel given the shape terms; returns a SegmentationResult."""
        shape_terms = np.asarray(shape_terms, dtype=np.float64)
        if shape_terms.shape != self._color_terms.shape:
            raise ValueError(
                f"Shape terms must have shape {self._color_terms.shape}, got {shape_terms.shape}")

        unary_terms = (self._color_terms + shape_terms * self.shape_unary_term_weight) * self.unary_term_weight
        if not np.all(np.isfinite(unary_terms)):
            raise ValueError("Unary terms must be finite")

        mask, energy = self._minimize(unary_terms)

        self._last_unary_terms = unary_terms
        self._last_shape_terms = shape_terms
        self._last_mask = mask
        return SegmentationResult(mask, energy)

    @abstractmethod
    def _minimize(self, unary_terms):
        """Return (mask, energy) minimizing the energy for the given unary terms."""

    def _require_segmented(self, value):
        if value is None:
            raise RuntimeError("No segmentation has been computed yet")
        return value

    @property
    def last_unary_terms(self):
        return self._require_segmented(self._last_unary_terms)

    @property
    def last_shape_terms(self):
        return self._require_segmented(self._last_shape_terms)

    @property
    def last_mask(self):
        return self._require_segmented(self._last_mask)


class PixelwiseSegmentationOracle(SegmentationOracle):
    """
    Oracle for energies without pairwise terms.

    Each pixel independently takes the cheaper label (background on ties),
    which is the exact minimizer.
    """

    @trace(label="pixelwise_segment")
    def _minimize(self, unary_terms):
        mask = unary_terms[..., 0] < unary_terms[..., 1]
        energy = float(np.where(mask, unary_terms[..., 0], unary_terms[..., 1]).sum())
        return mask, energy


class GraphCutSegmentationOracle(SegmentationOracle):
    """
    Exact binary segmentation with contrast-sensitive pairwise terms, solved
    as an s-t minimum cut with the Boykov-Kolmogorov solver of networkx.

    Every pixel is linked to its right, bottom and bottom-right neighbours
    with weight exp(-cutoff * db^2 / mean_db^2) + constant_binary_weight,
    db being the brightness of the colour difference of the two pixels and
    mean_db its mean over all links. Without an image only the constant
    weight remains.
    """

    NEIGHBOR_OFFSETS = ((1, 0), (0, 1), (1, 1))

    def __init__(self, color_terms, image=None, brightness_cutoff=1.2, constant_binary_weight=1.0,
                 unary_term_weight=1.0, shape_unary_term_weight=1.0):
        super().__init__(color_terms, unary_term_weight, shape_unary_term_weight)
        if brightness_cutoff <= 0:
            raise ValueError("brightness_cutoff must be positive")
        if constant_binary_weight < 0:
            raise ValueError("constant_binary_weight must not be negative")

        width, height = self.image_size
        if image is not None and image.shape[:2] != (height, width):
            raise ValueError(f"Image must be {width}x{height}, got {image.shape[1]}x{image.shape[0]}")

        self.brightness_cutoff = float(brightness_cutoff)
        self.constant_binary_weight = float(constant_binary_weight)
        self._pairwise = self._pairwise_weights(image)

    def _pairwise_weights(self, image):
        """Map from neighbour offset to an array of link weights, one per source pixel."""
        width, height = self.image_size
        differences = {}
        if image is not None:
            pixels = np.asarray(image, dtype=np.int16)
            if pixels.ndim == 2:
                pixels = pixels[..., np.newaxis]
            for dx, dy in self.NEIGHBOR_OFFSETS:
                diff = np.abs(pixels[dy:, dx:] - pixels[:height - dy, :width - dx])
                # HSL lightness of the difference colour
                differences[(dx, dy)] = (diff.max(axis=2) + diff.min(axis=2)) / (2.0 * 255.0)

        weights = {}
        mean_diff = 0.0
        if differences:
            total = sum(float(d.sum()) for d in differences.values())
            count = sum(d.size for d in differences.values())
            mean_diff = total / count if count else 0.0

        for dx, dy in self.NEIGHBOR_OFFSETS:
            shape = (max(height - dy, 0), max(width - dx, 0))
            weight = np.full(shape, self.constant_binary_weight)
            if differences and mean_diff > 0:
                weight += np.exp(-self.brightness_cutoff * differences[(dx, dy)] ** 2 / mean_diff ** 2)
            weights[(dx, dy)] = weight
        return weights

    @trace(label="graph_cut_segment")
    def _minimize(self, unary_terms):
        width, height = self.image_size
        object_terms = unary_terms[..., 0]
        background_terms = unary_terms[..., 1]
        # Capacities must be non-negative; the shift is a per-pixel constant
        shift = np.minimum(object_terms, background_terms)

        graph = nx.DiGraph()
        graph.add_node(SOURCE)
        graph.add_node(SINK)
        for y in range(height):
            for x in range(width):
                pixel = (x, y)
                # Cutting source->pixel puts the pixel on the background side
                graph.add_edge(SOURCE, pixel, capacity=float(background_terms[y, x] - shift[y, x]))
                graph.add_edge(pixel, SINK, capacity=float(object_terms[y, x] - shift[y, x]))

        for (dx, dy), weights in self._pairwise.items():
            for y in range(weights.shape[0]):
                for x in range(weights.shape[1]):
                    weight = float(weights[y, x])
                    if weight > 0:
                        _add_capacity(graph, (x, y), (x + dx, y + dy), weight)
                        _add_capacity(graph, (x + dx, y + dy), (x, y), weight)

        _, (source_side, _) = nx.minimum_cut(
            graph, SOURCE, SINK, capacity="capacity", flow_func=boykov_kolmogorov)

        mask = np.zeros((height, width), dtype=bool)
        for node in source_side:
            if node != SOURCE:
                mask[node[1], node[0]] = True

        energy = self.calculate_energy(mask, unary_terms)
        get_tracer().event("Graph cut done", level="DEBUG", energy=energy, object_pixels=int(mask.sum()))
        return mask, energy

    def calculate_energy(self, mask, unary_terms):
        """Unary sum plus the weights of links between differently labelled pixels."""
        energy = float(np.where(mask, unary_terms[..., 0], unary_terms[..., 1]).sum())
        height, width = mask.shape
        for (dx, dy), weights in self._pairwise.items():
            cut = mask[:height - dy, :width - dx] != mask[dy:, dx:]
            energy += float(weights[cut].sum())
        return energy


def _add_capacity(graph, u, v, capacity):
    if graph.has_edge(u, v):
        graph[u][v]["capacity"] += capacity
    else:
        graph.add_edge(u, v, capacity=capacity)
