"""Pytest fixtures for shapeprior tests."""

import math
import os
import tempfile

import cv2
import numpy as np
import pytest


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture(autouse=True)
def disabled_tracer():
    """Leave the global tracer disabled after every test."""
    yield
    from shapeprior.tracer import configure_tracer
    configure_tracer(enabled=False)


@pytest.fixture
def single_edge_model():
    """One edge between vertex 0 and vertex 1."""
    from shapeprior.models import ShapeEdge, ShapeEdgeParams
    from shapeprior.shapes.model import ShapeModel

    return ShapeModel.create(
        [ShapeEdge(index1=0, index2=1)],
        [ShapeEdgeParams(width_to_edge_length_ratio=0.3, relative_width_deviation=0.1)],
        {},
    )


@pytest.fixture
def corner_model():
    """Two edges sharing vertex 1 at a right angle, the second 10% shorter."""
    from shapeprior.models import ShapeEdge, ShapeEdgePairParams, ShapeEdgeParams
    from shapeprior.shapes.model import ShapeModel

    edge_params = ShapeEdgeParams(width_to_edge_length_ratio=0.1, relative_width_deviation=0.05)
    pair_params = ShapeEdgePairParams(
        mean_angle=math.pi / 2,
        length_ratio=1.1,
        angle_deviation=0.2,
        length_deviation=5.0,
    )
    return ShapeModel.create(
        [ShapeEdge(index1=0, index2=1), ShapeEdge(index1=1, index2=2)],
        [edge_params, edge_params],
        {(0, 1): pair_params},
    )


@pytest.fixture
def two_tone_image():
    """Noisy red left half, noisy blue right half."""
    rng = np.random.default_rng(7)
    img = np.zeros((20, 30, 3), dtype=np.uint8)
    img[:, :15] = (200, 40, 40)
    img[:, 15:] = (40, 40, 200)
    noise = rng.integers(-10, 11, size=img.shape)
    return np.clip(img.astype(np.int32) + noise, 0, 255).astype(np.uint8)


@pytest.fixture
def problem_file(temp_dir):
    """A single-edge problem with point-like vertex boxes and no colour input."""
    import yaml

    data = {
        "image_width": 12,
        "image_height": 10,
        "edges": [{"index1": 0, "index2": 1}],
        "edge_params": [{"width_to_edge_length_ratio": 0.3, "relative_width_deviation": 0.2}],
        "vertex_boxes": [[2, 2, 3, 3], [8, 6, 9, 7]],
        "edge_widths": [[1.0, 2.0]],
    }
    path = os.path.join(temp_dir, "problem.yaml")
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f)
    return path


@pytest.fixture
def image_problem_file(temp_dir, two_tone_image):
    """A single-edge problem whose colour terms are learned from an image."""
    import yaml

    image_path = os.path.join(temp_dir, "input.png")
    cv2.imwrite(image_path, cv2.cvtColor(two_tone_image, cv2.COLOR_RGB2BGR))

    data = {
        "image_width": 30,
        "image_height": 20,
        "edges": [{"index1": 0, "index2": 1}],
        "edge_params": [{"width_to_edge_length_ratio": 0.2, "relative_width_deviation": 0.2}],
        "vertex_boxes": [[3, 8, 5, 11], [10, 8, 12, 11]],
        "edge_widths": [[1.0, 3.0]],
        "image_path": "input.png",
        "object_rect": [0, 0, 15, 20],
    }
    path = os.path.join(temp_dir, "image_problem.yaml")
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f)
    return path
