"""
Pipeline orchestration for lower-bound runs.

Turns a problem file into a shape model, constraints and a segmentation
oracle, runs the dual-decomposition driver and writes the results.
"""

import os

import numpy as np
import yaml

from shapeprior.bounds.dual_decomposition import LowerBoundCalculator
from shapeprior.bounds.shape_energy import ShapeEnergyLowerBoundCalculator
from shapeprior.bounds.shape_terms import ShapeTermsCalculator
from shapeprior.config import load_config
from shapeprior.constraints.edge import EdgeConstraints
from shapeprior.constraints.shape_constraints import ShapeConstraints
from shapeprior.constraints.vertex import VertexConstraints
from shapeprior.io.load_image import load_color_terms, load_image
from shapeprior.io.save_artifacts import DebugArtifactWriter, ensure_dir, save_json
from shapeprior.models import ShapeProblem
from shapeprior.segmentation.color_model import calculate_color_terms, fit_color_models
from shapeprior.segmentation.oracle import GraphCutSegmentationOracle, PixelwiseSegmentationOracle
from shapeprior.shapes.model import ShapeModel
from shapeprior.shapes.shape import fit_mean_shape
from shapeprior.tracer import get_tracer, trace


@trace(label="load_problem")
def load_problem(path):
    """
    Load a ShapeProblem from a YAML (or JSON) file.

    Relative image and colour-term paths are resolved against the file's
    directory.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Problem file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Problem file {path} must contain a mapping")

    problem = ShapeProblem.model_validate(data)
    base_dir = os.path.dirname(os.path.abspath(path))
    for key in ("image_path", "color_terms_path"):
        value = getattr(problem, key)
        if value and not os.path.isabs(value):
            setattr(problem, key, os.path.join(base_dir, value))
    return problem


def build_model(problem, config):
    edge_pair_params = {(pair.edge1, pair.edge2): pair.params for pair in problem.edge_pairs}
    return ShapeModel.create(
        problem.edges,
        problem.edge_params,
        edge_pair_params,
        background_distance_coeff=config.shape.background_distance_coeff,
        shape_energy_weight=config.shape.shape_energy_weight,
    )


def build_constraints(problem, model):
    """
    Constraints from the problem's vertex boxes and width ranges.

    Without boxes every vertex may lie anywhere in the image; without width
    ranges every edge may be between 1 pixel and the image diagonal wide.
    """
    width, height = problem.image_width, problem.image_height
    if problem.vertex_boxes:
        vertex_constraints = [VertexConstraints(box[:2], box[2:]) for box in problem.vertex_boxes]
    else:
        vertex_constraints = [VertexConstraints((0, 0), (width - 1, height - 1))] * model.vertex_count

    if problem.edge_widths:
        edge_constraints = [EdgeConstraints(w[0], w[1]) for w in problem.edge_widths]
    else:
        edge_constraints = [EdgeConstraints(1.0, float(np.hypot(width, height)))] * len(model.edges)

    return ShapeConstraints.create_from_constraints(model, vertex_constraints, edge_constraints)


def build_color_terms(problem, config, image=None):
    """Colour terms from a saved file, from mixtures fitted to the image, or all zeros."""
    tracer = get_tracer()
    width, height = problem.image_width, problem.image_height

    if problem.color_terms_path:
        tracer.event("Using precomputed colour terms", path=problem.color_terms_path)
        return load_color_terms(problem.color_terms_path, width, height)

    if image is not None:
        if problem.object_rect is None:
            raise ValueError("object_rect is required to learn colour models from the image")
        object_model, background_model = fit_color_models(image, problem.object_rect, config.color_model)
        return calculate_color_terms(image, object_model, background_model)

    tracer.event("No colour information, using zero colour terms", level="WARN")
    return np.zeros((height, width, 2))


def build_oracle(problem, config, image=None):
    """Graph cut when pairwise terms are enabled, the pixelwise oracle otherwise."""
    segmentation = config.segmentation
    color_terms = build_color_terms(problem, config, image)

    if segmentation.binary_weight > 0:
        return GraphCutSegmentationOracle(
            color_terms,
            image=image,
            brightness_cutoff=segmentation.brightness_cutoff,
            constant_binary_weight=segmentation.binary_weight,
            unary_term_weight=segmentation.color_unary_weight,
            shape_unary_term_weight=segmentation.shape_unary_weight,
        )
    return PixelwiseSegmentationOracle(
        color_terms,
        unary_term_weight=segmentation.color_unary_weight,
        shape_unary_term_weight=segmentation.shape_unary_weight,
    )


@trace(label="run_lower_bound")
def run_lower_bound(problem, config=None, out_dir=None, debug=False, diagnostics_sink=None, should_cancel=None):
    """
    Compute the segmentation and shape-energy lower bounds of a problem.

    Returns a dict with both bounds, their sum and the driver's per-iteration
    diagnostics. When out_dir is given the dict is also written to
    out_dir/lower_bound.json.
    """
    tracer = get_tracer()
    if config is None:
        config = load_config()
    if debug:
        config.debug.enabled = True

    image = None
    if problem.image_path:
        image = load_image(problem.image_path)
        if image.shape[:2] != (problem.image_height, problem.image_width):
            raise ValueError(
                f"Image is {image.shape[1]}x{image.shape[0]}, "
                f"problem expects {problem.image_width}x{problem.image_height}")

    model = build_model(problem, config)
    constraints = build_constraints(problem, model)
    oracle = build_oracle(problem, config, image)

    debug_writer = None
    if out_dir is not None:
        ensure_dir(out_dir)
        debug_writer = DebugArtifactWriter(
            out_dir,
            enabled=config.debug.enabled,
            every_n_iterations=config.debug.every_n_iterations,
            max_edge=config.debug.max_edge_scale,
        )
        if config.debug.enabled:
            shape_terms = ShapeTermsCalculator().calculate_shape_terms(
                constraints, problem.image_width, problem.image_height)
            debug_writer.save_shape_terms(shape_terms)

    with tracer.span("segmentation_lower_bound", module="pipeline"):
        calculator = LowerBoundCalculator(
            oracle,
            config=config.lower_bound,
            diagnostics_sink=diagnostics_sink,
            should_cancel=should_cancel,
            debug_writer=debug_writer,
        )
        result = calculator.calculate_lower_bound(constraints)

    shape_energy_bound = ShapeEnergyLowerBoundCalculator(
        config.shape_energy_bound.length_grid_size,
        config.shape_energy_bound.angle_grid_size,
    ).calculate_lower_bound((problem.image_width, problem.image_height), constraints)

    # A run cancelled before its first iteration has no segmentation bound
    segmentation_bound = result.max_lower_bound if result.completed_iterations else None
    result_data = result.model_dump(mode="json")
    result_data["max_lower_bound"] = segmentation_bound
    summary = {
        "segmentation_lower_bound": segmentation_bound,
        "shape_energy_lower_bound": shape_energy_bound,
        "total_lower_bound": None if segmentation_bound is None else segmentation_bound + shape_energy_bound,
        "result": result_data,
    }
    tracer.event("Lower bound computed", segmentation=result.max_lower_bound, shape=shape_energy_bound)

    if out_dir is not None:
        save_json(summary, os.path.join(out_dir, "lower_bound.json"))
    return summary


@trace(label="run_mean_shape")
def run_mean_shape(problem, width, height, config=None):
    """Mean shape of the problem's model fitted into a width x height rectangle."""
    if config is None:
        config = load_config()
    model = build_model(problem, config)
    return fit_mean_shape(model, width, height)
