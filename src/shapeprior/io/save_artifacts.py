"""
Artifact saving utilities.

Handles writing result JSON and the debug images of lower-bound runs.
"""

import json
import os

import cv2
import numpy as np

from shapeprior.tracer import get_tracer


def ensure_dir(path):
    """Create directory if it does not exist."""
    if path:
        os.makedirs(path, exist_ok=True)


def get_debug_dir(out_dir, stage_name):
    """Debug directory of a stage, created on demand."""
    debug_dir = os.path.join(out_dir, "debug", stage_name)
    ensure_dir(debug_dir)
    return debug_dir


def save_image(img, path, max_edge=None):
    """
    Save an RGB or grayscale image to disk.

    Optionally upscales small images so their longest side is max_edge,
    using nearest-neighbour interpolation to keep pixels visible.
    """
    if max_edge and max(img.shape[:2]) < max_edge:
        scale = max(1, max_edge // max(img.shape[:2]))
        img = cv2.resize(img, (img.shape[1] * scale, img.shape[0] * scale), interpolation=cv2.INTER_NEAREST)

    if img.ndim == 3 and img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_RGB2BGR)

    ensure_dir(os.path.dirname(path))
    cv2.imwrite(path, img)
    get_tracer().event(f"Saved image: {path}", level="DEBUG")


def save_json(data, path, indent=2):
    """Save a dictionary or pydantic model to JSON."""
    ensure_dir(os.path.dirname(path))

    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, default=str)

    get_tracer().event(f"Saved JSON: {path}", level="DEBUG")


def unary_difference_image(unary_terms):
    """
    Visualize object minus background unary terms: red where the object
    label is cheaper, blue where the background label is.
    """
    difference = unary_terms[..., 0] - unary_terms[..., 1]
    peak = float(np.abs(difference).max())
    intensity = np.zeros_like(difference) if peak == 0 else np.abs(difference) / peak

    image = np.zeros(difference.shape + (3,), dtype=np.uint8)
    value = (intensity * 255).astype(np.uint8)
    image[..., 0] = np.where(difference < 0, value, 0)
    image[..., 2] = np.where(difference > 0, value, 0)
    return image


def mask_image(mask):
    return np.where(mask, 255, 0).astype(np.uint8)


def draw_overlay(base_img, segments=None, points=None, scale=1, segment_color=(0, 255, 0), point_color=(255, 0, 0)):
    """
    Draw segments and points over a copy of an image.

    segments: list of ((x1, y1), (x2, y2)) pairs in pixel coordinates
    points: list of ((x, y), radius) tuples
    scale: integer upscaling applied to the image before drawing
    """
    if base_img.ndim == 2:
        overlay = cv2.cvtColor(base_img, cv2.COLOR_GRAY2BGR)
    else:
        overlay = cv2.cvtColor(base_img, cv2.COLOR_RGB2BGR)

    if scale > 1:
        overlay = cv2.resize(overlay, (overlay.shape[1] * scale, overlay.shape[0] * scale),
                             interpolation=cv2.INTER_NEAREST)

    def to_pixel(p):
        return int(round((p[0] + 0.5) * scale)), int(round((p[1] + 0.5) * scale))

    for start, end in segments or ():
        cv2.line(overlay, to_pixel(start), to_pixel(end), segment_color[::-1], 1)

    for point, radius in points or ():
        cv2.circle(overlay, to_pixel(point), radius, point_color[::-1], -1)

    return cv2.cvtColor(overlay, cv2.COLOR_BGR2RGB)


class DebugArtifactWriter:
    """
    Writes debug artifacts of a lower-bound run under out_dir/debug/<stage>/.

    Iteration artifacts are written for the first iteration and every
    ``every_n_iterations`` after it.
    """

    def __init__(self, out_dir, enabled=True, every_n_iterations=10, max_edge=800, stage_name="lower_bound"):
        self.out_dir = out_dir
        self.enabled = enabled
        self.every_n_iterations = every_n_iterations
        self.max_edge = max_edge
        self.stage_name = stage_name

    def get_stage_dir(self, stage_name=None):
        return get_debug_dir(self.out_dir, stage_name or self.stage_name)

    def should_write(self, iteration):
        return self.enabled and iteration % self.every_n_iterations == 0

    def save_image(self, img, filename, stage_name=None):
        if not self.enabled:
            return
        save_image(img, os.path.join(self.get_stage_dir(stage_name), filename), max_edge=self.max_edge)

    def save_json(self, data, filename, stage_name=None):
        if not self.enabled:
            return
        save_json(data, os.path.join(self.get_stage_dir(stage_name), filename))

    def save_shape_terms(self, shape_terms, filename="shape_terms.png", stage_name="shape_terms"):
        """Save a finite-clipped view of an (H, W, 2) shape-term map."""
        if not self.enabled:
            return
        finite = np.where(np.isfinite(shape_terms), shape_terms, 0.0)
        ceiling = float(finite.max()) if finite.size else 0.0
        clipped = np.where(np.isfinite(shape_terms), shape_terms, ceiling)
        self.save_image(unary_difference_image(clipped), filename, stage_name)

    def write_iteration(self, iteration, oracle, record):
        """Dump the oracle's unary terms, its mask and the master segment of one iteration."""
        if not self.enabled:
            return

        prefix = f"iter_{iteration:04d}"
        unary = unary_difference_image(oracle.last_unary_terms)
        self.save_image(unary, f"{prefix}_unary.png")
        self.save_image(mask_image(oracle.last_mask), f"{prefix}_mask.png")

        height, width = unary.shape[:2]
        scale = max(1, self.max_edge // max(height, width))
        segment = record.master_segment
        overlay = draw_overlay(
            mask_image(oracle.last_mask),
            segments=[(segment[0], segment[1])],
            points=[(segment[0], 3), (segment[1], 3)],
            scale=scale,
        )
        # Already scaled, so skip the writer's own upscaling
        save_image(overlay, os.path.join(self.get_stage_dir(), f"{prefix}_master_segment.png"))
        self.save_json(record, f"{prefix}_metrics.json")
