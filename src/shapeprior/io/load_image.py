"""
Image and colour-term loading.
"""

import os

import cv2
import numpy as np

from shapeprior.tracer import get_tracer, trace


@trace(label="load_image")
def load_image(path):
    """
    Load an image from disk as an RGB array of shape (H, W, 3).

    Raises FileNotFoundError if path does not exist.
    Raises ValueError if the file cannot be decoded.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Image not found: {path}")

    img_bgr = cv2.imread(path, cv2.IMREAD_COLOR)
    if img_bgr is None:
        raise ValueError(f"Failed to load image: {path}")

    img_rgb = cv2.cvtColor(img_bgr, cv2.COLOR_BGR2RGB)
    height, width = img_rgb.shape[:2]
    get_tracer().event(f"Loaded image: {width}x{height}")
    return img_rgb


@trace(label="load_color_terms")
def load_color_terms(path, width, height):
    """Load precomputed colour terms saved with numpy.save; shape must be (height, width, 2)."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Colour terms not found: {path}")

    terms = np.load(path)
    if terms.shape != (height, width, 2):
        raise ValueError(f"Colour terms in {path} have shape {terms.shape}, expected {(height, width, 2)}")
    return terms.astype(np.float64)
