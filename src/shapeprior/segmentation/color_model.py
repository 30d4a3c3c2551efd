"""
Gaussian mixture colour models and the colour unary terms derived from them.

Mixtures are fitted with OpenCV's EM implementation; evaluation is done in
numpy from the fitted weights, means and covariances so a whole image is
scored at once.
"""

from typing import NamedTuple

import cv2
import numpy as np

from shapeprior.tracer import get_tracer, trace

MIN_VARIANCE = 1e-6
MAX_EM_ITERATIONS = 100


class ColorModel(NamedTuple):
    """Fitted mixture over RGB colours scaled to [0, 1]."""
    weights: np.ndarray
    means: np.ndarray
    covariances: np.ndarray

    @property
    def component_count(self):
        return len(self.weights)

    def log_likelihood(self, pixels):
        """Log density of every row of ``pixels`` (N x 3, in [0, 1])."""
        pixels = np.asarray(pixels, dtype=np.float64)
        dims = pixels.shape[1]
        component_logs = []
        for weight, mean, covariance in zip(self.weights, self.means, self.covariances):
            if weight <= 0:
                continue
            covariance = covariance + np.eye(dims) * MIN_VARIANCE
            inverse = np.linalg.inv(covariance)
            _, log_det = np.linalg.slogdet(covariance)
            centered = pixels - mean
            mahalanobis = np.einsum("ni,ij,nj->n", centered, inverse, centered)
            component_logs.append(
                np.log(weight) - 0.5 * (mahalanobis + log_det + dims * np.log(2 * np.pi)))

        stacked = np.stack(component_logs)
        peak = stacked.max(axis=0)
        return peak + np.log(np.exp(stacked - peak).sum(axis=0))


def _image_pixels(image):
    image = np.asarray(image)
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected an RGB image of shape (H, W, 3), got {image.shape}")
    return image.reshape(-1, 3).astype(np.float64) / 255.0


def fit_color_model(pixels, config, rng=None):
    """Fit one mixture to an N x 3 array of colours in [0, 1]."""
    pixels = np.asarray(pixels, dtype=np.float64)
    if len(pixels) < config.mixture_components:
        raise ValueError(
            f"Need at least {config.mixture_components} pixels to fit the colour model, got {len(pixels)}")

    if rng is None:
        rng = np.random.default_rng(config.seed)
    if len(pixels) > config.max_pixels_to_learn:
        pixels = pixels[rng.choice(len(pixels), config.max_pixels_to_learn, replace=False)]

    cv2.setRNGSeed(config.seed)
    em = cv2.ml.EM_create()
    em.setClustersNumber(config.mixture_components)
    em.setCovarianceMatrixType(cv2.ml.EM_COV_MAT_GENERIC)
    em.setTermCriteria((cv2.TERM_CRITERIA_COUNT + cv2.TERM_CRITERIA_EPS, MAX_EM_ITERATIONS, config.stop_tolerance))
    retval, _, _, _ = em.trainEM(pixels.astype(np.float32))
    if not retval:
        raise RuntimeError("EM training of the colour model failed")

    weights = np.asarray(em.getWeights(), dtype=np.float64).reshape(-1)
    means = np.asarray(em.getMeans(), dtype=np.float64)
    covariances = np.stack([np.asarray(c, dtype=np.float64) for c in em.getCovs()])
    return ColorModel(weights, means, covariances)


@trace(label="fit_color_models")
def fit_color_models(image, object_rect, config):
    """
    Fit the object mixture to the pixels inside ``object_rect`` = (x, y, w, h)
    and the background mixture to the pixels outside it.

    Returns (object_model, background_model).
    """
    height, width = np.asarray(image).shape[:2]
    x, y, w, h = object_rect
    if w <= 0 or h <= 0 or x < 0 or y < 0 or x + w > width or y + h > height:
        raise ValueError(f"Object rectangle {tuple(object_rect)} does not fit a {width}x{height} image")

    pixels = _image_pixels(image)
    inside = np.zeros((height, width), dtype=bool)
    inside[y:y + h, x:x + w] = True
    inside = inside.reshape(-1)

    rng = np.random.default_rng(config.seed)
    object_model = fit_color_model(pixels[inside], config, rng)
    background_model = fit_color_model(pixels[~inside], config, rng)
    get_tracer().event("Colour models fitted", level="DEBUG",
                       object_pixels=int(inside.sum()), background_pixels=int((~inside).sum()))
    return object_model, background_model


@trace(label="calculate_color_terms")
def calculate_color_terms(image, object_model, background_model):
    """
    Negative log-likelihoods of every pixel under both models, shape
    (H, W, 2) with the object channel first.
    """
    height, width = np.asarray(image).shape[:2]
    pixels = _image_pixels(image)
    object_terms = -object_model.log_likelihood(pixels)
    background_terms = -background_model.log_likelihood(pixels)
    return np.stack([object_terms, background_terms], axis=-1).reshape(height, width, 2)
