"""
Configuration management for shapeprior.

Every tunable of the segmentation oracle, the shape model, colour model
fitting and the lower-bound solvers lives in one of the dataclass sections
below. Sections validate themselves on construction; YAML files override
the defaults section by section.
"""

import os
from dataclasses import asdict, dataclass, field, fields

import yaml

from shapeprior.tracer import LEVELS


def _require(condition, message):
    if not condition:
        raise ValueError(message)


@dataclass
class SegmentationConfig:
    """Weights of the segmentation energy handed to the oracle."""
    shape_unary_weight: float = 1.0
    color_unary_weight: float = 0.15  # overall unary-term weight
    binary_weight: float = 1.0  # constant pairwise weight, 0 disables graph cut
    brightness_cutoff: float = 1.2

    def __post_init__(self):
        _require(self.shape_unary_weight > 0, "shape_unary_weight must be positive")
        _require(self.color_unary_weight > 0, "color_unary_weight must be positive")
        _require(self.binary_weight >= 0, "binary_weight must not be negative")
        _require(self.brightness_cutoff > 0, "brightness_cutoff must be positive")


@dataclass
class ShapeConfig:
    """Scalar hyperparameters of the shape model."""
    shape_energy_weight: float = 25.0
    background_distance_coeff: float = 1.0

    def __post_init__(self):
        _require(self.shape_energy_weight >= 0, "shape_energy_weight must not be negative")
        _require(self.background_distance_coeff > 0, "background_distance_coeff must be positive")


@dataclass
class ColorModelConfig:
    """Gaussian mixture colour model fitting."""
    mixture_components: int = 3
    max_pixels_to_learn: int = 20000
    stop_tolerance: float = 0.2
    seed: int = 0

    def __post_init__(self):
        _require(self.mixture_components >= 1, "mixture_components must be at least 1")
        _require(self.max_pixels_to_learn >= self.mixture_components,
                 "max_pixels_to_learn must cover every mixture component")
        _require(0 <= self.stop_tolerance <= 1, "stop_tolerance must be in [0, 1]")


@dataclass
class LowerBoundConfig:
    """Subgradient ascent of the dual-decomposition lower bound."""
    iterations: int = 50
    step_size: float = 1e-5
    use_separable_transform: bool = True

    def __post_init__(self):
        _require(self.iterations >= 1, "iterations must be at least 1")
        _require(self.step_size > 0, "step_size must be positive")


@dataclass
class ShapeEnergyBoundConfig:
    """Grid resolution of the shape-energy lower bound."""
    length_grid_size: int = 201
    angle_grid_size: int = 201

    def __post_init__(self):
        _require(self.length_grid_size >= 2, "length_grid_size must be at least 2")
        _require(self.angle_grid_size >= 2, "angle_grid_size must be at least 2")


@dataclass
class TracingConfig:
    """Configuration for runtime tracing."""
    enabled: bool = False
    level: str = "INFO"
    file_path: str = None
    json_output: bool = False

    def __post_init__(self):
        _require(str(self.level).upper() in LEVELS, f"Unknown trace level: {self.level}")


@dataclass
class DebugConfig:
    """Configuration for debug artifact generation."""
    enabled: bool = False
    every_n_iterations: int = 10
    max_edge_scale: int = 800

    def __post_init__(self):
        _require(self.every_n_iterations >= 1, "every_n_iterations must be at least 1")


@dataclass
class SolverConfig:
    """Complete configuration of one lower-bound run."""
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)
    shape: ShapeConfig = field(default_factory=ShapeConfig)
    color_model: ColorModelConfig = field(default_factory=ColorModelConfig)
    lower_bound: LowerBoundConfig = field(default_factory=LowerBoundConfig)
    shape_energy_bound: ShapeEnergyBoundConfig = field(default_factory=ShapeEnergyBoundConfig)
    tracing: TracingConfig = field(default_factory=TracingConfig)
    debug: DebugConfig = field(default_factory=DebugConfig)


SECTIONS = [f.name for f in fields(SolverConfig)]


def load_config(config_path=None):
    """
    Load configuration from a YAML file.

    Missing sections and keys keep their defaults, unknown keys are ignored.
    Raises ValueError when a merged section fails validation.
    """
    config = SolverConfig()

    if config_path and os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

        config = _merge_config(config, yaml_data)

    return config


def _merge_config(config, yaml_data):
    """Merge YAML data into the config, re-validating touched sections."""
    if not isinstance(yaml_data, dict):
        raise ValueError("Configuration file must contain a mapping")

    for section_name in SECTIONS:
        overrides = yaml_data.get(section_name)
        if not overrides:
            continue
        section = getattr(config, section_name)
        for key, value in overrides.items():
            if hasattr(section, key):
                setattr(section, key, value)
        section.__post_init__()

    return config


def save_default_config(path):
    """Save default configuration to YAML file for reference."""
    yaml_data = asdict(SolverConfig())
    yaml_data["tracing"].pop("file_path")

    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(yaml_data, f, default_flow_style=False, sort_keys=False)
