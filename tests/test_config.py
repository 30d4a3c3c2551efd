"""Tests for configuration loading and validation."""

import os

import pytest
import yaml


class TestConfigDefaults:
    """Tests for default configuration values."""

    def test_defaults(self):
        """Test the documented defaults of the solver sections."""
        from shapeprior.config import SolverConfig

        config = SolverConfig()

        assert config.segmentation.brightness_cutoff == 1.2
        assert config.segmentation.color_unary_weight == 0.15
        assert config.shape.shape_energy_weight == 25.0
        assert config.color_model.mixture_components == 3
        assert config.lower_bound.iterations == 50
        assert config.debug.enabled is False

    def test_missing_file_gives_defaults(self, temp_dir):
        """Test that a missing config path falls back to defaults."""
        from shapeprior.config import load_config

        config = load_config(os.path.join(temp_dir, "absent.yaml"))

        assert config.lower_bound.step_size == 1e-5


class TestConfigLoading:
    """Tests for YAML merging."""

    def test_partial_override(self, temp_dir):
        """Test that only the given keys change."""
        from shapeprior.config import load_config

        path = os.path.join(temp_dir, "config.yaml")
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"lower_bound": {"iterations": 7}, "unknown_section": {"x": 1}}, f)

        config = load_config(path)

        assert config.lower_bound.iterations == 7
        assert config.lower_bound.step_size == 1e-5
        assert config.segmentation.binary_weight == 1.0

    def test_invalid_override_rejected(self, temp_dir):
        """Test that merged values are validated."""
        from shapeprior.config import load_config

        path = os.path.join(temp_dir, "config.yaml")
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"lower_bound": {"step_size": -1.0}}, f)

        with pytest.raises(ValueError):
            load_config(path)

    def test_non_mapping_rejected(self, temp_dir):
        """Test that a YAML list is not a valid config."""
        from shapeprior.config import load_config

        path = os.path.join(temp_dir, "config.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write("- 1\n- 2\n")

        with pytest.raises(ValueError):
            load_config(path)

    def test_save_default_roundtrip(self, temp_dir):
        """Test that the saved default file loads back to the defaults."""
        from shapeprior.config import SolverConfig, load_config, save_default_config

        path = os.path.join(temp_dir, "default.yaml")
        save_default_config(path)

        assert load_config(path) == SolverConfig()

    def test_section_validation(self):
        """Test that sections reject invalid values on construction."""
        from shapeprior.config import DebugConfig, SegmentationConfig, TracingConfig

        with pytest.raises(ValueError):
            SegmentationConfig(brightness_cutoff=0)
        with pytest.raises(ValueError):
            TracingConfig(level="LOUD")
        with pytest.raises(ValueError):
            DebugConfig(every_n_iterations=0)
