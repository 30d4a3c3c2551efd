"""Integration tests for the full pipeline and the CLI."""

import json
import os

import pytest
import yaml


def _write_config(path, **sections):
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(sections, f)
    return path


class TestPipeline:
    """Integration tests that run the full lower-bound pipeline."""

    def test_lower_bound_writes_summary(self, problem_file, temp_dir):
        """Test that a run writes lower_bound.json with both bounds."""
        from shapeprior.config import SolverConfig
        from shapeprior.pipeline import load_problem, run_lower_bound

        config = SolverConfig()
        config.lower_bound.iterations = 3
        out_dir = os.path.join(temp_dir, "output")

        summary = run_lower_bound(load_problem(problem_file), config=config, out_dir=out_dir)

        path = os.path.join(out_dir, "lower_bound.json")
        assert os.path.exists(path)
        with open(path, encoding="utf-8") as f:
            saved = json.load(f)
        assert set(saved) == {"segmentation_lower_bound", "shape_energy_lower_bound", "total_lower_bound", "result"}
        assert saved["result"]["completed_iterations"] == 3
        assert summary["total_lower_bound"] == pytest.approx(
            summary["segmentation_lower_bound"] + summary["shape_energy_lower_bound"])
        assert summary["shape_energy_lower_bound"] >= 0
        assert not os.path.exists(os.path.join(out_dir, "debug"))

    def test_diagnostics_sink(self, problem_file):
        """Test that the caller receives every iteration record."""
        from shapeprior.config import SolverConfig
        from shapeprior.pipeline import load_problem, run_lower_bound

        config = SolverConfig()
        config.lower_bound.iterations = 2
        config.segmentation.binary_weight = 0.0
        records = []

        run_lower_bound(load_problem(problem_file), config=config, diagnostics_sink=records.append)

        assert [r.iteration for r in records] == [0, 1]

    def test_cancelled_before_first_iteration(self, problem_file, temp_dir):
        """Test that a run without iterations writes null bounds instead of infinities."""
        from shapeprior.config import SolverConfig
        from shapeprior.pipeline import load_problem, run_lower_bound

        config = SolverConfig()
        config.lower_bound.iterations = 3
        out_dir = os.path.join(temp_dir, "output")

        summary = run_lower_bound(load_problem(problem_file), config=config, out_dir=out_dir, should_cancel=lambda: True)

        assert summary["segmentation_lower_bound"] is None
        assert summary["total_lower_bound"] is None
        assert summary["shape_energy_lower_bound"] >= 0
        with open(os.path.join(out_dir, "lower_bound.json"), encoding="utf-8") as f:
            text = f.read()
        assert "Infinity" not in text
        saved = json.loads(text)
        assert saved["result"]["cancelled"]
        assert saved["result"]["completed_iterations"] == 0
        assert saved["result"]["max_lower_bound"] is None

    def test_image_problem_with_debug(self, image_problem_file, temp_dir):
        """Test colour models learned from the image and debug artifacts."""
        from shapeprior.config import SolverConfig
        from shapeprior.pipeline import load_problem, run_lower_bound

        config = SolverConfig()
        config.lower_bound.iterations = 2
        config.color_model.mixture_components = 1
        out_dir = os.path.join(temp_dir, "output")

        summary = run_lower_bound(load_problem(image_problem_file), config=config, out_dir=out_dir, debug=True)

        assert summary["result"]["completed_iterations"] == 2
        assert os.path.exists(os.path.join(out_dir, "debug", "shape_terms", "shape_terms.png"))
        assert os.path.exists(os.path.join(out_dir, "debug", "lower_bound", "iter_0000_unary.png"))
        assert os.path.exists(os.path.join(out_dir, "debug", "lower_bound", "iter_0000_metrics.json"))

    def test_mean_shape(self, problem_file):
        """Test fitting the problem's mean shape into a rectangle."""
        from shapeprior.pipeline import load_problem, run_mean_shape

        shape = run_mean_shape(load_problem(problem_file), 100, 50)

        data = shape.to_dict()
        assert len(data["vertices"]) == 2
        assert len(data["edge_widths"]) == 1


class TestLoadProblem:
    """Tests for problem file loading."""

    def test_missing_file(self, temp_dir):
        """Test that a missing problem file is reported."""
        from shapeprior.pipeline import load_problem

        with pytest.raises(FileNotFoundError):
            load_problem(os.path.join(temp_dir, "missing.yaml"))

    def test_not_a_mapping(self, temp_dir):
        """Test that the file must contain a mapping."""
        from shapeprior.pipeline import load_problem

        path = os.path.join(temp_dir, "list.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write("- 1\n- 2\n")

        with pytest.raises(ValueError):
            load_problem(path)

    def test_unknown_field(self, temp_dir):
        """Test that unknown problem fields are rejected."""
        from pydantic import ValidationError

        from shapeprior.pipeline import load_problem

        path = _write_config(
            os.path.join(temp_dir, "bad.yaml"),
            image_width=5,
            image_height=5,
            edges=[{"index1": 0, "index2": 1}],
            edge_params=[{"width_to_edge_length_ratio": 0.3, "relative_width_deviation": 0.2}],
            colour="red",
        )

        with pytest.raises(ValidationError):
            load_problem(path)

    def test_relative_paths_resolved(self, image_problem_file, temp_dir):
        """Test that image paths are resolved against the problem directory."""
        from shapeprior.pipeline import load_problem

        problem = load_problem(image_problem_file)

        assert problem.image_path == os.path.join(os.path.abspath(temp_dir), "input.png")


class TestCli:
    """Tests for the command-line interface."""

    def test_init_config(self, temp_dir):
        """Test that init-config writes a loadable configuration."""
        from shapeprior.cli import main
        from shapeprior.config import load_config

        path = os.path.join(temp_dir, "config.yaml")

        assert main(["init-config", "--out", path]) == 0
        assert load_config(path).lower_bound.iterations == 50

    def test_lower_bound_command(self, problem_file, temp_dir, capsys):
        """Test the lower-bound command end to end."""
        from shapeprior.cli import main

        config_path = _write_config(
            os.path.join(temp_dir, "config.yaml"),
            lower_bound={"iterations": 2},
            segmentation={"binary_weight": 0.0},
        )
        out_dir = os.path.join(temp_dir, "output")

        code = main(["lower-bound", "--problem", problem_file, "--out", out_dir, "--config", config_path])

        assert code == 0
        assert os.path.exists(os.path.join(out_dir, "lower_bound.json"))
        assert "Total lower bound" in capsys.readouterr().out

    def test_mean_shape_command(self, problem_file, capsys):
        """Test that mean-shape prints the shape as JSON."""
        from shapeprior.cli import main

        code = main(["mean-shape", "--problem", problem_file, "--width", "40", "--height", "20"])

        assert code == 0
        printed = json.loads(capsys.readouterr().out)
        assert len(printed["vertices"]) == 2

    def test_missing_problem(self, temp_dir, capsys):
        """Test that failures return a non-zero exit code."""
        from shapeprior.cli import main

        code = main([
            "lower-bound",
            "--problem", os.path.join(temp_dir, "missing.yaml"),
            "--out", os.path.join(temp_dir, "output"),
        ])

        assert code == 1
        assert "Error:" in capsys.readouterr().err
