"""Tests for the tracer module."""

import json

import numpy as np
import pytest


class TestSummarize:
    """Tests for object summarization."""

    def test_numpy_array_summary(self):
        """Test that numpy arrays are summarized with dtype and shape."""
        from shapeprior.tracer import summarize

        arr = np.zeros((40, 60, 2))
        summary = summarize(arr)

        assert "ndarray" in summary
        assert "40x60x2" in summary
        assert "float64" in summary

    def test_summary_capped_length(self):
        """Test that summary never exceeds max length."""
        from shapeprior.tracer import summarize

        large_dict = {f"key_{i}": f"value_{i}" for i in range(100)}
        summary = summarize(large_dict, max_len=40)

        assert len(summary) <= 40

    def test_vector_summary(self):
        """Test that vectors print their coordinates."""
        from shapeprior.geometry.vector import Vector
        from shapeprior.tracer import summarize

        assert summarize(Vector(1.5, -2.0)) == "(1.500,-2.000)"

    def test_vertex_box_summary(self):
        """Test that vertex boxes print their corners."""
        from shapeprior.constraints.vertex import VertexConstraints
        from shapeprior.tracer import summarize

        summary = summarize(VertexConstraints((0, 1), (4, 5)))

        assert summary == "VertexConstraints([0.0,1.0]-[4.0,5.0])"

    def test_string_summary(self):
        """Test long string summarization."""
        from shapeprior.tracer import summarize

        summary = summarize("a" * 1000)

        assert "str" in summary
        assert "len=1000" in summary

    def test_none_summary(self):
        """Test None summarization."""
        from shapeprior.tracer import summarize

        assert summarize(None) == "None"

    def test_pydantic_model_summary(self):
        """Test pydantic model summarization."""
        from shapeprior.models import ShapeEdgeParams
        from shapeprior.tracer import summarize

        params = ShapeEdgeParams(width_to_edge_length_ratio=0.2, relative_width_deviation=0.1)

        assert "ShapeEdgeParams" in summarize(params)


class TestTracerSpan:
    """Tests for tracer span functionality."""

    def test_span_nesting(self, capsys):
        """Test that nested spans log start, end and the inner event."""
        from shapeprior.tracer import configure_tracer, get_tracer

        configure_tracer(enabled=True, level="INFO")
        tracer = get_tracer()

        with tracer.span("outer", module="test"):
            with tracer.span("inner", module="test"):
                tracer.event("inside")

        lines = capsys.readouterr().err.strip().split("\n")

        assert len(lines) == 5
        assert "inside" in lines[2]

    def test_span_logs_failure(self, capsys):
        """Test that an exception inside a span is logged and re-raised."""
        from shapeprior.tracer import configure_tracer, get_tracer

        configure_tracer(enabled=True, level="INFO")
        tracer = get_tracer()

        with pytest.raises(KeyError):
            with tracer.span("failing", module="test"):
                raise KeyError("missing")

        err = capsys.readouterr().err
        assert "ERROR" in err
        assert "KeyError" in err

    def test_level_filtering(self, capsys):
        """Test that DEBUG events are dropped at INFO level."""
        from shapeprior.tracer import configure_tracer, get_tracer

        configure_tracer(enabled=True, level="INFO")
        get_tracer().event("hidden", level="DEBUG")
        get_tracer().event("shown", level="WARN")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err

    def test_json_output(self, capsys):
        """Test that JSON output adds a parseable record per line."""
        from shapeprior.tracer import configure_tracer, get_tracer

        configure_tracer(enabled=True, level="INFO", json_output=True)
        get_tracer().event("bound", value=1.5)

        lines = capsys.readouterr().err.strip().split("\n")
        record = json.loads(lines[-1])
        assert record["message"].startswith("bound")
        assert record["meta"]["value"] == "1.5"

    def test_unknown_level_rejected(self):
        """Test that configuring an unknown level fails."""
        from shapeprior.tracer import configure_tracer

        with pytest.raises(ValueError):
            configure_tracer(enabled=True, level="VERBOSE")

    def test_tracer_disabled_no_output(self, capsys):
        """Test that disabled tracer produces no output."""
        from shapeprior.tracer import configure_tracer, get_tracer

        configure_tracer(enabled=False)
        tracer = get_tracer()

        with tracer.span("test", module="test"):
            tracer.event("should not appear")

        assert capsys.readouterr().err == ""


class TestTraceDecorator:
    """Tests for the @trace decorator."""

    def test_decorator_runs_function(self):
        """Test that decorated function executes normally."""
        from shapeprior.tracer import configure_tracer, trace

        configure_tracer(enabled=True)

        @trace(label="test_func")
        def my_func(x):
            return x * 2

        assert my_func(5) == 10

    def test_decorator_with_exception(self):
        """Test that decorator propagates exceptions."""
        from shapeprior.tracer import configure_tracer, trace

        configure_tracer(enabled=False)

        @trace(label="failing_func")
        def failing_func():
            raise ValueError("test error")

        with pytest.raises(ValueError):
            failing_func()
