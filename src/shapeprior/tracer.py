"""
Hierarchical runtime tracing for shapeprior.

Every solver stage logs through one global tracer: nested timed spans,
one-off events and compact summaries of the arrays, boxes and models
passing through. Output goes to stderr and optionally to a file, as text
or as JSON lines.
"""

import functools
import hashlib
import json
import math
import sys
import time
from contextlib import contextmanager
from datetime import datetime


LEVELS = {"ERROR": 0, "WARN": 1, "INFO": 2, "DEBUG": 3}


class TracerConfig:
    """Output settings of a tracer."""

    def __init__(self):
        self.enabled = False
        self.level = "INFO"
        self.file_path = None
        self.json_output = False
        self._file_handle = None

    def configure(self, enabled=False, level="INFO", file_path=None, json_output=False):
        """Apply new settings, reopening the mirror file if one is requested."""
        level = level.upper()
        if level not in LEVELS:
            raise ValueError(f"Unknown trace level: {level}")

        self.enabled = enabled
        self.level = level
        self.file_path = file_path
        self.json_output = json_output

        self.close()
        if file_path and enabled:
            self._file_handle = open(file_path, "w", encoding="utf-8")

    def close(self):
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None


class Tracer:
    """
    Nested span logger.

    Spans are timed and indented by depth; events attach to the innermost
    open span. Nothing is formatted while the tracer is disabled.
    """

    def __init__(self):
        self.config = TracerConfig()
        self._depth = 0
        self._span_stack = []

    def is_enabled_for(self, level):
        if not self.config.enabled:
            return False
        return LEVELS.get(level, LEVELS["INFO"]) <= LEVELS.get(self.config.level, LEVELS["INFO"])

    def _timestamp(self):
        now = datetime.now()
        return now.strftime("%H:%M:%S.") + f"{now.microsecond // 1000:03d}"

    def _emit(self, level, module, func, message, meta=None):
        if not self.is_enabled_for(level):
            return

        timestamp = self._timestamp()
        location = f"{module}:{func}" if func else module
        line = f"{timestamp} {level:<5} {'  ' * self._depth}{location}  {message}"

        lines = [line]
        if self.config.json_output:
            record = {
                "timestamp": timestamp,
                "level": level,
                "depth": self._depth,
                "module": module,
                "function": func,
                "message": message,
                "meta": {k: summarize(v) for k, v in (meta or {}).items()},
            }
            lines.append(json.dumps(record))

        handle = self.config._file_handle
        for text in lines:
            print(text, file=sys.stderr)
            if handle:
                handle.write(text + "\n")
        if handle:
            handle.flush()

    @contextmanager
    def span(self, name, module="", **meta):
        """
        Time a block of work.

        Logs ``start`` on entry and ``end ok`` with the elapsed time on exit.
        An exception escaping the block is logged at ERROR level and re-raised
        unchanged.
        """
        if not self.config.enabled:
            yield
            return

        started = time.perf_counter()
        self._emit("INFO", module, name, f"start {_format_meta(meta)}".strip(), meta)
        self._depth += 1
        self._span_stack.append((name, module))

        try:
            yield
        except Exception as e:
            elapsed = (time.perf_counter() - started) * 1000
            self._span_stack.pop()
            self._depth -= 1
            self._emit("ERROR", module, name, f"failed dt={elapsed:.0f}ms error={type(e).__name__}: {str(e)[:100]}")
            raise
        else:
            elapsed = (time.perf_counter() - started) * 1000
            self._span_stack.pop()
            self._depth -= 1
            self._emit("INFO", module, name, f"end ok dt={elapsed:.0f}ms")

    def event(self, message, level="INFO", **meta):
        """Log a single line inside the innermost open span."""
        if not self.is_enabled_for(level):
            return

        func, module = self._span_stack[-1] if self._span_stack else ("", "")
        self._emit(level, module, func, f"{message} {_format_meta(meta)}".strip(), meta)


def _format_meta(meta):
    return " ".join(f"{k}={summarize(v)}" for k, v in meta.items())


def summarize(obj, max_len=200):
    """
    Render an object as a short single-line string for log output.

    Never raises and never returns more than ``max_len`` characters.
    """
    try:
        result = _summarize_impl(obj)
    except Exception:
        return f"<{type(obj).__name__}>"
    if len(result) > max_len:
        return result[:max_len - 3] + "..."
    return result


def _summarize_impl(obj):
    if obj is None:
        return "None"

    type_name = type(obj).__name__

    import numpy as np
    if isinstance(obj, np.ndarray):
        shape_str = "x".join(str(s) for s in obj.shape)
        payload = obj.tobytes() if 0 < obj.size < 1000 else str(obj.shape).encode()
        digest = hashlib.md5(payload).hexdigest()[:8]
        return f"ndarray({obj.dtype},{shape_str},h={digest})"

    from shapely.geometry.base import BaseGeometry
    if isinstance(obj, BaseGeometry):
        bounds_str = ",".join(f"{b:.1f}" for b in obj.bounds)
        return f"{type_name}(bounds=[{bounds_str}])"

    import networkx as nx
    if isinstance(obj, nx.Graph):
        return f"{type_name}(nodes={obj.number_of_nodes()},edges={obj.number_of_edges()})"

    from pydantic import BaseModel
    if isinstance(obj, BaseModel):
        fields = list(type(obj).model_fields.keys())[:3]
        return f"{type_name}(fields={fields}...)"

    # Vector and other 2-d named tuples
    if isinstance(obj, tuple) and getattr(obj, "_fields", None) == ("x", "y"):
        return f"({obj.x:.3f},{obj.y:.3f})"

    # Axis-aligned boxes
    if hasattr(obj, "min_coord") and hasattr(obj, "max_coord"):
        lo, hi = obj.min_coord, obj.max_coord
        return f"{type_name}([{lo.x:.1f},{lo.y:.1f}]-[{hi.x:.1f},{hi.y:.1f}])"

    if isinstance(obj, str):
        if len(obj) > 50:
            digest = hashlib.md5(obj.encode()).hexdigest()[:8]
            return f"str(len={len(obj)},h={digest})"
        return repr(obj)

    if isinstance(obj, bytes):
        return f"bytes(len={len(obj)},h={hashlib.md5(obj).hexdigest()[:8]})"

    if isinstance(obj, (list, tuple)):
        if not obj:
            return f"{type_name}(len=0)"
        return f"{type_name}(len={len(obj)},first={type(obj[0]).__name__})"

    if isinstance(obj, dict):
        keys_str = ",".join(str(k) for k in list(obj.keys())[:5])
        return f"dict(len={len(obj)},keys=[{keys_str}])"

    if isinstance(obj, float):
        if math.isfinite(obj):
            return f"{obj:.6g}"
        return str(obj)

    if isinstance(obj, (int, np.integer, np.floating)):
        return str(obj)

    return f"<{type_name}>"


def trace(label=None, arg_names=None):
    """
    Wrap a function in a tracer span.

    ``arg_names`` selects keyword arguments to show in the span's start line.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if not _tracer.config.enabled:
                return func(*args, **kwargs)

            module = func.__module__.split(".")[-1] if func.__module__ else ""
            meta = {name: kwargs[name] for name in (arg_names or ()) if name in kwargs}
            with _tracer.span(label or func.__name__, module=module, **meta):
                return func(*args, **kwargs)

        return wrapper
    return decorator


_tracer = Tracer()


def get_tracer():
    """Return the process-wide tracer."""
    return _tracer


def configure_tracer(enabled=False, level="INFO", file_path=None, json_output=False):
    """Configure the process-wide tracer."""
    _tracer.config.configure(
        enabled=enabled,
        level=level,
        file_path=file_path,
        json_output=json_output,
    )
