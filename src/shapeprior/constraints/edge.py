"""
Admissible widths and derived length/angle limits of shape edges.
"""

from typing import NamedTuple

from shapeprior.geometry.range import Range


class EdgeConstraints:
    """Closed interval of admissible widths for one edge."""

    __slots__ = ("_min_width", "_max_width")

    def __init__(self, min_width, max_width):
        if min_width < 0:
            raise ValueError("Edge width must not be negative")
        if min_width > max_width:
            raise ValueError(f"Min width ({min_width}) should not be greater than max width ({max_width})")
        self._min_width = float(min_width)
        self._max_width = float(max_width)

    @classmethod
    def from_width(cls, width):
        return cls(width, width)

    @property
    def min_width(self):
        return self._min_width

    @property
    def max_width(self):
        return self._max_width

    @property
    def width_range(self):
        return Range(self._min_width, self._max_width)

    @property
    def middle_width(self):
        return (self._min_width + self._max_width) * 0.5

    @property
    def freedom(self):
        return self._max_width - self._min_width

    def __eq__(self, other):
        return (isinstance(other, EdgeConstraints) and
                self._min_width == other._min_width and self._max_width == other._max_width)

    def __hash__(self):
        return hash((self._min_width, self._max_width))

    def __repr__(self):
        return f"EdgeConstraints({self._min_width}, {self._max_width})"


class EdgeLimits(NamedTuple):
    """Length and signed-angle ranges an edge can take given its vertex boxes."""
    length_range: Range
    angle_range: Range
