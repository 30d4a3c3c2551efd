"""
Closed 1-d intervals and their complements.
"""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class Range:
    """
    Closed interval [left, right].

    With ``outside`` set the range stands for everything NOT strictly inside
    (left, right), i.e. (-inf, left] U [right, +inf). Angle ranges that wrap
    across +-pi are represented this way.
    """
    left: float
    right: float
    outside: bool = False

    def __post_init__(self):
        if self.left > self.right:
            raise ValueError(f"Range left ({self.left}) should not be greater than right ({self.right})")

    @classmethod
    def everything(cls):
        return cls(-math.inf, math.inf)

    def contains(self, coord):
        if self.outside:
            return coord <= self.left or coord >= self.right
        return self.left <= coord <= self.right

    def intersects_with(self, other):
        if not self.outside and not other.outside:
            return (other.left <= self.left <= other.right or
                    self.left <= other.left <= self.right)
        # two complements always share the far ends
        if self.outside and other.outside:
            return True
        if self.outside:
            return other.left <= self.left or other.right >= self.right
        return self.left <= other.left or self.right >= other.right

    def invert(self):
        return Range(self.left, self.right, not self.outside)

    @property
    def length(self):
        if self.outside:
            return math.inf
        return self.right - self.left
