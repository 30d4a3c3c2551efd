"""
Pydantic data models for shapeprior.

Learned shape parameters, problem descriptions and the diagnostics the
lower-bound driver emits all flow through these validated records.
"""

import math
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ShapeEdge(BaseModel):
    """One skeletal edge of the template, as an ordered pair of vertex indices."""
    index1: int = Field(..., ge=0)
    index2: int = Field(..., ge=0)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_distinct(self):
        if self.index1 == self.index2:
            raise ValueError("Edge endpoints must be different vertices")
        return self

    def shares_vertex_with(self, other):
        return bool({self.index1, self.index2} & {other.index1, other.index2})


class ShapeEdgeParams(BaseModel):
    """Learned mean width-to-length ratio of an edge and its deviation."""
    width_to_edge_length_ratio: float = Field(..., gt=0)
    relative_width_deviation: float = Field(..., gt=0)

    model_config = ConfigDict(extra="forbid", frozen=True)


class ShapeEdgePairParams(BaseModel):
    """
    Learned joint statistics of two constrained edges.

    ``mean_angle`` is the expected signed angle from the first edge to the
    second, ``length_ratio`` the expected first/second length ratio.
    """
    mean_angle: float = Field(..., ge=-math.pi, le=math.pi)
    length_ratio: float = Field(..., gt=0)
    angle_deviation: float = Field(..., gt=0)
    length_deviation: float = Field(..., gt=0)

    model_config = ConfigDict(extra="forbid", frozen=True)

    def swap(self):
        """
        Parameters of the same pair seen from the second edge.

        The length deviation is rescaled so the pair energy term does not
        depend on the direction it is evaluated in.
        """
        return ShapeEdgePairParams(
            mean_angle=-self.mean_angle,
            length_ratio=1.0 / self.length_ratio,
            angle_deviation=self.angle_deviation,
            length_deviation=self.length_deviation / self.length_ratio,
        )


class EdgePairEntry(BaseModel):
    """A constrained edge pair as written in problem files."""
    edge1: int = Field(..., ge=0)
    edge2: int = Field(..., ge=0)
    params: ShapeEdgePairParams

    model_config = ConfigDict(extra="forbid")


class ShapeProblem(BaseModel):
    """
    A complete lower-bound problem: image size, shape model parameters,
    admissible vertex boxes and edge widths, and optional colour inputs.
    """
    image_width: int = Field(..., gt=0)
    image_height: int = Field(..., gt=0)
    edges: List[ShapeEdge] = Field(..., min_length=1)
    edge_params: List[ShapeEdgeParams]
    edge_pairs: List[EdgePairEntry] = Field(default_factory=list)
    vertex_boxes: List[List[float]] = Field(default_factory=list)  # [min_x, min_y, max_x, max_y]
    edge_widths: List[List[float]] = Field(default_factory=list)  # [min_width, max_width]
    color_terms_path: Optional[str] = None
    image_path: Optional[str] = None
    object_rect: Optional[List[int]] = None  # [x, y, width, height]

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_shapes(self):
        for box in self.vertex_boxes:
            if len(box) != 4:
                raise ValueError(f"Vertex box must have 4 coordinates, got {box}")
        for widths in self.edge_widths:
            if len(widths) != 2:
                raise ValueError(f"Edge width range must have 2 values, got {widths}")
        if self.object_rect is not None and len(self.object_rect) != 4:
            raise ValueError("object_rect must be [x, y, width, height]")
        return self


class LowerBoundIteration(BaseModel):
    """Diagnostics of one subgradient iteration."""
    iteration: int
    lower_bound: float
    segmentation_energy: float
    master_segment: List[List[float]]
    master_multipliers: List[List[float]]
    master_penalty: float
    object_pixel_count: int = 0

    model_config = ConfigDict(extra="forbid")


class LowerBoundResult(BaseModel):
    """Outcome of a dual-decomposition run."""
    max_lower_bound: float
    first_lower_bound: Optional[float] = None
    completed_iterations: int = 0
    cancelled: bool = False
    iterations: List[LowerBoundIteration] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")
