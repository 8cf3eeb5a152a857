"""
Pydantic models for layer statistics.
"""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class PropertyStatistics(BaseModel):
    """
    Summary of one property across a layer.

    Attributes:
        type: Python type name of the first value seen
        unique_count: Number of distinct non-empty values
        unique_values: First 10 distinct values, as text
        null_count: Features where the value is None or empty text
    """

    type: str
    unique_count: int = 0
    unique_values: List[str] = Field(default_factory=list)
    null_count: int = 0


class LayerStatistics(BaseModel):
    """Read-only statistics of a feature collection."""

    total_features: int = Field(..., ge=1)
    geometry_types: Dict[str, int] = Field(default_factory=dict)
    properties: Dict[str, PropertyStatistics] = Field(default_factory=dict)
    material_count: Dict[str, int] = Field(default_factory=dict)
    in_region_count: int = 0
    moved_count: int = 0


class Extent(BaseModel):
    """Bounding box of every position of a layer."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float
    center: Tuple[float, float]
    width: float
    height: float


class LayerStatisticsResponse(BaseModel):
    """Statistics, extent and summary line of one layer."""

    layer_id: str
    statistics: LayerStatistics
    extent: Optional[Extent] = None
    summary: str
