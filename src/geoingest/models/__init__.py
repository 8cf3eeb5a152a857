"""
Data models and schemas.
"""

from .crs import CRSDetection, SRSDescriptor
from .errors import ErrorDetail, ErrorResponse
from .feature import (
    NESTING_DEPTH,
    Feature,
    FeatureCollection,
    GeometryType,
    coerce_property_value,
    find_key_ci,
    first_position,
    geometry_depth,
    get_ci,
    iter_positions,
    parse_number,
)
from .layer import BatchResponse, IngestionFailure, LayerInfo, LayerUpdate
from .statistics import Extent, LayerStatistics, LayerStatisticsResponse, PropertyStatistics
from .upload import UploadedFile

__all__ = [
    # CRS
    "CRSDetection",
    "SRSDescriptor",
    # Errors
    "ErrorDetail",
    "ErrorResponse",
    # Features
    "NESTING_DEPTH",
    "Feature",
    "FeatureCollection",
    "GeometryType",
    "coerce_property_value",
    "find_key_ci",
    "first_position",
    "geometry_depth",
    "get_ci",
    "iter_positions",
    "parse_number",
    # Layers
    "BatchResponse",
    "IngestionFailure",
    "LayerInfo",
    "LayerUpdate",
    # Statistics
    "Extent",
    "LayerStatistics",
    "LayerStatisticsResponse",
    "PropertyStatistics",
    # Uploads
    "UploadedFile",
]
