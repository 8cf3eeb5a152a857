"""
Layer analysis: statistics, filtering, grouping and extent.
"""

from geoingest.analysis.statistics import (
    calculate_extent,
    count_by_category,
    export_geojson,
    filter_by_property,
    group_by_property,
    layer_statistics,
    layer_summary,
    unique_values,
)

__all__ = [
    "calculate_extent",
    "count_by_category",
    "export_geojson",
    "filter_by_property",
    "group_by_property",
    "layer_statistics",
    "layer_summary",
    "unique_values",
]
