"""
Normalizers producing canonical WGS84 feature collections.
"""

from geoingest.core.normalizers.point_table import normalize_point_rows
from geoingest.core.normalizers.structured import (
    GeoJSONNormalizer,
    parse_geojson_text,
    validate_coordinate_ranges,
)

__all__ = [
    "GeoJSONNormalizer",
    "normalize_point_rows",
    "parse_geojson_text",
    "validate_coordinate_ranges",
]
