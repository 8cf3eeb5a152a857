"""
Parsers for binary shapefiles and KML markup.
"""

from geoingest.core.parsers.kml import extract_kml, kml_color_to_hex, repair_namespaces
from geoingest.core.parsers.shapefile import (
    SHAPEFILE_EXTENSIONS,
    ShapefileAssembler,
    ShapefileGroup,
    group_shapefile_components,
)

__all__ = [
    # KML
    "extract_kml",
    "kml_color_to_hex",
    "repair_namespaces",
    # Shapefile
    "SHAPEFILE_EXTENSIONS",
    "ShapefileAssembler",
    "ShapefileGroup",
    "group_shapefile_components",
]
