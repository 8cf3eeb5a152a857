"""
Coordinate Reference System (CRS) management module.

This module provides CRS handling for the ingestion pipeline:
- Registry of the deployment's spatial reference systems
- CRS detection from metadata and coordinate magnitude
- Coordinate transformation to WGS84
- UTM zone utilities
"""

from geoingest.core.crs.detector import (
    CRSBlockStrategy,
    CRSResolver,
    DetectionInput,
    DetectionStrategy,
    MagnitudeStrategy,
    ProjectionAuthorityStrategy,
    ProjectionDefinitionStrategy,
    ProjectionSignatureStrategy,
    ProjectionZoneDatumStrategy,
    default_strategies,
)
from geoingest.core.crs.lonlat import lonlat_from_properties, substitute_lonlat_properties
from geoingest.core.crs.registry import (
    CARTHAGE_UTM_32N,
    WGS84,
    WGS84_UTM_32N,
    SRSRegistry,
    default_registry,
    normalize_srs_code,
)
from geoingest.core.crs.transformer import CoordinateTransformer
from geoingest.core.crs.utm import format_utm_zone, get_utm_epsg, parse_utm_zone

__all__ = [
    # Detector
    "CRSBlockStrategy",
    "CRSResolver",
    "DetectionInput",
    "DetectionStrategy",
    "MagnitudeStrategy",
    "ProjectionAuthorityStrategy",
    "ProjectionDefinitionStrategy",
    "ProjectionSignatureStrategy",
    "ProjectionZoneDatumStrategy",
    "default_strategies",
    # Side properties
    "lonlat_from_properties",
    "substitute_lonlat_properties",
    # Registry
    "CARTHAGE_UTM_32N",
    "WGS84",
    "WGS84_UTM_32N",
    "SRSRegistry",
    "default_registry",
    "normalize_srs_code",
    # Transformer
    "CoordinateTransformer",
    # UTM utilities
    "format_utm_zone",
    "get_utm_epsg",
    "parse_utm_zone",
]
