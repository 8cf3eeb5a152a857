"""
Longitude/latitude side-property substitution.

Survey exports often carry projected geometry together with ``lon``/``lat``
attribute columns holding the same point in WGS84. Those attributes are
trusted over any reprojection of the geometry.
"""

import logging
from typing import Optional, Tuple

from geoingest.models.feature import Feature, GeometryType, get_ci, parse_number

logger = logging.getLogger(__name__)

LONGITUDE_KEYS = ("lon", "longitude", "lng", "long")
LATITUDE_KEYS = ("lat", "latitude")


def _first_number(feature: Feature, keys: Tuple[str, ...]) -> Optional[float]:
    for key in keys:
        value = parse_number(get_ci(feature.properties, key))
        if value is not None:
            return value
    return None


def lonlat_from_properties(feature: Feature) -> Optional[Tuple[float, float]]:
    """
    Read a WGS84 position from a feature's attributes.

    Args:
        feature: Feature to inspect

    Returns:
        (longitude, latitude) when both attributes are numbers in range,
        otherwise None
    """
    lon = _first_number(feature, LONGITUDE_KEYS)
    lat = _first_number(feature, LATITUDE_KEYS)
    if lon is None or lat is None:
        return None
    if not (-180 <= lon <= 180 and -90 <= lat <= 90):
        return None
    return lon, lat


def substitute_lonlat_properties(feature: Feature) -> bool:
    """
    Replace a Point's coordinates with its longitude/latitude attributes.

    Args:
        feature: Feature to update in place

    Returns:
        True if the coordinates were replaced
    """
    if feature.geometry_type != GeometryType.POINT.value:
        return False

    lonlat = lonlat_from_properties(feature)
    if lonlat is None:
        return False

    original = feature.coordinates
    extra = list(original[2:]) if isinstance(original, (list, tuple)) else []
    feature.geometry = {**feature.geometry, "coordinates": [lonlat[0], lonlat[1], *extra]}
    logger.warning(
        f"Using lon/lat attributes {list(lonlat)} instead of geometry {original!r}",
        extra={"crs_explicit": False},
    )
    return True
