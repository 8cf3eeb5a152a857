"""
UTM zone utilities.

Zone arithmetic used when a projection definition names a UTM zone and a
datum that is not in the registry: the WGS84 UTM code is computed from the
zone number and hemisphere.
"""

import re
from typing import Optional, Tuple

# "UTM_Zone_32N", "UTM zone 32S", "utm32n"
_ZONE_NAME_PATTERN = re.compile(r"UTM[\s_]*(?:zone)?[\s_]*(\d{1,2})\s*([NS])?(?![A-Za-z0-9])", re.IGNORECASE)
# "+proj=utm +zone=32 +south"
_PROJ_ZONE_PATTERN = re.compile(r"\+zone=(\d{1,2})", re.IGNORECASE)
# WKT1 false northing of southern UTM zones
_SOUTHERN_FALSE_NORTHING = re.compile(r"false_northing\"?\s*,\s*10000000", re.IGNORECASE)


def get_utm_epsg(zone_number: int, is_northern: bool) -> int:
    """
    Get the EPSG code of a WGS84 UTM zone.

    Args:
        zone_number: UTM zone number (1-60)
        is_northern: True for northern hemisphere, False for southern

    Returns:
        EPSG code (32601-32660 north, 32701-32760 south)

    Raises:
        ValueError: If zone_number is out of valid range
    """
    if not 1 <= zone_number <= 60:
        raise ValueError(f"UTM zone must be between 1 and 60, got {zone_number}")

    if is_northern:
        return 32600 + zone_number
    return 32700 + zone_number


def parse_utm_zone(text: str) -> Optional[Tuple[int, bool]]:
    """
    Find a UTM zone number and hemisphere in a projection definition.

    Understands ESRI/WKT names (``WGS_1984_UTM_Zone_32N``,
    ``UTM zone 32S``) and PROJ strings (``+proj=utm +zone=32 +south``).
    A WKT name without hemisphere letter is southern only when the false
    northing is 10 000 000.

    Args:
        text: Projection definition text

    Returns:
        Tuple of (zone_number, is_northern), or None if no zone is named
    """
    match = _ZONE_NAME_PATTERN.search(text)
    if match:
        zone = int(match.group(1))
        if not 1 <= zone <= 60:
            return None
        letter = match.group(2)
        if letter:
            return zone, letter.upper() == "N"
        return zone, not _SOUTHERN_FALSE_NORTHING.search(text)

    match = _PROJ_ZONE_PATTERN.search(text)
    if match and "+proj=utm" in text.lower():
        zone = int(match.group(1))
        if not 1 <= zone <= 60:
            return None
        return zone, "+south" not in text.lower()

    return None


def format_utm_zone(zone_number: int, is_northern: bool) -> str:
    """
    Format UTM zone as a string.

    Args:
        zone_number: UTM zone number (1-60)
        is_northern: True for northern hemisphere

    Returns:
        Formatted UTM zone string (e.g., "32N")
    """
    hemisphere = "N" if is_northern else "S"
    return f"{zone_number}{hemisphere}"
