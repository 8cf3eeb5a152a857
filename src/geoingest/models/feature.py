"""
Canonical feature model.

Every decoder in the ingestion pipeline produces a ``FeatureCollection`` of
``Feature`` objects whose geometries are plain GeoJSON mappings. Once
normalization completes, positions are longitude/latitude degrees in WGS84.
"""

import datetime as _dt
import json
import math
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

PropertyValue = Union[str, int, float, None]
Properties = Dict[str, PropertyValue]


class GeometryType(str, Enum):
    """The seven GeoJSON geometry types."""

    POINT = "Point"
    LINE_STRING = "LineString"
    POLYGON = "Polygon"
    MULTI_POINT = "MultiPoint"
    MULTI_LINE_STRING = "MultiLineString"
    MULTI_POLYGON = "MultiPolygon"
    GEOMETRY_COLLECTION = "GeometryCollection"


# Depth of array nesting above a single position, per geometry type.
NESTING_DEPTH: Dict[GeometryType, int] = {
    GeometryType.POINT: 0,
    GeometryType.LINE_STRING: 1,
    GeometryType.MULTI_POINT: 1,
    GeometryType.POLYGON: 2,
    GeometryType.MULTI_LINE_STRING: 2,
    GeometryType.MULTI_POLYGON: 3,
}

SIMPLE_GEOMETRY_TYPES = frozenset(t.value for t in NESTING_DEPTH)


def geometry_depth(geometry_type: Union[str, GeometryType]) -> int:
    """
    Get the nesting depth of the coordinates of a geometry type.

    Args:
        geometry_type: GeoJSON geometry type name

    Returns:
        Number of array levels above a single position

    Raises:
        ValueError: If the type has no coordinate array (GeometryCollection)
            or is not a GeoJSON type
    """
    gtype = GeometryType(geometry_type)
    if gtype not in NESTING_DEPTH:
        raise ValueError(f"{gtype.value} has no coordinates array")
    return NESTING_DEPTH[gtype]


def find_key_ci(mapping: Mapping[str, Any], name: str) -> Optional[str]:
    """
    Find the first key of a mapping equal to ``name`` ignoring case.

    Args:
        mapping: Mapping to search
        name: Key to look for

    Returns:
        The key as stored in the mapping, or None
    """
    wanted = name.casefold()
    for key in mapping:
        if isinstance(key, str) and key.casefold() == wanted:
            return key
    return None


def get_ci(mapping: Mapping[str, Any], name: str, default: Any = None) -> Any:
    """Case-insensitive ``mapping.get``."""
    key = find_key_ci(mapping, name)
    if key is None:
        return default
    return mapping[key]


def coerce_property_value(value: Any) -> PropertyValue:
    """
    Close a raw attribute value over the canonical property types.

    Args:
        value: Value read from any input format

    Returns:
        A str, int, float or None
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (_dt.date, _dt.datetime, _dt.time)):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


@dataclass
class Feature:
    """
    One geometry and its attribute properties.

    Attributes:
        geometry: GeoJSON geometry mapping (``type`` plus ``coordinates``,
            or ``geometries`` for a GeometryCollection)
        properties: Ordered attribute mapping
    """

    geometry: Dict[str, Any]
    properties: Properties = field(default_factory=dict)

    @property
    def geometry_type(self) -> str:
        """GeoJSON type name of the geometry."""
        return self.geometry.get("type", "Unknown")

    @property
    def coordinates(self) -> Any:
        """Coordinates array of the geometry (None for collections)."""
        return self.geometry.get("coordinates")

    @classmethod
    def from_geometry(
        cls, geometry: Mapping[str, Any], properties: Optional[Mapping[str, Any]] = None
    ) -> "Feature":
        """
        Build a feature from a geometry mapping and raw properties.

        Args:
            geometry: GeoJSON geometry mapping
            properties: Raw attribute values

        Returns:
            Feature with coerced property values
        """
        props = {
            str(key): coerce_property_value(value)
            for key, value in (properties or {}).items()
        }
        return cls(geometry=dict(geometry), properties=props)

    def to_geojson(self) -> Dict[str, Any]:
        """Convert to a GeoJSON Feature mapping."""
        return {
            "type": "Feature",
            "geometry": self.geometry,
            "properties": dict(self.properties),
        }


@dataclass
class FeatureCollection:
    """
    Ordered set of features, the canonical output of the pipeline.

    Attributes:
        features: Features in input order
        crs: Legacy GeoJSON CRS block, kept only until coordinates have been
            transformed to WGS84
    """

    features: List[Feature] = field(default_factory=list)
    crs: Optional[Dict[str, Any]] = None

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    @property
    def geometry_types(self) -> Dict[str, int]:
        """Count of features per geometry type."""
        counts: Dict[str, int] = {}
        for feature in self.features:
            counts[feature.geometry_type] = counts.get(feature.geometry_type, 0) + 1
        return counts

    def to_geojson(self) -> Dict[str, Any]:
        """Convert to a GeoJSON FeatureCollection mapping."""
        data: Dict[str, Any] = {
            "type": "FeatureCollection",
            "features": [feature.to_geojson() for feature in self.features],
        }
        if self.crs is not None:
            data["crs"] = self.crs
        return data


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a cell or property value as a finite number.

    Accepts ints, floats and numeric text with either a decimal point or a
    single decimal comma (``"463379,5"``).

    Args:
        value: Raw value

    Returns:
        The number, or None when the value is not a finite number
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().replace("\u00a0", "").replace(" ", "")
        if not text:
            return None
        if "," in text and "." not in text and text.count(",") == 1:
            text = text.replace(",", ".")
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def iter_positions(
    geometry: Mapping[str, Any], path: Tuple[int, ...] = ()
) -> Iterator[Tuple[Tuple[int, ...], Any]]:
    """
    Walk every position of a geometry, collections included.

    The walk descends exactly ``NESTING_DEPTH[type]`` levels, so a
    malformed array yields whatever sits at the position level.

    Args:
        geometry: GeoJSON geometry mapping
        path: Index path of the geometry inside its parent

    Yields:
        (index path, position) pairs
    """
    gtype = geometry.get("type")
    if gtype == GeometryType.GEOMETRY_COLLECTION.value:
        for index, member in enumerate(geometry.get("geometries") or []):
            if isinstance(member, Mapping):
                yield from iter_positions(member, path + (index,))
        return

    if gtype not in SIMPLE_GEOMETRY_TYPES:
        return

    def walk(coords: Any, depth: int, where: Tuple[int, ...]) -> Iterator[Tuple[Tuple[int, ...], Any]]:
        if depth == 0:
            yield where, coords
            return
        if isinstance(coords, (list, tuple)):
            for index, item in enumerate(coords):
                yield from walk(item, depth - 1, where + (index,))

    yield from walk(geometry.get("coordinates"), NESTING_DEPTH[GeometryType(gtype)], path)


def first_position(geometry: Optional[Mapping[str, Any]]) -> Optional[List[float]]:
    """First well-formed position of a geometry, or None."""
    if not geometry:
        return None
    for _, position in iter_positions(geometry):
        if (
            isinstance(position, (list, tuple))
            and len(position) >= 2
            and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in position[:2])
        ):
            return list(position)
    return None
