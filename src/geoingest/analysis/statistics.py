"""
Read-only analysis of normalized feature collections.

These functions back the statistics window and the layer search: counts
per geometry type and property, material and region tallies, filtering,
grouping and the layer extent. None of them modify the collection.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from geoingest.models.feature import Feature, FeatureCollection, get_ci, iter_positions
from geoingest.models.statistics import Extent, LayerStatistics, PropertyStatistics

logger = logging.getLogger(__name__)

MAX_UNIQUE_VALUES = 10

_TRUE_FLAGS = {"1", "true", "yes", "oui"}


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _is_set_flag(value: Any) -> bool:
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_FLAGS
    return False


def _text(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def layer_statistics(collection: FeatureCollection) -> Optional[LayerStatistics]:
    """
    Compute statistics of a collection.

    Args:
        collection: Normalized feature collection

    Returns:
        LayerStatistics, or None for an empty collection
    """
    if not collection.features:
        return None

    geometry_types: Dict[str, int] = {}
    material_count: Dict[str, int] = {}
    in_region = 0
    moved = 0
    types: Dict[str, str] = {}
    uniques: Dict[str, List[str]] = {}
    seen: Dict[str, set] = {}
    nulls: Dict[str, int] = {}

    for feature in collection.features:
        gtype = feature.geometry_type
        geometry_types[gtype] = geometry_types.get(gtype, 0) + 1

        material = get_ci(feature.properties, "mat")
        if not _is_empty(material):
            key = _text(material).lower().strip()
            material_count[key] = material_count.get(key, 0) + 1

        if _is_set_flag(get_ci(feature.properties, "in_region")):
            in_region += 1
        if _is_set_flag(get_ci(feature.properties, "was_moved")):
            moved += 1

        for name, value in feature.properties.items():
            if name not in types:
                types[name] = type(value).__name__
                uniques[name] = []
                seen[name] = set()
                nulls[name] = 0
            if _is_empty(value):
                nulls[name] += 1
                continue
            text = _text(value)
            if text not in seen[name]:
                seen[name].add(text)
                uniques[name].append(text)

    properties = {
        name: PropertyStatistics(
            type=types[name],
            unique_count=len(seen[name]),
            unique_values=uniques[name][:MAX_UNIQUE_VALUES],
            null_count=nulls[name],
        )
        for name in types
    }
    return LayerStatistics(
        total_features=len(collection.features),
        geometry_types=geometry_types,
        properties=properties,
        material_count=material_count,
        in_region_count=in_region,
        moved_count=moved,
    )


def filter_by_property(collection: FeatureCollection, name: str, value: Any) -> FeatureCollection:
    """
    Select features by property value.

    Strings match as a case-insensitive substring; other values by equality.

    Args:
        collection: Collection to filter
        name: Property name
        value: Value to look for

    Returns:
        New collection holding the matching features
    """
    if isinstance(value, str):
        wanted = value.lower()

        def matches(feature: Feature) -> bool:
            current = feature.properties.get(name)
            return current is not None and wanted in _text(current).lower()

    else:

        def matches(feature: Feature) -> bool:
            return feature.properties.get(name) == value

    return FeatureCollection(features=[f for f in collection.features if matches(f)])


def group_by_property(collection: FeatureCollection, name: str) -> Dict[str, List[Feature]]:
    """Group features by the text of a property; missing values group under "Unknown"."""
    groups: Dict[str, List[Feature]] = {}
    for feature in collection.features:
        value = feature.properties.get(name)
        key = "Unknown" if _is_empty(value) else _text(value)
        groups.setdefault(key, []).append(feature)
    return groups


def count_by_category(collection: FeatureCollection, name: str) -> Dict[str, int]:
    return {key: len(features) for key, features in group_by_property(collection, name).items()}


def unique_values(collection: FeatureCollection, name: str) -> List[str]:
    """Sorted distinct non-empty values of a property, as text."""
    return sorted(
        {
            _text(feature.properties[name])
            for feature in collection.features
            if not _is_empty(feature.properties.get(name))
        }
    )


def calculate_extent(collection: FeatureCollection) -> Optional[Extent]:
    """
    Bounding box over every position, geometry collections included.

    Returns:
        Extent, or None when the collection has no usable position
    """
    xs: List[float] = []
    ys: List[float] = []
    for feature in collection.features:
        for _, position in iter_positions(feature.geometry):
            if (
                isinstance(position, (list, tuple))
                and len(position) >= 2
                and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in position[:2])
            ):
                xs.append(float(position[0]))
                ys.append(float(position[1]))

    if not xs:
        logger.debug("No positions to compute an extent from")
        return None

    min_x, max_x, min_y, max_y = min(xs), max(xs), min(ys), max(ys)
    return Extent(
        min_x=min_x,
        min_y=min_y,
        max_x=max_x,
        max_y=max_y,
        center=((min_x + max_x) / 2, (min_y + max_y) / 2),
        width=max_x - min_x,
        height=max_y - min_y,
    )


def layer_summary(collection: FeatureCollection) -> str:
    """
    One-line text summary of a layer.

    Example:
        "2 features | Point: 2 | Materials: argile (1), sable (1)"
    """
    stats = layer_statistics(collection)
    if stats is None:
        return "No features in layer"

    parts = [
        f"{stats.total_features} features",
        ", ".join(f"{gtype}: {count}" for gtype, count in stats.geometry_types.items()),
    ]
    if stats.material_count:
        materials = ", ".join(f"{mat} ({count})" for mat, count in stats.material_count.items())
        parts.append(f"Materials: {materials}")
    if stats.in_region_count:
        parts.append(f"{stats.in_region_count} features in region")
    return " | ".join(parts)


def export_geojson(collection: FeatureCollection, indent: Optional[int] = 2) -> str:
    """Serialize a collection as GeoJSON text."""
    return json.dumps(collection.to_geojson(), indent=indent, ensure_ascii=False)
