"""
Structured-geometry (GeoJSON) normalizer.

Accepts a parsed GeoJSON document of any of the seven geometry types, a
Feature or a FeatureCollection, and always returns a FeatureCollection in
WGS84 or raises a typed error. Shapefile records take the same path once
they have been turned into GeoJSON features.
"""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

from geoingest.core.crs.detector import CRSResolver, MagnitudeStrategy
from geoingest.core.crs.lonlat import substitute_lonlat_properties
from geoingest.core.crs.transformer import CoordinateTransformer
from geoingest.core.errors import ParseError, StructureError
from geoingest.models.crs import CRSDetection
from geoingest.models.feature import (
    SIMPLE_GEOMETRY_TYPES,
    Feature,
    FeatureCollection,
    GeometryType,
    first_position,
    iter_positions,
)

logger = logging.getLogger(__name__)


def parse_geojson_text(text: str, file_name: Optional[str] = None) -> Any:
    """
    Parse JSON text.

    Raises:
        ParseError: With the line and column of the first syntax error
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(
            message=f"Invalid JSON at line {e.lineno}, column {e.colno}: {e.msg}",
            file_name=file_name,
            file_type="GeoJSON",
            line_number=e.lineno,
            column=e.colno,
            suggestions=["Please ensure the file is valid GeoJSON format"],
        ) from e


def _has_coordinates(geometry: Any) -> bool:
    """True for a geometry that carries something to draw."""
    if not isinstance(geometry, Mapping):
        return False
    gtype = geometry.get("type")
    if gtype == GeometryType.GEOMETRY_COLLECTION.value:
        members = geometry.get("geometries")
        return isinstance(members, list) and any(_has_coordinates(m) for m in members)
    if gtype not in SIMPLE_GEOMETRY_TYPES:
        return False
    coordinates = geometry.get("coordinates")
    return isinstance(coordinates, list) and len(coordinates) > 0


def _clean_geometry(geometry: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy a geometry, dropping collection members without coordinates."""
    if geometry.get("type") == GeometryType.GEOMETRY_COLLECTION.value:
        members = [_clean_geometry(m) for m in geometry["geometries"] if _has_coordinates(m)]
        return {"type": GeometryType.GEOMETRY_COLLECTION.value, "geometries": members}
    return {"type": geometry["type"], "coordinates": geometry["coordinates"]}


def _properties_of(feature: Mapping[str, Any], index: int) -> Mapping[str, Any]:
    properties = feature.get("properties")
    if properties is None:
        return {}
    if not isinstance(properties, Mapping):
        logger.warning(f"Feature {index}: properties is not an object, ignoring it")
        return {}
    return properties


def validate_coordinate_ranges(
    collection: FeatureCollection, file_name: Optional[str] = None
) -> int:
    """
    Log every position outside longitude [-180, 180] / latitude [-90, 90].

    Features are never removed.

    Args:
        collection: Collection to check
        file_name: Name of the source file, for the summary log record

    Returns:
        Number of offending positions
    """
    offending = 0
    for feature_index, feature in enumerate(collection.features):
        for path, position in iter_positions(feature.geometry):
            if not isinstance(position, (list, tuple)) or len(position) < 2:
                continue
            lon, lat = position[0], position[1]
            if not isinstance(lon, (int, float)) or not isinstance(lat, (int, float)):
                continue
            if -180 <= lon <= 180 and -90 <= lat <= 90:
                continue
            offending += 1
            where = ", ".join(str(i) for i in path)
            logger.warning(
                f"Feature {feature_index}, coordinate [{where}] outside WGS84 bounds: "
                f"[{lon}, {lat}]"
            )
    if offending:
        logger.warning(f"{offending} position(s) of {file_name or 'document'} outside WGS84 bounds")
    return offending


class GeoJSONNormalizer:
    """
    Normalizes GeoJSON-shaped documents into canonical collections.

    Both collaborators should share the batch-scoped registry, so that
    systems derived from one file's metadata stay inside the batch.
    The detection used by the last ``normalize`` call is kept in
    ``last_detection``.
    """

    def __init__(self, resolver: CRSResolver, transformer: CoordinateTransformer):
        self.resolver = resolver
        self.transformer = transformer
        self.last_detection: Optional[CRSDetection] = None

    def to_collection(self, document: Any, file_name: Optional[str] = None) -> FeatureCollection:
        """
        Bring a document of unknown shape into FeatureCollection shape.

        A list of features is treated like the ``features`` member of a
        FeatureCollection.

        Raises:
            StructureError: If the shape is unusable or nothing survives
        """
        if isinstance(document, list):
            document = {"type": "FeatureCollection", "features": document}

        if not isinstance(document, Mapping):
            raise StructureError(
                f"Expected a GeoJSON object, got {type(document).__name__}",
                file_name=file_name,
            )

        gtype = document.get("type")
        crs_block = document.get("crs") if isinstance(document.get("crs"), Mapping) else None

        if gtype == "FeatureCollection":
            entries = document.get("features")
            if not isinstance(entries, list):
                raise StructureError(
                    "Invalid FeatureCollection: features must be an array",
                    file_name=file_name,
                )
            features: List[Feature] = []
            for index, entry in enumerate(entries):
                if not isinstance(entry, Mapping) or entry.get("type") != "Feature":
                    logger.warning(f"Skipping invalid feature at index {index}")
                    continue
                if not _has_coordinates(entry.get("geometry")):
                    logger.warning(f"Skipping feature at index {index}: missing geometry")
                    continue
                features.append(
                    Feature.from_geometry(
                        _clean_geometry(entry["geometry"]), _properties_of(entry, index)
                    )
                )
            if not features:
                raise StructureError(
                    "FeatureCollection contains no valid features",
                    file_name=file_name,
                )
            return FeatureCollection(features=features, crs=crs_block)

        if gtype == "Feature":
            if not _has_coordinates(document.get("geometry")):
                raise StructureError("Invalid Feature: missing geometry", file_name=file_name)
            feature = Feature.from_geometry(
                _clean_geometry(document["geometry"]), _properties_of(document, 0)
            )
            return FeatureCollection(features=[feature], crs=crs_block)

        if gtype in SIMPLE_GEOMETRY_TYPES:
            if not _has_coordinates(document):
                raise StructureError(f"Invalid {gtype}: missing coordinates", file_name=file_name)
            feature = Feature.from_geometry(_clean_geometry(document), {})
            return FeatureCollection(features=[feature], crs=crs_block)

        if gtype == GeometryType.GEOMETRY_COLLECTION.value:
            members = document.get("geometries")
            if not isinstance(members, list):
                raise StructureError(
                    "Invalid GeometryCollection: geometries must be an array",
                    file_name=file_name,
                )
            features = []
            for index, member in enumerate(members):
                if not _has_coordinates(member):
                    logger.warning(f"Skipping geometry at index {index}: missing coordinates")
                    continue
                features.append(Feature.from_geometry(_clean_geometry(member), {}))
            if not features:
                raise StructureError(
                    "GeometryCollection contains no valid geometries",
                    file_name=file_name,
                )
            return FeatureCollection(features=features, crs=crs_block)

        raise StructureError(
            f"Unsupported GeoJSON type: {gtype or 'unknown'}. "
            "Expected FeatureCollection, Feature, or Geometry.",
            file_name=file_name,
            details={"received_type": gtype},
        )

    def _reproject(self, collection: FeatureCollection, detection: CRSDetection, file_name: Optional[str]) -> None:
        """Move every feature to WGS84, preferring lon/lat attributes on points."""
        substituted = 0
        failures = 0
        for feature in collection.features:
            if substitute_lonlat_properties(feature):
                substituted += 1
                continue
            feature.geometry = self.transformer.transform_geometry(feature.geometry, detection.srs)
            failures += self.transformer.last_failure_count

        logger.info(
            f"Transformed {len(collection) - substituted} features of {file_name or 'document'} "
            f"from {detection.srs.code} to EPSG:4326 "
            f"({substituted} from lon/lat attributes, {failures} positions left unchanged)"
        )
        collection.crs = None

    def normalize(
        self,
        document: Any,
        file_name: Optional[str] = None,
        projection_text: Optional[str] = None,
        infer_from_magnitude: bool = False,
    ) -> FeatureCollection:
        """
        Normalize a document into a WGS84 FeatureCollection.

        Steps: shape normalization, CRS resolution from the ``crs`` block
        (or projection text), reprojection, best-effort lon/lat recovery for
        projected data without CRS, coordinate range diagnostics.

        Args:
            document: Parsed GeoJSON (or a list of GeoJSON features)
            file_name: Name of the source file
            projection_text: Projection definition accompanying the data
            infer_from_magnitude: Guess a source SRS from coordinate
                magnitude when no metadata resolves

        Returns:
            FeatureCollection without CRS block once transformed

        Raises:
            StructureError: If the document shape is unusable
        """
        collection = self.to_collection(document, file_name)

        detection: Optional[CRSDetection] = None
        crs_declared = collection.crs is not None or bool(projection_text)
        if crs_declared:
            detection = self.resolver.resolve_explicit(
                crs_block=collection.crs, projection_text=projection_text
            )
            if detection is None:
                logger.warning(
                    f"Could not resolve the CRS of {file_name or 'document'}; "
                    "coordinates pass through unchanged"
                )

        sample = first_position(collection.features[0].geometry)
        looks_projected = sample is not None and MagnitudeStrategy.is_projected(sample)

        if detection is None and looks_projected and infer_from_magnitude:
            detection = self.resolver.resolve(sample_coordinate=sample)

        if detection is not None and not detection.srs.is_wgs84:
            self._reproject(collection, detection, file_name)
        elif detection is not None:
            collection.crs = None
        elif looks_projected and not crs_declared:
            logger.warning(
                "Coordinates appear to be in a projected system but no CRS specified. "
                "Attempting to use lon/lat from properties if available.",
                extra={"crs_explicit": False},
            )
            for index, feature in enumerate(collection.features):
                if not substitute_lonlat_properties(feature):
                    logger.warning(
                        f"Feature {index}: no lon/lat attributes, left untransformed",
                        extra={"crs_explicit": False},
                    )

        self.last_detection = detection
        validate_coordinate_ranges(collection, file_name)
        logger.debug(f"{file_name or 'document'} contains {len(collection)} feature(s)")
        return collection
