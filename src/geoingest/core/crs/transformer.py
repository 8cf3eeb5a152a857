"""
Coordinate transformation service.

This module reprojects GeoJSON coordinate arrays between spatial reference
systems using pyproj. pyproj CRS objects are always built from the
descriptor's definition string, never from its code, so a deployment can
register its own parameters under any identifier.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError as PyprojCRSError
from pyproj.exceptions import ProjError

from geoingest.core.crs.registry import WGS84, SRSRegistry
from geoingest.core.errors import CRSError, TransformationError
from geoingest.models.crs import SRSDescriptor
from geoingest.models.feature import SIMPLE_GEOMETRY_TYPES, GeometryType, geometry_depth

logger = logging.getLogger(__name__)

SRSLike = Union[SRSDescriptor, str]


@lru_cache(maxsize=64)
def _build_transformer(source_definition: str, target_definition: str) -> Transformer:
    """Create (and cache) a pyproj transformer for a pair of definitions."""
    return Transformer.from_crs(
        CRS.from_user_input(source_definition),
        CRS.from_user_input(target_definition),
        always_xy=True,
    )


def _is_position(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) >= 2
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value[:2])
    )


def _sniff_depth(coordinates: Any) -> int:
    """Array nesting depth above a position, read from the data itself."""
    depth = 0
    current = coordinates
    while isinstance(current, (list, tuple)) and current and isinstance(current[0], (list, tuple)):
        depth += 1
        current = current[0]
    return depth


def _collect_positions(coordinates: Any, depth: int, out: List[Any]) -> None:
    if depth == 0:
        out.append(coordinates)
        return
    if not isinstance(coordinates, (list, tuple)):
        return
    for item in coordinates:
        _collect_positions(item, depth - 1, out)


def _rebuild(coordinates: Any, depth: int, positions: Iterator[Any]) -> Any:
    if depth == 0:
        return next(positions)
    if not isinstance(coordinates, (list, tuple)):
        return coordinates
    return [_rebuild(item, depth - 1, positions) for item in coordinates]


class CoordinateTransformer:
    """
    Service for reprojecting coordinate arrays.

    Transformation is structure preserving: nested lists come back with the
    same shape, and dimensions beyond x/y (elevation) pass through. A
    position that cannot be transformed is kept unchanged and logged; the
    number of such positions in the last call is ``last_failure_count``.
    """

    def __init__(self, registry: Optional[SRSRegistry] = None):
        """
        Initialize transformer.

        Args:
            registry: Registry used to resolve SRS codes given as strings
        """
        from geoingest.core.crs.registry import default_registry

        self.registry = registry if registry is not None else default_registry()
        self.last_failure_count = 0

    def describe(self, srs: SRSLike) -> SRSDescriptor:
        """
        Resolve an SRS code or descriptor to a descriptor.

        Raises:
            CRSError: If the code is unknown to the registry and to pyproj
        """
        if isinstance(srs, SRSDescriptor):
            return srs
        descriptor = self.registry.resolve_code(srs)
        if descriptor is None:
            raise CRSError(f"Unknown spatial reference system: {srs}", source_crs=srs)
        return descriptor

    @staticmethod
    def is_same(source: SRSDescriptor, target: SRSDescriptor) -> bool:
        """True when no projection math is needed between two systems."""
        if source.code.upper() == target.code.upper():
            return True
        return source.definition.strip() == target.definition.strip()

    def _transformer_for(self, source: SRSDescriptor, target: SRSDescriptor) -> Transformer:
        try:
            return _build_transformer(source.definition, target.definition)
        except (PyprojCRSError, ProjError) as e:
            raise CRSError(
                f"Failed to create transformer from {source.code} to {target.code}: {e}",
                source_crs=source.code,
                target_crs=target.code,
            ) from e

    def _transform_positions(
        self, positions: Sequence[Any], transformer: Transformer, label: str
    ) -> List[Any]:
        """Transform a flat list of positions, keeping the ones that fail."""
        valid_index = []
        failures = 0
        for i, p in enumerate(positions):
            if _is_position(p):
                valid_index.append(i)
            else:
                failures += 1
                logger.warning(f"Skipping malformed position {p!r} ({label})")
        result: List[Any] = list(positions)

        if valid_index:
            xs = np.array([float(positions[i][0]) for i in valid_index], dtype=float)
            ys = np.array([float(positions[i][1]) for i in valid_index], dtype=float)
            try:
                xx, yy = transformer.transform(xs, ys, errcheck=False)
            except (ProjError, ValueError, TypeError) as e:
                logger.warning(f"Batch transformation failed ({label}), retrying per position: {e}")
                xx, yy = self._transform_one_by_one(xs, ys, transformer)

            finite = np.isfinite(xx) & np.isfinite(yy)
            for slot, i in enumerate(valid_index):
                original = positions[i]
                if finite[slot]:
                    result[i] = [float(xx[slot]), float(yy[slot]), *original[2:]]
                else:
                    failures += 1
                    logger.warning(
                        f"Could not transform coordinate {list(original)!r} ({label}): "
                        "non-finite result, keeping original value"
                    )
                    result[i] = list(original)

        self.last_failure_count += failures
        return result

    @staticmethod
    def _transform_one_by_one(
        xs: np.ndarray, ys: np.ndarray, transformer: Transformer
    ) -> Tuple[np.ndarray, np.ndarray]:
        xx = np.full(xs.shape, np.nan)
        yy = np.full(ys.shape, np.nan)
        for i, (x, y) in enumerate(zip(xs, ys)):
            try:
                xx[i], yy[i] = transformer.transform(x, y, errcheck=True)
            except ProjError:
                continue
        return xx, yy

    def transform(
        self,
        coordinates: Any,
        source: SRSLike,
        target: SRSLike = WGS84,
        geometry_type: Optional[Union[str, GeometryType]] = None,
    ) -> Any:
        """
        Reproject a coordinate array of any nesting depth.

        Args:
            coordinates: A position or nested lists of positions
            source: Source SRS (descriptor or code)
            target: Target SRS (default: WGS84)
            geometry_type: GeoJSON type the array belongs to; fixes the
                nesting depth instead of reading it from the data

        Returns:
            Coordinates with the same structure; the input object itself
            when source and target are the same system

        Raises:
            CRSError: If either system is unknown or unusable
        """
        self.last_failure_count = 0
        source_srs = self.describe(source)
        target_srs = self.describe(target)
        if self.is_same(source_srs, target_srs):
            return coordinates

        depth = geometry_depth(geometry_type) if geometry_type else _sniff_depth(coordinates)
        positions: List[Any] = []
        _collect_positions(coordinates, depth, positions)
        if not positions:
            return coordinates

        transformer = self._transformer_for(source_srs, target_srs)
        label = f"{source_srs.code} -> {target_srs.code}"
        transformed = self._transform_positions(positions, transformer, label)
        return _rebuild(coordinates, depth, iter(transformed))

    def transform_geometry(
        self, geometry: Dict[str, Any], source: SRSLike, target: SRSLike = WGS84
    ) -> Dict[str, Any]:
        """
        Reproject a GeoJSON geometry mapping, including GeometryCollections.

        Args:
            geometry: GeoJSON geometry
            source: Source SRS
            target: Target SRS (default: WGS84)

        Returns:
            New geometry mapping; ``last_failure_count`` covers all members
        """
        gtype = geometry.get("type")
        if gtype == GeometryType.GEOMETRY_COLLECTION.value:
            failures = 0
            members = []
            for member in geometry.get("geometries") or []:
                members.append(self.transform_geometry(member, source, target))
                failures += self.last_failure_count
            self.last_failure_count = failures
            return {**geometry, "geometries": members}

        if "coordinates" not in geometry:
            self.last_failure_count = 0
            return dict(geometry)

        # Unknown types fall back to the array shape
        geometry_type = gtype if gtype in SIMPLE_GEOMETRY_TYPES else None
        coordinates = self.transform(
            geometry["coordinates"], source, target, geometry_type=geometry_type
        )
        return {**geometry, "coordinates": coordinates}

    def transform_point(
        self, x: float, y: float, source: SRSLike, target: SRSLike = WGS84
    ) -> Tuple[float, float]:
        """
        Transform a single coordinate, raising on failure.

        Args:
            x: X coordinate (or longitude)
            y: Y coordinate (or latitude)
            source: Source SRS
            target: Target SRS (default: WGS84)

        Returns:
            Transformed (x, y)

        Raises:
            TransformationError: If the result is not finite or pyproj fails
        """
        source_srs = self.describe(source)
        target_srs = self.describe(target)
        if self.is_same(source_srs, target_srs):
            return float(x), float(y)

        transformer = self._transformer_for(source_srs, target_srs)
        try:
            xx, yy = transformer.transform(x, y, errcheck=True)
        except ProjError as e:
            raise TransformationError(
                f"Transformation of ({x}, {y}) failed: {e}",
                source_crs=source_srs.code,
                target_crs=target_srs.code,
            ) from e

        if not (np.isfinite(xx) and np.isfinite(yy)):
            raise TransformationError(
                f"Transformation of ({x}, {y}) produced a non-finite result",
                source_crs=source_srs.code,
                target_crs=target_srs.code,
            )
        return float(xx), float(yy)
