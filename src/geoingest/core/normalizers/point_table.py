"""
Point-table normalizer.

Turns raw rows with X/Y columns into WGS84 Point features. X/Y values are
taken in the deployment's fixed source SRS.
"""

import logging
from typing import Iterable, List, Optional, Sequence

from geoingest.core.crs.transformer import CoordinateTransformer, SRSLike
from geoingest.core.errors import NoFeaturesError, TransformationError
from geoingest.core.tabular.reader import RawRow
from geoingest.models.feature import Feature, FeatureCollection, find_key_ci, parse_number

logger = logging.getLogger(__name__)


def _name_for(row: RawRow, name_aliases: Sequence[str], placeholder: str) -> str:
    existing = row.get("name")
    if existing:
        return existing
    for alias in name_aliases:
        key = find_key_ci(row, alias)
        if key is not None and row[key]:
            return row[key]
    return placeholder


def normalize_point_rows(
    rows: Iterable[RawRow],
    transformer: CoordinateTransformer,
    source_srs: Optional[SRSLike] = None,
    name_aliases: Optional[Sequence[str]] = None,
    file_name: Optional[str] = None,
    unnamed_placeholder: Optional[str] = None,
) -> FeatureCollection:
    """
    Build Point features from rows carrying X and Y columns.

    A row is kept only when it has columns named X and Y (any case) whose
    values are finite numbers; other rows are dropped silently. Every
    column is copied into the properties, followed by a ``name`` and the
    numeric ``x``/``y`` originals.

    Args:
        rows: Raw rows from the tabular reader
        transformer: Coordinate transformer
        source_srs: SRS of the X/Y values; defaults to ``settings.default_source_srs``
        name_aliases: Columns (any case) used to name features
        file_name: Name of the source file, for logs and errors
        unnamed_placeholder: Name given when no name-like column has a value

    Returns:
        FeatureCollection of WGS84 points

    Raises:
        NoFeaturesError: If no row yields a feature
    """
    from geoingest.core.config import settings

    source = source_srs if source_srs is not None else settings.default_source_srs
    aliases = tuple(name_aliases) if name_aliases is not None else settings.name_aliases
    placeholder = unnamed_placeholder if unnamed_placeholder is not None else settings.unnamed_placeholder

    features: List[Feature] = []
    skipped = 0
    for index, row in enumerate(rows):
        x_key = find_key_ci(row, "x")
        y_key = find_key_ci(row, "y")
        if x_key is None or y_key is None:
            skipped += 1
            continue

        x = parse_number(row[x_key])
        y = parse_number(row[y_key])
        if x is None or y is None:
            skipped += 1
            continue

        try:
            lon, lat = transformer.transform_point(x, y, source)
        except TransformationError as e:
            logger.error(f"Dropping row {index + 1} of {file_name or 'table'}: {e.message}")
            continue

        properties = dict(row)
        properties["name"] = _name_for(row, aliases, placeholder)
        properties["x"] = x
        properties["y"] = y
        features.append(
            Feature.from_geometry({"type": "Point", "coordinates": [lon, lat]}, properties)
        )

    if skipped:
        logger.debug(f"Skipped {skipped} rows without numeric X/Y in {file_name or 'table'}")

    if not features:
        raise NoFeaturesError(
            message="No rows with numeric X and Y columns",
            file_name=file_name,
        )

    logger.info(f"Built {len(features)} point features from {file_name or 'table'}")
    return FeatureCollection(features=features)
