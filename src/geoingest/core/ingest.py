"""
Ingestion pipeline and batch driver.

Routes every uploaded file to the decoder for its format, normalizes the
result into a WGS84 FeatureCollection and collects per-file failures so
that one broken file never stops the rest of a batch.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Any, Callable, List, Optional, Tuple, Union

from geoingest.core.config import Settings
from geoingest.core.crs.detector import CRSResolver, default_strategies
from geoingest.core.crs.registry import WGS84, SRSRegistry, default_registry
from geoingest.core.crs.transformer import CoordinateTransformer
from geoingest.core.encoding.decoder import decode_text
from geoingest.core.errors import FileTooLargeError, IngestionError, ParseError, StructureError
from geoingest.core.logging_config import LogContext
from geoingest.core.normalizers.point_table import normalize_point_rows
from geoingest.core.normalizers.structured import (
    GeoJSONNormalizer,
    parse_geojson_text,
    validate_coordinate_ranges,
)
from geoingest.core.parsers.kml import extract_kml
from geoingest.core.parsers.shapefile import (
    SHAPEFILE_EXTENSIONS,
    ShapefileAssembler,
    ShapefileGroup,
    group_shapefile_components,
)
from geoingest.core.tabular.reader import RawRow, read_delimited, read_spreadsheet
from geoingest.models.feature import FeatureCollection
from geoingest.models.upload import UploadedFile

logger = logging.getLogger(__name__)

__all__ = [
    "BatchResult",
    "FileKind",
    "IngestedLayer",
    "IngestionService",
    "UploadedFile",
    "classify_upload",
]


class FileKind(str, Enum):
    """Input families, each with its own decoder."""

    TABULAR = "tabular"
    SPREADSHEET = "spreadsheet"
    STRUCTURED = "structured"
    SHAPEFILE = "shapefile"
    MARKUP = "markup"


EXTENSION_KINDS = {
    ".csv": FileKind.TABULAR,
    ".xlsx": FileKind.SPREADSHEET,
    ".xls": FileKind.SPREADSHEET,
    ".geojson": FileKind.STRUCTURED,
    ".json": FileKind.STRUCTURED,
    ".kml": FileKind.MARKUP,
    **{extension: FileKind.SHAPEFILE for extension in SHAPEFILE_EXTENSIONS},
}


def classify_upload(file_name: str) -> Optional[FileKind]:
    """
    Classify an uploaded file by extension.

    Args:
        file_name: File name as uploaded

    Returns:
        The file kind, or None for unsupported extensions
    """
    return EXTENSION_KINDS.get(PurePath(file_name).suffix.lower())


@dataclass
class IngestedLayer:
    """
    A successfully normalized file, ready to become a map layer.

    Attributes:
        name: Suggested display name (file base name)
        category: Suggested grouping category (same base name)
        collection: Canonical WGS84 feature collection
        source_files: Uploaded files the layer was built from
        encoding: Text encoding used to decode the input, if textual
        source_srs: Code of the system the coordinates were transformed from
    """

    name: str
    category: str
    collection: FeatureCollection
    source_files: List[str] = field(default_factory=list)
    encoding: Optional[str] = None
    source_srs: Optional[str] = None


@dataclass
class BatchResult:
    """Layers and failures of one upload batch."""

    layers: List[IngestedLayer] = field(default_factory=list)
    failures: List[IngestionError] = field(default_factory=list)


class IngestionService:
    """
    Service driving files through decoding, parsing and normalization.

    One registry scope is opened per batch: systems detected from a file's
    metadata are visible to its siblings and discarded with the batch.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[SRSRegistry] = None,
    ):
        """
        Initialize the ingestion service.

        Args:
            settings: Settings to use (default: the global settings)
            registry: Process-wide registry (default: ``default_registry()``)
        """
        if settings is None:
            from geoingest.core.config import settings as global_settings

            settings = global_settings
        self.settings = settings
        self.registry = registry if registry is not None else default_registry()

    def _collaborators(self, registry: SRSRegistry) -> Tuple[CRSResolver, CoordinateTransformer]:
        resolver = CRSResolver(
            registry, default_strategies(self.settings.magnitude_fallback_enabled)
        )
        return resolver, CoordinateTransformer(registry)

    def _check_size(self, file_name: str, size: int) -> None:
        """Reject a file above the per-file upload limit."""
        limit = self.settings.max_upload_size_bytes
        if size > limit:
            logger.warning(f"File size validation failed for {file_name}: {size} bytes")
            raise FileTooLargeError(file_name, file_size=size, max_size=limit)

    def _points_from_rows(
        self, rows: List[RawRow], transformer: CoordinateTransformer, file_name: str
    ) -> FeatureCollection:
        with LogContext(stage="normalize"):
            collection = normalize_point_rows(
                rows,
                transformer,
                source_srs=self.settings.default_source_srs,
                name_aliases=self.settings.name_aliases,
                file_name=file_name,
                unnamed_placeholder=self.settings.unnamed_placeholder,
            )
            validate_coordinate_ranges(collection, file_name)
        return collection

    def ingest_file(
        self, upload: UploadedFile, registry: Optional[SRSRegistry] = None
    ) -> IngestedLayer:
        """
        Ingest one non-shapefile upload.

        A lone shapefile component is treated as a one-file group.

        Args:
            upload: Uploaded file
            registry: Batch registry scope (default: a fresh scope)

        Returns:
            The ingested layer

        Raises:
            FileTooLargeError: If the file exceeds the upload size limit
            IngestionError: On any failure, naming the file and stage
        """
        self._check_size(upload.name, upload.size)
        registry = registry if registry is not None else self.registry.scope()
        kind = classify_upload(upload.name)
        if kind is None:
            raise StructureError(
                f"Unsupported file type: {upload.extension or 'no extension'}",
                file_name=upload.name,
                details={"allowed_extensions": list(self.settings.allowed_extensions)},
                suggestions=[f"Supported types: {', '.join(self.settings.allowed_extensions)}"],
            )
        if kind is FileKind.SHAPEFILE:
            groups, _ = group_shapefile_components([upload])
            return self.ingest_shapefile_group(groups[0], registry)

        resolver, transformer = self._collaborators(registry)
        candidates = self.settings.candidate_encodings
        encoding: Optional[str] = None
        source_srs: Optional[str] = None
        logger.info(f"Ingesting {upload.name} ({kind.value}, {upload.size} bytes)")

        if kind is FileKind.SPREADSHEET:
            with LogContext(stage="parse"):
                rows = read_spreadsheet(upload.content, upload.name)
            collection = self._points_from_rows(rows, transformer, upload.name)
            source_srs = self.settings.default_source_srs
        else:
            with LogContext(stage="decode"):
                decoded = decode_text(upload.content, candidates)
            encoding = decoded.encoding

            if kind is FileKind.TABULAR:
                with LogContext(stage="parse"):
                    rows = read_delimited(decoded.text, self.settings.csv_delimiter, upload.name)
                collection = self._points_from_rows(rows, transformer, upload.name)
                source_srs = self.settings.default_source_srs

            elif kind is FileKind.STRUCTURED:
                with LogContext(stage="parse"):
                    document = parse_geojson_text(decoded.text, upload.name)
                normalizer = GeoJSONNormalizer(resolver, transformer)
                with LogContext(stage="normalize"):
                    collection = normalizer.normalize(document, file_name=upload.name)
                if normalizer.last_detection is not None:
                    source_srs = normalizer.last_detection.srs.code

            else:
                with LogContext(stage="parse"):
                    collection = extract_kml(decoded.text, upload.name)
                with LogContext(stage="normalize"):
                    validate_coordinate_ranges(collection, upload.name)
                source_srs = WGS84.code

        return IngestedLayer(
            name=upload.stem,
            category=upload.stem,
            collection=collection,
            source_files=[upload.name],
            encoding=encoding,
            source_srs=source_srs,
        )

    def ingest_shapefile_group(
        self, group: ShapefileGroup, registry: Optional[SRSRegistry] = None
    ) -> IngestedLayer:
        """
        Ingest one shapefile component group.

        Args:
            group: Components sharing a base name
            registry: Batch registry scope (default: a fresh scope)

        Returns:
            The ingested layer

        Raises:
            FileTooLargeError: If a component exceeds the upload size limit
            ShapefileError: If the .shp component is missing or unreadable
            IngestionError: On any other failure
        """
        for name, size in group.component_sizes.items():
            self._check_size(name, size)
        registry = registry if registry is not None else self.registry.scope()
        resolver, transformer = self._collaborators(registry)
        assembler = ShapefileAssembler(
            resolver, transformer, candidate_encodings=self.settings.candidate_encodings
        )
        logger.info(f"Ingesting shapefile {group.base_name} from {', '.join(group.source_files)}")

        with LogContext(stage="parse"):
            collection = assembler.assemble(group)

        detection = assembler.normalizer.last_detection
        return IngestedLayer(
            name=group.base_name,
            category=group.base_name,
            collection=collection,
            source_files=list(group.source_files),
            encoding=assembler.last_encoding,
            source_srs=detection.srs.code if detection is not None else None,
        )

    async def _run(
        self, label: str, func: Callable[..., IngestedLayer], *args: Any
    ) -> Union[IngestedLayer, IngestionError]:
        """Run one file's pipeline off the event loop, converting failures."""
        with LogContext(file_name=label, stage="ingest"):
            try:
                layer = await asyncio.to_thread(func, *args)
            except IngestionError as e:
                e.with_file_name(label)
                logger.error(f"Failed to ingest {label}: {e.message}")
                return e
            except Exception as e:
                logger.error(f"Unexpected error while ingesting {label}: {e}", exc_info=True)
                return ParseError(
                    message=f"Unexpected error while reading {label}: {e}",
                    file_name=label,
                    details={"exception_type": type(e).__name__},
                )

            logger.info(
                f"Ingested {label}: {len(layer.collection)} feature(s) "
                f"{layer.collection.geometry_types}"
            )
            return layer

    async def ingest_batch(self, files: List[UploadedFile]) -> BatchResult:
        """
        Ingest an upload batch.

        Shapefile components are grouped by base name; every group and
        every other file runs as its own task.

        Args:
            files: Uploaded files

        Returns:
            BatchResult with layers (standalone files first, then shapefile
            groups) and one failure per file or group that could not be ingested
        """
        registry = self.registry.scope()
        groups, others = group_shapefile_components(files)
        logger.info(
            f"Ingesting batch of {len(files)} file(s): "
            f"{len(others)} standalone, {len(groups)} shapefile group(s)"
        )

        tasks = [self._run(upload.name, self.ingest_file, upload, registry) for upload in others]
        tasks.extend(
            self._run(group.base_name, self.ingest_shapefile_group, group, registry)
            for group in groups
        )
        outcomes = await asyncio.gather(*tasks)

        result = BatchResult()
        for outcome in outcomes:
            if isinstance(outcome, IngestionError):
                result.failures.append(outcome)
            else:
                result.layers.append(outcome)

        logger.info(
            f"Batch complete: {len(result.layers)} layer(s), {len(result.failures)} failure(s)"
        )
        return result
