"""
Custom exception hierarchy for geoingest.

Every failure that ends the ingestion of one uploaded file (or one shapefile
component group) is an ``IngestionError`` carrying the offending file name,
the pipeline stage that failed and a human readable message. The batch driver
catches these at the per-file boundary so sibling files keep processing.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class IngestStage(str, Enum):
    """Pipeline stage at which an ingestion failure happened."""

    READ = "read"
    PARSE = "parse"
    STRUCTURE = "structure"
    CRS = "crs"
    TRANSFORM = "transform"


class GeoIngestException(Exception):
    """
    Base exception for all geoingest-specific errors.

    Attributes:
        error_code: String identifier for the error type
        message: User-friendly error message
        details: Technical details for logging/debugging
        status_code: HTTP status code for API responses
        suggestions: Optional list of resolution suggestions
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize GeoIngestException.

        Args:
            message: User-friendly error message
            error_code: String identifier for the error type
            status_code: HTTP status code (default: 500)
            details: Technical details for logging
            suggestions: List of suggestions for resolution
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for API responses.

        Returns:
            Dictionary representation of the error
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
        }

    def __str__(self) -> str:
        """String representation of the exception."""
        return f"{self.error_code}: {self.message}"

    def __repr__(self) -> str:
        """Detailed string representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"error_code='{self.error_code}', "
            f"message='{self.message}', "
            f"status_code={self.status_code})"
        )


class IngestionError(GeoIngestException):
    """
    Raised when one uploaded file cannot be turned into a feature collection.

    Attributes:
        file_name: Name of the offending file (or shapefile base name)
        stage: Pipeline stage that failed
    """

    def __init__(
        self,
        message: str,
        stage: IngestStage,
        file_name: Optional[str] = None,
        error_code: str = "INGESTION_ERROR",
        status_code: int = 422,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize IngestionError.

        Args:
            message: User-friendly error message
            stage: Pipeline stage that failed
            file_name: Name of the file being ingested, if known yet
            error_code: String identifier for the error type
            status_code: HTTP status code
            details: Technical details about the failure
            suggestions: List of suggestions for fixing the input
        """
        self.file_name = file_name
        self.stage = IngestStage(stage)
        error_details = details or {}
        error_details["stage"] = self.stage.value
        if file_name:
            error_details["file_name"] = file_name

        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=error_details,
            suggestions=suggestions,
        )

    def with_file_name(self, file_name: str) -> "IngestionError":
        """
        Attach a file name to an error raised before the name was known.

        Args:
            file_name: Name of the file being ingested

        Returns:
            The same exception, for re-raising
        """
        if not self.file_name:
            self.file_name = file_name
            self.details["file_name"] = file_name
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary, including file name and stage."""
        data = super().to_dict()
        data["file_name"] = self.file_name
        data["stage"] = self.stage.value
        return data

    def __str__(self) -> str:
        """String representation naming the file when known."""
        if self.file_name:
            return f"{self.error_code} [{self.file_name}]: {self.message}"
        return super().__str__()


class FileTooLargeError(IngestionError):
    """
    Raised when an uploaded file exceeds the per-file size limit.

    Maps to HTTP 413 Request Entity Too Large. Within a batch it is reported
    as that file's failure; sibling files are still ingested.
    """

    def __init__(
        self,
        file_name: str,
        file_size: int,
        max_size: int,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        error_details["file_size"] = file_size
        error_details["max_size"] = max_size

        super().__init__(
            message=f"File {file_name} exceeds the maximum size of {max_size // (1024 * 1024)}MB",
            stage=IngestStage.READ,
            file_name=file_name,
            error_code="FILE_TOO_LARGE",
            status_code=413,
            details=error_details,
            suggestions=["Split the data into smaller files", "Remove unused attribute columns"],
        )


class ParseError(IngestionError):
    """
    Raised when tabular, JSON, XML or binary shapefile parsing fails.

    Maps to HTTP 422 Unprocessable Entity.
    """

    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        file_type: Optional[str] = None,
        line_number: Optional[int] = None,
        column: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        error_code: str = "PARSE_ERROR",
    ):
        """
        Initialize ParseError.

        Args:
            message: User-friendly error message
            file_name: Name of the file being parsed
            file_type: Type of file being parsed (e.g., 'CSV', 'KML')
            line_number: Line (or row) number where parsing diverged
            column: Column where parsing diverged
            details: Technical details about the parsing failure
            suggestions: List of suggestions for fixing the file
            error_code: String identifier for the error type
        """
        error_details = details or {}
        if file_type:
            error_details["file_type"] = file_type
        if line_number is not None:
            error_details["line_number"] = line_number
        if column is not None:
            error_details["column"] = column

        self.line_number = line_number
        self.column = column

        super().__init__(
            message=message,
            stage=IngestStage.PARSE,
            file_name=file_name,
            error_code=error_code,
            details=error_details,
            suggestions=suggestions or ["Check that the file is not truncated or corrupted"],
        )


class ShapefileError(ParseError):
    """
    Raised when a shapefile component group cannot be assembled.

    The message always names the group's base name and the suggestions ask
    for the full set of component files.
    """

    def __init__(
        self,
        message: str,
        base_name: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        error_details["base_name"] = base_name
        self.base_name = base_name

        super().__init__(
            message=f"Error parsing shapefile {base_name}: {message}",
            file_name=base_name,
            file_type="Shapefile",
            details=error_details,
            suggestions=[
                "Shapefiles work best with .shp, .shx and .dbf files",
                "Select all related files (.shp, .shx, .dbf, .prj, .cpg) when uploading",
            ],
            error_code="SHAPEFILE_ERROR",
        )


class StructureError(IngestionError):
    """
    Raised when input is syntactically valid but structurally unusable.

    Used for wrong container types, missing geometries, unsupported
    geometry discriminants and collections where nothing survives.
    """

    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        error_code: str = "STRUCTURE_ERROR",
    ):
        super().__init__(
            message=message,
            stage=IngestStage.STRUCTURE,
            file_name=file_name,
            error_code=error_code,
            details=details,
            suggestions=suggestions
            or ["The file is well formed but does not describe usable geometries"],
        )


class NoFeaturesError(StructureError):
    """Raised when a file parses cleanly but yields zero features."""

    def __init__(
        self,
        message: str = "No features found",
        file_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            file_name=file_name,
            details=details,
            suggestions=[
                "Check that the file contains geometries",
                "Point tables need numeric X and Y columns",
            ],
            error_code="NO_FEATURES",
        )


class CRSError(IngestionError):
    """
    Raised when a coordinate reference system definition is unusable.

    An unresolvable CRS is not an error (coordinates pass through with a
    warning); this covers definitions that the projection library rejects.
    """

    def __init__(
        self,
        message: str,
        source_crs: Optional[str] = None,
        target_crs: Optional[str] = None,
        file_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if source_crs:
            error_details["source_crs"] = source_crs
        if target_crs:
            error_details["target_crs"] = target_crs

        super().__init__(
            message=message,
            stage=IngestStage.CRS,
            file_name=file_name,
            error_code="CRS_ERROR",
            details=error_details,
            suggestions=[
                "Verify the coordinate reference system is supported",
                "Check EPSG codes are valid",
            ],
        )


class ConfigurationError(GeoIngestException):
    """
    Raised when application configuration is invalid.

    Maps to HTTP 500 Internal Server Error.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if config_key:
            error_details["config_key"] = config_key

        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            status_code=500,
            details=error_details,
            suggestions=[
                "Check GEOINGEST_* environment variables are set correctly",
                "Verify configuration file syntax",
            ],
        )


class LayerNotFoundError(GeoIngestException):
    """Raised when a layer id is not present in the layer store."""

    def __init__(self, layer_id: str):
        super().__init__(
            message=f"Layer {layer_id} not found",
            error_code="LAYER_NOT_FOUND",
            status_code=404,
            details={"layer_id": layer_id},
            suggestions=["List layers to find a valid id"],
        )


class TransformationError(IngestionError):
    """
    Raised when a single coordinate cannot be reprojected.

    Geometry transformation never raises this (bad vertices are kept and
    logged); point tables use it to drop the offending row.
    """

    def __init__(
        self,
        message: str,
        source_crs: Optional[str] = None,
        target_crs: Optional[str] = None,
        file_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if source_crs:
            error_details["source_crs"] = source_crs
        if target_crs:
            error_details["target_crs"] = target_crs

        super().__init__(
            message=message,
            stage=IngestStage.TRANSFORM,
            file_name=file_name,
            error_code="TRANSFORMATION_ERROR",
            details=error_details,
            suggestions=["Check that the coordinates belong to the declared projection"],
        )
