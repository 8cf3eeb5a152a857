"""
Pydantic models for layers handed to the map and for batch upload results.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from geoingest.core.errors import IngestionError


class LayerInfo(BaseModel):
    """
    Metadata of one layer created from a normalized feature collection.

    Attributes:
        id: Layer identifier
        name: Display name (uploaded file base name)
        category: Grouping category (same base name)
        color: Display color
        visible: Whether the layer is shown
        feature_count: Number of features
        geometry_types: Feature count per geometry type
        source_files: Uploaded files the layer was built from
        source_encoding: Text encoding used to decode the input, if textual
        source_srs: Reference system the coordinates were transformed from
    """

    id: str = Field(..., description="Layer identifier")
    name: str = Field(..., description="Display name", min_length=1)
    category: str = Field(..., description="Grouping category")
    color: str = Field(..., description="Display color (#rrggbb)")
    visible: bool = Field(default=True, description="Whether the layer is shown")
    feature_count: int = Field(..., ge=1, description="Number of features")
    geometry_types: Dict[str, int] = Field(default_factory=dict)
    source_files: List[str] = Field(default_factory=list)
    source_encoding: Optional[str] = None
    source_srs: Optional[str] = None


class LayerUpdate(BaseModel):
    """Cosmetic edits accepted for a layer."""

    color: Optional[str] = Field(None, description="New color (#rrggbb)")
    visible: Optional[bool] = Field(None, description="New visibility")

    @field_validator("color")
    @classmethod
    def validate_color(cls, value: Optional[str]) -> Optional[str]:
        """Only accept #rrggbb colors."""
        if value is None:
            return value
        if len(value) != 7 or not value.startswith("#"):
            raise ValueError("color must look like #rrggbb")
        int(value[1:], 16)
        return value.lower()


class IngestionFailure(BaseModel):
    """
    One file (or shapefile group) that could not be ingested.

    Attributes:
        file_name: Offending file name or shapefile base name
        stage: Pipeline stage that failed
        error_code: Machine-readable error identifier
        message: Human-readable cause
        suggestions: Actionable suggestions
    """

    file_name: str
    stage: str
    error_code: str
    message: str
    suggestions: List[str] = Field(default_factory=list)

    @classmethod
    def from_error(cls, error: IngestionError) -> "IngestionFailure":
        """Build a failure record from an ingestion error."""
        return cls(
            file_name=error.file_name or "unknown",
            stage=error.stage.value,
            error_code=error.error_code,
            message=error.message,
            suggestions=list(error.suggestions),
        )


class BatchResponse(BaseModel):
    """Result of one upload batch."""

    layers: List[LayerInfo] = Field(default_factory=list)
    failures: List[IngestionFailure] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "layers": [
                    {
                        "id": "5b0e7a7e-...",
                        "name": "sites",
                        "category": "sites",
                        "color": "#3b82f6",
                        "visible": True,
                        "feature_count": 12,
                        "geometry_types": {"Point": 12},
                        "source_files": ["sites.csv"],
                        "source_encoding": "windows-1252",
                        "source_srs": "EPSG:22391",
                    }
                ],
                "failures": [
                    {
                        "file_name": "roads",
                        "stage": "parse",
                        "error_code": "SHAPEFILE_ERROR",
                        "message": "Error parsing shapefile roads: missing .shp file",
                        "suggestions": ["Select all related files when uploading"],
                    }
                ],
            }
        }
    )
