"""
Configuration settings for the geoingest application.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Attributes:
        max_upload_size_mb: Maximum size of a single uploaded file in megabytes
        allowed_extensions: Tuple of accepted upload extensions
        csv_delimiter: Delimiter used by the tabular reader
        candidate_encodings: Encodings tried, in order, by the text decoder
        default_source_srs: SRS assumed for X/Y columns of point tables
        magnitude_fallback_enabled: Whether projected coordinates without any
            CRS metadata may be assigned an SRS from their magnitude
        name_aliases: Column names (case-insensitive) used to name point features
        unnamed_placeholder: Name given to points without a name-like column
        default_layer_color: Initial color of newly created layers
        log_file: Optional path of a rotating log file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="GEOINGEST_",
    )

    # Upload settings
    max_upload_size_mb: int = 50
    allowed_extensions: tuple[str, ...] = (
        ".csv",
        ".xlsx",
        ".xls",
        ".shp",
        ".shx",
        ".dbf",
        ".prj",
        ".cpg",
        ".geojson",
        ".json",
        ".kml",
    )

    # Decoding and tabular parsing
    csv_delimiter: str = ";"
    candidate_encodings: tuple[str, ...] = (
        "utf-8",
        "windows-1252",
        "iso-8859-1",
        "iso-8859-15",
    )

    # Coordinate reference systems
    default_source_srs: str = "EPSG:22391"
    magnitude_fallback_enabled: bool = True

    # Point tables
    name_aliases: tuple[str, ...] = ("sites", "a", "name", "nom")
    unnamed_placeholder: str = "Unnamed"

    # Layers
    default_layer_color: str = "#3b82f6"

    # API settings
    api_v1_prefix: str = "/api/v1"
    port: int = 8000

    # CORS settings
    cors_origins: str = "http://localhost:5173,http://localhost:3000,http://localhost:4173"

    # Logging
    log_file: Optional[Path] = None

    # Environment
    environment: Literal["development", "staging", "production"] = "development"

    @field_validator("csv_delimiter")
    @classmethod
    def _single_character_delimiter(cls, value: str) -> str:
        """The csv module only accepts one-character delimiters."""
        if len(value) != 1:
            raise ValueError(f"csv_delimiter must be a single character, got {value!r}")
        return value

    @field_validator("candidate_encodings")
    @classmethod
    def _at_least_one_encoding(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("candidate_encodings must not be empty")
        return value

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


# Global settings instance
settings = Settings()
