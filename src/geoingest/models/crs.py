"""
Data models for spatial reference systems.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SRSDescriptor:
    """
    A spatial reference system known to the pipeline.

    Attributes:
        code: Identifier, usually an ``AUTHORITY:CODE`` pair (e.g. ``EPSG:32632``)
        definition: Projection parameters accepted by ``pyproj.CRS.from_user_input``
            (a PROJ string for the static registry entries)
        name: Human-readable name
    """

    code: str
    definition: str
    name: Optional[str] = None

    @property
    def is_wgs84(self) -> bool:
        """True for geographic WGS84 (the normalization target)."""
        return self.code.upper() in ("EPSG:4326", "OGC:CRS84")

    def __str__(self) -> str:
        """String representation."""
        return self.code


@dataclass(frozen=True)
class CRSDetection:
    """
    Result of one CRS detection strategy.

    Attributes:
        srs: The detected reference system
        explicit: True when read from metadata (CRS block or projection
            file), False when guessed from coordinate magnitude
        strategy: Name of the strategy that produced the match
    """

    srs: SRSDescriptor
    explicit: bool
    strategy: str

    def __str__(self) -> str:
        kind = "explicit" if self.explicit else "heuristic"
        return f"{self.srs.code} ({kind}, {self.strategy})"
