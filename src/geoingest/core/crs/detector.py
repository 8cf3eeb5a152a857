"""
CRS detection from dataset metadata and coordinates.

Detection is an ordered list of independent strategies. Each one looks at
the available evidence (a GeoJSON ``crs`` block, projection definition text
from a ``.prj`` file, a sample coordinate) and either returns a
``CRSDetection`` or None. The resolver runs them in fixed priority order and
takes the first hit. Strategies reading metadata are explicit; the
coordinate magnitude guess is heuristic and logged as a warning.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from geoingest.core.crs.registry import (
    CARTHAGE_UTM_32N,
    WGS84,
    WGS84_UTM_32N,
    SRSRegistry,
    normalize_srs_code,
)
from geoingest.core.crs.utm import format_utm_zone, get_utm_epsg, parse_utm_zone
from geoingest.models.crs import CRSDetection

logger = logging.getLogger(__name__)

# Well-known projection names, normalized by _signature_key
KNOWN_PROJECTION_NAMES = {
    "carthage utm zone 32n": CARTHAGE_UTM_32N.code,
    "carthage / utm zone 32n": CARTHAGE_UTM_32N.code,
    "wgs 1984 utm zone 32n": WGS84_UTM_32N.code,
    "wgs 84 / utm zone 32n": WGS84_UTM_32N.code,
    "gcs wgs 1984": WGS84.code,
    "wgs 84": WGS84.code,
    "wgs84": WGS84.code,
}

# Easting/northing band of the Carthage UTM 32N data this deployment holds
CARTHAGE_EASTING_RANGE = (300_000.0, 700_000.0)
CARTHAGE_NORTHING_RANGE = (3_300_000.0, 4_200_000.0)

_WKT_NAME_PATTERN = re.compile(r"^\s*(?:PROJCS|PROJCRS|GEOGCS|GEOGCRS|GEODCRS)\s*\[\s*\"([^\"]+)\"", re.IGNORECASE)
_WKT_AUTHORITY_PATTERN = re.compile(r"(?:AUTHORITY|ID)\s*\[\s*\"(\w+)\"\s*,\s*\"?(\d+)\"?", re.IGNORECASE)
_EPSG_TOKEN_PATTERN = re.compile(r"EPSG\s*:{1,2}\s*(\d+)", re.IGNORECASE)


def _signature_key(name: str) -> str:
    return " ".join(name.replace("_", " ").lower().split())


def _outermost_authority(text: str) -> Optional[Tuple[str, str]]:
    """Authority of the root WKT node; inner datum or unit authorities are ignored."""
    for match in _WKT_AUTHORITY_PATTERN.finditer(text):
        prefix = text[: match.start()]
        depth = prefix.count("[") + prefix.count("(") - prefix.count("]") - prefix.count(")")
        if depth == 1:
            return match.group(1), match.group(2)
    return None


@dataclass(frozen=True)
class DetectionInput:
    """
    Evidence available for CRS detection.

    Attributes:
        registry: Registry (usually a batch scope) to resolve codes against
        crs_block: GeoJSON ``crs`` member, if any
        projection_text: Projection definition text (.prj WKT or PROJ string)
        sample_coordinate: First position of the dataset
    """

    registry: SRSRegistry
    crs_block: Optional[Mapping[str, Any]] = None
    projection_text: Optional[str] = None
    sample_coordinate: Optional[Sequence[float]] = None


class DetectionStrategy:
    """Base class for CRS detection strategies."""

    name = "strategy"
    explicit = True

    def __call__(self, evidence: DetectionInput) -> Optional[CRSDetection]:
        raise NotImplementedError

    def _hit(self, evidence: DetectionInput, code: str) -> Optional[CRSDetection]:
        descriptor = evidence.registry.resolve_code(code)
        if descriptor is None:
            return None
        return CRSDetection(srs=descriptor, explicit=self.explicit, strategy=self.name)


class CRSBlockStrategy(DetectionStrategy):
    """Named or linked CRS block of a GeoJSON document."""

    name = "crs_block"

    def __call__(self, evidence: DetectionInput) -> Optional[CRSDetection]:
        block = evidence.crs_block
        if not isinstance(block, Mapping):
            return None

        properties = block.get("properties")
        if not isinstance(properties, Mapping):
            return None

        for key in ("name", "href", "code"):
            value = properties.get(key)
            if value is None:
                continue
            code = normalize_srs_code(str(value))
            if code is None:
                logger.warning(f"Unrecognized CRS identifier in crs block: {value!r}")
                continue
            return self._hit(evidence, code)
        return None


class ProjectionAuthorityStrategy(DetectionStrategy):
    """Authority code written inside a projection definition."""

    name = "projection_authority"

    def __call__(self, evidence: DetectionInput) -> Optional[CRSDetection]:
        text = evidence.projection_text
        if not text:
            return None

        authority = _outermost_authority(text)
        if authority:
            return self._hit(evidence, f"{authority[0].upper()}:{authority[1]}")

        token = _EPSG_TOKEN_PATTERN.search(text)
        if token:
            return self._hit(evidence, f"EPSG:{token.group(1)}")
        return None


class ProjectionSignatureStrategy(DetectionStrategy):
    """Well-known projection names matched against the registry."""

    name = "projection_signature"

    def __call__(self, evidence: DetectionInput) -> Optional[CRSDetection]:
        text = evidence.projection_text
        if not text:
            return None

        match = _WKT_NAME_PATTERN.search(text)
        if not match:
            return None

        code = KNOWN_PROJECTION_NAMES.get(_signature_key(match.group(1)))
        if code is None:
            return None
        return self._hit(evidence, code)


class ProjectionZoneDatumStrategy(DetectionStrategy):
    """
    UTM zone and datum fragments of a projection definition.

    Carthage zone 32N maps to the registered Carthage system; any other
    zone/datum combination maps to the WGS84 UTM code of the zone.
    """

    name = "projection_zone_datum"

    def __call__(self, evidence: DetectionInput) -> Optional[CRSDetection]:
        text = evidence.projection_text
        if not text:
            return None

        zone = parse_utm_zone(text)
        if zone is None:
            return None
        zone_number, is_northern = zone

        lowered = text.lower()
        if ("carthage" in lowered or "clrk80ign" in lowered) and zone_number == 32 and is_northern:
            return self._hit(evidence, CARTHAGE_UTM_32N.code)

        epsg = get_utm_epsg(zone_number, is_northern)
        logger.debug(
            f"UTM zone {format_utm_zone(zone_number, is_northern)} with unregistered datum, "
            f"using EPSG:{epsg}"
        )
        return self._hit(evidence, f"EPSG:{epsg}")


class ProjectionDefinitionStrategy(DetectionStrategy):
    """Any other definition pyproj can parse, used as-is."""

    name = "projection_definition"

    def __call__(self, evidence: DetectionInput) -> Optional[CRSDetection]:
        text = evidence.projection_text
        if not text or not text.strip():
            return None

        descriptor = evidence.registry.register_definition(text)
        if descriptor is None:
            return None
        return CRSDetection(srs=descriptor, explicit=self.explicit, strategy=self.name)


class MagnitudeStrategy(DetectionStrategy):
    """
    Last-resort guess from the magnitude of the first coordinate.

    Only meaningful for the two UTM zone 32N systems of this deployment:
    positions inside the Carthage easting/northing band are assigned the
    Carthage system, other northern projected positions WGS84 UTM 32N.
    """

    name = "coordinate_magnitude"
    explicit = False

    def __init__(self, enabled: Optional[bool] = None):
        if enabled is None:
            from geoingest.core.config import settings

            enabled = settings.magnitude_fallback_enabled
        self.enabled = enabled

    @staticmethod
    def is_projected(coordinate: Sequence[float]) -> bool:
        """True when a position cannot be longitude/latitude degrees."""
        return any(abs(value) > 180 for value in coordinate[:2])

    def __call__(self, evidence: DetectionInput) -> Optional[CRSDetection]:
        coordinate = evidence.sample_coordinate
        if not coordinate or len(coordinate) < 2 or not self.is_projected(coordinate):
            return None

        if not self.enabled:
            logger.warning(
                f"Coordinate {list(coordinate[:2])} looks projected but no CRS metadata is "
                "present and the magnitude fallback is disabled",
                extra={"crs_explicit": False},
            )
            return None

        x, y = float(coordinate[0]), float(coordinate[1])
        if (
            CARTHAGE_EASTING_RANGE[0] <= x <= CARTHAGE_EASTING_RANGE[1]
            and CARTHAGE_NORTHING_RANGE[0] <= y <= CARTHAGE_NORTHING_RANGE[1]
        ):
            return self._hit(evidence, CARTHAGE_UTM_32N.code)
        if y >= 0:
            return self._hit(evidence, WGS84_UTM_32N.code)

        logger.warning(
            f"Coordinate {[x, y]} is outside every registered projected band",
            extra={"crs_explicit": False},
        )
        return None


def default_strategies(magnitude_fallback: Optional[bool] = None) -> List[DetectionStrategy]:
    """Strategies in priority order: metadata first, magnitude last."""
    return [
        CRSBlockStrategy(),
        ProjectionAuthorityStrategy(),
        ProjectionSignatureStrategy(),
        ProjectionZoneDatumStrategy(),
        ProjectionDefinitionStrategy(),
        MagnitudeStrategy(enabled=magnitude_fallback),
    ]


class CRSResolver:
    """
    Runs detection strategies in priority order.

    Example:
        >>> resolver = CRSResolver(default_registry().scope())
        >>> detection = resolver.resolve(crs_block={"type": "name",
        ...     "properties": {"name": "EPSG:32632"}})
        >>> detection.srs.code
        'EPSG:32632'
    """

    def __init__(
        self,
        registry: SRSRegistry,
        strategies: Optional[Sequence[DetectionStrategy]] = None,
    ):
        self.registry = registry
        self.strategies: Tuple[DetectionStrategy, ...] = tuple(
            strategies if strategies is not None else default_strategies()
        )

    def _run(
        self, strategies: Sequence[DetectionStrategy], evidence: DetectionInput
    ) -> Optional[CRSDetection]:
        for strategy in strategies:
            detection = strategy(evidence)
            if detection is None:
                continue

            if detection.explicit:
                logger.info(
                    f"CRS detected: {detection}",
                    extra={"crs_explicit": True, "crs_strategy": detection.strategy},
                )
            else:
                logger.warning(
                    f"CRS guessed from coordinate magnitude: {detection}",
                    extra={"crs_explicit": False, "crs_strategy": detection.strategy},
                )
            return detection

        logger.debug("No CRS detection strategy matched")
        return None

    def resolve(
        self,
        crs_block: Optional[Mapping[str, Any]] = None,
        projection_text: Optional[str] = None,
        sample_coordinate: Optional[Sequence[float]] = None,
    ) -> Optional[CRSDetection]:
        """
        Determine the source SRS of a dataset.

        Args:
            crs_block: GeoJSON ``crs`` member
            projection_text: Projection definition text
            sample_coordinate: First position of the dataset

        Returns:
            First detection in priority order, or None
        """
        evidence = DetectionInput(
            registry=self.registry,
            crs_block=crs_block,
            projection_text=projection_text,
            sample_coordinate=sample_coordinate,
        )
        return self._run(self.strategies, evidence)

    def resolve_explicit(
        self,
        crs_block: Optional[Mapping[str, Any]] = None,
        projection_text: Optional[str] = None,
    ) -> Optional[CRSDetection]:
        """Run only the metadata strategies."""
        evidence = DetectionInput(
            registry=self.registry,
            crs_block=crs_block,
            projection_text=projection_text,
        )
        return self._run([s for s in self.strategies if s.explicit], evidence)
