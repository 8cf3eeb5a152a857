"""
Registry of spatial reference systems known to the deployment.

The process-wide registry is built once at start-up and never mutated.
Each upload batch works on a child scope, so SRS definitions discovered
while reading one batch are invisible to every other batch.
"""

import logging
import re
from typing import Dict, Iterable, Iterator, Optional

from pyproj import CRS
from pyproj.exceptions import CRSError as PyprojCRSError

from geoingest.core.errors import ConfigurationError
from geoingest.models.crs import SRSDescriptor

logger = logging.getLogger(__name__)

WGS84 = SRSDescriptor(
    code="EPSG:4326",
    definition="+proj=longlat +datum=WGS84 +no_defs",
    name="WGS 84",
)

# Carthage datum on Clarke 1880 (IGN), UTM zone 32N. Registered under the
# code the deployment's data is labelled with.
CARTHAGE_UTM_32N = SRSDescriptor(
    code="EPSG:22391",
    definition="+proj=utm +zone=32 +north +ellps=clrk80ign +units=m +no_defs",
    name="Carthage / UTM zone 32N",
)

WGS84_UTM_32N = SRSDescriptor(
    code="EPSG:32632",
    definition="+proj=utm +zone=32 +datum=WGS84 +units=m +no_defs",
    name="WGS 84 / UTM zone 32N",
)

_CRS84_PATTERN = re.compile(r"(?:^|[:/])CRS:?84$|OGC(?::|/)(?:1\.3(?::|/))?CRS84", re.IGNORECASE)
_URN_PATTERN = re.compile(r"urn:ogc:def:crs:(\w+):[\w.]*:(\w+)", re.IGNORECASE)
_URL_PATTERN = re.compile(r"/def/crs/(\w+)/[\w.]+/(\w+)", re.IGNORECASE)
_AUTH_CODE_PATTERN = re.compile(r"\b(EPSG|ESRI|IGNF|OGC)\s*[:\s]\s*(\w+)", re.IGNORECASE)


def normalize_srs_code(text: Optional[str]) -> Optional[str]:
    """
    Extract an ``AUTHORITY:CODE`` identifier from free-form CRS text.

    Supports:
    - EPSG codes: "EPSG:32632", "epsg 32632", "32632"
    - URN format: "urn:ogc:def:crs:EPSG::32632"
    - URL format: "http://www.opengis.net/def/crs/EPSG/0/32632"
    - OGC CRS84, mapped to EPSG:4326

    Args:
        text: CRS name as found in metadata

    Returns:
        Normalized identifier (e.g. "EPSG:32632"), or None
    """
    if text is None:
        return None
    value = str(text).strip()
    if not value:
        return None

    if _CRS84_PATTERN.search(value):
        return WGS84.code

    for pattern in (_URN_PATTERN, _URL_PATTERN, _AUTH_CODE_PATTERN):
        match = pattern.search(value)
        if match:
            return f"{match.group(1).upper()}:{match.group(2)}"

    if value.isdigit():
        return f"EPSG:{value}"

    return None


class SRSRegistry:
    """
    Read-mostly registry of SRS descriptors.

    A registry created with a ``parent`` is a scope: it sees every entry of
    its parent and accepts transient registrations of its own.
    """

    def __init__(
        self,
        descriptors: Iterable[SRSDescriptor] = (),
        parent: Optional["SRSRegistry"] = None,
    ):
        self._parent = parent
        self._entries: Dict[str, SRSDescriptor] = {}
        for descriptor in descriptors:
            self._entries[descriptor.code.upper()] = descriptor

    @property
    def is_scope(self) -> bool:
        return self._parent is not None

    def get(self, code: str) -> Optional[SRSDescriptor]:
        """
        Look up a descriptor by code (case-insensitive).

        Args:
            code: SRS identifier

        Returns:
            Descriptor, or None if neither this registry nor its parents know it
        """
        key = code.strip().upper()
        if key in self._entries:
            return self._entries[key]
        if self._parent is not None:
            return self._parent.get(key)
        return None

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and self.get(code) is not None

    def __iter__(self) -> Iterator[SRSDescriptor]:
        seen = set()
        registry: Optional[SRSRegistry] = self
        while registry is not None:
            for key, descriptor in registry._entries.items():
                if key not in seen:
                    seen.add(key)
                    yield descriptor
            registry = registry._parent

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def register(self, descriptor: SRSDescriptor) -> None:
        """
        Register a descriptor in this scope.

        Raises:
            ConfigurationError: If called on the process-wide registry
        """
        if not self.is_scope:
            raise ConfigurationError(
                message="The process-wide SRS registry is read-only; register on a batch scope",
                config_key="srs_registry",
                details={"code": descriptor.code},
            )
        self._entries[descriptor.code.upper()] = descriptor
        logger.debug(f"Registered transient SRS {descriptor.code} in batch scope")

    def scope(self) -> "SRSRegistry":
        """Create a child registry for one upload batch."""
        return SRSRegistry(parent=self)

    def resolve_code(self, code: str) -> Optional[SRSDescriptor]:
        """
        Get a descriptor for a code, deriving it from pyproj when unregistered.

        A derived descriptor is registered transiently when this registry is
        a scope.

        Args:
            code: SRS identifier in any form accepted by ``normalize_srs_code``

        Returns:
            Descriptor, or None when pyproj does not know the code
        """
        normalized = normalize_srs_code(code) or code.strip()
        known = self.get(normalized)
        if known is not None:
            return known

        try:
            crs = CRS.from_user_input(normalized)
        except PyprojCRSError as e:
            logger.warning(f"Unknown SRS {normalized!r}: {e}")
            return None

        descriptor = SRSDescriptor(code=normalized.upper(), definition=crs.to_wkt(), name=crs.name)
        if self.is_scope:
            self.register(descriptor)
        return descriptor

    def register_definition(self, definition: str, code: Optional[str] = None) -> Optional[SRSDescriptor]:
        """
        Build a descriptor from a projection definition (WKT or PROJ string).

        Args:
            definition: Projection definition text
            code: Identifier to register it under; derived from pyproj
                (authority code, else the CRS name) when omitted

        Returns:
            Descriptor, or None when pyproj rejects the definition
        """
        try:
            crs = CRS.from_user_input(definition)
        except PyprojCRSError as e:
            logger.warning(f"Unusable projection definition: {e}")
            return None

        if code is None:
            authority = crs.to_authority(min_confidence=70)
            code = f"{authority[0]}:{authority[1]}" if authority else f"USER:{crs.name}"

        known = self.get(code)
        if known is not None:
            return known

        descriptor = SRSDescriptor(code=code.upper(), definition=definition.strip(), name=crs.name)
        if self.is_scope:
            self.register(descriptor)
        return descriptor


def default_registry() -> SRSRegistry:
    """
    Build the process-wide registry of the deployment's well-known systems.

    Returns:
        Registry holding the Carthage UTM 32N, WGS84 UTM 32N and WGS84 entries
    """
    return SRSRegistry([CARTHAGE_UTM_32N, WGS84_UTM_32N, WGS84])
