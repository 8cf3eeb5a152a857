"""
Tests for CRS detection strategies and the resolver.
"""

import logging

import pytest

from geoingest.core.crs import (
    CRSBlockStrategy,
    CRSResolver,
    DetectionInput,
    MagnitudeStrategy,
    ProjectionAuthorityStrategy,
    ProjectionDefinitionStrategy,
    ProjectionSignatureStrategy,
    ProjectionZoneDatumStrategy,
    default_registry,
    default_strategies,
)

ESRI_CARTHAGE_PRJ = (
    'PROJCS["Carthage_UTM_Zone_32N",GEOGCS["GCS_Carthage",DATUM["D_Carthage",'
    'SPHEROID["Clarke_1880_IGN",6378249.2,293.4660212936269]],PRIMEM["Greenwich",0.0],'
    'UNIT["Degree",0.0174532925199433]],PROJECTION["Transverse_Mercator"],'
    'PARAMETER["False_Easting",500000.0],PARAMETER["False_Northing",0.0],'
    'PARAMETER["Central_Meridian",9.0],PARAMETER["Scale_Factor",0.9996],'
    'PARAMETER["Latitude_Of_Origin",0.0],UNIT["Meter",1.0]]'
)

WKT_WITH_AUTHORITY = (
    'PROJCS["WGS 84 / UTM zone 32N",GEOGCS["WGS 84",AUTHORITY["EPSG","4326"]],'
    'AUTHORITY["EPSG","32632"]]'
)


@pytest.fixture
def scope():
    return default_registry().scope()


class TestCRSBlockStrategy:
    """Tests for GeoJSON crs blocks."""

    def test_named_block(self, scope) -> None:
        """Test a named CRS block in URN form."""
        evidence = DetectionInput(
            registry=scope,
            crs_block={"type": "name", "properties": {"name": "urn:ogc:def:crs:EPSG::32632"}},
        )
        detection = CRSBlockStrategy()(evidence)

        assert detection is not None
        assert detection.srs.code == "EPSG:32632"
        assert detection.explicit is True
        assert detection.strategy == "crs_block"

    def test_linked_block(self, scope) -> None:
        """Test a linked CRS block."""
        evidence = DetectionInput(
            registry=scope,
            crs_block={"type": "link", "properties": {"href": "http://www.opengis.net/def/crs/EPSG/0/22391"}},
        )
        detection = CRSBlockStrategy()(evidence)
        assert detection.srs.code == "EPSG:22391"

    def test_unrecognized_name(self, scope, caplog: pytest.LogCaptureFixture) -> None:
        """An unreadable name is logged and skipped."""
        evidence = DetectionInput(registry=scope, crs_block={"type": "name", "properties": {"name": "local grid"}})
        with caplog.at_level(logging.WARNING):
            assert CRSBlockStrategy()(evidence) is None
        assert "Unrecognized CRS identifier" in caplog.text

    def test_missing_block(self, scope) -> None:
        assert CRSBlockStrategy()(DetectionInput(registry=scope)) is None
        assert CRSBlockStrategy()(DetectionInput(registry=scope, crs_block={"type": "name"})) is None


class TestProjectionStrategies:
    """Tests for strategies reading projection definition text."""

    def test_outermost_authority(self, scope) -> None:
        """The root node's authority wins over the datum's."""
        detection = ProjectionAuthorityStrategy()(DetectionInput(registry=scope, projection_text=WKT_WITH_AUTHORITY))
        assert detection.srs.code == "EPSG:32632"
        assert detection.strategy == "projection_authority"

    def test_epsg_token(self, scope) -> None:
        """A bare EPSG token is read when there is no AUTHORITY node."""
        detection = ProjectionAuthorityStrategy()(DetectionInput(registry=scope, projection_text="EPSG:22391"))
        assert detection.srs.code == "EPSG:22391"

    def test_esri_prj_has_no_authority(self, scope) -> None:
        assert ProjectionAuthorityStrategy()(DetectionInput(registry=scope, projection_text=ESRI_CARTHAGE_PRJ)) is None

    def test_signature(self, scope) -> None:
        """ESRI projection names map to registered systems."""
        detection = ProjectionSignatureStrategy()(DetectionInput(registry=scope, projection_text=ESRI_CARTHAGE_PRJ))

        assert detection.srs.code == "EPSG:22391"
        assert detection.strategy == "projection_signature"

    def test_unknown_signature(self, scope) -> None:
        text = 'PROJCS["Somewhere_Grid",GEOGCS["GCS_WGS_1984"]]'
        assert ProjectionSignatureStrategy()(DetectionInput(registry=scope, projection_text=text)) is None

    def test_zone_and_carthage_datum(self, scope) -> None:
        """Carthage fragments in zone 32N map to the Carthage system."""
        text = "+proj=utm +zone=32 +ellps=clrk80ign +units=m"
        detection = ProjectionZoneDatumStrategy()(DetectionInput(registry=scope, projection_text=text))
        assert detection.srs.code == "EPSG:22391"

    def test_zone_with_other_datum(self, scope) -> None:
        """Other datums map to the WGS84 UTM code of the zone."""
        text = 'PROJCS["Local_UTM_Zone_33S",GEOGCS["GCS_Local"]]'
        detection = ProjectionZoneDatumStrategy()(DetectionInput(registry=scope, projection_text=text))

        assert detection.srs.code == "EPSG:32733"
        assert "EPSG:32733" in scope

    def test_arbitrary_definition(self, scope) -> None:
        """Any definition pyproj parses is used as-is."""
        text = "+proj=merc +lon_0=10 +datum=WGS84 +units=m +no_defs"
        detection = ProjectionDefinitionStrategy()(DetectionInput(registry=scope, projection_text=text))

        assert detection is not None
        assert detection.explicit is True
        assert detection.strategy == "projection_definition"
        assert detection.srs.definition == text

    def test_unparseable_definition(self, scope) -> None:
        assert ProjectionDefinitionStrategy()(DetectionInput(registry=scope, projection_text="not a projection")) is None


class TestMagnitudeStrategy:
    """Tests for the coordinate magnitude fallback."""

    def test_carthage_band(self, scope) -> None:
        """Positions in the Carthage band get the Carthage system, flagged as a guess."""
        detection = MagnitudeStrategy(enabled=True)(
            DetectionInput(registry=scope, sample_coordinate=[463379.0, 4063948.0])
        )

        assert detection.srs.code == "EPSG:22391"
        assert detection.explicit is False
        assert detection.strategy == "coordinate_magnitude"

    def test_other_projected_positions(self, scope) -> None:
        """Other northern projected positions get WGS84 UTM 32N."""
        detection = MagnitudeStrategy(enabled=True)(
            DetectionInput(registry=scope, sample_coordinate=[800000.0, 5000000.0])
        )
        assert detection.srs.code == "EPSG:32632"

    def test_degrees_are_not_projected(self, scope) -> None:
        evidence = DetectionInput(registry=scope, sample_coordinate=[10.1, 33.8])
        assert MagnitudeStrategy(enabled=True)(evidence) is None

    def test_southern_positions(self, scope, caplog: pytest.LogCaptureFixture) -> None:
        evidence = DetectionInput(registry=scope, sample_coordinate=[800000.0, -5000.0])
        with caplog.at_level(logging.WARNING):
            assert MagnitudeStrategy(enabled=True)(evidence) is None
        assert "outside every registered projected band" in caplog.text

    def test_disabled(self, scope, caplog: pytest.LogCaptureFixture) -> None:
        """A disabled fallback only warns."""
        evidence = DetectionInput(registry=scope, sample_coordinate=[463379.0, 4063948.0])
        with caplog.at_level(logging.WARNING):
            assert MagnitudeStrategy(enabled=False)(evidence) is None
        assert "magnitude fallback is disabled" in caplog.text

    def test_missing_coordinate(self, scope) -> None:
        assert MagnitudeStrategy(enabled=True)(DetectionInput(registry=scope)) is None
        assert MagnitudeStrategy(enabled=True)(DetectionInput(registry=scope, sample_coordinate=[5.0])) is None


class TestCRSResolver:
    """Tests for the resolver's priority order."""

    def test_metadata_beats_magnitude(self, scope) -> None:
        """A crs block wins even when the coordinates look like Carthage."""
        resolver = CRSResolver(scope, default_strategies(magnitude_fallback=True))
        detection = resolver.resolve(
            crs_block={"type": "name", "properties": {"name": "EPSG:32632"}},
            sample_coordinate=[463379.0, 4063948.0],
        )
        assert detection.srs.code == "EPSG:32632"
        assert detection.explicit is True

    def test_prj_signature_before_zone(self, scope) -> None:
        resolver = CRSResolver(scope, default_strategies(magnitude_fallback=False))
        detection = resolver.resolve(projection_text=ESRI_CARTHAGE_PRJ)
        assert detection.strategy == "projection_signature"

    def test_guess_is_logged_as_warning(self, scope, caplog: pytest.LogCaptureFixture) -> None:
        """Heuristic detections are reported as warnings."""
        resolver = CRSResolver(scope, default_strategies(magnitude_fallback=True))
        with caplog.at_level(logging.INFO):
            detection = resolver.resolve(sample_coordinate=[463379.0, 4063948.0])

        assert detection.explicit is False
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert any(getattr(r, "crs_explicit", None) is False for r in warnings)

    def test_explicit_detection_is_logged_as_info(self, scope, caplog: pytest.LogCaptureFixture) -> None:
        resolver = CRSResolver(scope, default_strategies(magnitude_fallback=True))
        with caplog.at_level(logging.INFO):
            resolver.resolve(projection_text=WKT_WITH_AUTHORITY)
        assert any(getattr(r, "crs_explicit", None) is True for r in caplog.records)

    def test_resolve_explicit_skips_magnitude(self, scope) -> None:
        resolver = CRSResolver(scope, default_strategies(magnitude_fallback=True))
        assert resolver.resolve_explicit() is None

    def test_nothing_matches(self, scope) -> None:
        resolver = CRSResolver(scope, default_strategies(magnitude_fallback=True))
        assert resolver.resolve(sample_coordinate=[10.1, 33.8]) is None
