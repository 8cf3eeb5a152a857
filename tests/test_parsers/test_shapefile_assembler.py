"""
Tests for shapefile grouping and assembly.
"""

from pathlib import Path
from typing import Dict

import pytest
import shapefile

from geoingest.core.crs import CoordinateTransformer, CRSResolver, default_registry, default_strategies
from geoingest.core.errors import NoFeaturesError, ShapefileError
from geoingest.core.parsers import ShapefileAssembler, ShapefileGroup, group_shapefile_components
from geoingest.models.upload import UploadedFile

CARTHAGE_PRJ = (
    'PROJCS["Carthage_UTM_Zone_32N",GEOGCS["GCS_Carthage",DATUM["D_Carthage",'
    'SPHEROID["Clarke_1880_IGN",6378249.2,293.4660212936269]]],PROJECTION["Transverse_Mercator"]]'
)


def _write_points(tmp_path: Path, encoding: str = "utf-8", null_first: bool = False) -> Dict[str, bytes]:
    """Write a small point shapefile and return its components."""
    target = tmp_path / "sites"
    with shapefile.Writer(str(target), shapeType=shapefile.POINT, encoding=encoding) as writer:
        writer.field("Sites", "C", size=40)
        writer.field("mat", "C", size=20)
        if null_first:
            writer.null()
            writer.record("nothing", "")
        writer.point(463379.0, 4063948.0)
        writer.record("Gabès", "argile")
        writer.point(463500.0, 4064000.0)
        writer.record("Béja", "sable")
    return {ext: (tmp_path / f"sites{ext}").read_bytes() for ext in (".shp", ".shx", ".dbf")}


@pytest.fixture
def assembler() -> ShapefileAssembler:
    scope = default_registry().scope()
    return ShapefileAssembler(CRSResolver(scope, default_strategies(True)), CoordinateTransformer(scope))


def _in_tunisia(coordinates) -> bool:
    lon, lat = coordinates[:2]
    return 7.5 < lon < 11.6 and 30.0 < lat < 37.5


class TestGrouping:
    """Tests for group_shapefile_components."""

    def test_components_are_grouped_by_stem(self) -> None:
        files = [
            UploadedFile("roads.shp", b"shp"),
            UploadedFile("sites.csv", b"a;b"),
            UploadedFile("ROADS.dbf", b"dbf"),
            UploadedFile("roads.prj", b"PROJCS[]"),
            UploadedFile("roads.cpg", b"1252\n"),
        ]
        groups, others = group_shapefile_components(files)

        assert [g.base_name for g in groups] == ["roads"]
        group = groups[0]
        assert group.shp == b"shp"
        assert group.dbf == b"dbf"
        assert group.prj == "PROJCS[]"
        assert group.cpg == "1252"
        assert group.source_files == ["roads.shp", "ROADS.dbf", "roads.prj", "roads.cpg"]
        assert [f.name for f in others] == ["sites.csv"]

    def test_separate_datasets(self) -> None:
        groups, others = group_shapefile_components(
            [UploadedFile("a.shp", b""), UploadedFile("b.shp", b""), UploadedFile("a.shx", b"")]
        )
        assert [g.base_name for g in groups] == ["a", "b"]
        assert others == []


class TestShapefileAssembler:
    """Tests for ShapefileAssembler."""

    def test_full_group(self, tmp_path: Path, assembler: ShapefileAssembler) -> None:
        """Geometry, attributes and projection are combined."""
        parts = _write_points(tmp_path)
        group = ShapefileGroup(
            base_name="sites", shp=parts[".shp"], shx=parts[".shx"], dbf=parts[".dbf"],
            prj=CARTHAGE_PRJ, cpg="UTF-8",
        )

        collection = assembler.assemble(group)

        assert len(collection) == 2
        assert [f.properties["Sites"] for f in collection] == ["Gabès", "Béja"]
        assert collection.features[0].properties["mat"] == "argile"
        assert all(_in_tunisia(f.coordinates) for f in collection)
        assert assembler.last_encoding == "utf-8"
        assert assembler.normalizer.last_detection.explicit is True

    def test_geometry_only(self, tmp_path: Path, assembler: ShapefileAssembler) -> None:
        """A group with only the .shp yields features with empty properties."""
        parts = _write_points(tmp_path)

        collection = assembler.assemble(ShapefileGroup(base_name="sites", shp=parts[".shp"]))

        assert len(collection) == 2
        assert all(f.properties == {} for f in collection)
        assert all(_in_tunisia(f.coordinates) for f in collection)

    def test_magnitude_guess_without_prj(self, tmp_path: Path, assembler: ShapefileAssembler) -> None:
        parts = _write_points(tmp_path)
        assembler.assemble(ShapefileGroup(base_name="sites", shp=parts[".shp"], dbf=parts[".dbf"]))

        detection = assembler.normalizer.last_detection
        assert detection.srs.code == "EPSG:22391"
        assert detection.explicit is False

    def test_attribute_encoding_is_detected(self, tmp_path: Path, assembler: ShapefileAssembler) -> None:
        """Without a .cpg, Windows-1252 attributes are recognized."""
        parts = _write_points(tmp_path, encoding="cp1252")
        group = ShapefileGroup(base_name="sites", shp=parts[".shp"], shx=parts[".shx"], dbf=parts[".dbf"])

        collection = assembler.assemble(group)

        assert [f.properties["Sites"] for f in collection] == ["Gabès", "Béja"]
        assert assembler.last_encoding == "windows-1252"

    def test_codepage_is_honoured(self, tmp_path: Path, assembler: ShapefileAssembler) -> None:
        parts = _write_points(tmp_path, encoding="cp1252")
        group = ShapefileGroup(
            base_name="sites", shp=parts[".shp"], shx=parts[".shx"], dbf=parts[".dbf"], cpg="1252"
        )
        collection = assembler.assemble(group)
        assert collection.features[0].properties["Sites"] == "Gabès"

    def test_null_shapes_are_skipped(self, tmp_path: Path, assembler: ShapefileAssembler) -> None:
        parts = _write_points(tmp_path, null_first=True)
        group = ShapefileGroup(base_name="sites", shp=parts[".shp"], shx=parts[".shx"], dbf=parts[".dbf"])

        collection = assembler.assemble(group)

        assert [f.properties["Sites"] for f in collection] == ["Gabès", "Béja"]

    def test_short_attribute_table_keeps_every_shape(
        self, tmp_path: Path, assembler: ShapefileAssembler, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Shapes without a matching record are kept with empty properties."""
        with shapefile.Writer(str(tmp_path / "many"), shapeType=shapefile.POINT) as writer:
            writer.field("name", "C")
            for i in range(3):
                writer.point(463379.0 + i * 100, 4063948.0)
                writer.record(f"p{i}")
        with shapefile.Writer(str(tmp_path / "one"), shapeType=shapefile.POINT) as writer:
            writer.field("name", "C")
            writer.point(463379.0, 4063948.0)
            writer.record("p0")
        group = ShapefileGroup(
            base_name="many",
            shp=(tmp_path / "many.shp").read_bytes(),
            shx=(tmp_path / "many.shx").read_bytes(),
            dbf=(tmp_path / "one.dbf").read_bytes(),
            prj=CARTHAGE_PRJ,
        )

        collection = assembler.assemble(group)

        assert [f.properties for f in collection] == [{"name": "p0"}, {}, {}]
        assert "3 shapes but 1 attribute records" in caplog.text

    def test_polygon(self, tmp_path: Path, assembler: ShapefileAssembler) -> None:
        target = tmp_path / "zones"
        with shapefile.Writer(str(target), shapeType=shapefile.POLYGON) as writer:
            writer.field("zone", "C")
            writer.poly([[[460000, 4060000], [460000, 4070000], [470000, 4070000], [460000, 4060000]]])
            writer.record("Z1")
        group = ShapefileGroup(
            base_name="zones",
            shp=(tmp_path / "zones.shp").read_bytes(),
            shx=(tmp_path / "zones.shx").read_bytes(),
            dbf=(tmp_path / "zones.dbf").read_bytes(),
            prj=CARTHAGE_PRJ,
        )

        feature = assembler.assemble(group).features[0]

        assert feature.geometry_type == "Polygon"
        assert all(_in_tunisia(position) for position in feature.coordinates[0])

    def test_missing_shp(self, assembler: ShapefileAssembler) -> None:
        """A group without geometry component fails with its base name."""
        with pytest.raises(ShapefileError) as exc_info:
            assembler.assemble(ShapefileGroup(base_name="roads", dbf=b"dbf"))

        assert exc_info.value.file_name == "roads"
        assert exc_info.value.message == "Error parsing shapefile roads: missing .shp file"

    def test_unreadable_shp(self, assembler: ShapefileAssembler) -> None:
        with pytest.raises(ShapefileError):
            assembler.assemble(ShapefileGroup(base_name="broken", shp=b"garbage"))

    def test_only_null_shapes(self, tmp_path: Path, assembler: ShapefileAssembler) -> None:
        target = tmp_path / "empty"
        with shapefile.Writer(str(target), shapeType=shapefile.POINT) as writer:
            writer.field("name", "C")
            writer.null()
            writer.record("none")
        group = ShapefileGroup(base_name="empty", shp=(tmp_path / "empty.shp").read_bytes())

        with pytest.raises(NoFeaturesError):
            assembler.assemble(group)
