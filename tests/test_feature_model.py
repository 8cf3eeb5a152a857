"""
Tests for the canonical feature model.
"""

import datetime as dt
from decimal import Decimal

import pytest

from geoingest.models.feature import (
    Feature,
    FeatureCollection,
    GeometryType,
    coerce_property_value,
    find_key_ci,
    first_position,
    geometry_depth,
    get_ci,
    iter_positions,
    parse_number,
)
from geoingest.models.layer import IngestionFailure, LayerUpdate
from geoingest.core.errors import ShapefileError


class TestGeometryDepth:
    """Tests for coordinate nesting depth per geometry type."""

    @pytest.mark.parametrize(
        "gtype, depth",
        [
            ("Point", 0),
            ("LineString", 1),
            ("MultiPoint", 1),
            ("Polygon", 2),
            ("MultiLineString", 2),
            ("MultiPolygon", 3),
        ],
    )
    def test_depths(self, gtype: str, depth: int) -> None:
        assert geometry_depth(gtype) == depth

    def test_collection_has_no_depth(self) -> None:
        with pytest.raises(ValueError):
            geometry_depth(GeometryType.GEOMETRY_COLLECTION)

    def test_unknown_type(self) -> None:
        with pytest.raises(ValueError):
            geometry_depth("Circle")


class TestPropertyValues:
    """Tests for property value coercion and lookup."""

    def test_coercion(self) -> None:
        assert coerce_property_value("a") == "a"
        assert coerce_property_value(3) == 3
        assert coerce_property_value(True) == 1
        assert coerce_property_value(float("nan")) is None
        assert coerce_property_value(Decimal("4.0")) == 4
        assert coerce_property_value(Decimal("4.5")) == 4.5
        assert coerce_property_value(b"abc") == "abc"
        assert coerce_property_value(dt.date(2024, 3, 1)) == "2024-03-01"
        assert coerce_property_value({"a": "é"}) == '{"a": "é"}'

    def test_case_insensitive_lookup(self) -> None:
        row = {"Sites": "Adissa", "MAT": "argile"}
        assert find_key_ci(row, "sites") == "Sites"
        assert get_ci(row, "mat") == "argile"
        assert get_ci(row, "missing", "x") == "x"

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("463379", 463379.0),
            ("463379,5", 463379.5),
            (" 1 234,5 ", 1234.5),
            (7, 7.0),
            ("", None),
            ("abc", None),
            ("inf", None),
            (True, None),
            (None, None),
        ],
    )
    def test_parse_number(self, value, expected) -> None:
        assert parse_number(value) == expected


class TestPositions:
    """Tests for position traversal."""

    def test_iter_positions_of_polygon(self) -> None:
        geometry = {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]}
        paths = [path for path, _ in iter_positions(geometry)]
        assert paths == [(0, 0), (0, 1), (0, 2), (0, 3)]

    def test_iter_positions_of_collection(self) -> None:
        geometry = {
            "type": "GeometryCollection",
            "geometries": [
                {"type": "Point", "coordinates": [1, 2]},
                {"type": "LineString", "coordinates": [[3, 4], [5, 6]]},
            ],
        }
        assert [position for _, position in iter_positions(geometry)] == [[1, 2], [3, 4], [5, 6]]

    def test_first_position_skips_malformed(self) -> None:
        geometry = {"type": "MultiPoint", "coordinates": [["a", "b"], [10, 33]]}
        assert first_position(geometry) == [10, 33]
        assert first_position(None) is None


class TestCollections:
    """Tests for Feature and FeatureCollection."""

    def test_to_geojson_drops_missing_crs(self) -> None:
        collection = FeatureCollection(
            features=[Feature.from_geometry({"type": "Point", "coordinates": [10, 33]}, {"name": "a"})]
        )
        data = collection.to_geojson()

        assert data == {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "geometry": {"type": "Point", "coordinates": [10, 33]}, "properties": {"name": "a"}}
            ],
        }

    def test_geometry_type_counts(self) -> None:
        collection = FeatureCollection(
            features=[
                Feature.from_geometry({"type": "Point", "coordinates": [10, 33]}),
                Feature.from_geometry({"type": "Point", "coordinates": [11, 33]}),
                Feature.from_geometry({"type": "LineString", "coordinates": [[10, 33], [11, 33]]}),
            ]
        )
        assert collection.geometry_types == {"Point": 2, "LineString": 1}
        assert len(collection) == 3


class TestLayerModels:
    """Tests for the layer API models."""

    def test_color_is_normalized(self) -> None:
        assert LayerUpdate(color="#AABBCC").color == "#aabbcc"

    @pytest.mark.parametrize("color", ["red", "#12345", "#GGHHII"])
    def test_invalid_color(self, color: str) -> None:
        with pytest.raises(ValueError):
            LayerUpdate(color=color)

    def test_failure_from_error(self) -> None:
        failure = IngestionFailure.from_error(ShapefileError("missing .shp file", base_name="roads"))

        assert failure.file_name == "roads"
        assert failure.stage == "parse"
        assert failure.error_code == "SHAPEFILE_ERROR"
        assert failure.suggestions
