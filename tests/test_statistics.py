"""
Tests for layer statistics and filtering.
"""

import json

import pytest

from geoingest.analysis import (
    calculate_extent,
    count_by_category,
    export_geojson,
    filter_by_property,
    group_by_property,
    layer_statistics,
    layer_summary,
    unique_values,
)
from geoingest.models.feature import Feature, FeatureCollection


@pytest.fixture
def sites() -> FeatureCollection:
    """Three quarry sites and one track."""
    return FeatureCollection(
        features=[
            Feature.from_geometry(
                {"type": "Point", "coordinates": [10.1, 33.8]},
                {"name": "Adissa", "mat": "Argile", "in_region": 1, "was_moved": "oui"},
            ),
            Feature.from_geometry(
                {"type": "Point", "coordinates": [10.5, 34.2]},
                {"name": "Béja", "mat": "argile ", "in_region": "true", "was_moved": 0},
            ),
            Feature.from_geometry(
                {"type": "Point", "coordinates": [9.8, 33.1]},
                {"name": "Gabès", "mat": "sable", "in_region": "no", "was_moved": None},
            ),
            Feature.from_geometry(
                {"type": "LineString", "coordinates": [[10.0, 33.0], [11.0, 35.0]]},
                {"name": "Piste", "mat": "", "depth": 2.0},
            ),
        ]
    )


class TestLayerStatistics:
    """Tests for layer_statistics."""

    def test_counts(self, sites: FeatureCollection) -> None:
        stats = layer_statistics(sites)

        assert stats.total_features == 4
        assert stats.geometry_types == {"Point": 3, "LineString": 1}
        assert stats.material_count == {"argile": 2, "sable": 1}
        assert stats.in_region_count == 2
        assert stats.moved_count == 1

    def test_property_statistics(self, sites: FeatureCollection) -> None:
        stats = layer_statistics(sites)

        name = stats.properties["name"]
        assert name.type == "str"
        assert name.unique_count == 4
        assert name.unique_values == ["Adissa", "Béja", "Gabès", "Piste"]

        assert stats.properties["mat"].null_count == 1
        assert stats.properties["was_moved"].null_count == 1
        assert stats.properties["in_region"].type == "int"
        assert stats.properties["depth"].unique_values == ["2"]

    def test_unique_values_are_capped(self) -> None:
        collection = FeatureCollection(
            features=[
                Feature.from_geometry({"type": "Point", "coordinates": [10, 33]}, {"code": i})
                for i in range(15)
            ]
        )
        stats = layer_statistics(collection).properties["code"]

        assert stats.unique_count == 15
        assert len(stats.unique_values) == 10

    def test_empty_collection(self) -> None:
        assert layer_statistics(FeatureCollection()) is None

    def test_collection_is_not_modified(self, sites: FeatureCollection) -> None:
        before = sites.to_geojson()
        layer_statistics(sites)
        layer_summary(sites)
        assert sites.to_geojson() == before


class TestFiltering:
    """Tests for filtering and grouping."""

    def test_string_filter_is_case_insensitive_substring(self, sites: FeatureCollection) -> None:
        result = filter_by_property(sites, "mat", "ARG")
        assert [f.properties["name"] for f in result] == ["Adissa", "Béja"]

    def test_exact_filter(self, sites: FeatureCollection) -> None:
        result = filter_by_property(sites, "in_region", 1)
        assert [f.properties["name"] for f in result] == ["Adissa"]

    def test_filter_on_missing_property(self, sites: FeatureCollection) -> None:
        assert len(filter_by_property(sites, "depth", "2")) == 1
        assert len(filter_by_property(sites, "nothing", "x")) == 0

    def test_group_by_property(self, sites: FeatureCollection) -> None:
        groups = group_by_property(sites, "mat")
        assert sorted(groups) == ["Argile", "Unknown", "argile ", "sable"]
        assert count_by_category(sites, "mat")["Unknown"] == 1

    def test_unique_values(self, sites: FeatureCollection) -> None:
        assert unique_values(sites, "name") == ["Adissa", "Béja", "Gabès", "Piste"]
        assert unique_values(sites, "depth") == ["2"]


class TestExtentAndSummary:
    """Tests for extent, summary and export."""

    def test_extent(self, sites: FeatureCollection) -> None:
        extent = calculate_extent(sites)

        assert extent.min_x == 9.8
        assert extent.max_x == 11.0
        assert extent.min_y == 33.0
        assert extent.max_y == 35.0
        assert extent.center == pytest.approx((10.4, 34.0))
        assert extent.width == pytest.approx(1.2)

    def test_extent_of_collection_geometry(self) -> None:
        collection = FeatureCollection(
            features=[
                Feature.from_geometry(
                    {
                        "type": "GeometryCollection",
                        "geometries": [
                            {"type": "Point", "coordinates": [1, 2]},
                            {"type": "Point", "coordinates": [3, 4]},
                        ],
                    }
                )
            ]
        )
        extent = calculate_extent(collection)
        assert (extent.min_x, extent.min_y, extent.max_x, extent.max_y) == (1, 2, 3, 4)

    def test_no_extent(self) -> None:
        assert calculate_extent(FeatureCollection()) is None

    def test_summary(self, sites: FeatureCollection) -> None:
        assert layer_summary(sites) == (
            "4 features | Point: 3, LineString: 1 | Materials: argile (2), sable (1) | 2 features in region"
        )

    def test_empty_summary(self) -> None:
        assert layer_summary(FeatureCollection()) == "No features in layer"

    def test_export(self, sites: FeatureCollection) -> None:
        text = export_geojson(sites)
        data = json.loads(text)

        assert data["type"] == "FeatureCollection"
        assert len(data["features"]) == 4
        assert "Béja" in text
