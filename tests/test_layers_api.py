"""
Integration tests for the layer API endpoints.
"""

import io
import json
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from geoingest.api.layers import get_layer_store
from geoingest.api.main import app
from geoingest.core.config import settings
from geoingest.core.layers import LayerStore

SITES_CSV = "Sites;X;Y;mat\nAdissa;463379;4063948;argile\nBéja;463500;4064000;sable\n"

ZONES_GEOJSON = json.dumps(
    {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Polygon", "coordinates": [[[10, 33], [11, 33], [11, 34], [10, 33]]]},
                "properties": {"name": "Zone A"},
            }
        ],
    }
)


@pytest.fixture
def store() -> LayerStore:
    return LayerStore(default_color="#3b82f6")


@pytest.fixture
def client(store: LayerStore) -> Iterator[TestClient]:
    """Create a test client backed by an empty layer store."""
    app.dependency_overrides[get_layer_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def _upload(client: TestClient, *files):
    return client.post(
        "/api/v1/layers/upload",
        files=[("files", (name, io.BytesIO(content), "application/octet-stream")) for name, content in files],
    )


def _sites_layer_id(client: TestClient) -> str:
    response = _upload(client, ("sites.csv", SITES_CSV.encode("cp1252")))
    return response.json()["layers"][0]["id"]


class TestRootEndpoints:
    """Tests for the root and health endpoints."""

    def test_root(self, client: TestClient) -> None:
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "geoingest API"
        assert "version" in data

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.json() == {"status": "healthy"}

    def test_request_id_header(self, client: TestClient) -> None:
        """The correlation id is echoed back."""
        response = client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestUploadEndpoint:
    """Tests for POST /api/v1/layers/upload."""

    @pytest.mark.integration
    def test_upload_batch(self, client: TestClient) -> None:
        """Good files become layers, bad files become failures."""
        response = _upload(
            client,
            ("sites.csv", SITES_CSV.encode("cp1252")),
            ("zones.geojson", ZONES_GEOJSON.encode("utf-8")),
            ("broken.kml", b"<kml><Placemark></kml>"),
            ("roads.dbf", b"dbf"),
        )

        assert response.status_code == 201
        data = response.json()

        assert [layer["name"] for layer in data["layers"]] == ["sites", "zones"]
        sites = data["layers"][0]
        assert sites["feature_count"] == 2
        assert sites["geometry_types"] == {"Point": 2}
        assert sites["source_encoding"] == "windows-1252"
        assert sites["source_srs"] == "EPSG:22391"
        assert sites["color"] == "#3b82f6"
        assert sites["visible"] is True

        failures = {f["file_name"]: f for f in data["failures"]}
        assert failures["broken.kml"]["stage"] == "parse"
        assert failures["broken.kml"]["message"].startswith("Error parsing KML:")
        assert failures["roads"]["error_code"] == "SHAPEFILE_ERROR"

    @pytest.mark.integration
    def test_upload_only_failures(self, client: TestClient) -> None:
        response = _upload(client, ("empty.csv", b"a;b\n1;2\n"))

        assert response.status_code == 201
        data = response.json()
        assert data["layers"] == []
        assert data["failures"][0]["error_code"] == "NO_FEATURES"

    @pytest.mark.integration
    def test_upload_too_large(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        """A file above the size limit is a failure of its own; siblings still load."""
        monkeypatch.setattr(settings, "max_upload_size_mb", 1)
        big = json.dumps({"type": "FeatureCollection", "features": [], "pad": "x" * (2 * 1024 * 1024)})

        response = _upload(
            client,
            ("sites.csv", SITES_CSV.encode("utf-8")),
            ("big.geojson", big.encode("utf-8")),
        )

        assert response.status_code == 201
        data = response.json()
        assert [layer["name"] for layer in data["layers"]] == ["sites"]
        assert len(data["failures"]) == 1
        failure = data["failures"][0]
        assert failure["file_name"] == "big.geojson"
        assert failure["error_code"] == "FILE_TOO_LARGE"
        assert failure["stage"] == "read"

    @pytest.mark.integration
    def test_upload_without_files(self, client: TestClient) -> None:
        response = client.post("/api/v1/layers/upload")

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"


class TestLayerEndpoints:
    """Tests for layer listing, retrieval and edits."""

    @pytest.mark.integration
    def test_list_and_get(self, client: TestClient) -> None:
        layer_id = _sites_layer_id(client)

        listed = client.get("/api/v1/layers").json()
        assert [layer["id"] for layer in listed] == [layer_id]

        response = client.get(f"/api/v1/layers/{layer_id}")
        assert response.status_code == 200
        assert response.json()["name"] == "sites"

    @pytest.mark.integration
    def test_unknown_layer(self, client: TestClient) -> None:
        response = client.get("/api/v1/layers/missing")

        assert response.status_code == 404
        data = response.json()
        assert data["error_code"] == "LAYER_NOT_FOUND"
        assert data["details"] == {"layer_id": "missing"}

    @pytest.mark.integration
    def test_geojson(self, client: TestClient) -> None:
        layer_id = _sites_layer_id(client)

        data = client.get(f"/api/v1/layers/{layer_id}/geojson").json()

        assert data["type"] == "FeatureCollection"
        assert "crs" not in data
        names = [f["properties"]["name"] for f in data["features"]]
        assert names == ["Adissa", "Béja"]
        lon, lat = data["features"][0]["geometry"]["coordinates"]
        assert 7.5 < lon < 11.6 and 30.0 < lat < 37.5

    @pytest.mark.integration
    def test_geojson_filter(self, client: TestClient) -> None:
        layer_id = _sites_layer_id(client)

        response = client.get(f"/api/v1/layers/{layer_id}/geojson", params={"property": "mat", "value": "SAB"})

        names = [f["properties"]["name"] for f in response.json()["features"]]
        assert names == ["Béja"]

    @pytest.mark.integration
    def test_statistics(self, client: TestClient) -> None:
        layer_id = _sites_layer_id(client)

        data = client.get(f"/api/v1/layers/{layer_id}/statistics").json()

        assert data["layer_id"] == layer_id
        assert data["statistics"]["total_features"] == 2
        assert data["statistics"]["material_count"] == {"argile": 1, "sable": 1}
        assert data["extent"]["min_x"] < data["extent"]["max_x"]
        assert data["summary"].startswith("2 features | Point: 2")

    @pytest.mark.integration
    def test_patch_color_and_visibility(self, client: TestClient) -> None:
        layer_id = _sites_layer_id(client)

        response = client.patch(f"/api/v1/layers/{layer_id}", json={"color": "#FF0000", "visible": False})

        assert response.status_code == 200
        data = response.json()
        assert data["color"] == "#ff0000"
        assert data["visible"] is False
        assert data["feature_count"] == 2

    @pytest.mark.integration
    def test_patch_invalid_color(self, client: TestClient) -> None:
        layer_id = _sites_layer_id(client)

        response = client.patch(f"/api/v1/layers/{layer_id}", json={"color": "red"})

        assert response.status_code == 422
        assert response.json()["errors"]

    @pytest.mark.integration
    def test_delete(self, client: TestClient) -> None:
        layer_id = _sites_layer_id(client)

        assert client.delete(f"/api/v1/layers/{layer_id}").status_code == 204
        assert client.get(f"/api/v1/layers/{layer_id}").status_code == 404
        assert client.delete(f"/api/v1/layers/{layer_id}").status_code == 404
