"""
Layer upload and management API endpoints.
"""

import logging
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status

from geoingest.analysis.statistics import (
    calculate_extent,
    filter_by_property,
    layer_statistics,
    layer_summary,
)
from geoingest.core.config import settings
from geoingest.core.ingest import IngestionService
from geoingest.core.layers import LayerStore, layer_store
from geoingest.models.errors import ErrorResponse
from geoingest.models.layer import BatchResponse, IngestionFailure, LayerInfo, LayerUpdate
from geoingest.models.statistics import LayerStatisticsResponse
from geoingest.models.upload import UploadedFile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/layers", tags=["layers"])

_ingestion_service: Optional[IngestionService] = None


def get_layer_store() -> LayerStore:
    """Layer store dependency."""
    return layer_store


def get_ingestion_service() -> IngestionService:
    """Ingestion service dependency, created on first use."""
    global _ingestion_service
    if _ingestion_service is None:
        _ingestion_service = IngestionService()
    return _ingestion_service


@router.post(
    "/upload",
    response_model=BatchResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Missing file name"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    summary="Upload geospatial files",
    description=(
        "Upload one or more CSV, spreadsheet, shapefile component, GeoJSON or KML files. "
        "Shapefile components are grouped by base name. "
        f"Maximum size per file: {settings.max_upload_size_mb}MB; larger files are reported as failures."
    ),
)
async def upload_layers(
    files: Annotated[
        List[UploadFile],
        File(
            description=(
                f"Files to ingest. Supported types: {', '.join(settings.allowed_extensions)}."
            )
        ),
    ],
    service: Annotated[IngestionService, Depends(get_ingestion_service)],
    store: Annotated[LayerStore, Depends(get_layer_store)],
) -> BatchResponse:
    """
    Ingest an upload batch and add every normalized file as a layer.

    Files that cannot be ingested, including files above the size limit,
    are reported in ``failures`` with their name, the stage that failed and
    the cause; they never fail the request.

    Args:
        files: Uploaded files (multipart/form-data)
        service: Ingestion service
        store: Layer store

    Returns:
        BatchResponse with the created layers and per-file failures

    Raises:
        HTTPException: 400 for a missing file name
    """
    logger.info(f"Received upload batch of {len(files)} file(s)")

    uploads: List[UploadedFile] = []
    for file in files:
        if not file.filename:
            logger.warning("Upload rejected: no filename provided")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=ErrorResponse(
                    error_code="INVALID_REQUEST",
                    message="Filename is required",
                ).model_dump(mode="json"),
            )

        content = await file.read()
        uploads.append(UploadedFile(name=file.filename, content=content))

    result = await service.ingest_batch(uploads)

    layers = [await store.add(layer) for layer in result.layers]
    failures = [IngestionFailure.from_error(error) for error in result.failures]
    return BatchResponse(layers=layers, failures=failures)


@router.get("", response_model=List[LayerInfo], summary="List layers")
async def list_layers(
    store: Annotated[LayerStore, Depends(get_layer_store)],
) -> List[LayerInfo]:
    return await store.list()


@router.get(
    "/{layer_id}",
    response_model=LayerInfo,
    responses={404: {"model": ErrorResponse, "description": "Layer not found"}},
    summary="Get layer metadata",
)
async def get_layer(
    layer_id: str, store: Annotated[LayerStore, Depends(get_layer_store)]
) -> LayerInfo:
    stored = await store.get(layer_id)
    return stored.info


@router.get(
    "/{layer_id}/geojson",
    responses={404: {"model": ErrorResponse, "description": "Layer not found"}},
    summary="Get layer features as GeoJSON",
)
async def get_layer_geojson(
    layer_id: str,
    store: Annotated[LayerStore, Depends(get_layer_store)],
    property_name: Annotated[Optional[str], Query(alias="property")] = None,
    value: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Get the features of a layer, optionally filtered by a property.

    String filters match as a case-insensitive substring.
    """
    stored = await store.get(layer_id)
    collection = stored.collection
    if property_name is not None and value is not None:
        collection = filter_by_property(collection, property_name, value)
    return collection.to_geojson()


@router.get(
    "/{layer_id}/statistics",
    response_model=LayerStatisticsResponse,
    responses={404: {"model": ErrorResponse, "description": "Layer not found"}},
    summary="Get layer statistics",
)
async def get_layer_statistics(
    layer_id: str, store: Annotated[LayerStore, Depends(get_layer_store)]
) -> LayerStatisticsResponse:
    stored = await store.get(layer_id)
    return LayerStatisticsResponse(
        layer_id=layer_id,
        statistics=layer_statistics(stored.collection),
        extent=calculate_extent(stored.collection),
        summary=layer_summary(stored.collection),
    )


@router.patch(
    "/{layer_id}",
    response_model=LayerInfo,
    responses={404: {"model": ErrorResponse, "description": "Layer not found"}},
    summary="Change layer color or visibility",
)
async def update_layer(
    layer_id: str,
    update: LayerUpdate,
    store: Annotated[LayerStore, Depends(get_layer_store)],
) -> LayerInfo:
    info = (await store.get(layer_id)).info
    if update.color is not None:
        info = await store.set_color(layer_id, update.color)
    if update.visible is not None:
        info = await store.set_visibility(layer_id, update.visible)
    return info


@router.delete(
    "/{layer_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse, "description": "Layer not found"}},
    summary="Remove a layer",
)
async def delete_layer(
    layer_id: str, store: Annotated[LayerStore, Depends(get_layer_store)]
) -> Response:
    await store.remove(layer_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
