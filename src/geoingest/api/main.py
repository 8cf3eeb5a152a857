"""
Main FastAPI application instance.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from geoingest import __version__
from geoingest.api.error_handlers import register_error_handlers
from geoingest.api.layers import router as layers_router
from geoingest.api.middleware import RequestCorrelationMiddleware
from geoingest.core.config import settings
from geoingest.core.layers import layer_store
from geoingest.core.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Lifespan context manager for FastAPI application.

    Handles startup and shutdown events:
    - Startup: Configure logging
    - Shutdown: Drop the in-memory layers
    """
    setup_logging(
        log_level="DEBUG" if settings.environment == "development" else "INFO",
        log_file=settings.log_file,
        json_logs=(settings.environment == "production"),
        enable_console=True,
    )
    logger.info(f"Starting geoingest API v{__version__} in {settings.environment} mode")

    yield

    logger.info("Shutting down geoingest API")
    await layer_store.clear()


app = FastAPI(
    title="geoingest API",
    description="Ingestion and normalization of geospatial uploads into WGS84 map layers",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS for the map frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestCorrelationMiddleware)

register_error_handlers(app)

app.include_router(layers_router, prefix=settings.api_v1_prefix)


@app.get("/")
async def root() -> dict[str, str]:
    """
    Root endpoint returning API information.

    Returns:
        dict[str, str]: API information including name and version.
    """
    return {
        "name": "geoingest API",
        "version": __version__,
        "description": "Geospatial upload ingestion and normalization",
    }


@app.get("/health")
async def health_check() -> dict[str, str]:
    """
    Health check endpoint.

    Returns:
        dict[str, str]: Health status.
    """
    return {"status": "healthy"}
