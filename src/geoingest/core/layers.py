"""
In-memory layer store.

Completed ingestions are appended here as map layers. Concurrent tasks of
one batch each add their layer independently; an asyncio lock serializes
the hand-off. Cosmetic edits touch layer metadata only, never geometry.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
from uuid import uuid4

from geoingest.core.errors import LayerNotFoundError
from geoingest.core.ingest import IngestedLayer
from geoingest.models.feature import FeatureCollection
from geoingest.models.layer import LayerInfo

logger = logging.getLogger(__name__)


@dataclass
class StoredLayer:
    """Layer metadata plus the collection it displays."""

    info: LayerInfo
    collection: FeatureCollection


class LayerStore:
    """
    Append-only store of layers handed to the map.

    Layers are kept in insertion order.
    """

    def __init__(self, default_color: Optional[str] = None) -> None:
        """
        Initialize the store.

        Args:
            default_color: Color of new layers (defaults to settings.default_layer_color)
        """
        if default_color is None:
            from geoingest.core.config import settings

            default_color = settings.default_layer_color
        self.default_color = default_color
        self._layers: Dict[str, StoredLayer] = {}
        self._lock = asyncio.Lock()

    async def add(self, layer: IngestedLayer, color: Optional[str] = None) -> LayerInfo:
        """
        Append an ingested layer.

        Args:
            layer: Result of one successful ingestion
            color: Initial color (default: the store's default color)

        Returns:
            Metadata of the new layer
        """
        info = LayerInfo(
            id=str(uuid4()),
            name=layer.name,
            category=layer.category,
            color=color or self.default_color,
            visible=True,
            feature_count=len(layer.collection),
            geometry_types=layer.collection.geometry_types,
            source_files=list(layer.source_files),
            source_encoding=layer.encoding,
            source_srs=layer.source_srs,
        )
        async with self._lock:
            self._layers[info.id] = StoredLayer(info=info, collection=layer.collection)
        logger.info(f"Layer {info.id} added: {info.name} ({info.feature_count} features)")
        return info

    def _get(self, layer_id: str) -> StoredLayer:
        stored = self._layers.get(layer_id)
        if stored is None:
            raise LayerNotFoundError(layer_id)
        return stored

    async def get(self, layer_id: str) -> StoredLayer:
        """
        Get a layer.

        Raises:
            LayerNotFoundError: If the id is unknown
        """
        async with self._lock:
            return self._get(layer_id)

    async def list(self) -> List[LayerInfo]:
        """Metadata of every layer, in insertion order."""
        async with self._lock:
            return [stored.info for stored in self._layers.values()]

    async def set_color(self, layer_id: str, color: str) -> LayerInfo:
        """Change the display color of a layer."""
        async with self._lock:
            stored = self._get(layer_id)
            stored.info = stored.info.model_copy(update={"color": color})
            return stored.info

    async def set_visibility(self, layer_id: str, visible: bool) -> LayerInfo:
        """Show or hide a layer."""
        async with self._lock:
            stored = self._get(layer_id)
            stored.info = stored.info.model_copy(update={"visible": visible})
            return stored.info

    async def remove(self, layer_id: str) -> LayerInfo:
        """
        Remove a layer.

        Raises:
            LayerNotFoundError: If the id is unknown
        """
        async with self._lock:
            stored = self._get(layer_id)
            del self._layers[layer_id]
        logger.info(f"Layer {layer_id} removed")
        return stored.info

    async def clear(self) -> None:
        """Remove every layer."""
        async with self._lock:
            count = len(self._layers)
            self._layers.clear()
        logger.info(f"Cleared {count} layer(s)")


# Global layer store instance
layer_store = LayerStore()
