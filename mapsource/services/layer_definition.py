"""Shared assembly of layer definitions and tile URL transforms."""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any

from mapsource.models import sources

if TYPE_CHECKING:
    from mapsource.models import layers

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "overlay"
DEFAULT_MINZOOM = 0
DEFAULT_MAXZOOM = 22


def apply_tile_transform(
    transform: layers.TileUrlTransform | None, url: str
) -> str:
    """Run a synchronous URL rewrite hook on one tile URL.

    Per-tile resolution cannot await, so when the hook returns an awaitable
    it is discarded and the URL is returned unchanged.
    """
    if transform is None:
        return url
    result = transform(url)
    if inspect.isawaitable(result):
        if inspect.iscoroutine(result):
            result.close()
        logger.debug("Ignoring asynchronous tile URL transform for %s", url)
        return url
    return str(result)


def source_id_for(layer_id: str) -> str:
    return f"{layer_id}-source"


def build_layer_definition(
    config: layers.BaseLayerConfig,
    layer_type: sources.LayerType,
    source: sources.RasterSource,
    extra_metadata: dict[str, Any] | None = None,
) -> sources.LayerDefinition:
    """Wrap a raster source into a single-layer definition.

    Args:
        config: Layer config providing id, opacity, zoom range and metadata.
        layer_type: Kind discriminator for the definition.
        source: Resolved raster source.
        extra_metadata: Kind-specific metadata merged last.

    Returns:
        A definition with one ``raster`` layer spec referencing the source.
    """
    source_id = source_id_for(config.id)
    opacity = config.opacity if config.opacity is not None else 1
    layer_spec: dict[str, Any] = {
        "id": f"{config.id}-layer",
        "type": "raster",
        "source": source_id,
        "paint": {"raster-opacity": opacity},
    }
    if config.minzoom is not None:
        layer_spec["minzoom"] = config.minzoom
    if config.maxzoom is not None:
        layer_spec["maxzoom"] = config.maxzoom
    if config.visible is False:
        layer_spec["layout"] = {"visibility": "none"}

    metadata: dict[str, Any] = dict(config.metadata or {})
    metadata.update(
        {
            "title": config.title,
            "attribution": config.attribution,
            "minZoom": source.minzoom,
            "maxZoom": source.maxzoom,
        }
    )
    metadata.update(extra_metadata or {})

    return sources.LayerDefinition(
        id=config.id,
        type=layer_type,
        category=config.category or DEFAULT_CATEGORY,
        source_id=source_id,
        source=source,
        layers=[layer_spec],
        metadata=metadata,
    )
