"""Layer configuration storage and resolution endpoints.

Layer configs are posted as persisted envelopes, validated and migrated, and
stored in their canonical current-version form.

Example:
    Store an XYZ layer and fetch its source specification:
        >>> client.post("/api/layers", json={
        ...     "_version": 1, "_type": "xyz-raster", "id": "osm",
        ...     "tiles": ["https://tile.example/{z}/{x}/{y}.png"],
        ... })
        >>> client.get("/api/layers/osm/source").json()["sourceSpec"]["tiles"]
        ['https://tile.example/{z}/{x}/{y}.png']
"""

import logging
from typing import Any

import fastapi
from fastapi import responses

from mapsource.core import config
from mapsource.db import database
from mapsource.db import models as db_models
from mapsource.models import layers as layer_models
from mapsource.models import sources
from mapsource.persistence import registry
from mapsource.services import layers as layer_service
from mapsource.services import tile_registry, wmts

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/api/layers", tags=["layers"])


def _get_repo(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> database.LayerRepositoryProtocol:
    """Resolve the layer repository dependency.

    Args:
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        LayerRepositoryProtocol implementation
            (PostgresLayerRepository in production).
    """
    return database.get_layer_repository(settings)


def _load(repo: database.LayerRepositoryProtocol, layer_id: str) -> db_models.StoredLayer:
    stored = repo.get(layer_id)
    if stored is None:
        raise fastapi.HTTPException(status_code=404, detail="Layer not found")
    return stored


async def resolve_definition(
    stored: db_models.StoredLayer, settings: config.Settings
) -> sources.LayerDefinition:
    """Rebuild a stored layer's definition, fetching capabilities if needed."""
    definition, warnings = await registry.deserialize_layer_async(
        stored.config, settings, timeout=settings.capabilities_timeout_seconds
    )
    for warning in warnings:
        logger.warning("Layer %s: %s", stored.id, warning.message)
    return definition


@router.post("", status_code=201)
async def create_layer(
    envelope: dict[str, Any] = fastapi.Body(...),  # noqa: B008
    repo: database.LayerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, Any]:
    """Validate and store a persisted layer envelope.

    The envelope is migrated to the current schema version and the layer is
    built once so configuration errors surface at save time. Capabilities-
    driven WMTS layers are only checked statically; their capabilities are
    fetched when the layer is resolved.

    Returns:
        ``{"id", "type", "warnings"}``.

    Raises:
        PersistenceError: If the envelope is invalid (mapped to 422).
        ConfigurationError: If the config cannot be built (mapped to 422).
    """
    result = registry.from_persisted_config(
        envelope, allow_skipped_migrations=settings.allow_skipped_migrations
    )
    if isinstance(result.config, layer_models.WmtsCapabilitiesConfig):
        wmts.validate_capabilities_config(result.config)
    else:
        layer_service.create_layer(result.config, settings)

    canonical = registry.to_persisted_config(result.config)
    stored = repo.add(db_models.StoredLayer.from_envelope(canonical))
    tile_registry.get_tile_registry().unregister_source(stored.id)
    logger.info("Stored %s layer %s", stored.layer_type, stored.id)
    return {
        "id": stored.id,
        "type": stored.layer_type,
        "warnings": [warning.as_dict() for warning in result.warnings],
    }


@router.get("")
async def list_layers(
    repo: database.LayerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> list[dict[str, Any]]:
    """List all stored layers, newest first."""
    return [layer.to_dict() for layer in repo.all()]


@router.get("/{layer_id}")
async def get_layer(
    layer_id: str,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Get one stored layer.

    Raises:
        HTTPException: If the layer is not found (404).
    """
    return _load(repo, layer_id).to_dict()


@router.delete("/{layer_id}", status_code=204)
async def delete_layer(
    layer_id: str,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> responses.Response:
    """Delete a stored layer.

    Raises:
        HTTPException: If the layer is not found (404).
    """
    if not repo.delete(layer_id):
        raise fastapi.HTTPException(status_code=404, detail="Layer not found")
    tile_registry.get_tile_registry().unregister_source(layer_id)
    return responses.Response(status_code=204)


@router.get("/{layer_id}/source")
async def get_layer_source(
    layer_id: str,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, Any]:
    """Resolve a stored layer into a source spec and drawable layers.

    Static sources list their upstream templates. Per-tile sources advertise
    this service's tile redirect template instead.

    Returns:
        ``{"sourceId", "sourceSpec", "layers", "metadata"}``.
    """
    stored = _load(repo, layer_id)
    definition = await resolve_definition(stored, settings)
    spec = definition.source.to_spec()
    if isinstance(definition.source.tiles, sources.DynamicTiles):
        base = settings.public_base_url.rstrip("/")
        spec["tiles"] = [f"{base}/tiles/{layer_id}/{{z}}/{{x}}/{{y}}"]
    return {
        "sourceId": definition.source_id,
        "sourceSpec": spec,
        "layers": definition.layers,
        "metadata": definition.metadata,
    }


@router.get("/{layer_id}/legend")
async def get_layer_legend(
    layer_id: str,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> responses.RedirectResponse:
    """Redirect to the WMS GetLegendGraphic image of a layer.

    Raises:
        HTTPException: If the layer is not found or has no legend (404).
    """
    stored = _load(repo, layer_id)
    if stored.layer_type != "wms-raster":
        raise fastapi.HTTPException(status_code=404, detail="Layer has no legend")
    definition = await resolve_definition(stored, settings)
    return responses.RedirectResponse(definition.metadata["legendUrl"])
