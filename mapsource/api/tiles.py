"""Per-tile redirect endpoint.

Every stored layer can be drawn through this service: the tile request is
resolved to the upstream URL (WMS GetMap, WMTS GetTile, ArcGIS export or
XYZ) and the client is redirected there. Resolvers are cached in the tile
source registry until the layer is replaced or deleted.

Example:
    Request a tile:
        >>> response = client.get("/tiles/roads/3/4/2", follow_redirects=False)
        >>> response.headers["location"]
        'https://example.com/wms?SERVICE=WMS&...&BBOX=...'
"""

import logging

import fastapi
from fastapi import responses

from mapsource.api import layers as api_layers
from mapsource.core import config
from mapsource.db import database
from mapsource.models import sources
from mapsource.services import tile_registry, validation

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/tiles", tags=["tiles"])


@router.get("/{layer_id}/{z}/{x}/{y}")
async def redirect_tile(
    layer_id: str,
    z: int,
    x: int,
    y: int,
    repo: database.LayerRepositoryProtocol = fastapi.Depends(api_layers._get_repo),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> responses.RedirectResponse:
    """Redirect a tile request to the upstream service.

    Args:
        layer_id: Stored layer identifier.
        z: Zoom level.
        x: Tile column.
        y: Tile row (XYZ, north origin).
        repo: Layer repository (injected via FastAPI Depends).
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        HTTP 307 redirect to the resolved tile URL.

    Raises:
        HTTPException: If the layer is not found (404) or the tile address is
            outside the supported zoom range or the zoom's grid (400).
    """
    if not validation.MIN_ZOOM <= z <= validation.MAX_ZOOM:
        raise fastapi.HTTPException(status_code=400, detail="Zoom level out of range")
    if not (0 <= x < 2**z and 0 <= y < 2**z):
        raise fastapi.HTTPException(status_code=400, detail="Tile address out of range")

    registry = tile_registry.get_tile_registry()
    if not registry.has_source(layer_id):
        stored = repo.get(layer_id)
        if stored is None:
            raise fastapi.HTTPException(status_code=404, detail="Layer not found")
        definition = await api_layers.resolve_definition(stored, settings)
        registry.register_source(layer_id, tile_registry.resolver_for(definition.source))

    url = registry.resolve_tile(layer_id, sources.TileAddress(x, y, z))
    return responses.RedirectResponse(url)
