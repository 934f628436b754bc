"""Dispatch from a layer config to its protocol builder."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mapsource.core import errors
from mapsource.models import layers as layer_models
from mapsource.services import arcgis, wms, wmts, xyz

if TYPE_CHECKING:
    from mapsource.core import config as core_config
    from mapsource.models import sources


def create_layer(
    config: layer_models.LayerConfig,
    settings: core_config.Settings | None = None,
) -> sources.LayerDefinition:
    """Build a layer definition for any synchronously resolvable config.

    Raises:
        ConfigurationError: For invalid configs, or for a capabilities-driven
            WMTS config, which needs ``create_layer_async``.
    """
    match config:
        case layer_models.WmsRasterConfig():
            return wms.create_wms_layer(config, settings)
        case layer_models.WmtsExplicitConfig():
            return wmts.create_wmts_layer(config, settings)
        case layer_models.ArcGisRestConfig():
            return arcgis.create_arcgis_layer(config, settings)
        case layer_models.XyzRasterConfig():
            return xyz.create_xyz_layer(config, settings)
        case layer_models.WmtsCapabilitiesConfig():
            raise errors.ConfigurationError(
                "INVALID_CONFIG",
                "Capabilities-driven WMTS layers must be built asynchronously",
                field="capabilities_url",
            )
    raise TypeError(f"Unsupported layer config: {type(config).__name__}")


async def create_layer_async(
    config: layer_models.LayerConfig,
    settings: core_config.Settings | None = None,
    **fetch_options: Any,
) -> sources.LayerDefinition:
    """Build a layer definition, fetching capabilities when needed."""
    if isinstance(config, layer_models.WmtsCapabilitiesConfig):
        return await wmts.create_wmts_layer_from_capabilities(
            config, settings, **fetch_options
        )
    return create_layer(config, settings)
