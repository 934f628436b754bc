"""XYZ and TMS tile templates.

Templates use ``{z}``, ``{x}``, ``{y}`` and an optional ``{s}`` subdomain
placeholder. Without a transform hook the templates are handed to the host
with ``{s}`` expanded into one URL per subdomain. With a hook each tile is
resolved here, and the subdomain is picked deterministically from the tile
address so a tile always comes from the same host.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from mapsource.core import config as core_config
from mapsource.core import errors
from mapsource.models import layers as layer_models
from mapsource.models import sources
from mapsource.services import layer_definition, validation

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mapsource.models.sources import TileAddress

SUBDOMAIN_PLACEHOLDER = "{s}"


def flip_y(y: int, z: int) -> int:
    """Convert between XYZ (north origin) and TMS (south origin) rows."""
    return 2**z - 1 - y


def pick_subdomain(address: TileAddress, subdomains: Sequence[str]) -> str:
    return subdomains[(address.x + address.y + address.z) % len(subdomains)]


def build_xyz_tile_url(
    template: str,
    address: TileAddress,
    *,
    tms: bool = False,
    subdomains: Sequence[str] | None = None,
) -> str:
    """Fill an XYZ template for one tile.

    Example:
        >>> build_xyz_tile_url("https://{s}.tile.example/{z}/{x}/{y}.png",
        ...                    TileAddress(1, 0, 1), tms=True, subdomains=["a", "b"])
        'https://a.tile.example/1/1/1.png'
    """
    y = flip_y(address.y, address.z) if tms else address.y
    url = (
        template.replace("{z}", str(address.z))
        .replace("{x}", str(address.x))
        .replace("{y}", str(y))
    )
    if subdomains and SUBDOMAIN_PLACEHOLDER in url:
        url = url.replace(SUBDOMAIN_PLACEHOLDER, pick_subdomain(address, subdomains))
    return url


def expand_subdomains(templates: Sequence[str], subdomains: Sequence[str] | None) -> list[str]:
    """Expand ``{s}`` into one template per subdomain, keeping order."""
    expanded: list[str] = []
    for template in templates:
        if subdomains and SUBDOMAIN_PLACEHOLDER in template:
            expanded.extend(
                template.replace(SUBDOMAIN_PLACEHOLDER, subdomain) for subdomain in subdomains
            )
        else:
            expanded.append(template)
    return expanded


def validate_xyz_config(config: layer_models.XyzRasterConfig) -> list[str]:
    """Validate an XYZ config and return its normalized templates."""
    validation.validate_base(config)
    if not isinstance(config.tiles, list) or not config.tiles:
        raise errors.ConfigurationError(
            "MISSING_FIELD", "At least one tile URL template is required", field="tiles"
        )
    templates = [
        validation.validate_url(template, f"tiles[{index}]")
        for index, template in enumerate(config.tiles)
    ]
    validation.validate_positive_int(config.tile_size, "tile_size")
    return templates


def create_xyz_source(
    config: layer_models.XyzRasterConfig,
    settings: core_config.Settings | None = None,
) -> sources.RasterSource:
    templates = validate_xyz_config(config)
    size = config.tile_size or (settings or core_config.get_settings()).default_tile_size
    tms = bool(config.tms)
    subdomains = list(config.subdomains or [])
    transform = config.tile_url_transform

    tiles: sources.TileSource
    if transform is None:
        tiles = sources.StaticTiles(expand_subdomains(templates, subdomains))
        scheme: sources.TileScheme = "tms" if tms else "xyz"
    else:
        template = templates[0]

        def resolve(address: TileAddress) -> str:
            url = build_xyz_tile_url(template, address, tms=tms, subdomains=subdomains)
            return layer_definition.apply_tile_transform(transform, url)

        tiles = sources.DynamicTiles(resolve)
        # The resolver already flipped the row.
        scheme = "xyz"

    return sources.RasterSource(
        tiles=tiles,
        tile_size=size,
        minzoom=config.minzoom if config.minzoom is not None else layer_definition.DEFAULT_MINZOOM,
        maxzoom=config.maxzoom if config.maxzoom is not None else layer_definition.DEFAULT_MAXZOOM,
        scheme=scheme,
    )


def create_xyz_layer(
    config: layer_models.XyzRasterConfig,
    settings: core_config.Settings | None = None,
) -> sources.LayerDefinition:
    """Build the layer definition for an XYZ or TMS config."""
    source = create_xyz_source(config, settings)
    return layer_definition.build_layer_definition(config, "xyz-raster", source)
