"""WMTS tile URL construction, explicit or resolved from capabilities.

A capabilities-driven config is resolved into an explicit one: the layer is
looked up, then a matrix set, format and style are selected, and the chosen
ResourceURL (or a KVP GetTile template) becomes the tile template.

Example:
    Build a layer from an explicit template:
        >>> config = WmtsExplicitConfig(
        ...     id="topo",
        ...     tile_url_template="https://example.com/wmts/{TileMatrix}/{TileRow}/{TileCol}.png",
        ...     matrix_set="GoogleMapsCompatible",
        ...     tile_matrix=[WmtsTileMatrix(zoom=0, matrix_width=1, ...)],
        ... )
        >>> create_wmts_layer(config).source.tile_size
        256
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from mapsource.core import config as core_config
from mapsource.core import errors
from mapsource.models import layers as layer_models
from mapsource.models import sources
from mapsource.services import capabilities as caps_service
from mapsource.services import layer_definition, selection, validation

if TYPE_CHECKING:
    from mapsource.models.capabilities import Capabilities
    from mapsource.models.sources import TileAddress

logger = logging.getLogger(__name__)

DEFAULT_TILE_SIZE = 256
KVP_TEMPLATE_PARAMS = (
    "SERVICE=WMTS&REQUEST=GetTile&VERSION=1.0.0&LAYER={Layer}&STYLE={Style}"
    "&TILEMATRIXSET={TileMatrixSet}&TILEMATRIX={TileMatrix}"
    "&TILEROW={TileRow}&TILECOL={TileCol}&FORMAT={Format}"
)


def _matrix_for_zoom(
    matrices: list[layer_models.WmtsTileMatrix], zoom: int
) -> layer_models.WmtsTileMatrix:
    if 0 <= zoom < len(matrices):
        return matrices[zoom]
    # Past the last level the highest-resolution matrix is reused.
    return matrices[-1]


def build_wmts_tile_url(
    template: str,
    *,
    tile_matrix: str,
    col: int,
    row: int,
    matrix_set: str | None = None,
    format: str | None = None,
    style: str | None = None,
    dimensions: Mapping[str, str] | None = None,
) -> str:
    """Fill the placeholders of a WMTS RESTful or KVP template.

    Args:
        template: Template with ``{TileMatrix}``, ``{TileCol}``, ``{TileRow}``
            and optional ``{TileMatrixSet}``, ``{Format}``, ``{Style}`` and
            dimension placeholders.
        tile_matrix: Matrix identifier.
        col: Tile column.
        row: Tile row.
        matrix_set: Matrix set identifier.
        format: Image format.
        style: Style identifier.
        dimensions: Dimension values keyed by placeholder name.

    Returns:
        The filled URL. Unknown placeholders are left as they are.
    """
    url = (
        template.replace("{TileMatrix}", tile_matrix)
        .replace("{TileCol}", str(col))
        .replace("{TileRow}", str(row))
    )
    if matrix_set is not None:
        url = url.replace("{TileMatrixSet}", matrix_set)
    if format is not None:
        url = url.replace("{Format}", format)
    if style is not None:
        url = url.replace("{Style}", style)
    for name, value in (dimensions or {}).items():
        url = url.replace(f"{{{name}}}", value)
    return url


def validate_wmts_config(config: layer_models.WmtsExplicitConfig) -> None:
    validation.validate_base(config)
    if not isinstance(config.tile_url_template, str) or not config.tile_url_template.strip():
        raise errors.ConfigurationError(
            "MISSING_FIELD", "A tile URL template is required", field="tile_url_template"
        )
    validation.validate_url(config.tile_url_template, "tile_url_template")
    if not config.matrix_set:
        raise errors.ConfigurationError(
            "MISSING_FIELD", "A tile matrix set is required", field="matrix_set"
        )
    if not config.tile_matrix:
        raise errors.ConfigurationError(
            "MISSING_FIELD", "At least one tile matrix is required", field="tile_matrix"
        )
    for index, matrix in enumerate(config.tile_matrix):
        field = f"tile_matrix[{index}]"
        if matrix.zoom < 0:
            raise errors.ConfigurationError(
                "INVALID_ZOOM", "Tile matrix zoom must be non-negative", field=f"{field}.zoom"
            )
        for name in ("matrix_width", "matrix_height", "tile_width", "tile_height"):
            validation.validate_positive_int(getattr(matrix, name), f"{field}.{name}")


def create_wmts_source(
    config: layer_models.WmtsExplicitConfig,
    settings: core_config.Settings | None = None,
) -> sources.RasterSource:
    """Resolve an explicit WMTS config into a per-tile raster source.

    Raises:
        ConfigurationError: If the config is invalid.
    """
    validate_wmts_config(config)
    default_size = (settings or core_config.get_settings()).default_tile_size
    matrices = list(config.tile_matrix)
    template = config.tile_url_template.strip()
    transform = config.tile_url_transform

    def resolve(address: TileAddress) -> str:
        matrix = _matrix_for_zoom(matrices, address.z)
        url = build_wmts_tile_url(
            template,
            tile_matrix=matrix.identifier or str(matrix.zoom),
            col=address.x,
            row=address.y,
            matrix_set=config.matrix_set,
            format=config.format,
            style=config.style,
            dimensions=config.dimensions,
        )
        return layer_definition.apply_tile_transform(transform, url)

    return sources.RasterSource(
        tiles=sources.DynamicTiles(resolve),
        tile_size=matrices[0].tile_width or default_size or DEFAULT_TILE_SIZE,
        minzoom=config.minzoom if config.minzoom is not None else 0,
        maxzoom=config.maxzoom if config.maxzoom is not None else len(matrices) - 1,
    )


def create_wmts_layer(
    config: layer_models.WmtsExplicitConfig,
    settings: core_config.Settings | None = None,
) -> sources.LayerDefinition:
    """Build the layer definition for an explicit WMTS config.

    Raises:
        ConfigurationError: If the config is invalid.
    """
    source = create_wmts_source(config, settings)
    return layer_definition.build_layer_definition(
        config, "wmts-raster", source, {"matrixSet": config.matrix_set}
    )


def _kvp_template(capabilities_url: str) -> str:
    base = capabilities_url.split("?", 1)[0]
    return f"{base}?{KVP_TEMPLATE_PARAMS}"


def validate_capabilities_config(config: layer_models.WmtsCapabilitiesConfig) -> str:
    """Validate a capabilities-driven config and return its normalized URL."""
    validation.validate_base(config)
    url = validation.validate_url(config.capabilities_url, "capabilities_url")
    if not isinstance(config.layer_id, str) or not config.layer_id.strip():
        raise errors.ConfigurationError(
            "MISSING_FIELD", "A WMTS layer identifier is required", field="layer_id"
        )
    return url


def resolve_from_capabilities(
    config: layer_models.WmtsCapabilitiesConfig,
    capabilities: Capabilities,
) -> layer_models.WmtsExplicitConfig:
    """Turn a capabilities-driven config into an explicit one.

    Caller choices (matrix set, format, style, dimensions) win; the rest is
    filled by the selection heuristics and the layer's dimension defaults.

    Args:
        config: Capabilities-driven layer configuration.
        capabilities: Parsed WMTS capabilities.

    Returns:
        An explicit config sharing the base fields of ``config``.

    Raises:
        ConfigurationError: ``LAYER_NOT_FOUND``, ``NO_MATRIX_SET``,
            ``NO_FORMAT`` or ``NO_STYLE`` when nothing usable is advertised.
    """
    capabilities_url = validate_capabilities_config(config)
    layer = capabilities.find_layer(config.layer_id)
    if layer is None:
        raise errors.ConfigurationError(
            "LAYER_NOT_FOUND",
            f"Layer {config.layer_id!r} is not advertised by {capabilities_url}",
            field="layer_id",
        )

    matrix_set_id = config.matrix_set or selection.select_matrix_set(
        layer, capabilities.tile_matrix_sets, preferred_crs=config.preferred_crs
    )
    matrix_set = capabilities.find_tile_matrix_set(matrix_set_id) if matrix_set_id else None
    if matrix_set is None or not matrix_set.matrices:
        raise errors.ConfigurationError(
            "NO_MATRIX_SET",
            f"No usable tile matrix set for layer {config.layer_id!r}",
            field="matrix_set",
        )

    image_format = selection.select_format(
        layer, [config.format] if config.format else None
    )
    if image_format is None:
        raise errors.ConfigurationError(
            "NO_FORMAT", f"Layer {config.layer_id!r} advertises no format", field="format"
        )
    style = selection.select_style(layer, config.style)
    if style is None:
        raise errors.ConfigurationError(
            "NO_STYLE", f"Layer {config.layer_id!r} advertises no style", field="style"
        )

    resource = selection.select_resource_url(layer, format=image_format)
    if resource is not None and resource.format and resource.format != image_format:
        logger.debug(
            "No %s ResourceURL for layer %s; using the %s template %s",
            image_format,
            config.layer_id,
            resource.format,
            resource.template,
        )
    template = resource.template if resource else _kvp_template(capabilities_url)
    template = (
        template.replace("{Layer}", config.layer_id)
        .replace("{Style}", style)
        .replace("{TileMatrixSet}", matrix_set.identifier)
    )

    dimensions = {
        dimension.identifier: dimension.default
        for dimension in layer.dimensions
        if dimension.default is not None
    }
    dimensions.update(config.dimensions or {})

    matrices = [
        layer_models.WmtsTileMatrix(
            zoom=index,
            matrix_width=matrix.matrix_width,
            matrix_height=matrix.matrix_height,
            tile_width=matrix.tile_width,
            tile_height=matrix.tile_height,
            top_left_corner=matrix.top_left_corner,
            scale_denominator=matrix.scale_denominator,
            identifier=matrix.identifier,
        )
        for index, matrix in enumerate(matrix_set.matrices)
    ]
    logger.debug(
        "Resolved WMTS layer %s: matrix set %s, format %s, style %s",
        config.layer_id,
        matrix_set.identifier,
        image_format,
        style,
    )

    return layer_models.WmtsExplicitConfig(
        id=config.id,
        title=config.title or layer.title,
        attribution=config.attribution,
        minzoom=config.minzoom,
        maxzoom=config.maxzoom,
        opacity=config.opacity,
        visible=config.visible,
        category=config.category,
        metadata=config.metadata,
        tile_url_transform=config.tile_url_transform,
        tile_url_template=template,
        matrix_set=matrix_set.identifier,
        tile_matrix=matrices,
        format=image_format,
        style=style,
        dimensions=dimensions or None,
    )


async def resolve_capabilities_config(
    config: layer_models.WmtsCapabilitiesConfig,
    **fetch_options: Any,
) -> layer_models.WmtsExplicitConfig:
    """Fetch the capabilities of ``config`` and resolve it.

    Args:
        config: Capabilities-driven layer configuration.
        **fetch_options: Passed to ``capabilities.fetch_wmts_capabilities``
            (``timeout``, ``abort``, ``headers``, ``request_transform``,
            ``client``).

    Raises:
        ConfigurationError: If the config is invalid or cannot be resolved.
        NetworkError: If the fetch fails.
        ParseError: If the document cannot be parsed.
    """
    url = validate_capabilities_config(config)
    document = await caps_service.fetch_wmts_capabilities(url, **fetch_options)
    return resolve_from_capabilities(config, document)


async def create_wmts_layer_from_capabilities(
    config: layer_models.WmtsCapabilitiesConfig,
    settings: core_config.Settings | None = None,
    **fetch_options: Any,
) -> sources.LayerDefinition:
    """Fetch, resolve and build a capabilities-driven WMTS layer."""
    explicit = await resolve_capabilities_config(config, **fetch_options)
    definition = create_wmts_layer(explicit, settings)
    definition.metadata["capabilitiesUrl"] = config.capabilities_url
    return definition
