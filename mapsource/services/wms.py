"""WMS GetMap and GetLegendGraphic request construction.

A WMS layer in Web Mercator is emitted as a static template carrying the
``{bbox-epsg-3857}`` placeholder, which the host fills per tile. Any other
CRS, or a layer with a tile URL transform, gets a per-tile resolver instead.

Example:
    Build a single GetMap URL:
        >>> build_wms_url(
        ...     "https://example.com/wms",
        ...     layers="topo",
        ...     bbox=(-180, -90, 180, 90),
        ...     crs="EPSG:4326",
        ...     version="1.1.1",
        ... )
        'https://example.com/wms?SERVICE=WMS&VERSION=1.1.1&...&BBOX=-90,-180,90,180'
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING

from mapsource.core import config as core_config
from mapsource.core import errors
from mapsource.models import layers as layer_models
from mapsource.models import sources
from mapsource.services import layer_definition, validation
from mapsource.utils import tile_math, urls

if TYPE_CHECKING:
    from mapsource.models.sources import BoundingBox, TileAddress

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "image/png"
DEFAULT_VERSION = "1.3.0"
DEFAULT_CRS = tile_math.DEFAULT_CRS
SUPPORTED_VERSIONS = ("1.1.1", "1.3.0")
BBOX_PLACEHOLDER = "{bbox-epsg-3857}"


def _layer_names(value: str | list[str]) -> list[str]:
    if isinstance(value, str):
        return [name.strip() for name in value.split(",") if name.strip()]
    return [name for name in value if name]


def normalize_styles(styles: str | list[str] | None, layer_count: int) -> str:
    """Return the STYLES value matching ``layer_count`` layers.

    Missing or empty styles are padded with empty strings so each layer
    gets its default style. A string is passed through untouched.

    Raises:
        ConfigurationError: STYLES_MISMATCH when a non-empty style list does
            not have one entry per layer.
    """
    if isinstance(styles, str):
        return styles
    if not styles:
        return ",".join([""] * layer_count)
    if len(styles) != layer_count:
        raise errors.ConfigurationError(
            "STYLES_MISMATCH",
            f"Got {len(styles)} styles for {layer_count} layers",
            field="styles",
        )
    return ",".join(styles)


def supports_transparency(image_format: str) -> bool:
    lowered = image_format.lower()
    return "png" in lowered or "gif" in lowered


def build_wms_url(
    base_url: str,
    *,
    layers: str | list[str],
    bbox: BoundingBox | str,
    styles: str | list[str] | None = None,
    format: str = DEFAULT_FORMAT,
    transparent: bool = True,
    version: str = DEFAULT_VERSION,
    crs: str = DEFAULT_CRS,
    width: int = 256,
    height: int = 256,
    extra_params: Mapping[str, str] | None = None,
) -> str:
    """Build a GetMap URL.

    Args:
        base_url: Service endpoint.
        layers: Layer name(s); lists are comma-joined.
        bbox: Box in natural ``(minX, minY, maxX, maxY)`` order, or a
            placeholder string passed through untouched.
        styles: Style name(s) matching ``layers`` positionally.
        format: Image MIME type.
        transparent: Request transparency (PNG and GIF formats only).
        version: ``1.1.1`` or ``1.3.0``.
        crs: CRS code, sent as ``CRS`` (1.3.0) or ``SRS`` (1.1.1).
        width: Image width in pixels.
        height: Image height in pixels.
        extra_params: Vendor parameters added before CRS and BBOX.

    Returns:
        The GetMap URL with BBOX in the axis order of ``version``.

    Raises:
        ConfigurationError: If styles do not match layers.
    """
    names = _layer_names(layers)
    params: list[tuple[str, str]] = [
        ("SERVICE", "WMS"),
        ("VERSION", version),
        ("REQUEST", "GetMap"),
        ("LAYERS", ",".join(names)),
        ("STYLES", normalize_styles(styles, len(names))),
        ("FORMAT", format),
        ("WIDTH", str(width)),
        ("HEIGHT", str(height)),
    ]
    if transparent and supports_transparency(format):
        params.append(("TRANSPARENT", "TRUE"))
    params.extend((extra_params or {}).items())
    params.append(("CRS" if version == "1.3.0" else "SRS", crs))

    if isinstance(bbox, str):
        bbox_value = bbox
    else:
        bbox_value = urls.format_bbox(tile_math.apply_axis_order(bbox, crs, version))
    params.append(("BBOX", bbox_value))

    return urls.with_query(base_url, params)


def build_wms_legend_url(
    base_url: str,
    layer: str,
    *,
    style: str | None = None,
    format: str = DEFAULT_FORMAT,
    version: str = DEFAULT_VERSION,
    extra_params: Mapping[str, str] | None = None,
) -> str:
    """Build a GetLegendGraphic URL for one layer."""
    params: list[tuple[str, str]] = [
        ("SERVICE", "WMS"),
        ("VERSION", version),
        ("REQUEST", "GetLegendGraphic"),
        ("LAYER", layer),
        ("FORMAT", format),
    ]
    params.extend((extra_params or {}).items())
    if style:
        params.append(("STYLE", style))
    return urls.with_query(base_url, params)


def validate_wms_config(config: layer_models.WmsRasterConfig) -> str:
    """Validate a WMS config and return its normalized base URL."""
    validation.validate_base(config)
    base_url = validation.validate_url(config.base_url, "base_url")
    names = _layer_names(config.layers) if isinstance(config.layers, str | list) else []
    if not names:
        raise errors.ConfigurationError(
            "MISSING_FIELD", "At least one WMS layer is required", field="layers"
        )
    if config.version is not None and config.version not in SUPPORTED_VERSIONS:
        raise errors.ConfigurationError(
            "INVALID_VERSION",
            f"Unsupported WMS version {config.version!r}",
            field="version",
        )
    validation.validate_positive_int(config.tile_width, "tile_width")
    validation.validate_positive_int(config.tile_height, "tile_height")
    normalize_styles(config.styles, len(names))
    return base_url


def create_wms_source(
    config: layer_models.WmsRasterConfig,
    settings: core_config.Settings | None = None,
) -> sources.RasterSource:
    """Resolve a WMS config into a raster source.

    Raises:
        ConfigurationError: If the config is invalid.
    """
    base_url = validate_wms_config(config)
    default_size = (settings or core_config.get_settings()).default_tile_size
    width = config.tile_width or default_size
    height = config.tile_height or width
    crs = config.crs or DEFAULT_CRS
    version = config.version or DEFAULT_VERSION
    image_format = config.format or DEFAULT_FORMAT
    transparent = True if config.transparent is None else config.transparent

    def url_for(bbox: BoundingBox | str) -> str:
        return build_wms_url(
            base_url,
            layers=config.layers,
            bbox=bbox,
            styles=config.styles,
            format=image_format,
            transparent=transparent,
            version=version,
            crs=crs,
            width=width,
            height=height,
            extra_params=config.extra_params,
        )

    tiles: sources.TileSource
    if tile_math.is_web_mercator(crs) and config.tile_url_transform is None:
        tiles = sources.StaticTiles([url_for(BBOX_PLACEHOLDER)])
    else:
        transform = config.tile_url_transform

        def resolve(address: TileAddress) -> str:
            url = url_for(tile_math.tile_bounds(address, crs))
            return layer_definition.apply_tile_transform(transform, url)

        tiles = sources.DynamicTiles(resolve)
        logger.debug("WMS layer %s uses per-tile URLs in %s", config.id, crs)

    return sources.RasterSource(
        tiles=tiles,
        tile_size=width,
        minzoom=config.minzoom if config.minzoom is not None else layer_definition.DEFAULT_MINZOOM,
        maxzoom=config.maxzoom if config.maxzoom is not None else layer_definition.DEFAULT_MAXZOOM,
    )


def create_wms_layer(
    config: layer_models.WmsRasterConfig,
    settings: core_config.Settings | None = None,
) -> sources.LayerDefinition:
    """Build the layer definition for a WMS config.

    Args:
        config: WMS layer configuration.
        settings: Settings providing the default tile size.

    Returns:
        Layer definition of type ``wms-raster``.

    Raises:
        ConfigurationError: If the config is invalid.
    """
    source = create_wms_source(config, settings)
    names = _layer_names(config.layers)
    if isinstance(config.styles, str):
        first_style = config.styles.split(",")[0]
    else:
        first_style = (config.styles or [None])[0]
    legend_url = build_wms_legend_url(
        urls.normalize_url(config.base_url),
        names[0],
        style=first_style or None,
        format=DEFAULT_FORMAT,
        version=config.version or DEFAULT_VERSION,
    )
    return layer_definition.build_layer_definition(
        config, "wms-raster", source, {"legendUrl": legend_url}
    )
