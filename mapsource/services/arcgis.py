"""Esri ArcGIS REST MapServer export requests.

Every tile is a separate ``export`` request for the tile's bounding box, so
ArcGIS layers always use a per-tile resolver.
"""

from __future__ import annotations

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

DEFAULT_FORMAT = "png32"


def export_url(service_url: str) -> str:
    """Append ``/export`` to a MapServer URL unless already present."""
    base, _, query = service_url.partition("?")
    base = base.rstrip("/")
    if not base.endswith("/export"):
        base = f"{base}/export"
    return f"{base}?{query}" if query else base


def spatial_reference(crs: str) -> str:
    """Return the numeric well-known ID Esri expects (``EPSG:3857`` -> ``3857``)."""
    normalized = tile_math.normalize_crs(crs)
    authority, _, code = normalized.partition(":")
    if code and authority in ("EPSG", "ESRI"):
        return code
    return crs


def build_export_url(
    service_url: str,
    *,
    bbox: BoundingBox,
    width: int = 256,
    height: int = 256,
    format: str = DEFAULT_FORMAT,
    transparent: bool = True,
    layer_id: int | None = None,
    crs: str | None = None,
    extra_params: Mapping[str, str] | None = None,
) -> str:
    """Build a MapServer ``export`` image request.

    Args:
        service_url: MapServer URL, with or without ``/export``.
        bbox: Box in ``(minX, minY, maxX, maxY)`` order.
        width: Image width in pixels.
        height: Image height in pixels.
        format: Esri image format (``png32``, ``png``, ``jpg``, ``gif``...).
        transparent: Request transparency for PNG and GIF formats.
        layer_id: Sublayer to show; all layers when None.
        crs: CRS of ``bbox`` and of the image; sent as ``bboxSR``/``imageSR``.
        extra_params: Additional parameters, e.g. ``time`` or ``dpi``.

    Returns:
        The export URL.
    """
    params: list[tuple[str, str]] = [
        ("bbox", urls.format_bbox(bbox)),
        ("size", f"{width},{height}"),
        ("format", format),
        ("f", "image"),
    ]
    if layer_id is not None:
        params.append(("layers", f"show:{layer_id}"))
    if crs:
        reference = spatial_reference(crs)
        params.extend([("bboxSR", reference), ("imageSR", reference)])
    lowered = format.lower()
    if transparent and ("png" in lowered or lowered == "gif"):
        params.append(("transparent", "true"))
    params.extend((extra_params or {}).items())
    return urls.with_query(export_url(service_url), params)


def validate_arcgis_config(config: layer_models.ArcGisRestConfig) -> str:
    validation.validate_base(config)
    service_url = validation.validate_url(config.service_url, "service_url")
    if config.layer_id is not None and (
        not isinstance(config.layer_id, int)
        or isinstance(config.layer_id, bool)
        or config.layer_id < 0
    ):
        raise errors.ConfigurationError(
            "INVALID_CONFIG",
            "ArcGIS layer id must be a non-negative integer",
            field="layer_id",
        )
    validation.validate_positive_int(config.tile_size, "tile_size")
    return service_url


def create_arcgis_source(
    config: layer_models.ArcGisRestConfig,
    settings: core_config.Settings | None = None,
) -> sources.RasterSource:
    """Resolve an ArcGIS config into a per-tile raster source.

    Boxes are computed in WGS84 degrees for geographic CRSes and in Web
    Mercator meters otherwise, including for CRSes this module does not
    know.
    """
    service_url = validate_arcgis_config(config)
    size = config.tile_size or (settings or core_config.get_settings()).default_tile_size
    box_crs = config.crs or tile_math.DEFAULT_CRS
    transform = config.tile_url_transform

    def resolve(address: TileAddress) -> str:
        url = build_export_url(
            service_url,
            bbox=tile_math.tile_bounds(address, box_crs),
            width=size,
            height=size,
            format=config.format or DEFAULT_FORMAT,
            transparent=True if config.transparent is None else config.transparent,
            layer_id=config.layer_id,
            crs=config.crs,
            extra_params=config.extra_params,
        )
        return layer_definition.apply_tile_transform(transform, url)

    return sources.RasterSource(
        tiles=sources.DynamicTiles(resolve),
        tile_size=size,
        minzoom=config.minzoom if config.minzoom is not None else layer_definition.DEFAULT_MINZOOM,
        maxzoom=config.maxzoom if config.maxzoom is not None else layer_definition.DEFAULT_MAXZOOM,
    )


def create_arcgis_layer(
    config: layer_models.ArcGisRestConfig,
    settings: core_config.Settings | None = None,
) -> sources.LayerDefinition:
    """Build the layer definition for an ArcGIS REST config."""
    source = create_arcgis_source(config, settings)
    return layer_definition.build_layer_definition(config, "arcgis-raster", source)
