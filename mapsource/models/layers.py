"""Layer configuration records for every supported service kind.

A layer configuration is a closed set of variant dataclasses sharing the
fields of ``BaseLayerConfig``. Consumers dispatch on the concrete class with
``match`` statements, so adding a new kind means adding a new variant and a
new case at each consumption site.

Optional fields default to ``None`` and are resolved to protocol defaults by
the service builders at resolution time; a config object is never mutated
to hold its defaults.

Example:
    Describe a WMS overlay:
        >>> from mapsource.models.layers import WmsRasterConfig
        >>> config = WmsRasterConfig(
        ...     id="roads",
        ...     base_url="https://example.com/wms",
        ...     layers=["roads", "labels"],
        ...     crs="EPSG:4326",
        ...     version="1.1.1",
        ... )
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from typing import Any, Literal

LayerCategory = Literal["base", "overlay", "annotation"]
WmsVersion = Literal["1.1.1", "1.3.0"]

# Rewrites a tile URL, e.g. to sign it. Must be synchronous when used per tile.
TileUrlTransform = Callable[[str], Any]


@dataclasses.dataclass(kw_only=True)
class BaseLayerConfig:
    """Fields shared by every layer kind.

    Attributes:
        id: Unique layer identifier (letters, digits, ``_`` and ``-``).
        title: Human-readable title.
        attribution: Attribution text shown by the host.
        minzoom: Minimum zoom at which the layer is visible.
        maxzoom: Maximum zoom at which the layer is visible.
        opacity: Raster opacity in [0, 1].
        visible: Initial visibility.
        category: Layer category used by the host for ordering.
        metadata: Caller metadata merged into the layer definition.
        tile_url_transform: Optional per-tile URL rewrite hook. Not persisted
            and ignored in equality comparisons.
    """

    id: str
    title: str | None = None
    attribution: str | None = None
    minzoom: int | None = None
    maxzoom: int | None = None
    opacity: float | None = None
    visible: bool | None = None
    category: LayerCategory | None = None
    metadata: dict[str, Any] | None = None
    tile_url_transform: TileUrlTransform | None = dataclasses.field(
        default=None, compare=False, repr=False
    )


@dataclasses.dataclass(kw_only=True)
class WmsRasterConfig(BaseLayerConfig):
    """WMS GetMap layer configuration."""

    base_url: str
    layers: str | list[str]
    styles: str | list[str] | None = None
    format: str | None = None
    transparent: bool | None = None
    version: WmsVersion | None = None
    crs: str | None = None
    extra_params: dict[str, str] | None = None
    tile_width: int | None = None
    tile_height: int | None = None


@dataclasses.dataclass(kw_only=True)
class WmtsTileMatrix:
    """One zoom level of an explicit WMTS tile matrix set.

    Attributes:
        zoom: Zoom level this matrix serves.
        matrix_width: Number of tile columns.
        matrix_height: Number of tile rows.
        tile_width: Tile width in pixels.
        tile_height: Tile height in pixels.
        top_left_corner: Matrix origin in the matrix set's CRS.
        scale_denominator: Scale denominator of the level.
        identifier: Identifier used in ``{TileMatrix}``; the zoom is used
            when absent.
    """

    zoom: int
    matrix_width: int
    matrix_height: int
    tile_width: int
    tile_height: int
    top_left_corner: tuple[float, float]
    scale_denominator: float
    identifier: str | None = None


@dataclasses.dataclass(kw_only=True)
class WmtsExplicitConfig(BaseLayerConfig):
    """WMTS layer with a caller-supplied tile template and matrices."""

    tile_url_template: str
    matrix_set: str
    tile_matrix: list[WmtsTileMatrix]
    format: str | None = None
    style: str | None = None
    dimensions: dict[str, str] | None = None


@dataclasses.dataclass(kw_only=True)
class WmtsCapabilitiesConfig(BaseLayerConfig):
    """WMTS layer resolved from a GetCapabilities document."""

    capabilities_url: str
    layer_id: str
    matrix_set: str | None = None
    style: str | None = None
    format: str | None = None
    preferred_crs: str | None = None
    dimensions: dict[str, str] | None = None


@dataclasses.dataclass(kw_only=True)
class ArcGisRestConfig(BaseLayerConfig):
    """Esri ArcGIS REST MapServer export configuration."""

    service_url: str
    layer_id: int | None = None
    format: str | None = None
    transparent: bool | None = None
    crs: str | None = None
    extra_params: dict[str, str] | None = None
    tile_size: int | None = None


@dataclasses.dataclass(kw_only=True)
class XyzRasterConfig(BaseLayerConfig):
    """XYZ or TMS tile template configuration."""

    tiles: list[str]
    tile_size: int | None = None
    subdomains: list[str] | None = None
    tms: bool | None = None


WmtsConfig = WmtsExplicitConfig | WmtsCapabilitiesConfig
LayerConfig = (
    WmsRasterConfig
    | WmtsExplicitConfig
    | WmtsCapabilitiesConfig
    | ArcGisRestConfig
    | XyzRasterConfig
)
