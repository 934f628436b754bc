"""Tile sources and layer definitions handed to the rendering host.

``TileSource`` is an explicit sum type: either a list of static URL templates
the host expands itself (``StaticTiles``) or a per-tile resolver
(``DynamicTiles``) called with a ``TileAddress`` for every tile the host needs.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from typing import Any, Literal, NamedTuple

LayerType = Literal["wms-raster", "wmts-raster", "arcgis-raster", "xyz-raster"]
TileScheme = Literal["xyz", "tms"]
BoundingBox = tuple[float, float, float, float]


class TileAddress(NamedTuple):
    """Column, row and zoom of a single tile (row 0 is the northernmost)."""

    x: int
    y: int
    z: int


TileResolver = Callable[[TileAddress], str]


@dataclasses.dataclass(frozen=True)
class StaticTiles:
    """URL templates with ``{z}``/``{x}``/``{y}`` style placeholders."""

    urls: list[str]


@dataclasses.dataclass(frozen=True)
class DynamicTiles:
    """A per-tile URL resolver. Must not perform I/O."""

    resolver: TileResolver

    def __call__(self, address: TileAddress) -> str:
        return self.resolver(address)


TileSource = StaticTiles | DynamicTiles


@dataclasses.dataclass
class RasterSource:
    """Raster source specification.

    Attributes:
        tiles: Static templates or a per-tile resolver.
        tile_size: Tile size in pixels.
        minzoom: Minimum zoom served by the source.
        maxzoom: Maximum zoom served by the source.
        scheme: Row numbering scheme, ``xyz`` (north origin) or ``tms``.
    """

    tiles: TileSource
    tile_size: int
    minzoom: int
    maxzoom: int
    scheme: TileScheme = "xyz"

    def to_spec(self) -> dict[str, Any]:
        """Serialize to a host-facing dict; dynamic sources list no tiles."""
        spec: dict[str, Any] = {
            "type": "raster",
            "tileSize": self.tile_size,
            "minzoom": self.minzoom,
            "maxzoom": self.maxzoom,
        }
        match self.tiles:
            case StaticTiles(urls=urls):
                spec["tiles"] = list(urls)
            case DynamicTiles():
                spec["tiles"] = []
        if self.scheme != "xyz":
            spec["scheme"] = self.scheme
        return spec


@dataclasses.dataclass
class LayerDefinition:
    """Everything the host needs to draw one configured layer.

    Attributes:
        id: Layer identifier.
        type: Layer kind discriminator.
        category: Layer category.
        source_id: Identifier the source is registered under.
        source: Raster source specification.
        layers: Drawable layer specifications (paint/layout bags).
        metadata: Title, attribution, zoom range and caller metadata.
    """

    id: str
    type: LayerType
    category: str
    source_id: str
    source: RasterSource
    layers: list[dict[str, Any]]
    metadata: dict[str, Any] = dataclasses.field(default_factory=dict)
