"""Structured model of parsed WMS and WMTS capabilities documents.

These records are read-only parse results, rebuilt on every fetch.

Example:
    Look up a layer after parsing:
        >>> from mapsource.services import capabilities
        >>> caps = capabilities.parse_wmts_capabilities(xml_text)
        >>> layer = caps.find_layer("topo")
        >>> layer.tile_matrix_set_links
        ['GoogleMapsCompatible']
"""

from __future__ import annotations

import dataclasses
from typing import Literal

ServiceType = Literal["WMS", "WMTS"]


@dataclasses.dataclass
class StyleDescriptor:
    """A style advertised by a layer."""

    identifier: str
    title: str | None = None
    abstract: str | None = None
    is_default: bool = False
    legend_url: str | None = None


@dataclasses.dataclass
class ResourceUrlTemplate:
    """A WMTS ``ResourceURL`` entry."""

    resource_type: str
    template: str
    format: str | None = None


@dataclasses.dataclass
class DimensionDescriptor:
    """A layer dimension such as TIME or ELEVATION."""

    identifier: str
    default: str | None = None
    values: list[str] = dataclasses.field(default_factory=list)
    unit_of_measure: str | None = None


@dataclasses.dataclass
class BoundingBoxDescriptor:
    """A layer extent in the given CRS, in (minX, minY, maxX, maxY) order."""

    crs: str
    min_x: float
    min_y: float
    max_x: float
    max_y: float


@dataclasses.dataclass
class LayerCapability:
    """Per-layer metadata extracted from a capabilities document.

    Attributes:
        identifier: Layer name (WMS ``Name``) or identifier (WMTS).
        title: Layer title.
        abstract: Layer abstract.
        formats: Supported image formats.
        styles: Advertised styles.
        tile_matrix_set_links: Linked matrix set identifiers (WMTS).
        crs: Supported CRS codes, including inherited ones (WMS).
        resource_urls: Tile and feature-info templates (WMTS).
        dimensions: Advertised dimensions.
        bbox: First advertised extent.
        layers: Child layers (WMS tree).
    """

    identifier: str | None
    title: str | None = None
    abstract: str | None = None
    formats: list[str] = dataclasses.field(default_factory=list)
    styles: list[StyleDescriptor] = dataclasses.field(default_factory=list)
    tile_matrix_set_links: list[str] = dataclasses.field(default_factory=list)
    crs: list[str] = dataclasses.field(default_factory=list)
    resource_urls: list[ResourceUrlTemplate] = dataclasses.field(default_factory=list)
    dimensions: list[DimensionDescriptor] = dataclasses.field(default_factory=list)
    bbox: BoundingBoxDescriptor | None = None
    layers: list[LayerCapability] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class TileMatrixDefinition:
    """One level of a WMTS tile matrix set."""

    identifier: str
    scale_denominator: float
    top_left_corner: tuple[float, float]
    tile_width: int
    tile_height: int
    matrix_width: int
    matrix_height: int


@dataclasses.dataclass
class TileMatrixSet:
    """A WMTS tile matrix set. ``matrices[0]`` is the lowest zoom."""

    identifier: str
    supported_crs: str | None = None
    well_known_scale_set: str | None = None
    matrices: list[TileMatrixDefinition] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class Capabilities:
    """Root parse result.

    Attributes:
        service: ``WMS`` or ``WMTS``.
        version: Document version.
        title: Service title.
        abstract: Service abstract.
        keywords: Service keywords.
        layers: Flat list of layers (WMTS layers, or every named WMS layer).
        tile_matrix_sets: WMTS tile matrix sets.
        layer: WMS root layer tree.
        formats: Formats supported by GetMap (WMS).
    """

    service: ServiceType
    version: str
    title: str | None = None
    abstract: str | None = None
    keywords: list[str] = dataclasses.field(default_factory=list)
    layers: list[LayerCapability] = dataclasses.field(default_factory=list)
    tile_matrix_sets: list[TileMatrixSet] = dataclasses.field(default_factory=list)
    layer: LayerCapability | None = None
    formats: list[str] = dataclasses.field(default_factory=list)

    def find_layer(self, identifier: str) -> LayerCapability | None:
        """Return the layer with the given identifier, if any."""
        for layer in self.layers:
            if layer.identifier == identifier:
                return layer
        return None

    def find_tile_matrix_set(self, identifier: str) -> TileMatrixSet | None:
        """Return the tile matrix set with the given identifier, if any."""
        for matrix_set in self.tile_matrix_sets:
            if matrix_set.identifier == identifier:
                return matrix_set
        return None
