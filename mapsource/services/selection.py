"""Selection heuristics for capabilities-driven layers.

Each function is an ordered, first-match-wins fallback chain over what a
capabilities document advertises. They never perform I/O and never raise;
``None`` means the layer advertises nothing to choose from.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from mapsource.utils import tile_math

if TYPE_CHECKING:
    from mapsource.models import capabilities as caps_models

logger = logging.getLogger(__name__)

DEFAULT_PREFERRED_CRS = "EPSG:3857"
DEFAULT_PREFERRED_FORMATS = ("image/png", "image/jpeg")
DEFAULT_RESOURCE_TYPE = "tile"

# Identifiers servers use for the Web Mercator pyramid.
WEB_MERCATOR_ALIASES = (
    "GoogleMapsCompatible",
    "EPSG:3857",
    "EPSG:900913",
    "EPSG:102113",
    "EPSG:102100",
)


def _crs_matches(candidate: str | None, preferred: str) -> bool:
    if not candidate:
        return False
    normalized = tile_math.normalize_crs(candidate)
    wanted = tile_math.normalize_crs(preferred)
    return normalized == wanted or wanted in normalized


def select_matrix_set(
    layer: caps_models.LayerCapability,
    matrix_sets: Sequence[caps_models.TileMatrixSet],
    *,
    preferred_crs: str | None = None,
    well_known_scale_set: str | None = None,
) -> str | None:
    """Pick the tile matrix set to request a layer in.

    Order: a set matching both the well-known scale set and the preferred
    CRS (when a scale set is given), a set in the preferred CRS, a Web
    Mercator alias, then the first linked set.

    Args:
        layer: Layer whose ``tile_matrix_set_links`` are candidates.
        matrix_sets: Matrix sets from the same document.
        preferred_crs: CRS to prefer, Web Mercator by default.
        well_known_scale_set: Scale set URN to prefer.

    Returns:
        The chosen matrix set identifier, or None if the layer links none.
    """
    links = layer.tile_matrix_set_links
    if not links:
        return None

    crs = preferred_crs or DEFAULT_PREFERRED_CRS
    by_id = {matrix_set.identifier: matrix_set for matrix_set in matrix_sets}
    candidates = [by_id[link] for link in links if link in by_id]

    if well_known_scale_set:
        for matrix_set in candidates:
            if matrix_set.well_known_scale_set == well_known_scale_set and _crs_matches(
                matrix_set.supported_crs, crs
            ):
                return matrix_set.identifier

    for matrix_set in candidates:
        if _crs_matches(matrix_set.supported_crs, crs):
            return matrix_set.identifier

    for alias in WEB_MERCATOR_ALIASES:
        for link in links:
            matrix_set = by_id.get(link)
            if link == alias or (
                matrix_set is not None and _crs_matches(matrix_set.supported_crs, alias)
            ):
                logger.debug("Matrix set %s chosen by Web Mercator alias %s", link, alias)
                return link

    logger.debug("No preferred matrix set for %s, using %s", layer.identifier, links[0])
    return links[0]


def select_format(
    layer: caps_models.LayerCapability,
    preferred_formats: Sequence[str] | None = None,
) -> str | None:
    """Pick an image format.

    Preferences are tried in order and match case-insensitively, either
    exactly or as a substring (``png`` matches ``image/png; mode=8bit``).

    Example:
        >>> select_format(layer, ["image/jpeg", "image/png"])
        'image/jpeg'
    """
    formats = layer.formats
    if not formats:
        return None
    for preferred in preferred_formats or DEFAULT_PREFERRED_FORMATS:
        wanted = preferred.lower()
        for candidate in formats:
            lowered = candidate.lower()
            if lowered == wanted or wanted in lowered:
                return candidate
    logger.debug("No preferred format for %s, using %s", layer.identifier, formats[0])
    return formats[0]


def select_style(
    layer: caps_models.LayerCapability,
    preferred_style: str | None = None,
) -> str | None:
    """Pick a style: exact match, then the default style, then the first."""
    styles = layer.styles
    if not styles:
        return None
    if preferred_style:
        for style in styles:
            if style.identifier == preferred_style:
                return style.identifier
        logger.debug("Style %s not advertised by %s", preferred_style, layer.identifier)
    for style in styles:
        if style.is_default:
            return style.identifier
    return styles[0].identifier


def select_resource_url(
    layer: caps_models.LayerCapability,
    resource_type: str = DEFAULT_RESOURCE_TYPE,
    format: str | None = None,
) -> caps_models.ResourceUrlTemplate | None:
    """Pick a ResourceURL: exact type, then any ``tile`` entry, then the first.

    Among entries of the requested type, one advertising ``format`` wins.
    """
    resource_urls = layer.resource_urls
    if not resource_urls:
        return None
    typed = [r for r in resource_urls if r.resource_type == resource_type]
    if format:
        for resource in typed:
            if resource.format == format:
                return resource
    if typed:
        return typed[0]
    for resource in resource_urls:
        if resource.resource_type == DEFAULT_RESOURCE_TYPE:
            return resource
    return resource_urls[0]
