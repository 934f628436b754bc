"""Tile address to bounding box math.

Bounding boxes are computed in the natural ``(minX, minY, maxX, maxY)`` order
of the target CRS. Axis-order correction for the WMS protocol version is a
separate, final step (``apply_axis_order``) so a box is never flipped twice.

Web Mercator boxes are in meters; geographic boxes are in degrees, with the
latitude of each row derived from the Web Mercator row grid so tiles line up
with a Mercator-tiled basemap.

Example:
    Compute the box of the single zoom 0 tile:
        >>> from mapsource.models.sources import TileAddress
        >>> tile_bounds(TileAddress(0, 0, 0), "EPSG:3857")
        (-20037508.343, -20037508.343, 20037508.343, 20037508.343)

    WMS 1.1.1 swaps EPSG:4326 boxes to lat/lon order:
        >>> apply_axis_order((-180, -90, 180, 90), "EPSG:4326", "1.1.1")
        (-90, -180, 90, 180)
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mapsource.models.sources import BoundingBox, TileAddress

EARTH_CIRCUMFERENCE = 40075016.686
HALF_CIRCUMFERENCE = EARTH_CIRCUMFERENCE / 2

WEB_MERCATOR_CODES = frozenset({"EPSG:3857", "EPSG:900913"})
GEOGRAPHIC_CODES = frozenset({"EPSG:4326", "CRS:84", "OGC:CRS84"})
DEFAULT_CRS = "EPSG:3857"


def normalize_crs(crs: str) -> str:
    """Normalize a CRS identifier to its short ``AUTHORITY:CODE`` form.

    Handles OGC URNs (``urn:ogc:def:crs:EPSG::3857``), OGC HTTP URIs
    (``http://www.opengis.net/def/crs/EPSG/0/3857``) and case differences.

    Args:
        crs: CRS identifier as found in a config or capabilities document.

    Returns:
        Upper-cased short identifier such as ``EPSG:3857`` or ``CRS:84``.
    """
    value = crs.strip()
    lowered = value.lower()
    if lowered.startswith("urn:ogc:def:crs:"):
        parts = [part for part in value.split(":")[4:] if part]
        if len(parts) >= 2:
            return f"{parts[0]}:{parts[-1]}".upper()
    if lowered.startswith(("http://www.opengis.net/def/crs/", "https://www.opengis.net/def/crs/")):
        parts = [part for part in value.split("/") if part]
        if len(parts) >= 3:
            return f"{parts[-3]}:{parts[-1]}".upper()
    return value.upper()


def is_web_mercator(crs: str) -> bool:
    return normalize_crs(crs) in WEB_MERCATOR_CODES


def is_geographic(crs: str) -> bool:
    return normalize_crs(crs) in GEOGRAPHIC_CODES


def _tile_lat(y: int, n: int) -> float:
    return math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / n))))


def web_mercator_bounds(address: TileAddress) -> BoundingBox:
    """Return the Web Mercator box of a tile, in meters."""
    span = EARTH_CIRCUMFERENCE / (2**address.z)
    return (
        address.x * span - HALF_CIRCUMFERENCE,
        HALF_CIRCUMFERENCE - (address.y + 1) * span,
        (address.x + 1) * span - HALF_CIRCUMFERENCE,
        HALF_CIRCUMFERENCE - address.y * span,
    )


def geographic_bounds(address: TileAddress) -> BoundingBox:
    """Return the lon/lat box of a tile on the Web Mercator grid, in degrees."""
    n = 2**address.z
    return (
        address.x / n * 360 - 180,
        _tile_lat(address.y + 1, n),
        (address.x + 1) / n * 360 - 180,
        _tile_lat(address.y, n),
    )


def tile_bounds(address: TileAddress, crs: str) -> BoundingBox:
    """Return a tile's box in natural axis order for the given CRS.

    Geographic CRSes use degrees; every other CRS, including unknown ones,
    falls back to Web Mercator meters.

    Args:
        address: Tile to compute.
        crs: Target CRS identifier.

    Returns:
        ``(minX, minY, maxX, maxY)``.
    """
    if is_geographic(crs):
        return geographic_bounds(address)
    return web_mercator_bounds(address)


def requires_axis_swap(crs: str, version: str | None) -> bool:
    """Whether a WMS request must emit the box in (lat, lon) order.

    Only WMS 1.1.1 with EPSG:4326 is swapped. WMS 1.3.0 and every other CRS
    keep ``(minX, minY, maxX, maxY)``.
    """
    return version == "1.1.1" and normalize_crs(crs) == "EPSG:4326"


def apply_axis_order(bbox: BoundingBox, crs: str, version: str | None) -> BoundingBox:
    """Reorder a natural-order box for the given CRS and WMS version.

    Must be applied exactly once, as the last step before the URL is built.
    """
    if requires_axis_swap(crs, version):
        min_x, min_y, max_x, max_y = bbox
        return (min_y, min_x, max_y, max_x)
    return bbox


def tile_to_bbox(address: TileAddress, crs: str, version: str | None = None) -> BoundingBox:
    """Return a tile's box ready for a request URL.

    Args:
        address: Tile to compute.
        crs: Target CRS identifier.
        version: WMS version, used for axis-order correction.

    Returns:
        The box in the axis order expected by the protocol version.
    """
    return apply_axis_order(tile_bounds(address, crs), crs, version)
