"""WMS and WMTS GetCapabilities parsing and fetching.

Parsing is namespace-agnostic and only reads the elements the builders and
selection heuristics need. Missing optional elements are left empty; a
document without layers parses to an empty ``layers`` list.

Example:
    Fetch and inspect a WMTS service:
        >>> caps = await fetch_wmts_capabilities("https://example.com/wmts")
        >>> [layer.identifier for layer in caps.layers]
        ['topo', 'ortho']
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal
from xml.etree import ElementTree as ET

from mapsource.core import config as core_config
from mapsource.core import errors
from mapsource.models import capabilities as caps_models
from mapsource.services import network
from mapsource.utils import urls
from mapsource.utils import xml as xml_utils

if TYPE_CHECKING:
    from mapsource.models.capabilities import Capabilities, LayerCapability

logger = logging.getLogger(__name__)

WMS_ROOTS = ("WMS_Capabilities", "WMT_MS_Capabilities")
WMTS_ROOTS = ("Capabilities",)
EXCEPTION_ROOTS = ("ServiceExceptionReport", "ExceptionReport")
WMS_CAPABILITIES_VERSION = "1.3.0"
WMTS_CAPABILITIES_VERSION = "1.0.0"


def parse_xml(document: str | bytes) -> ET.Element:
    """Parse a capabilities document into its root element.

    Raises:
        ParseError: ``INVALID_XML`` for empty input, ``PARSE_ERROR`` for
            malformed XML or a parser error node, ``SERVICE_EXCEPTION`` when
            the server returned an OGC exception report.
    """
    if not document or not document.strip():
        raise errors.ParseError("INVALID_XML", "Capabilities document is empty")
    try:
        root = ET.fromstring(document)
    except ET.ParseError as exc:
        raise errors.ParseError(
            "PARSE_ERROR", f"Malformed capabilities XML: {exc}"
        ) from exc

    error_node = next(xml_utils.descendants(root, "parsererror"), None)
    if error_node is not None:
        detail = "".join(error_node.itertext()).strip()
        raise errors.ParseError("PARSE_ERROR", f"Malformed capabilities XML: {detail}")

    if xml_utils.local_name(root.tag) in EXCEPTION_ROOTS:
        messages = [
            " ".join(node.itertext()).strip()
            for name in ("ServiceException", "ExceptionText")
            for node in xml_utils.descendants(root, name)
        ]
        detail = "; ".join(message for message in messages if message) or "unknown"
        raise errors.ParseError("SERVICE_EXCEPTION", f"Service exception: {detail}")
    return root


def _keywords(element: ET.Element | None, list_name: str) -> list[str]:
    keyword_list = xml_utils.child(element, list_name)
    return xml_utils.children_text(keyword_list, "Keyword")


# WMS


def _wms_version(root: ET.Element) -> str:
    version = root.get("version") or ""
    return "1.1.1" if version.startswith("1.1") else "1.3.0"


def _wms_styles(layer_el: ET.Element) -> list[caps_models.StyleDescriptor]:
    styles = []
    for style_el in xml_utils.children(layer_el, "Style"):
        name = xml_utils.child_text(style_el, "Name")
        if not name:
            continue
        legend = xml_utils.find_path(style_el, "LegendURL", "OnlineResource")
        styles.append(
            caps_models.StyleDescriptor(
                identifier=name,
                title=xml_utils.child_text(style_el, "Title"),
                abstract=xml_utils.child_text(style_el, "Abstract"),
                is_default=name.lower() == "default",
                legend_url=xml_utils.href(legend),
            )
        )
    return styles


def _wms_bbox(
    layer_el: ET.Element, version: str
) -> caps_models.BoundingBoxDescriptor | None:
    crs_attr = "CRS" if version == "1.3.0" else "SRS"
    bbox_el = xml_utils.child(layer_el, "BoundingBox")
    if bbox_el is not None:
        values = [xml_utils.to_float(bbox_el.get(key)) for key in ("minx", "miny", "maxx", "maxy")]
        crs = bbox_el.get(crs_attr) or bbox_el.get("CRS") or bbox_el.get("SRS")
        if crs and all(value is not None for value in values):
            return caps_models.BoundingBoxDescriptor(crs, *values)  # type: ignore[arg-type]

    geo_el = xml_utils.child(layer_el, "EX_GeographicBoundingBox")
    if geo_el is not None:
        values = [
            xml_utils.to_float(xml_utils.child_text(geo_el, name))
            for name in (
                "westBoundLongitude",
                "southBoundLatitude",
                "eastBoundLongitude",
                "northBoundLatitude",
            )
        ]
        if all(value is not None for value in values):
            return caps_models.BoundingBoxDescriptor("CRS:84", *values)  # type: ignore[arg-type]

    latlon_el = xml_utils.child(layer_el, "LatLonBoundingBox")
    if latlon_el is not None:
        values = [xml_utils.to_float(latlon_el.get(key)) for key in ("minx", "miny", "maxx", "maxy")]
        if all(value is not None for value in values):
            return caps_models.BoundingBoxDescriptor("EPSG:4326", *values)  # type: ignore[arg-type]
    return None


def _wms_dimensions(layer_el: ET.Element) -> list[caps_models.DimensionDescriptor]:
    extents = {
        extent.get("name"): extent for extent in xml_utils.children(layer_el, "Extent")
    }
    dimensions = []
    for dim_el in xml_utils.children(layer_el, "Dimension"):
        name = dim_el.get("name")
        if not name:
            continue
        # WMS 1.1.1 puts the values and default on a sibling Extent element.
        value_el = extents.get(name, dim_el)
        raw = xml_utils.text(value_el) or ""
        dimensions.append(
            caps_models.DimensionDescriptor(
                identifier=name,
                default=value_el.get("default") or dim_el.get("default"),
                values=[value.strip() for value in raw.split(",") if value.strip()],
                unit_of_measure=dim_el.get("units"),
            )
        )
    return dimensions


def _parse_wms_layer(
    layer_el: ET.Element,
    version: str,
    formats: list[str],
    inherited_crs: list[str],
    inherited_styles: list[caps_models.StyleDescriptor],
) -> LayerCapability:
    crs_tag = "CRS" if version == "1.3.0" else "SRS"
    crs = list(inherited_crs)
    for code in xml_utils.children_text(layer_el, crs_tag):
        # 1.1.1 servers sometimes list several codes in one element.
        for item in code.split():
            if item not in crs:
                crs.append(item)

    own_styles = _wms_styles(layer_el)
    own_names = {style.identifier for style in own_styles}
    styles = [s for s in inherited_styles if s.identifier not in own_names] + own_styles

    layer = caps_models.LayerCapability(
        identifier=xml_utils.child_text(layer_el, "Name"),
        title=xml_utils.child_text(layer_el, "Title"),
        abstract=xml_utils.child_text(layer_el, "Abstract"),
        formats=list(formats),
        styles=styles,
        crs=crs,
        dimensions=_wms_dimensions(layer_el),
        bbox=_wms_bbox(layer_el, version),
    )
    layer.layers = [
        _parse_wms_layer(child_el, version, formats, crs, styles)
        for child_el in xml_utils.children(layer_el, "Layer")
    ]
    return layer


def _flatten(layer: LayerCapability) -> list[LayerCapability]:
    named = [layer] if layer.identifier else []
    for child_layer in layer.layers:
        named.extend(_flatten(child_layer))
    return named


def _parse_wms(root: ET.Element) -> Capabilities:
    version = _wms_version(root)
    service = xml_utils.child(root, "Service")
    capability = xml_utils.child(root, "Capability")
    get_map = xml_utils.find_path(capability, "Request", "GetMap")
    formats = xml_utils.children_text(get_map, "Format")

    root_layer_el = xml_utils.child(capability, "Layer")
    root_layer = (
        _parse_wms_layer(root_layer_el, version, formats, [], [])
        if root_layer_el is not None
        else None
    )
    return caps_models.Capabilities(
        service="WMS",
        version=version,
        title=xml_utils.child_text(service, "Title"),
        abstract=xml_utils.child_text(service, "Abstract"),
        keywords=_keywords(service, "KeywordList"),
        layers=_flatten(root_layer) if root_layer else [],
        layer=root_layer,
        formats=formats,
    )


def parse_wms_capabilities(document: str | bytes) -> Capabilities:
    """Parse a WMS 1.1.1 or 1.3.0 capabilities document.

    Layer CRS lists and styles are inherited down the layer tree. GetMap
    formats are copied onto every layer. ``layers`` holds every named layer
    of the tree, in document order.

    Raises:
        ParseError: If the document is not parseable.
    """
    return _parse_wms(parse_xml(document))


# WMTS


def _wmts_bbox(layer_el: ET.Element) -> caps_models.BoundingBoxDescriptor | None:
    for name, default_crs in (("BoundingBox", None), ("WGS84BoundingBox", "CRS:84")):
        bbox_el = xml_utils.child(layer_el, name)
        if bbox_el is None:
            continue
        lower = xml_utils.float_pair(xml_utils.child_text(bbox_el, "LowerCorner"))
        upper = xml_utils.float_pair(xml_utils.child_text(bbox_el, "UpperCorner"))
        crs = bbox_el.get("crs") or default_crs
        if lower and upper and crs:
            return caps_models.BoundingBoxDescriptor(crs, *lower, *upper)
    return None


def _parse_wmts_layer(layer_el: ET.Element) -> LayerCapability:
    styles = []
    for style_el in xml_utils.children(layer_el, "Style"):
        identifier = xml_utils.child_text(style_el, "Identifier")
        if not identifier:
            continue
        styles.append(
            caps_models.StyleDescriptor(
                identifier=identifier,
                title=xml_utils.child_text(style_el, "Title"),
                abstract=xml_utils.child_text(style_el, "Abstract"),
                is_default=(style_el.get("isDefault") or "").lower() == "true",
                legend_url=xml_utils.href(xml_utils.child(style_el, "LegendURL")),
            )
        )

    resource_urls = []
    for resource_el in xml_utils.children(layer_el, "ResourceURL"):
        template = resource_el.get("template")
        if template:
            resource_urls.append(
                caps_models.ResourceUrlTemplate(
                    resource_type=resource_el.get("resourceType") or "tile",
                    template=template,
                    format=resource_el.get("format"),
                )
            )

    dimensions = []
    for dim_el in xml_utils.children(layer_el, "Dimension"):
        identifier = xml_utils.child_text(dim_el, "Identifier")
        if identifier:
            dimensions.append(
                caps_models.DimensionDescriptor(
                    identifier=identifier,
                    default=xml_utils.child_text(dim_el, "Default"),
                    values=xml_utils.children_text(dim_el, "Value"),
                    unit_of_measure=xml_utils.child_text(dim_el, "UOM"),
                )
            )

    links = [
        link
        for link_el in xml_utils.children(layer_el, "TileMatrixSetLink")
        if (link := xml_utils.child_text(link_el, "TileMatrixSet"))
    ]

    return caps_models.LayerCapability(
        identifier=xml_utils.child_text(layer_el, "Identifier"),
        title=xml_utils.child_text(layer_el, "Title"),
        abstract=xml_utils.child_text(layer_el, "Abstract"),
        formats=xml_utils.children_text(layer_el, "Format"),
        styles=styles,
        tile_matrix_set_links=links,
        resource_urls=resource_urls,
        dimensions=dimensions,
        bbox=_wmts_bbox(layer_el),
    )


def _parse_tile_matrix(matrix_el: ET.Element) -> caps_models.TileMatrixDefinition | None:
    identifier = xml_utils.child_text(matrix_el, "Identifier")
    scale = xml_utils.to_float(xml_utils.child_text(matrix_el, "ScaleDenominator"))
    if identifier is None or scale is None:
        return None
    return caps_models.TileMatrixDefinition(
        identifier=identifier,
        scale_denominator=scale,
        top_left_corner=xml_utils.float_pair(xml_utils.child_text(matrix_el, "TopLeftCorner"))
        or (0.0, 0.0),
        tile_width=xml_utils.to_int(xml_utils.child_text(matrix_el, "TileWidth")) or 256,
        tile_height=xml_utils.to_int(xml_utils.child_text(matrix_el, "TileHeight")) or 256,
        matrix_width=xml_utils.to_int(xml_utils.child_text(matrix_el, "MatrixWidth")) or 1,
        matrix_height=xml_utils.to_int(xml_utils.child_text(matrix_el, "MatrixHeight")) or 1,
    )


def _parse_tile_matrix_set(set_el: ET.Element) -> caps_models.TileMatrixSet | None:
    identifier = xml_utils.child_text(set_el, "Identifier")
    if not identifier:
        return None
    matrices = [
        matrix
        for matrix_el in xml_utils.children(set_el, "TileMatrix")
        if (matrix := _parse_tile_matrix(matrix_el)) is not None
    ]
    matrices.sort(key=lambda matrix: matrix.scale_denominator, reverse=True)
    return caps_models.TileMatrixSet(
        identifier=identifier,
        supported_crs=xml_utils.child_text(set_el, "SupportedCRS"),
        well_known_scale_set=xml_utils.child_text(set_el, "WellKnownScaleSet"),
        matrices=matrices,
    )


def _parse_wmts(root: ET.Element) -> Capabilities:
    service = xml_utils.child(root, "ServiceIdentification")
    contents = xml_utils.child(root, "Contents")
    layers = []
    matrix_sets = []
    if contents is not None:
        layers = [_parse_wmts_layer(el) for el in xml_utils.children(contents, "Layer")]
        matrix_sets = [
            matrix_set
            for el in xml_utils.children(contents, "TileMatrixSet")
            if (matrix_set := _parse_tile_matrix_set(el)) is not None
        ]
    return caps_models.Capabilities(
        service="WMTS",
        version=root.get("version") or WMTS_CAPABILITIES_VERSION,
        title=xml_utils.child_text(service, "Title"),
        abstract=xml_utils.child_text(service, "Abstract"),
        keywords=_keywords(service, "Keywords"),
        layers=layers,
        tile_matrix_sets=matrix_sets,
    )


def parse_wmts_capabilities(document: str | bytes) -> Capabilities:
    """Parse a WMTS 1.0.0 capabilities document.

    Tile matrices of every set are sorted by descending scale denominator,
    so index 0 is the lowest zoom.

    Raises:
        ParseError: If the document is not parseable.
    """
    return _parse_wmts(parse_xml(document))


def parse_capabilities(document: str | bytes) -> Capabilities:
    """Parse a WMS or WMTS document, detecting the dialect from its root."""
    root = parse_xml(document)
    name = xml_utils.local_name(root.tag)
    if name in WMS_ROOTS:
        return _parse_wms(root)
    if name in WMTS_ROOTS:
        return _parse_wmts(root)
    raise errors.ParseError(
        "PARSE_ERROR", f"Unsupported capabilities document root: {name}"
    )


# Fetching

ServiceName = Literal["WMS", "WMTS"]


def capabilities_url(url: str, service: ServiceName) -> str:
    """Append GetCapabilities parameters unless already requested."""
    if urls.has_query_param(url, "REQUEST", "GetCapabilities"):
        return url
    version = WMS_CAPABILITIES_VERSION if service == "WMS" else WMTS_CAPABILITIES_VERSION
    return urls.with_query(
        url,
        [("SERVICE", service), ("REQUEST", "GetCapabilities"), ("VERSION", version)],
    )


async def fetch_capabilities(
    url: str,
    service: ServiceName,
    *,
    timeout: float | None = None,
    **fetch_options: Any,
) -> Capabilities:
    """Fetch and parse a capabilities document.

    Args:
        url: Service URL, with or without GetCapabilities parameters.
        service: ``WMS`` or ``WMTS``.
        timeout: Seconds before aborting; the configured default when None.
        **fetch_options: ``abort``, ``headers``, ``request_transform`` and
            ``client``, passed to ``network.fetch_xml``.

    Returns:
        The parsed document.

    Raises:
        NetworkError: If the fetch fails.
        ParseError: If the response cannot be parsed.
    """
    if timeout is None:
        timeout = core_config.get_settings().capabilities_timeout_seconds
    request_url = capabilities_url(urls.normalize_url(url), service)
    text = await network.fetch_xml(request_url, timeout=timeout, **fetch_options)
    if service == "WMS":
        result = parse_wms_capabilities(text)
    else:
        result = parse_wmts_capabilities(text)
    logger.info(
        "Parsed %s capabilities from %s: %d layers", service, request_url, len(result.layers)
    )
    return result


async def fetch_wms_capabilities(url: str, **options: Any) -> Capabilities:
    return await fetch_capabilities(url, "WMS", **options)


async def fetch_wmts_capabilities(url: str, **options: Any) -> Capabilities:
    return await fetch_capabilities(url, "WMTS", **options)
