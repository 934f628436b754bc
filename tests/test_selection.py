"""Tests for matrix set, format, style and resource URL selection."""

from __future__ import annotations

from mapsource.models import capabilities as caps_models
from mapsource.services import selection


def _layer(**kwargs: object) -> caps_models.LayerCapability:
    return caps_models.LayerCapability(identifier="layer", **kwargs)  # type: ignore[arg-type]


def _style(identifier: str, is_default: bool = False) -> caps_models.StyleDescriptor:
    return caps_models.StyleDescriptor(identifier=identifier, is_default=is_default)


def test_select_format_prefers_caller_order() -> None:
    """Test that the first matching preference wins."""
    layer = _layer(formats=["image/png", "image/jpeg", "image/gif"])
    assert selection.select_format(layer, ["image/jpeg", "image/png"]) == "image/jpeg"


def test_select_format_falls_back_to_first() -> None:
    """Test fallback to the first advertised format."""
    layer = _layer(formats=["image/gif"])
    assert selection.select_format(layer, ["image/jpeg", "image/png"]) == "image/gif"


def test_select_format_default_preferences_and_substrings() -> None:
    """Test default preferences and case-insensitive substring matching."""
    layer = _layer(formats=["image/jpeg", "IMAGE/PNG; mode=8bit"])
    assert selection.select_format(layer) == "IMAGE/PNG; mode=8bit"
    assert selection.select_format(layer, ["jpeg"]) == "image/jpeg"


def test_select_format_none_when_nothing_advertised() -> None:
    assert selection.select_format(_layer()) is None


def test_select_style_order() -> None:
    """Test exact match, then default, then first."""
    layer = _layer(styles=[_style("dark"), _style("default", is_default=True), _style("light")])
    assert selection.select_style(layer, "light") == "light"
    assert selection.select_style(layer, "missing") == "default"
    assert selection.select_style(layer) == "default"
    no_default = _layer(styles=[_style("dark"), _style("light")])
    assert selection.select_style(no_default) == "dark"
    assert selection.select_style(_layer()) is None


def _matrix_set(
    identifier: str, crs: str | None, wkss: str | None = None
) -> caps_models.TileMatrixSet:
    return caps_models.TileMatrixSet(
        identifier=identifier, supported_crs=crs, well_known_scale_set=wkss
    )


def test_select_matrix_set_prefers_crs_match() -> None:
    """Test a set in the preferred CRS beats earlier links."""
    layer = _layer(tile_matrix_set_links=["WGS84", "Mercator"])
    sets = [
        _matrix_set("WGS84", "urn:ogc:def:crs:EPSG::4326"),
        _matrix_set("Mercator", "urn:ogc:def:crs:EPSG::3857"),
    ]
    assert selection.select_matrix_set(layer, sets) == "Mercator"
    assert selection.select_matrix_set(layer, sets, preferred_crs="EPSG:4326") == "WGS84"


def test_select_matrix_set_prefers_scale_set_and_crs() -> None:
    """Test the well-known scale set narrows CRS matches."""
    wkss = "urn:ogc:def:wkss:OGC:1.0:GoogleMapsCompatible"
    layer = _layer(tile_matrix_set_links=["Custom3857", "Google"])
    sets = [
        _matrix_set("Custom3857", "EPSG:3857"),
        _matrix_set("Google", "EPSG:3857", wkss),
    ]
    assert selection.select_matrix_set(layer, sets) == "Custom3857"
    assert selection.select_matrix_set(layer, sets, well_known_scale_set=wkss) == "Google"


def test_select_matrix_set_alias_fallback() -> None:
    """Test Web Mercator aliases are used when no CRS matches."""
    layer = _layer(tile_matrix_set_links=["Local", "GoogleMapsCompatible"])
    sets = [_matrix_set("Local", "EPSG:25832"), _matrix_set("GoogleMapsCompatible", None)]
    assert selection.select_matrix_set(layer, sets, preferred_crs="EPSG:2056") == (
        "GoogleMapsCompatible"
    )


def test_select_matrix_set_first_link_and_none() -> None:
    """Test the first link is the last resort and no links yield None."""
    layer = _layer(tile_matrix_set_links=["Local", "Other"])
    assert selection.select_matrix_set(layer, []) == "Local"
    assert selection.select_matrix_set(_layer(), []) is None


def test_select_resource_url() -> None:
    """Test resource URL preference order."""
    tile_png = caps_models.ResourceUrlTemplate("tile", "https://h/{TileMatrix}.png", "image/png")
    tile_jpg = caps_models.ResourceUrlTemplate("tile", "https://h/{TileMatrix}.jpg", "image/jpeg")
    info = caps_models.ResourceUrlTemplate("FeatureInfo", "https://h/info", "text/html")
    layer = _layer(resource_urls=[info, tile_jpg, tile_png])
    assert selection.select_resource_url(layer) is tile_jpg
    assert selection.select_resource_url(layer, format="image/png") is tile_png
    assert selection.select_resource_url(layer, "FeatureInfo") is info
    assert selection.select_resource_url(layer, "simpleProfileTile") is tile_jpg
    assert selection.select_resource_url(_layer(resource_urls=[info]), "other") is info
    assert selection.select_resource_url(_layer()) is None
