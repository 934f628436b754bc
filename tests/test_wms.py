"""Tests for WMS GetMap/GetLegendGraphic URLs and WMS layer building."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from mapsource.core import errors
from mapsource.models import layers as layer_models
from mapsource.models import sources
from mapsource.services import wms

if TYPE_CHECKING:
    from mapsource.core import config


def test_bbox_axis_order_for_130() -> None:
    """Test WMS 1.3.0 with EPSG:4326 keeps lon/lat order."""
    url = wms.build_wms_url(
        "https://h/wms",
        layers="l",
        bbox=(-180, -90, 180, 90),
        crs="EPSG:4326",
        version="1.3.0",
    )
    assert "BBOX=-180,-90,180,90" in url
    assert "CRS=EPSG:4326" in url
    assert "SRS=" not in url


def test_bbox_axis_order_for_111() -> None:
    """Test WMS 1.1.1 with EPSG:4326 swaps to lat/lon order and uses SRS."""
    url = wms.build_wms_url(
        "https://h/wms",
        layers="l",
        bbox=(-180, -90, 180, 90),
        crs="EPSG:4326",
        version="1.1.1",
    )
    assert "BBOX=-90,-180,90,180" in url
    assert "SRS=EPSG:4326" in url
    assert "&CRS=" not in url


def test_getmap_parameter_order() -> None:
    """Test the full GetMap URL for a Web Mercator template."""
    url = wms.build_wms_url(
        "https://h/wms",
        layers=["a", "b"],
        bbox=wms.BBOX_PLACEHOLDER,
    )
    assert url == (
        "https://h/wms?SERVICE=WMS&VERSION=1.3.0&REQUEST=GetMap&LAYERS=a,b"
        "&STYLES=,&FORMAT=image/png&WIDTH=256&HEIGHT=256&TRANSPARENT=TRUE"
        "&CRS=EPSG:3857&BBOX={bbox-epsg-3857}"
    )


def test_transparent_only_for_png_and_gif() -> None:
    """Test TRANSPARENT is omitted for JPEG even when requested."""
    jpeg = wms.build_wms_url("https://h/wms", layers="l", bbox=(0, 0, 1, 1), format="image/jpeg")
    gif = wms.build_wms_url("https://h/wms", layers="l", bbox=(0, 0, 1, 1), format="image/gif")
    opaque = wms.build_wms_url("https://h/wms", layers="l", bbox=(0, 0, 1, 1), transparent=False)
    assert "TRANSPARENT" not in jpeg
    assert "TRANSPARENT=TRUE" in gif
    assert "TRANSPARENT" not in opaque


def test_extra_params_are_added() -> None:
    """Test vendor parameters end up in the query."""
    url = wms.build_wms_url(
        "https://h/wms", layers="l", bbox=(0, 0, 1, 1), extra_params={"TIME": "2024-01-01"}
    )
    assert "TIME=2024-01-01" in url


@pytest.mark.parametrize(
    ("styles", "expected"),
    [(None, ",,"), ([], ",,"), (["a", "", "c"], "a,,c"), ("raw", "raw")],
)
def test_normalize_styles(styles: str | list[str] | None, expected: str) -> None:
    """Test style padding and passthrough."""
    assert wms.normalize_styles(styles, 3) == expected


def test_styles_mismatch_is_a_configuration_error() -> None:
    """Test unequal non-empty styles are rejected."""
    with pytest.raises(errors.ConfigurationError) as exc_info:
        wms.normalize_styles(["a"], 2)
    assert exc_info.value.code == "STYLES_MISMATCH"
    assert exc_info.value.field == "styles"


def test_legend_url() -> None:
    """Test GetLegendGraphic URL construction."""
    url = wms.build_wms_legend_url("https://h/wms", "roads", style="highways")
    assert url == (
        "https://h/wms?SERVICE=WMS&VERSION=1.3.0&REQUEST=GetLegendGraphic"
        "&LAYER=roads&FORMAT=image/png&STYLE=highways"
    )


def test_web_mercator_layer_uses_static_template(settings: config.Settings) -> None:
    """Test a Web Mercator layer is a static bbox template."""
    definition = wms.create_wms_layer(
        layer_models.WmsRasterConfig(id="roads", base_url="https://h/wms", layers="roads"),
        settings,
    )
    assert isinstance(definition.source.tiles, sources.StaticTiles)
    (template,) = definition.source.tiles.urls
    assert template.endswith("BBOX={bbox-epsg-3857}")
    assert definition.type == "wms-raster"
    assert definition.source_id == "roads-source"
    assert definition.layers == [
        {
            "id": "roads-layer",
            "type": "raster",
            "source": "roads-source",
            "paint": {"raster-opacity": 1},
        }
    ]
    assert definition.source.tile_size == 256
    assert "REQUEST=GetLegendGraphic" in definition.metadata["legendUrl"]


def test_geographic_layer_uses_per_tile_resolver(settings: config.Settings) -> None:
    """Test a non-Mercator layer resolves each tile's bbox."""
    definition = wms.create_wms_layer(
        layer_models.WmsRasterConfig(
            id="coast",
            base_url="https://h/wms",
            layers="coast",
            crs="EPSG:4326",
            version="1.1.1",
        ),
        settings,
    )
    tiles = definition.source.tiles
    assert isinstance(tiles, sources.DynamicTiles)
    url = tiles(sources.TileAddress(0, 0, 1))
    # 1.1.1 + EPSG:4326 puts latitude first, swapped exactly once.
    assert "BBOX=0,-180,85.05112877" in url
    assert url.endswith(",0")


def test_transform_hook_forces_per_tile_resolution(settings: config.Settings) -> None:
    """Test a synchronous URL transform is applied per tile."""
    definition = wms.create_wms_layer(
        layer_models.WmsRasterConfig(
            id="signed",
            base_url="https://h/wms",
            layers="l",
            tile_url_transform=lambda url: f"{url}&token=abc",
        ),
        settings,
    )
    tiles = definition.source.tiles
    assert isinstance(tiles, sources.DynamicTiles)
    url = tiles(sources.TileAddress(0, 0, 0))
    assert url.endswith("&token=abc")
    assert "BBOX=-20037508.343,-20037508.343,20037508.343,20037508.343" in url


def test_async_transform_hook_returns_unsigned_url(settings: config.Settings) -> None:
    """Test an asynchronous hook cannot rewrite a per-tile URL."""

    async def sign(url: str) -> str:
        return f"{url}&token=abc"

    definition = wms.create_wms_layer(
        layer_models.WmsRasterConfig(
            id="signed", base_url="https://h/wms", layers="l", tile_url_transform=sign
        ),
        settings,
    )
    tiles = definition.source.tiles
    assert isinstance(tiles, sources.DynamicTiles)
    assert "token" not in tiles(sources.TileAddress(0, 0, 0))


def test_default_tile_size_comes_from_settings(settings: config.Settings) -> None:
    """Test the settings default tile size applies when none is configured."""
    settings.default_tile_size = 512
    source = wms.create_wms_source(
        layer_models.WmsRasterConfig(id="l", base_url="https://h/wms", layers="l"), settings
    )
    assert source.tile_size == 512
    assert "WIDTH=512&HEIGHT=512" in source.tiles.urls[0]  # type: ignore[union-attr]


@pytest.mark.parametrize(
    ("overrides", "code"),
    [
        ({"id": "bad id"}, "INVALID_ID_FORMAT"),
        ({"id": ""}, "INVALID_ID"),
        ({"opacity": 2}, "OPACITY_OUT_OF_RANGE"),
        ({"opacity": "x"}, "INVALID_OPACITY"),
        ({"minzoom": 5, "maxzoom": 2}, "INVALID_ZOOM_RANGE"),
        ({"maxzoom": 30}, "ZOOM_OUT_OF_RANGE"),
        ({"base_url": "javascript:alert(1)"}, "UNSAFE_URL"),
        ({"layers": []}, "MISSING_FIELD"),
        ({"version": "2.0"}, "INVALID_VERSION"),
        ({"tile_width": 0}, "INVALID_TILE_SIZE"),
        ({"layers": ["a", "b"], "styles": ["s"]}, "STYLES_MISMATCH"),
    ],
)
def test_invalid_configs_raise(
    settings: config.Settings, overrides: dict[str, object], code: str
) -> None:
    """Test configuration validation codes."""
    values: dict[str, object] = {"id": "l", "base_url": "https://h/wms", "layers": "l"}
    values.update(overrides)
    with pytest.raises(errors.ConfigurationError) as exc_info:
        wms.create_wms_layer(layer_models.WmsRasterConfig(**values), settings)  # type: ignore[arg-type]
    assert exc_info.value.code == code
