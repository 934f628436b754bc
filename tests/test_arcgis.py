"""Tests for ArcGIS REST export URLs and layers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from mapsource.core import errors
from mapsource.models import layers as layer_models
from mapsource.models import sources
from mapsource.services import arcgis
from mapsource.utils import tile_math

if TYPE_CHECKING:
    from mapsource.core import config

SERVICE = "https://gis.example.com/arcgis/rest/services/Roads/MapServer"


def test_export_url_appends_export_once() -> None:
    assert arcgis.export_url(SERVICE) == f"{SERVICE}/export"
    assert arcgis.export_url(f"{SERVICE}/") == f"{SERVICE}/export"
    assert arcgis.export_url(f"{SERVICE}/export") == f"{SERVICE}/export"
    assert arcgis.export_url(f"{SERVICE}?token=t") == f"{SERVICE}/export?token=t"


def test_spatial_reference_strips_authority() -> None:
    assert arcgis.spatial_reference("EPSG:3857") == "3857"
    assert arcgis.spatial_reference("urn:ogc:def:crs:EPSG::4326") == "4326"
    assert arcgis.spatial_reference("CRS:84") == "CRS:84"


def test_build_export_url() -> None:
    """Test the export parameters and their order."""
    url = arcgis.build_export_url(
        SERVICE,
        bbox=(0, 0, 10, 10),
        layer_id=2,
        crs="EPSG:3857",
        extra_params={"dpi": "96"},
    )
    assert url == (
        f"{SERVICE}/export?bbox=0,0,10,10&size=256,256&format=png32&f=image"
        "&layers=show:2&bboxSR=3857&imageSR=3857&transparent=true&dpi=96"
    )


def test_jpeg_is_never_transparent() -> None:
    url = arcgis.build_export_url(SERVICE, bbox=(0, 0, 1, 1), format="jpg")
    assert "transparent" not in url
    assert "layers=" not in url


def test_layer_resolves_tile_boxes(settings: config.Settings) -> None:
    """Test each tile requests its own Web Mercator box."""
    definition = arcgis.create_arcgis_layer(
        layer_models.ArcGisRestConfig(id="roads", service_url=SERVICE, layer_id=0), settings
    )
    assert definition.type == "arcgis-raster"
    assert definition.source.tile_size == 256
    assert (definition.source.minzoom, definition.source.maxzoom) == (0, 22)

    tiles = definition.source.tiles
    assert isinstance(tiles, sources.DynamicTiles)
    url = tiles(sources.TileAddress(0, 0, 1))
    west, south, east, north = tile_math.web_mercator_bounds(sources.TileAddress(0, 0, 1))
    assert south == pytest.approx(0)
    assert east == pytest.approx(0)
    assert url.startswith(f"{SERVICE}/export?bbox=")
    assert "&size=256,256&" in url
    assert "layers=show:0" in url


def test_geographic_crs_uses_degrees(settings: config.Settings) -> None:
    definition = arcgis.create_arcgis_layer(
        layer_models.ArcGisRestConfig(
            id="roads", service_url=SERVICE, crs="EPSG:4326", tile_size=512
        ),
        settings,
    )
    tiles = definition.source.tiles
    assert isinstance(tiles, sources.DynamicTiles)
    url = tiles(sources.TileAddress(1, 0, 1))
    assert "bbox=0,0,180," in url
    assert "size=512,512" in url
    assert "bboxSR=4326" in url
    assert definition.source.tile_size == 512


def test_tile_url_transform_is_applied(settings: config.Settings) -> None:
    definition = arcgis.create_arcgis_layer(
        layer_models.ArcGisRestConfig(
            id="roads",
            service_url=SERVICE,
            tile_url_transform=lambda url: url + "&token=abc",
        ),
        settings,
    )
    tiles = definition.source.tiles
    assert isinstance(tiles, sources.DynamicTiles)
    assert tiles(sources.TileAddress(0, 0, 0)).endswith("&token=abc")


@pytest.mark.parametrize(
    ("overrides", "code"),
    [
        ({"service_url": ""}, "INVALID_URL"),
        ({"service_url": "javascript:alert(1)"}, "UNSAFE_URL"),
        ({"layer_id": -1}, "INVALID_CONFIG"),
        ({"tile_size": 0}, "INVALID_TILE_SIZE"),
        ({"id": "bad id"}, "INVALID_ID_FORMAT"),
    ],
)
def test_invalid_configs(
    settings: config.Settings, overrides: dict[str, object], code: str
) -> None:
    values: dict[str, object] = {"id": "roads", "service_url": SERVICE}
    values.update(overrides)
    with pytest.raises(errors.ConfigurationError) as exc_info:
        arcgis.create_arcgis_layer(layer_models.ArcGisRestConfig(**values), settings)  # type: ignore[arg-type]
    assert exc_info.value.code == code
