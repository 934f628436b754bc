"""Tests for persisted layer envelopes, migrations and codecs."""

from __future__ import annotations

import asyncio
import copy
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from mapsource.core import errors
from mapsource.models import layers as layer_models
from mapsource.persistence import envelope as env
from mapsource.persistence import registry, wms, wmts, xyz

if TYPE_CHECKING:
    from mapsource.core import config


def _wms_envelope(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "_version": 1,
        "_type": "wms-raster",
        "id": "t",
        "baseUrl": "https://h/wms",
        "layers": "l",
    }
    data.update(overrides)
    return data


def test_load_minimal_wms_envelope() -> None:
    """Test a current-version envelope loads without warnings."""
    result = wms.CODEC.from_persisted(_wms_envelope())
    assert result.warnings == []
    assert result.config == layer_models.WmsRasterConfig(
        id="t", base_url="https://h/wms", layers="l"
    )
    assert result.migration is not None
    assert result.migration.steps == []


def test_wrong_type_is_rejected() -> None:
    with pytest.raises(errors.PersistenceError) as exc_info:
        wms.CODEC.from_persisted(_wms_envelope(_type="wrong"))
    assert exc_info.value.code == "INVALID_TYPE"
    assert exc_info.value.field == "_type"
    assert [issue.code for issue in exc_info.value.errors] == ["INVALID_TYPE"]
    assert str(exc_info.value).startswith("Invalid persisted WMS config:")


@pytest.mark.parametrize(
    ("data", "code", "path"),
    [
        ("not an object", "INVALID_TYPE", ""),
        (None, "MISSING_FIELD", ""),
        (_wms_envelope(_version=None), "MISSING_FIELD", "_version"),
        (_wms_envelope(_version="1"), "INVALID_NUMBER", "_version"),
        (_wms_envelope(_version=1.5), "NOT_INTEGER", "_version"),
        (_wms_envelope(_version=0), "VERSION_TOO_OLD", "_version"),
        (_wms_envelope(_type=""), "INVALID_STRING", "_type"),
        (_wms_envelope(id=" "), "INVALID_STRING", "id"),
        (_wms_envelope(baseUrl=None), "MISSING_FIELD", "baseUrl"),
        (_wms_envelope(baseUrl="javascript:alert(1)"), "UNSAFE_URL", "baseUrl"),
        (_wms_envelope(layers=3), "INVALID_TYPE", "layers"),
    ],
)
def test_invalid_envelopes(data: object, code: str, path: str) -> None:
    """Test each pipeline stage fails with a stable code and path."""
    with pytest.raises(errors.PersistenceError) as exc_info:
        wms.CODEC.from_persisted(data)
    assert exc_info.value.code == code
    assert exc_info.value.errors[0].path == path


def test_newer_version_is_a_warning() -> None:
    result = wms.CODEC.from_persisted(_wms_envelope(_version=2))
    assert [warning.code for warning in result.warnings] == ["VERSION_NEWER"]
    assert result.config.base_url == "https://h/wms"


def test_mistyped_optional_fields_are_dropped() -> None:
    """Test optional fields are copied only when present and well typed."""
    result = wms.CODEC.from_persisted(
        _wms_envelope(
            opacity=2,
            visible="yes",
            category="somewhere",
            version="1.1.1",
            transparent=False,
            extraParams={"TIME": "2024"},
            tileWidth=512,
            title=7,
        )
    )
    config = result.config
    assert config.opacity is None
    assert config.visible is None
    assert config.category is None
    assert config.title is None
    assert config.version == "1.1.1"
    assert config.transparent is False
    assert config.extra_params == {"TIME": "2024"}
    assert config.tile_width == 512


def test_to_persisted_omits_unset_fields() -> None:
    config = layer_models.WmsRasterConfig(
        id="t",
        base_url="https://h/wms",
        layers=["a", "b"],
        opacity=0.5,
        tile_url_transform=lambda url: url,
    )
    assert wms.CODEC.to_persisted(config) == {
        "_version": 1,
        "_type": "wms-raster",
        "id": "t",
        "baseUrl": "https://h/wms",
        "layers": ["a", "b"],
        "opacity": 0.5,
    }


EXPLICIT_WMTS = layer_models.WmtsExplicitConfig(
    id="topo",
    title="Topo",
    tile_url_template="https://h/{TileMatrix}/{TileRow}/{TileCol}.png",
    matrix_set="GoogleMapsCompatible",
    tile_matrix=[
        layer_models.WmtsTileMatrix(
            zoom=0,
            matrix_width=1,
            matrix_height=1,
            tile_width=256,
            tile_height=256,
            top_left_corner=(-20037508.3427892, 20037508.3427892),
            scale_denominator=559082264.029,
            identifier="GM:0",
        )
    ],
    style="default",
    dimensions={"Time": "2024"},
)


@pytest.mark.parametrize(
    "config",
    [
        layer_models.WmsRasterConfig(
            id="roads",
            base_url="https://h/wms",
            layers=["a", "b"],
            styles=["", "s"],
            version="1.1.1",
            crs="EPSG:4326",
            minzoom=2,
            maxzoom=12,
            visible=False,
            category="base",
            metadata={"group": "transport"},
        ),
        EXPLICIT_WMTS,
        layer_models.WmtsCapabilitiesConfig(
            id="topo",
            capabilities_url="https://h/wmts",
            layer_id="topo",
            matrix_set="GoogleMapsCompatible",
            preferred_crs="EPSG:3857",
            format="image/png",
        ),
        layer_models.ArcGisRestConfig(
            id="esri", service_url="https://h/MapServer", layer_id=0, tile_size=512
        ),
        layer_models.XyzRasterConfig(
            id="osm", tiles=["https://{s}.h/{z}/{x}/{y}.png"], subdomains=["a", "b"], tms=True
        ),
    ],
    ids=["wms", "wmts-explicit", "wmts-capabilities", "arcgis", "xyz"],
)
def test_registry_round_trip(config: layer_models.LayerConfig) -> None:
    """Test every layer kind survives a save and load unchanged."""
    data = registry.to_persisted_config(config)
    result = registry.from_persisted_config(data)
    assert result.config == config
    assert type(result.config) is type(config)
    assert result.warnings == []


def test_wmts_variant_detection() -> None:
    data = wmts.CODEC.to_persisted(EXPLICIT_WMTS)
    assert "capabilitiesUrl" not in data
    assert data["tileMatrix"][0]["topLeftCorner"] == [-20037508.3427892, 20037508.3427892]
    assert data["tileMatrix"][0]["identifier"] == "GM:0"


@pytest.mark.parametrize(
    ("matrix_overrides", "path"),
    [
        ({"zoom": -1}, "tileMatrix[0].zoom"),
        ({"matrixWidth": 0}, "tileMatrix[0].matrixWidth"),
        ({"scaleDenominator": "big"}, "tileMatrix[0].scaleDenominator"),
        ({"topLeftCorner": [1]}, "tileMatrix[0].topLeftCorner"),
        ({"topLeftCorner": [1, "2"]}, "tileMatrix[0].topLeftCorner[1]"),
        ({"topLeftCorner": "0,0"}, "tileMatrix[0].topLeftCorner"),
    ],
)
def test_invalid_wmts_matrices(matrix_overrides: dict[str, Any], path: str) -> None:
    data = wmts.CODEC.to_persisted(EXPLICIT_WMTS)
    data["tileMatrix"][0].update(matrix_overrides)
    with pytest.raises(errors.PersistenceError) as exc_info:
        wmts.CODEC.from_persisted(data)
    assert exc_info.value.errors[0].path == path


def test_non_object_wmts_matrix_is_rejected() -> None:
    data = wmts.CODEC.to_persisted(EXPLICIT_WMTS)
    data["tileMatrix"][0] = [0, 1, 1]
    with pytest.raises(errors.PersistenceError) as exc_info:
        wmts.CODEC.from_persisted(data)
    assert exc_info.value.code == "INVALID_TYPE"
    assert exc_info.value.errors[0].path == "tileMatrix[0]"

def test_empty_xyz_tiles_are_rejected() -> None:
    data = {"_version": 1, "_type": "xyz-raster", "id": "osm", "tiles": []}
    with pytest.raises(errors.PersistenceError) as exc_info:
        xyz.CODEC.from_persisted(data)
    assert exc_info.value.code == "MISSING_FIELD"


def test_unknown_type_in_registry() -> None:
    with pytest.raises(errors.PersistenceError) as exc_info:
        registry.from_persisted_config({"_version": 1, "_type": "vector", "id": "v"})
    assert exc_info.value.code == "INVALID_TYPE"


def test_validate_persisted_config_reports() -> None:
    """Test validation returns issues instead of raising."""
    ok = registry.validate_persisted_config(_wms_envelope(_version=2))
    assert ok.valid
    assert [warning.code for warning in ok.warnings] == ["VERSION_NEWER"]

    bad = registry.validate_persisted_config(_wms_envelope(baseUrl=""))
    assert not bad.valid
    assert bad.errors[0].path == "baseUrl"

    unknown = registry.validate_persisted_config({"_type": "nope"})
    assert not unknown.valid
    assert unknown.errors[0].code == "INVALID_TYPE"


# Migrations


def _rename_url(data: dict[str, Any]) -> dict[str, Any]:
    data["baseUrl"] = data.pop("url")
    return data


def test_migrate_envelope_applies_steps_without_mutating() -> None:
    original = {"_version": 1, "_type": "wms-raster", "id": "t", "url": "https://h/wms"}
    snapshot = copy.deepcopy(original)
    migrated, info = env.migrate_envelope(original, {1: _rename_url}, target_version=2)
    assert original == snapshot
    assert migrated["_version"] == 2
    assert migrated["baseUrl"] == "https://h/wms"
    assert info.steps == ["Migrated from v1 to v2"]
    assert info.skipped == []


def test_migrate_envelope_is_idempotent() -> None:
    migrated, _ = env.migrate_envelope(
        {"_version": 1, "url": "https://h/wms"}, {1: _rename_url}, target_version=2
    )
    again, info = env.migrate_envelope(migrated, {1: _rename_url}, target_version=2)
    assert again == migrated
    assert info.steps == []


def test_migrate_envelope_records_skipped_steps() -> None:
    migrated, info = env.migrate_envelope({"_version": 1}, {}, target_version=3)
    assert migrated["_version"] == 3
    assert info.skipped == [env.SkippedMigration(1, 2), env.SkippedMigration(2, 3)]
    assert info.to_version == 3


class _NextVersionWmsCodec(wms.WmsCodec):
    target_version = 2


def test_skipped_migration_is_a_warning_by_default() -> None:
    result = _NextVersionWmsCodec().from_persisted(_wms_envelope())
    assert [warning.code for warning in result.warnings] == ["MIGRATION_SKIPPED"]
    assert result.envelope["_version"] == 2


def test_skipped_migration_can_be_an_error() -> None:
    with pytest.raises(errors.PersistenceError) as exc_info:
        _NextVersionWmsCodec().from_persisted(_wms_envelope(), allow_skipped_migrations=False)
    assert exc_info.value.code == "MIGRATION_SKIPPED"


class _MigratingWmsCodec(wms.WmsCodec):
    target_version = 2
    migrations = {1: _rename_url}


def test_codec_runs_registered_migration() -> None:
    data = {"_version": 1, "_type": "wms-raster", "id": "t", "url": "https://h/wms", "layers": "l"}
    result = _MigratingWmsCodec().from_persisted(data)
    assert result.warnings == []
    assert result.config.base_url == "https://h/wms"
    assert result.migration is not None
    assert result.migration.steps == ["Migrated from v1 to v2"]


# Deserialization into layer definitions


def test_deserialize_layer(settings: config.Settings) -> None:
    definition, warnings = registry.deserialize_layer(
        {"_version": 1, "_type": "xyz-raster", "id": "osm", "tiles": ["https://h/{z}/{x}/{y}.png"]},
        settings,
    )
    assert warnings == []
    assert definition.id == "osm"
    assert definition.source_id == "osm-source"


def test_deserialize_capabilities_layer_requires_async(settings: config.Settings) -> None:
    data = registry.to_persisted_config(
        layer_models.WmtsCapabilitiesConfig(
            id="topo", capabilities_url="https://h/wmts", layer_id="topo"
        )
    )
    with pytest.raises(errors.ConfigurationError):
        registry.deserialize_layer(data, settings)


def test_deserialize_layer_async(settings: config.Settings, wmts_xml: str) -> None:
    data = registry.to_persisted_config(
        layer_models.WmtsCapabilitiesConfig(
            id="topo", capabilities_url="https://h/wmts", layer_id="topo"
        )
    )

    async def run() -> Any:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text=wmts_xml))
        async with httpx.AsyncClient(transport=transport) as client:
            return await registry.deserialize_layer_async(data, settings, client=client)

    definition, warnings = asyncio.run(run())
    assert warnings == []
    assert definition.type == "wmts-raster"
    assert definition.metadata["capabilitiesUrl"] == "https://h/wmts"
