"""Persistence codec for WMS raster layers (``wms-raster``)."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from mapsource.core.errors import ValidationIssue
from mapsource.models import layers as layer_models
from mapsource.persistence import envelope as env

if TYPE_CHECKING:
    from mapsource.persistence.envelope import Envelope


class WmsCodec(env.LayerCodec[layer_models.WmsRasterConfig]):
    layer_type = "wms-raster"
    label = "WMS"
    optional_fields = (
        env.OptionalField("styles", "styles", env.read_string_or_list),
        env.OptionalField("format", "format", env.read_string),
        env.OptionalField("transparent", "transparent", env.read_bool),
        env.OptionalField("version", "version", env.read_choice("1.1.1", "1.3.0")),
        env.OptionalField("crs", "crs", env.read_string),
        env.OptionalField("extraParams", "extra_params", env.read_string_map),
        env.OptionalField("tileWidth", "tile_width", env.read_number(1, integer=True)),
        env.OptionalField("tileHeight", "tile_height", env.read_number(1, integer=True)),
    )

    def dump(self, config: layer_models.WmsRasterConfig) -> Envelope:
        return {"baseUrl": config.base_url, "layers": copy.deepcopy(config.layers)}

    def validate_required(self, envelope: Envelope, issues: list[ValidationIssue]) -> None:
        if not env.validate_url(envelope.get("baseUrl"), "baseUrl", "Base URL", issues):
            return
        if env.read_string_or_list(envelope.get("layers")) is env.MISSING:
            issues.append(
                ValidationIssue(
                    "layers",
                    "layers must be a string or array of strings",
                    "INVALID_TYPE",
                    envelope.get("layers"),
                )
            )

    def build(
        self, envelope: Envelope, optional: dict[str, Any]
    ) -> layer_models.WmsRasterConfig:
        return layer_models.WmsRasterConfig(
            id=envelope["id"],
            base_url=envelope["baseUrl"],
            layers=env.read_string_or_list(envelope["layers"]),
            **optional,
        )


CODEC = WmsCodec()
