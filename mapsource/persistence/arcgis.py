"""Persistence codec for ArcGIS REST layers (``arcgis-raster``)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mapsource.models import layers as layer_models
from mapsource.persistence import envelope as env

if TYPE_CHECKING:
    from mapsource.core.errors import ValidationIssue
    from mapsource.persistence.envelope import Envelope


class ArcGisCodec(env.LayerCodec[layer_models.ArcGisRestConfig]):
    layer_type = "arcgis-raster"
    label = "ArcGIS REST"
    optional_fields = (
        env.OptionalField("layerId", "layer_id", env.read_number(0, integer=True)),
        env.OptionalField("format", "format", env.read_string),
        env.OptionalField("transparent", "transparent", env.read_bool),
        env.OptionalField("crs", "crs", env.read_string),
        env.OptionalField("extraParams", "extra_params", env.read_string_map),
        env.OptionalField("tileSize", "tile_size", env.read_number(1, integer=True)),
    )

    def dump(self, config: layer_models.ArcGisRestConfig) -> Envelope:
        return {"serviceUrl": config.service_url}

    def validate_required(self, envelope: Envelope, issues: list[ValidationIssue]) -> None:
        env.validate_url(envelope.get("serviceUrl"), "serviceUrl", "Service URL", issues)

    def build(
        self, envelope: Envelope, optional: dict[str, Any]
    ) -> layer_models.ArcGisRestConfig:
        return layer_models.ArcGisRestConfig(
            id=envelope["id"], service_url=envelope["serviceUrl"], **optional
        )


CODEC = ArcGisCodec()
