"""Persistence codec for XYZ/TMS layers (``xyz-raster``)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mapsource.core.errors import ValidationIssue
from mapsource.models import layers as layer_models
from mapsource.persistence import envelope as env

if TYPE_CHECKING:
    from mapsource.persistence.envelope import Envelope


def _tile_template(item: object, path: str, issues: list[ValidationIssue]) -> bool:
    return env.validate_url(item, path, "Tile URL", issues)


class XyzCodec(env.LayerCodec[layer_models.XyzRasterConfig]):
    layer_type = "xyz-raster"
    label = "XYZ"
    optional_fields = (
        env.OptionalField("tileSize", "tile_size", env.read_number(1, integer=True)),
        env.OptionalField("subdomains", "subdomains", env.read_string_list),
        env.OptionalField("tms", "tms", env.read_bool),
    )

    def dump(self, config: layer_models.XyzRasterConfig) -> Envelope:
        return {"tiles": list(config.tiles)}

    def validate_required(self, envelope: Envelope, issues: list[ValidationIssue]) -> None:
        tiles = envelope.get("tiles")
        if not env.validate_array(
            tiles, "tiles", "tiles", issues, item_validator=_tile_template
        ):
            return
        if not tiles:
            issues.append(
                ValidationIssue(
                    "tiles", "tiles must contain at least one URL", "MISSING_FIELD", tiles
                )
            )

    def build(
        self, envelope: Envelope, optional: dict[str, Any]
    ) -> layer_models.XyzRasterConfig:
        return layer_models.XyzRasterConfig(
            id=envelope["id"], tiles=list(envelope["tiles"]), **optional
        )


CODEC = XyzCodec()
