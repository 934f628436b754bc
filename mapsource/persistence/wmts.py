"""Persistence codec for WMTS layers (``wmts-raster``).

Both WMTS variants share the ``wmts-raster`` type. An envelope carrying
``capabilitiesUrl`` is a capabilities-driven layer; anything else is an
explicit layer with a template and tile matrices.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any, cast

from mapsource.core.errors import ValidationIssue
from mapsource.models import layers as layer_models
from mapsource.persistence import envelope as env

if TYPE_CHECKING:
    from mapsource.persistence.envelope import Envelope

MATRIX_INT_FIELDS = (
    ("matrixWidth", "matrix_width"),
    ("matrixHeight", "matrix_height"),
    ("tileWidth", "tile_width"),
    ("tileHeight", "tile_height"),
)


def _dump_matrix(matrix: layer_models.WmtsTileMatrix) -> dict[str, Any]:
    item: dict[str, Any] = {
        "zoom": matrix.zoom,
        "matrixWidth": matrix.matrix_width,
        "matrixHeight": matrix.matrix_height,
        "tileWidth": matrix.tile_width,
        "tileHeight": matrix.tile_height,
        "topLeftCorner": list(matrix.top_left_corner),
        "scaleDenominator": matrix.scale_denominator,
    }
    if matrix.identifier is not None:
        item["identifier"] = matrix.identifier
    return item


def _validate_matrix(item: object, path: str, issues: list[ValidationIssue]) -> bool:
    if not env.validate_object(item, path, "Tile matrix", issues):
        return False
    item = cast(dict[str, Any], item)
    if not env.validate_number(
        item.get("zoom"), f"{path}.zoom", "zoom", issues, minimum=0, integer=True, required=True
    ):
        return False
    for key, _ in MATRIX_INT_FIELDS:
        if not env.validate_number(
            item.get(key), f"{path}.{key}", key, issues, minimum=1, integer=True, required=True
        ):
            return False
    if not env.validate_number(
        item.get("scaleDenominator"),
        f"{path}.scaleDenominator",
        "scaleDenominator",
        issues,
        minimum=0,
        required=True,
    ):
        return False
    corner = item.get("topLeftCorner")
    if not env.validate_array(corner, f"{path}.topLeftCorner", "topLeftCorner", issues):
        return False
    corner = cast(list[Any], corner)
    if len(corner) != 2:
        issues.append(
            ValidationIssue(
                f"{path}.topLeftCorner",
                "topLeftCorner must be a pair of numbers",
                "INVALID_TYPE",
                corner,
            )
        )
        return False
    return all(
        env.validate_number(value, f"{path}.topLeftCorner[{index}]", "topLeftCorner", issues)
        for index, value in enumerate(corner)
    )


def _load_matrix(item: dict[str, Any]) -> layer_models.WmtsTileMatrix:
    identifier = item.get("identifier")
    return layer_models.WmtsTileMatrix(
        zoom=int(item["zoom"]),
        top_left_corner=(item["topLeftCorner"][0], item["topLeftCorner"][1]),
        scale_denominator=item["scaleDenominator"],
        identifier=identifier if isinstance(identifier, str) else None,
        **{attr: int(item[key]) for key, attr in MATRIX_INT_FIELDS},
    )


def _is_capabilities_envelope(envelope: Envelope) -> bool:
    return "capabilitiesUrl" in envelope


class WmtsCodec(env.LayerCodec[layer_models.WmtsConfig]):
    layer_type = "wmts-raster"
    label = "WMTS"
    optional_fields = (
        env.OptionalField("format", "format", env.read_string),
        env.OptionalField("style", "style", env.read_string),
        env.OptionalField("dimensions", "dimensions", env.read_string_map),
        env.OptionalField("preferredCrs", "preferred_crs", env.read_string),
        env.OptionalField("matrixSet", "matrix_set", env.read_string),
    )

    def dump(self, config: layer_models.WmtsConfig) -> Envelope:
        match config:
            case layer_models.WmtsCapabilitiesConfig():
                return {"capabilitiesUrl": config.capabilities_url, "layerId": config.layer_id}
            case layer_models.WmtsExplicitConfig():
                return {
                    "tileUrlTemplate": config.tile_url_template,
                    "matrixSet": config.matrix_set,
                    "tileMatrix": [_dump_matrix(matrix) for matrix in config.tile_matrix],
                }
        raise TypeError(f"Not a WMTS config: {type(config).__name__}")

    def validate_required(self, envelope: Envelope, issues: list[ValidationIssue]) -> None:
        if _is_capabilities_envelope(envelope):
            if env.validate_url(
                envelope.get("capabilitiesUrl"), "capabilitiesUrl", "Capabilities URL", issues
            ):
                env.require_string(envelope.get("layerId"), "layerId", "Layer identifier", issues)
            return

        if not env.validate_url(
            envelope.get("tileUrlTemplate"), "tileUrlTemplate", "Tile URL template", issues
        ):
            return
        if not env.require_string(envelope.get("matrixSet"), "matrixSet", "Matrix set", issues):
            return
        matrices = envelope.get("tileMatrix")
        if not env.validate_array(
            matrices, "tileMatrix", "tileMatrix", issues, item_validator=_validate_matrix
        ):
            return
        if not matrices:
            issues.append(
                ValidationIssue(
                    "tileMatrix", "tileMatrix must not be empty", "MISSING_FIELD", matrices
                )
            )

    def build(self, envelope: Envelope, optional: dict[str, Any]) -> layer_models.WmtsConfig:
        if _is_capabilities_envelope(envelope):
            return layer_models.WmtsCapabilitiesConfig(
                id=envelope["id"],
                capabilities_url=envelope["capabilitiesUrl"],
                layer_id=envelope["layerId"],
                **optional,
            )
        names = {field.name for field in dataclasses.fields(layer_models.WmtsExplicitConfig)}
        kwargs = {
            key: value
            for key, value in optional.items()
            if key in names and key != "matrix_set"
        }
        return layer_models.WmtsExplicitConfig(
            id=envelope["id"],
            tile_url_template=envelope["tileUrlTemplate"],
            matrix_set=envelope["matrixSet"],
            tile_matrix=[_load_matrix(item) for item in envelope["tileMatrix"]],
            **kwargs,
        )


CODEC = WmtsCodec()
