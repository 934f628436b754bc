"""Dispatch persisted envelopes to the codec for their ``_type``.

Example:
    Save and restore any layer config:
        >>> envelope = to_persisted_config(config)
        >>> result = from_persisted_config(envelope)
        >>> result.config == config
        True
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from mapsource.core import errors
from mapsource.core.errors import ValidationIssue
from mapsource.models import layers as layer_models
from mapsource.persistence import arcgis, envelope, wms, wmts, xyz
from mapsource.services import layers as layer_service

if TYPE_CHECKING:
    from mapsource.core import config as core_config
    from mapsource.models import sources

CODECS: dict[str, envelope.LayerCodec[Any]] = {
    codec.layer_type: codec for codec in (wms.CODEC, wmts.CODEC, arcgis.CODEC, xyz.CODEC)
}


def codec_for_config(config: layer_models.LayerConfig) -> envelope.LayerCodec[Any]:
    match config:
        case layer_models.WmsRasterConfig():
            return wms.CODEC
        case layer_models.WmtsExplicitConfig() | layer_models.WmtsCapabilitiesConfig():
            return wmts.CODEC
        case layer_models.ArcGisRestConfig():
            return arcgis.CODEC
        case layer_models.XyzRasterConfig():
            return xyz.CODEC
    raise TypeError(f"Unsupported layer config: {type(config).__name__}")


def codec_for_envelope(data: object) -> envelope.LayerCodec[Any]:
    """Return the codec registered for an envelope's ``_type``.

    Raises:
        PersistenceError: ``INVALID_TYPE`` if the type is missing or unknown.
    """
    layer_type = data.get("_type") if isinstance(data, dict) else None
    codec = CODECS.get(layer_type) if isinstance(layer_type, str) else None
    if codec is None:
        raise errors.PersistenceError(
            "layer",
            [
                ValidationIssue(
                    "_type",
                    f"Unknown layer type {layer_type!r}; expected one of {sorted(CODECS)}",
                    "INVALID_TYPE",
                    layer_type,
                )
            ],
        )
    return codec


def to_persisted_config(config: layer_models.LayerConfig) -> envelope.Envelope:
    return codec_for_config(config).to_persisted(config)


def from_persisted_config(
    data: object, *, allow_skipped_migrations: bool | None = None
) -> envelope.PersistedResult[layer_models.LayerConfig]:
    """Reconstruct any layer config from its envelope.

    Raises:
        PersistenceError: If the type is unknown or the envelope is invalid.
    """
    return codec_for_envelope(data).from_persisted(
        data, allow_skipped_migrations=allow_skipped_migrations
    )


def validate_persisted_config(data: object) -> envelope.PersistedValidationResult:
    try:
        codec = codec_for_envelope(data)
    except errors.PersistenceError as exc:
        return envelope.PersistedValidationResult(False, exc.errors, [])
    return codec.validate_persisted(data)


def deserialize_layer(
    data: object,
    settings: core_config.Settings | None = None,
) -> tuple[sources.LayerDefinition, list[ValidationIssue]]:
    """Reconstruct a config and build its layer definition.

    Raises:
        PersistenceError: If the envelope is invalid.
        ConfigurationError: If the config cannot be built, including for
            capabilities-driven WMTS layers (use ``deserialize_layer_async``).
    """
    result = from_persisted_config(
        data,
        allow_skipped_migrations=settings.allow_skipped_migrations if settings else None,
    )
    return layer_service.create_layer(result.config, settings), result.warnings


async def deserialize_layer_async(
    data: object,
    settings: core_config.Settings | None = None,
    **fetch_options: Any,
) -> tuple[sources.LayerDefinition, list[ValidationIssue]]:
    """Like ``deserialize_layer``, resolving capabilities when needed."""
    result = from_persisted_config(
        data,
        allow_skipped_migrations=settings.allow_skipped_migrations if settings else None,
    )
    definition = await layer_service.create_layer_async(
        result.config, settings, **fetch_options
    )
    return definition, result.warnings
