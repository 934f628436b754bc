"""Synchronous configuration checks run when a layer is built.

Every check raises ``ConfigurationError`` with a stable code and the field
path that failed.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from mapsource.core import errors
from mapsource.utils import urls

if TYPE_CHECKING:
    from mapsource.models import layers

LAYER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
MIN_ZOOM = 0
MAX_ZOOM = 24


def _is_number(value: object) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def validate_layer_id(layer_id: object) -> None:
    if not isinstance(layer_id, str) or not layer_id.strip():
        raise errors.ConfigurationError(
            "INVALID_ID", "Layer id must be a non-empty string", field="id"
        )
    if not LAYER_ID_PATTERN.match(layer_id):
        raise errors.ConfigurationError(
            "INVALID_ID_FORMAT",
            f"Layer id may only contain letters, digits, '_' and '-': {layer_id!r}",
            field="id",
        )


def validate_opacity(opacity: object) -> None:
    if opacity is None:
        return
    if not _is_number(opacity):
        raise errors.ConfigurationError(
            "INVALID_OPACITY", "Opacity must be a number", field="opacity"
        )
    if not 0 <= opacity <= 1:  # type: ignore[operator]
        raise errors.ConfigurationError(
            "OPACITY_OUT_OF_RANGE",
            f"Opacity must be between 0 and 1, got {opacity}",
            field="opacity",
        )


def validate_zoom(value: object, field: str) -> None:
    if value is None:
        return
    if not _is_number(value):
        raise errors.ConfigurationError(
            "INVALID_ZOOM", f"{field} must be a number", field=field
        )
    if not MIN_ZOOM <= value <= MAX_ZOOM:  # type: ignore[operator]
        raise errors.ConfigurationError(
            "ZOOM_OUT_OF_RANGE",
            f"{field} must be between {MIN_ZOOM} and {MAX_ZOOM}, got {value}",
            field=field,
        )


def validate_zoom_range(minzoom: int | None, maxzoom: int | None) -> None:
    validate_zoom(minzoom, "minzoom")
    validate_zoom(maxzoom, "maxzoom")
    if minzoom is not None and maxzoom is not None and minzoom > maxzoom:
        raise errors.ConfigurationError(
            "INVALID_ZOOM_RANGE",
            f"minzoom ({minzoom}) must not exceed maxzoom ({maxzoom})",
            field="minzoom",
        )


def validate_url(url: object, field: str) -> str:
    """Check a URL and return it normalized (trimmed, fragment dropped)."""
    check = urls.validate_safe_url(url)
    if not check.valid:
        raise errors.ConfigurationError(
            check.code or "INVALID_URL", check.message or "Invalid URL", field=field
        )
    return urls.normalize_url(url)  # type: ignore[arg-type]


def validate_positive_int(value: object, field: str) -> None:
    if value is None:
        return
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise errors.ConfigurationError(
            "INVALID_TILE_SIZE", f"{field} must be a positive integer", field=field
        )


def validate_base(config: layers.BaseLayerConfig) -> None:
    """Check the fields every layer kind shares."""
    validate_layer_id(config.id)
    validate_opacity(config.opacity)
    validate_zoom_range(config.minzoom, config.maxzoom)
