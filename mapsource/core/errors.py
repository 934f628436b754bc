"""Error taxonomy shared by every part of the service.

Four families of failures are distinguished so callers (and the HTTP layer)
can react without string matching:

- ConfigurationError: contradictory or missing configuration, raised
  synchronously while building a layer. Never retried.
- NetworkError: raised only by the capabilities fetch step.
- ParseError: a capabilities document could not be parsed.
- PersistenceError: a persisted layer envelope failed validation. Carries the
  list of ValidationIssue records collected before failing.

Every error exposes a stable machine ``code`` and, where relevant, the
``field`` path that failed.

Example:
    Handle a configuration failure:
        >>> from mapsource.core import errors
        >>> try:
        ...     raise errors.ConfigurationError(
        ...         "INVALID_OPACITY", "Opacity must be a number", field="opacity"
        ...     )
        ... except errors.MapSourceError as exc:
        ...     print(exc.code, exc.field)
        INVALID_OPACITY opacity
"""

from __future__ import annotations

import dataclasses
from typing import Any


@dataclasses.dataclass(frozen=True)
class ValidationIssue:
    """A single validation error or warning for a persisted layer config.

    Attributes:
        path: Field path that failed (e.g. "baseUrl", "tiles[0]", "_version").
        message: Human-readable message.
        code: Stable machine code (e.g. "INVALID_TYPE", "VERSION_NEWER").
        value: Offending value, if available.
    """

    path: str
    message: str
    code: str
    value: Any = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "message": self.message,
            "code": self.code,
            "value": self.value,
        }


class MapSourceError(Exception):
    """Base class for all structured errors raised by mapsource."""

    def __init__(self, code: str, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.field = field

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "field": self.field}


class ConfigurationError(MapSourceError):
    """Raised when a layer configuration is missing or contradictory."""


class NetworkError(MapSourceError):
    """Raised when fetching a capabilities document fails.

    Codes are ``TIMEOUT``, ``ABORTED``, ``HTTP_ERROR`` and ``NETWORK_ERROR``.
    """

    def __init__(
        self,
        code: str,
        message: str,
        url: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(code, message)
        self.url = url
        self.status = status

    def as_dict(self) -> dict[str, Any]:
        result = super().as_dict()
        result["url"] = self.url
        result["status"] = self.status
        return result


class ParseError(MapSourceError):
    """Raised when a capabilities document cannot be parsed."""


class PersistenceError(MapSourceError):
    """Raised when a persisted layer config fails validation.

    Attributes:
        errors: Issues collected before the failure. Several code paths fail
            fast, so the list is not guaranteed to be exhaustive.
    """

    def __init__(self, layer_label: str, errors: list[ValidationIssue]) -> None:
        first = errors[0] if errors else None
        detail = ", ".join(issue.message for issue in errors) or "unknown error"
        super().__init__(
            first.code if first else "INVALID_CONFIG",
            f"Invalid persisted {layer_label} config: {detail}",
            field=first.path if first else None,
        )
        self.errors = list(errors)

    def as_dict(self) -> dict[str, Any]:
        result = super().as_dict()
        result["errors"] = [issue.as_dict() for issue in self.errors]
        return result
