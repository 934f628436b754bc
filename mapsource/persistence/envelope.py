"""Schema-versioned persistence envelope shared by every layer kind.

A persisted layer config is a flat JSON object::

    {"_version": 1, "_type": "wms-raster", "id": "roads", "baseUrl": ..., ...}

Loading runs a fixed pipeline: version check, type check, migration to the
current schema version, required field validation, then reconstruction of
the config with optional fields copied only when present and well typed.
Warnings (a newer schema version, a skipped migration) never fail a load.

Example:
    Load a persisted WMS layer:
        >>> from mapsource.persistence import wms
        >>> result = wms.CODEC.from_persisted(
        ...     {"_version": 1, "_type": "wms-raster", "id": "t",
        ...      "baseUrl": "https://h/wms", "layers": "l"}
        ... )
        >>> result.warnings
        []
"""

from __future__ import annotations

import copy
import dataclasses
import logging
import math
from collections.abc import Callable, Mapping
from typing import Any, ClassVar, Generic, TypeVar, cast

from mapsource.core import config as core_config
from mapsource.core import errors
from mapsource.core.errors import ValidationIssue
from mapsource.utils import urls

logger = logging.getLogger(__name__)

LAYER_CONFIG_SCHEMA_VERSION = 1
MIN_LAYER_CONFIG_SCHEMA_VERSION = 1

Envelope = dict[str, Any]
MigrationStep = Callable[[Envelope], Envelope]

ConfigT = TypeVar("ConfigT")


# Validators append to ``issues`` and return whether the value is usable.


def require_string(
    value: object, path: str, name: str, issues: list[ValidationIssue]
) -> bool:
    if not isinstance(value, str) or not value.strip():
        issues.append(
            ValidationIssue(path, f"{name} must be a non-empty string", "INVALID_STRING", value)
        )
        return False
    return True


def validate_number(
    value: object,
    path: str,
    name: str,
    issues: list[ValidationIssue],
    *,
    minimum: float | None = None,
    maximum: float | None = None,
    integer: bool = False,
    required: bool = False,
) -> bool:
    if value is None:
        if required:
            issues.append(ValidationIssue(path, f"{name} is required", "MISSING_FIELD", value))
        return False
    if (
        not isinstance(value, int | float)
        or isinstance(value, bool)
        or (isinstance(value, float) and math.isnan(value))
    ):
        issues.append(ValidationIssue(path, f"{name} must be a number", "INVALID_NUMBER", value))
        return False
    if integer and not float(value).is_integer():
        issues.append(ValidationIssue(path, f"{name} must be an integer", "NOT_INTEGER", value))
        return False
    if minimum is not None and value < minimum:
        issues.append(
            ValidationIssue(path, f"{name} must be >= {minimum}", "VALUE_TOO_SMALL", value)
        )
        return False
    if maximum is not None and value > maximum:
        issues.append(
            ValidationIssue(path, f"{name} must be <= {maximum}", "VALUE_TOO_LARGE", value)
        )
        return False
    return True


def validate_url(
    value: object,
    path: str,
    name: str,
    issues: list[ValidationIssue],
    *,
    required: bool = True,
) -> bool:
    if value is None:
        if required:
            issues.append(ValidationIssue(path, f"{name} is required", "MISSING_FIELD", value))
        return False
    if not isinstance(value, str):
        issues.append(ValidationIssue(path, f"{name} must be a string", "INVALID_TYPE", value))
        return False
    check = urls.validate_safe_url(value)
    if not check.valid:
        issues.append(
            ValidationIssue(path, f"{name} must be a valid URL", check.code or "INVALID_URL", value)
        )
        return False
    return True


def validate_array(
    value: object,
    path: str,
    name: str,
    issues: list[ValidationIssue],
    *,
    item_validator: Callable[[object, str, list[ValidationIssue]], bool] | None = None,
    required: bool = True,
) -> bool:
    if value is None:
        if required:
            issues.append(ValidationIssue(path, f"{name} is required", "MISSING_FIELD", value))
        return False
    if not isinstance(value, list):
        issues.append(ValidationIssue(path, f"{name} must be an array", "INVALID_TYPE", value))
        return False
    if item_validator is not None:
        for index, item in enumerate(value):
            if not item_validator(item, f"{path}[{index}]", issues):
                return False
    return True


def validate_object(
    value: object,
    path: str,
    name: str,
    issues: list[ValidationIssue],
    *,
    required: bool = True,
) -> bool:
    if value is None:
        if required:
            issues.append(ValidationIssue(path, f"{name} is required", "MISSING_FIELD", value))
        return False
    if not isinstance(value, dict):
        issues.append(ValidationIssue(path, f"{name} must be an object", "INVALID_TYPE", value))
        return False
    return True


def validate_schema_version(
    envelope: object,
    issues: list[ValidationIssue],
    warnings: list[ValidationIssue],
) -> bool:
    """Check ``_version``, ``_type`` and ``id`` of an envelope.

    A version newer than ``LAYER_CONFIG_SCHEMA_VERSION`` is only a warning;
    a version below ``MIN_LAYER_CONFIG_SCHEMA_VERSION`` is an error.
    """
    if not validate_object(envelope, "", "config", issues):
        return False
    envelope = cast(Envelope, envelope)

    version = envelope.get("_version")
    if not validate_number(
        version, "_version", "Schema version", issues, integer=True, required=True
    ):
        return False
    if version < MIN_LAYER_CONFIG_SCHEMA_VERSION:  # type: ignore[operator]
        issues.append(
            ValidationIssue(
                "_version",
                f"Schema version {version} is too old "
                f"(minimum: {MIN_LAYER_CONFIG_SCHEMA_VERSION})",
                "VERSION_TOO_OLD",
                version,
            )
        )
        return False
    if version > LAYER_CONFIG_SCHEMA_VERSION:  # type: ignore[operator]
        warnings.append(
            ValidationIssue(
                "_version",
                f"Schema version {version} is newer than current "
                f"({LAYER_CONFIG_SCHEMA_VERSION})",
                "VERSION_NEWER",
                version,
            )
        )

    if not require_string(envelope.get("_type"), "_type", "Layer type", issues):
        return False
    return require_string(envelope.get("id"), "id", "Layer ID", issues)


# Migration


@dataclasses.dataclass(frozen=True)
class SkippedMigration:
    """No step was registered to migrate ``from_version`` to ``to_version``."""

    from_version: int
    to_version: int


@dataclasses.dataclass
class MigrationInfo:
    from_version: int
    to_version: int
    steps: list[str] = dataclasses.field(default_factory=list)
    skipped: list[SkippedMigration] = dataclasses.field(default_factory=list)


def migrate_envelope(
    envelope: Mapping[str, Any],
    migrations: Mapping[int, MigrationStep],
    target_version: int = LAYER_CONFIG_SCHEMA_VERSION,
) -> tuple[Envelope, MigrationInfo]:
    """Migrate an envelope to ``target_version``.

    Steps are looked up by the envelope's current version and applied one
    at a time. A missing step still advances the version and is reported in
    ``MigrationInfo.skipped``. The input is never mutated, and an envelope
    at or above the target version is returned unchanged.

    Args:
        envelope: Envelope with an integer ``_version``.
        migrations: Steps keyed by the version they migrate from.
        target_version: Version to migrate to.

    Returns:
        The migrated copy and a record of what happened.
    """
    current = copy.deepcopy(dict(envelope))
    start = int(current["_version"])
    info = MigrationInfo(from_version=start, to_version=max(start, target_version))

    while current["_version"] < target_version:
        from_version = int(current["_version"])
        step = migrations.get(from_version)
        if step is None:
            current["_version"] = from_version + 1
            info.skipped.append(SkippedMigration(from_version, from_version + 1))
            info.steps.append(f"Skipped v{from_version} (no migration)")
            logger.warning(
                "No migration registered from v%d for %s %s",
                from_version,
                current.get("_type"),
                current.get("id"),
            )
            continue
        current = step(current)
        current["_version"] = from_version + 1
        info.steps.append(f"Migrated from v{from_version} to v{from_version + 1}")

    return current, info


# Optional field readers return MISSING when a value is absent or mistyped.

MISSING: Any = object()

FieldReader = Callable[[object], Any]


def read_string(value: object) -> Any:
    return value if isinstance(value, str) else MISSING


def read_bool(value: object) -> Any:
    return value if isinstance(value, bool) else MISSING


def read_number(
    minimum: float | None = None, maximum: float | None = None, integer: bool = False
) -> FieldReader:
    def reader(value: object) -> Any:
        scratch: list[ValidationIssue] = []
        if validate_number(
            value, "", "", scratch, minimum=minimum, maximum=maximum, integer=integer
        ):
            return int(value) if integer else value  # type: ignore[arg-type]
        return MISSING

    return reader


def read_choice(*choices: str) -> FieldReader:
    def reader(value: object) -> Any:
        return value if value in choices else MISSING

    return reader


def read_object(value: object) -> Any:
    return dict(value) if isinstance(value, dict) else MISSING


def read_string_map(value: object) -> Any:
    if isinstance(value, dict) and all(
        isinstance(key, str) and isinstance(item, str) for key, item in value.items()
    ):
        return dict(value)
    return MISSING


def read_string_list(value: object) -> Any:
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    return MISSING


def read_string_or_list(value: object) -> Any:
    if isinstance(value, str):
        return value
    return read_string_list(value)


@dataclasses.dataclass(frozen=True)
class OptionalField:
    """Maps an envelope key to a config attribute."""

    key: str
    attr: str
    reader: FieldReader


BASE_FIELDS = (
    OptionalField("title", "title", read_string),
    OptionalField("attribution", "attribution", read_string),
    OptionalField("minzoom", "minzoom", read_number(0, 24)),
    OptionalField("maxzoom", "maxzoom", read_number(0, 24)),
    OptionalField("opacity", "opacity", read_number(0, 1)),
    OptionalField("visible", "visible", read_bool),
    OptionalField("category", "category", read_choice("base", "overlay", "annotation")),
    OptionalField("metadata", "metadata", read_object),
)


def read_optional_fields(
    envelope: Mapping[str, Any], fields: tuple[OptionalField, ...]
) -> dict[str, Any]:
    """Collect present, well-typed optional fields as constructor kwargs."""
    values: dict[str, Any] = {}
    for field in fields:
        if field.key not in envelope:
            continue
        value = field.reader(envelope[field.key])
        if value is not MISSING:
            values[field.attr] = value
    return values


def write_optional_fields(
    envelope: Envelope, config: object, fields: tuple[OptionalField, ...]
) -> None:
    for field in fields:
        value = getattr(config, field.attr, None)
        if value is not None:
            envelope[field.key] = copy.deepcopy(value)


# Codec pipeline


@dataclasses.dataclass
class PersistedResult(Generic[ConfigT]):
    """A reconstructed config plus non-fatal warnings."""

    config: ConfigT
    warnings: list[ValidationIssue] = dataclasses.field(default_factory=list)
    migration: MigrationInfo | None = None
    envelope: Envelope = dataclasses.field(default_factory=dict)


@dataclasses.dataclass
class PersistedValidationResult:
    valid: bool
    errors: list[ValidationIssue] = dataclasses.field(default_factory=list)
    warnings: list[ValidationIssue] = dataclasses.field(default_factory=list)


class LayerCodec(Generic[ConfigT]):
    """Base class for per-kind serializers.

    Subclasses set ``layer_type`` and ``label`` and implement ``dump``,
    ``validate_required`` and ``build``. Registered ``migrations`` are keyed
    by the schema version they migrate from.
    """

    layer_type: ClassVar[str]
    label: ClassVar[str]
    optional_fields: ClassVar[tuple[OptionalField, ...]] = ()
    migrations: ClassVar[Mapping[int, MigrationStep]] = {}
    target_version: ClassVar[int] = LAYER_CONFIG_SCHEMA_VERSION

    def dump(self, config: ConfigT) -> Envelope:
        """Return the kind-specific required fields of ``config``."""
        raise NotImplementedError

    def validate_required(self, envelope: Envelope, issues: list[ValidationIssue]) -> None:
        """Append issues for missing or invalid required fields."""
        raise NotImplementedError

    def build(self, envelope: Envelope, optional: dict[str, Any]) -> ConfigT:
        """Construct the config from a validated envelope."""
        raise NotImplementedError

    def to_persisted(self, config: ConfigT) -> Envelope:
        """Serialize a config into a current-version envelope.

        Transform hooks are not persisted.
        """
        envelope: Envelope = {
            "_version": LAYER_CONFIG_SCHEMA_VERSION,
            "_type": self.layer_type,
            "id": config.id,  # type: ignore[attr-defined]
        }
        envelope.update(self.dump(config))
        write_optional_fields(envelope, config, BASE_FIELDS + self.optional_fields)
        return envelope

    def _fail(self, issues: list[ValidationIssue]) -> errors.PersistenceError:
        return errors.PersistenceError(self.label, issues)

    def from_persisted(
        self,
        envelope: object,
        *,
        allow_skipped_migrations: bool | None = None,
    ) -> PersistedResult[ConfigT]:
        """Validate, migrate and reconstruct a persisted config.

        Args:
            envelope: Decoded JSON object.
            allow_skipped_migrations: Whether a missing migration step is a
                warning (True) or an error (False). Defaults to the
                ``allow_skipped_migrations`` setting.

        Returns:
            The reconstructed config, warnings and the migrated envelope.

        Raises:
            PersistenceError: At the first failing stage.
        """
        issues: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        if not validate_schema_version(envelope, issues, warnings):
            raise self._fail(issues)
        envelope = cast(Envelope, envelope)

        if envelope["_type"] != self.layer_type:
            issues.append(
                ValidationIssue(
                    "_type",
                    f'Expected type "{self.layer_type}", got "{envelope["_type"]}"',
                    "INVALID_TYPE",
                    envelope["_type"],
                )
            )
            raise self._fail(issues)

        migrated, info = migrate_envelope(envelope, self.migrations, self.target_version)
        if allow_skipped_migrations is None:
            allow_skipped_migrations = core_config.get_settings().allow_skipped_migrations
        for skipped in info.skipped:
            issue = ValidationIssue(
                "_version",
                f"No migration from v{skipped.from_version} to v{skipped.to_version}; "
                "fields were passed through unchanged",
                "MIGRATION_SKIPPED",
                skipped.from_version,
            )
            (warnings if allow_skipped_migrations else issues).append(issue)
        if issues:
            raise self._fail(issues)

        if not require_string(migrated.get("id"), "id", "Layer ID", issues):
            raise self._fail(issues)
        self.validate_required(migrated, issues)
        if issues:
            raise self._fail(issues)

        optional = read_optional_fields(migrated, BASE_FIELDS + self.optional_fields)
        return PersistedResult(
            config=self.build(migrated, optional),
            warnings=warnings,
            migration=info,
            envelope=migrated,
        )

    def validate_persisted(
        self,
        envelope: object,
        *,
        allow_skipped_migrations: bool | None = None,
    ) -> PersistedValidationResult:
        """Run the load pipeline and report instead of raising."""
        try:
            result = self.from_persisted(
                envelope, allow_skipped_migrations=allow_skipped_migrations
            )
        except errors.PersistenceError as exc:
            return PersistedValidationResult(False, exc.errors, [])
        return PersistedValidationResult(True, [], result.warnings)
