"""Stored layer record.

Example:
    Wrap a persisted envelope for storage:
        >>> from mapsource.db.models import StoredLayer
        >>> stored = StoredLayer.from_envelope(
        ...     {"_version": 1, "_type": "xyz-raster", "id": "osm",
        ...      "tiles": ["https://tile.example/{z}/{x}/{y}.png"]}
        ... )
        >>> stored.layer_type
        'xyz-raster'
"""

from __future__ import annotations

import copy
import dataclasses
import datetime
from typing import Any


def _now() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


@dataclasses.dataclass
class StoredLayer:
    """A persisted layer configuration as kept by a repository.

    Attributes:
        id: Layer identifier (the envelope's ``id``).
        layer_type: Envelope ``_type`` discriminator.
        schema_version: Envelope ``_version`` at the time of storage.
        config: The full envelope.
        created_at: When the record was first stored.
    """

    id: str
    layer_type: str
    schema_version: int
    config: dict[str, Any]
    created_at: datetime.datetime = dataclasses.field(default_factory=_now)

    @classmethod
    def from_envelope(cls, envelope: dict[str, Any]) -> StoredLayer:
        return cls(
            id=str(envelope["id"]),
            layer_type=str(envelope["_type"]),
            schema_version=int(envelope["_version"]),
            config=copy.deepcopy(envelope),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.layer_type,
            "schemaVersion": self.schema_version,
            "config": self.config,
            "createdAt": self.created_at.isoformat(),
        }
