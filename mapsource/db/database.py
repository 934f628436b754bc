"""Repositories for persisted layer configurations."""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING, Protocol, cast

import psycopg2
import psycopg2.extensions
import psycopg2.extras

from mapsource.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Iterable

    from mapsource.core import config


class LayerRepositoryProtocol(Protocol):
    """Protocol interface for storing and retrieving layer configs.

    Implementations persist StoredLayer records, supporting both in-memory
    (testing) and PostgreSQL (production) backends.
    """

    def add(self, layer: db_models.StoredLayer) -> db_models.StoredLayer: ...

    def get(self, layer_id: str) -> db_models.StoredLayer | None: ...

    def all(self) -> Iterable[db_models.StoredLayer]: ...

    def delete(self, layer_id: str) -> bool: ...


class InMemoryLayerRepository(LayerRepositoryProtocol):
    """Simple in-memory store for tests and local development.

    Data is lost when the process exits.
    """

    def __init__(self) -> None:
        """Initialize an empty in-memory repository."""
        self._store: dict[str, db_models.StoredLayer] = {}

    def add(self, layer: db_models.StoredLayer) -> db_models.StoredLayer:
        """Add or replace a layer, keeping the original creation time.

        Args:
            layer: Layer record to store.

        Returns:
            The stored record.
        """
        existing = self._store.get(layer.id)
        if existing is not None:
            layer.created_at = existing.created_at
        self._store[layer.id] = layer
        return layer

    def get(self, layer_id: str) -> db_models.StoredLayer | None:
        return self._store.get(layer_id)

    def all(self) -> Iterable[db_models.StoredLayer]:
        """Get all stored layers, newest first."""
        return sorted(self._store.values(), key=lambda layer: layer.created_at, reverse=True)

    def delete(self, layer_id: str) -> bool:
        return self._store.pop(layer_id, None) is not None


class PostgresLayerRepository(LayerRepositoryProtocol):
    """PostgreSQL-backed repository storing envelopes as JSONB.

    Creates the ``layer_configs`` table on initialization.
    """

    CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS layer_configs (
      id TEXT PRIMARY KEY,
      layer_type TEXT NOT NULL,
      schema_version INTEGER NOT NULL,
      config JSONB NOT NULL,
      created_at TIMESTAMPTZ DEFAULT now()
    );
    """

    def __init__(self, settings: config.Settings) -> None:
        """Initialize repository with database settings.

        Args:
            settings: Application settings containing database connection URL.
        """
        self.settings = settings
        self._ensure_schema()

    def _connection(self) -> psycopg2.extensions.connection:
        return psycopg2.connect(
            self.settings.database_url,
            cursor_factory=psycopg2.extras.RealDictCursor,
        )

    def _ensure_schema(self) -> None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(self.CREATE_TABLE_SQL)
            conn.commit()

    def add(self, layer: db_models.StoredLayer) -> db_models.StoredLayer:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO layer_configs (
                    id, layer_type, schema_version, config, created_at
                ) VALUES (%(id)s, %(layer_type)s, %(schema_version)s,
                    %(config)s, %(created_at)s)
                ON CONFLICT (id) DO UPDATE SET
                    layer_type = EXCLUDED.layer_type,
                    schema_version = EXCLUDED.schema_version,
                    config = EXCLUDED.config;
                """,
                self._to_row(layer),
            )
            conn.commit()
        return layer

    def get(self, layer_id: str) -> db_models.StoredLayer | None:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT * FROM layer_configs WHERE id = %s", (layer_id,))
            row = cur.fetchone()
            if row is None:
                return None
            else:
                return self._from_row(cast(dict[str, object], row))

    def all(self) -> Iterable[db_models.StoredLayer]:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT * FROM layer_configs ORDER BY created_at DESC")
            for row in cur.fetchall():
                yield self._from_row(cast(dict[str, object], row))

    def delete(self, layer_id: str) -> bool:
        with self._connection() as conn, conn.cursor() as cur:
            cur.execute("DELETE FROM layer_configs WHERE id = %s", (layer_id,))
            deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    @staticmethod
    def _to_row(layer: db_models.StoredLayer) -> dict[str, object]:
        """Convert a StoredLayer to a parameter dictionary.

        Args:
            layer: Layer record to convert.

        Returns:
            Dictionary suitable for parameterized SQL insertion, with the
            envelope wrapped for JSONB.
        """
        return {
            "id": layer.id,
            "layer_type": layer.layer_type,
            "schema_version": layer.schema_version,
            "config": psycopg2.extras.Json(layer.config),
            "created_at": layer.created_at,
        }

    @staticmethod
    def _from_row(row: dict[str, object]) -> db_models.StoredLayer:
        """Convert a database row dictionary to a StoredLayer.

        Args:
            row: Dictionary from database query result.

        Returns:
            StoredLayer with all fields populated.
        """
        created_at_value = row.get("created_at")
        created_at = (
            created_at_value
            if isinstance(created_at_value, datetime.datetime)
            else datetime.datetime.now(datetime.UTC)
        )
        return db_models.StoredLayer(
            id=str(row["id"]),
            layer_type=str(row["layer_type"]),
            schema_version=int(cast(int, row["schema_version"])),
            config=dict(cast(dict[str, object], row["config"])),
            created_at=created_at,
        )


def get_layer_repository(settings: config.Settings) -> LayerRepositoryProtocol:
    """Factory function to create a layer repository.

    Args:
        settings: Application settings for database connection.

    Returns:
        PostgresLayerRepository instance for production use.
    """
    return PostgresLayerRepository(settings)
