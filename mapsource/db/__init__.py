"""Repository abstractions for persisted layer configurations.

Layer configs are stored as their versioned persistence envelopes so they can
be migrated on load. Use ``mapsource.db.database.get_layer_repository`` to get
the production repository.

Example:
    Use in a service or FastAPI dependency:
        >>> from mapsource.db import database
        >>> repo = database.get_layer_repository(settings)
"""
