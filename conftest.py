"""Shared pytest fixtures for the mapsource test suite."""

from __future__ import annotations

import pathlib
from collections.abc import Iterator

import pytest
from fastapi import testclient

from mapsource import main
from mapsource.api import layers as api_layers
from mapsource.core import config
from mapsource.db import database
from mapsource.services import tile_registry

DATA_DIR = pathlib.Path(__file__).resolve().parent / "tests" / "data"


@pytest.fixture(autouse=True)
def _isolate_state() -> Iterator[None]:
    """Reset process-wide caches between tests."""
    config.get_settings.cache_clear()
    tile_registry.get_tile_registry().reset()
    yield
    tile_registry.get_tile_registry().reset()
    config.get_settings.cache_clear()


@pytest.fixture
def settings() -> config.Settings:
    return config.Settings(
        capabilities_timeout_seconds=5.0,
        default_tile_size=256,
        allow_skipped_migrations=True,
        public_base_url="http://testserver",
    )


@pytest.fixture
def repo() -> database.InMemoryLayerRepository:
    return database.InMemoryLayerRepository()


@pytest.fixture
def client(
    settings: config.Settings, repo: database.InMemoryLayerRepository
) -> Iterator[testclient.TestClient]:
    """Test client wired to an in-memory repository."""
    app = main.create_app()
    app.dependency_overrides[api_layers._get_repo] = lambda: repo
    app.dependency_overrides[config.get_settings] = lambda: settings
    try:
        yield testclient.TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def wmts_xml() -> str:
    return (DATA_DIR / "wmts_capabilities.xml").read_text(encoding="utf-8")


@pytest.fixture
def wms_130_xml() -> str:
    return (DATA_DIR / "wms_130_capabilities.xml").read_text(encoding="utf-8")


@pytest.fixture
def wms_111_xml() -> str:
    return (DATA_DIR / "wms_111_capabilities.xml").read_text(encoding="utf-8")
