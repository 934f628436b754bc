"""Tests for the FastAPI application factory, health check and error mapping."""

from __future__ import annotations

import asyncio
import json
from typing import cast

import pytest
from fastapi import testclient

from mapsource import main
from mapsource.core import errors


def test_create_app() -> None:
    """Test that create_app returns a configured FastAPI instance."""
    app = main.create_app()
    assert app.title == "Map Source"
    assert app.version == "0.1.0"


def test_health_endpoint() -> None:
    """Test the health check endpoint returns ok status."""
    client = testclient.TestClient(main.create_app())
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_app_includes_routers() -> None:
    """Test that all API routers are included in the app."""
    app = main.create_app()
    routes: list[str] = [
        cast(str, getattr(route, "path", ""))
        for route in app.routes  # type: ignore[attr-defined]
        if hasattr(route, "path")
    ]
    assert "/health" in routes
    assert "/api/capabilities" in routes
    assert "/api/layers" in routes
    assert "/api/layers/{layer_id}/source" in routes
    assert "/tiles/{layer_id}/{z}/{x}/{y}" in routes


@pytest.mark.parametrize(
    ("exc", "status"),
    [
        (errors.ConfigurationError("INVALID_OPACITY", "bad"), 422),
        (errors.PersistenceError("WMS", []), 422),
        (errors.NetworkError("TIMEOUT", "slow"), 504),
        (errors.NetworkError("HTTP_ERROR", "down", status=500), 502),
        (errors.ParseError("INVALID_XML", "garbage"), 502),
        (errors.MapSourceError("OTHER", "other"), 500),
    ],
)
def test_error_status_mapping(exc: errors.MapSourceError, status: int) -> None:
    assert main._error_status(exc) == status


def test_error_handler_body() -> None:
    """Test structured errors are returned with their code and field."""
    exc = errors.ConfigurationError("INVALID_OPACITY", "Opacity must be a number", field="opacity")
    response = asyncio.run(main._handle_error(None, exc))  # type: ignore[arg-type]
    assert response.status_code == 422
    assert json.loads(response.body) == {
        "code": "INVALID_OPACITY",
        "message": "Opacity must be a number",
        "field": "opacity",
    }
