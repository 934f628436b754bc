"""Capabilities discovery endpoint.

Example:
    Inspect a WMTS service:
        >>> response = client.get(
        ...     "/api/capabilities",
        ...     params={"url": "https://example.com/wmts", "service": "WMTS"},
        ... )
        >>> [layer["identifier"] for layer in response.json()["layers"]]
        ['topo']
"""

import dataclasses
from typing import Any, Literal

import fastapi

from mapsource.core import config
from mapsource.services import capabilities as caps_service
from mapsource.services import validation

router = fastapi.APIRouter(prefix="/api/capabilities", tags=["capabilities"])


@router.get("")
async def get_capabilities(
    url: str,
    service: Literal["WMS", "WMTS"] = "WMTS",
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> dict[str, Any]:
    """Fetch and parse a remote capabilities document.

    Args:
        url: Service URL, with or without GetCapabilities parameters.
        service: Service dialect to request and parse.
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        The parsed capabilities as a JSON object.

    Raises:
        ConfigurationError: If the URL is unsafe (mapped to 422).
        NetworkError: If the fetch fails (mapped to 502/504).
        ParseError: If the document cannot be parsed (mapped to 502).
    """
    safe_url = validation.validate_url(url, "url")
    document = await caps_service.fetch_capabilities(
        safe_url, service, timeout=settings.capabilities_timeout_seconds
    )
    return dataclasses.asdict(document)
