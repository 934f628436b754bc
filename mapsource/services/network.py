"""Asynchronous capabilities fetch over httpx.

This is the only I/O in the library. A request is raced against an optional
timeout and an optional ``asyncio.Event`` abort signal; whichever fires first
cancels the request exactly once. There is no retry.

Example:
    Fetch with a 10 second timeout:
        >>> text = await fetch_text("https://example.com/wmts", timeout=10)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx

from mapsource.core import errors

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
XML_ACCEPT = "application/xml, text/xml, */*"

RequestSpec = tuple[str, dict[str, str]]
# Called once with (url, headers); may return a new (url, headers) pair,
# None to keep them, or an awaitable of either.
RequestTransform = Callable[
    [str, dict[str, str]], RequestSpec | None | Awaitable[RequestSpec | None]
]


async def _apply_request_transform(
    transform: RequestTransform | None, url: str, headers: dict[str, str]
) -> RequestSpec:
    if transform is None:
        return url, headers
    result: Any = transform(url, headers)
    if inspect.isawaitable(result):
        result = await result
    if result is None:
        return url, headers
    new_url, new_headers = result
    return new_url, dict(new_headers or {})


async def _get(
    client: httpx.AsyncClient, url: str, headers: dict[str, str]
) -> str:
    try:
        response = await client.get(url, headers=headers)
    except httpx.TimeoutException as exc:
        raise errors.NetworkError(
            "TIMEOUT", f"Request timed out: {url}", url=url
        ) from exc
    except httpx.RequestError as exc:
        raise errors.NetworkError(
            "NETWORK_ERROR", f"Request failed: {exc}", url=url
        ) from exc

    if not response.is_success:
        raise errors.NetworkError(
            "HTTP_ERROR",
            f"HTTP {response.status_code} {response.reason_phrase} for {url}",
            url=url,
            status=response.status_code,
        )
    return response.text


async def fetch_text(
    url: str,
    *,
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
    abort: asyncio.Event | None = None,
    headers: Mapping[str, str] | None = None,
    request_transform: RequestTransform | None = None,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Fetch a URL and return its body as text.

    Args:
        url: URL to fetch.
        timeout: Seconds before the request is aborted; None or 0 disables.
        abort: Event that aborts the request when set.
        headers: Extra request headers.
        request_transform: Hook applied once to the URL and headers, for
            example to add credentials. May be sync or async.
        client: Client to use; a short-lived one is created otherwise.

    Returns:
        The response body.

    Raises:
        NetworkError: ``TIMEOUT``, ``ABORTED``, ``HTTP_ERROR`` (with status)
            or ``NETWORK_ERROR``.
    """
    if abort is not None and abort.is_set():
        raise errors.NetworkError("ABORTED", f"Request aborted: {url}", url=url)

    request_url, request_headers = await _apply_request_transform(
        request_transform, url, dict(headers or {})
    )
    logger.info("Fetching %s", request_url)

    owns_client = client is None
    http = client or httpx.AsyncClient(follow_redirects=True, timeout=None)
    try:
        request_task = asyncio.ensure_future(_get(http, request_url, request_headers))
        waiters: set[asyncio.Future[Any]] = {request_task}
        abort_task: asyncio.Future[Any] | None = None
        if abort is not None:
            abort_task = asyncio.ensure_future(abort.wait())
            waiters.add(abort_task)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=timeout or None,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            pending = [task for task in waiters if not task.done()]
            for task in pending:
                task.cancel()
            # The request must finish unwinding before the client is closed.
            await asyncio.gather(*pending, return_exceptions=True)

        if request_task in done:
            return request_task.result()
        if abort_task is not None and abort_task in done:
            logger.info("Fetch of %s aborted", request_url)
            raise errors.NetworkError(
                "ABORTED", f"Request aborted: {request_url}", url=request_url
            )
        logger.warning("Fetch of %s timed out after %ss", request_url, timeout)
        raise errors.NetworkError(
            "TIMEOUT",
            f"Request timed out after {timeout}s: {request_url}",
            url=request_url,
        )
    finally:
        if owns_client:
            await http.aclose()


async def fetch_xml(
    url: str,
    *,
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
    abort: asyncio.Event | None = None,
    headers: Mapping[str, str] | None = None,
    request_transform: RequestTransform | None = None,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Like ``fetch_text`` with an XML ``Accept`` header unless one is given."""
    merged = {"Accept": XML_ACCEPT}
    merged.update(headers or {})
    return await fetch_text(
        url,
        timeout=timeout,
        abort=abort,
        headers=merged,
        request_transform=request_transform,
        client=client,
    )
