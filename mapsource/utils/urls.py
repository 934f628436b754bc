"""URL helpers: query building, number formatting and safety checks."""

from __future__ import annotations

import dataclasses
import urllib.parse
from collections.abc import Iterable, Mapping

UNSAFE_SCHEMES = ("javascript:", "data:", "vbscript:", "file:")

# Placeholders like {bbox-epsg-3857} or {TileMatrix} must survive encoding.
QUERY_SAFE_CHARS = ",:/{}"


@dataclasses.dataclass(frozen=True)
class UrlCheck:
    """Outcome of ``validate_safe_url``."""

    valid: bool
    code: str | None = None
    message: str | None = None


def format_number(value: float) -> str:
    """Format a coordinate for a query string.

    Integral values print without a decimal part so ``-180.0`` becomes
    ``-180``; other values use the shortest round-tripping representation.
    """
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)


def format_bbox(bbox: Iterable[float]) -> str:
    return ",".join(format_number(value) for value in bbox)


def with_query(url: str, params: Mapping[str, str] | Iterable[tuple[str, str]]) -> str:
    """Merge query parameters into a URL.

    Existing parameters with the same name (case-insensitive) are replaced;
    new parameters keep their given order after any remaining existing ones.

    Args:
        url: Base URL, possibly with a query string.
        params: Parameters to set.

    Returns:
        The URL with the merged query string.
    """
    items = list(params.items()) if isinstance(params, Mapping) else list(params)
    parts = urllib.parse.urlsplit(url)
    overridden = {key.lower() for key, _ in items}
    existing = [
        (key, value)
        for key, value in urllib.parse.parse_qsl(parts.query, keep_blank_values=True)
        if key.lower() not in overridden
    ]
    query = urllib.parse.urlencode(existing + items, safe=QUERY_SAFE_CHARS)
    return urllib.parse.urlunsplit(
        (parts.scheme, parts.netloc, parts.path, query, parts.fragment)
    )


def has_query_param(url: str, name: str, value: str | None = None) -> bool:
    """Check for a query parameter, case-insensitively on name and value."""
    query = urllib.parse.urlsplit(url).query
    for key, current in urllib.parse.parse_qsl(query, keep_blank_values=True):
        if key.lower() == name.lower() and (
            value is None or current.lower() == value.lower()
        ):
            return True
    return False


def normalize_url(url: str) -> str:
    """Trim whitespace and drop the fragment."""
    return urllib.parse.urldefrag(url.strip()).url


def validate_safe_url(url: object) -> UrlCheck:
    """Check that a value is a usable, non-script URL.

    Returns:
        ``UrlCheck`` with code ``INVALID_URL`` for empty or non-string
        values and ``UNSAFE_URL`` for script-capable or local schemes, also
        when hidden behind a protocol-relative ``//`` prefix.
    """
    if not isinstance(url, str) or not url.strip():
        return UrlCheck(False, "INVALID_URL", "URL must be a non-empty string")

    lowered = "".join(url.split()).lower()
    candidates = [lowered]
    if lowered.startswith("//"):
        candidates.append(lowered.lstrip("/"))
    for candidate in candidates:
        if candidate.startswith(UNSAFE_SCHEMES):
            return UrlCheck(False, "UNSAFE_URL", f"URL scheme is not allowed: {url}")
    return UrlCheck(True)


def safe_url(url: str) -> bool:
    return validate_safe_url(url).valid
