"""Registry of per-tile resolvers addressable by a custom URL scheme.

Hosts that only accept URL templates can be given
``mapsource://<sourceId>/{z}/{x}/{y}`` and route requests for that scheme back
to ``TileSourceRegistry.resolve``. Registering the scheme with a host happens
once per registry; ``reset`` clears it for tests.
"""

from __future__ import annotations

import functools
import logging
import re
from typing import Protocol

from mapsource.models import sources
from mapsource.services import xyz
from mapsource.utils import tile_math, urls

logger = logging.getLogger(__name__)

DEFAULT_SCHEME = "mapsource"
BBOX_PLACEHOLDER = "{bbox-epsg-3857}"


class ProtocolHost(Protocol):
    """Anything able to route a URL scheme to a handler."""

    def add_protocol(self, scheme: str, handler: TileUrlHandler) -> None: ...


class TileUrlHandler(Protocol):
    def __call__(self, url: str) -> str: ...


def resolver_for(source: sources.RasterSource) -> sources.TileResolver:
    """Return a per-tile resolver for any raster source.

    Static templates are filled the way a host would fill them: rows are
    flipped for TMS sources, the Web Mercator bbox placeholder is expanded
    and one template is picked per tile when several are listed.
    """
    match source.tiles:
        case sources.DynamicTiles(resolver=resolver):
            return resolver
        case sources.StaticTiles(urls=templates):
            tms = source.scheme == "tms"

            def resolve(address: sources.TileAddress) -> str:
                template = xyz.pick_subdomain(address, templates)
                if BBOX_PLACEHOLDER in template:
                    bbox = urls.format_bbox(tile_math.web_mercator_bounds(address))
                    template = template.replace(BBOX_PLACEHOLDER, bbox)
                return xyz.build_xyz_tile_url(template, address, tms=tms)

            return resolve
    raise TypeError(f"Unsupported tile source: {source.tiles!r}")


class TileSourceRegistry:
    """Maps source ids to per-tile resolvers."""

    def __init__(self, scheme: str = DEFAULT_SCHEME) -> None:
        self.scheme = scheme
        self._resolvers: dict[str, sources.TileResolver] = {}
        self._registered = False
        self._pattern = re.compile(
            rf"^{re.escape(scheme)}://(?P<source>[^/]+)/(?P<z>\d+)/(?P<x>\d+)/(?P<y>\d+)$"
        )

    @property
    def registered(self) -> bool:
        return self._registered

    def register_source(self, source_id: str, resolver: sources.TileResolver) -> None:
        self._resolvers[source_id] = resolver
        logger.debug("Registered tile source %s", source_id)

    def unregister_source(self, source_id: str) -> bool:
        return self._resolvers.pop(source_id, None) is not None

    def has_source(self, source_id: str) -> bool:
        return source_id in self._resolvers

    def template_for(self, source_id: str) -> str:
        return f"{self.scheme}://{source_id}/{{z}}/{{x}}/{{y}}"

    def resolve(self, url: str) -> str:
        """Resolve a ``<scheme>://<sourceId>/<z>/<x>/<y>`` URL.

        Raises:
            KeyError: If the URL is malformed or the source is unknown.
        """
        match = self._pattern.match(url)
        if match is None:
            raise KeyError(f"Not a {self.scheme} tile URL: {url}")
        address = sources.TileAddress(int(match["x"]), int(match["y"]), int(match["z"]))
        return self.resolve_tile(match["source"], address)

    def resolve_tile(self, source_id: str, address: sources.TileAddress) -> str:
        """Resolve one tile of a registered source.

        Raises:
            KeyError: If the source is unknown.
        """
        resolver = self._resolvers.get(source_id)
        if resolver is None:
            raise KeyError(f"Unknown tile source: {source_id}")
        return resolver(address)

    def register_protocol(self, host: ProtocolHost) -> bool:
        """Register the scheme with ``host`` once.

        Returns:
            True if this call registered the scheme, False if it already was.
        """
        if self._registered:
            return False
        host.add_protocol(self.scheme, self.resolve)
        self._registered = True
        logger.info("Registered %s:// tile protocol", self.scheme)
        return True

    def reset(self) -> None:
        self._resolvers.clear()
        self._registered = False


@functools.lru_cache
def get_tile_registry() -> TileSourceRegistry:
    """Return the process-wide registry."""
    return TileSourceRegistry()
