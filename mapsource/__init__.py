"""Tile source resolution service for remote raster map services.

This package turns declarative descriptions of remote map services (WMS,
WMTS, Esri REST MapServer export, XYZ/TMS templates) into concrete tile
requests that a web map client can load, without the client needing to know
the OGC wire formats.

- Tile address to bounding box math in Web Mercator and geographic CRSs
- Per-protocol request URL builders (GetMap, GetLegendGraphic, GetTile,
  Esri ``export``, XYZ templating)
- WMS/WMTS GetCapabilities parsing into a structured model
- Matrix set, format, style and resource URL selection heuristics
- A schema-versioned persistence envelope with forward migrations
- FastAPI endpoints for storing layer configs and redirecting tile requests

See module sub-docstrings for details on each part.
"""
