"""API router subpackage.

Submodules:
    - capabilities: Proxy endpoint fetching and parsing WMS/WMTS capabilities.
    - layers: Endpoints for storing, listing and resolving layer configs.
    - tiles: Per-tile redirects to the resolved upstream URL.
"""
