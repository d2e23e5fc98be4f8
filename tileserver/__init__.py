"""
tileserver: slippy-map HTTP facade over a pluggable tile source

- Serves `/{z}/{x}/{y}.{format}` (configurable, optional `@2x` retina marker)
- Validates requests against source metadata (format, zoom range, bounds)
- Renders operator-defined response headers from Jinja2 templates
- Serves a TileJSON document at /index.json

Usage:
    from tileserver import create_app
    app = create_app({"source": "mbtiles:///data/world.mbtiles",
                      "headers": {"Cache-Control": "public, max-age=3600"}})
"""
__version__ = "1.0.0"

from tileserver.app import create_app
from tileserver.config import ConfigurationError, ServerConfig

__all__ = ["create_app", "ConfigurationError", "ServerConfig"]
