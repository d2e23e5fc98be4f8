"""
Tile sources: read-only providers of tile bytes + metadata keyed by zoom/x/y.

Contract used by the HTTP layer:
    registry.load(uri) -> TileSource        (memoized per URI)
    source.get_info()  -> dict              (raw metadata)
    source.get_tile(z, x, y) -> (bytes | None, headers)

Built-in schemes: mbtiles://, file://, http://, https://
"""
from tileserver.sources.base import (
    SourceRegistry,
    SourceTimeout,
    TileNotFound,
    TileSource,
    TileSourceError,
    UnknownSourceError,
    retina_uri,
    source_uris,
)

__all__ = [
    "SourceRegistry",
    "SourceTimeout",
    "TileNotFound",
    "TileSource",
    "TileSourceError",
    "UnknownSourceError",
    "retina_uri",
    "source_uris",
]
