from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit


log = logging.getLogger(__name__)

TileResult = Tuple[Optional[bytes], Dict[str, str]]

RETINA_QUERY = {
    "scale": "2",
    "tileWidth": "512",
    "tileHeight": "512",
    "scaleMatchesZoom": "false",
}

FORMAT_TO_MIME = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "pbf": "application/x-protobuf",
    "mvt": "application/vnd.mapbox-vector-tile",
    "json": "application/json",
}


class TileSourceError(Exception):
    """Failure inside a tile source (load, info or tile fetch)."""


class TileNotFound(TileSourceError):
    def __init__(self, message: str = "Tile does not exist", headers: Optional[Mapping[str, str]] = None):
        super().__init__(message)
        self.headers = dict(headers or {})


class UnknownSourceError(TileSourceError):
    pass


class SourceTimeout(TileSourceError):
    pass


class TileSource:
    """
    Read-only tile provider keyed by zoom/x/y.

    Subclasses implement get_info() and get_tile(); both are blocking and are
    called from a worker thread by the HTTP layer.
    """

    def __init__(self, uri: str):
        self.uri = uri
        parts = urlsplit(uri)
        self.query: Dict[str, str] = dict(parse_qsl(parts.query, keep_blank_values=True))

    @property
    def scale(self) -> int:
        try:
            return max(1, int(float(self.query.get("scale", 1))))
        except ValueError:
            return 1

    def get_info(self) -> Dict:
        raise NotImplementedError

    def get_tile(self, z: int, x: int, y: int) -> TileResult:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.uri!r})"


def local_path(uri: str) -> str:
    """Filesystem path of a `scheme://<path>` URI (relative paths keep their netloc part)."""
    parts = urlsplit(uri)
    return unquote(parts.netloc + parts.path)


def content_type_for(fmt: str) -> str:
    if fmt.startswith("png"):
        return FORMAT_TO_MIME["png"]
    return FORMAT_TO_MIME.get(fmt, "application/octet-stream")


def retina_uri(uri: str) -> str:
    """`uri` with the high-density query parameters merged into its query string."""
    parts = urlsplit(uri)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update(RETINA_QUERY)
    # rebuilt by hand: urlunsplit drops the '//' of schemes like mbtiles:///
    head = uri.split("#", 1)[0].split("?", 1)[0]
    out = f"{head}?{urlencode(query, safe='{}')}"
    if parts.fragment:
        out += f"#{parts.fragment}"
    return out


def source_uris(uri: str) -> Dict[str, str]:
    return {"@1x": uri, "@2x": retina_uri(uri)}


SourceFactory = Callable[[str], TileSource]


class SourceRegistry:
    """
    Loads tile sources by URI scheme and memoizes one instance per URI.

        registry = SourceRegistry.default()
        src = registry.load("mbtiles:///data/world.mbtiles")
    """

    def __init__(self, factories: Optional[Mapping[str, SourceFactory]] = None):
        self._factories: Dict[str, SourceFactory] = dict(factories or {})
        self._sources: Dict[str, TileSource] = {}
        self._lock = threading.Lock()

    @classmethod
    def default(cls) -> "SourceRegistry":
        from tileserver.sources.directory import DirectorySource
        from tileserver.sources.http import HTTPSource
        from tileserver.sources.mbtiles import MBTilesSource

        return cls(
            {
                "mbtiles": MBTilesSource,
                "file": DirectorySource,
                "http": HTTPSource,
                "https": HTTPSource,
            }
        )

    def register(self, scheme: str, factory: SourceFactory) -> None:
        self._factories[scheme.lower()] = factory

    @property
    def schemes(self):
        return tuple(sorted(self._factories))

    def load(self, uri: str) -> TileSource:
        with self._lock:
            src = self._sources.get(uri)
            if src is not None:
                return src
            scheme = urlsplit(uri).scheme.lower()
            factory = self._factories.get(scheme)
            if factory is None:
                raise UnknownSourceError(f"no tile source registered for scheme {scheme!r} ({uri})")
            src = factory(uri)
            self._sources[uri] = src
            log.info("Loaded tile source", extra={"source": uri})
            return src

    def close(self) -> None:
        with self._lock:
            sources = list(self._sources.values())
            self._sources.clear()
        for src in sources:
            try:
                src.close()
            except Exception as e:
                log.warning("Error closing %r: %s", src, e)
