"""
Upstream XYZ tile proxy.

    https://tiles.example.com/{z}/{x}/{y}.png?format=png&maxzoom=19&name=Base

The URL path must contain {z}, {x} and {y}. Query parameters understood by
this adapter (format, name, minzoom, maxzoom, scale, tileWidth, tileHeight,
scaleMatchesZoom) are not forwarded upstream; anything else is.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import requests

from tileserver.sources.base import TileNotFound, TileResult, TileSource, TileSourceError, content_type_for


log = logging.getLogger(__name__)

_CONTROL_PARAMS = {
    "format", "name", "minzoom", "maxzoom",
    "scale", "tileWidth", "tileHeight", "scaleMatchesZoom",
}
_PASSTHROUGH_HEADERS = ("content-type", "content-encoding", "cache-control", "etag", "last-modified", "expires")


class HTTPSource(TileSource):
    def __init__(self, uri: str, session: Optional[requests.Session] = None, timeout: float = 10.0):
        """
        Params:
            uri: upstream URL template with {z}/{x}/{y}
            session: optional requests.Session for connection reuse
            timeout: per-request timeout (seconds)
        """
        super().__init__(uri)
        parts = urlsplit(uri)
        for token in ("{z}", "{x}", "{y}"):
            if token not in parts.path and token not in parts.query:
                raise TileSourceError(f"upstream URL template is missing {token}: {uri}")

        path = parts.path
        if self.scale >= 2 and "." in path.rsplit("/", 1)[-1]:
            head, ext = path.rsplit(".", 1)
            path = f"{head}@2x.{ext}"
        upstream_query = {k: v for k, v in self.query.items() if k not in _CONTROL_PARAMS}
        self.template = urlunsplit(parts._replace(path=path, query=urlencode(upstream_query, safe="{}"), fragment=""))
        self.session = session or requests.Session()
        self.timeout = timeout

    def get_info(self) -> Dict:
        path = urlsplit(self.uri).path
        info: Dict = {"name": self.query.get("name") or urlsplit(self.uri).netloc}
        fmt = self.query.get("format")
        if not fmt and "." in path.rsplit("/", 1)[-1]:
            fmt = path.rsplit(".", 1)[-1]
        if fmt:
            info["format"] = fmt
        for key in ("minzoom", "maxzoom"):
            if key in self.query:
                info[key] = self.query[key]
        return info

    def tile_url(self, z: int, x: int, y: int) -> str:
        return self.template.replace("{z}", str(z)).replace("{x}", str(x)).replace("{y}", str(y))

    def get_tile(self, z: int, x: int, y: int) -> TileResult:
        url = self.tile_url(z, x, y)
        try:
            r = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TileSourceError(f"upstream request failed: {url}: {e}") from e

        headers = {k: v for k, v in r.headers.items() if k.lower() in _PASSTHROUGH_HEADERS}
        if r.status_code in (204, 404):
            raise TileNotFound(headers=headers)
        if r.status_code != 200:
            log.warning("Upstream tile request failed: %s %s", r.status_code, url)
            raise TileSourceError(f"upstream returned {r.status_code} for {url}")

        if not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = content_type_for(self.get_info().get("format", ""))
        return r.content, headers

    def close(self) -> None:
        self.session.close()
