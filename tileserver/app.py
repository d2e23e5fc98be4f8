from __future__ import annotations

import asyncio
import functools
import logging
import posixpath
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from tileserver.config import ServerConfig
from tileserver.headers import HeaderTemplater, normalize_headers
from tileserver.mercator import xyz
from tileserver.metadata import get_info
from tileserver.paths import TilePattern, compile_tile_path
from tileserver.sources import SourceRegistry, SourceTimeout, TileNotFound, TileSourceError, source_uris


log = logging.getLogger(__name__)

TILEJSON_VERSION = "2.0.0"
PBF_CONTENT_TYPE = "application/x-protobuf"
PBF_CONTENT_ENCODING = "deflate"

_MISSING_TILE = re.compile(r"(Tile|Grid) does not exist")


@dataclass(frozen=True)
class TileServerState:
    """Everything a request needs, built once by create_app()."""
    config: ServerConfig
    templater: HeaderTemplater
    pattern: TilePattern
    uris: Mapping[str, str]
    registry: SourceRegistry

    async def call(self, fn: Callable, *args: Any) -> Any:
        """Run a blocking source call off the event loop, bounded by source_timeout."""
        timeout = self.config.source_timeout
        if timeout is None:
            return await run_in_threadpool(fn, *args)
        # a plain executor future can be abandoned on timeout; anyio's worker cannot
        job = asyncio.get_running_loop().run_in_executor(None, functools.partial(fn, *args))
        try:
            return await asyncio.wait_for(job, timeout)
        except asyncio.TimeoutError as e:
            raise SourceTimeout(f"{getattr(fn, '__qualname__', fn)} exceeded {timeout:g}s") from e

    def source_uri(self, retina: bool) -> str:
        return self.uris["@2x" if retina else "@1x"]

    def not_found(self, headers: Optional[Mapping[str, Any]], params: Mapping[str, Any], **flags: Any) -> Response:
        rendered = self.templater.render(headers, params, status=404, **flags)
        return Response(status_code=404, headers=_str_headers(rendered))


def _str_headers(headers: Mapping[str, Any]) -> Dict[str, str]:
    return {k: str(v) for k, v in headers.items()}


def is_missing_tile(err: BaseException) -> bool:
    return isinstance(err, TileNotFound) or bool(_MISSING_TILE.search(str(err)))


def tilejson_url(host: str, request_path: str, tile_url: str) -> str:
    """Absolute tile URL template: http://<host>/<request dir>/<tile path>."""
    path = posixpath.normpath(posixpath.dirname(request_path) + tile_url)
    # normpath keeps a leading '//'
    path = "/" + path.lstrip("/")
    return f"http://{host}{path}"


def get_state(request: Request) -> TileServerState:
    return request.app.state.tileserver


def create_app(
    options: Union[str, Mapping[str, Any], ServerConfig],
    registry: Optional[SourceRegistry] = None,
) -> FastAPI:
    """
    Build the tile server.

    Params:
        options: source URI, mapping {source, tilePath, headers, ...} or ServerConfig
        registry: tile source registry (defaults to the built-in schemes)

    Raises ConfigurationError for an invalid header template or tile path;
    nothing is served in that case.
    """
    config = ServerConfig.from_options(options)
    state = TileServerState(
        config=config,
        templater=HeaderTemplater.compile(config.headers),
        pattern=compile_tile_path(config.tile_path),
        uris=source_uris(config.source),
        registry=registry if registry is not None else SourceRegistry.default(),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # warm the source; a failure here resurfaces on the first request
        try:
            await run_in_threadpool(state.registry.load, state.uris["@1x"])
        except Exception as e:
            log.warning("Could not pre-load tile source: %s", e, extra={"source": state.uris["@1x"]})
        yield
        state.registry.close()

    from tileserver import __version__

    app = FastAPI(title="tileserver", version=__version__, lifespan=lifespan)
    app.state.tileserver = state

    if config.cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "HEAD"],
            allow_headers=["*"],
        )

    @app.exception_handler(TileSourceError)
    async def tile_source_error(request: Request, exc: TileSourceError):
        status = 504 if isinstance(exc, SourceTimeout) else 500
        log.error("Tile source error: %s", exc, exc_info=exc, extra={"path": request.url.path})
        return JSONResponse({"error": "tile_source_error", "detail": str(exc)}, status_code=status)

    @app.get("/health")
    def health(st: TileServerState = Depends(get_state)):
        return {"status": "ok", "source": st.config.source, "tile_path": st.pattern.template}

    @app.get("/index.json")
    async def tilejson(request: Request, st: TileServerState = Depends(get_state)):
        source = await st.call(st.registry.load, st.source_uri(False))
        info = await st.call(get_info, source)

        doc = info.to_tilejson()
        host = request.headers.get("host", "")
        doc["tiles"] = [tilejson_url(host, request.url.path, st.pattern.tile_url(info.extension))]
        doc["tilejson"] = TILEJSON_VERSION

        headers = st.templater.render({}, {}, tileJSON=True, status=200)
        return JSONResponse(doc, headers=_str_headers(headers))

    # catch-all: keep this the last route registered
    @app.api_route("/{tile_path:path}", methods=["GET", "HEAD"], include_in_schema=False)
    async def tile(tile_path: str, st: TileServerState = Depends(get_state)):
        coord = st.pattern.match("/" + tile_path)
        if coord is None:
            raise HTTPException(status_code=404, detail="Not Found")

        z, x, y = coord.zoom, coord.x, coord.y
        params = coord.to_params()

        source = await st.call(st.registry.load, st.source_uri(coord.retina))
        info = await st.call(get_info, source)

        ext = info.extension
        if ext != coord.format:
            log.warning("Invalid format '%s', expected '%s'", coord.format, ext, extra=params)
            return st.not_found({}, params, invalidFormat=True)

        if z < info.minzoom or z > info.maxzoom:
            log.warning("Invalid zoom: %d", z, extra=params)
            return st.not_found({}, params, invalidZoom=True)

        tile_range = xyz(info.bounds, z)
        if not tile_range.contains(x, y):
            log.warning("Invalid coordinates: %d,%d relative to bounds: %s", x, y, tile_range, extra=params)
            return st.not_found({}, params, invalidCoordinates=True)

        try:
            data, headers = await st.call(source.get_tile, z, x, y)
        except SourceTimeout:
            raise
        except Exception as e:
            if is_missing_tile(e):
                return st.not_found(getattr(e, "headers", None), params)
            raise

        headers = normalize_headers(headers)
        if not data:
            return st.not_found(headers, params)

        # vector tile sets often lack these headers
        if ext == "pbf":
            headers["content-type"] = headers.get("content-type") or PBF_CONTENT_TYPE
            headers["content-encoding"] = headers.get("content-encoding") or PBF_CONTENT_ENCODING

        headers = st.templater.render(headers, params, status=200)
        return Response(content=data, headers=_str_headers(headers), media_type="application/octet-stream")

    return app
