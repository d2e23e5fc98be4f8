"""
Run the tile server.

Examples:
  # Serve an MBTiles file on :8000
  python -m tileserver mbtiles:///data/world.mbtiles

  # Retina-aware raster directory with templated caching headers
  python -m tileserver file:///srv/tiles --tile-path "/tiles/{z}/{x}/{y}.{format}" \
      --header "Cache-Control={% if flags['404'] %}no-cache{% else %}public, max-age=86400{% endif %}"

  # Everything from a YAML file (see config/tileserver.yaml)
  python -m tileserver --config config/tileserver.yaml
"""
from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, Optional, Sequence

import uvicorn

from tileserver.app import create_app
from tileserver.config import ConfigurationError, ServerConfig, load_config
from tileserver.logging_setup import setup_logging


log = logging.getLogger("tileserver")


def parse_header(s: str) -> tuple:
    name, sep, template = s.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected NAME=TEMPLATE, got {s!r}")
    return name.strip(), template


def build_options(args: argparse.Namespace) -> Dict[str, Any]:
    """Config file values, overridden by whatever was given on the command line."""
    opts: Dict[str, Any] = load_config(args.config)
    if args.source:
        opts["source"] = args.source
    if args.tile_path:
        opts["tile_path"] = args.tile_path
    if args.header:
        headers = dict(opts.get("headers") or {})
        headers.update(dict(args.header))
        opts["headers"] = headers
    if args.timeout is not None:
        opts["source_timeout"] = args.timeout
    if args.host:
        opts["host"] = args.host
    if args.port is not None:
        opts["port"] = args.port
    if args.log_level:
        opts["log_level"] = args.log_level
    if args.no_cors:
        opts["cors"] = False
    return opts


def make_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="tileserver", description="Serve a tile source as a slippy map.")
    ap.add_argument("source", nargs="?", help="Tile source URI (mbtiles://, file://, http(s)://)")
    ap.add_argument("--config", default=None, help="YAML config file")
    ap.add_argument("--tile-path", default=None, help="Tile URL template (default /{z}/{x}/{y}.{format})")
    ap.add_argument("--header", action="append", type=parse_header, metavar="NAME=TEMPLATE",
                    help="Templated response header (repeatable)")
    ap.add_argument("--timeout", type=float, default=None, help="Deadline for each source call (s)")
    ap.add_argument("--host", default=None, help="Bind address (default 0.0.0.0)")
    ap.add_argument("--port", type=int, default=None, help="Port (default 8000)")
    ap.add_argument("--log-level", default=None, help="DEBUG/INFO/WARNING/ERROR")
    ap.add_argument("--no-cors", action="store_true", help="Disable the CORS middleware")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = make_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = ServerConfig.from_options(build_options(args))
        setup_logging(config.log_level, force=bool(config.log_level))
        app = create_app(config)
    except ConfigurationError as e:
        log.error("Invalid configuration: %s", e)
        raise SystemExit(1)

    log.info("Serving %s on %s:%d (tiles at %s)", config.source, config.host, config.port, config.tile_path)
    uvicorn.run(app, host=config.host, port=config.port, log_config=None)


if __name__ == "__main__":
    main()
