from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from typing import Dict, Optional
from urllib.parse import quote

from tileserver.sources.base import TileNotFound, TileResult, TileSource, TileSourceError, content_type_for, local_path


log = logging.getLogger(__name__)

_NUMERIC_KEYS = ("minzoom", "maxzoom")


class MBTilesSource(TileSource):
    """
    Read-only MBTiles (SQLite) reader.

        mbtiles:///abs/path/world.mbtiles
        mbtiles://./relative/world.mbtiles

    Rows are stored TMS style (y=0 at the south edge); requests are XYZ.
    """

    def __init__(self, uri: str):
        super().__init__(uri)
        self.path = local_path(uri)
        if not os.path.isfile(self.path):
            raise TileSourceError(f"MBTiles file not found: {self.path}")
        try:
            self._conn = sqlite3.connect(f"file:{quote(self.path)}?mode=ro", uri=True, check_same_thread=False)
        except sqlite3.Error as e:
            raise TileSourceError(f"cannot open {self.path}: {e}") from e
        self._lock = threading.Lock()
        self._info: Optional[Dict] = None

    def get_info(self) -> Dict:
        if self._info is None:
            self._info = self._read_metadata()
        return dict(self._info)

    def _read_metadata(self) -> Dict:
        try:
            with self._lock:
                rows = self._conn.execute("SELECT name, value FROM metadata").fetchall()
        except sqlite3.Error as e:
            raise TileSourceError(f"{self.path}: cannot read metadata: {e}") from e

        info: Dict = {}
        for name, value in rows:
            if name == "json":
                # vector tile sets carry vector_layers & friends here
                try:
                    extra = json.loads(value)
                except ValueError:
                    log.warning("%s: ignoring malformed 'json' metadata", self.path)
                    continue
                if isinstance(extra, dict):
                    info.update(extra)
                continue
            info[name] = value

        for key in _NUMERIC_KEYS:
            if key in info:
                try:
                    info[key] = int(float(info[key]))
                except (TypeError, ValueError):
                    log.warning("%s: non-numeric %s %r", self.path, key, info[key])
                    del info[key]
        info["scheme"] = "xyz"
        return info

    def get_tile(self, z: int, x: int, y: int) -> TileResult:
        tms_y = (1 << z) - 1 - y
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT tile_data FROM tiles WHERE zoom_level=? AND tile_column=? AND tile_row=?",
                    (z, x, tms_y),
                ).fetchone()
        except sqlite3.Error as e:
            raise TileSourceError(f"{self.path}: tile {z}/{x}/{y}: {e}") from e

        if row is None or row[0] is None:
            raise TileNotFound()

        data = bytes(row[0])
        info = self.get_info()
        fmt = "pbf" if info.get("vector_layers") else str(info.get("format") or "png")
        headers = {"Content-Type": content_type_for(fmt)}
        if data.startswith(b"\x1f\x8b"):
            headers["Content-Encoding"] = "gzip"
        return data, headers

    def close(self) -> None:
        with self._lock:
            self._conn.close()
