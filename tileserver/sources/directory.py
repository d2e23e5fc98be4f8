from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from tileserver.sources.base import TileNotFound, TileResult, TileSource, TileSourceError, content_type_for, local_path


log = logging.getLogger(__name__)


class DirectorySource(TileSource):
    """
    Serves a TMS-like directory tree:

        root/
          ├─ metadata.json   (optional TileJSON-ish metadata)
          └─ {z}/
              └─ {x}/
                  ├─ {y}.{ext}
                  └─ {y}@2x.{ext}   (served when the URI carries scale=2)

    When metadata.json does not declare them, the format is taken from the
    first tile found and the zoom range from the {z} directories present.
    """

    def __init__(self, uri: str):
        super().__init__(uri)
        self.root = Path(local_path(uri))
        if not self.root.is_dir():
            raise TileSourceError(f"tile directory not found: {self.root}")
        self._info: Optional[Dict] = None

    def get_info(self) -> Dict:
        if self._info is None:
            self._info = self._scan()
        return dict(self._info)

    def _scan(self) -> Dict:
        info: Dict = {}
        meta_path = self.root / "metadata.json"
        if meta_path.exists():
            try:
                info.update(json.loads(meta_path.read_text()))
            except ValueError as e:
                raise TileSourceError(f"{meta_path}: {e}") from e

        zooms: List[int] = []
        for child in self.root.iterdir():
            if child.is_dir() and child.name.isdigit():
                zooms.append(int(child.name))
        if zooms:
            info.setdefault("minzoom", min(zooms))
            info.setdefault("maxzoom", max(zooms))

        if "format" not in info and not info.get("vector_layers"):
            fmt = self._first_extension()
            if fmt:
                info["format"] = fmt
        log.debug("Scanned %s: zooms=%s format=%s", self.root, sorted(zooms), info.get("format"))
        return info

    def _first_extension(self) -> Optional[str]:
        for p in self.root.glob("*/*/*.*"):
            if p.is_file() and p.parent.parent.name.isdigit():
                return p.suffix.lstrip(".")
        return None

    def get_tile(self, z: int, x: int, y: int) -> TileResult:
        info = self.get_info()
        fmt = "pbf" if info.get("vector_layers") else str(info.get("format") or "png")
        suffix = "@2x" if self.scale >= 2 else ""
        path = self.root / str(z) / str(x) / f"{y}{suffix}.{fmt}"
        if not path.is_file():
            raise TileNotFound()
        try:
            data = path.read_bytes()
        except OSError as e:
            raise TileSourceError(f"{path}: {e}") from e

        headers = {"Content-Type": content_type_for(fmt)}
        if data.startswith(b"\x1f\x8b"):
            headers["Content-Encoding"] = "gzip"
        return data, headers
