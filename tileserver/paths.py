from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Pattern

from tileserver.config import ConfigurationError, DEFAULT_TILE_PATH


RETINA_MARKER = "@2x"

_PLACEHOLDERS = {
    "{z}": r"(?P<z>\d+)",
    "{x}": r"(?P<x>\d+)",
    "{y}": r"(?P<y>\d+)",
    "{format}": r"(?P<format>[\w.]+)",
}
_TOKEN = re.compile(r"\{z\}|\{x\}|\{y\}|\{format\}")


class TilePathError(ConfigurationError):
    pass


def coerce_int(value: Any) -> int:
    """Lenient integer cast: anything non-numeric becomes 0."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class TileCoordinate:
    zoom: int
    x: int
    y: int
    format: str
    retina: bool = False

    def to_params(self) -> Dict[str, Any]:
        """Parameter context handed to header templates."""
        return {
            "tile": {
                "zoom": self.zoom,
                "x": self.x,
                "y": self.y,
                "format": self.format,
                "retina": self.retina,
            }
        }


@dataclass(frozen=True)
class TilePattern:
    template: str
    regex: Pattern[str]

    def match(self, path: str) -> Optional[TileCoordinate]:
        m = self.regex.fullmatch(path)
        if m is None:
            return None
        return TileCoordinate(
            zoom=coerce_int(m.group("z")),
            x=coerce_int(m.group("x")),
            y=coerce_int(m.group("y")),
            format=m.group("format"),
            retina=bool(m.group("retina")),
        )

    def tile_url(self, extension: str) -> str:
        """The template with {format} resolved; {z}/{x}/{y} stay as placeholders."""
        return self.template.replace("{format}", extension)


def compile_tile_path(template: str = DEFAULT_TILE_PATH) -> TilePattern:
    """
    Compile a tile path template such as `/{z}/{x}/{y}.{format}` into a
    matcher. An optional `@2x` marker is accepted right before the
    extension dot.
    """
    if not template or not template.startswith("/"):
        raise TilePathError(f"tile path must start with '/': {template!r}")
    for token in _PLACEHOLDERS:
        if template.count(token) != 1:
            raise TilePathError(f"tile path must contain {token} exactly once: {template!r}")
    if template.count(".") != 1:
        raise TilePathError(f"tile path must contain exactly one '.' (the extension separator): {template!r}")

    dot = template.rindex(".")
    parts = []
    pos = 0
    for m in _TOKEN.finditer(template):
        parts.append(_escape_literal(template[pos:m.start()], pos, dot))
        parts.append(_PLACEHOLDERS[m.group(0)])
        pos = m.end()
    parts.append(_escape_literal(template[pos:], pos, dot))
    return TilePattern(template=template, regex=re.compile("".join(parts)))


def _escape_literal(text: str, offset: int, dot: int) -> str:
    if offset <= dot < offset + len(text):
        i = dot - offset
        return re.escape(text[:i]) + f"(?P<retina>{re.escape(RETINA_MARKER)})?" + re.escape(text[i:])
    return re.escape(text)
