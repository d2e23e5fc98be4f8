from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union


DEFAULT_NAME = "Untitled"
DEFAULT_CENTER = (-122.4440, 37.7908, 12.0)
DEFAULT_BOUNDS = (-180.0, -85.0511, 180.0, 85.0511)
DEFAULT_FORMAT = "png"

_PNG_VARIANT = re.compile(r"^(png).*")
_TYPED_KEYS = ("name", "center", "bounds", "format", "minzoom", "maxzoom")

Zoom = Union[int, float]


@dataclass(frozen=True)
class TileMetadata:
    """
    Normalized description of a tile source.

    Attributes:
        name: human readable name.
        center: (lon, lat, zoom).
        bounds: (west, south, east, north) in degrees.
        format: tile format as reported by the source ("png", "png8", "pbf", ...).
        minzoom: lowest served zoom, >= 0.
        maxzoom: highest served zoom, or math.inf when unbounded.
        extra: every other raw key (attribution, vector_layers, ...).
    """
    name: str = DEFAULT_NAME
    center: Tuple[float, ...] = DEFAULT_CENTER
    bounds: Tuple[float, float, float, float] = DEFAULT_BOUNDS
    format: str = DEFAULT_FORMAT
    minzoom: int = 0
    maxzoom: Zoom = math.inf
    extra: Mapping[str, Any] = field(default_factory=dict, repr=False)

    @property
    def extension(self) -> str:
        return get_extension(self.format)

    def to_tilejson(self) -> Dict[str, Any]:
        """JSON-safe mapping: open extras first, typed fields on top."""
        doc: Dict[str, Any] = dict(self.extra)
        doc.update(
            name=self.name,
            center=list(self.center),
            bounds=list(self.bounds),
            format=self.format,
            minzoom=self.minzoom,
            # JSON has no Infinity
            maxzoom=None if math.isinf(self.maxzoom) else self.maxzoom,
        )
        return doc


def get_extension(fmt: Union[str, None]) -> str:
    """Canonical URL extension for a source format; png variants collapse to 'png'."""
    fmt = fmt or ""
    if _PNG_VARIANT.sub(r"\1", fmt) == "png":
        return "png"
    return fmt


def _truncate_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _number(value: Any) -> Zoom:
    if isinstance(value, (int, float)):
        return value
    try:
        f = float(value)
    except (TypeError, ValueError):
        return math.inf
    return int(f) if f.is_integer() else f


def _float_list(value: Any) -> List[float]:
    if isinstance(value, str):
        value = [v for v in value.split(",") if v.strip()]
    return [float(v) for v in value]


def normalize_info(raw: Mapping[str, Any]) -> TileMetadata:
    """
    Normalize raw source metadata.

    - non-empty `vector_layers` forces format to "pbf"
    - missing fields get defaults (name, center, bounds, format)
    - minzoom is truncated to an integer and clamped to >= 0
    - maxzoom becomes math.inf when absent, falsy or not a number
    """
    info: Dict[str, Any] = dict(raw or {})

    if info.get("vector_layers"):
        info["format"] = "pbf"

    bounds: Sequence[float] = _float_list(info["bounds"]) if info.get("bounds") else DEFAULT_BOUNDS
    center: Sequence[float] = _float_list(info["center"]) if info.get("center") else DEFAULT_CENTER
    maxzoom = info.get("maxzoom")

    return TileMetadata(
        name=info.get("name") or DEFAULT_NAME,
        center=tuple(center),
        bounds=tuple(bounds),  # type: ignore[arg-type]
        format=info.get("format") or DEFAULT_FORMAT,
        minzoom=max(0, _truncate_int(info.get("minzoom"))),
        maxzoom=_number(maxzoom) if maxzoom else math.inf,
        extra={k: v for k, v in info.items() if k not in _TYPED_KEYS},
    )


def get_info(source) -> TileMetadata:
    """Fetch and normalize a source's metadata. Source errors propagate unchanged."""
    return normalize_info(source.get_info())
