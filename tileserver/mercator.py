from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple


TILE_SIZE = 256
_MAX_SIN = 0.9999


@dataclass(frozen=True)
class TileRange:
    """Inclusive XYZ tile index rectangle."""
    min_x: int
    min_y: int
    max_x: int
    max_y: int

    def contains(self, x: int, y: int) -> bool:
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y


def world_size(zoom: int, tile_size: int = TILE_SIZE) -> float:
    """World width in pixels at `zoom`; math.inf once it no longer fits a float."""
    try:
        return float(tile_size) * (2 ** int(zoom))
    except OverflowError:
        return math.inf


def lonlat_to_px(lon: float, lat: float, zoom: int, tile_size: int = TILE_SIZE) -> Tuple[float, float]:
    """
    Spherical-mercator world pixel for lon/lat at `zoom`. Rounded to whole
    pixels and capped at the world size; latitude is clamped through sin(lat).
    """
    world = world_size(zoom, tile_size)
    if math.isinf(world):
        raise OverflowError(f"zoom {zoom} is beyond float pixel range")
    half = world / 2.0
    f = min(max(math.sin(math.radians(lat)), -_MAX_SIN), _MAX_SIN)
    x = _round_half_up(half + lon * (world / 360.0))
    y = _round_half_up(half + 0.5 * math.log((1 + f) / (1 - f)) * -(world / (2 * math.pi)))
    return min(x, world), min(y, world)


def xyz(bounds: Sequence[float], zoom: int, tile_size: int = TILE_SIZE) -> TileRange:
    """
    Tile index range at `zoom` covering `bounds` = (west, south, east, north).
    y grows southwards (XYZ, not TMS).

    Zooms too deep for float pixel math cannot be checked against `bounds`;
    they get the whole tile grid of that zoom.
    """
    if math.isinf(world_size(zoom, tile_size)):
        last = (1 << int(zoom)) - 1
        return TileRange(0, 0, last, last)

    west, south, east, north = (float(b) for b in bounds[:4])
    ll_x, ll_y = lonlat_to_px(west, south, zoom, tile_size)
    ur_x, ur_y = lonlat_to_px(east, north, zoom, tile_size)

    xs = (math.floor(ll_x / tile_size), math.floor((ur_x - 1) / tile_size))
    ys = (math.floor(ur_y / tile_size), math.floor((ll_y - 1) / tile_size))
    return TileRange(
        min_x=max(0, min(xs)),
        min_y=max(0, min(ys)),
        max_x=max(xs),
        max_y=max(ys),
    )


def _round_half_up(v: float) -> float:
    # Python's round() is banker's rounding; pixel snapping rounds .5 up
    return math.floor(v + 0.5)
