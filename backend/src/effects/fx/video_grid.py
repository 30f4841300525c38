"""Video Grid effect — every tile shows a downscaled copy of the whole frame."""

import math

import numpy as np

EFFECT_ID = "videoGrid"
EFFECT_NAME = "Video Grid"
EFFECT_CATEGORY = "distortion"

PARAMS: dict = {
    "cols": {
        "type": "int",
        "min": 1,
        "default": 3,
        "label": "Columns",
    },
    "rows": {
        "type": "int",
        "min": 1,
        "default": 3,
        "label": "Rows",
    },
}


def tile_sample_map(size: int, count: int) -> np.ndarray:
    """Source coordinate for each destination coordinate along one axis.

    Tiles are `size // count` wide with the last tile running to the edge.
    Within a tile, position t maps linearly onto [0, size-1] of the source.
    """
    base = size // count
    coords = np.arange(size)
    if base == 0:
        # Every tile but the last is empty; the last one spans the frame
        tile = np.full(size, count - 1)
    else:
        tile = np.minimum(coords // base, count - 1)
    starts = tile * base
    extent = np.where(tile == count - 1, size - starts, base)
    divisor = np.where(extent > 1, extent - 1, 1)
    u = (coords - starts) / divisor
    return np.clip(np.floor(u * (size - 1) + 0.5), 0, size - 1).astype(np.intp)


def apply(frame: np.ndarray, params: dict) -> None:
    """Tile cols x rows copies of the snapshot over the frame. In place."""
    cols = max(1, math.floor(float(params.get("cols", 3))))
    rows = max(1, math.floor(float(params.get("rows", 3))))

    h, w = frame.shape[:2]
    if h == 0 or w == 0:
        return

    src = frame.copy()
    sx = tile_sample_map(w, cols)
    sy = tile_sample_map(h, rows)
    frame[:, :] = src[sy[:, np.newaxis], sx[np.newaxis, :]]
