"""Compound Eyes effect — lens-tiled distortion with seeded per-cell jitter.

The frame is split into a cols x rows grid of cells (the last column and
row absorb the remainder). Each cell samples the source through a small
barrel lens centred on the cell, pushed radially away from the frame centre
by `offset` plus a seeded jitter.

Jitter comes from the LCG in engine.determinism: two draws per cell (x then
y) in row-major cell order, so a given seed always yields the same offsets
whatever the frame contents. Offsets are computed sequentially into a table
first; the pixel fill is then a single vectorized gather over that table.
"""

import math

import numpy as np

from engine.determinism import coerce_seed, lcg_next, lcg_skip

EFFECT_ID = "compoundEyes"
EFFECT_NAME = "Compound Eyes"
EFFECT_CATEGORY = "distortion"

PARAMS: dict = {
    "cols": {
        "type": "int",
        "min": 1,
        "default": 6,
        "label": "Columns",
    },
    "rows": {
        "type": "int",
        "min": 1,
        "default": 6,
        "label": "Rows",
    },
    "offset": {
        "type": "float",
        "default": 4,
        "label": "Offset",
        "unit": "px",
        "description": "Radial push of each cell away from the frame centre",
    },
    "jitter": {
        "type": "float",
        "default": 1.5,
        "label": "Jitter",
        "unit": "px",
        "description": "Amplitude of the seeded random offset per cell",
    },
    "lens": {
        "type": "float",
        "default": 0.18,
        "label": "Lens",
        "description": "Barrel distortion coefficient; negative values pinch",
    },
    "seed": {
        "type": "int",
        "default": 1,
        "label": "Seed",
    },
}


def _grid_count(value) -> int:
    return max(1, math.floor(float(value)))


def _cell_edges(size: int, count: int, cell: int) -> tuple[np.ndarray, np.ndarray]:
    """Start/end of each cell along one axis; the last cell ends at `size`."""
    starts = np.arange(count, dtype=np.int64) * cell
    ends = starts + cell
    ends[-1] = size
    return starts, ends


def cell_offsets(
    centers_x: np.ndarray,
    centers_y: np.ndarray,
    width: int,
    height: int,
    offset: float,
    jitter: float,
    seed,
    hidden_cols: int = 0,
) -> np.ndarray:
    """Per-cell (offX, offY) table of shape (rows, cols, 2).

    Draw order is fixed: rows outer, columns inner, jx before jy.
    `hidden_cols` cells past the right edge still consume their two draws
    at the end of every row.
    """
    cx0 = width * 0.5
    cy0 = height * 0.5
    rows, cols = len(centers_y), len(centers_x)
    table = np.empty((rows, cols, 2), dtype=np.float64)

    state = coerce_seed(seed)
    for gy in range(rows):
        dy0 = float(centers_y[gy]) - cy0
        for gx in range(cols):
            dx0 = float(centers_x[gx]) - cx0
            dist = math.hypot(dx0, dy0) or 1.0

            state, rx = lcg_next(state)
            state, ry = lcg_next(state)
            jx = (rx * 2 - 1) * jitter
            jy = (ry * 2 - 1) * jitter

            table[gy, gx, 0] = dx0 / dist * offset + jx
            table[gy, gx, 1] = dy0 / dist * offset + jy
        if hidden_cols:
            state = lcg_skip(state, 2 * hidden_cols)
    return table


def _sample_index(coords: np.ndarray, size: int) -> np.ndarray:
    """Round half up, clamp to [0, size-1]; non-finite coordinates sample 0."""
    rounded = np.floor(coords + 0.5)
    rounded = np.where(np.isfinite(rounded), rounded, 0)
    return np.clip(rounded, 0, size - 1).astype(np.intp)


def apply(frame: np.ndarray, params: dict) -> None:
    """Remap every pixel through its cell's lens + offset. In place."""
    cols = _grid_count(params.get("cols", 6))
    rows = _grid_count(params.get("rows", 6))
    offset = float(params.get("offset", 4))
    jitter = float(params.get("jitter", 1.5))
    lens = float(params.get("lens", 0.18))
    seed = params.get("seed", 1)

    h, w = frame.shape[:2]
    if h == 0 or w == 0:
        return

    src = frame.copy()

    cw = max(1, w // cols)
    ch = max(1, h // rows)
    # Cells past the frame edge cover no pixels
    vis_cols = min(cols, w)
    vis_rows = min(rows, h)
    x0, x1 = _cell_edges(w, vis_cols, cw)
    y0, y1 = _cell_edges(h, vis_rows, ch)
    centers_x = (x0 + x1) // 2
    centers_y = (y0 + y1) // 2

    offsets = cell_offsets(
        centers_x, centers_y, w, h, offset, jitter, seed, hidden_cols=cols - vis_cols
    )

    # Cell index of every column / row of pixels
    xs = np.arange(w)
    ys = np.arange(h)
    gxs = np.minimum(xs // cw, vis_cols - 1)
    gys = np.minimum(ys // ch, vis_rows - 1)

    cfx = centers_x[gxs].astype(np.float64)
    cfy = centers_y[gys].astype(np.float64)
    dx = xs - cfx
    dy = ys - cfy
    rx = dx / (cw * 0.5)
    ry = dy / (ch * 0.5)

    off = offsets[gys[:, np.newaxis], gxs[np.newaxis, :]]

    with np.errstate(over="ignore", invalid="ignore"):
        r2 = ry[:, np.newaxis] ** 2 + rx[np.newaxis, :] ** 2
        scale = 1.0 - lens * r2
        sx = cfx[np.newaxis, :] + dx[np.newaxis, :] * scale + off[:, :, 0]
        sy = cfy[:, np.newaxis] + dy[:, np.newaxis] * scale + off[:, :, 1]
        sx = _sample_index(sx, w)
        sy = _sample_index(sy, h)

    frame[:, :] = src[sy, sx]
