"""Pixelate effect — flood each tile with its top-left pixel."""

import math

import numpy as np

EFFECT_ID = "pixelate"
EFFECT_NAME = "Pixelate"
EFFECT_CATEGORY = "distortion"

PARAMS: dict = {
    "size": {
        "type": "int",
        "min": 1,
        "default": 8,
        "label": "Block Size",
        "unit": "px",
        "description": "Tile edge length; tiles at the right and bottom edges are truncated",
    }
}


def apply(frame: np.ndarray, params: dict) -> None:
    """Tile from (0, 0) in size x size blocks, partial tiles at the far edges.

    Each tile's top-left pixel is read before anything in that tile is
    written, so the strided sample needs no snapshot.
    """
    size = max(1, math.floor(float(params.get("size", 8))))

    h, w = frame.shape[:2]
    if h == 0 or w == 0 or size == 1:
        return
    anchors = frame[::size, ::size]
    # An axis shorter than the tile holds a single anchor; repeating it by the
    # axis length is enough, so intermediates stay within 2x the frame
    blocks = np.repeat(anchors, min(size, h), axis=0)[:h]
    blocks = np.repeat(blocks, min(size, w), axis=1)[:, :w]
    frame[:, :] = blocks
