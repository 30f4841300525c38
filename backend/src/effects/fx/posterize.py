"""Posterize effect — reduce color levels per channel."""

import math

import numpy as np

EFFECT_ID = "posterize"
EFFECT_NAME = "Posterize"
EFFECT_CATEGORY = "color"

PARAMS: dict = {
    "levels": {
        "type": "int",
        "min": 2,
        "default": 4,
        "label": "Color Levels",
        "description": "Number of evenly spaced values per channel, black and white included",
    }
}


def apply(frame: np.ndarray, params: dict) -> None:
    """Snap RGB to multiples of 255/(levels-1). Alpha untouched."""
    levels = max(2, math.floor(float(params.get("levels", 4))))
    step = 255.0 / (levels - 1)

    rgb = frame[:, :, :3].astype(np.float64)
    # Round half up on the level index, then store the nearest byte
    snapped = np.floor(rgb / step + 0.5) * step
    frame[:, :, :3] = np.clip(np.rint(snapped), 0, 255).astype(np.uint8)
