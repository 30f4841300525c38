"""Threshold effect — binarize on luma, preserve alpha."""

import numpy as np

EFFECT_ID = "threshold"
EFFECT_NAME = "Threshold"
EFFECT_CATEGORY = "color"

PARAMS: dict = {
    "t": {
        "type": "float",
        "min": 0.0,
        "max": 255.0,
        "default": 128,
        "label": "Cutoff",
        "description": "Luma at or above the cutoff turns white, below turns black",
    }
}


def luma(rgb: np.ndarray) -> np.ndarray:
    """Perceptual brightness 0.299R + 0.587G + 0.114B as float64."""
    return (
        0.299 * rgb[..., 0].astype(np.float64)
        + 0.587 * rgb[..., 1].astype(np.float64)
        + 0.114 * rgb[..., 2].astype(np.float64)
    )


def apply(frame: np.ndarray, params: dict) -> None:
    """Set R=G=B to 255 where luma >= t, else 0. In place, no snapshot."""
    t = float(params.get("t", 128))

    v = luma(frame)
    binary = np.where(v >= t, 255, 0).astype(np.uint8)
    frame[:, :, :3] = binary[:, :, np.newaxis]
