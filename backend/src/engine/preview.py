"""JPEG preview encoding for frames returned over the frame server."""

import io

import numpy as np
from PIL import Image

DEFAULT_QUALITY = 90


def encode_preview(frame: np.ndarray, quality: int = DEFAULT_QUALITY) -> bytes:
    """Encode an RGBA frame as JPEG bytes. Alpha is dropped."""
    img = Image.fromarray(np.ascontiguousarray(frame[:, :, :3]))
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=max(1, min(95, int(quality))))
    return buf.getvalue()


def decode_preview(data: bytes) -> np.ndarray:
    """Decode JPEG bytes back to an (H, W, 3) RGB array."""
    img = Image.open(io.BytesIO(data))
    return np.array(img.convert("RGB"))
