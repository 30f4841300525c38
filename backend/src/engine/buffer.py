"""Pixel buffer — interleaved 8-bit RGBA frame owned by the caller."""

import numpy as np

CHANNELS = 4


class PixelBuffer:
    """Width x height RGBA byte grid, row-major, top-left origin.

    Wraps an (H, W, 4) uint8 array. When built from a writable bytes-like
    object the array is a zero-copy view, so effects applied through the
    dispatcher mutate the caller's memory in place.
    """

    def __init__(self, pixels: np.ndarray):
        if not isinstance(pixels, np.ndarray):
            raise TypeError(f"expected ndarray, got {type(pixels).__name__}")
        if pixels.dtype != np.uint8:
            raise TypeError(f"expected uint8 pixels, got {pixels.dtype}")
        if pixels.ndim != 3 or pixels.shape[2] != CHANNELS:
            raise ValueError(f"expected (H, W, 4) RGBA pixels, got {pixels.shape}")
        self.pixels = pixels

    @classmethod
    def from_bytes(cls, data, width: int, height: int) -> "PixelBuffer":
        """Wrap raw RGBA bytes. bytearray/memoryview input is viewed, not copied."""
        if width < 0 or height < 0:
            raise ValueError(f"invalid frame size {width}x{height}")
        expected = width * height * CHANNELS
        if len(data) != expected:
            raise ValueError(
                f"buffer length {len(data)} does not match {width}x{height} RGBA "
                f"({expected} bytes)"
            )
        flat = np.frombuffer(data, dtype=np.uint8)
        if not flat.flags.writeable:
            flat = flat.copy()
        return cls(flat.reshape(height, width, CHANNELS))

    @classmethod
    def blank(cls, width: int, height: int, rgba=(0, 0, 0, 255)) -> "PixelBuffer":
        pixels = np.empty((height, width, CHANNELS), dtype=np.uint8)
        pixels[:, :] = rgba
        return cls(pixels)

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()

    def __len__(self) -> int:
        return self.pixels.size

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height})"
