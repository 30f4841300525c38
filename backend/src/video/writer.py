"""Clip encoding via PyAV — writes processed RGBA frames."""

import av
import numpy as np


class VideoWriter:
    """H.264 writer for a fixed canvas size. Alpha is dropped on encode."""

    def __init__(
        self, path: str, width: int, height: int, fps: int = 30, codec: str = "libx264"
    ):
        if width % 2 or height % 2:
            raise ValueError(f"yuv420p output needs even dimensions, got {width}x{height}")
        self.width = width
        self.height = height
        self.container = av.open(path, mode="w")
        self.stream = self.container.add_stream(codec, rate=fps)
        self.stream.width = width
        self.stream.height = height
        self.stream.pix_fmt = "yuv420p"
        self.frame_count = 0

    def __enter__(self) -> "VideoWriter":
        return self

    def __exit__(self, *exc):
        self.close()

    def write_frame(self, frame_rgba: np.ndarray):
        if frame_rgba.shape[:2] != (self.height, self.width):
            raise ValueError(
                f"frame is {frame_rgba.shape[1]}x{frame_rgba.shape[0]}, "
                f"writer expects {self.width}x{self.height}"
            )
        rgb = np.ascontiguousarray(frame_rgba[:, :, :3])
        frame = av.VideoFrame.from_ndarray(rgb, format="rgb24")
        for packet in self.stream.encode(frame):
            self.container.mux(packet)
        self.frame_count += 1

    def close(self):
        for packet in self.stream.encode():
            self.container.mux(packet)
        self.container.close()
