"""Clip decoding via PyAV — supplies RGBA frames to the effect engine."""

from collections.abc import Iterator

import av
import numpy as np


class VideoReader:
    """Decode RGBA frames from a clip, sequentially or by index."""

    def __init__(self, path: str):
        self.path = path
        self.container = av.open(path)
        if not self.container.streams.video:
            self.container.close()
            raise ValueError(f"No video stream in {path}")
        self.stream = self.container.streams.video[0]
        self.stream.thread_type = "AUTO"
        self.fps = float(self.stream.average_rate or 30)
        if self.stream.duration is not None:
            self.duration = float(self.stream.duration * self.stream.time_base)
        elif self.container.duration:
            self.duration = self.container.duration / av.time_base
        else:
            self.duration = 0.0
        self.width = self.stream.width
        self.height = self.stream.height
        self.frame_count = self.stream.frames or int(self.duration * self.fps)
        self._last_decoded_index: int = -1
        self._decoder = self.container.decode(video=0)

    def __enter__(self) -> "VideoReader":
        return self

    def __exit__(self, *exc):
        self.close()

    def iter_frames(self) -> Iterator[np.ndarray]:
        """Yield every remaining frame in decode order as (H, W, 4) uint8."""
        for frame in self._decoder:
            self._last_decoded_index += 1
            yield frame.to_ndarray(format="rgba")

    def decode_frame(self, frame_index: int) -> np.ndarray:
        """Decode a frame by index. Sequential access skips the seek."""
        if frame_index == self._last_decoded_index + 1:
            try:
                frame = next(self._decoder)
            except StopIteration:
                raise IndexError(f"Frame {frame_index} not found (end of stream)")
            self._last_decoded_index = frame_index
            return frame.to_ndarray(format="rgba")
        return self._decode_with_seek(frame_index)

    def _decode_with_seek(self, frame_index: int) -> np.ndarray:
        time_s = frame_index / self.fps
        self.container.seek(int(time_s / self.stream.time_base), stream=self.stream)
        self._decoder = self.container.decode(video=0)
        for frame in self._decoder:
            if frame.pts is None:
                continue
            current_idx = int(float(frame.pts * self.stream.time_base) * self.fps)
            if current_idx >= frame_index:
                self._last_decoded_index = frame_index
                return frame.to_ndarray(format="rgba")
        raise IndexError(f"Frame {frame_index} not found")

    def close(self):
        self.container.close()
