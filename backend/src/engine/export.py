"""Export job manager — render a playlist to one video in the background."""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import cv2
import numpy as np
import sentry_sdk

from engine.pipeline import apply
from video.reader import VideoReader
from video.writer import VideoWriter

logger = logging.getLogger(__name__)


class ExportStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass
class ExportJob:
    """Tracks state of a background export."""

    status: ExportStatus = ExportStatus.IDLE
    current_frame: int = 0
    total_frames: int = 0
    current_entry: int = 0
    error: str | None = None
    output_path: str = ""
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _cancel_event: threading.Event = field(default_factory=threading.Event)
    _thread: threading.Thread | None = field(default=None, repr=False)

    @property
    def progress(self) -> float:
        if self.total_frames == 0:
            return 0.0
        return min(1.0, self.current_frame / self.total_frames)

    def cancel(self):
        self._cancel_event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the worker thread exits. Returns False on timeout."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()


def fit_frame(frame: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize an RGBA frame to the export canvas (no-op when it already fits)."""
    if frame.shape[1] == width and frame.shape[0] == height:
        return frame
    return cv2.resize(frame, (width, height), interpolation=cv2.INTER_AREA)


def resolve_source(source: str, base_dir: str | None) -> str:
    path = Path(source)
    if base_dir is not None and not path.is_absolute():
        path = Path(base_dir) / path
    return str(path)


class ExportManager:
    """Manages background export jobs. One job at a time."""

    def __init__(self):
        self._job: ExportJob | None = None

    @property
    def job(self) -> ExportJob | None:
        return self._job

    def start(
        self,
        playlist: dict,
        output_path: str,
        resolution: tuple[int, int] | None = None,
        base_dir: str | None = None,
    ) -> ExportJob:
        """Start a background export of every playlist entry in order.

        Args:
            playlist:    Validated playlist dict (see project.schema).
            output_path: Destination video file.
            resolution:  (width, height) canvas; defaults to the first clip's size.
            base_dir:    Directory that relative entry sources resolve against.

        Raises:
            RuntimeError: If an export is already running.
            ValueError:   If the playlist has no entries.
        """
        if self._job is not None and self._job.status == ExportStatus.RUNNING:
            raise RuntimeError("Export already in progress")
        if not playlist.get("entries"):
            raise ValueError("Playlist has no entries")

        job = ExportJob(output_path=output_path)
        self._job = job

        thread = threading.Thread(
            target=self._run_export,
            args=(job, playlist["entries"], output_path, resolution, base_dir),
            daemon=True,
        )
        job._thread = thread
        job.status = ExportStatus.RUNNING
        thread.start()

        return job

    def _run_export(
        self,
        job: ExportJob,
        entries: list[dict],
        output_path: str,
        resolution: tuple[int, int] | None,
        base_dir: str | None,
    ):
        writer = None
        try:
            sources = [resolve_source(e["source"], base_dir) for e in entries]

            # Probe every clip up front so progress has a stable denominator
            counts = []
            fps = None
            for path in sources:
                with VideoReader(path) as reader:
                    counts.append(reader.frame_count)
                    if fps is None:
                        fps = reader.fps
                        if resolution is None:
                            resolution = (reader.width, reader.height)
            job.total_frames = sum(counts)

            # yuv420p needs even dimensions
            width = max(2, resolution[0] - resolution[0] % 2)
            height = max(2, resolution[1] - resolution[1] % 2)
            writer = VideoWriter(output_path, width, height, fps=max(1, round(fps)))

            done = 0
            for entry_index, (entry, path, count) in enumerate(
                zip(entries, sources, counts)
            ):
                with job._lock:
                    job.current_entry = entry_index
                logger.info(
                    "Exporting entry %d (%s, %d frames)",
                    entry_index,
                    entry["effect"],
                    count,
                )
                with VideoReader(path) as reader:
                    for frame in reader.iter_frames():
                        if job._cancel_event.is_set():
                            with job._lock:
                                job.status = ExportStatus.CANCELLED
                            return

                        frame = np.ascontiguousarray(fit_frame(frame, width, height))
                        apply(frame, entry["effect"], entry.get("params", {}))
                        writer.write_frame(frame)

                        done += 1
                        with job._lock:
                            job.current_frame = done

            # Header frame counts are estimates; settle on what was written
            with job._lock:
                job.total_frames = done
                job.status = ExportStatus.COMPLETE

        except Exception as e:
            sentry_sdk.capture_exception(e)
            logger.exception("Export failed")
            with job._lock:
                job.status = ExportStatus.ERROR
                job.error = f"Export failed: {type(e).__name__}"
        finally:
            if writer is not None:
                writer.close()

    def get_status(self) -> dict:
        """Return serializable status dict."""
        if self._job is None:
            return {
                "status": ExportStatus.IDLE.value,
                "progress": 0.0,
                "current_frame": 0,
                "total_frames": 0,
            }
        with self._job._lock:
            return {
                "status": self._job.status.value,
                "progress": round(self._job.progress, 4),
                "current_frame": self._job.current_frame,
                "total_frames": self._job.total_frames,
                "current_entry": self._job.current_entry,
                "output_path": self._job.output_path,
                "error": self._job.error,
            }

    def cancel(self) -> bool:
        """Cancel the running export. Returns True if a job was cancelled."""
        if self._job is None:
            return False
        with self._job._lock:
            if self._job.status == ExportStatus.RUNNING:
                self._job.cancel()
                return True
        return False
