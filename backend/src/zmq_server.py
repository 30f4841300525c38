import base64
import binascii
import collections
import json
import logging
import time
import uuid
from pathlib import Path

import numpy as np
import sentry_sdk
import zmq

from effects import registry
from engine.buffer import PixelBuffer
from engine.export import ExportManager, resolve_source
from engine.pipeline import apply, flush_timing, get_effect_stats
from engine.preview import encode_preview
from project import schema
from security import (
    ALLOWED_PLAYLIST_EXTENSIONS,
    validate_frame_size,
    validate_output_path,
    validate_playlist_length,
    validate_source,
)
from video.reader import VideoReader

logger = logging.getLogger(__name__)

# Room for one base64-encoded 4K RGBA frame plus the JSON envelope
MAX_MESSAGE_BYTES = 64 * 1024 * 1024


class ZMQServer:
    """Frame server: the render loop posts frames, gets them back with the effect applied."""

    def __init__(self):
        self.context = zmq.Context()
        self.socket = self.context.socket(zmq.REP)
        self.socket.setsockopt(zmq.MAXMSGSIZE, MAX_MESSAGE_BYTES)
        self.port = self.socket.bind_to_random_port("tcp://127.0.0.1")
        # Separate ping socket so health checks never wait behind a render
        self.ping_socket = self.context.socket(zmq.REP)
        self.ping_socket.setsockopt(zmq.MAXMSGSIZE, 4096)
        self.ping_port = self.ping_socket.bind_to_random_port("tcp://127.0.0.1")
        # Per-process auth token checked on every message
        self.token = str(uuid.uuid4())
        self.start_time = time.time()
        self.running = False
        self.readers: collections.OrderedDict[str, VideoReader] = (
            collections.OrderedDict()
        )
        self._max_readers = 10
        self.playlist: dict | None = None
        self.playlist_dir: str | None = None
        self.entry_index = 0
        self.last_frame_ms = 0.0
        self.export_manager = ExportManager()

    def reset_state(self):
        """Clear accumulated state without closing sockets/context."""
        for reader in self.readers.values():
            reader.close()
        self.readers.clear()
        self.playlist = None
        self.playlist_dir = None
        self.entry_index = 0
        self.export_manager.cancel()
        self.export_manager = ExportManager()
        self.last_frame_ms = 0.0

    def _validate_token(self, message: dict) -> str | None:
        """Validate auth token. Returns error message or None if valid."""
        if message.get("_token") != self.token:
            return "invalid or missing auth token"
        return None

    def _make_ping_response(self, msg_id: str | None) -> dict:
        return {
            "id": msg_id,
            "status": "alive",
            "uptime_s": round(time.time() - self.start_time, 1),
            "last_frame_ms": self.last_frame_ms,
        }

    def handle_message(self, message: dict) -> dict:
        cmd = message.get("cmd")
        msg_id = message.get("id")

        token_err = self._validate_token(message)
        if token_err:
            return {"id": msg_id, "ok": False, "error": token_err}

        if cmd == "ping":
            return self._make_ping_response(msg_id)
        elif cmd == "shutdown":
            self.running = False
            return {"id": msg_id, "ok": True}
        elif cmd == "list_effects":
            return {"id": msg_id, "ok": True, "effects": registry.list_all()}
        elif cmd == "apply_frame":
            return self._handle_apply_frame(message, msg_id)
        elif cmd == "load_playlist":
            return self._handle_load_playlist(message, msg_id)
        elif cmd == "select_entry":
            return self._handle_select_entry(message, msg_id)
        elif cmd == "render_frame":
            return self._handle_render_frame(message, msg_id)
        elif cmd == "export_start":
            return self._handle_export_start(message, msg_id)
        elif cmd == "export_status":
            return {"id": msg_id, "ok": True, **self.export_manager.get_status()}
        elif cmd == "export_cancel":
            return {"id": msg_id, "ok": True, "cancelled": self.export_manager.cancel()}
        elif cmd == "effect_stats":
            return {"id": msg_id, "ok": True, "stats": get_effect_stats()}
        elif cmd == "flush_state":
            flush_timing()
            return {"id": msg_id, "ok": True}
        else:
            return {"id": msg_id, "ok": False, "error": f"unknown: {cmd}"}

    def _handle_apply_frame(self, message: dict, msg_id: str | None) -> dict:
        width = message.get("width")
        height = message.get("height")
        effect = message.get("effect")
        params = message.get("params") or {}
        frame_data = message.get("frame_data")
        if not frame_data:
            return {"id": msg_id, "ok": False, "error": "missing frame_data"}
        if not isinstance(params, dict):
            return {"id": msg_id, "ok": False, "error": "params must be an object"}

        errors = validate_frame_size(width, height)
        if errors:
            return {"id": msg_id, "ok": False, "error": "; ".join(errors)}

        try:
            raw = bytearray(base64.b64decode(frame_data, validate=True))
            buffer = PixelBuffer.from_bytes(raw, width, height)
        except (binascii.Error, ValueError) as e:
            return {"id": msg_id, "ok": False, "error": f"bad frame: {e}"}

        t0 = time.time()
        apply(buffer, effect, params)
        self.last_frame_ms = round((time.time() - t0) * 1000, 2)

        return {
            "id": msg_id,
            "ok": True,
            "applied": registry.get(effect) is not None,
            "width": width,
            "height": height,
            "frame_data": base64.b64encode(raw).decode("ascii"),
        }

    def _handle_load_playlist(self, message: dict, msg_id: str | None) -> dict:
        path = message.get("path")
        if not path:
            return {"id": msg_id, "ok": False, "error": "missing path"}

        errors = validate_source(path, ALLOWED_PLAYLIST_EXTENSIONS)
        if errors:
            return {"id": msg_id, "ok": False, "error": "; ".join(errors)}

        try:
            playlist = schema.load(path)
        except ValueError as e:
            return {"id": msg_id, "ok": False, "error": str(e)}

        errors = validate_playlist_length(playlist["entries"])
        if errors:
            return {"id": msg_id, "ok": False, "error": "; ".join(errors)}

        self.playlist = playlist
        self.playlist_dir = str(Path(path).resolve().parent)
        self.entry_index = 0
        logger.info("Loaded playlist with %d entries", len(playlist["entries"]))
        return {
            "id": msg_id,
            "ok": True,
            "entries": len(playlist["entries"]),
            "index": self.entry_index,
        }

    def _handle_select_entry(self, message: dict, msg_id: str | None) -> dict:
        if not self.playlist or not self.playlist["entries"]:
            return {"id": msg_id, "ok": False, "error": "no playlist loaded"}
        count = len(self.playlist["entries"])

        step = message.get("step")
        if step == "next":
            self.entry_index = schema.next_index(self.entry_index, count)
        elif step == "prev":
            self.entry_index = schema.prev_index(self.entry_index, count)
        elif "index" in message:
            index = message["index"]
            if not isinstance(index, int) or not 0 <= index < count:
                return {"id": msg_id, "ok": False, "error": f"index out of range 0..{count - 1}"}
            self.entry_index = index
        else:
            return {"id": msg_id, "ok": False, "error": "missing step or index"}

        return {
            "id": msg_id,
            "ok": True,
            "index": self.entry_index,
            "entry": self.playlist["entries"][self.entry_index],
        }

    def _handle_render_frame(self, message: dict, msg_id: str | None) -> dict:
        """Decode a clip frame, apply an effect, return a JPEG preview.

        Either a `path` + `effect` + `params` is given, or the current
        (or `entry`-selected) playlist entry supplies all three.
        """
        frame_index = message.get("frame_index", 0)
        if not isinstance(frame_index, int) or frame_index < 0:
            return {"id": msg_id, "ok": False, "error": "frame_index must be non-negative"}

        if "path" in message:
            path = message["path"]
            effect = message.get("effect")
            params = message.get("params") or {}
        else:
            if not self.playlist or not self.playlist["entries"]:
                return {"id": msg_id, "ok": False, "error": "no playlist loaded"}
            index = message.get("entry", self.entry_index)
            entries = self.playlist["entries"]
            if not isinstance(index, int) or not 0 <= index < len(entries):
                return {"id": msg_id, "ok": False, "error": "entry out of range"}
            entry = entries[index]
            path = resolve_source(entry["source"], self.playlist_dir)
            effect = entry["effect"]
            params = entry.get("params", {})

        errors = validate_source(path)
        if errors:
            return {"id": msg_id, "ok": False, "error": "; ".join(errors)}

        try:
            reader = self._get_reader(path)
            if reader.frame_count and frame_index >= reader.frame_count:
                return {
                    "id": msg_id,
                    "ok": False,
                    "error": f"frame_index {frame_index} exceeds frame count {reader.frame_count}",
                }

            t0 = time.time()
            frame = reader.decode_frame(frame_index)
            apply(frame, effect, params)
            jpeg_bytes = encode_preview(frame)
            self.last_frame_ms = round((time.time() - t0) * 1000, 2)
            return {
                "id": msg_id,
                "ok": True,
                "frame_index": frame_index,
                "effect": effect,
                "frame_data": base64.b64encode(jpeg_bytes).decode("ascii"),
                "width": reader.width,
                "height": reader.height,
            }
        except Exception as e:
            sentry_sdk.capture_exception(e)
            logger.error("Render frame handler error: %s", type(e).__name__)
            return {"id": msg_id, "ok": False, "error": "Internal processing error"}

    def _handle_export_start(self, message: dict, msg_id: str | None) -> dict:
        if not self.playlist or not self.playlist["entries"]:
            return {"id": msg_id, "ok": False, "error": "no playlist loaded"}

        output_path = message.get("output_path")
        if not output_path:
            return {"id": msg_id, "ok": False, "error": "missing output_path"}
        errors = validate_output_path(output_path)
        if errors:
            return {"id": msg_id, "ok": False, "error": "; ".join(errors)}

        for entry in self.playlist["entries"]:
            errors = validate_source(resolve_source(entry["source"], self.playlist_dir))
            if errors:
                return {"id": msg_id, "ok": False, "error": "; ".join(errors)}

        resolution = message.get("resolution")
        if resolution is not None:
            if (
                not isinstance(resolution, list)
                or len(resolution) != 2
                or validate_frame_size(resolution[0], resolution[1])
            ):
                return {"id": msg_id, "ok": False, "error": "invalid resolution"}
            resolution = (resolution[0], resolution[1])

        try:
            self.export_manager.start(
                self.playlist, output_path, resolution, base_dir=self.playlist_dir
            )
        except RuntimeError as e:
            return {"id": msg_id, "ok": False, "error": str(e)}
        return {"id": msg_id, "ok": True}

    def _get_reader(self, path: str) -> VideoReader:
        """Cached reader per path, LRU-evicted past _max_readers."""
        if path in self.readers:
            self.readers.move_to_end(path)
            return self.readers[path]
        reader = VideoReader(path)
        self.readers[path] = reader
        if len(self.readers) > self._max_readers:
            _, oldest = self.readers.popitem(last=False)
            oldest.close()
        return reader

    def run(self):
        self.running = True
        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        poller.register(self.ping_socket, zmq.POLLIN)
        while self.running:
            events = dict(poller.poll(timeout=500))

            # Ping socket first (lightweight, never blocked)
            if self.ping_socket in events:
                try:
                    message = json.loads(self.ping_socket.recv())
                    msg_id = message.get("id")
                    token_err = self._validate_token(message)
                    if token_err:
                        self.ping_socket.send_json(
                            {"id": msg_id, "ok": False, "error": token_err}
                        )
                    else:
                        self.ping_socket.send_json(self._make_ping_response(msg_id))
                except (json.JSONDecodeError, AttributeError):
                    self.ping_socket.send_json(
                        {"ok": False, "error": "Invalid message format"}
                    )
                except zmq.ZMQError:
                    logger.error("ZMQ error on ping socket")
                    break

            if self.socket in events:
                try:
                    message = json.loads(self.socket.recv())
                except json.JSONDecodeError:
                    # MUST send reply before next recv (REP protocol)
                    self.socket.send_json({"ok": False, "error": "Invalid message format"})
                    continue
                except zmq.ZMQError:
                    logger.error("ZMQ error on main socket")
                    break

                try:
                    response = self.handle_message(message)
                except Exception as e:
                    sentry_sdk.capture_exception(e)
                    logger.error("Unhandled handler error: %s", type(e).__name__)
                    response = {"ok": False, "error": "Internal processing error"}

                self.socket.send_json(response)
        self.close()

    def close(self):
        self.export_manager.cancel()
        for reader in self.readers.values():
            reader.close()
        self.readers.clear()
        self.ping_socket.close()
        self.socket.close()
        self.context.term()
