import json
import os
import shutil
import threading
import time
import uuid
from pathlib import Path

import numpy as np
import pytest
import zmq

from zmq_server import ZMQServer


def _wait_for_server(srv: ZMQServer, timeout: float = 2.0) -> bool:
    """Ping the server until it responds or timeout expires."""
    ctx = zmq.Context()
    sock = ctx.socket(zmq.REQ)
    sock.setsockopt(zmq.LINGER, 0)
    sock.setsockopt(zmq.RCVTIMEO, 500)
    sock.connect(f"tcp://127.0.0.1:{srv.port}")
    deadline = time.monotonic() + timeout
    alive = False
    while time.monotonic() < deadline:
        try:
            sock.send_json({"cmd": "ping", "id": "health", "_token": srv.token})
            resp = sock.recv_json()
            if resp.get("status") == "alive":
                alive = True
                break
        except zmq.Again:
            # REQ socket is stuck after a timed-out send; start over
            sock.close()
            sock = ctx.socket(zmq.REQ)
            sock.setsockopt(zmq.LINGER, 0)
            sock.setsockopt(zmq.RCVTIMEO, 500)
            sock.connect(f"tcp://127.0.0.1:{srv.port}")
            time.sleep(0.05)
    sock.close()
    ctx.term()
    return alive


@pytest.fixture(scope="session")
def _zmq_server_session():
    """Start ONE frame server per session."""
    srv = ZMQServer()
    thread = threading.Thread(target=srv.run, daemon=True)
    thread.start()
    if not _wait_for_server(srv):
        pytest.skip("ZMQ server failed to start within 2s")
    yield srv
    srv.running = False
    # Wait for poller timeout cycle to complete
    time.sleep(0.6)


@pytest.fixture
def zmq_server(_zmq_server_session):
    """Function-scoped wrapper: resets state between tests, shares session server."""
    _zmq_server_session.reset_state()
    _zmq_server_session.running = True
    yield _zmq_server_session


@pytest.fixture
def zmq_server_disposable():
    """Fresh server for shutdown tests that destroy sockets/context."""
    srv = ZMQServer()
    thread = threading.Thread(target=srv.run, daemon=True)
    thread.start()
    if not _wait_for_server(srv):
        pytest.skip("ZMQ server failed to start within 2s")
    yield srv
    srv.running = False
    time.sleep(0.6)


class AuthenticatedZmqClient:
    """Wraps a ZMQ REQ socket and auto-injects the auth token."""

    def __init__(self, sock: zmq.Socket, token: str):
        self._sock = sock
        self._token = token

    def send_json(self, msg: dict) -> None:
        msg["_token"] = self._token
        self._sock.send_json(msg)

    def recv_json(self) -> dict:
        return self._sock.recv_json()

    def request(self, msg: dict) -> dict:
        self.send_json(msg)
        return self.recv_json()

    def close(self) -> None:
        self._sock.close()


@pytest.fixture
def zmq_client(zmq_server):
    """REQ socket connected to the test server (auto-injects auth token)."""
    ctx = zmq.Context()
    sock = ctx.socket(zmq.REQ)
    sock.connect(f"tcp://127.0.0.1:{zmq_server.port}")
    client = AuthenticatedZmqClient(sock, zmq_server.token)
    yield client
    sock.close()
    ctx.term()


@pytest.fixture
def zmq_ping_client(zmq_server):
    """REQ socket connected to the test server's ping port."""
    ctx = zmq.Context()
    sock = ctx.socket(zmq.REQ)
    sock.connect(f"tcp://127.0.0.1:{zmq_server.ping_port}")
    client = AuthenticatedZmqClient(sock, zmq_server.token)
    yield client
    sock.close()
    ctx.term()


def _fixture_dir() -> Path:
    d = Path.home() / ".cache" / "framefx" / "test-fixtures"
    d.mkdir(parents=True, exist_ok=True)
    return d


def write_synthetic_video(path: str, frames: int = 30, width: int = 64, height: int = 48):
    """Gradient clip whose red channel ramps per frame."""
    from video.writer import VideoWriter

    with VideoWriter(path, width, height, fps=30) as w:
        for i in range(frames):
            frame = np.zeros((height, width, 4), dtype=np.uint8)
            frame[:, :, 0] = int(255 * i / frames)
            frame[:, :, 1] = np.linspace(0, 255, width, dtype=np.uint8)[np.newaxis, :]
            frame[:, :, 2] = 64
            frame[:, :, 3] = 255
            w.write_frame(frame)


@pytest.fixture(scope="session")
def synthetic_video_path():
    """1s 64x48 clip under ~/ (required by validate_source)."""
    path = str(_fixture_dir() / f"test_{uuid.uuid4().hex[:8]}.mp4")
    write_synthetic_video(path)
    yield path
    os.unlink(path)


@pytest.fixture(scope="session")
def synthetic_playlist_path(synthetic_video_path):
    """Two-entry playlist referencing the synthetic clip by relative name."""
    clip = Path(synthetic_video_path)
    path = clip.parent / f"playlist_{uuid.uuid4().hex[:8]}.json"
    path.write_text(
        json.dumps(
            {
                "version": "1.0.0",
                "entries": [
                    {"source": clip.name, "effect": "threshold", "params": {"t": 85}},
                    {"source": clip.name, "effect": "videoGrid", "params": {"cols": 2, "rows": 2}},
                ],
            }
        )
    )
    yield str(path)
    path.unlink(missing_ok=True)


@pytest.fixture
def home_tmp_path():
    """tmp_path equivalent under ~/ for tests that go through validate_source."""
    base = Path.home() / ".cache" / "framefx" / "test-tmp"
    base.mkdir(parents=True, exist_ok=True)
    d = base / f"test_{uuid.uuid4().hex[:8]}"
    d.mkdir()
    yield d
    shutil.rmtree(d, ignore_errors=True)
