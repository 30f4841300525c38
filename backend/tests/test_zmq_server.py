"""Tests for the frame server loop — ping, auth, unknown commands, shutdown."""

import json
import time
import uuid

import zmq


def _send(sock, msg: dict, token: str) -> dict:
    """Send a message with the auth token injected."""
    msg["_token"] = token
    sock.send_json(msg)
    return sock.recv_json()


def _req_socket(port: int):
    ctx = zmq.Context()
    sock = ctx.socket(zmq.REQ)
    sock.setsockopt(zmq.LINGER, 0)
    sock.setsockopt(zmq.RCVTIMEO, 5000)
    sock.connect(f"tcp://127.0.0.1:{port}")
    return ctx, sock


def test_ping_pong(zmq_client):
    msg_id = str(uuid.uuid4())
    resp = zmq_client.request({"cmd": "ping", "id": msg_id})
    assert resp["id"] == msg_id
    assert resp["status"] == "alive"
    assert isinstance(resp["uptime_s"], float)
    assert "last_frame_ms" in resp


def test_ping_socket(zmq_ping_client):
    resp = zmq_ping_client.request({"cmd": "ping", "id": "p1"})
    assert resp["id"] == "p1"
    assert resp["status"] == "alive"


def test_unknown_command(zmq_client):
    msg_id = str(uuid.uuid4())
    resp = zmq_client.request({"cmd": "foobar", "id": msg_id})
    assert resp["id"] == msg_id
    assert resp["ok"] is False
    assert resp["error"] == "unknown: foobar"


def test_list_effects(zmq_client):
    resp = zmq_client.request({"cmd": "list_effects", "id": "1"})
    assert resp["ok"] is True
    ids = {e["id"] for e in resp["effects"]}
    assert ids == {"threshold", "posterize", "sobel", "pixelate", "compoundEyes", "videoGrid"}


def test_invalid_json_gets_reply(zmq_server):
    ctx, sock = _req_socket(zmq_server.port)
    sock.send(b"{not json")
    resp = sock.recv_json()
    assert resp == {"ok": False, "error": "Invalid message format"}
    sock.close()
    ctx.term()


def test_non_object_message_contained(zmq_server):
    ctx, sock = _req_socket(zmq_server.port)
    sock.send(json.dumps([1, 2, 3]).encode())
    resp = sock.recv_json()
    assert resp["ok"] is False
    assert resp["error"] == "Internal processing error"
    sock.close()
    ctx.term()


def test_unauthenticated_message_rejected(zmq_server):
    ctx, sock = _req_socket(zmq_server.port)
    sock.send_json({"cmd": "ping", "id": "x"})
    resp = sock.recv_json()
    assert resp["ok"] is False
    assert "auth token" in resp["error"]
    sock.close()
    ctx.term()


def test_wrong_token_rejected_on_ping_socket(zmq_server):
    ctx, sock = _req_socket(zmq_server.ping_port)
    resp = _send(sock, {"cmd": "ping", "id": "x"}, "wrong")
    assert resp["ok"] is False
    sock.close()
    ctx.term()


def test_shutdown_stops_loop(zmq_server_disposable):
    assert zmq_server_disposable.running is True
    ctx, sock = _req_socket(zmq_server_disposable.port)
    msg_id = str(uuid.uuid4())
    resp = _send(sock, {"cmd": "shutdown", "id": msg_id}, zmq_server_disposable.token)
    assert resp == {"id": msg_id, "ok": True}
    assert zmq_server_disposable.running is False
    sock.close()
    ctx.term()

    # Loop exits within one poll cycle and closes its sockets
    deadline = time.monotonic() + 3
    while not zmq_server_disposable.socket.closed and time.monotonic() < deadline:
        time.sleep(0.05)
    assert zmq_server_disposable.socket.closed


def test_non_object_ping_gets_reply(zmq_server):
    ctx, sock = _req_socket(zmq_server.ping_port)
    sock.send(b"[]")
    assert sock.recv_json() == {"ok": False, "error": "Invalid message format"}
    # Socket still serves the next request
    resp = _send(sock, {"cmd": "ping", "id": "after"}, zmq_server.token)
    assert resp["status"] == "alive"
    sock.close()
    ctx.term()
