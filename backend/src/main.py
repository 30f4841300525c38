"""framefx entry point.

    framefx-server                          run the ZMQ frame server
    framefx-server export SHOW.json OUT.mp4 render a playlist offline
"""

import argparse
import logging
import os
import platform
import sys
from pathlib import Path

import sentry_sdk

from _version import __version__
from diagnostics import APP_DIR, init_diagnostics
from engine.export import ExportManager, ExportStatus, resolve_source
from project import schema
from security import (
    ALLOWED_PLAYLIST_EXTENSIONS,
    strip_pii,
    validate_frame_size,
    validate_output_path,
    validate_playlist_length,
    validate_source,
)
from zmq_server import ZMQServer

logger = logging.getLogger(__name__)

CONSENT_FILENAME = "telemetry_consent"

# Frames are small; a runaway effect should not take the machine down
MAX_MEMORY_BYTES = 4 * 1024 * 1024 * 1024  # 4 GB


def telemetry_consented(app_dir: str | None = None) -> bool:
    """True only if the consent file exists and reads exactly "yes"."""
    path = Path(app_dir or APP_DIR) / CONSENT_FILENAME
    try:
        return path.read_text().strip() == "yes"
    except OSError:
        return False


def init_sentry(app_dir: str | None = None) -> bool:
    """Initialize Sentry. Without consent the DSN is empty and nothing is sent."""
    dsn = os.environ.get("SENTRY_DSN", "") if telemetry_consented(app_dir) else ""
    sentry_sdk.init(
        dsn=dsn,
        release=f"framefx@{__version__}",
        environment=os.environ.get("SENTRY_ENV", "development"),
        traces_sample_rate=0.1,
        before_send=strip_pii,
        max_breadcrumbs=50,
    )
    return bool(dsn)


def _apply_resource_limits():
    """Cap address space. Skipped on Windows."""
    if platform.system() == "Windows":
        return
    try:
        import resource

        _soft, hard = resource.getrlimit(resource.RLIMIT_AS)
        resource.setrlimit(resource.RLIMIT_AS, (MAX_MEMORY_BYTES, hard))
    except (ImportError, ValueError, OSError):
        print("WARNING: Could not set memory limit", file=sys.stderr)


def parse_size(text: str) -> tuple[int, int]:
    """Parse WIDTHxHEIGHT, e.g. 1280x720."""
    try:
        width, height = (int(v) for v in text.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {text!r}")
    errors = validate_frame_size(width, height)
    if errors:
        raise argparse.ArgumentTypeError(errors[0])
    return width, height


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="framefx-server",
        description="RGBA effect engine: ZMQ frame server and playlist exporter",
    )
    parser.add_argument("--version", action="version", version=f"framefx {__version__}")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="run the ZMQ frame server (default)")

    export = sub.add_parser("export", help="render a playlist to one video file")
    export.add_argument("playlist", help="playlist .json file")
    export.add_argument("output", help="output video path")
    export.add_argument(
        "--size",
        type=parse_size,
        default=None,
        help="output WIDTHxHEIGHT (default: first clip's size)",
    )
    return parser


def _check_playlist(playlist_path: str, output_path: str) -> tuple[dict | None, list[str]]:
    errors = validate_source(playlist_path, ALLOWED_PLAYLIST_EXTENSIONS)
    errors += validate_output_path(output_path)
    if errors:
        return None, errors

    try:
        playlist = schema.load(playlist_path)
    except ValueError as e:
        return None, [str(e)]

    errors = validate_playlist_length(playlist["entries"])
    if not playlist["entries"]:
        errors.append("Playlist has no entries")
    base_dir = str(Path(playlist_path).resolve().parent)
    for entry in playlist["entries"]:
        errors += validate_source(resolve_source(entry["source"], base_dir))
    return playlist, errors


def run_export(
    playlist_path: str,
    output_path: str,
    size: tuple[int, int] | None = None,
    poll_interval: float = 0.5,
) -> int:
    """Render a playlist file to `output_path`. Returns a process exit code."""
    playlist, errors = _check_playlist(playlist_path, output_path)
    if errors:
        for err in errors:
            print(f"ERROR: {err}", file=sys.stderr)
        return 2

    manager = ExportManager()
    job = manager.start(
        playlist,
        output_path,
        size,
        base_dir=str(Path(playlist_path).resolve().parent),
    )
    count = len(playlist["entries"])
    try:
        while not job.wait(poll_interval):
            status = manager.get_status()
            print(
                f"\r{status['progress'] * 100:5.1f}%  entry {status['current_entry'] + 1}/{count}",
                end="",
                file=sys.stderr,
                flush=True,
            )
    except KeyboardInterrupt:
        manager.cancel()
        job.wait()
    print(file=sys.stderr)

    if job.status == ExportStatus.COMPLETE:
        logger.info("Exported %d frames to %s", job.current_frame, output_path)
        print(f"Wrote {job.current_frame} frames to {output_path}")
        return 0
    print(f"ERROR: export {job.status.value}: {job.error or ''}", file=sys.stderr)
    return 1


def serve() -> int:
    server = ZMQServer()
    print(f"ZMQ_PORT={server.port}", flush=True)
    print(f"ZMQ_PING_PORT={server.ping_port}", flush=True)
    print(f"ZMQ_TOKEN={server.token}", flush=True)
    server.run()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    init_diagnostics()
    init_sentry()
    _apply_resource_limits()

    if args.command == "export":
        return run_export(args.playlist, args.output, args.size)
    return serve()


if __name__ == "__main__":
    sys.exit(main())
