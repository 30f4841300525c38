"""Security validation gates for the frame server and exporter."""

import json
import os
import re
from pathlib import Path

# Source clips and playlists
MAX_SOURCE_SIZE = 500 * 1024 * 1024  # 500 MB
ALLOWED_SOURCE_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm"}
ALLOWED_PLAYLIST_EXTENSIONS = {".json"}

# Raw frames posted to apply_frame (4K RGBA)
MAX_FRAME_PIXELS = 3840 * 2160

MAX_PLAYLIST_ENTRIES = 256

ALLOWED_OUTPUT_EXTENSIONS = {".mp4", ".mov", ".mkv", ".webm"}
BLOCKED_OUTPUT_PREFIXES = (
    "/System",
    "/Library",
    "/usr",
    "/bin",
    "/sbin",
    "/etc",
    "/private/var",
    "/private/etc",
)


def _unsafe_name(name: str) -> bool:
    return ".." in name or "/" in name or "\\" in name or "\x00" in name


def validate_source(path: str, allowed_extensions: set[str] | None = None) -> list[str]:
    """Validate a clip or playlist path. Returns list of errors (empty = valid).

    Checks:
    - Resolved path is under the user home directory
    - File exists and is not a symlink
    - Extension in whitelist
    - File size <= MAX_SOURCE_SIZE
    """
    allowed = allowed_extensions or ALLOWED_SOURCE_EXTENSIONS
    errors: list[str] = []
    p = Path(path)

    resolved = str(p.resolve())
    if not resolved.startswith(str(Path.home())):
        errors.append("Path must be within user home directory")
        return errors

    if not p.exists():
        errors.append(f"File not found: {path}")
        return errors

    if p.is_symlink():
        errors.append("Symlinks are not allowed")
        return errors

    ext = p.suffix.lower()
    if ext not in allowed:
        errors.append(f"Extension '{ext}' not allowed. Allowed: {sorted(allowed)}")

    size = p.stat().st_size
    if size > MAX_SOURCE_SIZE:
        size_mb = size / (1024 * 1024)
        errors.append(
            f"File too large: {size_mb:.1f} MB (max {MAX_SOURCE_SIZE // (1024 * 1024)} MB)"
        )

    if _unsafe_name(p.name):
        errors.append(f"Unsafe filename: {p.name}")

    return errors


def validate_output_path(path: str) -> list[str]:
    """Validate an export output path. Returns list of errors (empty = valid)."""
    errors: list[str] = []
    p = Path(path)

    if not p.is_absolute():
        errors.append("Output path must be absolute")
        return errors

    resolved = str(p.resolve())
    for prefix in BLOCKED_OUTPUT_PREFIXES:
        if resolved.startswith(prefix):
            errors.append(f"Cannot write to system directory: {prefix}")
            return errors

    ext = p.suffix.lower()
    if ext not in ALLOWED_OUTPUT_EXTENSIONS:
        errors.append(f"Output extension '{ext}' not allowed.")

    parent = p.parent
    if not parent.exists():
        errors.append(f"Output directory does not exist: {parent}")
    elif not os.access(str(parent), os.W_OK):
        errors.append(f"Output directory is not writable: {parent}")

    if _unsafe_name(p.name):
        errors.append(f"Unsafe output filename: {p.name}")

    return errors


def validate_frame_size(width, height) -> list[str]:
    """Validate dimensions of a raw frame. Returns list of errors."""
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in (width, height)):
        return ["width and height must be integers"]
    if width <= 0 or height <= 0:
        return [f"Invalid frame size {width}x{height}"]
    if width * height > MAX_FRAME_PIXELS:
        return [f"Frame {width}x{height} exceeds maximum {MAX_FRAME_PIXELS} pixels"]
    return []


def validate_playlist_length(entries: list) -> list[str]:
    if len(entries) > MAX_PLAYLIST_ENTRIES:
        return [f"Playlist has {len(entries)} entries, maximum is {MAX_PLAYLIST_ENTRIES}"]
    return []


# --- PII stripping for Sentry and crash dumps ---

_HOME = os.path.expanduser("~")
_USERNAME = os.path.basename(_HOME)
_PATH_PATTERN = re.compile(r"/Users/[^/\s]+|/home/[^/\s]+|C:\\Users\\[^\\\s]+")
_SENSITIVE_KEYS = {"_token", "token", "auth", "key", "secret", "password", "dsn"}


def _scrub_dict(d: dict):
    """Redact values for keys that look sensitive."""
    for key in list(d.keys()):
        if any(s in key.lower() for s in _SENSITIVE_KEYS):
            d[key] = "<REDACTED>"


def strip_pii(event: dict, hint: dict) -> dict:
    """Sentry before_send hook. Strips file paths and auth tokens.

    Also usable for crash dump sanitization.
    """
    event_str = json.dumps(event)
    event_str = event_str.replace(_HOME, "<HOME>")
    if _USERNAME:
        event_str = event_str.replace(_USERNAME, "<USER>")
    event_str = _PATH_PATTERN.sub("<REDACTED_PATH>", event_str)
    event = json.loads(event_str)

    _scrub_dict(event.get("extra", {}))
    for ctx in event.get("contexts", {}).values():
        if isinstance(ctx, dict):
            _scrub_dict(ctx)
    return event
