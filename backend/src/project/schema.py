"""Playlist schema — ordered clip/effect entries, serialize/deserialize.

A playlist is {"version": str, "entries": [{"source", "effect", "params"}]}.
Validation is strict (unknown effects and params are reported) so that a
misconfigured playlist fails at load time rather than silently passing
frames through during playback.
"""

import json
import math
import numbers
from pathlib import Path

from effects import registry

CURRENT_VERSION = "1.0.0"

REQUIRED_KEYS = {"version", "entries"}
REQUIRED_ENTRY_KEYS = {"source", "effect"}

DEMO_SEQUENCE = [
    {"source": "clips/4.mp4", "effect": "sobel", "params": {"edge": 1.0}},
    {
        "source": "clips/1.mp4",
        "effect": "compoundEyes",
        "params": {"cols": 20, "rows": 20, "offset": 1, "lens": 0.4, "jitter": 0, "seed": 11},
    },
    {"source": "clips/6.mp4", "effect": "threshold", "params": {"t": 85}},
    {"source": "clips/3.mp4", "effect": "posterize", "params": {"levels": 15}},
    {"source": "clips/2.mp4", "effect": "videoGrid", "params": {"cols": 7, "rows": 7}},
    {"source": "clips/5.mp4", "effect": "pixelate", "params": {"size": 8}},
]


def new_entry(source: str, effect: str, params: dict | None = None) -> dict:
    return {"source": source, "effect": effect, "params": dict(params or {})}


def new_playlist(entries: list[dict] | None = None) -> dict:
    """Create a playlist, defaulting to an empty entry list."""
    return {
        "version": CURRENT_VERSION,
        "entries": [dict(e) for e in (entries or [])],
    }


def _validate_entry(i: int, entry) -> list[str]:
    if not isinstance(entry, dict):
        return [f"entry {i}: must be a dict"]

    missing = REQUIRED_ENTRY_KEYS - set(entry.keys())
    if missing:
        return [f"entry {i}: missing keys {sorted(missing)}"]

    errors = []
    if not isinstance(entry["source"], str) or not entry["source"]:
        errors.append(f"entry {i}: 'source' must be a non-empty string")

    info = registry.get(entry["effect"])
    if info is None:
        errors.append(f"entry {i}: unknown effect {entry['effect']!r}")
        return errors

    params = entry.get("params", {})
    if not isinstance(params, dict):
        errors.append(f"entry {i}: 'params' must be a dict")
        return errors

    for key, value in params.items():
        if key not in info["params"]:
            errors.append(f"entry {i}: effect {entry['effect']!r} has no param {key!r}")
        elif (
            isinstance(value, bool)
            or not isinstance(value, numbers.Real)
            or not math.isfinite(value)
        ):
            errors.append(f"entry {i}: param {key!r} must be a finite number")

    return errors


def validate(playlist: dict) -> list[str]:
    """Validate a playlist dict. Returns list of error strings (empty = valid)."""
    if not isinstance(playlist, dict):
        return ["playlist must be a dict"]

    missing = REQUIRED_KEYS - set(playlist.keys())
    if missing:
        return [f"Missing top-level keys: {sorted(missing)}"]

    errors = []
    if not isinstance(playlist["version"], str):
        errors.append("'version' must be a string")

    entries = playlist["entries"]
    if not isinstance(entries, list):
        errors.append("'entries' must be a list")
        return errors

    for i, entry in enumerate(entries):
        errors.extend(_validate_entry(i, entry))

    return errors


def serialize(playlist: dict) -> str:
    """Serialize playlist to JSON string."""
    return json.dumps(playlist, indent=2)


def deserialize(data: str) -> dict:
    """Deserialize JSON string to playlist dict. Raises ValueError on invalid JSON or schema.

    A bare JSON list is accepted as the entry list of a new playlist.
    """
    try:
        playlist = json.loads(data)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}") from e

    if isinstance(playlist, list):
        playlist = new_playlist(playlist)

    errors = validate(playlist)
    if errors:
        raise ValueError(f"Invalid playlist: {'; '.join(errors)}")

    for entry in playlist["entries"]:
        entry.setdefault("params", {})
    return playlist


def load(path: str) -> dict:
    """Read and deserialize a playlist file."""
    return deserialize(Path(path).read_text())


def next_index(i: int, count: int) -> int:
    """Index after i, wrapping to the first entry."""
    return (i + 1) % count


def prev_index(i: int, count: int) -> int:
    """Index before i, wrapping to the last entry."""
    return (i - 1 + count) % count
