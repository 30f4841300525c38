"""Effect dispatcher — resolves an effect name and applies it to a frame in place.

Playback is permissive: an unknown effect name leaves the frame untouched
unless the caller asks for strict resolution. Rolling timing stats are kept
per effect and slow effects are logged.
"""

import logging
import threading
import time
from collections import defaultdict, deque

import numpy as np

from effects import registry
from engine.buffer import PixelBuffer
from engine.container import EffectContainer

logger = logging.getLogger(__name__)

# Per-effect timing threshold (milliseconds)
EFFECT_WARN_MS = 100

# Rolling timing stats per effect
_timing_lock = threading.Lock()
_effect_timing: dict[str, deque] = defaultdict(lambda: deque(maxlen=100))


class UnknownEffectError(ValueError):
    """Raised by strict dispatch when an effect name is not registered."""

    def __init__(self, name):
        super().__init__(f"unknown effect: {name}")
        self.name = name


def record_timing(effect_id: str, elapsed_ms: float):
    """Record a timing sample for an effect."""
    with _timing_lock:
        _effect_timing[effect_id].append(elapsed_ms)


def get_effect_stats() -> dict[str, dict]:
    """Return p50/p95/max per effect."""
    result = {}
    with _timing_lock:
        snapshot = {eid: sorted(samples) for eid, samples in _effect_timing.items()}
    for eid, s in snapshot.items():
        result[eid] = {
            "p50": s[len(s) // 2] if s else 0,
            "p95": s[int(len(s) * 0.95)] if len(s) >= 20 else None,
            "max": max(s) if s else 0,
            "samples": len(s),
        }
    return result


def flush_timing():
    """Clear all timing stats."""
    with _timing_lock:
        _effect_timing.clear()


def _pixels_of(buffer) -> np.ndarray:
    if isinstance(buffer, PixelBuffer):
        return buffer.pixels
    return PixelBuffer(buffer).pixels


def apply(buffer, name, params: dict | None = None, *, strict: bool = False) -> None:
    """Apply effect `name` to `buffer` in place.

    Args:
        buffer: PixelBuffer or (H, W, 4) uint8 ndarray, mutated in place.
        name:   Effect id, e.g. "sobel" or "compoundEyes".
        params: Parameter overrides; missing keys use the effect defaults.
        strict: Raise UnknownEffectError instead of ignoring unknown names.

    Raises:
        UnknownEffectError: Only when strict is True and name is unknown.
    """
    pixels = _pixels_of(buffer)

    effect_info = registry.get(name)
    if effect_info is None:
        if strict:
            raise UnknownEffectError(name)
        logger.debug("Ignoring unknown effect %r", name)
        return

    effect_id = registry.resolve(name).value
    container = EffectContainer(effect_info["fn"], effect_id, effect_info["params"])

    t0 = time.monotonic()
    container.process(pixels, params)
    elapsed_ms = (time.monotonic() - t0) * 1000

    record_timing(effect_id, elapsed_ms)

    if elapsed_ms > EFFECT_WARN_MS:
        logger.warning(
            "Effect %s took %.0fms (>%dms warn threshold) on %dx%d frame",
            effect_id,
            elapsed_ms,
            EFFECT_WARN_MS,
            pixels.shape[1],
            pixels.shape[0],
        )
