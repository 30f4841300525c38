"""Effect registry — central lookup for all registered effects."""

from enum import Enum
from typing import Callable

import numpy as np

EffectFn = Callable[[np.ndarray, dict], None]


class EffectKind(str, Enum):
    """Closed set of effect names. Values are the public, case-sensitive ids."""

    THRESHOLD = "threshold"
    POSTERIZE = "posterize"
    SOBEL = "sobel"
    PIXELATE = "pixelate"
    COMPOUND_EYES = "compoundEyes"
    VIDEO_GRID = "videoGrid"


_REGISTRY: dict[EffectKind, dict] = {}


def register(effect_id: str, fn: EffectFn, params: dict, name: str, category: str):
    """Register an effect. `effect_id` must be an EffectKind value."""
    kind = EffectKind(effect_id)
    _REGISTRY[kind] = {
        "fn": fn,
        "params": params,
        "name": name,
        "category": category,
    }


def resolve(effect_id) -> EffectKind | None:
    """Map a name to its EffectKind, or None for unknown names."""
    try:
        return EffectKind(effect_id)
    except (TypeError, ValueError):
        return None


def get(effect_id) -> dict | None:
    """Get effect info by ID."""
    kind = resolve(effect_id)
    if kind is None:
        return None
    return _REGISTRY.get(kind)


def defaults(effect_id) -> dict:
    """Default parameter set for an effect (empty for unknown ids)."""
    info = get(effect_id)
    if info is None:
        return {}
    return {pname: pspec["default"] for pname, pspec in info["params"].items()}


def list_all() -> list[dict]:
    """List all registered effects with metadata."""
    return [
        {
            "id": kind.value,
            "name": info["name"],
            "category": info["category"],
            "params": info["params"],
        }
        for kind, info in _REGISTRY.items()
    ]


def _auto_register():
    """Import and register all built-in effects."""
    from effects.fx import (
        threshold,
        posterize,
        sobel,
        pixelate,
        compound_eyes,
        video_grid,
    )

    for mod in [
        threshold,
        posterize,
        sobel,
        pixelate,
        compound_eyes,
        video_grid,
    ]:
        register(
            mod.EFFECT_ID, mod.apply, mod.PARAMS, mod.EFFECT_NAME, mod.EFFECT_CATEGORY
        )

    missing = set(EffectKind) - set(_REGISTRY)
    if missing:
        raise RuntimeError(
            f"effects without an implementation: {sorted(k.value for k in missing)}"
        )


_auto_register()
