"""Seeded determinism for effect reproducibility.

The Compound Eyes jitter draws from a 32-bit linear congruential generator.
State is an explicit integer threaded through each draw; there is no module
level generator, so two invocations with the same seed replay the same
sequence bit for bit.
"""

import math

LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223
LCG_MODULUS = 2**32


def coerce_seed(seed) -> int:
    """Coerce a numeric seed to an unsigned 32-bit LCG state. Never returns 0.

    Truncates toward zero and wraps modulo 2**32, so negative seeds wrap the
    same way an unsigned cast would. Non-finite or non-numeric seeds become 1.
    """
    try:
        value = float(seed)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(value):
        return 1
    state = math.trunc(value) % LCG_MODULUS
    return state or 1


def lcg_next(state: int) -> tuple[int, float]:
    """Advance the generator one step. Returns (new_state, value in [0, 1))."""
    state = (LCG_MULTIPLIER * state + LCG_INCREMENT) % LCG_MODULUS
    return state, state / LCG_MODULUS


def lcg_skip(state: int, steps: int) -> int:
    """Advance the generator `steps` draws at once, in O(log steps).

    Composes the affine step x -> a*x + c with itself by repeated squaring,
    so the result equals `steps` calls to lcg_next.
    """
    mult, inc = 1, 0
    step_mult, step_inc = LCG_MULTIPLIER, LCG_INCREMENT
    while steps > 0:
        if steps & 1:
            mult = (mult * step_mult) % LCG_MODULUS
            inc = (inc * step_mult + step_inc) % LCG_MODULUS
        step_inc = ((step_mult + 1) * step_inc) % LCG_MODULUS
        step_mult = (step_mult * step_mult) % LCG_MODULUS
        steps >>= 1
    return (mult * state + inc) % LCG_MODULUS


def lcg_sequence(seed, count: int) -> list[float]:
    """Draw `count` values from a fresh generator seeded with `seed`."""
    state = coerce_seed(seed)
    values = []
    for _ in range(count):
        state, value = lcg_next(state)
        values.append(value)
    return values
