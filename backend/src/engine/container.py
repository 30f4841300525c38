"""Effect container — merges parameters and contains effect failures."""

import logging
import math
import numbers

import numpy as np
import sentry_sdk

logger = logging.getLogger(__name__)


def _capture_with_context(e: Exception, effect_id: str, extra: dict):
    """Capture exception to Sentry with effect-level context and fingerprint dedup."""
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("effect_id", effect_id)
        scope.fingerprint = ["effect-crash", effect_id, type(e).__name__]
        scope.set_context("effect", extra)
        sentry_sdk.capture_exception(e, scope=scope)


def _is_usable_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return math.isfinite(value)


def merge_params(spec: dict, params: dict | None) -> dict:
    """Overlay caller params on the schema defaults. Caller wins per key.

    NaN/Inf and non-numeric values are dropped so the default applies.
    The caller's dict is never modified.
    """
    merged = {pname: pspec["default"] for pname, pspec in spec.items()}
    for key, value in (params or {}).items():
        if not _is_usable_number(value):
            logger.debug("Dropping unusable param %s=%r", key, value)
            continue
        merged[key] = value
    return merged


class EffectContainer:
    """Wraps an effect's in-place apply() function.

    Pipeline: merge params → process. Effects compute into temporaries and
    write back in one assignment, so a failure leaves the frame as it was.
    """

    def __init__(self, effect_fn, effect_id: str, params_spec: dict):
        self.effect_fn = effect_fn
        self.effect_id = effect_id
        self.params_spec = params_spec
        self.last_error: Exception | None = None

    def process(self, frame: np.ndarray, params: dict | None) -> None:
        self.last_error = None

        effect_params = merge_params(self.params_spec, params)

        # Context for Sentry (keys only, no values)
        sentry_ctx = {
            "param_keys": list(effect_params.keys()),
            "frame_shape": list(frame.shape),
        }

        try:
            self.effect_fn(frame, effect_params)
        except Exception as e:
            self.last_error = e
            _capture_with_context(e, self.effect_id, sentry_ctx)
            logger.error(
                "Effect %s failed on %dx%d frame: %s",
                self.effect_id,
                frame.shape[1],
                frame.shape[0],
                type(e).__name__,
            )
            logger.debug("Effect %s exception detail: %s", self.effect_id, e)
