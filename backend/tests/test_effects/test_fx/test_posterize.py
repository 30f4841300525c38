"""Tests for posterize — snap channels to 255/(levels-1) steps."""

import numpy as np
import pytest

from effects.fx.posterize import EFFECT_ID, apply

pytestmark = pytest.mark.smoke


def _frame(h=48, w=64):
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, (h, w, 4), dtype=np.uint8)


def test_red_square_survives_two_levels():
    frame = np.zeros((4, 4, 4), dtype=np.uint8)
    frame[:, :] = (255, 0, 0, 255)
    apply(frame, {"levels": 2})
    assert (frame == np.array([255, 0, 0, 255], dtype=np.uint8)).all()


def test_two_levels_is_black_and_white():
    frame = _frame()
    apply(frame, {"levels": 2})
    assert set(np.unique(frame[:, :, :3])) <= {0, 255}


def test_four_levels_values():
    frame = _frame()
    alpha = frame[:, :, 3].copy()
    apply(frame, {"levels": 4})
    assert set(np.unique(frame[:, :, :3])) <= {0, 85, 170, 255}
    np.testing.assert_array_equal(frame[:, :, 3], alpha)


@pytest.mark.parametrize("levels", [3, 7, 15])
def test_values_sit_on_step_grid(levels):
    frame = _frame()
    apply(frame, {"levels": levels})
    step = 255 / (levels - 1)
    rgb = frame[:, :, :3].astype(np.float64)
    assert np.abs(rgb - np.round(rgb / step) * step).max() <= 0.5


def test_rounds_half_up_on_level_index():
    frame = np.zeros((1, 2, 4), dtype=np.uint8)
    frame[0, 0] = (63, 64, 191, 255)
    frame[0, 1] = (192, 0, 255, 255)
    apply(frame, {"levels": 3})
    # step 127.5: 63 -> 0, 64 -> 127.5 -> 128, 191 -> 127.5 -> 128, 192 -> 255
    np.testing.assert_array_equal(frame[0, 0], [0, 128, 128, 255])
    np.testing.assert_array_equal(frame[0, 1], [255, 0, 255, 255])


def test_max_levels_is_identity():
    frame = _frame()
    original = frame.copy()
    apply(frame, {"levels": 256})
    np.testing.assert_array_equal(frame, original)


@pytest.mark.parametrize("levels", [1, 0, -5, 2.9])
def test_levels_clamped_and_floored_to_two(levels):
    a = _frame()
    b = _frame()
    apply(a, {"levels": levels})
    apply(b, {"levels": 2})
    np.testing.assert_array_equal(a, b)


def test_effect_id():
    assert EFFECT_ID == "posterize"
