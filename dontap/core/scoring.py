"""Points and combo bookkeeping for completed levels."""

from __future__ import annotations

import math

BASE_POINTS = 100
COMBO_MULTIPLIER = 0.5
TIME_BONUS_MULTIPLIER = 50


def calculate_score(combo: int, time_remaining: float, time_limit: float) -> int:
    """Points for a completed level.

    ``BASE + floor(BASE * combo * 0.5) + floor(time_remaining / time_limit * 50)``.
    A non-positive ``time_limit`` earns no time bonus.
    """
    combo_bonus = math.floor(BASE_POINTS * combo * COMBO_MULTIPLIER)
    if time_limit > 0:
        ratio = max(0.0, min(1.0, time_remaining / time_limit))
        time_bonus = math.floor(ratio * TIME_BONUS_MULTIPLIER)
    else:
        time_bonus = 0
    return BASE_POINTS + combo_bonus + time_bonus


def calculate_combo(current_combo: int, passed: bool) -> int:
    """Consecutive-success streak: +1 on a pass, back to 0 on a failure."""
    if passed:
        return current_combo + 1
    return 0
