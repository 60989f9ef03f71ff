"""Difficulty tiers and dynamic time adjustment."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

MIN_TIME_MS = 1400
MAX_EXTRA_MS = 500
CHAOS_FLOOR_MS = 1500

COMBO_STEP_MS = 40
COMBO_STREAK_MS = 80
COMBO_STREAK_SIZE = 5
RESCUE_BONUS_MS = 300
RESCUE_ERRORS = 2


@dataclass(frozen=True)
class DifficultyConfig:
    base_time: int
    allowed_categories: Tuple[str, ...]
    max_difficulty: int


@dataclass(frozen=True)
class PerformanceContext:
    """Recent performance used to nudge the time budget.

    ``recent_errors`` counts failures among the last five results;
    ``chapter_id`` is ``None`` outside chapter mode.
    """

    combo: int = 0
    recent_errors: int = 0
    chapter_id: Optional[int] = None


# (last level of tier, base time, categories added, max difficulty)
_TIERS = (
    (5, 4000, ("basic",), 1),
    (10, 3800, ("opposite", "habit"), 2),
    (15, 3500, ("memory", "time"), 2),
    (20, 3200, ("perception", "math"), 2),
    (30, 3000, ("conflict", "meta"), 3),
    (40, 2500, ("surprise",), 3),
)


def get_difficulty_config(level_number: int) -> DifficultyConfig:
    """Step function from level number to time budget and allowed content."""
    categories: Tuple[str, ...] = ()
    for last_level, base_time, added, max_difficulty in _TIERS:
        categories = categories + added
        if level_number <= last_level:
            return DifficultyConfig(base_time, categories, max_difficulty)
    # 40+ chaos mode
    base_time = max(CHAOS_FLOOR_MS, 2500 - (level_number - 40) * 25)
    return DifficultyConfig(base_time, categories, 3)


def chapter_intensity(chapter_id: Optional[int]) -> float:
    """0 for chapter 1, rising to 1 by chapter 4; always 1 outside chapters."""
    if chapter_id is None:
        return 1.0
    return min(1.0, (max(0, chapter_id - 1) / 3) ** 1.3)


def adjust_time_for_performance(
    base_time: int,
    perf: Optional[PerformanceContext] = None,
) -> int:
    """Shrink the budget for players on a streak, give struggling players more.

    The result always lies in ``[1400, base_time + 500]``; for base times
    under 900 ms the 1400 ms floor wins.
    """
    adjustment = 0
    intensity = 0.0
    if perf is not None:
        intensity = chapter_intensity(perf.chapter_id)
        if intensity > 0:
            adjustment -= perf.combo * COMBO_STEP_MS
            adjustment -= (perf.combo // COMBO_STREAK_SIZE) * COMBO_STREAK_MS
            if perf.recent_errors >= RESCUE_ERRORS:
                adjustment += RESCUE_BONUS_MS
    adjusted = base_time + adjustment * intensity
    adjusted = max(MIN_TIME_MS, min(base_time + MAX_EXTRA_MS, adjusted))
    if perf is not None:
        logger.debug(
            "base=%sms -> adjusted=%sms | combo=%s errors=%s/5 intensity=%.2f",
            base_time,
            int(round(adjusted)),
            perf.combo,
            perf.recent_errors,
            intensity,
        )
    return int(round(adjusted))


def should_rescue(perf: Optional[PerformanceContext]) -> bool:
    """True when the player has failed at least twice in the last five levels."""
    return perf is not None and perf.recent_errors >= RESCUE_ERRORS
