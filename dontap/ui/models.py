"""Data models used by the UI."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List

from dontap.core.chapters import Chapter
from dontap.core.levels import COLORS
from dontap.core.models import Level, Memory
from dontap.core.progress import ChapterProgress, ProgressStore

MODE_TITLES = {"endless": "Endless", "hardcore": "Hardcore"}


@dataclass
class ChapterCardState:
    """UI state for a single chapter card: unlock status, stars and selection."""

    chapter: Chapter
    unlocked: bool
    completed: bool
    stars: int = 0
    best_score: int = 0
    is_current: bool = False


@dataclass
class ModeCardState:
    mode: str
    title: str
    unlocked: bool


def build_chapter_cards(
    chapters: List[Chapter],
    progress_store: ProgressStore,
    unlock_all: bool = False,
) -> List[ChapterCardState]:
    """Card states for the chapter list; the next playable chapter is current."""
    current_id = progress_store.next_chapter_id([chapter.id for chapter in chapters])
    cards = []
    for chapter in chapters:
        progress: ChapterProgress = progress_store.get_chapter_progress(chapter.id)
        cards.append(
            ChapterCardState(
                chapter=chapter,
                unlocked=unlock_all or progress.unlocked,
                completed=progress.completed,
                stars=progress.stars,
                best_score=progress.best_score,
                is_current=chapter.id == current_id,
            )
        )
    return cards


def build_mode_cards(progress_store: ProgressStore, unlock_all: bool = False) -> List[ModeCardState]:
    return [
        ModeCardState(mode=mode, title=title, unlocked=unlock_all or progress_store.is_mode_unlocked(mode))
        for mode, title in MODE_TITLES.items()
    ]


def level_detail_text(level: Level) -> str:
    """Secondary text shown under the instruction, built from the level's display extras."""
    display = level.display
    if level.rule == "math_tap":
        return f"{level.params.expression} = {level.params.displayed}"
    if level.rule == "stroop":
        return f"Tap if the {level.params.match_type} is {level.params.target}"
    if "shown" in display:
        return str(display["shown"])
    if "displayed_instruction" in display:
        return str(display["displayed_instruction"])
    if "fake_instruction" in display:
        return str(display["fake_instruction"])
    if display.get("shift_texts"):
        return str(display["shift_texts"][0])
    return ""


def avoid_color_choices(level: Level, memory: Memory, rng: random.Random) -> List[str]:
    """Circle colors for an avoid-color level: the forbidden color once, the rest distinct."""
    forbidden = memory.previous_color or level.params.forbidden_color
    others = [color for color in COLORS if color != forbidden]
    count = max(2, min(level.params.circle_count, len(others) + 1))
    choices = rng.sample(others, count - 1) + [forbidden]
    rng.shuffle(choices)
    return choices
