from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

HIGH_SCORE_KEY = "highScore"
CHAPTER_PROGRESS_KEY = "chapterProgress"

# mode id -> chapter that must be completed first
MODE_REQUIREMENTS = {"endless": 3, "hardcore": 4}


@dataclass
class ChapterProgress:
    id: int
    unlocked: bool = False
    completed: bool = False
    stars: int = 0
    best_score: int = 0
    best_focus: int = 0


class ProgressStore:
    """Stores the high score and chapter records. Persists to disk across app restarts.
    File: ~/.dontap/progress.json. Cleared only when user presses reset progress."""

    def __init__(self) -> None:
        self._file_path = Path.home() / ".dontap" / "progress.json"
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        self._high_score, self._chapters = self._load()

    def get_high_score(self) -> int:
        return self._high_score

    def set_high_score(self, score: int) -> int:
        """Keep the larger of the stored and the given score. Returns the stored value."""
        if score > self._high_score:
            self._high_score = int(score)
            self._save()
        return self._high_score

    def get_chapter_progress(self, chapter_id: int) -> ChapterProgress:
        # chapter 1 is always open
        return self._chapters.get(chapter_id, ChapterProgress(id=chapter_id, unlocked=chapter_id == 1))

    def all_chapter_progress(self) -> List[ChapterProgress]:
        return [self._chapters[key] for key in sorted(self._chapters)]

    def mark_chapter_complete(self, chapter_id: int, score: int, focus: int, stars: int) -> None:
        """Record a finished chapter, keeping best values, and unlock the next one."""
        current = self.get_chapter_progress(chapter_id)
        current.unlocked = True
        current.completed = True
        current.stars = max(current.stars, stars)
        current.best_score = max(current.best_score, score)
        current.best_focus = max(current.best_focus, focus)
        self._chapters[chapter_id] = current

        following = self.get_chapter_progress(chapter_id + 1)
        following.unlocked = True
        self._chapters[chapter_id + 1] = following
        self._save()

    def next_chapter_id(self, chapter_ids: List[int]) -> int:
        """First unlocked, unfinished chapter among *chapter_ids* (1 if none)."""
        for chapter_id in chapter_ids:
            progress = self.get_chapter_progress(chapter_id)
            if progress.unlocked and not progress.completed:
                return chapter_id
        return 1

    def is_mode_unlocked(self, mode: str) -> bool:
        required = MODE_REQUIREMENTS.get(mode)
        if required is None:
            return True
        return self.get_chapter_progress(required).completed

    def reset(self) -> None:
        """Clear all progress. Only called when user presses reset progress button."""
        self._high_score = 0
        self._chapters = {}
        self._save()

    def save(self) -> None:
        """Persist current state to disk (e.g. on app exit)."""
        self._save()

    def _load(self) -> Tuple[int, Dict[int, ChapterProgress]]:
        chapters: Dict[int, ChapterProgress] = {}
        if not self._file_path.exists():
            return 0, chapters
        try:
            payload = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not load progress from %s: %s", self._file_path, e)
            return 0, chapters
        if not isinstance(payload, dict):
            logger.warning("Ignoring malformed progress file %s", self._file_path)
            return 0, chapters

        try:
            high_score = int(payload.get(HIGH_SCORE_KEY, 0))
        except (TypeError, ValueError):
            high_score = 0
        for value in payload.get(CHAPTER_PROGRESS_KEY, []) or []:
            try:
                record = ChapterProgress(
                    id=int(value["id"]),
                    unlocked=bool(value.get("unlocked", False)),
                    completed=bool(value.get("completed", False)),
                    stars=int(value.get("stars", 0)),
                    best_score=int(value.get("best_score", 0)),
                    best_focus=int(value.get("best_focus", 0)),
                )
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping chapter record %r: %s", value, e)
                continue
            chapters[record.id] = record
        return high_score, chapters

    def _save(self) -> None:
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            HIGH_SCORE_KEY: self._high_score,
            CHAPTER_PROGRESS_KEY: [asdict(value) for value in self.all_chapter_progress()],
        }
        try:
            self._file_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not save progress to %s: %s", self._file_path, e)
