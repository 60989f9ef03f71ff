from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from dontap.core.levels import DATA_DIR


@dataclass(frozen=True)
class Chapter:
    id: int
    title: str
    screens: int
    level_offset: int = 0
    mechanics: tuple = ()


def calculate_stars(score: int, screens: int) -> int:
    """1 to 3 stars from the average score per screen."""
    avg_per_screen = score / max(1, screens)
    if avg_per_screen >= 200:
        return 3
    if avg_per_screen >= 120:
        return 2
    return 1


class ChapterRepository:
    """Chapter definitions from ``data/chapters.yaml``, keyed by id."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or DATA_DIR / "chapters.yaml"
        self._chapters = self._load_chapters()

    def all(self) -> List[Chapter]:
        return list(self._chapters.values())

    def get(self, chapter_id: int) -> Chapter:
        return self._chapters[chapter_id]

    def _load_chapters(self) -> Dict[int, Chapter]:
        if not self._path.exists():
            raise FileNotFoundError(f"Chapters file not found: {self._path}")
        raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        if not raw or not isinstance(raw, dict) or not isinstance(raw.get("chapters"), list):
            raise ValueError(f"{self._path.name}: expected YAML with a 'chapters' list")

        chapters: Dict[int, Chapter] = {}
        for entry in raw["chapters"]:
            if not isinstance(entry, dict):
                raise ValueError(f"{self._path.name}: chapter entries must be mappings")
            chapter_id = entry.get("id")
            title = entry.get("title")
            screens = entry.get("screens")
            if not isinstance(chapter_id, int) or chapter_id < 1:
                raise ValueError(f"{self._path.name}: invalid chapter id {chapter_id!r}")
            if not title or not isinstance(title, str):
                raise ValueError(f"{self._path.name}: chapter {chapter_id} has no 'title'")
            if not isinstance(screens, int) or screens < 1:
                raise ValueError(f"{self._path.name}: chapter {chapter_id} needs a positive 'screens'")
            chapters[chapter_id] = Chapter(
                id=chapter_id,
                title=title.strip(),
                screens=screens,
                level_offset=int(entry.get("level_offset", 0)),
                mechanics=tuple(str(m) for m in entry.get("mechanics", []) or []),
            )
        if not chapters:
            raise ValueError(f"No chapters found in {self._path.name}")
        return dict(sorted(chapters.items()))
