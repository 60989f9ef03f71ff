"""Tests for dontap.core.progress – high score and chapter persistence."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from dontap.core.progress import ChapterProgress, ProgressStore


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def progress_file(tmp_path: Path) -> Path:
    return tmp_path / "progress.json"


@pytest.fixture()
def store(progress_file: Path, monkeypatch: pytest.MonkeyPatch) -> ProgressStore:
    """ProgressStore backed by a temp file so tests don't touch ~/.dontap."""
    monkeypatch.setattr(
        ProgressStore,
        "__init__",
        lambda self: _init_store(self, progress_file),
    )
    return ProgressStore()


def _init_store(self: ProgressStore, file_path: Path) -> None:
    self._file_path = file_path
    self._file_path.parent.mkdir(parents=True, exist_ok=True)
    self._high_score, self._chapters = self._load()


# ---------------------------------------------------------------------------
# ChapterProgress dataclass
# ---------------------------------------------------------------------------

class TestChapterProgress:
    def test_defaults(self):
        cp = ChapterProgress(id=2)
        assert cp.unlocked is False
        assert cp.completed is False
        assert cp.stars == 0
        assert cp.best_score == 0
        assert cp.best_focus == 0


# ---------------------------------------------------------------------------
# ProgressStore – fresh state
# ---------------------------------------------------------------------------

class TestProgressStoreFresh:
    def test_high_score_zero(self, store: ProgressStore):
        assert store.get_high_score() == 0

    def test_chapter_one_unlocked(self, store: ProgressStore):
        assert store.get_chapter_progress(1).unlocked is True

    def test_later_chapters_locked(self, store: ProgressStore):
        assert store.get_chapter_progress(2).unlocked is False

    def test_next_chapter_is_first(self, store: ProgressStore):
        assert store.next_chapter_id([1, 2, 3, 4]) == 1

    def test_modes_locked(self, store: ProgressStore):
        assert store.is_mode_unlocked("endless") is False
        assert store.is_mode_unlocked("hardcore") is False

    def test_unknown_mode_unlocked(self, store: ProgressStore):
        assert store.is_mode_unlocked("campaign") is True


# ---------------------------------------------------------------------------
# High score
# ---------------------------------------------------------------------------

class TestHighScore:
    def test_set_higher(self, store: ProgressStore):
        assert store.set_high_score(500) == 500
        assert store.get_high_score() == 500

    def test_lower_ignored(self, store: ProgressStore):
        store.set_high_score(500)
        assert store.set_high_score(200) == 500

    def test_persisted_as_number(self, store: ProgressStore, progress_file: Path):
        store.set_high_score(750)
        payload = json.loads(progress_file.read_text(encoding="utf-8"))
        assert payload["highScore"] == 750


# ---------------------------------------------------------------------------
# Chapters
# ---------------------------------------------------------------------------

class TestChapterCompletion:
    def test_mark_complete(self, store: ProgressStore):
        store.mark_chapter_complete(1, score=1200, focus=90, stars=2)
        cp = store.get_chapter_progress(1)
        assert cp.completed is True
        assert cp.stars == 2
        assert cp.best_score == 1200
        assert cp.best_focus == 90

    def test_unlocks_next(self, store: ProgressStore):
        store.mark_chapter_complete(1, score=100, focus=50, stars=1)
        assert store.get_chapter_progress(2).unlocked is True
        assert store.next_chapter_id([1, 2, 3, 4]) == 2

    def test_keeps_best_values(self, store: ProgressStore):
        store.mark_chapter_complete(1, score=1200, focus=90, stars=3)
        store.mark_chapter_complete(1, score=800, focus=95, stars=1)
        cp = store.get_chapter_progress(1)
        assert cp.stars == 3
        assert cp.best_score == 1200
        assert cp.best_focus == 95

    def test_endless_after_chapter_three(self, store: ProgressStore):
        store.mark_chapter_complete(3, score=100, focus=50, stars=1)
        assert store.is_mode_unlocked("endless") is True
        assert store.is_mode_unlocked("hardcore") is False

    def test_all_done_falls_back_to_first(self, store: ProgressStore):
        for chapter_id in (1, 2):
            store.mark_chapter_complete(chapter_id, score=100, focus=50, stars=1)
        assert store.next_chapter_id([1, 2]) == 1


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class TestPersistence:
    def test_round_trip(self, store: ProgressStore, progress_file: Path, monkeypatch: pytest.MonkeyPatch):
        store.set_high_score(300)
        store.mark_chapter_complete(1, score=300, focus=100, stars=2)
        reloaded = ProgressStore()
        assert reloaded.get_high_score() == 300
        assert reloaded.get_chapter_progress(1).completed is True
        assert reloaded.get_chapter_progress(2).unlocked is True

    def test_chapter_records_are_a_list(self, store: ProgressStore, progress_file: Path):
        store.mark_chapter_complete(1, score=300, focus=100, stars=2)
        payload = json.loads(progress_file.read_text(encoding="utf-8"))
        assert isinstance(payload["chapterProgress"], list)
        assert payload["chapterProgress"][0]["id"] == 1

    def test_corrupt_file_uses_defaults(self, progress_file: Path, store: ProgressStore):
        progress_file.write_text("{not json", encoding="utf-8")
        reloaded = ProgressStore()
        assert reloaded.get_high_score() == 0

    def test_non_dict_payload(self, progress_file: Path, store: ProgressStore):
        progress_file.write_text("[1, 2, 3]", encoding="utf-8")
        assert ProgressStore().get_high_score() == 0

    def test_bad_chapter_record_skipped(self, progress_file: Path, store: ProgressStore):
        progress_file.write_text(
            json.dumps({"highScore": 40, "chapterProgress": [{"stars": 2}, {"id": 2, "completed": True}]}),
            encoding="utf-8",
        )
        reloaded = ProgressStore()
        assert reloaded.get_high_score() == 40
        assert reloaded.get_chapter_progress(2).completed is True
        assert [cp.id for cp in reloaded.all_chapter_progress()] == [2]

    def test_reset(self, store: ProgressStore):
        store.set_high_score(999)
        store.mark_chapter_complete(1, score=999, focus=100, stars=3)
        store.reset()
        assert store.get_high_score() == 0
        assert store.get_chapter_progress(1).completed is False
