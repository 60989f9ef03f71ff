from __future__ import annotations

import logging
import random
from dataclasses import replace
from typing import Callable, Hashable, List, Optional, Union

from dontap.core.chapters import Chapter, ChapterRepository, calculate_stars
from dontap.core.devtools import generate_test_level, generate_test_level_by_screen
from dontap.core.difficulty import PerformanceContext, should_rescue
from dontap.core.levels import SessionHistory, TemplateCatalog, generate_level
from dontap.core.models import (
    ACTION_TYPES,
    CHAPTER_COMPLETE,
    DEFAULT_LIVES,
    FAILED,
    GAME_OVER,
    HARDCORE_LIVES,
    LEVEL_COMPLETE,
    LEVEL_TRANSITION_MS,
    PLAYING,
    TAP,
    TIME_EXPIRED,
    TIMER_EXPIRED,
    TIMER_TICK_MS,
    Action,
    GameState,
    Level,
    Memory,
    ValidationResult,
)
from dontap.core.rules import validate_action
from dontap.core.scoring import calculate_combo, calculate_score
from dontap.core.stages import StageBook, generate_stage_level
from dontap.core.timers import ManualScheduler, Scheduler

logger = logging.getLogger(__name__)

MODE_CAMPAIGN = "campaign"
MODE_CHAPTER = "chapter"
MODE_ENDLESS = "endless"
MODE_HARDCORE = "hardcore"
MODE_TEST = "test"

StateListener = Callable[[GameState], None]

# Memory fields a level writes when it starts
REMEMBERED_FIELDS = ("number", "number_history", "icon", "icon_history", "color_history")


class GameSession:
    """Runs one play session: level starts, countdown, validation, transitions.

    All state changes go through :meth:`_commit`, which swaps in a new
    :class:`GameState` snapshot and notifies subscribers. Exactly one
    countdown and at most one pending transition exist at any time; both
    are cancelled before a level starts and when the session is reset.

    The progress store is optional. Without one, the high score only lives
    as long as the session.
    """

    def __init__(
        self,
        progress_store=None,
        scheduler: Optional[Scheduler] = None,
        catalog: Optional[TemplateCatalog] = None,
        stages: Optional[StageBook] = None,
        chapters: Optional[ChapterRepository] = None,
        rng: Optional[random.Random] = None,
        tick_ms: int = TIMER_TICK_MS,
        transition_ms: int = LEVEL_TRANSITION_MS,
    ) -> None:
        self._progress_store = progress_store
        self._scheduler = scheduler or ManualScheduler()
        self._catalog = catalog or TemplateCatalog()
        self._stages = stages or StageBook()
        self._chapters = chapters or ChapterRepository()
        self._rng = rng or random.Random()
        self._tick_ms = tick_ms
        self._transition_ms = transition_ms

        self._state = GameState()
        self._level: Optional[Level] = None
        self._memory_before_level: Optional[Memory] = None
        self._history = SessionHistory()
        self._listeners: List[StateListener] = []
        self._countdown: Optional[Hashable] = None
        self._transition: Optional[Hashable] = None
        self._last_reason: Optional[str] = None

        self._mode: Optional[str] = None
        self._chapter: Optional[Chapter] = None
        self._test_category: Optional[str] = None
        self._test_screen: Optional[str] = None
        self._test_index: Optional[int] = None
        self._attempts = 0
        self._passes = 0

        self._high_score = progress_store.get_high_score() if progress_store is not None else 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def level(self) -> Optional[Level]:
        return self._level

    @property
    def progress(self) -> float:
        """Fraction of the countdown left, for the timer ring."""
        if self._level is None or self._level.time_limit <= 0:
            return 1.0
        return max(0.0, self._state.time_remaining / self._level.time_limit)

    @property
    def high_score(self) -> int:
        return self._high_score

    @property
    def mode(self) -> Optional[str]:
        return self._mode

    @property
    def chapter(self) -> Optional[Chapter]:
        return self._chapter

    @property
    def history(self) -> SessionHistory:
        return self._history

    @property
    def last_fail_reason(self) -> Optional[str]:
        return self._last_reason

    def stage_name(self) -> Optional[str]:
        if self._mode != MODE_CAMPAIGN:
            return None
        return self._stages.stage_name(self._state.current_level)

    def subscribe(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Session starts
    # ------------------------------------------------------------------

    def start_game(self) -> None:
        """Guided campaign: authored stages first, random levels afterwards."""
        self._start_run(MODE_CAMPAIGN)

    def start_chapter(self, chapter_id: int) -> None:
        try:
            chapter = self._chapters.get(chapter_id)
        except KeyError:
            raise ValueError(f"Unknown chapter: {chapter_id}") from None
        self._start_run(MODE_CHAPTER, chapter=chapter)

    def start_endless(self) -> None:
        self._start_run(MODE_ENDLESS)

    def start_hardcore(self) -> None:
        self._start_run(MODE_HARDCORE)

    def start_test_category(self, category: str) -> None:
        """QA: play random templates from *category*, ignoring difficulty."""
        self._start_run(MODE_TEST, test_category=category)

    def start_test_screen(self, category: str, screen_type: str, index: Optional[int] = None) -> None:
        """QA: play templates of one category/screen-type pair."""
        self._start_run(MODE_TEST, test_category=category, test_screen=screen_type, test_index=index)

    def retry_game(self) -> None:
        """Restart the current run from level 1 in the same mode."""
        if self._mode is None:
            self.start_game()
            return
        self._start_run(
            self._mode,
            chapter=self._chapter,
            test_category=self._test_category,
            test_screen=self._test_screen,
            test_index=self._test_index,
        )

    def continue_game(self) -> None:
        """Replay the failed level. The life was already paid when it failed."""
        if self._state.status != FAILED:
            logger.debug("continue_game ignored in status %s", self._state.status)
            return
        self._start_level(self._state.current_level)

    def reset_game(self) -> None:
        """Back to idle: no timers, no mode, no history."""
        self._cancel_timers()
        self._mode = None
        self._chapter = None
        self._test_category = None
        self._test_screen = None
        self._test_index = None
        self._history.clear()
        self._attempts = 0
        self._passes = 0
        self._last_reason = None
        self._level = None
        self._memory_before_level = None
        self._commit(GameState())

    # ------------------------------------------------------------------
    # Player input
    # ------------------------------------------------------------------

    def handle_tap(self) -> None:
        self.handle_action(TAP)

    def handle_action(self, action: Union[Action, str]) -> None:
        """Count and validate one action. Ignored unless a level is being played."""
        action = Action.coerce(action)
        if action.type not in ACTION_TYPES:
            logger.warning("Ignoring unknown action %r", action.type)
            return
        if self._state.status != PLAYING or self._level is None:
            logger.debug("Ignoring %s in status %s", action.type, self._state.status)
            return
        if action.type == TIMER_EXPIRED:
            self._cancel_countdown()
            self._resolve(action)
            return

        state = self._state
        tap_count = state.tap_count + 1 if action.type == TAP else state.tap_count
        memory = replace(state.memory, previous_action=action.type)
        self._commit(replace(state, tap_count=tap_count, memory=memory))
        self._resolve(action)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start_run(
        self,
        mode: str,
        chapter: Optional[Chapter] = None,
        test_category: Optional[str] = None,
        test_screen: Optional[str] = None,
        test_index: Optional[int] = None,
    ) -> None:
        self._cancel_timers()
        self._mode = mode
        self._chapter = chapter
        self._test_category = test_category
        self._test_screen = test_screen
        self._test_index = test_index
        self._history.clear()
        self._attempts = 0
        self._passes = 0
        self._last_reason = None
        self._level = None
        self._memory_before_level = None
        lives = HARDCORE_LIVES if mode == MODE_HARDCORE else DEFAULT_LIVES
        if chapter is not None:
            logger.info("Starting chapter %s (%s)", chapter.id, chapter.title)
        else:
            logger.info("Starting %s run", mode)
        self._commit(GameState(status=PLAYING, lives=lives))
        self._start_level(1)

    def _start_level(self, level_number: int) -> None:
        self._cancel_timers()
        state = self._state
        perf = PerformanceContext(
            combo=state.combo,
            recent_errors=self._history.recent_errors,
            chapter_id=self._chapter.id if self._chapter is not None else None,
        )
        level = self._generate(level_number, state.memory, perf, should_rescue(perf))
        self._level = level
        self._memory_before_level = state.memory
        self._history.record_level(level)
        self._last_reason = None
        self._commit(
            replace(
                state,
                status=PLAYING,
                current_level=level_number,
                tap_count=0,
                time_remaining=level.time_limit,
                memory=self._fold_remembered(state.memory, level),
            )
        )
        self._countdown = self._scheduler.call_every(self._tick_ms, self._on_tick)

    def _generate(self, level_number: int, memory: Memory, perf: PerformanceContext, rescue: bool) -> Level:
        if self._mode == MODE_TEST:
            if self._test_screen is not None:
                return generate_test_level_by_screen(
                    self._catalog,
                    self._test_category,
                    self._test_screen,
                    self._test_index,
                    level_id=level_number,
                    memory=memory,
                    rng=self._rng,
                )
            return generate_test_level(
                self._catalog, self._test_category, level_id=level_number, memory=memory, rng=self._rng
            )
        if self._mode == MODE_CAMPAIGN:
            return generate_stage_level(
                level_number, self._stages, self._catalog, self._history, memory, perf, rescue, self._rng
            )
        effective = level_number
        if self._chapter is not None:
            effective += self._chapter.level_offset
        level = generate_level(effective, self._catalog, self._history, memory, perf, rescue, self._rng)
        return replace(level, id=level_number)

    @staticmethod
    def _fold_remembered(memory: Memory, level: Level) -> Memory:
        if level.rule == "remember_number" and level.params.remember_value is not None:
            return memory.remember_number(level.params.remember_value)
        if level.rule == "remember_icon" and level.params.remember_icon is not None:
            return memory.remember_icon(level.params.remember_icon)
        if level.rule == "avoid_color":
            return memory.remember_color(level.params.level_color)
        return memory

    def _unfold_remembered(self, memory: Memory) -> Memory:
        """Drop what the failed level stored so a retry doesn't leave two entries."""
        before = self._memory_before_level
        if before is None:
            return memory
        return replace(
            memory,
            **{name: getattr(before, name) for name in REMEMBERED_FIELDS},
        )

    def _on_tick(self) -> None:
        if self._state.status != PLAYING or self._level is None:
            self._cancel_countdown()
            return
        remaining = self._state.time_remaining - self._tick_ms
        if remaining > 0:
            self._commit(replace(self._state, time_remaining=remaining))
            return
        self._cancel_countdown()
        self._commit(replace(self._state, time_remaining=0))
        self._resolve(Action(TIMER_EXPIRED))

    def _resolve(self, action: Action) -> None:
        result = validate_action(self._level, self._state, action)
        if result.passed:
            self._complete_level(result, action)
        elif result.reason is not None:
            self._fail_level(result.reason)
        elif action.type == TIMER_EXPIRED:
            # an undecided rule at the deadline counts as a miss
            self._fail_level(TIME_EXPIRED)

    def _complete_level(self, result: ValidationResult, action: Action) -> None:
        self._cancel_timers()
        state = self._state
        level = self._level
        points = calculate_score(state.combo, state.time_remaining, level.time_limit)
        if action.type == TIMER_EXPIRED and state.tap_count == 0:
            correct_action = TIMER_EXPIRED
        else:
            correct_action = TAP
        memory = state.memory.merge(result.memory_update)
        memory = replace(
            memory,
            previous_rule=level.rule,
            previous_correct_action=correct_action,
            total_taps=memory.total_taps + state.tap_count,
            correct_taps=memory.correct_taps + state.tap_count,
        )
        self._history.record_result(True)
        self._attempts += 1
        self._passes += 1
        self._commit(
            replace(
                state,
                status=LEVEL_COMPLETE,
                score=state.score + points,
                combo=calculate_combo(state.combo, True),
                memory=memory,
            )
        )
        logger.debug("Level %s complete (+%s, combo %s)", state.current_level, points, self._state.combo)

        if self._chapter is not None and state.current_level >= self._chapter.screens:
            self._finish_chapter()
            return
        self._transition = self._scheduler.call_later(self._transition_ms, self._advance)

    def _advance(self) -> None:
        self._transition = None
        if self._state.status == LEVEL_COMPLETE:
            self._start_level(self._state.current_level + 1)

    def _fail_level(self, reason: str) -> None:
        self._cancel_timers()
        state = self._state
        self._last_reason = reason
        self._history.record_result(False)
        self._attempts += 1
        memory = replace(
            self._unfold_remembered(state.memory),
            error_count=state.memory.error_count + 1,
            total_taps=state.memory.total_taps + state.tap_count,
        )
        lives = state.lives - 1
        combo = calculate_combo(state.combo, False)
        logger.debug("Level %s failed: %s", state.current_level, reason)
        if lives <= 0:
            self._commit(replace(state, status=GAME_OVER, lives=0, combo=combo, memory=memory))
            self._record_high_score()
            logger.info("Game over at level %s with %s points", state.current_level, state.score)
            return
        self._commit(replace(state, status=FAILED, lives=lives, combo=combo, memory=memory))

    def _finish_chapter(self) -> None:
        chapter = self._chapter
        score = self._state.score
        focus = round(100 * self._passes / self._attempts) if self._attempts else 0
        stars = calculate_stars(score, chapter.screens)
        if self._progress_store is not None:
            self._progress_store.mark_chapter_complete(chapter.id, score, focus, stars)
        self._record_high_score()
        self._commit(replace(self._state, status=CHAPTER_COMPLETE))
        logger.info("Chapter %s complete: %s points, %s stars, focus %s%%", chapter.id, score, stars, focus)

    def _record_high_score(self) -> None:
        if self._state.score <= self._high_score:
            return
        self._high_score = self._state.score
        if self._progress_store is not None:
            self._high_score = self._progress_store.set_high_score(self._high_score)

    def _commit(self, state: GameState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def _cancel_countdown(self) -> None:
        self._scheduler.cancel(self._countdown)
        self._countdown = None

    def _cancel_timers(self) -> None:
        self._cancel_countdown()
        self._scheduler.cancel(self._transition)
        self._transition = None
