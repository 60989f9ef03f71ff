"""Rule registry: one validator per rule id.

A validator is a pure function ``(level, state, action) -> ValidationResult``.
It sees ``state.tap_count`` with the current tap already counted and must not
touch anything outside its return value.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from dontap.core.models import (
    HOLD_END,
    MULTI_TOUCH,
    ROTATE,
    TAP,
    TAP_TARGET,
    TAPPED_WHEN_SHOULDNT,
    TIME_EXPIRED,
    TIMER_EXPIRED,
    TOO_SLOW,
    WRONG_ANSWER,
    WRONG_COUNT,
    WRONG_INPUT,
    WRONG_TARGET,
    WRONG_TIMING,
    Action,
    GameState,
    Level,
    ValidationResult,
)

logger = logging.getLogger(__name__)

Validator = Callable[[Level, GameState, Action], ValidationResult]

_RULES: Dict[str, Validator] = {}


def rule(*names: str) -> Callable[[Validator], Validator]:
    """Register the decorated function as the validator for *names*."""

    def register(fn: Validator) -> Validator:
        for name in names:
            _RULES[name] = fn
        return fn

    return register


def registered_rules() -> List[str]:
    return sorted(_RULES)


def get_validator(name: str) -> Optional[Validator]:
    return _RULES.get(name)


def validate_action(level: Level, state: GameState, action: Action) -> ValidationResult:
    """Run the validator for ``level.rule``.

    Unknown rules and validators that blow up on malformed parameters both
    degrade to an undecided failure instead of raising.
    """
    validator = _RULES.get(level.rule)
    if validator is None:
        logger.warning("No validator registered for rule %r", level.rule)
        return ValidationResult.pending()
    try:
        return validator(level, state, action)
    except (AttributeError, TypeError, ValueError, IndexError, KeyError):
        logger.exception("Validator %r failed on level %s", level.rule, level.id)
        return ValidationResult.pending()


# ---------------------------------------------------------------------------
# Shapes shared by several rules
# ---------------------------------------------------------------------------

def _count_taps(target: int, state: GameState, action: Action) -> ValidationResult:
    """Counting rules only resolve when the countdown ends."""
    if action.type != TIMER_EXPIRED:
        return ValidationResult.pending()
    if state.tap_count == target:
        return ValidationResult.ok()
    return ValidationResult.fail(WRONG_COUNT)


def _no_tap(action: Action) -> ValidationResult:
    if action.type == TAP:
        return ValidationResult.fail(TAPPED_WHEN_SHOULDNT)
    if action.type == TIMER_EXPIRED:
        return ValidationResult.ok()
    return ValidationResult.pending()


def _tap_now(state: GameState, action: Action) -> ValidationResult:
    """The first tap wins; running out of time loses."""
    if action.type == TAP:
        if state.tap_count == 1:
            return ValidationResult.ok()
        return ValidationResult.fail(WRONG_COUNT)
    if action.type == TIMER_EXPIRED:
        return ValidationResult.fail(TOO_SLOW)
    return ValidationResult.pending()


def _recall_count(target: Optional[int], state: GameState, action: Action) -> ValidationResult:
    if target is None:
        # nothing was remembered, so the only right answer is zero taps
        if action.type == TAP:
            return ValidationResult.fail(WRONG_ANSWER)
        return _no_tap(action)
    if action.type == TAP:
        if state.tap_count == target:
            return ValidationResult.ok()
        if state.tap_count > target:
            return ValidationResult.fail(WRONG_ANSWER)
        return ValidationResult.pending()
    if action.type == TIMER_EXPIRED:
        return ValidationResult.fail(TIME_EXPIRED)
    return ValidationResult.pending()


def _elapsed_ms(level: Level, state: GameState) -> int:
    return level.time_limit - state.time_remaining


# ---------------------------------------------------------------------------
# Basic
# ---------------------------------------------------------------------------

@rule("tap_once", "visual_glitch")
def tap_once(level: Level, state: GameState, action: Action) -> ValidationResult:
    return _count_taps(1, state, action)


@rule("double_tap")
def double_tap(level: Level, state: GameState, action: Action) -> ValidationResult:
    return _count_taps(2, state, action)


@rule("tap_n_times", "misleading_counter")
def tap_n_times(level: Level, state: GameState, action: Action) -> ValidationResult:
    return _count_taps(level.params.count, state, action)


@rule("count_words")
def count_words(level: Level, state: GameState, action: Action) -> ValidationResult:
    return _count_taps(level.params.word_count, state, action)


@rule("dont_tap", "fake_next", "fake_delete", "fake_panic", "prewarning")
def dont_tap(level: Level, state: GameState, action: Action) -> ValidationResult:
    return _no_tap(action)


@rule("opposite")
def opposite(level: Level, state: GameState, action: Action) -> ValidationResult:
    # count == 0: the screen says "don't tap", so tap exactly once
    if level.params.count == 0:
        return _tap_now(state, action)
    return _no_tap(action)


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------

@rule("remember_number", "remember_icon")
def remember(level: Level, state: GameState, action: Action) -> ValidationResult:
    return _no_tap(action)


@rule("recall_number")
def recall_number(level: Level, state: GameState, action: Action) -> ValidationResult:
    return _recall_count(state.memory.number, state, action)


@rule("recall_distant")
def recall_distant(level: Level, state: GameState, action: Action) -> ValidationResult:
    history = state.memory.number_history
    steps_back = level.params.steps_back
    target = history[-steps_back] if 0 < steps_back <= len(history) else None
    return _recall_count(target, state, action)


@rule("recall_icon")
def recall_icon(level: Level, state: GameState, action: Action) -> ValidationResult:
    is_match = level.params.target_icon == state.memory.icon
    if action.type == TAP:
        if is_match:
            return ValidationResult.ok()
        return ValidationResult.fail(WRONG_ANSWER)
    if action.type == TIMER_EXPIRED:
        if is_match:
            return ValidationResult.fail(TOO_SLOW)
        return ValidationResult.ok()
    return ValidationResult.pending()


@rule("dont_press_with_cue")
def dont_press_with_cue(level: Level, state: GameState, action: Action) -> ValidationResult:
    if level.params.cue_icon == state.memory.icon:
        return _no_tap(action)
    return _tap_now(state, action)


@rule("repeat_previous")
def repeat_previous(level: Level, state: GameState, action: Action) -> ValidationResult:
    if state.memory.previous_correct_action == TIMER_EXPIRED:
        return _no_tap(action)
    return _count_taps(1, state, action)


@rule("avoid_color")
def avoid_color(level: Level, state: GameState, action: Action) -> ValidationResult:
    forbidden = state.memory.previous_color or level.params.forbidden_color
    if action.type == TAP_TARGET:
        if action.value == forbidden:
            return ValidationResult.fail(WRONG_TARGET)
        return ValidationResult.ok({"previous_color": level.params.level_color})
    if action.type == TIMER_EXPIRED:
        return ValidationResult.fail(TOO_SLOW)
    return ValidationResult.pending()


# ---------------------------------------------------------------------------
# Math, perception, conflict
# ---------------------------------------------------------------------------

@rule("math_tap")
def math_tap(level: Level, state: GameState, action: Action) -> ValidationResult:
    # the displayed value is a decoy; only the real answer counts
    return _count_taps(level.params.answer, state, action)


@rule("stroop")
def stroop(level: Level, state: GameState, action: Action) -> ValidationResult:
    if level.params.should_tap:
        return _tap_now(state, action)
    return _no_tap(action)


@rule("tap_target")
def tap_target(level: Level, state: GameState, action: Action) -> ValidationResult:
    if action.type == TAP_TARGET:
        if action.value == level.params.target_index:
            return ValidationResult.ok()
        return ValidationResult.fail(WRONG_TARGET)
    if action.type == TIMER_EXPIRED:
        return ValidationResult.fail(TOO_SLOW)
    return ValidationResult.pending()


# ---------------------------------------------------------------------------
# Time and habit
# ---------------------------------------------------------------------------

def _hold_ok(params, held_sec: float) -> bool:
    target = params.target_sec if params.target_sec is not None else params.hold_duration
    if params.hold_mode == "exact":
        return abs(held_sec - target) <= params.tolerance
    if params.hold_mode == "min":
        return held_sec >= target
    if params.hold_mode == "max":
        return held_sec <= target
    return held_sec >= params.hold_duration


@rule("tap_and_hold", "hold_timed")
def hold(level: Level, state: GameState, action: Action) -> ValidationResult:
    if action.type == HOLD_END:
        held_sec = float(action.value or 0) / 1000.0
        if _hold_ok(level.params, held_sec):
            return ValidationResult.ok()
        return ValidationResult.fail(WRONG_TIMING)
    if action.type == TIMER_EXPIRED:
        return ValidationResult.fail(TOO_SLOW)
    return ValidationResult.pending()


@rule("delayed_button")
def delayed_button(level: Level, state: GameState, action: Action) -> ValidationResult:
    if action.type == TAP:
        if _elapsed_ms(level, state) >= level.params.delay * 1000:
            return ValidationResult.ok()
        return ValidationResult.fail(WRONG_TIMING)
    if action.type == TIMER_EXPIRED:
        return ValidationResult.fail(TOO_SLOW)
    return ValidationResult.pending()


# ---------------------------------------------------------------------------
# Surprise
# ---------------------------------------------------------------------------

@rule("fake_crash")
def fake_crash(level: Level, state: GameState, action: Action) -> ValidationResult:
    if action.type == TAP:
        return ValidationResult.ok()
    if action.type == TIMER_EXPIRED:
        return ValidationResult.fail(TOO_SLOW)
    return ValidationResult.pending()


@rule("jumpscare")
def jumpscare(level: Level, state: GameState, action: Action) -> ValidationResult:
    if level.params.should_tap:
        return _tap_now(state, action)
    return _no_tap(action)


# ---------------------------------------------------------------------------
# Device
# ---------------------------------------------------------------------------

@rule("multi_touch")
def multi_touch(level: Level, state: GameState, action: Action) -> ValidationResult:
    if action.type == MULTI_TOUCH:
        if int(action.value or 0) >= level.params.finger_count:
            return ValidationResult.ok()
        return ValidationResult.fail(WRONG_INPUT)
    if action.type == TIMER_EXPIRED:
        return ValidationResult.fail(TOO_SLOW)
    return ValidationResult.pending()


@rule("rotate")
def rotate(level: Level, state: GameState, action: Action) -> ValidationResult:
    if action.type == TAP:
        return ValidationResult.fail(WRONG_INPUT)
    if action.type == ROTATE:
        if abs(float(action.value or 0)) >= level.params.rotation_deg:
            return ValidationResult.ok()
        return ValidationResult.pending()
    if action.type == TIMER_EXPIRED:
        return ValidationResult.fail(TOO_SLOW)
    return ValidationResult.pending()
