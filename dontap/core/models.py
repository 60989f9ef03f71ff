"""Data records shared by the engine: levels, memory, game state, validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from dontap.core.params import NoParams, RuleParams

logger = logging.getLogger(__name__)

TIMER_TICK_MS = 100
LEVEL_TRANSITION_MS = 800
DEFAULT_LIVES = 3
HARDCORE_LIVES = 1
HISTORY_LIMIT = 5

# Session status values
IDLE = "idle"
PLAYING = "playing"
FAILED = "failed"
LEVEL_COMPLETE = "level_complete"
GAME_OVER = "game_over"
CHAPTER_COMPLETE = "chapter_complete"

# Player / engine actions
TAP = "tap"
HOLD_START = "hold_start"
HOLD_END = "hold_end"
TAP_TARGET = "tap_target"
ROTATE = "rotate"
MULTI_TOUCH = "multi_touch"
TIMER_EXPIRED = "timer_expired"

ACTION_TYPES = frozenset(
    {TAP, HOLD_START, HOLD_END, TAP_TARGET, ROTATE, MULTI_TOUCH, TIMER_EXPIRED}
)

# Failure reasons
WRONG_COUNT = "wrong_count"
TAPPED_WHEN_SHOULDNT = "tapped_when_shouldnt"
TIME_EXPIRED = "time_expired"
TOO_SLOW = "too_slow"
WRONG_ANSWER = "wrong_answer"
WRONG_TARGET = "wrong_target"
WRONG_TIMING = "wrong_timing"
WRONG_INPUT = "wrong_input"


@dataclass(frozen=True)
class Level:
    """One timed challenge. Built once by a generator and never changed."""

    id: int
    instruction: str
    rule: str
    params: RuleParams = field(default_factory=NoParams)
    time_limit: int = 4000
    template_id: str = ""
    category: str = "basic"
    sub_category: Optional[str] = None
    screen_type: str = "standard"
    input_type: str = "tap"
    difficulty: int = 1
    requires_memory: bool = False
    requires_previous: bool = False
    requires_device: bool = False
    display: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}), hash=False)


@dataclass(frozen=True)
class Memory:
    """Cross-level memory. Replaced on every transition, never mutated."""

    number: Optional[int] = None
    icon: Optional[str] = None
    previous_action: Optional[str] = None
    previous_rule: Optional[str] = None
    previous_correct_action: Optional[str] = None
    number_history: Tuple[int, ...] = ()
    icon_history: Tuple[str, ...] = ()
    color_history: Tuple[str, ...] = ()
    previous_color: Optional[str] = None
    error_count: int = 0
    total_taps: int = 0
    correct_taps: int = 0

    def merge(self, update: Optional[Mapping[str, Any]]) -> "Memory":
        """Return a copy with *update* applied. Unknown keys are dropped."""
        if not update:
            return self
        known = {f.name for f in fields(self)}
        accepted: Dict[str, Any] = {}
        for key, value in update.items():
            if key not in known:
                logger.warning("Ignoring unknown memory key %r", key)
                continue
            if key.endswith("_history"):
                value = tuple(value)[-HISTORY_LIMIT:]
            accepted[key] = value
        return replace(self, **accepted)

    def remember_number(self, value: int) -> "Memory":
        history = (self.number_history + (value,))[-HISTORY_LIMIT:]
        return replace(self, number=value, number_history=history)

    def remember_icon(self, icon: str) -> "Memory":
        history = (self.icon_history + (icon,))[-HISTORY_LIMIT:]
        return replace(self, icon=icon, icon_history=history)

    def remember_color(self, color: str) -> "Memory":
        history = (self.color_history + (color,))[-HISTORY_LIMIT:]
        return replace(self, color_history=history)


@dataclass(frozen=True)
class GameState:
    """Snapshot of a session. The session swaps in a new one on every update."""

    status: str = IDLE
    current_level: int = 0
    score: int = 0
    lives: int = DEFAULT_LIVES
    tap_count: int = 0
    time_remaining: int = 0
    combo: int = 0
    memory: Memory = field(default_factory=Memory)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one validator call.

    ``passed=False`` without a ``reason`` means the rule has not decided yet
    (for example mid-way through a counting rule).
    """

    passed: bool
    reason: Optional[str] = None
    memory_update: Optional[Mapping[str, Any]] = None

    @classmethod
    def ok(cls, memory_update: Optional[Mapping[str, Any]] = None) -> "ValidationResult":
        return cls(passed=True, memory_update=memory_update)

    @classmethod
    def fail(cls, reason: str) -> "ValidationResult":
        return cls(passed=False, reason=reason)

    @classmethod
    def pending(cls) -> "ValidationResult":
        return cls(passed=False)

    @property
    def is_pending(self) -> bool:
        return not self.passed and self.reason is None


@dataclass(frozen=True)
class Action:
    """A player or engine action, with an optional payload.

    ``value`` carries the held duration (ms) for ``hold_end``, the tapped
    index or colour for ``tap_target``, the finger count for ``multi_touch``
    and the rotation in degrees for ``rotate``.
    """

    type: str
    value: Union[int, float, str, None] = None

    @classmethod
    def coerce(cls, action: Union["Action", str]) -> "Action":
        if isinstance(action, Action):
            return action
        return cls(type=str(action))
