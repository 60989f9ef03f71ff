"""Typed parameter records for each rule, and instruction interpolation.

Every rule reads its values from one frozen record type. Templates describe
parameters as plain YAML mappings; :func:`build_params` turns such a mapping
into the record registered for the rule, so a level can never carry a
parameter bag its validator does not understand. Fields defaulting to ``None``
are resolved by the generators when a level is built.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional, Type

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleParams:
    """Base class for all parameter records."""

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NoParams(RuleParams):
    pass


@dataclass(frozen=True)
class CountParams(RuleParams):
    count: int = 1


@dataclass(frozen=True)
class MisleadingCounterParams(RuleParams):
    count: int = 3
    mislead_mode: str = "random"


@dataclass(frozen=True)
class CountWordsParams(RuleParams):
    word_count: int = 3


@dataclass(frozen=True)
class RememberNumberParams(RuleParams):
    remember_value: Optional[int] = None


@dataclass(frozen=True)
class RememberIconParams(RuleParams):
    remember_icon: Optional[str] = None


@dataclass(frozen=True)
class RecallIconParams(RuleParams):
    target_icon: Optional[str] = None


@dataclass(frozen=True)
class MathParams(RuleParams):
    expression: Optional[str] = None
    answer: Optional[int] = None
    displayed: Optional[int] = None


@dataclass(frozen=True)
class StroopParams(RuleParams):
    stroop_text: Optional[str] = None
    stroop_color: Optional[str] = None
    match_type: Optional[str] = None
    target: Optional[str] = None
    should_tap: bool = False


@dataclass(frozen=True)
class HoldParams(RuleParams):
    """Hold thresholds in seconds.

    ``fill`` needs the button held for ``hold_duration``; ``exact``, ``min``
    and ``max`` compare the held time against ``target_sec``.
    """

    hold_duration: float = 2.5
    hold_mode: str = "fill"
    target_sec: Optional[float] = None
    tolerance: float = 0.4


@dataclass(frozen=True)
class DelayedButtonParams(RuleParams):
    delay: float = 2.0


@dataclass(frozen=True)
class JumpscareParams(RuleParams):
    scare_delay: float = 1.5
    should_tap: bool = True


@dataclass(frozen=True)
class RecallDistantParams(RuleParams):
    steps_back: int = 1


@dataclass(frozen=True)
class CueParams(RuleParams):
    cue_icon: str = "star"


@dataclass(frozen=True)
class TapTargetParams(RuleParams):
    circle_count: int = 4
    target_mode: str = "biggest"
    target_index: Optional[int] = None


@dataclass(frozen=True)
class AvoidColorParams(RuleParams):
    circle_count: int = 4
    forbidden_color: str = "red"
    level_color: str = "blue"


@dataclass(frozen=True)
class MultiTouchParams(RuleParams):
    finger_count: int = 3


@dataclass(frozen=True)
class RotateParams(RuleParams):
    rotation_deg: float = 90.0


PARAMS_BY_RULE: Dict[str, Type[RuleParams]] = {
    "tap_once": NoParams,
    "dont_tap": NoParams,
    "double_tap": NoParams,
    "repeat_previous": NoParams,
    "recall_number": NoParams,
    "fake_crash": NoParams,
    "visual_glitch": NoParams,
    "fake_next": NoParams,
    "fake_delete": NoParams,
    "fake_panic": NoParams,
    "prewarning": NoParams,
    "tap_n_times": CountParams,
    "opposite": CountParams,
    "misleading_counter": MisleadingCounterParams,
    "count_words": CountWordsParams,
    "remember_number": RememberNumberParams,
    "remember_icon": RememberIconParams,
    "recall_icon": RecallIconParams,
    "math_tap": MathParams,
    "stroop": StroopParams,
    "tap_and_hold": HoldParams,
    "hold_timed": HoldParams,
    "delayed_button": DelayedButtonParams,
    "jumpscare": JumpscareParams,
    "recall_distant": RecallDistantParams,
    "dont_press_with_cue": CueParams,
    "tap_target": TapTargetParams,
    "avoid_color": AvoidColorParams,
    "multi_touch": MultiTouchParams,
    "rotate": RotateParams,
}


def _coerce(type_name: str, value: Any) -> Any:
    if value is None:
        if type_name.startswith("Optional["):
            return None
        raise ValueError("value may not be empty")
    base = type_name[len("Optional["):-1] if type_name.startswith("Optional[") else type_name
    if base == "bool":
        if not isinstance(value, bool):
            raise ValueError(f"expected a boolean, got {value!r}")
        return value
    if base == "int":
        if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) != value:
            raise ValueError(f"expected an integer, got {value!r}")
        return int(value)
    if base == "float":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"expected a number, got {value!r}")
        return float(value)
    if base == "str":
        return str(value)
    return value


def build_params(rule: str, raw: Optional[Mapping[str, Any]] = None) -> RuleParams:
    """Build the parameter record registered for *rule* from a plain mapping.

    Raises ``ValueError`` for unknown keys or values of the wrong type. Rules
    without a registered record get :class:`NoParams`.
    """
    params_cls = PARAMS_BY_RULE.get(rule, NoParams)
    raw = dict(raw or {})
    declared = {f.name: f for f in fields(params_cls)}
    unknown = sorted(set(raw) - set(declared))
    if unknown:
        raise ValueError(f"{rule}: unknown parameter(s) {', '.join(unknown)}")
    values: Dict[str, Any] = {}
    for name, value in raw.items():
        type_name = declared[name].type if isinstance(declared[name].type, str) else declared[name].type.__name__
        try:
            values[name] = _coerce(type_name, value)
        except ValueError as e:
            raise ValueError(f"{rule}.{name}: {e}") from e
    return params_cls(**values)


class _Placeholders(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_instruction(text: str, params: RuleParams) -> str:
    """Fill ``{name}`` placeholders in *text* from the fields of *params*.

    Substitution is a single pass over the template, so a value that itself
    looks like a placeholder is never expanded again. Unknown or unresolved
    placeholders stay as written.
    """
    values = _Placeholders(
        {key: value for key, value in params.as_dict().items() if value is not None}
    )
    try:
        return text.format_map(values)
    except (ValueError, IndexError, AttributeError) as e:
        logger.warning("Could not render instruction %r: %s", text, e)
        return text
