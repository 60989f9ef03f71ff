from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from dontap.core.difficulty import (
    PerformanceContext,
    adjust_time_for_performance,
    get_difficulty_config,
)
from dontap.core.models import HISTORY_LIMIT, Level, Memory
from dontap.core.params import NoParams, RuleParams, build_params, render_instruction

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"

ICONS = ("bird", "star", "heart", "moon", "fire", "leaf")
COLORS = ("red", "green", "blue", "yellow", "purple", "orange")

# (a, op, b, answer)
MATH_PROBLEMS = (
    (2, "+", 2, 4),
    (3, "+", 1, 4),
    (5, "-", 2, 3),
    (3, "+", 2, 5),
    (2, "x", 3, 6),
    (4, "+", 1, 5),
    (6, "-", 3, 3),
    (2, "+", 1, 3),
    (3, "x", 3, 9),
    (7, "-", 4, 3),
)
DECOY_OFFSETS = (-2, -1, 1, 2)


@dataclass(frozen=True)
class LevelTemplate:
    """A catalog entry. ``time_limit`` is in seconds; ``None`` uses the tier's base time."""

    id: str
    instruction: str
    rule: str
    params: RuleParams = field(default_factory=NoParams)
    category: str = "basic"
    sub_category: Optional[str] = None
    screen_type: str = "standard"
    input_type: str = "tap"
    difficulty: int = 1
    time_limit: Optional[float] = None
    requires_memory: bool = False
    requires_previous: bool = False
    requires_device: bool = False
    display: Mapping[str, Any] = field(default_factory=dict)


FALLBACK_TEMPLATE = LevelTemplate(id="B01", instruction="Tap once", rule="tap_once")


def parse_template(raw: Any, template_id: str) -> LevelTemplate:
    """Build a template from a YAML mapping. Raises ``ValueError`` when malformed."""
    if not isinstance(raw, dict):
        raise ValueError(f"{template_id}: expected a mapping")
    rule = raw.get("rule")
    if not rule or not isinstance(rule, str):
        raise ValueError(f"{template_id}: missing or invalid 'rule'")
    instruction = raw.get("instruction", "")
    if not isinstance(instruction, str):
        raise ValueError(f"{template_id}: 'instruction' must be text")
    difficulty = raw.get("difficulty", 1)
    if difficulty not in (1, 2, 3):
        raise ValueError(f"{template_id}: difficulty must be 1, 2 or 3")
    time_limit = raw.get("time_limit")
    if time_limit is not None and (not isinstance(time_limit, (int, float)) or time_limit <= 0):
        raise ValueError(f"{template_id}: 'time_limit' must be a positive number of seconds")
    params = raw.get("params") or {}
    if not isinstance(params, dict):
        raise ValueError(f"{template_id}: 'params' must be a mapping")
    display = raw.get("display") or {}
    if not isinstance(display, dict):
        raise ValueError(f"{template_id}: 'display' must be a mapping")
    return LevelTemplate(
        id=str(raw.get("id", template_id)),
        instruction=instruction,
        rule=rule,
        params=build_params(rule, params),
        category=str(raw.get("category", "basic")),
        sub_category=raw.get("sub_category"),
        screen_type=str(raw.get("screen_type", "standard")),
        input_type=str(raw.get("input_type", "tap")),
        difficulty=difficulty,
        time_limit=float(time_limit) if time_limit is not None else None,
        requires_memory=bool(raw.get("requires_memory", False)),
        requires_previous=bool(raw.get("requires_previous", False)),
        requires_device=bool(raw.get("requires_device", False)),
        display=display,
    )


class TemplateCatalog:
    """Level templates loaded from ``data/catalog.yaml``.

    Entries that fail validation are skipped with a warning so one bad
    template cannot take the whole game down; a catalog with no usable
    entries is an error.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or DATA_DIR / "catalog.yaml"
        self._templates = self._load_templates()

    def all(self) -> List[LevelTemplate]:
        return list(self._templates)

    def get(self, template_id: str) -> LevelTemplate:
        for template in self._templates:
            if template.id == template_id:
                return template
        raise KeyError(template_id)

    def by_category(self, category: str) -> List[LevelTemplate]:
        return [t for t in self._templates if t.category == category]

    def categories(self) -> List[str]:
        seen: Dict[str, None] = {}
        for template in self._templates:
            seen.setdefault(template.category, None)
        return list(seen)

    def _load_templates(self) -> List[LevelTemplate]:
        if not self._path.exists():
            raise FileNotFoundError(f"Template catalog not found: {self._path}")
        raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        if not raw or not isinstance(raw, dict) or not isinstance(raw.get("templates"), list):
            raise ValueError(f"{self._path.name}: expected YAML with a 'templates' list")

        templates: List[LevelTemplate] = []
        for index, entry in enumerate(raw["templates"]):
            template_id = entry.get("id", f"#{index}") if isinstance(entry, dict) else f"#{index}"
            try:
                templates.append(parse_template(entry, str(template_id)))
            except ValueError as e:
                logger.warning("Skipping template in %s: %s", self._path.name, e)

        if not templates:
            raise ValueError(f"No usable templates found in {self._path.name}")
        return templates


# ---------------------------------------------------------------------------
# Session history (anti-repeat and rescue input)
# ---------------------------------------------------------------------------

@dataclass
class SessionHistory:
    """Rolling windows of recent rules, categories and results for one session."""

    recent_rules: List[str] = field(default_factory=list)
    recent_categories: List[str] = field(default_factory=list)
    recent_results: List[bool] = field(default_factory=list)

    def record_level(self, level: Level) -> None:
        self.recent_rules = (self.recent_rules + [level.rule])[-HISTORY_LIMIT:]
        self.recent_categories = (self.recent_categories + [level.category])[-HISTORY_LIMIT:]

    def record_result(self, passed: bool) -> None:
        self.recent_results = (self.recent_results + [passed])[-HISTORY_LIMIT:]

    @property
    def recent_errors(self) -> int:
        return sum(1 for passed in self.recent_results if not passed)

    def clear(self) -> None:
        self.recent_rules = []
        self.recent_categories = []
        self.recent_results = []


# ---------------------------------------------------------------------------
# Dynamic parameters
# ---------------------------------------------------------------------------

def resolve_params(
    rule: str,
    params: RuleParams,
    memory: Memory,
    rng: random.Random,
) -> RuleParams:
    """Fill the fields a template leaves open with concrete random values."""
    if rule == "remember_number" and params.remember_value is None:
        return replace(params, remember_value=rng.randint(2, 7))

    if rule == "remember_icon" and params.remember_icon is None:
        return replace(params, remember_icon=rng.choice(ICONS))

    if rule == "recall_icon" and params.target_icon is None:
        # 60% of the time show the remembered icon, otherwise a decoy
        if rng.random() > 0.4:
            target = memory.icon or "star"
        else:
            target = rng.choice([icon for icon in ICONS if icon != memory.icon])
        return replace(params, target_icon=target)

    if rule == "stroop" and params.stroop_text is None:
        text_color = rng.choice(COLORS)
        ink_color = rng.choice([c for c in COLORS if c != text_color])
        match_type = rng.choice(("color", "word"))
        target = rng.choice(COLORS)
        should_tap = (ink_color if match_type == "color" else text_color) == target
        return replace(
            params,
            stroop_text=text_color,
            stroop_color=ink_color,
            match_type=match_type,
            target=target,
            should_tap=should_tap,
        )

    if rule == "math_tap" and params.expression is None:
        a, op, b, answer = rng.choice(MATH_PROBLEMS)
        # the displayed value is deliberately wrong
        return replace(
            params,
            expression=f"{a}{op}{b}",
            answer=answer,
            displayed=answer + rng.choice(DECOY_OFFSETS),
        )

    if rule == "tap_target" and params.target_index is None:
        return replace(params, target_index=rng.randrange(max(1, params.circle_count)))

    return params


def build_level(
    template: LevelTemplate,
    level_id: int,
    time_limit: int,
    memory: Memory,
    rng: random.Random,
) -> Level:
    """Turn a template into a concrete level with resolved parameters."""
    params = resolve_params(template.rule, template.params, memory, rng)
    return Level(
        id=level_id,
        instruction=render_instruction(template.instruction, params),
        rule=template.rule,
        params=params,
        time_limit=time_limit,
        template_id=template.id,
        category=template.category,
        sub_category=template.sub_category,
        screen_type=template.screen_type,
        input_type=template.input_type,
        difficulty=template.difficulty,
        requires_memory=template.requires_memory,
        requires_previous=template.requires_previous,
        requires_device=template.requires_device,
        display=MappingProxyType(dict(template.display)),
    )


# ---------------------------------------------------------------------------
# Random generator
# ---------------------------------------------------------------------------

def _avoid_repeats(pool: Sequence[LevelTemplate], history: SessionHistory) -> List[LevelTemplate]:
    rules = history.recent_rules
    categories = history.recent_categories

    # Tier 1: not one of the last two rules, not the last category
    filtered = [
        t
        for t in pool
        if t.rule not in rules[-2:] and (not categories or t.category != categories[-1])
    ]
    if filtered:
        return filtered

    # Tier 2: not the last rule
    filtered = [t for t in pool if not rules or t.rule != rules[-1]]
    if filtered:
        return filtered

    # Tier 3: anything
    return list(pool)


def generate_level(
    level_number: int,
    catalog: TemplateCatalog,
    history: Optional[SessionHistory] = None,
    memory: Optional[Memory] = None,
    perf: Optional[PerformanceContext] = None,
    rescue: bool = False,
    rng: Optional[random.Random] = None,
) -> Level:
    """Draw a level for *level_number* from the catalog."""
    rng = rng or random.Random()
    history = history or SessionHistory()
    memory = memory or Memory()
    config = get_difficulty_config(level_number)

    pool = [
        t
        for t in catalog.all()
        if t.category in config.allowed_categories and t.difficulty <= config.max_difficulty
    ]
    if rescue:
        easy = [t for t in pool if t.difficulty == 1]
        if easy:
            pool = easy
    if not pool:
        logger.warning("No templates available for level %s, using fallback", level_number)
        pool = [FALLBACK_TEMPLATE]

    template = rng.choice(_avoid_repeats(pool, history))
    if template.time_limit:
        # authored limits cover delays and holds; streaks may not cut below them
        base_time = int(template.time_limit * 1000)
        time_limit = max(base_time, adjust_time_for_performance(base_time, perf))
    else:
        time_limit = adjust_time_for_performance(config.base_time, perf)
    logger.debug("Level %s: template %s (%s), %sms", level_number, template.id, template.rule, time_limit)
    return build_level(template, level_number, time_limit, memory, rng)
