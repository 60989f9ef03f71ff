from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import yaml

from dontap.core.difficulty import PerformanceContext, adjust_time_for_performance
from dontap.core.levels import (
    DATA_DIR,
    LevelTemplate,
    SessionHistory,
    TemplateCatalog,
    build_level,
    generate_level,
    parse_template,
)
from dontap.core.models import Level, Memory

logger = logging.getLogger(__name__)

DEFAULT_STAGE_TIME = 4.0
STAGE_CATEGORY = "stage"


@dataclass(frozen=True)
class Stage:
    name: str
    levels: List[LevelTemplate]


class StageBook:
    """The hand-authored campaign from ``data/stages.yaml``.

    Unlike the catalog, a broken stage file is an error: the campaign is a
    fixed sequence and silently dropping a level would shift everything after it.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or DATA_DIR / "stages.yaml"
        self._stages = self._load_stages()
        self._flat = [definition for stage in self._stages for definition in stage.levels]

    def all(self) -> List[Stage]:
        return list(self._stages)

    def total_levels(self) -> int:
        return len(self._flat)

    def level_def(self, level_number: int) -> Optional[LevelTemplate]:
        index = level_number - 1
        if index < 0 or index >= len(self._flat):
            return None
        return self._flat[index]

    def stage_name(self, level_number: int) -> Optional[str]:
        if level_number < 1:
            return None
        count = 0
        for stage in self._stages:
            count += len(stage.levels)
            if level_number <= count:
                return stage.name
        return None

    def _load_stages(self) -> List[Stage]:
        if not self._path.exists():
            raise FileNotFoundError(f"Stages file not found: {self._path}")
        raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        if not raw or not isinstance(raw, dict) or not isinstance(raw.get("stages"), list):
            raise ValueError(f"{self._path.name}: expected YAML with a 'stages' list")

        stages: List[Stage] = []
        for stage_index, entry in enumerate(raw["stages"], start=1):
            if not isinstance(entry, dict):
                raise ValueError(f"{self._path.name}: stage {stage_index} must be a mapping")
            name = entry.get("name")
            if not name or not isinstance(name, str):
                raise ValueError(f"{self._path.name}: stage {stage_index} has no 'name'")
            levels = entry.get("levels")
            if not isinstance(levels, list) or not levels:
                raise ValueError(f"{self._path.name}: stage '{name}' has no levels")
            definitions = []
            for level_index, level_raw in enumerate(levels, start=1):
                template_id = f"stage{stage_index}-{level_index}"
                if isinstance(level_raw, dict):
                    level_raw = {"id": template_id, "category": STAGE_CATEGORY, **level_raw}
                definitions.append(parse_template(level_raw, template_id))
            stages.append(Stage(name=name.strip(), levels=definitions))

        if not stages:
            raise ValueError(f"No stages found in {self._path.name}")
        return stages


def build_level_from_stage(
    definition: LevelTemplate,
    level_number: int,
    memory: Memory,
    perf: Optional[PerformanceContext] = None,
    rng: Optional[random.Random] = None,
) -> Level:
    base_time = int((definition.time_limit or DEFAULT_STAGE_TIME) * 1000)
    time_limit = adjust_time_for_performance(base_time, perf)
    return build_level(definition, level_number, time_limit, memory, rng or random.Random())


def generate_stage_level(
    level_number: int,
    stages: StageBook,
    catalog: TemplateCatalog,
    history: Optional[SessionHistory] = None,
    memory: Optional[Memory] = None,
    perf: Optional[PerformanceContext] = None,
    rescue: bool = False,
    rng: Optional[random.Random] = None,
) -> Level:
    """Campaign level for *level_number*, or a random one past the last stage.

    Stage content is authored, so *rescue* does not change which level is
    played here; the extra time comes from *perf*.
    """
    memory = memory or Memory()
    definition = stages.level_def(level_number)
    if definition is None:
        return generate_level(level_number, catalog, history, memory, perf, rescue, rng)
    logger.debug("Level %s: stage '%s'", level_number, stages.stage_name(level_number))
    return build_level_from_stage(definition, level_number, memory, perf, rng)
