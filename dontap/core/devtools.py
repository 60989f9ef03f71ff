"""QA helpers: build levels by category or screen type, skipping difficulty gating."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, List, Optional

from dontap.core.levels import TemplateCatalog, build_level
from dontap.core.models import Level, Memory

DEFAULT_TEST_TIME = 4.0


@dataclass(frozen=True)
class ScreenTypeInfo:
    screen_type: str
    rules: List[str]
    count: int


def available_categories(catalog: TemplateCatalog) -> List[str]:
    """Categories with at least one template, in catalog order."""
    return catalog.categories()


def screen_types_for_category(catalog: TemplateCatalog, category: str) -> List[ScreenTypeInfo]:
    rules_by_screen: Dict[str, List[str]] = {}
    counts: Dict[str, int] = {}
    for template in catalog.by_category(category):
        rules = rules_by_screen.setdefault(template.screen_type, [])
        if template.rule not in rules:
            rules.append(template.rule)
        counts[template.screen_type] = counts.get(template.screen_type, 0) + 1
    return [
        ScreenTypeInfo(screen_type=screen_type, rules=rules, count=counts[screen_type])
        for screen_type, rules in rules_by_screen.items()
    ]


def templates_for_screen(catalog: TemplateCatalog, category: str, screen_type: str):
    return [t for t in catalog.by_category(category) if t.screen_type == screen_type]


def generate_test_level(
    catalog: TemplateCatalog,
    category: str,
    level_id: int = 1,
    memory: Optional[Memory] = None,
    rng: Optional[random.Random] = None,
) -> Level:
    """Random template from *category*; unknown categories fall back to ``basic``."""
    rng = rng or random.Random()
    templates = catalog.by_category(category)
    if not templates:
        if category == "basic":
            raise ValueError("Catalog has no 'basic' templates to fall back to")
        return generate_test_level(catalog, "basic", level_id, memory, rng)
    template = rng.choice(templates)
    time_limit = int((template.time_limit or DEFAULT_TEST_TIME) * 1000)
    return build_level(template, level_id, time_limit, memory or Memory(), rng)


def generate_test_level_by_screen(
    catalog: TemplateCatalog,
    category: str,
    screen_type: str,
    index: Optional[int] = None,
    level_id: int = 1,
    memory: Optional[Memory] = None,
    rng: Optional[random.Random] = None,
) -> Level:
    """Template *index* (wrapping) or a random one for a category/screen pair."""
    rng = rng or random.Random()
    templates = templates_for_screen(catalog, category, screen_type)
    if not templates:
        return generate_test_level(catalog, category, level_id, memory, rng)
    template = templates[index % len(templates)] if index is not None else rng.choice(templates)
    time_limit = int((template.time_limit or DEFAULT_TEST_TIME) * 1000)
    return build_level(template, level_id, time_limit, memory or Memory(), rng)
