"""Tests for dontap.core.levels, stages, chapters and devtools – content loading and generators."""

from __future__ import annotations

import random
from pathlib import Path

import pytest
import yaml

from dontap.core.chapters import ChapterRepository, calculate_stars
from dontap.core.devtools import (
    available_categories,
    generate_test_level,
    generate_test_level_by_screen,
    screen_types_for_category,
)
from dontap.core.difficulty import MIN_TIME_MS, PerformanceContext, get_difficulty_config
from dontap.core.levels import (
    COLORS,
    ICONS,
    LevelTemplate,
    SessionHistory,
    TemplateCatalog,
    build_level,
    generate_level,
    parse_template,
    resolve_params,
)
from dontap.core.models import Level, Memory
from dontap.core.params import CountParams, build_params
from dontap.core.rules import registered_rules
from dontap.core.stages import StageBook, generate_stage_level


def _write_yaml(path: Path, data: dict) -> Path:
    path.write_text(yaml.dump(data, allow_unicode=True, default_flow_style=False), encoding="utf-8")
    return path


def _template(rule: str, params=None, **kwargs) -> LevelTemplate:
    return LevelTemplate(id=kwargs.pop("id", rule), instruction=kwargs.pop("instruction", ""), rule=rule,
                         params=build_params(rule, params), **kwargs)


@pytest.fixture(scope="module")
def catalog() -> TemplateCatalog:
    return TemplateCatalog()


@pytest.fixture(scope="module")
def stages() -> StageBook:
    return StageBook()


# ---------------------------------------------------------------------------
# parse_template
# ---------------------------------------------------------------------------

class TestParseTemplate:
    def test_minimal(self):
        template = parse_template({"instruction": "Tap once", "rule": "tap_once"}, "X1")
        assert template.id == "X1"
        assert template.category == "basic"
        assert template.difficulty == 1
        assert template.time_limit is None

    def test_params_are_typed(self):
        template = parse_template({"rule": "tap_n_times", "params": {"count": 3}}, "X2")
        assert template.params == CountParams(count=3)

    def test_time_limit_seconds(self):
        template = parse_template({"rule": "tap_once", "time_limit": 5}, "X3")
        assert template.time_limit == 5.0

    @pytest.mark.parametrize(
        "raw",
        [
            "not a mapping",
            {"instruction": "no rule"},
            {"rule": "tap_once", "difficulty": 4},
            {"rule": "tap_once", "time_limit": -1},
            {"rule": "tap_once", "params": [1, 2]},
            {"rule": "tap_n_times", "params": {"count": "lots"}},
            {"rule": "tap_once", "instruction": 5},
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(ValueError):
            parse_template(raw, "bad")


# ---------------------------------------------------------------------------
# TemplateCatalog
# ---------------------------------------------------------------------------

class TestTemplateCatalog:
    def test_bundled_catalog_loads(self, catalog: TemplateCatalog):
        assert len(catalog.all()) > 50

    def test_every_rule_has_a_validator(self, catalog: TemplateCatalog):
        rules = set(registered_rules())
        assert {t.rule for t in catalog.all()} <= rules

    def test_template_ids_unique(self, catalog: TemplateCatalog):
        ids = [t.id for t in catalog.all()]
        assert len(ids) == len(set(ids))

    def test_get(self, catalog: TemplateCatalog):
        assert catalog.get("B01").instruction == "Tap once"
        with pytest.raises(KeyError):
            catalog.get("nope")

    def test_every_tier_has_templates(self, catalog: TemplateCatalog):
        for level_number in (1, 6, 11, 16, 21, 31, 45):
            config = get_difficulty_config(level_number)
            pool = [
                t for t in catalog.all()
                if t.category in config.allowed_categories and t.difficulty <= config.max_difficulty
            ]
            assert pool, level_number

    def test_skips_bad_entries(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "catalog.yaml", {
            "templates": [
                {"id": "A", "instruction": "Tap once", "rule": "tap_once"},
                {"id": "B", "rule": "tap_n_times", "params": {"bogus": 1}},
            ]
        })
        catalog = TemplateCatalog(path)
        assert [t.id for t in catalog.all()] == ["A"]

    def test_empty_catalog_raises(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "catalog.yaml", {"templates": [{"id": "B"}]})
        with pytest.raises(ValueError, match="No usable templates"):
            TemplateCatalog(path)

    def test_wrong_shape_raises(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "catalog.yaml", {"levels": []})
        with pytest.raises(ValueError):
            TemplateCatalog(path)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            TemplateCatalog(tmp_path / "missing.yaml")


# ---------------------------------------------------------------------------
# SessionHistory
# ---------------------------------------------------------------------------

class TestSessionHistory:
    def test_windows_bounded(self):
        history = SessionHistory()
        for i in range(8):
            history.record_level(Level(id=i, instruction="", rule=f"r{i}", category=f"c{i}"))
            history.record_result(i % 2 == 0)
        assert history.recent_rules == ["r3", "r4", "r5", "r6", "r7"]
        assert history.recent_categories == ["c3", "c4", "c5", "c6", "c7"]
        assert len(history.recent_results) == 5

    def test_recent_errors(self):
        history = SessionHistory()
        for passed in (True, False, False, True):
            history.record_result(passed)
        assert history.recent_errors == 2

    def test_clear(self):
        history = SessionHistory(recent_rules=["a"], recent_categories=["b"], recent_results=[False])
        history.clear()
        assert history == SessionHistory()

    def test_sessions_do_not_share_state(self):
        a, b = SessionHistory(), SessionHistory()
        a.record_result(False)
        assert b.recent_results == []


# ---------------------------------------------------------------------------
# resolve_params / build_level
# ---------------------------------------------------------------------------

class TestResolveParams:
    def test_remember_number_range(self):
        rng = random.Random(1)
        values = {
            resolve_params("remember_number", build_params("remember_number"), Memory(), rng).remember_value
            for _ in range(200)
        }
        assert values == {2, 3, 4, 5, 6, 7}

    def test_remember_icon(self):
        params = resolve_params("remember_icon", build_params("remember_icon"), Memory(), random.Random(2))
        assert params.remember_icon in ICONS

    def test_fixed_value_kept(self):
        params = build_params("remember_number", {"remember_value": 4})
        assert resolve_params("remember_number", params, Memory(), random.Random(3)).remember_value == 4

    def test_recall_icon_picks_memory_or_decoy(self):
        rng = random.Random(4)
        targets = [
            resolve_params("recall_icon", build_params("recall_icon"), Memory(icon="moon"), rng).target_icon
            for _ in range(100)
        ]
        assert "moon" in targets
        assert any(t != "moon" for t in targets)
        assert set(targets) <= set(ICONS)

    def test_stroop_should_tap_is_consistent(self):
        rng = random.Random(5)
        for _ in range(100):
            p = resolve_params("stroop", build_params("stroop"), Memory(), rng)
            assert p.stroop_text != p.stroop_color
            assert p.target in COLORS
            shown = p.stroop_color if p.match_type == "color" else p.stroop_text
            assert p.should_tap == (shown == p.target)

    def test_math_decoy_is_wrong(self):
        rng = random.Random(6)
        for _ in range(100):
            p = resolve_params("math_tap", build_params("math_tap"), Memory(), rng)
            assert p.displayed != p.answer
            assert p.expression

    def test_tap_target_index_in_range(self):
        rng = random.Random(7)
        params = build_params("tap_target", {"circle_count": 4})
        for _ in range(50):
            assert 0 <= resolve_params("tap_target", params, Memory(), rng).target_index < 4

    def test_other_rules_untouched(self):
        params = CountParams(count=3)
        assert resolve_params("tap_n_times", params, Memory(), random.Random(8)) is params


class TestBuildLevel:
    def test_instruction_is_rendered(self):
        template = _template("remember_number", instruction="Remember: {remember_value}")
        level = build_level(template, 3, 4000, Memory(), random.Random(9))
        assert level.instruction == f"Remember: {level.params.remember_value}"
        assert level.id == 3
        assert level.time_limit == 4000
        assert level.template_id == "remember_number"

    def test_level_is_frozen(self):
        level = build_level(_template("tap_once"), 1, 4000, Memory(), random.Random(10))
        with pytest.raises(AttributeError):
            level.rule = "dont_tap"  # type: ignore[misc]

    def test_display_is_read_only(self):
        template = parse_template({"rule": "opposite", "display": {"shown": "Don't tap!"}}, "O9")
        level = build_level(template, 1, 4000, Memory(), random.Random(10))
        assert level.display == {"shown": "Don't tap!"}
        with pytest.raises(TypeError):
            level.display["shown"] = "Tap once"  # type: ignore[index]
        assert isinstance(hash(level), int)


# ---------------------------------------------------------------------------
# Shipped catalog timing
# ---------------------------------------------------------------------------

def _required_ms(template) -> float:
    """Shortest time a player needs to satisfy a delay or hold template."""
    params = template.params
    if template.rule == "delayed_button":
        return params.delay * 1000
    target = params.target_sec if params.target_sec is not None else params.hold_duration
    if params.hold_mode == "exact":
        return (target - params.tolerance) * 1000
    if params.hold_mode == "min":
        return target * 1000
    if params.hold_mode == "max":
        return 0.0
    return params.hold_duration * 1000


class TestCatalogTiming:
    TIMED_RULES = ("delayed_button", "tap_and_hold", "hold_timed")

    def test_delays_and_holds_fit_their_time(self, catalog: TemplateCatalog):
        timed = [t for t in catalog.all() if t.rule in self.TIMED_RULES]
        assert timed
        for template in timed:
            if template.time_limit is None:
                budget = MIN_TIME_MS
            else:
                budget = template.time_limit * 1000
            assert _required_ms(template) < budget, template.id

    def test_late_streak_keeps_delays_winnable(self, catalog: TemplateCatalog):
        perf = PerformanceContext(combo=60)
        for template in catalog.all():
            if template.rule not in self.TIMED_RULES:
                continue
            level = generate_level(90, _SingleTemplate(template), perf=perf, rng=random.Random(0))
            assert level.template_id == template.id
            assert _required_ms(template) < level.time_limit, template.id


class _SingleTemplate:
    def __init__(self, template) -> None:
        self._template = template

    def all(self):
        return [self._template]


# ---------------------------------------------------------------------------
# generate_level
# ---------------------------------------------------------------------------

class TestGenerateLevel:
    def test_respects_allowed_categories(self, catalog: TemplateCatalog):
        rng = random.Random(11)
        history = SessionHistory()
        for _ in range(50):
            level = generate_level(3, catalog, history, rng=rng)
            assert level.category == "basic"
            assert level.difficulty == 1
            history.record_level(level)

    def test_respects_max_difficulty(self, catalog: TemplateCatalog):
        rng = random.Random(12)
        for _ in range(50):
            level = generate_level(12, catalog, rng=rng)
            assert level.difficulty <= 2
            assert level.category in get_difficulty_config(12).allowed_categories

    def test_time_from_tier(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "c.yaml", {"templates": [{"id": "A", "instruction": "Tap once", "rule": "tap_once"}]})
        level = generate_level(1, TemplateCatalog(path), rng=random.Random(13))
        assert level.time_limit == 4000

    def test_template_time_override(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "c.yaml", {"templates": [{"id": "A", "rule": "tap_once", "time_limit": 6.0}]})
        level = generate_level(1, TemplateCatalog(path), rng=random.Random(14))
        assert level.time_limit == 6000

    def test_time_adjusted_for_performance(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "c.yaml", {"templates": [{"id": "A", "rule": "tap_once"}]})
        level = generate_level(1, TemplateCatalog(path), perf=PerformanceContext(combo=5), rng=random.Random(15))
        assert level.time_limit == 3720

    def test_template_time_not_cut_by_streak(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "c.yaml", {"templates": [
            {"id": "H", "rule": "delayed_button", "params": {"delay": 1.5}, "time_limit": 4.0},
        ]})
        level = generate_level(80, TemplateCatalog(path), perf=PerformanceContext(combo=50), rng=random.Random(16))
        assert level.time_limit == 4000

    def test_template_time_extended_on_rescue(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "c.yaml", {"templates": [{"id": "A", "rule": "tap_once", "time_limit": 4.0}]})
        perf = PerformanceContext(recent_errors=2)
        level = generate_level(1, TemplateCatalog(path), perf=perf, rescue=True, rng=random.Random(17))
        assert level.time_limit == 4300

    def test_avoids_recent_rules(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "c.yaml", {"templates": [
            {"id": "A", "rule": "tap_once"},
            {"id": "B", "rule": "dont_tap"},
            {"id": "C", "rule": "double_tap"},
        ]})
        catalog = TemplateCatalog(path)
        history = SessionHistory(recent_rules=["tap_once", "dont_tap"])
        for seed in range(20):
            assert generate_level(1, catalog, history, rng=random.Random(seed)).rule == "double_tap"

    def test_falls_back_to_last_rule_filter(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "c.yaml", {"templates": [
            {"id": "A", "rule": "tap_once"},
            {"id": "B", "rule": "dont_tap"},
        ]})
        catalog = TemplateCatalog(path)
        history = SessionHistory(recent_rules=["tap_once", "dont_tap"], recent_categories=["basic"])
        for seed in range(20):
            assert generate_level(1, catalog, history, rng=random.Random(seed)).rule == "tap_once"

    def test_single_template_repeats(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "c.yaml", {"templates": [{"id": "A", "rule": "tap_once"}]})
        history = SessionHistory(recent_rules=["tap_once"], recent_categories=["basic"])
        assert generate_level(1, TemplateCatalog(path), history, rng=random.Random(16)).rule == "tap_once"

    def test_rescue_prefers_easy(self, catalog: TemplateCatalog):
        rng = random.Random(17)
        for _ in range(50):
            assert generate_level(25, catalog, rescue=True, rng=rng).difficulty == 1

    def test_empty_pool_uses_fallback(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "c.yaml", {"templates": [{"id": "Z", "rule": "rotate", "category": "device"}]})
        level = generate_level(1, TemplateCatalog(path), rng=random.Random(18))
        assert level.rule == "tap_once"
        assert level.instruction == "Tap once"

    def test_device_templates_never_drawn(self, catalog: TemplateCatalog):
        rng = random.Random(19)
        for _ in range(100):
            assert not generate_level(60, catalog, rng=rng).requires_device


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

class TestStages:
    def test_bundled_stages_have_five_levels(self, stages: StageBook):
        assert stages.all()
        for stage in stages.all():
            assert len(stage.levels) == 5

    def test_first_level_is_tap_once(self, stages: StageBook, catalog: TemplateCatalog):
        level = generate_stage_level(1, stages, catalog, rng=random.Random(20))
        assert level.instruction == "Tap once"
        assert level.rule == "tap_once"
        assert level.time_limit == 4000

    def test_stage_names(self, stages: StageBook):
        assert stages.stage_name(1) == "The Basics"
        assert stages.stage_name(6) == "Getting Tricky"
        assert stages.stage_name(0) is None
        assert stages.stage_name(stages.total_levels() + 1) is None

    def test_remember_level_resolved(self, stages: StageBook, catalog: TemplateCatalog):
        level = generate_stage_level(16, stages, catalog, rng=random.Random(21))
        assert level.rule == "remember_number"
        assert level.instruction == f"Remember: {level.params.remember_value}"

    def test_past_last_stage_falls_back(self, stages: StageBook, catalog: TemplateCatalog):
        number = stages.total_levels() + 1
        level = generate_stage_level(number, stages, catalog, rng=random.Random(22))
        assert level.id == number
        assert level.category in get_difficulty_config(number).allowed_categories

    def test_stage_file_errors_are_fatal(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "stages.yaml", {"stages": [{"name": "Broken", "levels": [{"instruction": "x"}]}]})
        with pytest.raises(ValueError):
            StageBook(path)

    def test_stage_without_name(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "stages.yaml", {"stages": [{"levels": [{"rule": "tap_once"}]}]})
        with pytest.raises(ValueError, match="name"):
            StageBook(path)


# ---------------------------------------------------------------------------
# Chapters
# ---------------------------------------------------------------------------

class TestChapters:
    def test_bundled_chapters(self):
        chapters = ChapterRepository()
        assert [c.id for c in chapters.all()] == [1, 2, 3, 4]
        assert chapters.get(1).title == "AWAKENING"

    def test_unknown_chapter(self):
        with pytest.raises(KeyError):
            ChapterRepository().get(99)

    def test_invalid_screens(self, tmp_path: Path):
        path = _write_yaml(tmp_path / "chapters.yaml", {"chapters": [{"id": 1, "title": "X", "screens": 0}]})
        with pytest.raises(ValueError):
            ChapterRepository(path)

    @pytest.mark.parametrize("score, screens, stars", [(1600, 8, 3), (1000, 8, 2), (900, 8, 1), (0, 8, 1)])
    def test_calculate_stars(self, score: int, screens: int, stars: int):
        assert calculate_stars(score, screens) == stars


# ---------------------------------------------------------------------------
# Dev tools
# ---------------------------------------------------------------------------

class TestDevTools:
    def test_categories(self, catalog: TemplateCatalog):
        categories = available_categories(catalog)
        assert categories[0] == "basic"
        assert "device" in categories

    def test_screen_types(self, catalog: TemplateCatalog):
        infos = {info.screen_type: info for info in screen_types_for_category(catalog, "time")}
        assert "hold_timer" in infos
        assert "tap_and_hold" in infos["hold_timer"].rules
        assert infos["hold_timer"].count == 7

    def test_generate_by_category_bypasses_difficulty(self, catalog: TemplateCatalog):
        level = generate_test_level(catalog, "device", level_id=1, rng=random.Random(23))
        assert level.category == "device"

    def test_unknown_category_falls_back_to_basic(self, catalog: TemplateCatalog):
        assert generate_test_level(catalog, "nope", rng=random.Random(24)).category == "basic"

    def test_by_screen_index_wraps(self, catalog: TemplateCatalog):
        first = generate_test_level_by_screen(catalog, "time", "hold_timer", index=0, rng=random.Random(25))
        wrapped = generate_test_level_by_screen(catalog, "time", "hold_timer", index=7, rng=random.Random(25))
        assert first.template_id == wrapped.template_id == "T06"

    def test_unknown_screen_uses_category(self, catalog: TemplateCatalog):
        level = generate_test_level_by_screen(catalog, "memory", "nope", rng=random.Random(26))
        assert level.category == "memory"
