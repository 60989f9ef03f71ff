from __future__ import annotations

import os
import random
import time
from typing import List, Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QCloseEvent, QKeyEvent
from PySide6.QtWidgets import (
    QComboBox,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPushButton,
    QScrollArea,
    QStackedWidget,
    QVBoxLayout,
    QWidget,
)

from dontap.core.chapters import ChapterRepository
from dontap.core.devtools import available_categories, screen_types_for_category
from dontap.core.levels import TemplateCatalog
from dontap.core.models import (
    CHAPTER_COMPLETE,
    FAILED,
    GAME_OVER,
    HOLD_END,
    HOLD_START,
    IDLE,
    MULTI_TOUCH,
    ROTATE,
    TAP_TARGET,
    Action,
    GameState,
    Level,
)
from dontap.core.progress import ProgressStore
from dontap.core.session import MODE_ENDLESS, MODE_HARDCORE, GameSession
from dontap.ui.colors import GameColors, named_color
from dontap.ui.models import (
    avoid_color_choices,
    build_chapter_cards,
    build_mode_cards,
    level_detail_text,
)
from dontap.ui.timers import QtScheduler
from dontap.ui.widgets import ChapterCard, CountdownBar, GameBackground, GlassCard, StatLabel

FAIL_MESSAGES = {
    "wrong_count": "Wrong number of taps",
    "tapped_when_shouldnt": "You weren't supposed to tap",
    "time_expired": "Out of time",
    "too_slow": "Too slow",
    "wrong_answer": "Wrong answer",
    "wrong_target": "Wrong target",
    "wrong_timing": "Bad timing",
    "wrong_input": "Wrong move",
}

ROTATE_STEP_DEG = 90


def _button_style(color: str, text_color: str = GameColors.BG_TOP, radius: int = 14) -> str:
    return f"""
        QPushButton {{
            background: {color};
            color: {text_color};
            border: none;
            border-radius: {radius}px;
            padding: 10px 22px;
            font-size: 15px;
            font-weight: 800;
        }}
        QPushButton:hover {{ background: {color}; border: 2px solid {GameColors.TEXT_PRIMARY}; }}
        QPushButton:disabled {{ background: {GameColors.TIMER_TRACK}; color: {GameColors.TEXT_MUTED}; }}
    """


class MainWindow(QMainWindow):
    """Menu screen plus a single game screen driven by a :class:`GameSession`.

    The window only renders session snapshots and forwards input; every rule
    decision happens in the session. Space taps, holding the big button sends
    hold start/end with the held duration, ``R`` rotates and the digit keys
    2 to 5 stand in for multi-finger touches.
    """

    def __init__(
        self,
        catalog: TemplateCatalog,
        chapters: ChapterRepository,
        progress_store: ProgressStore,
    ) -> None:
        super().__init__()
        self._catalog = catalog
        self._chapters = chapters
        self._progress_store = progress_store
        self._unlock_all = os.environ.get("DONTAP_UNLOCK_ALL") == "1"
        self._dev_tools = os.environ.get("DONTAP_DEV") == "1"
        self._rng = random.Random()

        self._scheduler = QtScheduler(self)
        self._session = GameSession(
            progress_store=progress_store,
            scheduler=self._scheduler,
            catalog=catalog,
            chapters=chapters,
        )
        self._session.subscribe(self._on_state_changed)

        self._shown_level: Optional[Level] = None
        self._hold_started_at: Optional[float] = None
        self._rotation = 0

        self._stack: Optional[QStackedWidget] = None
        self._menu_screen: Optional[QWidget] = None
        self._game_screen: Optional[QWidget] = None
        self._high_score_label: Optional[QLabel] = None
        self._chapters_layout: Optional[QVBoxLayout] = None
        self._mode_buttons: dict = {}
        self._dev_category_box: Optional[QComboBox] = None
        self._dev_screen_box: Optional[QComboBox] = None

        self._level_label: Optional[QLabel] = None
        self._stage_label: Optional[QLabel] = None
        self._score_stat: Optional[StatLabel] = None
        self._combo_stat: Optional[StatLabel] = None
        self._lives_stat: Optional[StatLabel] = None
        self._countdown_bar: Optional[CountdownBar] = None
        self._instruction_label: Optional[QLabel] = None
        self._detail_label: Optional[QLabel] = None
        self._tap_button: Optional[QPushButton] = None
        self._targets_row: Optional[QHBoxLayout] = None
        self._target_buttons: List[QPushButton] = []
        self._overlay: Optional[GlassCard] = None
        self._overlay_title: Optional[QLabel] = None
        self._overlay_message: Optional[QLabel] = None
        self._continue_button: Optional[QPushButton] = None

        self.setWindowTitle("Don't Tap")
        self.resize(520, 820)
        self._build_ui()
        self._refresh_menu()

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def _build_ui(self) -> None:
        background = GameBackground()
        root = QVBoxLayout(background)
        root.setContentsMargins(24, 24, 24, 24)
        self._stack = QStackedWidget()
        self._stack.setStyleSheet("background: transparent;")
        root.addWidget(self._stack)

        self._menu_screen = self._build_menu_screen()
        self._game_screen = self._build_game_screen()
        self._stack.addWidget(self._menu_screen)
        self._stack.addWidget(self._game_screen)
        self.setCentralWidget(background)

    def _build_menu_screen(self) -> QWidget:
        screen = QWidget()
        layout = QVBoxLayout(screen)
        layout.setSpacing(14)

        title = QLabel("DON'T TAP")
        title.setAlignment(Qt.AlignCenter)
        title.setStyleSheet(f"color: {GameColors.PRIMARY}; font-size: 44px; font-weight: 900;")
        layout.addWidget(title)

        self._high_score_label = QLabel()
        self._high_score_label.setAlignment(Qt.AlignCenter)
        self._high_score_label.setStyleSheet(f"color: {GameColors.AMBER}; font-size: 15px; font-weight: 700;")
        layout.addWidget(self._high_score_label)

        play_button = QPushButton("PLAY")
        play_button.setStyleSheet(_button_style(GameColors.PRIMARY, radius=20))
        play_button.setMinimumHeight(56)
        play_button.clicked.connect(lambda: self._begin(self._session.start_game))
        layout.addWidget(play_button)

        chapters_title = QLabel("Chapters")
        chapters_title.setStyleSheet(f"color: {GameColors.TEXT_SECONDARY}; font-size: 14px; font-weight: 800;")
        layout.addWidget(chapters_title)

        chapters_container = QWidget()
        self._chapters_layout = QVBoxLayout(chapters_container)
        self._chapters_layout.setContentsMargins(0, 0, 0, 0)
        self._chapters_layout.setSpacing(10)
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setFrameShape(QScrollArea.NoFrame)
        scroll.setWidget(chapters_container)
        layout.addWidget(scroll, 1)

        modes_row = QHBoxLayout()
        starters = {MODE_ENDLESS: self._session.start_endless, MODE_HARDCORE: self._session.start_hardcore}
        for mode, starter in starters.items():
            button = QPushButton()
            button.setStyleSheet(_button_style(GameColors.LAVENDER))
            button.clicked.connect(lambda checked=False, start=starter: self._begin(start))
            self._mode_buttons[mode] = button
            modes_row.addWidget(button)
        layout.addLayout(modes_row)

        if self._dev_tools:
            layout.addWidget(self._build_dev_picker())
        return screen

    def _build_dev_picker(self) -> QWidget:
        panel = GlassCard()
        row = QHBoxLayout(panel)
        row.setContentsMargins(12, 8, 12, 8)
        self._dev_category_box = QComboBox()
        self._dev_category_box.addItems(available_categories(self._catalog))
        self._dev_screen_box = QComboBox()
        self._dev_category_box.currentTextChanged.connect(self._refresh_dev_screens)
        self._refresh_dev_screens(self._dev_category_box.currentText())
        run_button = QPushButton("Test")
        run_button.setStyleSheet(_button_style(GameColors.AMBER))
        run_button.clicked.connect(self._start_dev_level)
        row.addWidget(self._dev_category_box, 1)
        row.addWidget(self._dev_screen_box, 1)
        row.addWidget(run_button)
        return panel

    def _build_game_screen(self) -> QWidget:
        screen = QWidget()
        layout = QVBoxLayout(screen)
        layout.setSpacing(16)

        header = QHBoxLayout()
        back_button = QPushButton("← Menu")
        back_button.setStyleSheet(_button_style(GameColors.CARD_BG_HOVER, GameColors.TEXT_PRIMARY))
        back_button.clicked.connect(self._show_menu)
        header.addWidget(back_button)
        header.addStretch(1)
        titles = QVBoxLayout()
        self._level_label = QLabel()
        self._level_label.setAlignment(Qt.AlignRight)
        self._level_label.setStyleSheet(f"color: {GameColors.TEXT_PRIMARY}; font-size: 16px; font-weight: 800;")
        self._stage_label = QLabel()
        self._stage_label.setAlignment(Qt.AlignRight)
        self._stage_label.setStyleSheet(f"color: {GameColors.TEXT_MUTED}; font-size: 12px;")
        titles.addWidget(self._level_label)
        titles.addWidget(self._stage_label)
        header.addLayout(titles)
        layout.addLayout(header)

        stats = QHBoxLayout()
        self._score_stat = StatLabel("SCORE", "0", GameColors.PRIMARY)
        self._combo_stat = StatLabel("COMBO", "0", GameColors.AMBER)
        self._lives_stat = StatLabel("LIVES", "", GameColors.CORAL)
        for stat in (self._score_stat, self._combo_stat, self._lives_stat):
            stats.addWidget(stat)
        layout.addLayout(stats)

        self._countdown_bar = CountdownBar()
        layout.addWidget(self._countdown_bar)

        layout.addStretch(1)
        self._instruction_label = QLabel()
        self._instruction_label.setAlignment(Qt.AlignCenter)
        self._instruction_label.setWordWrap(True)
        self._instruction_label.setStyleSheet(f"color: {GameColors.TEXT_PRIMARY}; font-size: 34px; font-weight: 900;")
        layout.addWidget(self._instruction_label)
        self._detail_label = QLabel()
        self._detail_label.setAlignment(Qt.AlignCenter)
        self._detail_label.setWordWrap(True)
        layout.addWidget(self._detail_label)
        layout.addStretch(1)

        self._targets_row = QHBoxLayout()
        self._targets_row.setSpacing(12)
        layout.addLayout(self._targets_row)

        self._tap_button = QPushButton("TAP")
        self._tap_button.setMinimumHeight(160)
        self._tap_button.setFocusPolicy(Qt.NoFocus)
        self._tap_button.setStyleSheet(_button_style(GameColors.PRIMARY, radius=80))
        self._tap_button.pressed.connect(self._on_tap_pressed)
        self._tap_button.released.connect(self._on_tap_released)
        layout.addWidget(self._tap_button)

        self._overlay = self._build_overlay()
        layout.addWidget(self._overlay)
        self._overlay.hide()
        return screen

    def _build_overlay(self) -> GlassCard:
        card = GlassCard()
        layout = QVBoxLayout(card)
        layout.setContentsMargins(24, 20, 24, 20)
        self._overlay_title = QLabel()
        self._overlay_title.setAlignment(Qt.AlignCenter)
        self._overlay_title.setStyleSheet(f"color: {GameColors.CORAL}; font-size: 26px; font-weight: 900;")
        self._overlay_message = QLabel()
        self._overlay_message.setAlignment(Qt.AlignCenter)
        self._overlay_message.setWordWrap(True)
        self._overlay_message.setStyleSheet(f"color: {GameColors.TEXT_SECONDARY}; font-size: 14px;")
        layout.addWidget(self._overlay_title)
        layout.addWidget(self._overlay_message)

        buttons = QHBoxLayout()
        self._continue_button = QPushButton("Continue")
        self._continue_button.setStyleSheet(_button_style(GameColors.MINT))
        self._continue_button.clicked.connect(self._session.continue_game)
        retry_button = QPushButton("Retry")
        retry_button.setStyleSheet(_button_style(GameColors.AMBER))
        retry_button.clicked.connect(self._session.retry_game)
        menu_button = QPushButton("Menu")
        menu_button.setStyleSheet(_button_style(GameColors.CARD_BG_HOVER, GameColors.TEXT_PRIMARY))
        menu_button.clicked.connect(self._show_menu)
        for button in (self._continue_button, retry_button, menu_button):
            buttons.addWidget(button)
        layout.addLayout(buttons)
        return card

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _refresh_menu(self) -> None:
        self._high_score_label.setText(f"Best: {self._session.high_score}")
        while self._chapters_layout.count():
            item = self._chapters_layout.takeAt(0)
            if item.widget() is not None:
                item.widget().deleteLater()
        for state in build_chapter_cards(self._chapters.all(), self._progress_store, self._unlock_all):
            self._chapters_layout.addWidget(ChapterCard(state, self._start_chapter))
        self._chapters_layout.addStretch(1)
        for card in build_mode_cards(self._progress_store, self._unlock_all):
            button = self._mode_buttons[card.mode]
            button.setText(card.title if card.unlocked else f"🔒 {card.title}")
            button.setEnabled(card.unlocked)

    def _refresh_dev_screens(self, category: str) -> None:
        self._dev_screen_box.clear()
        for info in screen_types_for_category(self._catalog, category):
            self._dev_screen_box.addItem(f"{info.screen_type} ({info.count})", info.screen_type)

    def _start_dev_level(self) -> None:
        category = self._dev_category_box.currentText()
        screen_type = self._dev_screen_box.currentData()
        if screen_type:
            self._begin(lambda: self._session.start_test_screen(category, screen_type))
        else:
            self._begin(lambda: self._session.start_test_category(category))

    def _start_chapter(self, chapter_id: int) -> None:
        self._begin(lambda: self._session.start_chapter(chapter_id))

    def _begin(self, starter) -> None:
        self._shown_level = None
        self._stack.setCurrentWidget(self._game_screen)
        self.setFocus()
        starter()

    def _show_menu(self) -> None:
        self._session.reset_game()
        self._refresh_menu()
        self._stack.setCurrentWidget(self._menu_screen)

    # ------------------------------------------------------------------
    # Session rendering
    # ------------------------------------------------------------------

    def _on_state_changed(self, state: GameState) -> None:
        if state.status == IDLE:
            return
        level = self._session.level
        if level is not None and level is not self._shown_level:
            self._render_level(level, state)
        self._score_stat.set_value(str(state.score))
        self._combo_stat.set_value(f"x{state.combo}")
        self._lives_stat.set_value("♥" * state.lives)
        self._countdown_bar.set_progress(self._session.progress)
        self._render_overlay(state)

    def _render_level(self, level: Level, state: GameState) -> None:
        self._shown_level = level
        self._hold_started_at = None
        self._rotation = 0
        chapter = self._session.chapter
        if chapter is not None:
            self._level_label.setText(f"{chapter.title} · {level.id}/{chapter.screens}")
        else:
            self._level_label.setText(f"Level {level.id}")
        self._stage_label.setText(self._session.stage_name() or level.category.title())

        instruction = level.instruction
        if level.rule == "stroop":
            instruction = str(level.params.stroop_text).upper()
            self._instruction_label.setStyleSheet(
                f"color: {named_color(level.params.stroop_color)}; font-size: 40px; font-weight: 900;"
            )
        else:
            self._instruction_label.setStyleSheet(
                f"color: {GameColors.TEXT_PRIMARY}; font-size: 34px; font-weight: 900;"
            )
        if level.screen_type == "upside_down":
            instruction = instruction[::-1]
        self._instruction_label.setText(instruction)

        detail = level_detail_text(level)
        self._detail_label.setText(detail)
        self._detail_label.setStyleSheet(f"color: {GameColors.TEXT_SECONDARY}; font-size: 18px; font-weight: 700;")
        self._detail_label.setVisible(bool(detail))

        self._tap_button.setText(str(level.display.get("fake_label", "HOLD" if level.input_type == "hold" else "TAP")))
        self._tap_button.setVisible(level.input_type != "tap_target")
        self._build_targets(level, state)

    def _build_targets(self, level: Level, state: GameState) -> None:
        for button in self._target_buttons:
            button.deleteLater()
        self._target_buttons = []
        if level.input_type != "tap_target":
            return
        if level.rule == "avoid_color":
            values = avoid_color_choices(level, state.memory, self._rng)
            colors = [named_color(value) for value in values]
        else:
            values = list(range(level.params.circle_count))
            colors = [GameColors.PRIMARY] * len(values)
        for index, (value, color) in enumerate(zip(values, colors)):
            button = QPushButton()
            size = 64
            if level.rule == "tap_target" and index == level.params.target_index:
                # the target is the biggest circle
                size = 84
            button.setFixedSize(size, size)
            button.setFocusPolicy(Qt.NoFocus)
            button.setStyleSheet(_button_style(color, radius=size // 2))
            button.clicked.connect(lambda checked=False, v=value: self._session.handle_action(Action(TAP_TARGET, v)))
            self._targets_row.addWidget(button)
            self._target_buttons.append(button)

    def _render_overlay(self, state: GameState) -> None:
        if state.status == FAILED:
            reason = FAIL_MESSAGES.get(self._session.last_fail_reason or "", "Missed")
            self._show_overlay("Oops!", f"{reason}. Lives left: {state.lives}", can_continue=True)
        elif state.status == GAME_OVER:
            self._show_overlay("Game over", f"Score {state.score} · Best {self._session.high_score}", can_continue=False)
        elif state.status == CHAPTER_COMPLETE:
            self._show_overlay("Chapter complete!", f"Score {state.score}", can_continue=False)
        else:
            self._overlay.hide()
            self._tap_button.setEnabled(True)

    def _show_overlay(self, title: str, message: str, can_continue: bool) -> None:
        self._overlay_title.setText(title)
        self._overlay_message.setText(message)
        self._continue_button.setVisible(can_continue)
        self._tap_button.setEnabled(False)
        self._overlay.show()

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def _on_tap_pressed(self) -> None:
        level = self._session.level
        if level is not None and level.input_type == "hold":
            self._hold_started_at = time.monotonic()
            self._session.handle_action(HOLD_START)
            return
        self._session.handle_tap()

    def _on_tap_released(self) -> None:
        if self._hold_started_at is None:
            return
        held_ms = int((time.monotonic() - self._hold_started_at) * 1000)
        self._hold_started_at = None
        self._session.handle_action(Action(HOLD_END, held_ms))

    def keyPressEvent(self, event: QKeyEvent) -> None:
        if self._stack.currentWidget() is not self._game_screen or event.isAutoRepeat():
            super().keyPressEvent(event)
            return
        key = event.key()
        if key == Qt.Key_Space:
            self._on_tap_pressed()
        elif key == Qt.Key_R:
            self._rotation += ROTATE_STEP_DEG
            self._session.handle_action(Action(ROTATE, self._rotation))
        elif 2 <= key - int(Qt.Key_0) <= 5:
            self._session.handle_action(Action(MULTI_TOUCH, key - int(Qt.Key_0)))
        elif key == Qt.Key_Escape:
            self._show_menu()
        else:
            super().keyPressEvent(event)

    def keyReleaseEvent(self, event: QKeyEvent) -> None:
        if event.key() == Qt.Key_Space and not event.isAutoRepeat():
            self._on_tap_released()
            return
        super().keyReleaseEvent(event)

    def closeEvent(self, event: QCloseEvent) -> None:
        """Stop all timers and persist progress when closing the app."""
        self._session.reset_game()
        self._scheduler.cancel_all()
        if self._progress_store is not None:
            self._progress_store.save()
        super().closeEvent(event)
