"""Game screen widgets: background, cards, countdown bar, chapter cards."""

from __future__ import annotations

from typing import Callable, Optional

from PySide6.QtCore import Qt, QPoint
from PySide6.QtGui import QColor, QLinearGradient, QPainter, QRadialGradient
from PySide6.QtWidgets import (
    QFrame,
    QGraphicsDropShadowEffect,
    QHBoxLayout,
    QLabel,
    QVBoxLayout,
    QWidget,
)

from dontap.ui.colors import GameColors, countdown_color
from dontap.ui.models import ChapterCardState


class GameBackground(QWidget):
    """Gradient background with a couple of soft glows."""

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setAttribute(Qt.WidgetAttribute.WA_StyledBackground, True)

    def paintEvent(self, event) -> None:
        painter = QPainter(self)
        painter.setRenderHint(QPainter.Antialiasing, True)

        gradient = QLinearGradient(0, 0, self.width(), self.height())
        gradient.setColorAt(0.0, QColor(GameColors.BG_TOP))
        gradient.setColorAt(0.5, QColor(GameColors.BG_MIDDLE))
        gradient.setColorAt(1.0, QColor(GameColors.BG_BOTTOM))
        painter.fillRect(self.rect(), gradient)

        painter.setPen(Qt.NoPen)
        glows = [(0.85, 0.15, 220, QColor(0, 229, 255, 30)), (0.12, 0.82, 180, QColor(199, 146, 234, 30))]
        for x_ratio, y_ratio, radius, color in glows:
            radial = QRadialGradient(self.width() * x_ratio, self.height() * y_ratio, radius)
            radial.setColorAt(0, color)
            radial.setColorAt(1, QColor(0, 0, 0, 0))
            painter.setBrush(radial)
            painter.drawEllipse(QPoint(int(self.width() * x_ratio), int(self.height() * y_ratio)), radius, radius)


class CountdownBar(QWidget):
    """Rounded bar that drains as the level's countdown runs out."""

    def __init__(self, parent: Optional[QWidget] = None, *, height: int = 12) -> None:
        super().__init__(parent)
        self._progress = 1.0
        self.setFixedHeight(height)
        self.setMinimumWidth(100)

    def set_progress(self, progress: float) -> None:
        self._progress = max(0.0, min(1.0, float(progress)))
        self.update()

    def paintEvent(self, event) -> None:
        painter = QPainter(self)
        painter.setRenderHint(QPainter.Antialiasing, True)
        painter.setPen(Qt.NoPen)
        radius = min(8, self.height() // 2)

        painter.setBrush(QColor(GameColors.TIMER_TRACK))
        painter.drawRoundedRect(0, 0, self.width(), self.height(), radius, radius)

        fill_width = int(self._progress * self.width())
        if fill_width > 0:
            color = QColor(countdown_color(self._progress))
            gradient = QLinearGradient(0, 0, fill_width, 0)
            gradient.setColorAt(0, color.lighter(115))
            gradient.setColorAt(1, color)
            painter.setBrush(gradient)
            painter.drawRoundedRect(0, 0, fill_width, self.height(), radius, radius)


class GlassCard(QFrame):
    """Translucent card used for panels and overlays."""

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setObjectName("glassCard")
        self.setStyleSheet(
            f"""
            QFrame#glassCard {{
                background: {GameColors.CARD_BG};
                border: 1px solid {GameColors.CARD_BORDER};
                border-radius: 20px;
            }}
            """
        )
        shadow = QGraphicsDropShadowEffect(self)
        shadow.setBlurRadius(30)
        shadow.setOffset(0, 8)
        shadow.setColor(QColor(0, 0, 0, 90))
        self.setGraphicsEffect(shadow)


class StatLabel(QFrame):
    def __init__(self, label: str, value: str, color: str, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 6, 12, 6)
        layout.setSpacing(2)
        caption = QLabel(label)
        caption.setStyleSheet(f"color: {GameColors.TEXT_MUTED}; font-size: 11px; font-weight: 700;")
        caption.setAlignment(Qt.AlignCenter)
        layout.addWidget(caption)
        self.value_label = QLabel(str(value))
        self.value_label.setStyleSheet(f"color: {color}; font-size: 22px; font-weight: 900;")
        self.value_label.setAlignment(Qt.AlignCenter)
        layout.addWidget(self.value_label)

    def set_value(self, value: str) -> None:
        self.value_label.setText(str(value))


class ChapterCard(QFrame):
    """Clickable card for one chapter."""

    def __init__(
        self,
        state: ChapterCardState,
        on_click: Callable[[int], None],
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self._state = state
        self._on_click = on_click

        self.setCursor(Qt.PointingHandCursor if state.unlocked else Qt.ForbiddenCursor)
        self.setObjectName("chapterCard")
        self.setFixedHeight(84)
        self._apply_style(hover=False)

        layout = QHBoxLayout(self)
        layout.setContentsMargins(18, 12, 18, 12)
        layout.setSpacing(16)

        badge = QLabel(str(state.chapter.id) if state.unlocked else "🔒")
        badge.setFixedSize(48, 48)
        badge.setAlignment(Qt.AlignCenter)
        badge_color = GameColors.MINT if state.completed else GameColors.PRIMARY
        if not state.unlocked:
            badge_color = GameColors.TEXT_MUTED
        badge.setStyleSheet(
            f"background: {badge_color}; color: {GameColors.BG_TOP}; border-radius: 14px;"
            " font-size: 20px; font-weight: 900;"
        )
        layout.addWidget(badge)

        info = QVBoxLayout()
        info.setSpacing(4)
        title_color = GameColors.TEXT_PRIMARY if state.unlocked else GameColors.TEXT_MUTED
        title = QLabel(f"Chapter {state.chapter.id}: {state.chapter.title}")
        title.setStyleSheet(f"color: {title_color}; font-size: 15px; font-weight: 800;")
        info.addWidget(title)
        mechanics = QLabel(" · ".join(state.chapter.mechanics))
        mechanics.setStyleSheet(f"color: {GameColors.TEXT_SECONDARY}; font-size: 12px;")
        info.addWidget(mechanics)
        layout.addLayout(info, 1)

        stars = QLabel("★" * state.stars + "☆" * (3 - state.stars))
        stars.setStyleSheet(f"color: {GameColors.AMBER}; font-size: 18px;")
        layout.addWidget(stars)

    def _apply_style(self, hover: bool) -> None:
        border = GameColors.PRIMARY if self._state.is_current else GameColors.CARD_BORDER
        background = GameColors.CARD_BG_HOVER if hover else GameColors.CARD_BG
        self.setStyleSheet(
            f"""
            QFrame#chapterCard {{
                background: {background};
                border: 1px solid {border};
                border-radius: 18px;
            }}
            """
        )

    def enterEvent(self, event) -> None:
        if self._state.unlocked:
            self._apply_style(hover=True)
        super().enterEvent(event)

    def leaveEvent(self, event) -> None:
        self._apply_style(hover=False)
        super().leaveEvent(event)

    def mousePressEvent(self, event) -> None:
        if self._state.unlocked:
            self._on_click(self._state.chapter.id)
        super().mousePressEvent(event)
