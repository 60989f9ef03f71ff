"""Theme colors and color utilities for the UI."""


class GameColors:
    """Dark arcade palette."""

    BG_TOP = "#0f1021"
    BG_MIDDLE = "#161833"
    BG_BOTTOM = "#1f1147"

    PRIMARY = "#00e5ff"
    PRIMARY_LIGHT = "#6effff"
    PRIMARY_DARK = "#00b2cc"

    CORAL = "#ff5370"
    AMBER = "#ffcb6b"
    MINT = "#69f0ae"
    LAVENDER = "#c792ea"

    CARD_BG = "rgba(255, 255, 255, 0.08)"
    CARD_BG_HOVER = "rgba(255, 255, 255, 0.14)"
    CARD_BORDER = "rgba(255, 255, 255, 0.18)"

    TEXT_PRIMARY = "#f5f7ff"
    TEXT_SECONDARY = "#b8c0e0"
    TEXT_MUTED = "#6c7399"

    # Countdown bar: full -> empty
    TIMER_FULL = "#69f0ae"
    TIMER_HALF = "#ffcb6b"
    TIMER_EMPTY = "#ff5370"
    TIMER_TRACK = "#2a2d4f"


# Named colors used by stroop and avoid-color levels
NAMED_COLORS = {
    "red": "#ff5370",
    "green": "#69f0ae",
    "blue": "#82aaff",
    "yellow": "#ffcb6b",
    "purple": "#c792ea",
    "orange": "#f78c6c",
}


def blend_hex(a: str, b: str, t: float) -> str:
    """Blend two #RRGGBB colors. t=0 -> a, t=1 -> b."""
    try:
        a = a.strip()
        b = b.strip()
        if not (a.startswith("#") and b.startswith("#") and len(a) == 7 and len(b) == 7):
            return a
        t = max(0.0, min(1.0, float(t)))
        ar, ag, ab = int(a[1:3], 16), int(a[3:5], 16), int(a[5:7], 16)
        br, bg, bb = int(b[1:3], 16), int(b[3:5], 16), int(b[5:7], 16)
        r = int(ar + (br - ar) * t)
        g = int(ag + (bg - ag) * t)
        bl = int(ab + (bb - ab) * t)
        return f"#{r:02X}{g:02X}{bl:02X}"
    except (TypeError, ValueError):
        return a


def countdown_color(progress: float) -> str:
    """Fill color for the countdown bar at *progress* (1.0 = full time left)."""
    progress = max(0.0, min(1.0, progress))
    if progress >= 0.5:
        return blend_hex(GameColors.TIMER_HALF, GameColors.TIMER_FULL, (progress - 0.5) * 2)
    return blend_hex(GameColors.TIMER_EMPTY, GameColors.TIMER_HALF, progress * 2)


def named_color(name: str) -> str:
    """Hex value for a color name, falling back to the muted text color."""
    return NAMED_COLORS.get(name, GameColors.TEXT_MUTED)
