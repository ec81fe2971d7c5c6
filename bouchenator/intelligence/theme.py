"""Theme defaults and color utilities."""

from __future__ import annotations

import colorsys
import re
from typing import Optional, Tuple

from bouchenator.core.models import Theme, ThemeSource
from bouchenator.utils.text import string_hash

DEFAULT_PRIMARY = "#2563eb"
DEFAULT_ACCENT = "#7c3aed"
DEFAULT_BG = "#fafafa"
DEFAULT_TEXT = "#171717"

RGB = Tuple[int, int, int]


def default_theme() -> Theme:
    return Theme(
        primary=DEFAULT_PRIMARY,
        accent=DEFAULT_ACCENT,
        bg=DEFAULT_BG,
        text=DEFAULT_TEXT,
        source=ThemeSource.DEFAULT,
    )


def hex_to_rgb(value: str) -> Optional[RGB]:
    """Parse ``#rgb`` or ``#rrggbb[aa]``; None when unparseable."""
    cleaned = value.strip().lstrip("#")
    if not re.fullmatch(r"[0-9a-fA-F]+", cleaned or "-"):
        return None
    if len(cleaned) == 3:
        return tuple(int(c * 2, 16) for c in cleaned)  # type: ignore[return-value]
    if len(cleaned) >= 6:
        return int(cleaned[0:2], 16), int(cleaned[2:4], 16), int(cleaned[4:6], 16)
    return None


def rgb_to_hex(r: float, g: float, b: float) -> str:
    def channel(n: float) -> str:
        return f"{max(0, min(255, round(n))):02x}"

    return f"#{channel(r)}{channel(g)}{channel(b)}"


def rgb_to_hsl(r: int, g: int, b: int) -> Tuple[float, float, float]:
    h, l, s = colorsys.rgb_to_hls(r / 255, g / 255, b / 255)
    return h, s, l


def hsl_to_rgb(h: float, s: float, l: float) -> RGB:
    r, g, b = colorsys.hls_to_rgb(h % 1.0, l, s)
    return round(r * 255), round(g * 255), round(b * 255)


def luminance(r: int, g: int, b: int) -> float:
    """Perceived luminance in 0..1."""
    return (0.299 * r + 0.587 * g + 0.114 * b) / 255


def is_near_white(r: int, g: int, b: int) -> bool:
    return luminance(r, g, b) > 0.85


def is_near_black(r: int, g: int, b: int) -> bool:
    return luminance(r, g, b) < 0.12


def saturation(value: str) -> float:
    rgb = hex_to_rgb(value)
    if rgb is None:
        return 0.0
    return rgb_to_hsl(*rgb)[1]


def is_usable_color(value: str) -> bool:
    """Neither too light nor too dark to carry a brand."""
    rgb = hex_to_rgb(value)
    if rgb is None:
        return False
    lum = luminance(*rgb)
    return 0.08 < lum < 0.9


def is_brand_usable(value: str) -> bool:
    """Usable and saturated enough to read as a brand color rather than gray."""
    return is_usable_color(value) and saturation(value) >= 0.15


def derive_accent(primary: str) -> str:
    """Shift hue by 30 degrees with lightness clamped to 0.2..0.6 and saturation capped at 0.8."""
    rgb = hex_to_rgb(primary)
    if rgb is None:
        return DEFAULT_ACCENT
    h, s, l = rgb_to_hsl(*rgb)
    return rgb_to_hex(*hsl_to_rgb((h + 30 / 360) % 1, min(s, 0.8), max(0.2, min(0.6, l))))


def theme_from_name(company_name: str) -> Theme:
    """
    Deterministic palette derived from the subject name.

    Keeps ``source`` as default so callers can tell it was not sampled, but
    gives every subject its own hue.
    """
    if not company_name or not company_name.strip():
        return default_theme()

    h = string_hash(company_name.strip().lower())
    hue = (h % 360) / 360
    sat = 0.55 + (h % 20) / 100
    light = 0.42 + (h % 10) / 100
    primary = rgb_to_hex(*hsl_to_rgb(hue, sat, light))

    theme = default_theme()
    theme.primary = primary
    theme.accent = derive_accent(primary)
    theme.note = f'Deterministic palette for "{company_name}"'
    return theme
