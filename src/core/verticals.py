"""
Business verticals (lines of business) served by the funnel queries.
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from src.core.config import get_settings


class Vertical(str, Enum):
    ISPRAVA = "isprava"
    LOHONO_STAYS = "lohono_stays"
    THE_CHAPTER = "the_chapter"
    SOLENE = "solene"


DEFAULT_VERTICAL = Vertical.ISPRAVA

VERTICAL_DISPLAY_NAMES: dict[Vertical, str] = {
    Vertical.ISPRAVA: "Isprava",
    Vertical.LOHONO_STAYS: "Lohono Stays",
    Vertical.THE_CHAPTER: "The Chapter",
    Vertical.SOLENE: "Solene",
}

ALL_VERTICALS: list[Vertical] = list(Vertical)

# Informal names -> canonical vertical
_VERTICAL_ALIASES: dict[str, Vertical] = {
    "chapter": Vertical.THE_CHAPTER,
    "the chapter": Vertical.THE_CHAPTER,
    "lohono": Vertical.LOHONO_STAYS,
    "lohono stays": Vertical.LOHONO_STAYS,
}


def normalize_vertical(value: Any) -> Vertical | None:
    """Map a raw string (or Vertical) to a canonical Vertical, or None."""
    if isinstance(value, Vertical):
        return value
    if not isinstance(value, str):
        return None
    lower = value.strip().lower()
    if lower in _VERTICAL_ALIASES:
        return _VERTICAL_ALIASES[lower]
    try:
        return Vertical(lower)
    except ValueError:
        return None


def get_vertical_or_default(value: Any, default: Any = None) -> Vertical:
    """*value* normalised; otherwise *default*, then `Settings.default_vertical`, then Isprava."""
    if default is None:
        default = get_settings().default_vertical
    return normalize_vertical(value) or normalize_vertical(default) or DEFAULT_VERTICAL


def get_vertical_display_name(vertical: Vertical) -> str:
    return VERTICAL_DISPLAY_NAMES[vertical]
