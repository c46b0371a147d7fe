"""Catalog of chat themes a user can pick per conversation."""

from __future__ import annotations

DEFAULT_THEME = "default"

CHAT_THEMES: dict[str, str] = {
    "default": "Default",
    "minimal-light": "Minimal Light",
    "minimal-dark": "Minimal Dark",
    "lavender": "Lavender",
    "love": "Love",
    "galaxy": "Galaxy",
    "ocean": "Ocean",
    "sky": "Sky",
    "neon": "Neon",
    "sunset": "Sunset",
    "forest": "Forest",
    "celebration": "Celebration",
}


def is_known_theme(key: str) -> bool:
    return key in CHAT_THEMES


def theme_catalog() -> list[dict[str, str]]:
    return [{"key": key, "name": name} for key, name in CHAT_THEMES.items()]
