"""Configuration package."""

from gitsync.config.settings import Settings, settings

__all__ = [
    "Settings",
    "settings",
]
