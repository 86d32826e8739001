"""Configuration - queue settings and providers."""

from yt_audio_queue.config.settings import (
    VALID_FORMATS,
    VALID_QUALITIES,
    JsonSettingsStore,
    Settings,
    SettingsProvider,
    StaticSettings,
    coerce_setting,
)

__all__ = [
    "VALID_FORMATS",
    "VALID_QUALITIES",
    "JsonSettingsStore",
    "Settings",
    "SettingsProvider",
    "StaticSettings",
    "coerce_setting",
]
