"""Configuration module."""

from docrepair.config.settings import (
    LLMSettings,
    ObservabilitySettings,
    QueueSettings,
    Settings,
    StoreSettings,
    ValidationSettings,
    get_settings,
)

__all__ = [
    "LLMSettings",
    "ObservabilitySettings",
    "QueueSettings",
    "Settings",
    "StoreSettings",
    "ValidationSettings",
    "get_settings",
]
