"""
Configuration management module.

Provides centralized, type-safe configuration using Pydantic Settings.
All config modules support environment variable mapping with validation.
"""

from chatsync.configs.chat import ChatSettings
from chatsync.configs.database import DatabaseSettings
from chatsync.configs.inference import InferenceSettings
from chatsync.configs.observability import ObservabilitySettings
from chatsync.configs.settings import Settings, get_settings

__all__ = [
    "ChatSettings",
    "DatabaseSettings",
    "InferenceSettings",
    "ObservabilitySettings",
    "Settings",
    "get_settings",
]
