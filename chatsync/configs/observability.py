"""
Observability configuration settings.

Settings for logging and performance event collection.

Dependencies: pydantic_settings
System role: Observability configuration for logging and latency events
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from chatsync.configs.base import BaseSettings


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="OBSERVABILITY_",
        case_sensitive=False,
        extra="ignore",
    )

    performance_events_enabled: bool = Field(
        default=True,
        description="Emit response latency events",
    )
    slow_response_ms: float = Field(
        default=5000.0,
        description="Latency above which a response event is logged as a warning",
    )
