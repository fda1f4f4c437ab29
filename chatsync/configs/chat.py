"""
Chat engine configuration settings.

Reveal cadence, pagination, reconciliation and read-tracking timings.

Dependencies: pydantic, pydantic_settings
System role: Chat engine behaviour configuration
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from chatsync.configs.base import BaseSettings


class ChatSettings(BaseSettings):
    """Chat engine configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CHAT_",
        case_sensitive=False,
        extra="ignore",
    )

    reveal_enabled: bool = Field(default=True, description="Reveal answers incrementally")
    reveal_interval_seconds: float = Field(default=0.02, ge=0.0)
    reveal_chars_per_tick: int = Field(default=3, ge=1)

    page_size: int = Field(default=50, ge=1, le=500, description="Messages per page")

    dedup_window_seconds: float = Field(
        default=5.0, ge=0.0,
        description="Max created_at distance for merging records with different ids",
    )

    read_visibility_threshold: float = Field(default=0.5, gt=0.0, le=1.0)
    read_dwell_seconds: float = Field(
        default=0.3, ge=0.0, description="Continuous visibility needed before counting as read"
    )
    read_flush_seconds: float = Field(
        default=1.0, ge=0.0, description="Batch window for mark-read writes"
    )
