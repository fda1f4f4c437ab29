"""
Inference endpoint configuration settings.

Timeout, retry/backoff, generation bounds and response cache limits for
the Response Gateway.

Dependencies: pydantic, pydantic_settings
System role: Response Gateway configuration
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from chatsync.configs.base import BaseSettings


class InferenceSettings(BaseSettings):
    """Inference endpoint configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INFERENCE_",
        case_sensitive=False,
        extra="ignore",
    )

    endpoint: str = Field(
        default="http://localhost:3000/api/v1/prediction/assistant",
        description="Prediction endpoint URL",
    )
    api_key: str | None = Field(default=None, description="Bearer token for the endpoint")

    timeout_seconds: float = Field(default=30.0, gt=0, description="Hard request timeout")
    max_attempts: int = Field(default=3, ge=1, description="Total attempts for transient failures")
    backoff_base_seconds: float = Field(
        default=1.0, gt=0, description="First retry delay, doubled on every attempt"
    )

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, gt=0, le=8192)
    stop_sequences: list[str] = Field(default_factory=list)

    cache_enabled: bool = Field(default=True, description="Cache first-turn answers")
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    cache_max_entries: int = Field(default=100, gt=0)
