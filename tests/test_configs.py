"""
Test suite for settings loading.

Tests env prefixes, validation of shared fields and the error-detail switch.

System role: Verification of configuration
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from chatsync.configs import ChatSettings, DatabaseSettings, InferenceSettings, Settings


class TestSettingsFromEnvironment:
    """Test suite for environment variable loading."""

    def test_inference_settings_should_read_prefixed_env(self, monkeypatch) -> None:
        # Arrange
        monkeypatch.setenv("INFERENCE_ENDPOINT", "http://inference.local/predict")
        monkeypatch.setenv("INFERENCE_MAX_ATTEMPTS", "5")

        # Act
        settings = InferenceSettings()

        # Assert
        assert settings.endpoint == "http://inference.local/predict"
        assert settings.max_attempts == 5
        assert settings.cache_ttl_seconds == 300.0

    def test_chat_settings_should_read_prefixed_env(self, monkeypatch) -> None:
        # Arrange
        monkeypatch.setenv("CHAT_DEDUP_WINDOW_SECONDS", "2.5")

        # Act
        settings = ChatSettings()

        # Assert
        assert settings.dedup_window_seconds == 2.5
        assert settings.read_visibility_threshold == 0.5

    def test_database_url_override_should_win(self) -> None:
        # Act
        settings = DatabaseSettings(url="sqlite+aiosqlite:///:memory:")

        # Assert
        assert settings.async_database_url == "sqlite+aiosqlite:///:memory:"
        assert settings.is_sqlite is True

    def test_database_url_should_be_built_from_fields(self) -> None:
        # Act
        settings = DatabaseSettings(host="db", port=5433, user="chat", password="pw", db="sync")

        # Assert
        assert settings.async_database_url == "postgresql+asyncpg://chat:pw@db:5433/sync"


class TestSharedSettingsValidation:
    """Test suite for fields inherited from BaseSettings."""

    def test_log_level_should_be_normalized(self) -> None:
        assert Settings(log_level=" debug ").log_level == "DEBUG"

    def test_unknown_log_level_should_raise(self) -> None:
        with pytest.raises(PydanticValidationError):
            Settings(log_level="LOUD")

    def test_unknown_environment_should_raise(self) -> None:
        with pytest.raises(PydanticValidationError):
            Settings(environment="moon")

    @pytest.mark.parametrize(
        "debug, environment, expected",
        [
            (True, "development", True),
            (True, "production", False),
            (False, "development", False),
        ],
    )
    def test_expose_error_details(self, debug, environment, expected) -> None:
        assert Settings(debug=debug, environment=environment).expose_error_details is expected
