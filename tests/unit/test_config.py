"""Unit tests for configuration module."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from sage.core.config import Settings, get_settings

REQUIRED_ENV = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SECRET_KEY": "test-secret",
    "SUPABASE_SIGNING_KEY_JWK": '{"kty": "EC"}',
}


class TestSettings:
    """Tests for Settings class."""

    def test_settings_loads_from_environment(self) -> None:
        """Test that Settings loads values from environment variables."""
        env_vars = {
            **REQUIRED_ENV,
            "APP_NAME": "test-app",
            "PORT": "9000",
            "SUMMARY_MODEL": "anthropic/claude-3-haiku",
            "LIFECYCLE_MAX_ATTEMPTS": "5",
            "LIFECYCLE_FINALIZE_ON_FAILURE": "false",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings()

            assert settings.app_name == "test-app"
            assert settings.port == 9000
            assert settings.summary_model == "anthropic/claude-3-haiku"
            assert settings.lifecycle_max_attempts == 5
            assert settings.lifecycle_finalize_on_failure is False

    def test_settings_defaults(self) -> None:
        """Test the defaults for the credit and lifecycle settings."""
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = Settings(_env_file=None)

            assert settings.summary_model == "openai/gpt-4o-mini"
            assert settings.summary_temperature == 0.7
            assert settings.summary_max_tokens == 1024
            assert settings.profile_max_tokens == 300
            assert settings.tokens_per_credit == 10
            assert settings.free_credits == 1000
            assert settings.summary_min_credits == 5
            assert settings.lifecycle_max_attempts == 3
            assert settings.lifecycle_finalize_on_failure is True
            assert settings.lifecycle_resume_on_startup is True

    def test_settings_cors_origins_list(self) -> None:
        """Test that CORS origins are correctly parsed into a list."""
        env_vars = {
            **REQUIRED_ENV,
            "CORS_ORIGINS": "http://localhost:3000, http://example.com , ,http://test.com",
        }

        with patch.dict(os.environ, env_vars, clear=False):
            settings = Settings()

            assert settings.cors_origins_list == [
                "http://localhost:3000",
                "http://example.com",
                "http://test.com",
            ]

    @pytest.mark.parametrize("key, expected", [("sk-or-abc", True), ("", False), ("   ", False)])
    def test_has_llm_credentials(self, key: str, expected: bool) -> None:
        """Test that a blank API key counts as not configured."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "OPENROUTER_API_KEY": key}, clear=False):
            assert Settings().has_llm_credentials is expected

    def test_settings_requires_supabase_values(self) -> None:
        """Test that missing required settings raise a validation error."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)


class TestGetSettings:
    """Tests for get_settings function."""

    def test_get_settings_is_cached(self) -> None:
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
