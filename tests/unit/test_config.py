"""Unit tests for configuration module."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from src.core.config import Settings, get_settings

REQUIRED_ENV = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SECRET_KEY": "test-secret",
}


class TestSettings:
    """Tests for Settings class."""

    def test_settings_loads_from_environment(self) -> None:
        """Test that Settings loads values from environment variables."""
        env_vars = {
            **REQUIRED_ENV,
            "APP_NAME": "test-app",
            "APP_ENV": "testing",
            "DEBUG": "true",
            "HOST": "127.0.0.1",
            "PORT": "9000",
            "CASHFREE_APP_ID": "cf-app",
            "CASHFREE_SECRET_KEY": "cf-secret",
            "CASHFREE_ENVIRONMENT": "sandbox",
            "GATEWAY_TIMEOUT_SECONDS": "4.5",
            "EVENT_DISPLAY_NAME": "Test Fest",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings()

            assert settings.app_name == "test-app"
            assert settings.app_env == "testing"
            assert settings.debug is True
            assert settings.host == "127.0.0.1"
            assert settings.port == 9000
            assert settings.cashfree_environment == "sandbox"
            assert settings.gateway_timeout_seconds == 4.5
            assert settings.event_display_name == "Test Fest"
            assert settings.is_gateway_configured is True

    def test_settings_cors_origins_list(self) -> None:
        """Test that CORS origins are correctly parsed into a list."""
        env_vars = {
            **REQUIRED_ENV,
            "CORS_ORIGINS": "http://localhost:3000, http://example.com , http://test.com",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            origins = Settings().cors_origins_list

            assert origins == ["http://localhost:3000", "http://example.com", "http://test.com"]

    def test_settings_is_production_property(self) -> None:
        """Test the is_production property."""
        with patch.dict(os.environ, {**REQUIRED_ENV, "APP_ENV": "production"}, clear=True):
            assert Settings().is_production is True

        with patch.dict(os.environ, {**REQUIRED_ENV, "APP_ENV": "development"}, clear=True):
            assert Settings().is_production is False

    def test_settings_default_values(self) -> None:
        """Test that default values are applied correctly."""
        with patch.dict(os.environ, REQUIRED_ENV, clear=True):
            settings = Settings()

            assert settings.app_name == "event-registration-backend"
            assert settings.app_env == "development"
            assert settings.debug is False
            assert settings.port == 8080
            assert settings.cashfree_environment == "production"
            assert settings.cashfree_fallback_environment is None
            assert settings.cashfree_verify_webhooks is True
            assert settings.gateway_timeout_seconds == 10.0
            assert settings.rate_limit_general_requests == 100
            assert settings.rate_limit_general_window_seconds == 900
            assert settings.rate_limit_checkout_requests == 10
            assert settings.rate_limit_checkout_window_seconds == 3600
            assert settings.is_gateway_configured is False

    def test_fallback_equal_to_primary_is_dropped(self) -> None:
        env_vars = {
            **REQUIRED_ENV,
            "CASHFREE_ENVIRONMENT": "production",
            "CASHFREE_FALLBACK_ENVIRONMENT": "production",
        }
        with patch.dict(os.environ, env_vars, clear=True):
            assert Settings().cashfree_fallback_environment is None

        env_vars["CASHFREE_FALLBACK_ENVIRONMENT"] = "sandbox"
        with patch.dict(os.environ, env_vars, clear=True):
            assert Settings().cashfree_fallback_environment == "sandbox"

    def test_unknown_gateway_environment_rejected(self) -> None:
        with patch.dict(os.environ, {**REQUIRED_ENV, "CASHFREE_ENVIRONMENT": "staging"}, clear=True):
            with pytest.raises(ValidationError):
                Settings()

    def test_ticket_base_url_strips_trailing_slash(self) -> None:
        with patch.dict(os.environ, {**REQUIRED_ENV, "FRONTEND_URL": "https://fest.example.com/"}, clear=True):
            assert Settings().ticket_base_url == "https://fest.example.com"

    def test_settings_validation_error_missing_required(self) -> None:
        """Test that validation errors are raised for missing required fields."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings()

            error_fields = [e["loc"][0] for e in exc_info.value.errors()]
            assert "supabase_url" in error_fields
            assert "supabase_secret_key" in error_fields


class TestGetSettings:
    """Tests for get_settings function."""

    def test_get_settings_returns_cached_singleton(self) -> None:
        """Test that get_settings returns the same cached instance."""
        get_settings.cache_clear()

        settings1 = get_settings()
        settings2 = get_settings()

        assert isinstance(settings1, Settings)
        assert settings1 is settings2

        get_settings.cache_clear()

    def test_get_settings_cache_can_be_cleared(self) -> None:
        """Test that cache can be cleared to reload settings."""
        get_settings.cache_clear()

        settings1 = get_settings()
        get_settings.cache_clear()
        settings2 = get_settings()

        assert settings1 is not settings2

        get_settings.cache_clear()
