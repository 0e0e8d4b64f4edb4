"""
Unit tests for Settings loading and validation.
"""

import pytest
from pydantic import ValidationError

from unblocked.core.config import Settings, get_settings_instance, reset_settings_instance


class TestSettings:
    def test_defaults(self):
        settings = Settings(UNBLOCKED_ENVIRONMENT="development")

        assert settings.base_path == "/api/unblocked"
        assert settings.rate_limit_window == 10
        assert settings.rate_limit_max == 100
        assert settings.rate_limit_storage == "memory"
        assert settings.rate_limit_enabled is None
        assert settings.is_production is False

    def test_reads_prefixed_environment_variables(self, monkeypatch):
        monkeypatch.setenv("UNBLOCKED_URL", "https://chat.example.com")
        monkeypatch.setenv("UNBLOCKED_RATE_LIMIT_MAX", "5")
        monkeypatch.setenv("UNBLOCKED_LOG_LEVEL", "debug")

        settings = Settings()

        assert settings.base_url == "https://chat.example.com"
        assert settings.rate_limit_max == 5
        assert settings.log_level == "DEBUG"

    def test_production_flag(self):
        assert Settings(UNBLOCKED_ENVIRONMENT="Production").is_production is True

    @pytest.mark.parametrize(
        "field,value",
        [
            ("UNBLOCKED_LOG_LEVEL", "verbose"),
            ("UNBLOCKED_LOG_FORMAT", "xml"),
            ("UNBLOCKED_ENVIRONMENT", "qa"),
            ("UNBLOCKED_RATE_LIMIT_STORAGE", "redis"),
        ],
    )
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            Settings(**{field: value})

    def test_trusted_origin_list_splits_and_strips(self):
        settings = Settings(UNBLOCKED_TRUSTED_ORIGINS="https://a.example.com, https://b.example.com")

        assert settings.trusted_origin_list == ["https://a.example.com", "https://b.example.com"]

    def test_trusted_origin_list_empty_when_unset(self):
        assert Settings().trusted_origin_list == []

    def test_redis_enabled_follows_url(self):
        assert Settings().redis_enabled is False
        assert Settings(UNBLOCKED_REDIS_URL="redis://localhost:6379").redis_enabled is True


class TestSettingsInstance:
    def test_instance_is_cached(self):
        assert get_settings_instance() is get_settings_instance()

    def test_reset_rereads_environment(self, monkeypatch):
        first = get_settings_instance()
        monkeypatch.setenv("UNBLOCKED_APP_NAME", "Renamed")
        reset_settings_instance()

        second = get_settings_instance()

        assert second is not first
        assert second.app_name == "Renamed"
