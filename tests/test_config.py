"""Tests for configuration."""

import pytest

from r2r.config import AppSettings, GeminiSettings, StorageSettings, get_settings, validate_all_settings


class TestSettings:
    def test_app_defaults(self):
        settings = AppSettings()
        assert settings.default_currency == "USD"
        assert settings.prediction_history_size == 50
        assert settings.chat_history_size == 30
        assert settings.dashboard_recent_count == 5

    def test_supported_formats_list(self):
        settings = AppSettings(supported_image_formats="JPG, png")
        assert settings.supported_formats_list == ["jpg", "png"]

    def test_upload_size_in_bytes(self):
        assert AppSettings(max_upload_size_mb=2).max_upload_size_bytes == 2 * 1024 * 1024

    def test_gemini_from_environment(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        monkeypatch.setenv("GEMINI_MAX_RETRIES", "5")
        settings = GeminiSettings()
        assert settings.api_key == "env-key"
        assert settings.max_retries == 5

    def test_storage_path_cannot_be_directory(self, tmp_path):
        with pytest.raises(ValueError):
            StorageSettings(data_path=str(tmp_path))

    def test_storage_from_environment(self, monkeypatch):
        monkeypatch.setenv("R2R_STORAGE_BACKEND", "memory")
        assert StorageSettings().backend == "memory"

    def test_validate_all_settings_reports_missing_key(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        get_settings.cache_clear()
        try:
            status = validate_all_settings()
        finally:
            get_settings.cache_clear()

        assert status["gemini"] is False
        assert "gemini_error" in status
        assert status["app"] is True
