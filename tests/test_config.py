"""
Unit tests for configuration module.
"""
import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings, reset_settings


def test_settings_defaults():
    """Test default configuration values."""
    settings = get_settings()
    assert settings.app_name == "Bank Statement Converter"
    assert settings.host == "0.0.0.0"
    assert settings.port == 8000
    assert settings.log_level == "INFO"
    assert settings.openai_api_key is None
    assert settings.openai_model == "gpt-4o-mini"
    assert settings.extraction_mode == "document"
    assert settings.pages_per_chunk == 2
    assert settings.rate_limit_backoff == 32.0
    assert settings.max_chunk_retries == 2
    assert settings.default_currency == "INR"
    assert settings.default_to_credit is True


def test_settings_from_environment(monkeypatch):
    """Environment variables override defaults."""
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setenv("PAGES_PER_CHUNK", "3")
    monkeypatch.setenv("DEFAULT_TO_CREDIT", "false")
    monkeypatch.setenv("log_level", "debug")

    settings = get_settings()
    assert settings.openai_api_key == "test-key"
    assert settings.pages_per_chunk == 3
    assert settings.default_to_credit is False
    assert settings.log_level == "DEBUG"


def test_pacing_delay_follows_mode(monkeypatch):
    """Text mode uses the longer pacing delay."""
    assert get_settings().pacing_delay == 2.0

    monkeypatch.setenv("EXTRACTION_MODE", "text")
    reset_settings()
    assert get_settings().pacing_delay == 5.0


def test_max_upload_bytes():
    settings = Settings(MAX_UPLOAD_MB=2)
    assert settings.max_upload_bytes == 2 * 1024 * 1024


def test_settings_validation_port(monkeypatch):
    """Test port validation."""
    monkeypatch.setenv("PORT", "99999")

    with pytest.raises(ValidationError):
        get_settings()


def test_settings_validation_log_level(monkeypatch):
    """Test log level validation."""
    monkeypatch.setenv("LOG_LEVEL", "INVALID")

    with pytest.raises(ValidationError):
        get_settings()


@pytest.mark.parametrize("env_name,value", [
    ("PAGES_PER_CHUNK", "0"),
    ("MAX_CHUNK_RETRIES", "-1"),
    ("MAX_CHUNK_RETRIES", "11"),
    ("RATE_LIMIT_BACKOFF", "-5"),
    ("EXTRACTION_MODE", "ocr"),
    ("MAX_UPLOAD_MB", "0"),
])
def test_settings_validation_extraction(monkeypatch, env_name, value):
    """Out-of-range extraction settings are rejected."""
    monkeypatch.setenv(env_name, value)

    with pytest.raises(ValidationError):
        get_settings()


def test_settings_singleton():
    """Test settings singleton behavior."""
    settings1 = get_settings()
    settings2 = get_settings()
    assert settings1 is settings2

    reset_settings()
    assert get_settings() is not settings1
