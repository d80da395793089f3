"""Application Configuration — verifies defaults and environment overrides."""

import pytest
from pydantic import ValidationError

from apiframe.config import Settings, get_settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("APIFRAME_REQUEST_TIMEOUT_SECONDS", raising=False)
    settings = Settings(_env_file=None)

    assert settings.request_timeout_seconds == 10.0
    assert settings.max_request_body_bytes == 1_048_576
    assert settings.log_level == "INFO"


def test_env_override(monkeypatch):
    monkeypatch.setenv("APIFRAME_REQUEST_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("apiframe_max_request_body_bytes", "1024")

    settings = Settings(_env_file=None)

    assert settings.request_timeout_seconds == 2.5
    assert settings.max_request_body_bytes == 1024


def test_timeout_must_be_positive(monkeypatch):
    monkeypatch.setenv("APIFRAME_REQUEST_TIMEOUT_SECONDS", "0")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_get_settings_cached():
    assert get_settings() is get_settings()
