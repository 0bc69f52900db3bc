"""Tests for monitoring settings with Pydantic validation."""

import pytest
from pydantic import ValidationError

from selfheal.core.config import MonitoringSettings, get_settings, reset_settings


def test_defaults():
    """Test the documented defaults."""
    settings = MonitoringSettings(_env_file=None)

    assert settings.max_stored_errors == 100
    assert settings.snapshot_size == 20
    assert settings.snapshot_max_age_hours == 24
    assert settings.recovery_max_attempts == 3
    assert settings.recovery_base_delay_seconds == 2.0
    assert settings.recovery_backoff_step_seconds == 1.0
    assert settings.health_window_seconds == 300


def test_env_detected_under_pytest(monkeypatch):
    """Test that the environment defaults to testing when running under pytest."""
    monkeypatch.delenv("SELFHEAL_ENV", raising=False)

    settings = MonitoringSettings(_env_file=None)

    assert settings.env == "testing"
    assert not settings.is_development()


def test_settings_from_environment(monkeypatch):
    """Test that SELFHEAL_ prefixed variables are read."""
    monkeypatch.setenv("SELFHEAL_MAX_STORED_ERRORS", "20")
    monkeypatch.setenv("SELFHEAL_SNAPSHOT_SIZE", "10")
    monkeypatch.setenv("SELFHEAL_STORAGE_BACKEND", "FILE")
    monkeypatch.setenv("SELFHEAL_LOG_LEVEL", "debug")

    settings = MonitoringSettings(_env_file=None)

    assert settings.max_stored_errors == 20
    assert settings.snapshot_size == 10
    assert settings.storage_backend == "file"
    assert settings.log_level == "DEBUG"


def test_invalid_env():
    with pytest.raises(ValidationError) as exc_info:
        MonitoringSettings(_env_file=None, env="invalid_env")

    assert "ENV must be one of" in str(exc_info.value)


def test_invalid_log_level():
    with pytest.raises(ValidationError) as exc_info:
        MonitoringSettings(_env_file=None, log_level="LOUD")

    assert "LOG_LEVEL must be one of" in str(exc_info.value)


def test_invalid_storage_backend():
    with pytest.raises(ValidationError) as exc_info:
        MonitoringSettings(_env_file=None, storage_backend="sqlite")

    assert "STORAGE_BACKEND must be one of" in str(exc_info.value)


def test_snapshot_cannot_exceed_store():
    """Test that the persisted snapshot must fit in the live store."""
    with pytest.raises(ValidationError) as exc_info:
        MonitoringSettings(_env_file=None, max_stored_errors=10, snapshot_size=20)

    assert "SNAPSHOT_SIZE" in str(exc_info.value)


@pytest.mark.parametrize(
    "field,value",
    [
        ("max_stored_errors", 0),
        ("recovery_max_attempts", 0),
        ("recovery_base_delay_seconds", -1),
        ("recovery_backoff_step_seconds", 0),
        ("capture_max_messages", 0),
    ],
)
def test_bounds(field, value):
    with pytest.raises(ValidationError):
        MonitoringSettings(_env_file=None, **{field: value})


def test_singleton_and_reset(monkeypatch):
    """Test that get_settings caches until reset_settings is called."""
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("SELFHEAL_RECOVERY_MAX_ATTEMPTS", "7")
    assert get_settings().recovery_max_attempts == first.recovery_max_attempts

    reset_settings()
    assert get_settings().recovery_max_attempts == 7
