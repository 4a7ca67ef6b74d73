"""Tests for configuration loading."""

from datetime import timedelta
from pathlib import Path

import pytest

from companion.config import CompanionConfig, config_from_env
from companion.llm import DEFAULT_MODEL

ENV_VARS = [
    "TELEGRAM_TOKEN", "TELEGRAM_ADMIN_ID", "GROQ_API_KEY", "GROQ_MODEL", "COMPANION_HOME",
    "COMPANION_TIMEZONE", "ACTIVE_WINDOW_MINUTES", "RESCHEDULE_DELAY_MINUTES",
    "MEMORY_RECENCY_DAYS", "EVENT_MAX_ATTEMPTS", "CHAT_DEBOUNCE_SECONDS", "RECONCILE_EVERY",
    "EVENT_SWEEP_SECONDS", "DAILY_PLAN_HOUR", "CONSOLIDATION_HOUR", "KIE_API_KEY",
    "ELEVENLABS_API_KEY", "ELEVENLABS_VOICE_ID",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestConfigFromEnv:
    def test_defaults(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("COMPANION_HOME", str(tmp_path))
        config = config_from_env()

        assert config.model == DEFAULT_MODEL
        assert config.admin_chat_id is None
        assert config.active_window == timedelta(minutes=15)
        assert config.reschedule_delay == timedelta(minutes=30)
        assert config.event_max_attempts == 3
        assert config.db_path == tmp_path / "companion.db"
        assert config.persona_dir == tmp_path / "personas"
        assert config.tz is None

    def test_overrides(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("COMPANION_HOME", str(tmp_path))
        monkeypatch.setenv("TELEGRAM_ADMIN_ID", "42")
        monkeypatch.setenv("COMPANION_TIMEZONE", "Asia/Kuala_Lumpur")
        monkeypatch.setenv("ACTIVE_WINDOW_MINUTES", "5")
        monkeypatch.setenv("CHAT_DEBOUNCE_SECONDS", "2.5")
        monkeypatch.setenv("DAILY_PLAN_HOUR", "7")

        config = config_from_env()

        assert config.admin_chat_id == "42"
        assert config.tz is not None
        assert config.active_window == timedelta(minutes=5)
        assert config.debounce_seconds == 2.5
        assert config.plan_hour == 7

    def test_blank_numbers_use_defaults(self, monkeypatch):
        monkeypatch.setenv("RECONCILE_EVERY", "  ")
        assert config_from_env().reconcile_every == 10

    def test_invalid_integer(self, monkeypatch):
        monkeypatch.setenv("EVENT_MAX_ATTEMPTS", "three")
        with pytest.raises(ValueError, match="EVENT_MAX_ATTEMPTS"):
            config_from_env()


class TestValidation:
    def test_unknown_timezone(self, tmp_path: Path):
        with pytest.raises(ValueError, match="timezone"):
            CompanionConfig(home=tmp_path, timezone="Mars/Olympus_Mons")

    def test_hour_out_of_range(self, tmp_path: Path):
        with pytest.raises(ValueError, match="plan_hour"):
            CompanionConfig(home=tmp_path, plan_hour=24)

    def test_zero_attempts(self, tmp_path: Path):
        with pytest.raises(ValueError, match="event_max_attempts"):
            CompanionConfig(home=tmp_path, event_max_attempts=0)

    def test_home_expanded(self):
        assert CompanionConfig(home=Path("~/x")).home == Path.home() / "x"
