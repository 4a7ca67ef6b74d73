"""Runtime configuration loaded from environment variables."""

import os
from dataclasses import dataclass
from datetime import timedelta, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .llm import DEFAULT_MODEL


@dataclass
class CompanionConfig:
    """Configuration for the companion bot.

    Attributes:
        telegram_token: Bot token.
        admin_chat_id: Only this chat may talk to the bot when set.
        groq_api_key: Key for the text model.
        model: Groq model name.
        home: Directory for the database, logs, media and persona files.
        timezone: IANA name of the personas' local timezone; None for system.
        active_window_minutes: How long after a message a user counts as active.
        reschedule_delay_minutes: How far due events move while a user is active.
        memory_recency_days: Width of the recency tier of the memory selector.
        event_max_attempts: Failed executions before an event is cancelled.
        debounce_seconds: Quiet period before buffered messages are answered.
        reconcile_every: Reconcile memory after every Nth user message.
        sweep_interval_seconds: How often due events are processed.
        plan_hour: Local hour at which daily plans are generated.
        consolidation_hour: Local hour of the daily memory consolidation.
        kie_api_key: Image generation key; images are disabled without it.
        elevenlabs_api_key: Voice generation key; voice is disabled without it.
        elevenlabs_voice_id: Voice to synthesize with.
    """

    telegram_token: str = ""
    admin_chat_id: str | None = None
    groq_api_key: str = ""
    model: str = DEFAULT_MODEL
    home: Path | None = None
    timezone: str | None = None
    active_window_minutes: int = 15
    reschedule_delay_minutes: int = 30
    memory_recency_days: int = 3
    event_max_attempts: int = 3
    debounce_seconds: float = 10.0
    reconcile_every: int = 10
    sweep_interval_seconds: float = 60.0
    plan_hour: int = 6
    consolidation_hour: int = 3
    kie_api_key: str = ""
    elevenlabs_api_key: str = ""
    elevenlabs_voice_id: str = ""

    def __post_init__(self) -> None:
        if self.home is None:
            self.home = Path.home() / ".companion"
        self.home = Path(self.home).expanduser()

        for name in (
            "active_window_minutes",
            "reschedule_delay_minutes",
            "memory_recency_days",
            "event_max_attempts",
            "reconcile_every",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.debounce_seconds < 0 or self.sweep_interval_seconds <= 0:
            raise ValueError("debounce and sweep intervals must be positive")
        for name in ("plan_hour", "consolidation_hour"):
            if not 0 <= getattr(self, name) <= 23:
                raise ValueError(f"{name} must be between 0 and 23")
        if self.timezone:
            try:
                ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(f"Unknown timezone: {self.timezone}") from e

    @property
    def db_path(self) -> Path:
        return self.home / "companion.db"  # type: ignore[operator]

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"  # type: ignore[operator]

    @property
    def media_dir(self) -> Path:
        return self.home / "media"  # type: ignore[operator]

    @property
    def persona_dir(self) -> Path:
        return self.home / "personas"  # type: ignore[operator]

    @property
    def tz(self) -> tzinfo | None:
        return ZoneInfo(self.timezone) if self.timezone else None

    @property
    def active_window(self) -> timedelta:
        return timedelta(minutes=self.active_window_minutes)

    @property
    def reschedule_delay(self) -> timedelta:
        return timedelta(minutes=self.reschedule_delay_minutes)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def config_from_env() -> CompanionConfig:
    """Load configuration from environment variables.

    Raises:
        ValueError: If a numeric variable or the timezone is invalid.
    """
    home = os.getenv("COMPANION_HOME")
    return CompanionConfig(
        telegram_token=os.getenv("TELEGRAM_TOKEN", ""),
        admin_chat_id=os.getenv("TELEGRAM_ADMIN_ID") or None,
        groq_api_key=os.getenv("GROQ_API_KEY", ""),
        model=os.getenv("GROQ_MODEL", DEFAULT_MODEL),
        home=Path(home) if home else None,
        timezone=os.getenv("COMPANION_TIMEZONE") or None,
        active_window_minutes=_int_env("ACTIVE_WINDOW_MINUTES", 15),
        reschedule_delay_minutes=_int_env("RESCHEDULE_DELAY_MINUTES", 30),
        memory_recency_days=_int_env("MEMORY_RECENCY_DAYS", 3),
        event_max_attempts=_int_env("EVENT_MAX_ATTEMPTS", 3),
        debounce_seconds=_float_env("CHAT_DEBOUNCE_SECONDS", 10.0),
        reconcile_every=_int_env("RECONCILE_EVERY", 10),
        sweep_interval_seconds=_float_env("EVENT_SWEEP_SECONDS", 60.0),
        plan_hour=_int_env("DAILY_PLAN_HOUR", 6),
        consolidation_hour=_int_env("CONSOLIDATION_HOUR", 3),
        kie_api_key=os.getenv("KIE_API_KEY", ""),
        elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY", ""),
        elevenlabs_voice_id=os.getenv("ELEVENLABS_VOICE_ID", ""),
    )
