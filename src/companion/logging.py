"""JSONL logging for observability."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class LogEntry:
    """A single log entry."""

    timestamp: str
    event: str
    chat_id: str | None = None
    persona_id: int | None = None
    event_id: int | None = None
    duration_ms: float | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {} and v != []}


class JSONLLogger:
    """Logger that writes structured domain events in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "events.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".companion" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def _rotate_if_needed(self) -> None:
        """Rotate log file if it exceeds max size."""
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

    def log(
        self,
        event: str,
        *,
        chat_id: str | None = None,
        persona_id: int | None = None,
        event_id: int | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            chat_id=chat_id,
            persona_id=persona_id,
            event_id=event_id,
            duration_ms=duration_ms,
            error=error,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_memory_reconciled(
        self, persona_id: int, added: int, updated: int, removed: int
    ) -> None:
        """Log an applied reconciliation diff."""
        self.log(
            "memory_reconciled",
            persona_id=persona_id,
            added=added,
            updated=updated,
            removed=removed,
        )

    def log_memory_consolidated(self, persona_id: int, updated: int, deleted: int) -> None:
        """Log a finished consolidation pass."""
        self.log(
            "memory_consolidated",
            persona_id=persona_id,
            updated=updated,
            deleted=deleted,
        )

    def log_scheduled_event(
        self,
        status: str,
        event_id: int | None,
        persona_id: int,
        *,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log a scheduled event transition (sent, deferred, failed, ...)."""
        self.log(
            f"event_{status}",
            persona_id=persona_id,
            event_id=event_id,
            error=error,
            **extra,
        )

    def log_chat_reply(
        self,
        chat_id: str,
        persona_id: int,
        parts: int,
        duration_ms: float | None = None,
    ) -> None:
        """Log a reply sent to a user."""
        self.log(
            "chat_reply",
            chat_id=chat_id,
            persona_id=persona_id,
            duration_ms=duration_ms,
            parts=parts,
        )


# Global logger instance
_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Configure and return the global logger."""
    global _logger
    _logger = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _logger
