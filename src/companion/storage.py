"""SQLite database shared by the companion stores."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id              TEXT NOT NULL UNIQUE,
    name                 TEXT NOT NULL DEFAULT '',
    last_interaction_at  TEXT
);

CREATE TABLE IF NOT EXISTS personas (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id          INTEGER REFERENCES users(id) ON DELETE SET NULL,
    name             TEXT NOT NULL,
    system_prompt    TEXT NOT NULL DEFAULT '',
    physical_traits  TEXT NOT NULL DEFAULT '',
    wake_time        TEXT NOT NULL DEFAULT '08:00',
    sleep_time       TEXT NOT NULL DEFAULT '23:00',
    voice_frequency  TEXT NOT NULL DEFAULT 'moderate',
    image_frequency  TEXT NOT NULL DEFAULT 'moderate',
    is_active        INTEGER NOT NULL DEFAULT 1,
    created_at       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS facts (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    persona_id            INTEGER NOT NULL REFERENCES personas(id) ON DELETE CASCADE,
    target                TEXT NOT NULL CHECK (target IN ('user', 'self')),
    category              TEXT NOT NULL,
    value                 TEXT NOT NULL,
    context               TEXT,
    importance            INTEGER NOT NULL DEFAULT 5 CHECK (importance BETWEEN 1 AND 10),
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL,
    last_consolidated_at  TEXT
);
CREATE INDEX IF NOT EXISTS idx_facts_persona_category ON facts(persona_id, category);
CREATE INDEX IF NOT EXISTS idx_facts_persona_updated ON facts(persona_id, updated_at);

CREATE TABLE IF NOT EXISTS scheduled_events (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    persona_id      INTEGER NOT NULL REFERENCES personas(id) ON DELETE CASCADE,
    type            TEXT NOT NULL
                    CHECK (type IN ('text', 'image_generation', 'wake_up', 'sleep')),
    context_prompt  TEXT NOT NULL DEFAULT '',
    scheduled_at    TEXT NOT NULL,
    status          TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'processing', 'rescheduled',
                                      'sent', 'failed', 'cancelled')),
    attempts        INTEGER NOT NULL DEFAULT 0,
    source          TEXT NOT NULL DEFAULT 'plan' CHECK (source IN ('plan', 'chat')),
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_status_scheduled ON scheduled_events(status, scheduled_at);

CREATE TABLE IF NOT EXISTS messages (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id           INTEGER REFERENCES users(id) ON DELETE CASCADE,
    persona_id        INTEGER NOT NULL REFERENCES personas(id) ON DELETE CASCADE,
    sender_type       TEXT NOT NULL CHECK (sender_type IN ('user', 'bot')),
    content           TEXT NOT NULL DEFAULT '',
    image_path        TEXT,
    is_event_trigger  INTEGER NOT NULL DEFAULT 0,
    created_at        TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_messages_persona_created ON messages(persona_id, created_at);
"""


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Convert to an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime as a UTC ISO-8601 string.

    Every timestamp column goes through this helper so string comparison
    matches time order.
    """
    return as_utc(value).isoformat(timespec="seconds")


def from_iso(value: str | None) -> datetime | None:
    """Parse a timestamp written by to_iso()."""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Database:
    """Single SQLite connection shared by all stores.

    The bot runs on one asyncio loop, so a single connection is enough;
    stores issue short targeted statements and commit after each write
    unless it is grouped in a transaction() block.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize with a database path.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._depth = 0

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    def init_db(self) -> None:
        """Create all tables and indexes if they don't exist."""
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def commit(self) -> None:
        """Commit pending writes unless a transaction() block is open."""
        if self._depth == 0:
            self.conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group the writes made inside the block into a single commit.

        The block must not await: the connection is shared by every task on
        the loop. If the block raises, everything it wrote is rolled back.
        """
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self.conn.rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            self.conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
