"""SQLite storage for scheduled events."""

import sqlite3
from datetime import datetime

from ..storage import Database, from_iso, to_iso, utcnow
from .models import EventSource, EventStatus, EventType, ScheduledEvent

_COLUMNS = (
    "id, persona_id, type, context_prompt, scheduled_at, status, attempts, "
    "source, created_at, updated_at"
)

_DUE_STATUSES = (EventStatus.PENDING.value, EventStatus.RESCHEDULED.value)
_CLAIMABLE_STATUSES = (*_DUE_STATUSES, EventStatus.FAILED.value)
_TERMINAL_STATUSES = (EventStatus.SENT.value, EventStatus.CANCELLED.value)


class EventStore:
    """Persistent storage for scheduled events.

    Status changes that guard execution are conditional updates so two
    workers can never both run the same event.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, event: ScheduledEvent, now: datetime | None = None) -> ScheduledEvent:
        """Insert an event and return it with its id."""
        stamp = to_iso(now or utcnow())
        cursor = self.db.conn.execute(
            """
            INSERT INTO scheduled_events (persona_id, type, context_prompt,
                                          scheduled_at, status, attempts,
                                          source, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.persona_id,
                event.type.value,
                event.context_prompt,
                to_iso(event.scheduled_at),
                event.status.value,
                event.attempts,
                event.source.value,
                stamp,
                stamp,
            ),
        )
        self.db.commit()
        return self.get(cursor.lastrowid)  # type: ignore[arg-type,return-value]

    def get(self, event_id: int) -> ScheduledEvent | None:
        row = self.db.conn.execute(
            f"SELECT {_COLUMNS} FROM scheduled_events WHERE id = ?", (event_id,)
        ).fetchone()
        return self._row_to_event(row) if row else None

    def due(self, now: datetime | None = None, limit: int | None = None) -> list[ScheduledEvent]:
        """Get pending or rescheduled events whose time has come, oldest first."""
        query = (
            f"SELECT {_COLUMNS} FROM scheduled_events "
            "WHERE status IN (?, ?) AND scheduled_at <= ? ORDER BY scheduled_at, id"
        )
        params: list = [*_DUE_STATUSES, to_iso(now or utcnow())]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        cursor = self.db.conn.execute(query, params)
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def claim(self, event_id: int) -> bool:
        """Move an event to PROCESSING if nobody else has.

        Returns:
            True if this caller now owns the event.
        """
        cursor = self.db.conn.execute(
            "UPDATE scheduled_events SET status = ?, updated_at = ? "
            "WHERE id = ? AND status IN (?, ?, ?)",
            (EventStatus.PROCESSING.value, to_iso(utcnow()), event_id, *_CLAIMABLE_STATUSES),
        )
        self.db.commit()
        return cursor.rowcount == 1

    def reschedule(self, event_id: int, new_time: datetime) -> bool:
        """Push an event back and mark it RESCHEDULED."""
        cursor = self.db.conn.execute(
            "UPDATE scheduled_events SET scheduled_at = ?, status = ?, updated_at = ? "
            "WHERE id = ?",
            (to_iso(new_time), EventStatus.RESCHEDULED.value, to_iso(utcnow()), event_id),
        )
        self.db.commit()
        return cursor.rowcount > 0

    def mark(self, event_id: int, status: EventStatus) -> bool:
        cursor = self.db.conn.execute(
            "UPDATE scheduled_events SET status = ?, updated_at = ? WHERE id = ?",
            (status.value, to_iso(utcnow()), event_id),
        )
        self.db.commit()
        return cursor.rowcount > 0

    def record_attempt(self, event_id: int) -> int:
        """Count one execution attempt and return the new total."""
        self.db.conn.execute(
            "UPDATE scheduled_events SET attempts = attempts + 1 WHERE id = ?", (event_id,)
        )
        self.db.commit()
        row = self.db.conn.execute(
            "SELECT attempts FROM scheduled_events WHERE id = ?", (event_id,)
        ).fetchone()
        return row["attempts"] if row else 0

    def cancel(self, event_id: int) -> bool:
        """Cancel an event that has not reached a terminal state."""
        cursor = self.db.conn.execute(
            "UPDATE scheduled_events SET status = ?, updated_at = ? "
            "WHERE id = ? AND status NOT IN (?, ?)",
            (EventStatus.CANCELLED.value, to_iso(utcnow()), event_id, *_TERMINAL_STATUSES),
        )
        self.db.commit()
        return cursor.rowcount > 0

    def recover_interrupted(self) -> int:
        """Return events left PROCESSING or FAILED by a previous run to PENDING."""
        cursor = self.db.conn.execute(
            "UPDATE scheduled_events SET status = ?, updated_at = ? WHERE status IN (?, ?)",
            (
                EventStatus.PENDING.value,
                to_iso(utcnow()),
                EventStatus.PROCESSING.value,
                EventStatus.FAILED.value,
            ),
        )
        self.db.commit()
        return cursor.rowcount

    def delete_pending_between(self, persona_id: int, start: datetime, end: datetime) -> int:
        """Delete a persona's planned events still pending in [start, end).

        Rescheduled events and in-conversation follow-ups are kept.

        Returns:
            Number of events deleted.
        """
        cursor = self.db.conn.execute(
            "DELETE FROM scheduled_events WHERE persona_id = ? AND status = ? AND source = ? "
            "AND scheduled_at >= ? AND scheduled_at < ?",
            (
                persona_id,
                EventStatus.PENDING.value,
                EventSource.PLAN.value,
                to_iso(start),
                to_iso(end),
            ),
        )
        self.db.commit()
        return cursor.rowcount

    def list_for_persona(
        self, persona_id: int, status: EventStatus | None = None
    ) -> list[ScheduledEvent]:
        """Get a persona's events in schedule order."""
        query = f"SELECT {_COLUMNS} FROM scheduled_events WHERE persona_id = ?"
        params: list = [persona_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY scheduled_at, id"
        cursor = self.db.conn.execute(query, params)
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def _row_to_event(self, row: sqlite3.Row) -> ScheduledEvent:
        return ScheduledEvent(
            id=row["id"],
            persona_id=row["persona_id"],
            type=EventType(row["type"]),
            context_prompt=row["context_prompt"],
            scheduled_at=from_iso(row["scheduled_at"]),  # type: ignore[arg-type]
            status=EventStatus(row["status"]),
            attempts=row["attempts"],
            source=EventSource(row["source"]),
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
        )
