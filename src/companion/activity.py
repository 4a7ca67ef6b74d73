"""Tracks when each user last talked to the bot."""

from datetime import datetime, timedelta

from .storage import Database, as_utc, from_iso, to_iso, utcnow


class ActivityTracker:
    """Reads and writes the last-interaction timestamp of users.

    The timestamp lives on the users row and only ever holds the latest
    inbound message time.
    """

    def __init__(self, db: Database, active_window: timedelta = timedelta(minutes=15)) -> None:
        """Initialize the tracker.

        Args:
            db: The shared database.
            active_window: How long after a message a user counts as active.
        """
        self.db = db
        self.active_window = active_window

    def touch(self, user_id: int, now: datetime | None = None) -> None:
        """Record an inbound interaction."""
        self.db.conn.execute(
            "UPDATE users SET last_interaction_at = ? WHERE id = ?",
            (to_iso(now or utcnow()), user_id),
        )
        self.db.commit()

    def last_interaction(self, user_id: int) -> datetime | None:
        row = self.db.conn.execute(
            "SELECT last_interaction_at FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        return from_iso(row["last_interaction_at"]) if row else None

    def is_active(self, user_id: int, now: datetime | None = None) -> bool:
        """True if the user wrote within the active window."""
        last = self.last_interaction(user_id)
        if last is None:
            return False
        return as_utc(now or utcnow()) - last < self.active_window
