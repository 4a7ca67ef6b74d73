"""SQLite storage for conversation messages."""

import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from ..storage import Database, from_iso, to_iso, utcnow

USER_SENDER = "user"
BOT_SENDER = "bot"

NO_HISTORY = "No conversation history."


@dataclass(frozen=True)
class Message:
    """A stored chat message.

    Attributes:
        persona_id: Persona taking part in the conversation.
        sender_type: 'user' for inbound messages, 'bot' for replies.
        content: Message text.
        id: Database ID, None for new messages.
        user_id: The human participant, if known.
        image_path: Image attached to the message, if any.
        is_event_trigger: True when the message was sent by a scheduled event.
        created_at: When the message was stored.
    """

    persona_id: int
    sender_type: str
    content: str
    id: int | None = None
    user_id: int | None = None
    image_path: str | None = None
    is_event_trigger: bool = False
    created_at: datetime | None = None


def format_transcript(messages: Iterable[Message]) -> str:
    """Render messages as 'User: ...' / 'Assistant: ...' lines."""
    lines = [
        f"{'User' if m.sender_type == USER_SENDER else 'Assistant'}: {m.content}"
        for m in messages
    ]
    return "\n".join(lines) or NO_HISTORY


class MessageStore:
    """Persistent storage for conversation turns."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def add(
        self,
        persona_id: int,
        sender_type: str,
        content: str,
        user_id: int | None = None,
        image_path: str | None = None,
        is_event_trigger: bool = False,
        now: datetime | None = None,
    ) -> Message:
        """Store a message and return it with its id."""
        created_at = now or utcnow()
        cursor = self.db.conn.execute(
            """
            INSERT INTO messages (user_id, persona_id, sender_type, content,
                                  image_path, is_event_trigger, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                persona_id,
                sender_type,
                content,
                image_path,
                int(is_event_trigger),
                to_iso(created_at),
            ),
        )
        self.db.commit()
        return Message(
            id=cursor.lastrowid,
            persona_id=persona_id,
            sender_type=sender_type,
            content=content,
            user_id=user_id,
            image_path=image_path,
            is_event_trigger=is_event_trigger,
            created_at=from_iso(to_iso(created_at)),
        )

    def recent(
        self, persona_id: int, limit: int = 20, user_id: int | None = None
    ) -> list[Message]:
        """Get the latest messages of a conversation, oldest first."""
        query = (
            "SELECT id, user_id, persona_id, sender_type, content, image_path, "
            "is_event_trigger, created_at FROM messages WHERE persona_id = ?"
        )
        params: list = [persona_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        rows = self.db.conn.execute(query, params).fetchall()
        return [self._row_to_message(row) for row in reversed(rows)]

    def count_for_user(self, user_id: int, persona_id: int | None = None) -> int:
        """Count the messages a user has sent."""
        query = "SELECT COUNT(*) AS n FROM messages WHERE user_id = ? AND sender_type = ?"
        params: list = [user_id, USER_SENDER]
        if persona_id is not None:
            query += " AND persona_id = ?"
            params.append(persona_id)
        return self.db.conn.execute(query, params).fetchone()["n"]

    def _row_to_message(self, row: sqlite3.Row) -> Message:
        return Message(
            id=row["id"],
            user_id=row["user_id"],
            persona_id=row["persona_id"],
            sender_type=row["sender_type"],
            content=row["content"],
            image_path=row["image_path"],
            is_event_trigger=bool(row["is_event_trigger"]),
            created_at=from_iso(row["created_at"]),
        )
