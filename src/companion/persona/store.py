"""SQLite storage for personas and users."""

import sqlite3

from ..storage import Database, from_iso, to_iso, utcnow
from .models import Frequency, Persona, User

_PERSONA_COLUMNS = (
    "id, user_id, name, system_prompt, physical_traits, wake_time, sleep_time, "
    "voice_frequency, image_frequency, is_active"
)


class PersonaStore:
    """Persistent storage for personas and their users."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, persona: Persona) -> Persona:
        """Insert a persona and return it with its id."""
        cursor = self.db.conn.execute(
            """
            INSERT INTO personas (user_id, name, system_prompt, physical_traits,
                                  wake_time, sleep_time, voice_frequency,
                                  image_frequency, is_active, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                persona.user_id,
                persona.name,
                persona.system_prompt,
                persona.physical_traits,
                persona.wake_time,
                persona.sleep_time,
                persona.voice_frequency.value,
                persona.image_frequency.value,
                int(persona.is_active),
                to_iso(utcnow()),
            ),
        )
        self.db.commit()
        return self.get(cursor.lastrowid)  # type: ignore[return-value]

    def update(self, persona: Persona) -> Persona:
        """Overwrite a persona's configuration by id."""
        self.db.conn.execute(
            """
            UPDATE personas SET user_id = ?, name = ?, system_prompt = ?,
                   physical_traits = ?, wake_time = ?, sleep_time = ?,
                   voice_frequency = ?, image_frequency = ?, is_active = ?
            WHERE id = ?
            """,
            (
                persona.user_id,
                persona.name,
                persona.system_prompt,
                persona.physical_traits,
                persona.wake_time,
                persona.sleep_time,
                persona.voice_frequency.value,
                persona.image_frequency.value,
                int(persona.is_active),
                persona.id,
            ),
        )
        self.db.commit()
        return self.get(persona.id)  # type: ignore[arg-type,return-value]

    def get(self, persona_id: int) -> Persona | None:
        row = self.db.conn.execute(
            f"SELECT {_PERSONA_COLUMNS} FROM personas WHERE id = ?", (persona_id,)
        ).fetchone()
        return self._row_to_persona(row) if row else None

    def get_by_name(self, name: str) -> Persona | None:
        row = self.db.conn.execute(
            f"SELECT {_PERSONA_COLUMNS} FROM personas WHERE name = ?", (name,)
        ).fetchone()
        return self._row_to_persona(row) if row else None

    def list_active(self) -> list[Persona]:
        """Get all active personas, oldest first."""
        cursor = self.db.conn.execute(
            f"SELECT {_PERSONA_COLUMNS} FROM personas WHERE is_active = 1 ORDER BY id"
        )
        return [self._row_to_persona(row) for row in cursor.fetchall()]

    def active_for_user(self, user_id: int) -> Persona | None:
        """Get the first active persona bound to a user."""
        row = self.db.conn.execute(
            f"SELECT {_PERSONA_COLUMNS} FROM personas "
            "WHERE user_id = ? AND is_active = 1 ORDER BY id LIMIT 1",
            (user_id,),
        ).fetchone()
        return self._row_to_persona(row) if row else None

    def delete(self, persona_id: int) -> bool:
        """Delete a persona together with its facts, events and messages."""
        cursor = self.db.conn.execute("DELETE FROM personas WHERE id = ?", (persona_id,))
        self.db.commit()
        return cursor.rowcount > 0

    def get_user(self, user_id: int) -> User | None:
        row = self.db.conn.execute(
            "SELECT id, chat_id, name, last_interaction_at FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_chat(self, chat_id: str) -> User | None:
        row = self.db.conn.execute(
            "SELECT id, chat_id, name, last_interaction_at FROM users WHERE chat_id = ?",
            (chat_id,),
        ).fetchone()
        return self._row_to_user(row) if row else None

    def get_or_create_user(self, chat_id: str, name: str = "") -> User:
        """Get the user for a chat id, creating it on first contact."""
        self.db.conn.execute(
            "INSERT INTO users (chat_id, name) VALUES (?, ?) ON CONFLICT(chat_id) DO NOTHING",
            (chat_id, name),
        )
        self.db.commit()
        return self.get_user_by_chat(chat_id)  # type: ignore[return-value]

    def user_for_persona(self, persona: Persona) -> User | None:
        """Get the user a persona is bound to, if any."""
        if persona.user_id is None:
            return None
        return self.get_user(persona.user_id)

    def _row_to_persona(self, row: sqlite3.Row) -> Persona:
        return Persona(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            system_prompt=row["system_prompt"],
            physical_traits=row["physical_traits"],
            wake_time=row["wake_time"],
            sleep_time=row["sleep_time"],
            voice_frequency=Frequency(row["voice_frequency"]),
            image_frequency=Frequency(row["image_frequency"]),
            is_active=bool(row["is_active"]),
        )

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            chat_id=row["chat_id"],
            name=row["name"],
            last_interaction_at=from_iso(row["last_interaction_at"]),
        )
