"""SQLite storage for memory facts."""

import sqlite3
from collections.abc import Iterable
from datetime import datetime

from ..storage import Database, from_iso, to_iso, utcnow
from .models import TARGETS, Fact, clamp_importance

_COLUMNS = (
    "id, persona_id, target, category, value, context, importance, "
    "created_at, updated_at, last_consolidated_at"
)


class MemoryStore:
    """Persistent storage for persona facts.

    Every query is scoped by persona id: a fact id that belongs to another
    persona behaves exactly like a missing one.
    """

    def __init__(self, db: Database) -> None:
        """Initialize the store.

        Args:
            db: The shared database.
        """
        self.db = db

    def add_fact(self, fact: Fact, now: datetime | None = None) -> Fact:
        """Insert a new fact.

        Args:
            fact: The fact to store. Its id is ignored.
            now: Creation time, defaults to the current time.

        Returns:
            The stored fact with its assigned id.

        Raises:
            ValueError: If the target is not 'user' or 'self'.
        """
        if fact.target not in TARGETS:
            raise ValueError(f"Invalid fact target: {fact.target!r}")
        stamp = to_iso(now or utcnow())
        cursor = self.db.conn.execute(
            """
            INSERT INTO facts (persona_id, target, category, value, context,
                               importance, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                fact.persona_id,
                fact.target,
                fact.category,
                fact.value,
                fact.context,
                clamp_importance(fact.importance),
                stamp,
                stamp,
            ),
        )
        self.db.commit()
        return self.get(fact.persona_id, cursor.lastrowid)  # type: ignore[arg-type,return-value]

    def get(self, persona_id: int, fact_id: int) -> Fact | None:
        row = self.db.conn.execute(
            f"SELECT {_COLUMNS} FROM facts WHERE persona_id = ? AND id = ?",
            (persona_id, fact_id),
        ).fetchone()
        return self._row_to_fact(row) if row else None

    def get_all(self, persona_id: int) -> list[Fact]:
        """Get all facts of a persona in creation order."""
        cursor = self.db.conn.execute(
            f"SELECT {_COLUMNS} FROM facts WHERE persona_id = ? ORDER BY id",
            (persona_id,),
        )
        return [self._row_to_fact(row) for row in cursor.fetchall()]

    def get_by_category(
        self, persona_id: int, category: str, target: str | None = None
    ) -> list[Fact]:
        """Get facts in a category, most recently updated first."""
        query = f"SELECT {_COLUMNS} FROM facts WHERE persona_id = ? AND category = ?"
        params: list = [persona_id, category]
        if target is not None:
            query += " AND target = ?"
            params.append(target)
        query += " ORDER BY updated_at DESC, id DESC"
        cursor = self.db.conn.execute(query, params)
        return [self._row_to_fact(row) for row in cursor.fetchall()]

    def updated_since(self, persona_id: int, since: datetime) -> list[Fact]:
        """Get facts whose value changed at or after a point in time."""
        cursor = self.db.conn.execute(
            f"SELECT {_COLUMNS} FROM facts "
            "WHERE persona_id = ? AND updated_at >= ? ORDER BY id",
            (persona_id, to_iso(since)),
        )
        return [self._row_to_fact(row) for row in cursor.fetchall()]

    def with_categories(self, persona_id: int, categories: Iterable[str]) -> list[Fact]:
        """Get facts whose category is one of the given categories."""
        wanted = sorted(set(categories))
        if not wanted:
            return []
        placeholders = ", ".join("?" for _ in wanted)
        cursor = self.db.conn.execute(
            f"SELECT {_COLUMNS} FROM facts "
            f"WHERE persona_id = ? AND category IN ({placeholders}) ORDER BY id",
            (persona_id, *wanted),
        )
        return [self._row_to_fact(row) for row in cursor.fetchall()]

    def update_fact(
        self,
        persona_id: int,
        fact_id: int,
        value: str | None = None,
        context: str | None = None,
        importance: int | None = None,
        consolidated_at: datetime | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Change fields of one fact owned by a persona.

        Only the fields that are given change. ``updated_at`` moves only when
        the value or context changes, so re-ranking a fact during
        consolidation does not make it look recently learned.

        Returns:
            True if the fact exists for this persona and was updated.
        """
        assignments = []
        params: list = []
        if value is not None:
            assignments.append("value = ?")
            params.append(value)
        if context is not None:
            assignments.append("context = ?")
            params.append(context)
        if value is not None or context is not None:
            assignments.append("updated_at = ?")
            params.append(to_iso(now or utcnow()))
        if importance is not None:
            assignments.append("importance = ?")
            params.append(clamp_importance(importance))
        if consolidated_at is not None:
            assignments.append("last_consolidated_at = ?")
            params.append(to_iso(consolidated_at))
        if not assignments:
            return self.get(persona_id, fact_id) is not None

        cursor = self.db.conn.execute(
            f"UPDATE facts SET {', '.join(assignments)} WHERE persona_id = ? AND id = ?",
            (*params, persona_id, fact_id),
        )
        self.db.commit()
        return cursor.rowcount > 0

    def delete_facts(self, persona_id: int, fact_ids: Iterable[int]) -> int:
        """Delete facts by id, ignoring ids the persona does not own.

        Returns:
            Number of facts deleted.
        """
        ids = sorted(set(fact_ids))
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        cursor = self.db.conn.execute(
            f"DELETE FROM facts WHERE persona_id = ? AND id IN ({placeholders})",
            (persona_id, *ids),
        )
        self.db.commit()
        return cursor.rowcount

    def owned_ids(self, persona_id: int, fact_ids: Iterable[int]) -> set[int]:
        """Return the subset of ids that exist and belong to the persona."""
        ids = sorted(set(fact_ids))
        if not ids:
            return set()
        placeholders = ", ".join("?" for _ in ids)
        cursor = self.db.conn.execute(
            f"SELECT id FROM facts WHERE persona_id = ? AND id IN ({placeholders})",
            (persona_id, *ids),
        )
        return {row["id"] for row in cursor.fetchall()}

    def upsert_by_category(
        self,
        persona_id: int,
        target: str,
        category: str,
        value: str,
        context: str | None = None,
        now: datetime | None = None,
    ) -> Fact:
        """Keep exactly one fact for a (target, category) pair.

        Used for single-valued categories such as the current mood and the
        outfits. The newest existing fact is updated in place and any older
        duplicates are removed.
        """
        with self.db.transaction():
            existing = self.get_by_category(persona_id, category, target=target)
            if not existing:
                return self.add_fact(
                    Fact(
                        persona_id=persona_id,
                        target=target,
                        category=category,
                        value=value,
                        context=context,
                    ),
                    now=now,
                )
            keep, duplicates = existing[0], existing[1:]
            self.update_fact(persona_id, keep.id, value=value, context=context, now=now)  # type: ignore[arg-type]
            if duplicates:
                self.delete_facts(persona_id, [f.id for f in duplicates])  # type: ignore[misc]
        return self.get(persona_id, keep.id)  # type: ignore[arg-type,return-value]

    def count(self, persona_id: int) -> int:
        row = self.db.conn.execute(
            "SELECT COUNT(*) AS n FROM facts WHERE persona_id = ?", (persona_id,)
        ).fetchone()
        return row["n"]

    def _row_to_fact(self, row: sqlite3.Row) -> Fact:
        return Fact(
            id=row["id"],
            persona_id=row["persona_id"],
            target=row["target"],
            category=row["category"],
            value=row["value"],
            context=row["context"],
            importance=row["importance"],
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
            last_consolidated_at=from_iso(row["last_consolidated_at"]),
        )
