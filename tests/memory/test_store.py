"""Tests for MemoryStore."""

from datetime import timedelta

import pytest
from conftest import NOW, insert_fact

from companion.memory import Fact, MemoryStore
from companion.memory.models import MOOD_CATEGORY, SELF
from companion.persona import Persona, PersonaStore
from companion.storage import Database


@pytest.fixture
def store(db: Database) -> MemoryStore:
    return MemoryStore(db)


@pytest.fixture
def other_persona(personas: PersonaStore) -> Persona:
    return personas.create(Persona(name="Mira", system_prompt="You are Mira."))


class TestAddFact:
    """Tests for inserting facts."""

    def test_add_assigns_id_and_timestamps(self, store: MemoryStore, persona: Persona):
        fact = store.add_fact(
            Fact(persona_id=persona.id, target="user", category="name", value="Lucas"),
            now=NOW,
        )
        assert fact.id is not None
        assert fact.value == "Lucas"
        assert fact.created_at == NOW
        assert fact.updated_at == NOW

    def test_invalid_target_rejected(self, store: MemoryStore, persona: Persona):
        """Only 'user' and 'self' are valid targets."""
        with pytest.raises(ValueError):
            store.add_fact(Fact(persona_id=persona.id, target="friend", category="x", value="y"))

    def test_importance_clamped(self, store: MemoryStore, persona: Persona):
        """Out-of-range importance is forced into 1..10."""
        high = store.add_fact(
            Fact(persona_id=persona.id, target="user", category="a", value="b", importance=42)
        )
        low = store.add_fact(
            Fact(persona_id=persona.id, target="user", category="c", value="d", importance=-3)
        )
        assert high.importance == 10
        assert low.importance == 1


class TestPersonaScoping:
    """A fact id from another persona behaves like a missing one."""

    def test_get_other_persona_fact(
        self, store: MemoryStore, db: Database, persona: Persona, other_persona: Persona
    ):
        insert_fact(db, other_persona.id, 7, "hobby", "chess")
        assert store.get(persona.id, 7) is None
        assert store.get(other_persona.id, 7) is not None

    def test_update_other_persona_fact(
        self, store: MemoryStore, db: Database, persona: Persona, other_persona: Persona
    ):
        insert_fact(db, other_persona.id, 7, "hobby", "chess")
        assert store.update_fact(persona.id, 7, value="go") is False
        assert store.get(other_persona.id, 7).value == "chess"

    def test_delete_only_owned(
        self, store: MemoryStore, db: Database, persona: Persona, other_persona: Persona
    ):
        insert_fact(db, persona.id, 1, "hobby", "running")
        insert_fact(db, other_persona.id, 2, "hobby", "chess")
        assert store.delete_facts(persona.id, [1, 2]) == 1
        assert store.get(other_persona.id, 2) is not None

    def test_owned_ids(
        self, store: MemoryStore, db: Database, persona: Persona, other_persona: Persona
    ):
        insert_fact(db, persona.id, 1, "hobby", "running")
        insert_fact(db, other_persona.id, 2, "hobby", "chess")
        assert store.owned_ids(persona.id, [1, 2, 3]) == {1}


class TestUpdateFact:
    """Tests for changing facts."""

    def test_value_change_moves_updated_at(
        self, store: MemoryStore, db: Database, persona: Persona
    ):
        insert_fact(db, persona.id, 1, "job", "barista", updated_at=NOW - timedelta(days=30))
        assert store.update_fact(persona.id, 1, value="manager", now=NOW)
        fact = store.get(persona.id, 1)
        assert fact.value == "manager"
        assert fact.updated_at == NOW

    def test_importance_change_keeps_updated_at(
        self, store: MemoryStore, db: Database, persona: Persona
    ):
        """Re-ranking must not make a fact look recently learned."""
        old = NOW - timedelta(days=30)
        insert_fact(db, persona.id, 1, "job", "barista", updated_at=old)
        store.update_fact(persona.id, 1, importance=9, consolidated_at=NOW, now=NOW)
        fact = store.get(persona.id, 1)
        assert fact.importance == 9
        assert fact.updated_at == old
        assert fact.last_consolidated_at == NOW


class TestQueries:
    """Tests for category and recency queries."""

    def test_updated_since(self, store: MemoryStore, db: Database, persona: Persona):
        insert_fact(db, persona.id, 1, "a", "old", updated_at=NOW - timedelta(days=10))
        insert_fact(db, persona.id, 2, "b", "new", updated_at=NOW - timedelta(hours=1))
        facts = store.updated_since(persona.id, NOW - timedelta(days=3))
        assert [f.id for f in facts] == [2]

    def test_with_categories(self, store: MemoryStore, db: Database, persona: Persona):
        insert_fact(db, persona.id, 1, "favorite_food", "laksa")
        insert_fact(db, persona.id, 2, "hobby", "running")
        facts = store.with_categories(persona.id, {"favorite_food", "diet"})
        assert [f.value for f in facts] == ["laksa"]

    def test_with_no_categories(self, store: MemoryStore, persona: Persona):
        assert store.with_categories(persona.id, []) == []

    def test_get_by_category_newest_first(
        self, store: MemoryStore, db: Database, persona: Persona
    ):
        insert_fact(db, persona.id, 1, "hobby", "running", updated_at=NOW - timedelta(days=2))
        insert_fact(db, persona.id, 2, "hobby", "climbing", updated_at=NOW)
        assert [f.id for f in store.get_by_category(persona.id, "hobby")] == [2, 1]


class TestUpsertByCategory:
    """Tests for single-valued categories."""

    def test_creates_when_missing(self, store: MemoryStore, persona: Persona):
        fact = store.upsert_by_category(persona.id, SELF, MOOD_CATEGORY, "Happy because sunny")
        assert fact.value == "Happy because sunny"
        assert store.count(persona.id) == 1

    def test_replaces_and_removes_duplicates(
        self, store: MemoryStore, db: Database, persona: Persona
    ):
        insert_fact(db, persona.id, 1, MOOD_CATEGORY, "Sad", target=SELF,
                    updated_at=NOW - timedelta(days=1))
        insert_fact(db, persona.id, 2, MOOD_CATEGORY, "Tired", target=SELF)
        store.upsert_by_category(persona.id, SELF, MOOD_CATEGORY, "Excited", now=NOW)
        moods = store.get_by_category(persona.id, MOOD_CATEGORY, target=SELF)
        assert [m.value for m in moods] == ["Excited"]
