"""Tests for RelevanceSelector."""

from datetime import datetime, timedelta, timezone

import pytest
from conftest import NOW, insert_fact

from companion.memory import MemoryStore, RelevanceSelector
from companion.memory.models import DAILY_OUTFIT, MOOD_CATEGORY, NIGHT_OUTFIT, SELF, Fact
from companion.memory.selector import EMPTY_MEMORY, is_night, match_keywords
from companion.persona import Persona
from companion.storage import Database

OLD = NOW - timedelta(days=30)


@pytest.fixture
def store(db: Database) -> MemoryStore:
    return MemoryStore(db)


@pytest.fixture
def selector(store: MemoryStore) -> RelevanceSelector:
    return RelevanceSelector(store, recency_days=3, tz=timezone.utc)


class TestMatchKeywords:
    def test_case_insensitive_substring(self):
        assert "favorite_food" in match_keywords("I'm HUNGRY")

    def test_row_pulls_all_categories(self):
        assert match_keywords("dinner time") == {"food_preference", "favorite_food", "diet"}

    def test_no_match(self):
        assert match_keywords("hello there") == set()


class TestSelectTiers:
    """Each tier contributes facts independently."""

    def test_recency_tier(self, selector: RelevanceSelector, db: Database, persona: Persona):
        """A fact updated yesterday is selected even without a keyword."""
        insert_fact(db, persona.id, 1, "hobby", "bouldering", updated_at=NOW - timedelta(days=1))
        insert_fact(db, persona.id, 2, "pet_peeve", "loud chewing", updated_at=OLD)

        selected = selector.select(persona.id, "hello", now=NOW)
        assert [f.id for f in selected] == [1]

    def test_core_tier(self, selector: RelevanceSelector, db: Database, persona: Persona):
        """The current mood is always selected, however old."""
        insert_fact(db, persona.id, 1, MOOD_CATEGORY, "Calm because it rained",
                    target=SELF, updated_at=OLD)

        selected = selector.select(persona.id, "hello", now=NOW)
        assert [f.category for f in selected] == [MOOD_CATEGORY]

    def test_keyword_tier(self, selector: RelevanceSelector, db: Database, persona: Persona):
        """Food facts are pulled in by a message about dinner."""
        insert_fact(db, persona.id, 1, "favorite_food", "nasi lemak", updated_at=OLD)
        insert_fact(db, persona.id, 2, "hobby", "bouldering", updated_at=OLD)

        selected = selector.select(persona.id, "I'm hungry for dinner", now=NOW)
        assert [f.value for f in selected] == ["nasi lemak"]

    def test_union_is_deduplicated(
        self, selector: RelevanceSelector, db: Database, persona: Persona
    ):
        """A fact in several tiers appears once."""
        insert_fact(db, persona.id, 1, "occupation", "nurse", updated_at=NOW)

        selected = selector.select(persona.id, "work was long", now=NOW)
        assert [f.id for f in selected] == [1]

    def test_old_unrelated_fact_excluded(
        self, selector: RelevanceSelector, db: Database, persona: Persona
    ):
        insert_fact(db, persona.id, 1, "favorite_food", "nasi lemak", updated_at=OLD)
        assert selector.select(persona.id, "hello", now=NOW) == []

    def test_other_persona_facts_never_selected(
        self, selector: RelevanceSelector, db: Database, persona: Persona, personas
    ):
        other = personas.create(Persona(name="Mira"))
        insert_fact(db, other.id, 1, MOOD_CATEGORY, "Bored", target=SELF)
        assert selector.select(persona.id, "hello", now=NOW) == []

    def test_select_is_idempotent(
        self, selector: RelevanceSelector, db: Database, persona: Persona
    ):
        """Same store and input give the same output."""
        insert_fact(db, persona.id, 3, "favorite_food", "laksa", updated_at=OLD)
        insert_fact(db, persona.id, 1, "name", "Lucas", updated_at=OLD)
        insert_fact(db, persona.id, 2, "hobby", "chess", updated_at=NOW)

        first = selector.select(persona.id, "what's for lunch?", now=NOW)
        second = selector.select(persona.id, "what's for lunch?", now=NOW)
        assert first == second
        assert [f.id for f in first] == [1, 2, 3]


class TestOutfit:
    """The outfit shown depends on the local time of day."""

    def facts(self) -> list[Fact]:
        return [
            Fact(persona_id=1, target=SELF, category=DAILY_OUTFIT, value="denim jacket"),
            Fact(persona_id=1, target=SELF, category=NIGHT_OUTFIT, value="silk pajamas"),
        ]

    def test_day(self, selector: RelevanceSelector):
        noon = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
        assert selector.current_outfit(self.facts(), noon) == "denim jacket"

    def test_night(self, selector: RelevanceSelector):
        late = datetime(2025, 3, 10, 23, 30, tzinfo=timezone.utc)
        assert selector.current_outfit(self.facts(), late) == "silk pajamas"

    def test_night_boundaries(self):
        assert is_night(datetime(2025, 3, 10, 21, 0))
        assert is_night(datetime(2025, 3, 10, 5, 59))
        assert not is_night(datetime(2025, 3, 10, 6, 0))


class TestFormatForPrompt:
    def test_empty(self, selector: RelevanceSelector):
        assert selector.format_for_prompt([]) == EMPTY_MEMORY

    def test_groups_by_target(self, selector: RelevanceSelector):
        facts = [
            Fact(persona_id=1, target="user", category="name", value="Lucas"),
            Fact(persona_id=1, target=SELF, category=MOOD_CATEGORY, value="Happy"),
            Fact(persona_id=1, target=SELF, category=DAILY_OUTFIT, value="denim jacket"),
        ]
        text = selector.format_for_prompt(facts, NOW)

        user_part, self_part = text.split("What you know about yourself:")
        assert "- name: Lucas" in user_part
        assert "- current_mood: Happy" in self_part
        assert "- daily_outfit" not in text
        assert "You are currently wearing: denim jacket" in text
