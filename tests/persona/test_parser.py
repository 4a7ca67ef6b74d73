"""Tests for persona file parsing and syncing."""

from pathlib import Path

import pytest

from companion.persona import (
    Frequency,
    PersonaParseError,
    PersonaStore,
    PersonaValidationError,
    load_persona_dir,
    parse_persona_content,
    parse_persona_file,
    sync_personas,
)

AINA = """---
name: Aina
chat_id: "1001"
physical_traits: long black hair, brown eyes
wake_time: "07:30"
sleep_time: "23:30"
voice_frequency: rare
image_frequency: frequent
---

You are Aina, a cheerful barista from Kuala Lumpur.
"""


class TestParsePersonaContent:
    def test_full_definition(self):
        definition = parse_persona_content(AINA)
        persona = definition.persona

        assert persona.name == "Aina"
        assert persona.system_prompt.startswith("You are Aina")
        assert persona.wake_time == "07:30"
        assert persona.voice_frequency is Frequency.RARE
        assert persona.image_frequency is Frequency.FREQUENT
        assert persona.is_active is True
        assert definition.chat_id == "1001"

    def test_defaults(self):
        persona = parse_persona_content("---\nname: Mira\n---\nYou are Mira.").persona
        assert persona.wake_time == "08:00"
        assert persona.sleep_time == "23:00"
        assert persona.voice_frequency is Frequency.MODERATE

    def test_unquoted_time(self):
        """YAML reads 07:45 as minutes; it is turned back into HH:MM."""
        persona = parse_persona_content("---\nname: Mira\nwake_time: 07:45\n---\nBody").persona
        assert persona.wake_time == "07:45"

    def test_inactive_flag(self):
        persona = parse_persona_content("---\nname: Mira\nactive: 'no'\n---\nBody").persona
        assert persona.is_active is False

    def test_missing_name(self):
        with pytest.raises(PersonaValidationError, match="name"):
            parse_persona_content("---\nwake_time: '08:00'\n---\nBody")

    def test_empty_body(self):
        with pytest.raises(PersonaValidationError):
            parse_persona_content("---\nname: Mira\n---\n")

    def test_bad_frequency(self):
        with pytest.raises(PersonaValidationError, match="voice_frequency"):
            parse_persona_content("---\nname: Mira\nvoice_frequency: always\n---\nBody")

    def test_bad_time(self):
        with pytest.raises(PersonaValidationError, match="sleep_time"):
            parse_persona_content("---\nname: Mira\nsleep_time: '25:00'\n---\nBody")


class TestPersonaFiles:
    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(PersonaParseError):
            parse_persona_file(tmp_path / "nope.md")

    def test_load_dir_skips_invalid(self, tmp_path: Path):
        (tmp_path / "aina.md").write_text(AINA)
        (tmp_path / "broken.md").write_text("---\nwake_time: '08:00'\n---\nBody")

        definitions = load_persona_dir(tmp_path)
        assert [d.persona.name for d in definitions] == ["Aina"]

    def test_load_missing_dir(self, tmp_path: Path):
        assert load_persona_dir(tmp_path / "missing") == []


class TestSyncPersonas:
    def test_creates_and_binds_user(self, personas: PersonaStore):
        [persona] = sync_personas(personas, [parse_persona_content(AINA)])

        user = personas.get_user_by_chat("1001")
        assert persona.id is not None
        assert persona.user_id == user.id
        assert personas.active_for_user(user.id) == persona

    def test_updates_existing_by_name(self, personas: PersonaStore):
        [first] = sync_personas(personas, [parse_persona_content(AINA)])
        changed = AINA.replace("voice_frequency: rare", "voice_frequency: never")

        [second] = sync_personas(personas, [parse_persona_content(changed)])

        assert second.id == first.id
        assert second.voice_frequency is Frequency.NEVER
        assert len(personas.list_active()) == 1
