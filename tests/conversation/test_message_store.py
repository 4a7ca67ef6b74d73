"""Tests for MessageStore."""

import pytest

from companion.conversation import BOT_SENDER, USER_SENDER, MessageStore, format_transcript
from companion.conversation.store import NO_HISTORY
from companion.storage import Database


@pytest.fixture
def messages(db: Database) -> MessageStore:
    return MessageStore(db)


class TestMessageStore:
    def test_recent_oldest_first(self, messages: MessageStore, persona, user):
        for i in range(5):
            messages.add(persona.id, USER_SENDER, f"msg {i}", user_id=user.id)

        recent = messages.recent(persona.id, limit=3)
        assert [m.content for m in recent] == ["msg 2", "msg 3", "msg 4"]

    def test_count_only_user_messages(self, messages: MessageStore, persona, user):
        messages.add(persona.id, USER_SENDER, "hi", user_id=user.id)
        messages.add(persona.id, BOT_SENDER, "hello!", user_id=user.id)
        messages.add(persona.id, USER_SENDER, "how are you", user_id=user.id)

        assert messages.count_for_user(user.id, persona.id) == 2

    def test_flags_round_trip(self, messages: MessageStore, persona, user):
        messages.add(persona.id, BOT_SENDER, "[Image]", user_id=user.id,
                     image_path="https://cdn/a.png", is_event_trigger=True)
        [stored] = messages.recent(persona.id)
        assert stored.image_path == "https://cdn/a.png"
        assert stored.is_event_trigger is True


def test_format_transcript_empty():
    assert format_transcript([]) == NO_HISTORY
