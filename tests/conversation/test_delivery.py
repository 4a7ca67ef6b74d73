"""Tests for ReplySender."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from conftest import make_transport

from companion.brain import BrainReply
from companion.conversation import MessageStore
from companion.conversation.delivery import (
    IMAGE_PLACEHOLDER,
    VOICE_PLACEHOLDER,
    ReplySender,
    typing_delay,
)
from companion.storage import Database


@pytest.fixture
def messages(db: Database) -> MessageStore:
    return MessageStore(db)


@pytest.fixture
def transport():
    return make_transport()


@pytest.fixture
def sender(transport, messages: MessageStore) -> ReplySender:
    return ReplySender(transport, messages, pacing=False)


class TestTypingDelay:
    def test_bounds(self):
        assert typing_delay("hi") == 1.0
        assert typing_delay("x" * 40) == pytest.approx(2.0)
        assert typing_delay("x" * 500) == 4.0


class TestSend:
    @pytest.mark.asyncio
    async def test_parts_sent_in_order(self, sender, transport, messages, persona, user):
        delivered = await sender.send(user, persona, BrainReply(text="Hai! <SPLIT> Rindu you"))

        assert delivered == 2
        sent = [c.args[1] for c in transport.send_message.await_args_list]
        assert sent == ["Hai!", "Rindu you"]
        assert [m.content for m in messages.recent(persona.id)] == ["Hai!", "Rindu you"]

    @pytest.mark.asyncio
    async def test_typing_before_each_part(self, sender, transport, persona, user):
        await sender.send(user, persona, BrainReply(text="a <SPLIT> b"))
        actions = [c.args[1] for c in transport.send_chat_action.await_args_list]
        assert actions == ["typing", "typing"]

    @pytest.mark.asyncio
    async def test_image_with_caption(self, sender, transport, messages, persona, user):
        reply = BrainReply(text="Me at the cafe <SPLIT> so cozy", image_url="https://cdn/a.png")

        await sender.send(user, persona, reply)

        transport.send_photo.assert_awaited_once_with(
            "1001", "https://cdn/a.png", caption="Me at the cafe\nso cozy"
        )
        transport.send_message.assert_not_called()
        [stored] = messages.recent(persona.id)
        assert stored.image_path == "https://cdn/a.png"

    @pytest.mark.asyncio
    async def test_failed_photo_falls_back_to_text(
        self, sender, transport, messages, persona, user
    ):
        """When the photo is rejected the text parts still reach the user."""
        transport.send_photo.return_value = False
        reply = BrainReply(text="Here is me at the cafe <SPLIT> Miss you!",
                           image_url="https://cdn/a.png")

        delivered = await sender.send(user, persona, reply)

        assert delivered == 2
        sent = [c.args[1] for c in transport.send_message.await_args_list]
        assert sent == ["Here is me at the cafe", "Miss you!"]
        stored = messages.recent(persona.id)
        assert [m.content for m in stored] == ["Here is me at the cafe", "Miss you!"]
        assert all(m.image_path is None for m in stored)

    @pytest.mark.asyncio
    async def test_image_without_text_stored_as_placeholder(
        self, sender, messages, persona, user
    ):
        await sender.send(user, persona, BrainReply(image_url="https://cdn/a.png"))
        assert messages.recent(persona.id)[0].content == IMAGE_PLACEHOLDER

    @pytest.mark.asyncio
    async def test_voice_and_text(self, sender, transport, messages, persona, user):
        reply = BrainReply(text="Dengar ni", voice_path=Path("/media/v.mp3"))

        delivered = await sender.send(user, persona, reply)

        assert delivered == 2
        transport.send_voice.assert_awaited_once_with("1001", "/media/v.mp3")
        assert [m.content for m in messages.recent(persona.id)] == [VOICE_PLACEHOLDER, "Dengar ni"]

    @pytest.mark.asyncio
    async def test_failed_part_not_stored(self, sender, transport, messages, persona, user):
        transport.send_message.return_value = False
        assert await sender.send(user, persona, BrainReply(text="hello")) == 0
        assert messages.recent(persona.id) == []

    @pytest.mark.asyncio
    async def test_pacing_sleeps(self, transport, messages, persona, user):
        sender = ReplySender(transport, messages)
        with patch("companion.conversation.delivery.asyncio.sleep", new=AsyncMock()) as sleep:
            await sender.send(user, persona, BrainReply(text="hi"))
        sleep.assert_awaited_once_with(1.0)
