"""Delivery of processed replies to a chat, with storage of what was sent."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from .store import BOT_SENDER, MessageStore

if TYPE_CHECKING:
    from ..brain import BrainReply
    from ..persona import Persona, User

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER = "[Image]"
VOICE_PLACEHOLDER = "[Voice Note]"

MIN_PART_DELAY = 1.0
MAX_PART_DELAY = 4.0
SECONDS_PER_CHAR = 0.05


class ChatTransport(Protocol):
    """Outbound side of a chat platform. Every call reports success."""

    async def send_message(self, chat_id: str, text: str) -> bool: ...

    async def send_photo(self, chat_id: str, photo: str, caption: str | None = None) -> bool: ...

    async def send_voice(self, chat_id: str, voice: str) -> bool: ...

    async def send_chat_action(self, chat_id: str, action: str) -> bool: ...


def typing_delay(text: str) -> float:
    """Seconds to show 'typing' before sending a part of this length."""
    return min(max(len(text) * SECONDS_PER_CHAR, MIN_PART_DELAY), MAX_PART_DELAY)


class ReplySender:
    """Sends a BrainReply as photo, voice note and text parts.

    Every message that reaches the chat is stored as a bot message.
    """

    def __init__(self, transport: ChatTransport, messages: MessageStore, pacing: bool = True) -> None:
        self.transport = transport
        self.messages = messages
        self.pacing = pacing

    async def send(
        self,
        user: User,
        persona: Persona,
        reply: BrainReply,
        is_event_trigger: bool = False,
    ) -> int:
        """Deliver a reply.

        With an image the text becomes its caption. Without one, or when the
        photo cannot be sent, the text goes out as separate parts, alongside
        any voice note.

        Returns:
            Number of messages delivered.
        """
        chat_id = user.chat_id
        delivered = 0

        def store(content: str, image_path: str | None = None) -> None:
            self.messages.add(
                persona.id,  # type: ignore[arg-type]
                BOT_SENDER,
                content,
                user_id=user.id,
                image_path=image_path,
                is_event_trigger=is_event_trigger,
            )

        photo_sent = False
        if reply.image_url:
            await self.transport.send_chat_action(chat_id, "upload_photo")
            caption = reply.caption or None
            photo_sent = await self.transport.send_photo(chat_id, reply.image_url, caption=caption)
            if photo_sent:
                store(caption or IMAGE_PLACEHOLDER, image_path=reply.image_url)
                delivered += 1
            else:
                logger.warning("Failed to send photo to chat %s, sending text instead", chat_id)

        if reply.voice_path:
            await self.transport.send_chat_action(chat_id, "record_voice")
            if await self.transport.send_voice(chat_id, str(reply.voice_path)):
                store(VOICE_PLACEHOLDER, image_path=str(reply.voice_path))
                delivered += 1

        if not photo_sent:
            for part in reply.parts:
                await self.transport.send_chat_action(chat_id, "typing")
                if self.pacing:
                    await asyncio.sleep(typing_delay(part))
                if await self.transport.send_message(chat_id, part):
                    store(part)
                    delivered += 1
                else:
                    logger.warning("Failed to send message part to chat %s", chat_id)

        return delivered
