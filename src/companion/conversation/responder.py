"""Answers buffered user messages."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING

from ..brain import CHAT_APOLOGY, BrainReply
from ..events.models import EventSource, EventType, ScheduledEvent
from ..events.store import EventStore
from ..logging import get_logger
from ..memory.manager import MemoryManager
from ..memory.models import MOOD_CATEGORY, SELF
from ..memory.selector import RelevanceSelector
from ..storage import as_utc, utcnow
from .buffer import ChatBuffer
from .delivery import ReplySender
from .store import USER_SENDER, MessageStore

if TYPE_CHECKING:
    from ..brain import Brain
    from ..persona import Persona, User

logger = logging.getLogger(__name__)


class ChatResponder:
    """Turns a user's pending messages into a delivered persona reply."""

    def __init__(
        self,
        buffer: ChatBuffer,
        messages: MessageStore,
        memory: MemoryManager,
        selector: RelevanceSelector,
        events: EventStore,
        brain: Brain,
        sender: ReplySender,
        history_size: int = 20,
    ) -> None:
        self.buffer = buffer
        self.messages = messages
        self.memory = memory
        self.selector = selector
        self.events = events
        self.brain = brain
        self.sender = sender
        self.history_size = history_size

    async def respond(
        self, user: User, persona: Persona, now: datetime | None = None
    ) -> BrainReply | None:
        """Reply to everything the user sent since the last reply.

        Never raises: on failure the user gets the canned apology.

        Returns:
            The reply that was processed, or None on failure.
        """
        persona_id: int = persona.id  # type: ignore[assignment]
        start = time.monotonic()
        try:
            pending = self.buffer.pull(user.chat_id, persona_id)
            await self.sender.transport.send_chat_action(user.chat_id, "typing")

            history = self.messages.recent(persona_id, limit=self.history_size, user_id=user.id)
            latest = " ".join(pending) or _latest_user_text(history)
            facts = self.selector.select(persona_id, latest, now)

            reply = await self.brain.generate_chat_response(persona, history, facts, now)
            if reply.no_reply:
                logger.info("Persona %s chose not to reply to chat %s", persona.name, user.chat_id)
                return reply

            if reply.mood:
                await self._update_mood(persona_id, reply.mood, now)
            for request in reply.schedule:
                self._schedule_follow_up(persona_id, request.scheduled_at, request.instruction, now)

            parts = await self.sender.send(user, persona, reply)
            get_logger().log_chat_reply(
                user.chat_id,
                persona_id,
                parts,
                duration_ms=(time.monotonic() - start) * 1000,
            )
            return reply
        except Exception as e:
            logger.exception("Reply to chat %s failed", user.chat_id)
            get_logger().log("chat_error", chat_id=user.chat_id, persona_id=persona_id, error=str(e))
            await self.sender.transport.send_message(user.chat_id, CHAT_APOLOGY)
            return None

    async def _update_mood(self, persona_id: int, mood: str, now: datetime | None) -> None:
        moment = as_utc(now or utcnow())
        context = f"Real-time update on {moment.astimezone(self.selector.tz):%Y-%m-%d %H:%M:%S}"
        await self.memory.upsert(persona_id, SELF, MOOD_CATEGORY, mood, context=context, now=moment)
        logger.info("Mood of persona %s is now %s", persona_id, mood)

    def _schedule_follow_up(
        self, persona_id: int, scheduled_at: datetime, instruction: str, now: datetime | None
    ) -> None:
        if as_utc(scheduled_at) <= as_utc(now or utcnow()):
            logger.warning("Ignoring follow-up in the past: %s", scheduled_at)
            return
        event = self.events.create(
            ScheduledEvent(
                persona_id=persona_id,
                type=EventType.TEXT,
                context_prompt=instruction,
                scheduled_at=scheduled_at,
                source=EventSource.CHAT,
            )
        )
        logger.info("Follow-up event %s scheduled for %s", event.id, scheduled_at)


def _latest_user_text(history: list) -> str:
    for message in reversed(history):
        if message.sender_type == USER_SENDER:
            return message.content
    return ""
