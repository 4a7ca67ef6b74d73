"""Just-in-time execution of scheduled events.

An event stores only an instruction. The actual message is written when the
event fires, from the persona's current mood and the latest conversation,
so a proactive message never contradicts what was said since it was
planned.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING

from ..conversation.delivery import ReplySender
from ..conversation.store import MessageStore
from ..memory.models import MOOD_CATEGORY, SELF
from ..memory.store import MemoryStore
from ..persona import PersonaStore
from .models import EventType, ScheduledEvent
from .scheduler import SkipEvent

if TYPE_CHECKING:
    from ..brain import Brain

logger = logging.getLogger(__name__)

EVENT_APOLOGY = "Alamak, tadi I nak message you tapi ada masalah sikit... Sorry ya! 🙏"

LIFECYCLE_TYPES = frozenset({EventType.WAKE_UP, EventType.SLEEP})


class EventExecutor:
    """Execute callback and give-up notifier for the event runner."""

    def __init__(
        self,
        personas: PersonaStore,
        memory: MemoryStore,
        messages: MessageStore,
        brain: Brain,
        sender: ReplySender,
        history_size: int = 10,
    ) -> None:
        self.personas = personas
        self.memory = memory
        self.messages = messages
        self.brain = brain
        self.sender = sender
        self.history_size = history_size

    async def __call__(self, event: ScheduledEvent, now: datetime | None = None) -> None:
        """Generate and deliver an event's message.

        Raises:
            SkipEvent: The persona has no reachable user.
            RuntimeError: Nothing could be delivered.
        """
        if event.type in LIFECYCLE_TYPES:
            logger.info("Lifecycle event %s (%s) reached", event.id, event.type.value)
            return

        persona = self.personas.get(event.persona_id)
        if persona is None:
            raise SkipEvent(f"persona {event.persona_id} no longer exists")
        user = self.personas.user_for_persona(persona)
        if user is None or not user.chat_id:
            raise SkipEvent(f"persona {persona.name} has no user chat")

        moods = self.memory.get_by_category(persona.id, MOOD_CATEGORY, target=SELF)  # type: ignore[arg-type]
        mood = moods[0].value if moods else None
        history = self.messages.recent(persona.id, limit=self.history_size, user_id=user.id)  # type: ignore[arg-type]

        reply = await self.brain.generate_event_response(event, persona, mood, history, now)
        if reply.no_reply:
            logger.info("Event %s produced no message", event.id)
            return

        if event.type is EventType.IMAGE_GENERATION and not reply.image_url:
            image_url = await self.brain.generate_image(event.context_prompt, persona, now)
            if image_url:
                reply = replace(reply, image_url=image_url)
            else:
                logger.warning("Image for event %s failed, sending text only", event.id)

        if not reply.parts and not reply.image_url and not reply.voice_path:
            raise RuntimeError(f"event {event.id} produced an empty message")

        delivered = await self.sender.send(user, persona, reply, is_event_trigger=True)
        if delivered == 0:
            raise RuntimeError(f"event {event.id} could not be delivered to chat {user.chat_id}")

    async def apologize(self, event: ScheduledEvent) -> None:
        """Tell the user a planned message could not be sent."""
        persona = self.personas.get(event.persona_id)
        user = self.personas.user_for_persona(persona) if persona else None
        if user is None or not user.chat_id:
            return
        await self.sender.transport.send_message(user.chat_id, EVENT_APOLOGY)
