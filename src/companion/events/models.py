"""Data models for scheduled events."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class EventType(Enum):
    """What a scheduled event does when it fires."""

    TEXT = "text"
    IMAGE_GENERATION = "image_generation"
    WAKE_UP = "wake_up"
    SLEEP = "sleep"


class EventStatus(Enum):
    """Lifecycle of a scheduled event.

    PENDING and RESCHEDULED events are due once their time passes.
    PROCESSING marks an event claimed by a worker. SENT and CANCELLED are
    terminal; FAILED is left between retry attempts.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    RESCHEDULED = "rescheduled"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (EventStatus.SENT, EventStatus.CANCELLED)


class EventSource(Enum):
    """Who created an event. Re-planning a day only replaces PLAN events."""

    PLAN = "plan"
    CHAT = "chat"


@dataclass(frozen=True)
class ScheduledEvent:
    """A proactive message planned for later.

    Attributes:
        persona_id: Persona that sends the event.
        type: What the event produces.
        context_prompt: Instruction expanded into a message at fire time.
        scheduled_at: When the event is due.
        id: Database ID, None for new events.
        status: Current lifecycle state.
        attempts: Execution attempts made so far.
        source: Daily plan or an in-conversation follow-up.
        created_at: When the event was created.
        updated_at: When the event last changed.
    """

    persona_id: int
    type: EventType
    context_prompt: str
    scheduled_at: datetime
    id: int | None = None
    status: EventStatus = EventStatus.PENDING
    attempts: int = 0
    source: EventSource = EventSource.PLAN
    created_at: datetime | None = None
    updated_at: datetime | None = None
