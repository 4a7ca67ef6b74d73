"""Activity-aware execution of due events.

A proactive message must not interrupt a user who is in the middle of a
conversation. When the persona's user wrote recently the event is pushed
back by a fixed delay instead of firing; otherwise it is executed and its
final status recorded.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from ..activity import ActivityTracker
from ..logging import get_logger
from ..persona import PersonaStore
from ..storage import as_utc, to_iso, utcnow
from .models import EventStatus, ScheduledEvent
from .store import EventStore

logger = logging.getLogger(__name__)

ExecuteCallback = Callable[[ScheduledEvent], Awaitable[None]]


class SkipEvent(Exception):
    """Raised by an execute callback when the event can never be delivered.

    For example the persona has no user or the user has no chat. The event
    is cancelled and not retried.
    """

    pass


class AdaptiveScheduler:
    """Decides whether a due event fires now or waits for the user."""

    def __init__(
        self,
        events: EventStore,
        personas: PersonaStore,
        activity: ActivityTracker,
        reschedule_delay: timedelta = timedelta(minutes=30),
    ) -> None:
        """Initialize the scheduler.

        Args:
            events: Event storage.
            personas: Resolves the user an event's persona talks to.
            activity: Last-interaction lookups.
            reschedule_delay: How far an event moves when the user is active.
        """
        self.events = events
        self.personas = personas
        self.activity = activity
        self.reschedule_delay = reschedule_delay

    def is_user_active(self, event: ScheduledEvent, now: datetime | None = None) -> bool:
        """Check whether the event's user is mid-conversation.

        Without a user there is no activity to respect, so the event counts
        as free to fire.
        """
        persona = self.personas.get(event.persona_id)
        user = self.personas.user_for_persona(persona) if persona else None
        if user is None:
            logger.warning("Event %s has no associated user, executing anyway", event.id)
            return False
        return self.activity.is_active(user.id, now)  # type: ignore[arg-type]

    async def process_event(
        self,
        event: ScheduledEvent,
        execute_callback: ExecuteCallback,
        now: datetime | None = None,
    ) -> bool:
        """Execute or defer one due event.

        Args:
            event: The due event.
            execute_callback: Delivers the event; raises on failure.
            now: Decision time, defaults to the current time.

        Returns:
            True if the event was executed. False if it was deferred,
            skipped, or already claimed by another worker.

        Raises:
            Exception: Whatever the callback raised, after the event is
                marked FAILED, so the caller can retry it.
        """
        event_id: int = event.id  # type: ignore[assignment]
        if not self.events.claim(event_id):
            logger.info("Event %s is already being processed", event_id)
            return False

        try:
            active = self.is_user_active(event, now)
        except Exception:
            self.events.mark(event_id, EventStatus.FAILED)
            raise

        if active:
            new_time = as_utc(event.scheduled_at) + self.reschedule_delay
            self.events.reschedule(event_id, new_time)
            logger.info("User is active, event %s rescheduled to %s", event_id, new_time)
            get_logger().log_scheduled_event(
                "deferred", event_id, event.persona_id, new_time=new_time.isoformat()
            )
            return False

        try:
            await execute_callback(event)
        except SkipEvent as e:
            self.events.mark(event_id, EventStatus.CANCELLED)
            logger.warning("Skipping event %s: %s", event_id, e)
            get_logger().log_scheduled_event("skipped", event_id, event.persona_id, error=str(e))
            return False
        except asyncio.CancelledError:
            # Interrupted mid-flight (shutdown); let the next sweep pick it up.
            self.events.mark(event_id, EventStatus.PENDING)
            raise
        except Exception as e:
            self.events.mark(event_id, EventStatus.FAILED)
            logger.error("Event %s execution failed: %s", event_id, e)
            get_logger().log_scheduled_event("failed", event_id, event.persona_id, error=str(e))
            raise

        self.events.mark(event_id, EventStatus.SENT)
        logger.info("Event %s executed successfully", event_id)
        get_logger().log_scheduled_event(
            "sent", event_id, event.persona_id, type=event.type.value, at=to_iso(now or utcnow())
        )
        return True
