"""Daily planning of proactive events and outfits."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, tzinfo
from typing import TYPE_CHECKING

from .brain import DailyPlan, localize
from .events.models import EventType, ScheduledEvent
from .events.store import EventStore
from .logging import get_logger
from .memory.manager import MemoryManager
from .memory.models import DAILY_OUTFIT, NIGHT_OUTFIT, SELF
from .memory.selector import RelevanceSelector
from .persona import Persona, PersonaStore
from .storage import as_utc, utcnow

if TYPE_CHECKING:
    from .brain import Brain

logger = logging.getLogger(__name__)


class DailyPlanner:
    """Replaces a persona's pending events for the day with a fresh plan."""

    def __init__(
        self,
        personas: PersonaStore,
        events: EventStore,
        memory: MemoryManager,
        selector: RelevanceSelector,
        brain: Brain,
        tz: tzinfo | None = None,
    ) -> None:
        self.personas = personas
        self.events = events
        self.memory = memory
        self.selector = selector
        self.brain = brain
        self.tz = tz

    def local_today(self, now: datetime | None = None) -> date:
        return as_utc(now or utcnow()).astimezone(self.tz).date()

    async def plan_for(
        self, persona: Persona, today: date | None = None, now: datetime | None = None
    ) -> DailyPlan:
        """Plan one persona's day.

        Planned events still pending for the day are deleted first, so
        planning twice never doubles the day's messages. Events whose time has
        already passed are dropped.
        """
        persona_id: int = persona.id  # type: ignore[assignment]
        now = as_utc(now or utcnow())
        today = today or self.local_today(now)
        day_start = localize(datetime.combine(today, time.min), self.tz)
        day_end = day_start + timedelta(days=1)

        removed = self.events.delete_pending_between(persona_id, day_start, day_end)
        if removed:
            logger.info("Removed %d pending events of %s for %s", removed, persona.name, today)

        facts = self.selector.select(persona_id, "", now)
        plan = await self.brain.generate_daily_plan(persona, facts, today, now)

        context = f"Planned for {today.isoformat()}"
        if plan.daily_outfit:
            await self.memory.upsert(
                persona_id, SELF, DAILY_OUTFIT, plan.daily_outfit, context=context, now=now
            )
        if plan.night_outfit:
            await self.memory.upsert(
                persona_id, SELF, NIGHT_OUTFIT, plan.night_outfit, context=context, now=now
            )

        markers = [
            (EventType.WAKE_UP, persona.wake_time, "Wake up"),
            (EventType.SLEEP, persona.sleep_time, "Go to sleep"),
        ]
        candidates = [(e.type, e.content, e.scheduled_at) for e in plan.events]
        for event_type, clock, label in markers:
            hour, minute = (int(x) for x in clock.split(":"))
            candidates.append(
                (event_type, label, localize(datetime.combine(today, time(hour, minute)), self.tz))
            )

        created = 0
        for event_type, content, scheduled_at in candidates:
            if as_utc(scheduled_at) <= now:
                logger.debug("Skipping past planned event at %s: %s", scheduled_at, content)
                continue
            self.events.create(
                ScheduledEvent(
                    persona_id=persona_id,
                    type=event_type,
                    context_prompt=content,
                    scheduled_at=scheduled_at,
                ),
                now=now,
            )
            created += 1

        logger.info(
            "Planned %d events for %s on %s%s",
            created,
            persona.name,
            today,
            " (fallback plan)" if plan.is_fallback else "",
        )
        get_logger().log(
            "daily_plan",
            persona_id=persona_id,
            events=created,
            fallback=plan.is_fallback,
            day=today.isoformat(),
        )
        return plan

    async def plan_all(
        self, today: date | None = None, now: datetime | None = None
    ) -> dict[int, DailyPlan]:
        """Plan the day of every active persona.

        A failure for one persona is logged and the others are still planned.
        """
        plans: dict[int, DailyPlan] = {}
        for persona in self.personas.list_active():
            try:
                plans[persona.id] = await self.plan_for(persona, today, now)  # type: ignore[index]
            except Exception as e:
                logger.error("Daily planning failed for persona %s: %s", persona.name, e)
                get_logger().log("daily_plan_failed", persona_id=persona.id, error=str(e))
        return plans
