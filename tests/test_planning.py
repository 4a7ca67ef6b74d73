"""Tests for DailyPlanner."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from conftest import NOW

from companion.brain import DailyPlan, PlannedEvent
from companion.events import (
    EventSource,
    EventStatus,
    EventStore,
    EventType,
    ScheduledEvent,
)
from companion.memory import MemoryManager, MemoryStore, RelevanceSelector
from companion.memory.models import DAILY_OUTFIT, NIGHT_OUTFIT, SELF
from companion.persona import Persona, PersonaStore
from companion.planning import DailyPlanner
from companion.storage import Database

UTC = timezone.utc
TODAY = date(2025, 3, 10)
EARLY = datetime(2025, 3, 10, 6, 0, tzinfo=UTC)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, 10, hour, minute, tzinfo=UTC)


@pytest.fixture
def events(db: Database) -> EventStore:
    return EventStore(db)


@pytest.fixture
def memory(db: Database) -> MemoryStore:
    return MemoryStore(db)


@pytest.fixture
def brain() -> Mock:
    brain = Mock()
    brain.generate_daily_plan = AsyncMock(
        return_value=DailyPlan(
            events=[
                PlannedEvent(EventType.TEXT, "Morning greeting", at(8)),
                PlannedEvent(EventType.IMAGE_GENERATION, "Latte art", at(10, 30)),
            ],
            daily_outfit="denim jacket",
            night_outfit="silk pajamas",
        )
    )
    return brain


@pytest.fixture
def planner(personas: PersonaStore, events, memory, brain) -> DailyPlanner:
    return DailyPlanner(
        personas, events, MemoryManager(memory, extractor=Mock()), RelevanceSelector(memory),
        brain, tz=UTC,
    )


class TestPlanFor:
    @pytest.mark.asyncio
    async def test_creates_events_and_lifecycle_markers(self, planner, events, persona):
        await planner.plan_for(persona, TODAY, now=EARLY)

        planned = events.list_for_persona(persona.id)
        assert [(e.type, e.scheduled_at) for e in planned] == [
            (EventType.TEXT, at(8)),
            (EventType.WAKE_UP, at(8)),
            (EventType.IMAGE_GENERATION, at(10, 30)),
            (EventType.SLEEP, at(23)),
        ]
        assert all(e.status is EventStatus.PENDING for e in planned)

    @pytest.mark.asyncio
    async def test_outfits_upserted(self, planner, memory, persona):
        await planner.plan_for(persona, TODAY, now=EARLY)
        await planner.plan_for(persona, TODAY, now=EARLY)

        assert [f.value for f in memory.get_by_category(persona.id, DAILY_OUTFIT, SELF)] == [
            "denim jacket"
        ]
        assert [f.value for f in memory.get_by_category(persona.id, NIGHT_OUTFIT, SELF)] == [
            "silk pajamas"
        ]

    @pytest.mark.asyncio
    async def test_replanning_replaces_pending(self, planner, events, persona):
        """Planning the same day twice does not double the events."""
        sent = events.create(
            ScheduledEvent(persona_id=persona.id, type=EventType.TEXT,
                           context_prompt="already sent", scheduled_at=at(7),
                           status=EventStatus.SENT)
        )
        await planner.plan_for(persona, TODAY, now=EARLY)
        await planner.plan_for(persona, TODAY, now=EARLY)

        planned = events.list_for_persona(persona.id)
        assert len(planned) == 5
        assert events.get(sent.id) is not None

    @pytest.mark.asyncio
    async def test_replanning_keeps_follow_ups_and_rescheduled(self, planner, events, persona):
        """Only the planner's own pending events are replaced."""
        follow_up = events.create(
            ScheduledEvent(persona_id=persona.id, type=EventType.TEXT,
                           context_prompt="Ask how the exam went", scheduled_at=at(15),
                           source=EventSource.CHAT)
        )
        deferred = events.create(
            ScheduledEvent(persona_id=persona.id, type=EventType.TEXT,
                           context_prompt="Lunch check-in", scheduled_at=at(12, 30),
                           status=EventStatus.RESCHEDULED)
        )

        await planner.plan_for(persona, TODAY, now=EARLY)

        assert events.get(follow_up.id).context_prompt == "Ask how the exam went"
        assert events.get(deferred.id).status is EventStatus.RESCHEDULED
        assert len(events.list_for_persona(persona.id)) == 6

    @pytest.mark.asyncio
    async def test_past_events_dropped(self, planner, events, persona):
        await planner.plan_for(persona, TODAY, now=at(9))

        planned = events.list_for_persona(persona.id)
        assert [e.type for e in planned] == [EventType.IMAGE_GENERATION, EventType.SLEEP]

    @pytest.mark.asyncio
    async def test_local_today(self, planner):
        assert planner.local_today(NOW) == TODAY


class TestPlanAll:
    @pytest.mark.asyncio
    async def test_failure_does_not_stop_others(self, planner, personas, brain, persona):
        other = personas.create(Persona(name="Mira", system_prompt="You are Mira."))
        good = brain.generate_daily_plan.return_value
        brain.generate_daily_plan.side_effect = [RuntimeError("boom"), good]

        plans = await planner.plan_all(TODAY, now=EARLY)

        assert list(plans) == [other.id]

    @pytest.mark.asyncio
    async def test_inactive_personas_skipped(self, planner, personas, brain, persona):
        personas.create(Persona(name="Sleepy", is_active=False))

        plans = await planner.plan_all(TODAY, now=EARLY - timedelta(hours=1))

        assert list(plans) == [persona.id]
