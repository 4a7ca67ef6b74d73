"""Due-event sweep with retry, backoff and final cancellation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime

from ..logging import get_logger
from .models import EventStatus, ScheduledEvent
from .scheduler import AdaptiveScheduler, ExecuteCallback
from .store import EventStore

logger = logging.getLogger(__name__)

FailureCallback = Callable[[ScheduledEvent], Awaitable[None]]


class EventRunner:
    """Runs due events through the scheduler and retries failures.

    A failing event is retried up to ``max_attempts`` times with growing
    delays. After the last failure it is cancelled and the user gets one
    apology through ``on_give_up``.
    """

    def __init__(
        self,
        events: EventStore,
        scheduler: AdaptiveScheduler,
        execute: ExecuteCallback,
        on_give_up: FailureCallback | None = None,
        max_attempts: int = 3,
        backoff: Sequence[float] = (5, 15, 30),
        max_concurrency: int = 4,
    ) -> None:
        """Initialize the runner.

        Args:
            events: Event storage.
            scheduler: Makes the execute-or-defer decision.
            execute: Delivers one event.
            on_give_up: Notifies the user once an event is abandoned.
            max_attempts: Failed executions allowed before cancelling.
            backoff: Seconds to wait after the 1st, 2nd, ... failure.
            max_concurrency: Events processed at the same time per sweep.
        """
        self.events = events
        self.scheduler = scheduler
        self.execute = execute
        self.on_give_up = on_give_up
        self.max_attempts = max_attempts
        self.backoff = tuple(backoff) or (0,)
        self.max_concurrency = max_concurrency

    async def sweep(self, now: datetime | None = None) -> int:
        """Process every due event.

        Returns:
            Number of due events found.
        """
        due = self.events.due(now)
        if not due:
            return 0

        logger.info("Processing %d due events", len(due))
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(event: ScheduledEvent) -> None:
            async with semaphore:
                await self.run_event(event)

        await asyncio.gather(*(run(event) for event in due))
        return len(due)

    async def run_event(self, event: ScheduledEvent) -> bool:
        """Process one event, retrying failed executions.

        Never raises on execution errors; the final state is written to the
        store instead.

        Returns:
            True if the event was executed.
        """
        event_id: int = event.id  # type: ignore[assignment]
        while True:
            try:
                return await self.scheduler.process_event(event, self.execute)
            except Exception as e:
                attempts = self.events.record_attempt(event_id)
                if attempts >= self.max_attempts:
                    await self._give_up(event, attempts, e)
                    return False
                delay = self.backoff[min(attempts - 1, len(self.backoff) - 1)]
                logger.warning(
                    "Event %s failed (attempt %d/%d), retrying in %ss: %s",
                    event_id,
                    attempts,
                    self.max_attempts,
                    delay,
                    e,
                )
                await asyncio.sleep(delay)
                event = self.events.get(event_id) or event

    async def _give_up(self, event: ScheduledEvent, attempts: int, error: Exception) -> None:
        event_id: int = event.id  # type: ignore[assignment]
        self.events.mark(event_id, EventStatus.CANCELLED)
        logger.error(
            "Event %s cancelled after %d failed attempts: %s", event_id, attempts, error
        )
        get_logger().log_scheduled_event(
            "cancelled", event_id, event.persona_id, error=str(error), attempts=attempts
        )
        if self.on_give_up is None:
            return
        try:
            await self.on_give_up(event)
        except Exception as e:
            logger.warning("Could not notify user about event %s: %s", event_id, e)
