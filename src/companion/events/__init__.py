"""Scheduled proactive events."""

from .models import EventSource, EventStatus, EventType, ScheduledEvent
from .runner import EventRunner
from .scheduler import AdaptiveScheduler, SkipEvent
from .store import EventStore

__all__ = [
    "AdaptiveScheduler",
    "EventRunner",
    "EventSource",
    "EventStatus",
    "EventStore",
    "EventType",
    "ScheduledEvent",
    "SkipEvent",
]
