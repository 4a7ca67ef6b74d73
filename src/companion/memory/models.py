"""Data models for the memory system."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

USER = "user"
SELF = "self"
TARGETS = frozenset({USER, SELF})

MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 10
DEFAULT_IMPORTANCE = 5

MOOD_CATEGORY = "current_mood"
DAILY_OUTFIT = "daily_outfit"
NIGHT_OUTFIT = "night_outfit"
OUTFIT_CATEGORIES = frozenset({DAILY_OUTFIT, NIGHT_OUTFIT})


def clamp_importance(value: int) -> int:
    """Force an importance score into the 1-10 range."""
    return max(MIN_IMPORTANCE, min(MAX_IMPORTANCE, int(value)))


@dataclass(frozen=True)
class Fact:
    """A fact a persona remembers about the user or about itself.

    Attributes:
        persona_id: Owning persona.
        target: 'user' if the fact describes the human, 'self' for the persona.
        category: Short label, e.g. 'favorite_food' or 'current_mood'.
        value: The fact content.
        id: Database ID, None for new facts.
        context: When or why the fact was learned.
        importance: 1 (trivial) to 10 (core identity).
        created_at: When the fact was first stored.
        updated_at: When the fact last changed; drives the recency tier.
        last_consolidated_at: When consolidation last touched the fact.
    """

    persona_id: int
    target: str
    category: str
    value: str
    id: int | None = None
    context: str | None = None
    importance: int = DEFAULT_IMPORTANCE
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_consolidated_at: datetime | None = None

    def snapshot(self) -> dict[str, Any]:
        """The fields shown to the extraction model."""
        return {
            "id": self.id,
            "target": self.target,
            "category": self.category,
            "value": self.value,
        }


@dataclass(frozen=True)
class FactDraft:
    """A fact proposed for creation by reconciliation."""

    target: str
    category: str
    value: str
    context: str | None = None


@dataclass(frozen=True)
class FactUpdate:
    """A new value proposed for an existing fact."""

    id: int
    value: str
    context: str | None = None


@dataclass
class FactDiff:
    """The add/update/remove changes derived from a conversation excerpt."""

    add: list[FactDraft] = field(default_factory=list)
    update: list[FactUpdate] = field(default_factory=list)
    remove: list[int] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.add or self.update or self.remove)


@dataclass(frozen=True)
class FactRevision:
    """A consolidation change to one fact. None leaves the field as is."""

    id: int
    value: str | None = None
    importance: int | None = None


@dataclass
class ConsolidationPlan:
    """The merge/re-rank/prune result of a consolidation pass."""

    update: list[FactRevision] = field(default_factory=list)
    delete: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class Malformed:
    """A structured model response that could not be used.

    Attributes:
        reason: Why the response was rejected.
        raw: The offending response text, for logging.
    """

    reason: str
    raw: str = ""
