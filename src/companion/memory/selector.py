"""Choose which facts go into a generation prompt.

Sending a persona's whole memory with every prompt does not scale, so the
selector builds a bounded subset from three tiers:

1. Recency: facts whose value changed in the last few days.
2. Core: categories that are always needed (identity, mood, outfit).
3. Keyword: categories tied to topics mentioned in the latest message.

The tiers are unioned and deduplicated by fact id. Importance is not
considered here; it only drives consolidation.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, tzinfo

from ..storage import as_utc, utcnow
from .models import (
    DAILY_OUTFIT,
    MOOD_CATEGORY,
    NIGHT_OUTFIT,
    OUTFIT_CATEGORIES,
    SELF,
    USER,
    Fact,
)
from .store import MemoryStore

logger = logging.getLogger(__name__)

CORE_CATEGORIES = frozenset(
    {
        DAILY_OUTFIT,
        NIGHT_OUTFIT,
        "name",
        "age",
        "location",
        "occupation",
        "identity",
        MOOD_CATEGORY,
    }
)

KeywordTable = Sequence[tuple[frozenset[str], frozenset[str]]]

# Evaluated in order; the first keyword hit in a row pulls in all its categories.
KEYWORD_TABLE: KeywordTable = (
    (
        frozenset({"eat", "food", "hungry", "dinner", "lunch", "breakfast",
                   "meal", "cook", "snack", "restaurant"}),
        frozenset({"food_preference", "favorite_food", "diet"}),
    ),
    (
        frozenset({"drink", "coffee", "tea", "thirsty", "latte", "juice", "cafe"}),
        frozenset({"favorite_drink", "drink_preference"}),
    ),
    (
        frozenset({"work", "job", "office", "boss", "meeting", "deadline",
                   "colleague", "career"}),
        frozenset({"occupation", "workplace", "work_schedule", "career_goal"}),
    ),
    (
        frozenset({"study", "exam", "school", "class", "university", "college",
                   "homework", "lecture"}),
        frozenset({"education", "school", "study_subject"}),
    ),
    (
        frozenset({"family", "mom", "mother", "dad", "father", "sister",
                   "brother", "parents", "kids"}),
        frozenset({"family", "relationship", "family_member"}),
    ),
    (
        frozenset({"friend", "friends", "bestie", "hang out", "party"}),
        frozenset({"friends", "social_life"}),
    ),
    (
        frozenset({"sick", "tired", "sleep", "headache", "doctor", "exercise",
                   "gym", "health"}),
        frozenset({"health", "sleep_pattern", "fitness"}),
    ),
    (
        frozenset({"music", "song", "movie", "film", "game", "read", "book",
                   "hobby", "watch", "series"}),
        frozenset({"hobby", "interests", "favorite_music", "favorite_movie",
                   "favorite_book"}),
    ),
    (
        frozenset({"travel", "trip", "holiday", "vacation", "flight", "visit"}),
        frozenset({"travel", "dream_destination"}),
    ),
    (
        frozenset({"pet", "cat", "dog"}),
        frozenset({"pet"}),
    ),
    (
        frozenset({"birthday", "anniversary", "celebrate"}),
        frozenset({"birthday", "important_date"}),
    ),
)

NIGHT_START_HOUR = 21
NIGHT_END_HOUR = 6

EMPTY_MEMORY = "No stored memories yet."
EMPTY_SECTION = "Nothing yet."


def match_keywords(text: str, table: KeywordTable = KEYWORD_TABLE) -> set[str]:
    """Collect the categories of every table row that the text mentions.

    Matching is a case-insensitive substring test without stemming.
    """
    lowered = text.lower()
    matched: set[str] = set()
    for keywords, categories in table:
        if any(keyword in lowered for keyword in keywords):
            matched.update(categories)
    return matched


def is_night(moment: datetime) -> bool:
    return moment.hour >= NIGHT_START_HOUR or moment.hour < NIGHT_END_HOUR


class RelevanceSelector:
    """Selects the facts relevant to the latest inbound message."""

    def __init__(
        self,
        store: MemoryStore,
        recency_days: int = 3,
        core_categories: Iterable[str] = CORE_CATEGORIES,
        keyword_table: KeywordTable = KEYWORD_TABLE,
        tz: tzinfo | None = None,
    ) -> None:
        """Initialize the selector.

        Args:
            store: Fact storage.
            recency_days: Width of the recency tier.
            core_categories: Categories that are always selected.
            keyword_table: Ordered (keywords, categories) pairs.
            tz: Local timezone used to pick the day or night outfit.
        """
        self.store = store
        self.recency = timedelta(days=recency_days)
        self.core_categories = frozenset(core_categories)
        self.keyword_table = keyword_table
        self.tz = tz

    def select(
        self, persona_id: int, latest_text: str, now: datetime | None = None
    ) -> list[Fact]:
        """Return the deduplicated union of the recency, core and keyword tiers.

        The result is ordered by fact id so identical inputs give identical
        output; callers group it by target anyway.
        """
        now = now or utcnow()
        selected: dict[int, Fact] = {}

        recent = self.store.updated_since(persona_id, now - self.recency)
        core = self.store.with_categories(persona_id, self.core_categories)
        topical_categories = match_keywords(latest_text or "", self.keyword_table)
        topical = self.store.with_categories(persona_id, topical_categories)

        for fact in (*recent, *core, *topical):
            selected.setdefault(fact.id, fact)  # type: ignore[arg-type]

        logger.debug(
            "Selected %d facts for persona %s (recent=%d core=%d topical=%d)",
            len(selected),
            persona_id,
            len(recent),
            len(core),
            len(topical),
        )
        return [selected[fact_id] for fact_id in sorted(selected)]

    def current_outfit(self, facts: Iterable[Fact], now: datetime | None = None) -> str | None:
        """Pick the outfit fact that matches the local time of day."""
        local = as_utc(now or utcnow()).astimezone(self.tz)
        category = NIGHT_OUTFIT if is_night(local) else DAILY_OUTFIT
        for fact in facts:
            if fact.category == category:
                return fact.value
        return None

    def format_for_prompt(self, facts: list[Fact], now: datetime | None = None) -> str:
        """Render selected facts as the memory block of a prompt."""
        if not facts:
            return EMPTY_MEMORY

        def section(target: str) -> str:
            lines = [
                f"- {fact.category}: {fact.value}"
                for fact in facts
                if fact.target == target and fact.category not in OUTFIT_CATEGORIES
            ]
            return "\n".join(lines) or EMPTY_SECTION

        context = "What you know about the user:\n" + section(USER)
        context += "\n\nWhat you know about yourself:\n" + section(SELF)

        outfit = self.current_outfit(facts, now)
        if outfit:
            context += f"\n\n[CURRENT OUTFIT]: You are currently wearing: {outfit}"
        return context
