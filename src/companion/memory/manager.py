"""Memory manager for reconciling and consolidating persona facts."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from ..conversation.store import format_transcript
from ..logging import get_logger
from ..storage import utcnow
from .models import (
    MOOD_CATEGORY,
    OUTFIT_CATEGORIES,
    ConsolidationPlan,
    Fact,
    FactDiff,
    FactDraft,
    FactUpdate,
    Malformed,
)
from .selector import CORE_CATEGORIES
from .store import MemoryStore

if TYPE_CHECKING:
    from ..conversation.store import MessageStore
    from ..persona import Persona, User
    from .consolidator import Consolidator
    from .extractor import FactExtractor

logger = logging.getLogger(__name__)

# Categories that hold one fact per target; a repeated add replaces it.
SINGLE_VALUED_CATEGORIES = frozenset({MOOD_CATEGORY, *OUTFIT_CATEGORIES})


class MemoryManager:
    """Orchestrates fact reconciliation and consolidation.

    Both operations mutate the same rows, so they share one lock per
    persona. Neither ever raises: memory upkeep must not break the
    conversation that triggered it.
    """

    def __init__(
        self,
        store: MemoryStore,
        extractor: FactExtractor,
        consolidator: Consolidator | None = None,
        messages: MessageStore | None = None,
        excerpt_size: int = 10,
        protected_categories: Iterable[str] = CORE_CATEGORIES,
    ) -> None:
        """Initialize the manager.

        Args:
            store: The MemoryStore for persistence.
            extractor: Produces reconciliation diffs.
            consolidator: Produces consolidation plans.
            messages: Message history, needed by reconcile_recent().
            excerpt_size: Number of recent messages reconciled at a time.
            protected_categories: Categories consolidation may never delete.
        """
        self.store = store
        self.extractor = extractor
        self.consolidator = consolidator
        self.messages = messages
        self.excerpt_size = excerpt_size
        self.protected_categories = frozenset(protected_categories)
        self._locks: dict[int, asyncio.Lock] = {}
        self._consolidating: set[int] = set()

    def lock_for(self, persona_id: int) -> asyncio.Lock:
        """Get the lock guarding a persona's facts."""
        if persona_id not in self._locks:
            self._locks[persona_id] = asyncio.Lock()
        return self._locks[persona_id]

    async def upsert(
        self,
        persona_id: int,
        target: str,
        category: str,
        value: str,
        context: str | None = None,
        now: datetime | None = None,
    ) -> Fact:
        """Set a single-valued fact, such as the mood or an outfit.

        Waits for any reconciliation or consolidation of the persona to
        finish, so the write is never overwritten by a stale snapshot.
        """
        async with self.lock_for(persona_id):
            return self.store.upsert_by_category(
                persona_id, target, category, value, context=context, now=now
            )

    async def reconcile_facts(
        self, persona: Persona, excerpt: str, now: datetime | None = None
    ) -> FactDiff:
        """Derive fact changes from an excerpt and apply them.

        Returns:
            The diff that was actually applied. Empty when the extraction
            failed or was malformed, in which case nothing is written.
        """
        persona_id: int = persona.id  # type: ignore[assignment]
        try:
            async with self.lock_for(persona_id):
                snapshot = [fact.snapshot() for fact in self.store.get_all(persona_id)]
                result = await self.extractor.extract(persona.system_prompt, excerpt, snapshot)
                if isinstance(result, Malformed):
                    logger.warning(
                        "Discarding reconciliation for persona %s: %s", persona_id, result.reason
                    )
                    return FactDiff()
                applied = self._apply_diff(persona_id, result, now or utcnow())
        except Exception as e:
            logger.error("Reconciliation failed for persona %s: %s", persona_id, e)
            return FactDiff()

        logger.info(
            "Reconciled persona %s: %d added, %d updated, %d removed",
            persona_id,
            len(applied.add),
            len(applied.update),
            len(applied.remove),
        )
        get_logger().log_memory_reconciled(
            persona_id, len(applied.add), len(applied.update), len(applied.remove)
        )
        return applied

    async def reconcile_recent(self, persona: Persona, user: User | None = None) -> FactDiff:
        """Reconcile against the latest messages of a conversation."""
        if self.messages is None:
            logger.warning("No message store configured, skipping reconciliation")
            return FactDiff()
        recent = self.messages.recent(
            persona.id,  # type: ignore[arg-type]
            limit=self.excerpt_size,
            user_id=user.id if user else None,
        )
        if not recent:
            return FactDiff()
        return await self.reconcile_facts(persona, format_transcript(recent))

    def _apply_diff(self, persona_id: int, diff: FactDiff, now: datetime) -> FactDiff:
        """Apply add, then update, then remove in one transaction."""
        stamp = now.strftime("%Y-%m-%d %H:%M")
        applied = FactDiff()

        owned = self.store.owned_ids(
            persona_id, [u.id for u in diff.update] + list(diff.remove)
        )
        rejected = {u.id for u in diff.update if u.id not in owned}
        rejected |= {fact_id for fact_id in diff.remove if fact_id not in owned}
        if rejected:
            logger.warning(
                "Ignoring facts not owned by persona %s: %s", persona_id, sorted(rejected)
            )

        with self.store.db.transaction():
            for draft in diff.add:
                context = draft.context or f"Extracted on {stamp}"
                if draft.category in SINGLE_VALUED_CATEGORIES:
                    self.store.upsert_by_category(
                        persona_id, draft.target, draft.category, draft.value, context, now=now
                    )
                else:
                    self.store.add_fact(
                        Fact(
                            persona_id=persona_id,
                            target=draft.target,
                            category=draft.category,
                            value=draft.value,
                            context=context,
                        ),
                        now=now,
                    )
                applied.add.append(
                    FactDraft(draft.target, draft.category, draft.value, context)
                )

            doomed = set(diff.remove)
            for update in diff.update:
                if update.id not in owned or update.id in doomed:
                    continue
                context = update.context or f"Updated on {stamp}"
                if self.store.update_fact(
                    persona_id, update.id, value=update.value, context=context, now=now
                ):
                    applied.update.append(FactUpdate(update.id, update.value, context))

            removals = sorted({fact_id for fact_id in diff.remove if fact_id in owned})
            if removals:
                self.store.delete_facts(persona_id, removals)
                applied.remove.extend(removals)

        return applied

    async def consolidate_persona_facts(
        self, persona: Persona, now: datetime | None = None
    ) -> ConsolidationPlan | None:
        """Merge, re-rank and prune a persona's facts.

        Only one pass per persona runs at a time; a call made while another
        is in flight returns None immediately.

        Returns:
            The applied plan (empty if the response was malformed), or None
            if the pass was skipped.
        """
        persona_id: int = persona.id  # type: ignore[assignment]
        if self.consolidator is None:
            logger.warning("No consolidator configured, skipping persona %s", persona_id)
            return None
        if persona_id in self._consolidating:
            logger.info("Consolidation already running for persona %s", persona_id)
            return None

        self._consolidating.add(persona_id)
        try:
            async with self.lock_for(persona_id):
                facts = self.store.get_all(persona_id)
                if not facts:
                    logger.info("No facts to consolidate for persona %s", persona_id)
                    return ConsolidationPlan()
                result = await self.consolidator.plan(facts)
                if isinstance(result, Malformed):
                    logger.error(
                        "Invalid consolidation response for persona %s: %s",
                        persona_id,
                        result.reason,
                    )
                    return ConsolidationPlan()
                applied = self._apply_plan(persona_id, facts, result, now or utcnow())
        except Exception as e:
            logger.error("Consolidation failed for persona %s: %s", persona_id, e)
            return ConsolidationPlan()
        finally:
            self._consolidating.discard(persona_id)

        logger.info(
            "Consolidated persona %s: %d updated, %d deleted",
            persona_id,
            len(applied.update),
            len(applied.delete),
        )
        get_logger().log_memory_consolidated(persona_id, len(applied.update), len(applied.delete))
        return applied

    def _apply_plan(
        self,
        persona_id: int,
        facts: list[Fact],
        plan: ConsolidationPlan,
        now: datetime,
    ) -> ConsolidationPlan:
        by_id = {fact.id: fact for fact in facts}
        applied = ConsolidationPlan()

        # Facts rewritten since the snapshot keep their newer value.
        current = {fact.id: fact for fact in self.store.get_all(persona_id)}
        for fact_id, fact in list(by_id.items()):
            latest = current.get(fact_id)
            if latest is None or (latest.value, latest.updated_at) != (fact.value, fact.updated_at):
                logger.info("Fact %s of persona %s changed during consolidation", fact_id, persona_id)
                del by_id[fact_id]

        deletions = set()
        for fact_id in plan.delete:
            fact = by_id.get(fact_id)
            if fact is None:
                continue
            if fact.category in self.protected_categories:
                logger.warning(
                    "Keeping protected fact %s (%s) of persona %s",
                    fact_id,
                    fact.category,
                    persona_id,
                )
                continue
            deletions.add(fact_id)

        with self.store.db.transaction():
            for revision in plan.update:
                fact = by_id.get(revision.id)
                if fact is None or revision.id in deletions:
                    continue
                value = revision.value if revision.value != fact.value else None
                self.store.update_fact(
                    persona_id,
                    revision.id,
                    value=value,
                    importance=revision.importance,
                    consolidated_at=now,
                    now=now,
                )
                applied.update.append(revision)

            if deletions:
                self.store.delete_facts(persona_id, deletions)
                applied.delete.extend(sorted(deletions))

        return applied
