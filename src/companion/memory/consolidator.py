"""LLM-driven merge, re-rank and prune pass over a persona's facts."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from .extractor import as_fact_id, clean_text, load_json_object
from .models import ConsolidationPlan, Fact, FactRevision, Malformed

if TYPE_CHECKING:
    from ..llm import GroqLLMClient

logger = logging.getLogger(__name__)

CONSOLIDATION_PROMPT = """Act as a Memory Manager. Here is a list of raw facts about a User and Persona.

MEMORY FACTS:
{facts}

Tasks:
1. Deduplicate: merge semantically similar facts (e.g. 'Likes cats' and 'Cat lover' -> 'Loves cats').
2. Prune: identify trivial facts that are no longer relevant (e.g. 'Ate toast yesterday').
3. Rank: assign an importance score (1-10) to each fact:
   - 10 = Core identity or critical fact (name, occupation, key relationship)
   - 8-9 = Important personal trait (loves music, allergic to peanuts)
   - 5-7 = Moderate context (favorite color, morning person)
   - 3-4 = Minor detail (mentioned trying sushi)
   - 1-2 = Trivial or outdated (ate breakfast at 7am)

Output JSON only:
{{
  "update": [
    {{"id": 12, "value": "Merged or updated value", "importance": 8}}
  ],
  "delete": [14, 15, 16]
}}

IMPORTANT:
- Only include ids that exist in the input
- For "update", give the complete new value (merged or unchanged)
- For "delete", only include truly trivial or duplicate facts
- Be conservative with deletions: when in doubt, keep it
"""


class Consolidator:
    """Asks the model for a consolidation plan over a full fact list."""

    def __init__(self, llm: GroqLLMClient, temperature: float = 0.2) -> None:
        self.llm = llm
        self.temperature = temperature

    async def plan(self, facts: list[Fact]) -> ConsolidationPlan | Malformed:
        """Build a consolidation plan.

        Returns:
            The plan, or Malformed when the call fails or the response
            lacks list-valued ``update`` and ``delete`` keys.
        """
        serialized = [
            {
                "id": fact.id,
                "target": fact.target,
                "category": fact.category,
                "value": fact.value,
                "context": fact.context,
                "current_importance": fact.importance,
            }
            for fact in facts
        ]
        prompt = CONSOLIDATION_PROMPT.format(
            facts=json.dumps(serialized, ensure_ascii=False, indent=2)
        )
        try:
            content = await self.llm.complete(
                prompt,
                temperature=self.temperature,
                json_mode=True,
                fallback=False,
            )
        except Exception as e:
            return Malformed(reason=f"consolidation call failed: {e}")
        return self.parse_response(content)

    def parse_response(self, content: str) -> ConsolidationPlan | Malformed:
        data = load_json_object(content)
        if data is None:
            return Malformed(reason="response is not a JSON object", raw=content)
        if not isinstance(data.get("update"), list) or not isinstance(data.get("delete"), list):
            return Malformed(reason="missing 'update' or 'delete' list", raw=content)

        plan = ConsolidationPlan()
        for item in data["update"]:
            revision = self._parse_revision(item)
            if revision is None:
                logger.warning("Skipping invalid consolidation update: %s", item)
                continue
            plan.update.append(revision)
        for item in data["delete"]:
            fact_id = as_fact_id(item)
            if fact_id is None:
                logger.warning("Skipping invalid consolidation delete: %s", item)
                continue
            plan.delete.append(fact_id)
        return plan

    def _parse_revision(self, item: Any) -> FactRevision | None:
        if not isinstance(item, dict):
            return None
        fact_id = as_fact_id(item.get("id"))
        if fact_id is None:
            return None
        importance = item.get("importance")
        try:
            importance = int(importance) if importance is not None else None
        except (TypeError, ValueError):
            importance = None
        return FactRevision(id=fact_id, value=clean_text(item.get("value")), importance=importance)
