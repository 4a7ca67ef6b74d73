"""Fact extraction from conversations using LLM."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from .models import TARGETS, FactDiff, FactDraft, FactUpdate, Malformed

if TYPE_CHECKING:
    from ..llm import GroqLLMClient

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """You maintain the long-term memory of the persona described above.

CURRENT FACTS (JSON, each with its id):
{snapshot}

CONVERSATION EXCERPT:
{excerpt}

TASK: Compare the conversation with the current facts and decide what changes.
- "add": new facts about the user (target "user") or about yourself (target "self").
  Each entry needs "target", "category" and "value"; "context" is optional.
- "update": facts from the list above whose value changed. Use their "id".
- "remove": ids of facts from the list above that are no longer true.

Rules:
- Only stable, meaningful facts. Skip small talk and hypotheticals.
- Use short snake_case categories, e.g. favorite_food, occupation, hobby.
- Never add a fact that already exists; update it instead.
- Only use ids that appear in the current facts.

MOOD TRACKING (MANDATORY):
- Whenever your emotional state plausibly changed in this excerpt, emit an
  "update" for your "current_mood" fact (target "self"), or an "add" if it
  does not exist yet.
- The value must read "{{Emotion}} because {{Reason}}", e.g. "Happy because
  the user remembered my birthday".

OUTPUT FORMAT (JSON object only, exactly these three keys, no markdown):
{{
  "add": [{{"target": "user", "category": "favorite_drink", "value": "oat milk latte", "context": "Mentioned during morning chat"}}],
  "update": [{{"id": 12, "value": "Sad because the user was busy all day"}}],
  "remove": [7]
}}

If nothing changed, return {{"add": [], "update": [], "remove": []}}.
"""


def strip_code_fence(content: str) -> str:
    """Remove a Markdown code fence the model may wrap JSON in."""
    text = content.strip()
    if not text.startswith("```"):
        return text
    lines = [line for line in text.split("\n") if not line.strip().startswith("```")]
    return "\n".join(lines).strip()


def load_json_object(content: str) -> dict[str, Any] | None:
    """Parse a model response as a JSON object, None if it is not one."""
    try:
        data = json.loads(strip_code_fence(content))
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def as_fact_id(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def clean_text(raw: Any) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


class FactExtractor:
    """Derives an add/update/remove diff from a conversation excerpt."""

    def __init__(self, llm: GroqLLMClient, temperature: float = 0.3) -> None:
        """Initialize the extractor.

        Args:
            llm: The LLM client used for extraction.
            temperature: Sampling temperature for extraction calls.
        """
        self.llm = llm
        self.temperature = temperature

    async def extract(
        self,
        system_description: str,
        excerpt: str,
        snapshot: list[dict[str, Any]],
    ) -> FactDiff | Malformed:
        """Ask the model for the changes implied by the excerpt.

        Args:
            system_description: The persona description.
            excerpt: The conversation text to analyze.
            snapshot: Current facts as id/target/category/value dicts.

        Returns:
            The proposed diff, or Malformed if the call failed or the
            response does not follow the schema.
        """
        prompt = EXTRACTION_PROMPT.format(
            snapshot=json.dumps(snapshot, ensure_ascii=False, indent=2),
            excerpt=excerpt,
        )
        try:
            content = await self.llm.complete(
                prompt,
                system=system_description,
                temperature=self.temperature,
                json_mode=True,
                fallback=False,
            )
        except Exception as e:
            logger.warning("Fact extraction call failed: %s", e)
            return Malformed(reason=f"extraction call failed: {e}")
        return self.parse_response(content)

    def parse_response(self, content: str) -> FactDiff | Malformed:
        """Validate a raw extraction response.

        The top level must be an object whose ``add``, ``update`` and
        ``remove`` keys all hold lists; anything else rejects the whole
        response. Individual bad entries are skipped with a warning.
        """
        data = load_json_object(content)
        if data is None:
            return Malformed(reason="response is not a JSON object", raw=content)
        for key in ("add", "update", "remove"):
            if not isinstance(data.get(key), list):
                return Malformed(reason=f"missing or invalid '{key}' list", raw=content)

        diff = FactDiff()
        for item in data["add"]:
            draft = self._parse_add(item)
            if draft is None:
                logger.warning("Skipping incomplete fact: %s", item)
                continue
            diff.add.append(draft)

        for item in data["update"]:
            update = self._parse_update(item)
            if update is None:
                logger.warning("Skipping invalid fact update: %s", item)
                continue
            diff.update.append(update)

        for item in data["remove"]:
            fact_id = as_fact_id(item.get("id") if isinstance(item, dict) else item)
            if fact_id is None:
                logger.warning("Skipping invalid fact removal: %s", item)
                continue
            diff.remove.append(fact_id)

        return diff

    def _parse_add(self, item: Any) -> FactDraft | None:
        if not isinstance(item, dict):
            return None
        target = clean_text(item.get("target"))
        category = clean_text(item.get("category"))
        value = clean_text(item.get("value"))
        if target is None or category is None or value is None:
            return None
        target = target.lower()
        if target not in TARGETS:
            return None
        return FactDraft(
            target=target,
            category=category,
            value=value,
            context=clean_text(item.get("context")),
        )

    def _parse_update(self, item: Any) -> FactUpdate | None:
        if not isinstance(item, dict):
            return None
        fact_id = as_fact_id(item.get("id"))
        value = clean_text(item.get("value"))
        if fact_id is None or value is None:
            return None
        return FactUpdate(id=fact_id, value=value, context=clean_text(item.get("context")))
