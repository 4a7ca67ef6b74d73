"""Tests for Consolidator."""

import json

import pytest
from conftest import make_llm

from companion.memory import ConsolidationPlan, Consolidator, Fact, Malformed
from companion.memory.models import FactRevision


@pytest.fixture
def consolidator() -> Consolidator:
    return Consolidator(make_llm())


class TestParseResponse:
    def test_valid_plan(self, consolidator: Consolidator):
        plan = consolidator.parse_response(
            json.dumps({"update": [{"id": 3, "value": "Loves cats", "importance": "8"}],
                        "delete": [4, "5"]})
        )
        assert plan == ConsolidationPlan(
            update=[FactRevision(id=3, value="Loves cats", importance=8)], delete=[4, 5]
        )

    def test_missing_delete_rejected(self, consolidator: Consolidator):
        assert isinstance(consolidator.parse_response('{"update": []}'), Malformed)

    def test_bad_importance_left_unset(self, consolidator: Consolidator):
        plan = consolidator.parse_response(
            '{"update": [{"id": 1, "importance": "high"}], "delete": []}'
        )
        assert plan.update == [FactRevision(id=1, value=None, importance=None)]

    def test_entries_without_id_skipped(self, consolidator: Consolidator):
        plan = consolidator.parse_response('{"update": [{"value": "x"}], "delete": [null]}')
        assert plan == ConsolidationPlan()


class TestPlan:
    @pytest.mark.asyncio
    async def test_prompt_lists_facts_with_importance(self):
        llm = make_llm('{"update": [], "delete": []}')
        facts = [Fact(persona_id=1, target="user", category="hobby", value="chess",
                      id=7, importance=6)]

        await Consolidator(llm).plan(facts)

        prompt = llm.complete.call_args.args[0]
        assert '"id": 7' in prompt
        assert '"current_importance": 6' in prompt
        assert llm.complete.call_args.kwargs["json_mode"] is True

    @pytest.mark.asyncio
    async def test_call_failure_is_malformed(self):
        llm = make_llm()
        llm.complete.side_effect = RuntimeError("down")
        assert isinstance(await Consolidator(llm).plan([]), Malformed)
