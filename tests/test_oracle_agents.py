"""Tests for the oracle-backed agents: decision, evaluation, dedup and rewriting."""
from __future__ import annotations

import json

import pytest

from deepsearch.agents.decision_agent import DecisionAgent
from deepsearch.agents.evaluator_agent import AnswerEvaluator
from deepsearch.errors import CollaboratorUnavailable, EvaluationFailed, MalformedAction
from deepsearch.llm_client import MessageResponse, TextBlock, Usage
from deepsearch.models.actions import ActionKind, AnswerAction, ContextEntry, SearchAction
from deepsearch.services.budget import TokenBudget
from deepsearch.services.query_dedup import QueryDeduplicator, prefilter
from deepsearch.services.query_rewriter import QueryRewriter


class _FakeMessages:
    def __init__(self, replies: list):
        self.replies = list(replies)
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        text = reply if isinstance(reply, str) else json.dumps(reply)
        return MessageResponse(
            content=[TextBlock(type="text", text=text)],
            usage=Usage(input_tokens=100, output_tokens=20),
        )


class _FakeClient:
    def __init__(self, replies: list):
        self.messages = _FakeMessages(replies)


def _with_client(agent, replies: list):
    agent.client = _FakeClient(replies)
    return agent


ALL_ACTIONS = frozenset(ActionKind)


class TestDecisionAgent:
    @pytest.mark.asyncio
    async def test_decide_returns_action_and_reports_cost(self):
        agent = _with_client(
            DecisionAgent(model="test-model"),
            [{"action": "search", "reasoning": "need data", "searchQuery": "jina reader api"}],
        )
        budget = TokenBudget(ceiling=10_000)

        action = await agent.decide("What is Jina?", [], [], ALL_ACTIONS, ["What is Jina?"], budget=budget)

        assert isinstance(action, SearchAction)
        assert budget.consumed == 120
        call = agent.client.messages.calls[0]
        assert call["model"] == "test-model"
        assert call["schema_name"] == "research_action"
        assert "reflect" in call["response_schema"]["properties"]["action"]["enum"]

    @pytest.mark.asyncio
    async def test_malformed_response_still_counts_tokens(self):
        agent = _with_client(DecisionAgent(model="test-model"), ["not json at all"])
        budget = TokenBudget(ceiling=10_000)

        with pytest.raises(MalformedAction):
            await agent.decide("q", [], [], ALL_ACTIONS, [], budget=budget)

        assert budget.consumed == 120

    @pytest.mark.asyncio
    async def test_transport_failure_raises_collaborator_unavailable(self):
        agent = _with_client(DecisionAgent(model="test-model"), [RuntimeError("502 bad gateway")])
        budget = TokenBudget(ceiling=10_000)

        with pytest.raises(CollaboratorUnavailable):
            await agent.decide("q", [], [], ALL_ACTIONS, [], budget=budget)

        assert budget.consumed == 0

    @pytest.mark.asyncio
    async def test_forced_decision_offers_answer_only(self):
        agent = _with_client(DecisionAgent(model="test-model"), [{"action": "answer", "answer": "42"}])
        budget = TokenBudget(ceiling=0)

        action = await agent.decide("q", [], [], ALL_ACTIONS, [], budget=budget, forced=True)

        assert isinstance(action, AnswerAction)
        call = agent.client.messages.calls[0]
        assert call["response_schema"]["properties"]["action"]["enum"] == ["answer"]
        assert "budget is exhausted" in call["messages"][0]["content"]

    def test_prompt_includes_context_bad_context_and_asked_questions(self):
        agent = DecisionAgent(model="test-model")
        good = ContextEntry(step=1, question="q", action=SearchAction(query="first search"))
        bad = ContextEntry(step=2, question="q", action=AnswerAction(text="maybe 3"))

        prompt = agent.build_prompt(
            "What is 1+1?",
            [good],
            [bad],
            ALL_ACTIONS,
            ["What is 1+1?", "What is addition?"],
        )

        assert "first search" in prompt
        assert "maybe 3" in prompt
        assert "Learn to avoid these mistakes" in prompt
        assert "**reflect**" in prompt
        assert "What is addition?" in prompt

    def test_prompt_hides_disabled_actions(self):
        agent = DecisionAgent(model="test-model")

        prompt = agent.build_prompt(
            "What is 1+1?",
            [],
            [],
            frozenset({ActionKind.DEEP_DIVE, ActionKind.ANSWER}),
            ["What is 1+1?"],
        )

        assert "**search**" not in prompt
        assert "**reflect**" not in prompt
        assert "**deep dive**" in prompt
        assert "**answer**" in prompt


class TestAnswerEvaluator:
    @pytest.mark.asyncio
    async def test_returns_verdict(self):
        evaluator = _with_client(
            AnswerEvaluator(model="judge"),
            [{"reasoning": "clear", "is_definitive": True}],
        )
        budget = TokenBudget(ceiling=10_000)

        assert await evaluator.is_definitive("1+1=", "2", budget=budget) is True
        assert budget.by_caller["evaluator"] == 120

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply",
        [
            RuntimeError("timeout"),
            "no verdict here",
            {"reasoning": "unsure"},
            {"reasoning": "unsure", "is_definitive": "yes"},
        ],
    )
    async def test_failures_raise_evaluation_failed(self, reply):
        evaluator = _with_client(AnswerEvaluator(model="judge"), [reply])

        with pytest.raises(EvaluationFailed):
            await evaluator.is_definitive("1+1=", "2", budget=TokenBudget(ceiling=10_000))


class TestQueryDeduplicator:
    def test_prefilter_drops_exact_and_in_batch_repeats(self):
        kept = prefilter(
            ["Python  GIL", "python gil", "asyncio loop", "  ", "Known Query"],
            ["known query"],
        )
        assert kept == ["Python GIL", "asyncio loop"]

    @pytest.mark.asyncio
    async def test_keeps_oracle_selected_candidates_in_order(self):
        dedup = _with_client(QueryDeduplicator(model="test-model"), [{"reasoning": "r", "novel": [2, 0]}])
        budget = TokenBudget(ceiling=10_000)

        result = await dedup.dedup(["a b", "c d", "e f"], ["x y"], budget=budget)

        assert result == ["a b", "e f"]
        assert budget.consumed == 120

    @pytest.mark.asyncio
    async def test_no_candidates_means_no_oracle_call(self):
        dedup = _with_client(QueryDeduplicator(model="test-model"), [])

        assert await dedup.dedup([], ["x"], budget=TokenBudget(ceiling=10)) == []
        assert await dedup.dedup(["x"], ["x"], budget=TokenBudget(ceiling=10)) == []
        assert dedup.client.messages.calls == []

    @pytest.mark.asyncio
    async def test_empty_known_set_skips_oracle(self):
        dedup = _with_client(QueryDeduplicator(model="test-model"), [])

        result = await dedup.dedup(["a", "b"], [], budget=TokenBudget(ceiling=10))

        assert result == ["a", "b"]
        assert dedup.client.messages.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [RuntimeError("down"), "garbage", {"reasoning": "r"}])
    async def test_oracle_failure_treats_all_as_novel(self, reply):
        dedup = _with_client(QueryDeduplicator(model="test-model"), [reply])

        result = await dedup.dedup(["a", "b"], ["c"], budget=TokenBudget(ceiling=10_000))

        assert result == ["a", "b"]

    @pytest.mark.asyncio
    async def test_ignores_out_of_range_indices(self):
        dedup = _with_client(QueryDeduplicator(model="test-model"), [{"reasoning": "r", "novel": [1, 7, -1, True]}])

        result = await dedup.dedup(["a", "b"], ["c"], budget=TokenBudget(ceiling=10_000))

        assert result == ["b"]


class TestQueryRewriter:
    @pytest.mark.asyncio
    async def test_rewrites_and_caps_queries(self):
        rewriter = _with_client(
            QueryRewriter(model="test-model", max_queries=2),
            [{"reasoning": "r", "queries": ["jina reader", "  jina   search api ", "third"]}],
        )

        queries = await rewriter.rewrite("how do jina reader and search work", budget=TokenBudget(ceiling=10_000))

        assert queries == ["jina reader", "jina search api"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", [RuntimeError("down"), "garbage", {"reasoning": "r", "queries": []}])
    async def test_falls_back_to_original_query(self, reply):
        rewriter = _with_client(QueryRewriter(model="test-model"), [reply])

        queries = await rewriter.rewrite("original query", budget=TokenBudget(ceiling=10_000))

        assert queries == ["original query"]
