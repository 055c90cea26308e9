from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from fakes import FakeDeduplicator, FakeRewriter
from deepsearch.agents.executors import (
    AnswerExecutor,
    DeepDiveExecutor,
    ReflectExecutor,
    SearchExecutor,
)
from deepsearch.errors import CollaboratorUnavailable
from deepsearch.models.actions import AnswerAction, DeepDiveAction, ReflectAction, SearchAction
from deepsearch.models.session import ResearchSession
from deepsearch.services.budget import TokenBudget
from deepsearch.tools.jina_reader import ReaderResult
from deepsearch.tools.jina_search import SearchResult
from deepsearch.tools.search_provider import SearchResponse


def _session(question: str = "Who founded Jina AI?", ceiling: int = 1_000_000) -> ResearchSession:
    return ResearchSession(question=question, budget=TokenBudget(ceiling=ceiling))


def _response(query: str) -> SearchResponse:
    return SearchResponse(
        results=[
            SearchResult(
                title=f"title-{query}",
                url=f"https://example.com/{query.replace(' ', '-')}",
                description="snippet",
            )
        ],
        provider="jina",
    )


@pytest.mark.asyncio
async def test_search_only_runs_queries_not_seen_before():
    session = _session()
    session.all_keywords.append("a")
    executor = SearchExecutor(FakeRewriter(["a", "b"]), FakeDeduplicator(), cooldown_seconds=0)

    fake_search = AsyncMock(side_effect=lambda query, **kwargs: _response(query))
    with patch("deepsearch.agents.executors.search_provider.search", new=fake_search):
        outcome = await executor.execute(SearchAction(query="a and b"), session)

    fake_search.assert_awaited_once()
    assert fake_search.await_args.args[0] == "b"
    assert session.all_keywords == ["a", "b"]
    assert outcome.new_information is True
    assert outcome.result[0]["query"] == "b"
    assert outcome.result[0]["results"][0]["url"] == "https://example.com/b"


@pytest.mark.asyncio
async def test_search_with_nothing_new_reports_no_information():
    session = _session()
    session.all_keywords.extend(["a", "b"])
    executor = SearchExecutor(FakeRewriter(["a", "B"]), FakeDeduplicator(), cooldown_seconds=0)

    fake_search = AsyncMock()
    with patch("deepsearch.agents.executors.search_provider.search", new=fake_search):
        outcome = await executor.execute(SearchAction(query="a b"), session)

    fake_search.assert_not_awaited()
    assert outcome.new_information is False
    assert outcome.result == []


@pytest.mark.asyncio
async def test_search_skips_failed_queries_and_cools_down_between_queries():
    session = _session()
    executor = SearchExecutor(FakeRewriter(["x", "y", "z"]), FakeDeduplicator(), cooldown_seconds=2.5)

    async def flaky_search(query: str, **kwargs):
        if query == "y":
            raise CollaboratorUnavailable("search", "jina: 429 Too Many Requests")
        return _response(query)

    sleep = AsyncMock()
    with patch("deepsearch.agents.executors.search_provider.search", new=flaky_search), patch(
        "deepsearch.agents.executors.asyncio.sleep", new=sleep
    ):
        outcome = await executor.execute(SearchAction(query="x y z"), session)

    assert [entry["query"] for entry in outcome.result] == ["x", "z"]
    assert session.all_keywords == ["x", "z"]
    assert sleep.await_count == 2
    sleep.assert_awaited_with(2.5)


@pytest.mark.asyncio
async def test_deep_dive_reads_unvisited_urls_and_tolerates_failures():
    session = _session()
    session.mark_visited("https://example.com/seen")

    async def fake_read(url: str) -> ReaderResult:
        if url.endswith("broken"):
            raise CollaboratorUnavailable("reader", "reader timeout")
        return ReaderResult(url=url, content=f"content of {url}", title="Page", tokens=250)

    action = DeepDiveAction(
        urls=[
            "https://example.com/seen",
            "https://example.com/fresh#section",
            "https://example.com/fresh",
            "https://example.com/broken",
            "not a url",
        ]
    )
    with patch("deepsearch.agents.executors.jina_reader.read", new=fake_read):
        outcome = await DeepDiveExecutor().execute(action, session)

    assert outcome.new_information is True
    assert [record["url"] for record in outcome.result] == [
        "https://example.com/fresh",
        "https://example.com/broken",
    ]
    assert outcome.result[0]["result"]["content"] == "content of https://example.com/fresh"
    assert outcome.result[1]["error"] == "reader: reader timeout"
    assert session.budget.by_caller["reader"] == 250
    assert session.visited_urls == [
        "https://example.com/seen",
        "https://example.com/fresh",
        "https://example.com/broken",
    ]


@pytest.mark.asyncio
async def test_deep_dive_with_only_visited_urls_reads_nothing():
    session = _session()
    session.mark_visited("https://example.com/a")

    fake_read = AsyncMock()
    with patch("deepsearch.agents.executors.jina_reader.read", new=fake_read):
        outcome = await DeepDiveExecutor().execute(
            DeepDiveAction(urls=["https://example.com/a"]), session
        )

    fake_read.assert_not_awaited()
    assert outcome.new_information is False


@pytest.mark.asyncio
async def test_deep_dive_where_every_read_fails_has_no_new_information():
    session = _session()

    fake_read = AsyncMock(side_effect=CollaboratorUnavailable("reader", "down"))
    with patch("deepsearch.agents.executors.jina_reader.read", new=fake_read):
        outcome = await DeepDiveExecutor().execute(
            DeepDiveAction(urls=["https://example.com/a"]), session
        )

    assert outcome.new_information is False
    assert session.is_visited("https://example.com/a")
    assert session.budget.consumed == 0


@pytest.mark.asyncio
async def test_reflect_queues_new_questions_ahead_of_the_original():
    session = _session("orig")
    assert session.next_question() == ("orig", True)

    outcome = await ReflectExecutor(FakeDeduplicator()).execute(
        ReflectAction(questions=["Q1", "Q2"]), session
    )

    assert outcome.result == ["Q1", "Q2"]
    assert list(session.gaps) == ["Q1", "Q2", "orig"]
    assert session.all_questions == ["orig", "Q1", "Q2"]


@pytest.mark.asyncio
async def test_reflect_with_only_known_questions_adds_nothing():
    session = _session("orig")
    session.register_questions(["Q1"])
    session.gaps.clear()

    outcome = await ReflectExecutor(FakeDeduplicator()).execute(
        ReflectAction(questions=["q1", "ORIG"]), session
    )

    assert outcome.new_information is False
    assert list(session.gaps) == ["orig"]
    assert session.all_questions == ["orig", "Q1"]


@pytest.mark.asyncio
async def test_answer_needs_evaluation_only_for_the_original_question():
    session = _session("What is 1+1?")
    executor = AnswerExecutor()
    action = AnswerAction(text="2")

    assert (await executor.execute(action, session, "what is  1+1?")).needs_evaluation is True
    assert (await executor.execute(action, session, "What is addition?")).needs_evaluation is False


@pytest.mark.asyncio
async def test_deep_dive_does_not_swallow_unexpected_errors():
    session = _session()

    fake_read = AsyncMock(side_effect=TypeError("bad reader result"))
    with patch("deepsearch.agents.executors.jina_reader.read", new=fake_read):
        with pytest.raises(TypeError):
            await DeepDiveExecutor().execute(DeepDiveAction(urls=["https://example.com/a"]), session)
