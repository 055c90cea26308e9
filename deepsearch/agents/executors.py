from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from loguru import logger

from deepsearch.config import settings
from deepsearch.errors import CollaboratorUnavailable
from deepsearch.models.actions import AnswerAction, DeepDiveAction, ReflectAction, SearchAction
from deepsearch.models.session import ResearchSession
from deepsearch.services.query_dedup import QueryDeduplicator
from deepsearch.services.query_rewriter import QueryRewriter
from deepsearch.tools import jina_reader, search_provider, web_utils


@dataclass(slots=True)
class ExecutorOutcome:
    result: Any = None
    new_information: bool = True
    needs_evaluation: bool = False


class SearchExecutor:
    """Rewrites a search request into keyword queries and runs the new ones.

    Queries run one after another with a cool-down in between to stay inside
    provider rate limits.
    """

    def __init__(
        self,
        rewriter: QueryRewriter,
        deduplicator: QueryDeduplicator,
        *,
        cooldown_seconds: float | None = None,
        max_results: int | None = None,
    ):
        self.rewriter = rewriter
        self.deduplicator = deduplicator
        self.cooldown_seconds = max(
            float(settings.search_cooldown_seconds if cooldown_seconds is None else cooldown_seconds),
            0.0,
        )
        self.max_results = max(int(max_results or settings.search_max_results_per_query), 1)

    async def execute(self, action: SearchAction, session: ResearchSession) -> ExecutorOutcome:
        queries = await self.rewriter.rewrite(action.query, budget=session.budget)
        queries = await self.deduplicator.dedup(
            queries, session.all_keywords, budget=session.budget
        )
        if not queries:
            logger.info(f"No new search queries for '{action.query[:80]}'")
            return ExecutorOutcome(result=[], new_information=False)

        search_results: list[dict[str, Any]] = []
        for idx, query in enumerate(queries):
            if idx > 0 and self.cooldown_seconds > 0:
                await asyncio.sleep(self.cooldown_seconds)
            try:
                response = await search_provider.search(query, max_results=self.max_results)
            except CollaboratorUnavailable as e:
                logger.warning(f"Search skipped for '{query}': {e}")
                continue
            search_results.append(
                {
                    "query": query,
                    "results": search_provider.results_to_dicts(response.results),
                }
            )
            session.all_keywords.append(query)
            logger.info(
                f"Search '{query}' returned {len(response.results)} results via {response.provider}"
            )

        return ExecutorOutcome(result=search_results, new_information=bool(search_results))


class DeepDiveExecutor:
    """Reads the full content of URLs that have not been visited yet."""

    async def _read_one(self, url: str) -> tuple[dict[str, Any], int]:
        try:
            page = await jina_reader.read(url)
        except CollaboratorUnavailable as e:
            logger.warning(f"Deep dive read failed: {e}")
            return {"url": url, "error": str(e)}, 0
        return {"url": url, "result": {"title": page.title, "content": page.content}}, page.tokens

    async def execute(self, action: DeepDiveAction, session: ResearchSession) -> ExecutorOutcome:
        fresh: list[str] = []
        for raw_url in action.urls:
            url = web_utils.normalize_url(raw_url)
            if not web_utils.is_valid_url(url) or session.is_visited(url) or url in fresh:
                continue
            fresh.append(url)

        if not fresh:
            logger.info("Deep dive proposed no unvisited URLs")
            return ExecutorOutcome(result=[], new_information=False)

        # All reads are joined before the session is touched.
        outcomes = await asyncio.gather(*(self._read_one(url) for url in fresh))

        url_results = [record for record, _ in outcomes]
        tokens = sum(cost for _, cost in outcomes)
        session.budget.consume(tokens, caller="reader")
        for url in fresh:
            session.mark_visited(url)

        succeeded = sum(1 for record in url_results if "result" in record)
        logger.info(f"Deep dive read {succeeded}/{len(fresh)} URLs ({tokens} tokens)")
        return ExecutorOutcome(result=url_results, new_information=succeeded > 0)


class ReflectExecutor:
    """Turns knowledge gaps into new sub-questions on the gap queue."""

    def __init__(self, deduplicator: QueryDeduplicator):
        self.deduplicator = deduplicator

    async def execute(self, action: ReflectAction, session: ResearchSession) -> ExecutorOutcome:
        novel = await self.deduplicator.dedup(
            list(action.questions), session.all_questions, budget=session.budget
        )
        session.register_questions(novel)
        session.requeue_original()
        if not novel:
            logger.info("Reflect produced no new questions")
        return ExecutorOutcome(result=novel, new_information=bool(novel))


class AnswerExecutor:
    """Answers to sub-questions are kept as knowledge; the original goes to evaluation."""

    async def execute(self, action: AnswerAction, session: ResearchSession, question: str) -> ExecutorOutcome:
        return ExecutorOutcome(needs_evaluation=session.is_original(question))
