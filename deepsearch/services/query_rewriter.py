from __future__ import annotations

import json

from loguru import logger

from deepsearch.agents.base import BaseAgent
from deepsearch.config import settings
from deepsearch.errors import CollaboratorUnavailable
from deepsearch.services.budget import TokenBudget
from deepsearch.services.prompt_store import render_prompt

REWRITE_SCHEMA = {
    "type": "object",
    "properties": {
        "reasoning": {"type": "string"},
        "queries": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Keyword-based search queries",
        },
    },
    "required": ["reasoning", "queries"],
}


class QueryRewriter(BaseAgent):
    """Fans one semantic search request out into keyword queries."""

    name = "rewriter"

    def __init__(self, model: str | None = None, max_queries: int | None = None):
        super().__init__(model, temperature=0.0)
        self.max_queries = max(int(max_queries or settings.search_max_rewritten_queries), 1)

    async def rewrite(self, query: str, *, budget: TokenBudget) -> list[str]:
        try:
            raw_text = await self._call(
                system=render_prompt("rewriter.system", max_queries=self.max_queries),
                user=render_prompt("rewriter.user", query=query),
                budget=budget,
                response_schema=REWRITE_SCHEMA,
                schema_name="rewritten_queries",
            )
            payload = self._extract_json_object(raw_text)
        except (CollaboratorUnavailable, json.JSONDecodeError) as e:
            logger.warning(f"Query rewrite failed, searching the original query: {e}")
            return [query]

        queries = [
            " ".join(q.split())
            for q in payload.get("queries") or []
            if isinstance(q, str) and q.strip()
        ]
        return queries[: self.max_queries] or [query]
