from __future__ import annotations

from typing import Any

from tavily import AsyncTavilyClient

from deepsearch.config import settings
from deepsearch.tools.jina_search import SearchResult


async def search(
    query: str,
    *,
    max_results: int = 10,
    search_depth: str = "basic",
) -> list[SearchResult]:
    """Execute a Tavily web search and return structured results."""
    if not settings.tavily_api_key:
        raise RuntimeError("TAVILY_API_KEY is not configured")

    client = AsyncTavilyClient(api_key=settings.tavily_api_key)
    kwargs: dict[str, Any] = {
        "query": query,
        "search_depth": search_depth,
        "max_results": max_results,
        "topic": "general",
        "include_raw_content": False,
    }
    response = await client.search(**kwargs)

    return [
        SearchResult(
            title=r.get("title", ""),
            url=r.get("url", ""),
            description=r.get("content", ""),
            score=r.get("score", 0.0),
        )
        for r in response.get("results", [])
    ]
