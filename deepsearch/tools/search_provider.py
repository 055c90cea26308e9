from __future__ import annotations

from dataclasses import dataclass

from deepsearch.config import settings
from deepsearch.errors import CollaboratorUnavailable
from deepsearch.tools import brave_search, jina_search, tavily_search
from deepsearch.tools.jina_search import SearchResult

SUPPORTED_PROVIDERS = ("jina", "brave", "tavily")


@dataclass
class SearchResponse:
    results: list[SearchResult]
    provider: str
    fallback_from: str | None = None
    fallback_reason: str | None = None


async def _tavily_fallback(query: str, max_results: int, failed: str, reason: str) -> SearchResponse:
    results = await tavily_search.search(query=query, max_results=max_results)
    return SearchResponse(
        results=results,
        provider="tavily",
        fallback_from=failed,
        fallback_reason=reason,
    )


async def _search(provider: str, query: str, max_results: int) -> SearchResponse:
    if provider == "tavily":
        results = await tavily_search.search(query=query, max_results=max_results)
        return SearchResponse(results=results, provider="tavily")

    use_fallback = settings.search_fallback_to_tavily
    backend = jina_search if provider == "jina" else brave_search
    try:
        results = await backend.search(query=query, max_results=max_results)
    except Exception as e:
        if not use_fallback:
            raise
        return await _tavily_fallback(query, max_results, provider, str(e))
    if results or not use_fallback:
        return SearchResponse(results=results, provider=provider)
    return await _tavily_fallback(
        query, max_results, provider, f"{provider} returned zero results"
    )


async def search(
    query: str,
    *,
    max_results: int = 10,
) -> SearchResponse:
    """Search with the configured provider.

    Provider, network and client failures surface as CollaboratorUnavailable;
    an unknown SEARCH_PROVIDER is a configuration error (ValueError).
    """
    provider = settings.search_provider.lower().strip()
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unsupported SEARCH_PROVIDER: {settings.search_provider}")

    try:
        return await _search(provider, query, max_results)
    except Exception as e:
        raise CollaboratorUnavailable("search", f"{provider}: {e}") from e


def results_to_dicts(results: list[SearchResult]) -> list[dict]:
    return jina_search.results_to_dicts(results)
