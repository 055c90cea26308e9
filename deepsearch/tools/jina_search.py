from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from deepsearch.config import settings

JINA_SEARCH_URL = "https://s.jina.ai/"


@dataclass
class SearchResult:
    """Normalized search hit shared by every provider."""
    title: str
    url: str
    description: str
    score: float = 0.0


def _parse_jina_search_response(text: str, max_results: int = 10) -> list[SearchResult]:
    """Parse Jina search plain text response into SearchResult objects.

    Format:
    [1] Title: ...
    [1] URL Source: ...
    [1] Description: ...

    [2] Title: ...
    ...
    """
    fields_by_index: dict[int, dict[str, str]] = {}
    result_pattern = re.compile(
        r"\[(\d+)\]\s+(Title|URL Source|Description):\s*(.*?)(?=\[\d+\]\s+(?:Title|URL Source|Description):|$)",
        re.DOTALL,
    )
    for index_str, field, value in result_pattern.findall(text):
        fields_by_index.setdefault(int(index_str), {})[field] = value.strip()

    results: list[SearchResult] = []
    for index in sorted(fields_by_index):
        fields = fields_by_index[index]
        if not fields.get("URL Source"):
            continue
        results.append(
            SearchResult(
                title=fields.get("Title", ""),
                url=fields["URL Source"],
                description=fields.get("Description", ""),
            )
        )
        if len(results) >= max_results:
            break
    return results


async def search(
    query: str,
    *,
    max_results: int = 10,
) -> list[SearchResult]:
    """Execute a web search using the Jina AI search API.

    API: GET https://s.jina.ai/?q=<query>
    Headers:
        - Authorization: Bearer <api_key>
        - X-Respond-With: no-content
    """
    api_key = settings.jina_api_key
    if not api_key:
        raise RuntimeError("JINA_API_KEY is not configured")

    url = f"{JINA_SEARCH_URL}?q={quote(query, safe='')}"
    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await client.get(
            url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "X-Respond-With": "no-content",
            },
        )
        response.raise_for_status()
        text = response.text

    return _parse_jina_search_response(text, max_results)


def results_to_dicts(results: list[SearchResult]) -> list[dict[str, Any]]:
    """Convert results to the {title, url, description} records kept in context."""
    return [
        {"title": r.title, "url": r.url, "description": r.description}
        for r in results
    ]
