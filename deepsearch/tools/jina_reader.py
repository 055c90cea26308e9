from __future__ import annotations

from dataclasses import dataclass

import httpx

from deepsearch.config import settings
from deepsearch.errors import CollaboratorUnavailable


@dataclass
class ReaderResult:
    """Full page content fetched through the Jina AI Reader."""
    url: str
    content: str
    title: str = ""
    tokens: int = 0


async def read(url: str) -> ReaderResult:
    """Read a URL using the Jina AI Reader API in JSON mode.

    API: GET https://r.jina.ai/<url>
    Headers:
        - Authorization: Bearer <api_key>
        - Accept: application/json

    Response: {"code": 200, "data": {"title", "url", "content", "usage": {"tokens"}}}
    """
    api_key = settings.jina_api_key
    if not api_key:
        raise CollaboratorUnavailable("reader", "JINA_API_KEY is not configured")

    base_url = settings.jina_reader_base_url.rstrip("/") or "https://r.jina.ai"
    try:
        async with httpx.AsyncClient(timeout=settings.reader_timeout_seconds) as client:
            response = await client.get(
                f"{base_url}/{url}",
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Accept": "application/json",
                    "X-Return-Format": "markdown",
                },
            )
            response.raise_for_status()
            payload = response.json()
    except (httpx.HTTPError, ValueError) as e:
        raise CollaboratorUnavailable("reader", f"{url}: {e}") from e

    data = payload.get("data") or {}
    usage = data.get("usage") or {}
    return ReaderResult(
        url=data.get("url") or url,
        content=data.get("content", "") or "",
        title=data.get("title", "") or "",
        tokens=int(usage.get("tokens", 0) or 0),
    )
