from __future__ import annotations

import json

from loguru import logger

from deepsearch.agents.base import BaseAgent
from deepsearch.errors import CollaboratorUnavailable
from deepsearch.models.session import normalize_question
from deepsearch.services.budget import TokenBudget
from deepsearch.services.prompt_store import render_prompt

DEDUP_SCHEMA = {
    "type": "object",
    "properties": {
        "reasoning": {"type": "string"},
        "novel": {
            "type": "array",
            "items": {"type": "integer"},
            "description": "Zero-based indices of the candidates that are new",
        },
    },
    "required": ["reasoning", "novel"],
}


def prefilter(candidates: list[str], known: list[str]) -> list[str]:
    """Drop blanks, exact (normalized) repeats of known entries and in-batch repeats."""
    seen = {normalize_question(item) for item in known}
    kept: list[str] = []
    for candidate in candidates:
        cleaned = " ".join(candidate.split())
        key = normalize_question(cleaned)
        if not key or key in seen:
            continue
        seen.add(key)
        kept.append(cleaned)
    return kept


def _numbered(items: list[str]) -> str:
    return "\n".join(f"{idx}. {item}" for idx, item in enumerate(items))


class QueryDeduplicator(BaseAgent):
    """Filters proposed questions or search queries against what was already asked.

    Semantic equivalence is judged by the model so that rephrasings collapse.
    If that call fails every candidate that survived the local prefilter is
    treated as new.
    """

    name = "dedup"

    def __init__(self, model: str | None = None):
        super().__init__(model, temperature=0.0)

    async def dedup(
        self,
        candidates: list[str],
        known: list[str],
        *,
        budget: TokenBudget,
    ) -> list[str]:
        remaining = prefilter(candidates, known)
        if not remaining or not known:
            return remaining

        try:
            raw_text = await self._call(
                system=render_prompt("dedup.system"),
                user=render_prompt(
                    "dedup.user",
                    known=_numbered(known),
                    candidates=_numbered(remaining),
                ),
                budget=budget,
                response_schema=DEDUP_SCHEMA,
                schema_name="dedup_result",
            )
            payload = self._extract_json_object(raw_text)
        except (CollaboratorUnavailable, json.JSONDecodeError) as e:
            logger.warning(f"Dedup oracle failed, keeping all {len(remaining)} candidates: {e}")
            return remaining

        indices = payload.get("novel")
        if not isinstance(indices, list):
            logger.warning(f"Dedup oracle returned no index list, keeping all candidates: {payload}")
            return remaining

        novel = {
            idx for idx in indices
            if isinstance(idx, int) and not isinstance(idx, bool) and 0 <= idx < len(remaining)
        }
        return [candidate for idx, candidate in enumerate(remaining) if idx in novel]
