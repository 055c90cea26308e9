from __future__ import annotations

import json
from collections.abc import Iterable

from pydantic import ValidationError

from deepsearch.agents.base import BaseAgent
from deepsearch.config import settings
from deepsearch.errors import MalformedAction
from deepsearch.models.actions import (
    Action,
    ActionKind,
    ContextEntry,
    action_adapter,
    response_schema,
)
from deepsearch.services.budget import TokenBudget
from deepsearch.services.prompt_store import render_prompt

ANSWER_ONLY = frozenset({ActionKind.ANSWER})


class DecisionAgent(BaseAgent):
    """Asks the model for the next research action on one question."""

    name = "decision"

    def __init__(self, model: str | None = None, temperature: float | None = None):
        super().__init__(model, temperature)
        self.max_tokens = settings.llm_max_tokens

    @staticmethod
    def _entries_json(entries: Iterable[ContextEntry]) -> str:
        return json.dumps([entry.to_dict() for entry in entries], indent=2, ensure_ascii=False)

    def build_prompt(
        self,
        question: str,
        context: list[ContextEntry],
        bad_context: list[ContextEntry],
        allowed_actions: frozenset[ActionKind],
        asked_questions: list[str],
        *,
        forced: bool = False,
    ) -> str:
        sections: list[str] = []
        if context:
            sections.append(
                render_prompt("decision.context_intro", context_json=self._entries_json(context))
            )
        if bad_context:
            sections.append(
                render_prompt(
                    "decision.bad_context_intro",
                    bad_context_json=self._entries_json(bad_context),
                )
            )

        if forced:
            sections.append(render_prompt("decision.forced_intro", question=question))
            sections.append(render_prompt("decision.action_answer"))
            return "\n".join(sections)

        sections.append(render_prompt("decision.question_intro", question=question))
        if ActionKind.SEARCH in allowed_actions:
            sections.append(render_prompt("decision.action_search"))
        if ActionKind.DEEP_DIVE in allowed_actions:
            sections.append(render_prompt("decision.action_deep_dive"))
        sections.append(render_prompt("decision.action_answer"))
        if ActionKind.REFLECT in allowed_actions:
            sections.append(render_prompt("decision.reflect_hint"))
            sections.append(render_prompt("decision.action_reflect"))
            if asked_questions:
                sections.append(
                    render_prompt(
                        "decision.asked_questions",
                        asked_questions="\n".join(asked_questions),
                    )
                )
        return "\n".join(sections)

    @classmethod
    def parse_action(cls, raw_text: str, allowed_actions: frozenset[ActionKind]) -> Action:
        """Validate a raw oracle response against the permitted action set."""
        try:
            payload = cls._extract_json_object(raw_text)
        except json.JSONDecodeError as e:
            raise MalformedAction(f"Response is not a JSON object: {e}", raw_text) from e

        # Models fill fields of other actions with null or empty values.
        cleaned = {key: value for key, value in payload.items() if value not in (None, "", [])}
        try:
            action = action_adapter.validate_python(cleaned)
        except ValidationError as e:
            raise MalformedAction(
                f"Action does not match schema ({e.error_count()} errors)", payload
            ) from e

        if action.kind not in allowed_actions:
            raise MalformedAction(f"Action '{action.kind.value}' is not permitted", payload)
        return action

    async def decide(
        self,
        question: str,
        context: list[ContextEntry],
        bad_context: list[ContextEntry],
        allowed_actions: frozenset[ActionKind],
        asked_questions: list[str],
        *,
        budget: TokenBudget,
        forced: bool = False,
    ) -> Action:
        allowed = ANSWER_ONLY if forced else allowed_actions
        prompt = self.build_prompt(
            question,
            context,
            bad_context,
            allowed,
            asked_questions,
            forced=forced,
        )
        raw_text = await self._call(
            system=render_prompt("decision.system"),
            user=prompt,
            budget=budget,
            response_schema=response_schema(allowed),
            schema_name="research_action",
        )
        return self.parse_action(raw_text, allowed)
