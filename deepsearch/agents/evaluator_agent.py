from __future__ import annotations

import json

from deepsearch.agents.base import BaseAgent
from deepsearch.config import settings
from deepsearch.errors import CollaboratorUnavailable, EvaluationFailed
from deepsearch.services.budget import TokenBudget
from deepsearch.services.prompt_store import render_prompt

EVALUATION_SCHEMA = {
    "type": "object",
    "properties": {
        "reasoning": {
            "type": "string",
            "description": "Explanation of why the answer is or isn't definitive",
        },
        "is_definitive": {
            "type": "boolean",
            "description": "Whether the answer provides a definitive response without uncertainty or 'I don't know' type statements",
        },
    },
    "required": ["reasoning", "is_definitive"],
}


class AnswerEvaluator(BaseAgent):
    """Judges whether a candidate final answer is definitive.

    Never defaults to accepting: any failure to get a clear verdict raises
    EvaluationFailed and the caller treats it as a rejection.
    """

    name = "evaluator"

    def __init__(self, model: str | None = None):
        evaluator_override = settings.evaluator_model.strip()
        super().__init__(model or evaluator_override or None, temperature=0.0)

    async def is_definitive(self, question: str, answer_text: str, *, budget: TokenBudget) -> bool:
        try:
            raw_text = await self._call(
                system=render_prompt("evaluator.system"),
                user=render_prompt("evaluator.user", question=question, answer=answer_text),
                budget=budget,
                response_schema=EVALUATION_SCHEMA,
                schema_name="answer_evaluation",
            )
        except CollaboratorUnavailable as e:
            raise EvaluationFailed(str(e)) from e

        try:
            payload = self._extract_json_object(raw_text)
        except json.JSONDecodeError as e:
            raise EvaluationFailed(f"Evaluator returned no JSON object: {e}") from e

        verdict = payload.get("is_definitive")
        if not isinstance(verdict, bool):
            raise EvaluationFailed(f"Evaluator verdict is not a boolean: {verdict!r}")
        return verdict
