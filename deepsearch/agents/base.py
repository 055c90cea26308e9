from __future__ import annotations

import json
import time
from typing import Any

from deepsearch.config import settings
from deepsearch.errors import CollaboratorUnavailable
from deepsearch.llm_client import client as llm_client, get_model
from deepsearch.services import logger as log_service
from deepsearch.services.budget import TokenBudget


class BaseAgent:
    """One structured-output oracle call per invocation.

    Subclasses build the prompts and interpret the JSON payload. Every call,
    successful or not, is logged; the billed tokens go to the session budget.
    """

    name: str = "base"
    max_tokens: int = 1024

    def __init__(self, model: str | None = None, temperature: float | None = None):
        self.model = model or get_model()
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.client = None

    async def _call(
        self,
        *,
        system: str,
        user: str,
        budget: TokenBudget,
        response_schema: dict[str, Any] | None = None,
        schema_name: str = "response",
    ) -> str:
        active_client = self.client or llm_client()
        t0 = time.monotonic()
        try:
            response = await active_client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=[{"role": "user", "content": user}],
                temperature=self.temperature,
                response_schema=response_schema,
                schema_name=schema_name,
            )
        except Exception as e:
            log_service.log_llm_call(
                model=self.model,
                caller=self.name,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(e),
            )
            raise CollaboratorUnavailable(self.name, str(e)) from e

        elapsed_ms = int((time.monotonic() - t0) * 1000)
        usage = getattr(response, "usage", None)
        input_tokens = int(getattr(usage, "input_tokens", 0) or 0)
        output_tokens = int(getattr(usage, "output_tokens", 0) or 0)
        budget.consume(input_tokens + output_tokens, caller=self.name)
        log_service.log_llm_call(
            model=self.model,
            caller=self.name,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=elapsed_ms,
        )
        return self._extract_response_text(response)

    @staticmethod
    def _extract_response_text(response: Any) -> str:
        blocks = getattr(response, "content", None) or []
        text_parts: list[str] = []
        for block in blocks:
            btype = getattr(block, "type", None)
            btext = getattr(block, "text", None)
            is_text_like_type = btype in (None, "text") or not isinstance(btype, str)
            if is_text_like_type and isinstance(btext, str) and btext.strip():
                text_parts.append(btext)
        return "\n".join(text_parts).strip()

    @staticmethod
    def _extract_json_object(raw_text: str) -> dict[str, Any]:
        text = raw_text.strip()
        if text.startswith("```"):
            parts = text.split("```")
            if len(parts) >= 2:
                text = parts[1]
            if text.startswith("json"):
                text = text[4:]
            text = text.strip()
        start = text.find("{")
        end = text.rfind("}")
        if start < 0 or end <= start:
            raise json.JSONDecodeError("object not found", text, 0)
        parsed = json.loads(text[start : end + 1])
        if not isinstance(parsed, dict):
            raise json.JSONDecodeError("not an object", text, 0)
        return parsed
