from __future__ import annotations

import json as _json

from fastapi import APIRouter, HTTPException
from sse_starlette.sse import EventSourceResponse

from deepsearch.agents.orchestrator import ResearchOrchestrator
from deepsearch.config import settings
from deepsearch.llm_client import get_model
from deepsearch.models.schemas import ResearchRequest
from deepsearch.services import logger as log_service
from deepsearch.services import streaming

router = APIRouter(prefix="/api/research", tags=["research"])


@router.post("")
async def stream_research(request: ResearchRequest):
    """Run research on the question and stream progress, answer and error events over SSE."""
    missing = settings.missing_credentials()
    if missing:
        raise HTTPException(
            status_code=503,
            detail=f"Missing credentials: {', '.join(missing)}",
        )

    model = request.model or get_model()

    async def event_generator():
        log_service.log_event(
            event_type="research_started",
            message="Research started",
            model=model,
            query=request.query[:100],
            token_budget=request.token_budget,
        )
        orchestrator = ResearchOrchestrator(model=model)
        try:
            async for event in orchestrator.research(request.query, token_budget=request.token_budget):
                yield {
                    "event": event.event.value,
                    "data": _json.dumps(event.to_message()),
                }
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in research stream",
                error=str(e),
            )
            error_event = streaming.error("Research stream failed unexpectedly.")
            yield {
                "event": error_event.event.value,
                "data": _json.dumps(error_event.to_message()),
            }

    return EventSourceResponse(event_generator())
