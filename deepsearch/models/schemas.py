from __future__ import annotations

from pydantic import BaseModel, Field


# --- Requests ---


class ResearchRequest(BaseModel):
    query: str = Field(min_length=1)
    token_budget: int | None = Field(default=None, ge=0)
    model: str | None = None


# --- Responses ---


class HealthResponse(BaseModel):
    status: str
    service: str
    missing_credentials: list[str] = []
