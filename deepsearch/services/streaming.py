from __future__ import annotations

from deepsearch.models.actions import AnswerAction
from deepsearch.models.events import EventType, SSEEvent
from deepsearch.services.budget import TokenBudget


def progress(step: int, budget: TokenBudget) -> SSEEvent:
    """Emit the per-step progress line."""
    percent = budget.usage_ratio() * 100
    return SSEEvent(
        event=EventType.PROGRESS,
        data=f"Step {step} / Budget used {percent:.2f}%",
    )


def answer(action: AnswerAction) -> SSEEvent:
    return SSEEvent(event=EventType.ANSWER, data=action.to_wire())


def error(message: str) -> SSEEvent:
    return SSEEvent(event=EventType.ERROR, data=message)
