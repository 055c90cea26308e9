from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class EventType(str, Enum):
    PROGRESS = "progress"
    ANSWER = "answer"
    ERROR = "error"


@dataclass
class SSEEvent:
    event: EventType
    data: Any = None

    @property
    def is_terminal(self) -> bool:
        return self.event in (EventType.ANSWER, EventType.ERROR)

    def to_message(self) -> dict[str, Any]:
        return {"type": self.event.value, "data": self.data}
