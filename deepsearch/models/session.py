from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any

from deepsearch.models.actions import ActionKind, ContextEntry
from deepsearch.services.budget import TokenBudget


def normalize_question(text: str) -> str:
    return " ".join(text.lower().split())


@dataclass
class ResearchSession:
    """All mutable state of one question-answering session.

    Created when research on a question starts and discarded once it ends.
    Only the loop controller mutates it, one step at a time.
    """

    question: str
    budget: TokenBudget
    step: int = 0
    gaps: deque[str] = field(default_factory=deque)
    all_questions: list[str] = field(default_factory=list)
    all_keywords: list[str] = field(default_factory=list)
    visited_urls: list[str] = field(default_factory=list)
    context: list[ContextEntry] = field(default_factory=list)
    bad_context: list[ContextEntry] = field(default_factory=list)
    disabled_actions: set[ActionKind] = field(default_factory=set)

    def __post_init__(self) -> None:
        if not self.gaps:
            self.gaps.append(self.question)
        if not self.all_questions:
            self.all_questions.append(self.question)

    def is_original(self, question: str) -> bool:
        return normalize_question(question) == normalize_question(self.question)

    def is_queued(self, question: str) -> bool:
        key = normalize_question(question)
        return any(normalize_question(gap) == key for gap in self.gaps)

    def enqueue(self, question: str) -> bool:
        """Append a question to the gap queue unless an equal one is already pending."""
        if not question.strip() or self.is_queued(question):
            return False
        self.gaps.append(question)
        return True

    def ensure_original_queued(self) -> None:
        self.enqueue(self.question)

    def requeue_original(self) -> None:
        """Put the original question at the back of the queue."""
        key = normalize_question(self.question)
        self.gaps = deque(gap for gap in self.gaps if normalize_question(gap) != key)
        self.gaps.append(self.question)

    def next_question(self) -> tuple[str, bool]:
        """Pop the next open question and report whether reflect may be offered.

        Reflect is only allowed when at most one question was pending before the
        pop, which bounds how fast the frontier of sub-questions can grow.
        """
        allow_reflect = len(self.gaps) <= 1
        current = self.gaps.popleft() if self.gaps else self.question
        return current, allow_reflect

    def allowed_actions(self, allow_reflect: bool) -> frozenset[ActionKind]:
        allowed = {ActionKind.SEARCH, ActionKind.DEEP_DIVE, ActionKind.ANSWER}
        if allow_reflect:
            allowed.add(ActionKind.REFLECT)
        allowed -= self.disabled_actions
        allowed.add(ActionKind.ANSWER)
        return frozenset(allowed)

    def register_questions(self, questions: list[str]) -> None:
        for question in questions:
            self.all_questions.append(question)
            self.enqueue(question)

    def is_visited(self, url: str) -> bool:
        return url in self.visited_urls

    def mark_visited(self, url: str) -> None:
        if url not in self.visited_urls:
            self.visited_urls.append(url)

    def record(self, entry: ContextEntry) -> None:
        self.context.append(entry)

    def reject_attempt(self) -> None:
        """Move the current context into the bad-attempt log and start over."""
        self.bad_context.extend(self.context)
        self.context = []

    def snapshot(self) -> dict[str, Any]:
        return {
            "context": [entry.to_dict() for entry in self.context],
            "bad_context": [entry.to_dict() for entry in self.bad_context],
            "keywords": list(self.all_keywords),
            "questions": list(self.all_questions),
        }
