from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ActionKind(StrEnum):
    SEARCH = "search"
    DEEP_DIVE = "deep dive"
    REFLECT = "reflect"
    ANSWER = "answer"


MAX_REFLECT_QUESTIONS = 2


class _ActionBase(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    reasoning: str = ""

    @property
    def kind(self) -> ActionKind:
        return ActionKind(self.action)  # type: ignore[attr-defined]

    def to_wire(self) -> dict[str, Any]:
        """Serialize with the field names the decision oracle uses."""
        return self.model_dump(by_alias=True, mode="json")


class Reference(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    title: str = Field(min_length=1)
    url: str = Field(min_length=1)


class SearchAction(_ActionBase):
    action: Literal["search"] = "search"
    query: str = Field(alias="searchQuery", min_length=1)


class DeepDiveAction(_ActionBase):
    action: Literal["deep dive"] = "deep dive"
    urls: list[str] = Field(alias="URLTargets", min_length=1)


class ReflectAction(_ActionBase):
    action: Literal["reflect"] = "reflect"
    questions: list[str] = Field(
        alias="questionsToAnswer", min_length=1, max_length=MAX_REFLECT_QUESTIONS
    )


class AnswerAction(_ActionBase):
    action: Literal["answer"] = "answer"
    text: str = Field(alias="answer", min_length=1)
    references: list[Reference] = Field(default_factory=list)


Action = Annotated[
    Union[SearchAction, DeepDiveAction, ReflectAction, AnswerAction],
    Field(discriminator="action"),
]

action_adapter: TypeAdapter[Action] = TypeAdapter(Action)


def response_schema(allowed: set[ActionKind] | frozenset[ActionKind]) -> dict[str, Any]:
    """JSON schema offered to the decision oracle for the permitted action set."""
    order = [ActionKind.SEARCH, ActionKind.DEEP_DIVE, ActionKind.ANSWER, ActionKind.REFLECT]
    properties: dict[str, Any] = {
        "action": {
            "type": "string",
            "enum": [kind.value for kind in order if kind in allowed],
            "description": "Must match exactly one action type",
        },
        "reasoning": {
            "type": "string",
            "description": "Explain why choose this action?",
        },
    }
    if ActionKind.SEARCH in allowed:
        properties["searchQuery"] = {
            "type": "string",
            "description": (
                "Only required when choosing 'search' action, must be a short, keyword-based "
                "query that BM25, tf-idf based search engines can understand."
            ),
        }
    if ActionKind.DEEP_DIVE in allowed:
        properties["URLTargets"] = {
            "type": "array",
            "items": {"type": "string"},
            "description": "Only required when choosing 'deep dive' action, must be an array of URLs",
        }
    if ActionKind.ANSWER in allowed:
        properties["answer"] = {
            "type": "string",
            "description": (
                "Only required when choosing 'answer' action, must be the final answer "
                "in natural language"
            ),
        }
        properties["references"] = {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {
                        "type": "string",
                        "description": "Title of the document; must be directly from the context",
                    },
                    "url": {
                        "type": "string",
                        "description": "URL of the document; must be directly from the context",
                    },
                },
                "required": ["title", "url"],
            },
            "description": "Only required when choosing 'answer' action, must be an array of references",
        }
    if ActionKind.REFLECT in allowed:
        properties["questionsToAnswer"] = {
            "type": "array",
            "items": {
                "type": "string",
                "description": (
                    "each question must be a single line, concise and clear. "
                    "not composite or compound, less than 20 words."
                ),
            },
            "description": (
                "Only required when choosing 'reflect' action, list of most important "
                "questions to answer to fill the knowledge gaps."
            ),
            "maxItems": MAX_REFLECT_QUESTIONS,
        }
    return {
        "type": "object",
        "properties": properties,
        "required": ["action", "reasoning"],
    }


@dataclass(frozen=True, slots=True)
class ContextEntry:
    """One completed step, as remembered by the loop and shown to the oracle."""

    step: int
    question: str
    action: Action
    result: Any = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"step": self.step, "question": self.question}
        data.update(self.action.to_wire())
        if self.result is not None:
            data["result"] = self.result
        return data
