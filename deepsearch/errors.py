from __future__ import annotations


class ResearchError(Exception):
    """Base class for failures raised inside the research loop."""


class MalformedAction(ResearchError):
    """The decision oracle returned an action that violates the action schema."""

    def __init__(self, message: str, payload: object | None = None):
        super().__init__(message)
        self.payload = payload


class CollaboratorUnavailable(ResearchError):
    """A search, reader or oracle call failed at the provider or network level."""

    def __init__(self, collaborator: str, message: str):
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator


class EvaluationFailed(ResearchError):
    """The answer evaluator could not produce a verdict."""


class ConfigurationError(ResearchError):
    """Required startup credentials are missing."""
