"""
Error taxonomy for the prompt improvement workflow.

Every failure that can end a run is one of these types. The orchestrator
converts them into a single failed result carrying ``error_kind`` and a
bounded diagnostic excerpt, so callers never see raw provider tracebacks.
"""

from typing import Optional


class PromptImproverError(Exception):
    """Base class for all workflow errors."""

    error_kind = "internal_error"


class ProviderError(PromptImproverError):
    """Network, timeout or HTTP failure while calling an LLM provider."""

    error_kind = "provider_error"

    def __init__(self, message: str, cause: Optional[BaseException] = None, transient: bool = False):
        super().__init__(message)
        self.cause = cause
        self.transient = transient


class EmptyResponseError(PromptImproverError):
    """Provider answered, but the response carried no extractable text."""

    error_kind = "empty_response"


class ResponseParseError(PromptImproverError):
    """Sanitized agent text is not a JSON object."""

    error_kind = "malformed_output"


class AgentError(PromptImproverError):
    """Agent output could not be turned into a valid result for its role."""

    error_kind = "malformed_output"

    def __init__(self, role: str, reason: str, excerpt: str = ""):
        super().__init__(f"{role} agent failed: {reason}")
        self.role = role
        self.reason = reason
        self.excerpt = excerpt


class RoundFailedError(PromptImproverError):
    """A round aborted at one of its steps. Nothing from the round was recorded."""

    def __init__(self, round_number: int, role: str, cause: PromptImproverError):
        super().__init__(f"Round {round_number} failed at {role} step: {cause}")
        self.round_number = round_number
        self.role = role
        self.cause = cause

    @property
    def error_kind(self) -> str:  # type: ignore[override]
        return self.cause.error_kind

    @property
    def excerpt(self) -> str:
        return getattr(self.cause, "excerpt", "")


class SessionClosedError(PromptImproverError):
    """Mutation attempted on a session that already reached a terminal decision."""


class PersistenceError(PromptImproverError):
    """The caller-supplied persistence hook failed."""

    error_kind = "persistence_error"


class TaskNotFoundError(PromptImproverError):
    """No prompt task with the given ID."""

    error_kind = "not_found"
