"""
Shared adapter pipeline for the three agent roles.

An adapter turns an AgentContext into instructions, calls the Agent Client,
sanitizes and parses the reply and validates it into the role's result
model. Subclasses only supply the text and the result model.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from ..core.config import settings
from ..errors import AgentError, ResponseParseError
from .client import AgentClient
from .results import AgentRole, EngineerResult, ReviewerResult
from .sanitizer import parse_json_object, sanitize

logger = logging.getLogger(__name__)


# Sampling parameters per role: creative engineer, analytical reviewer, decisive lead
SAMPLING: Dict[AgentRole, Dict[str, Any]] = {
    AgentRole.ENGINEER: {"temperature": 0.7, "max_tokens": 1500},
    AgentRole.REVIEWER: {"temperature": 0.3, "max_tokens": 1500},
    AgentRole.LEAD: {"temperature": 0.2, "max_tokens": 1000},
}


@dataclass(frozen=True)
class FeedbackEntry:
    """Reviewer feedback carried into a later Engineer step."""
    round_number: int
    recommendation: str
    reasoning: str
    suggestions: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class AgentContext:
    """Everything an agent may need to know about the current step."""
    original_prompt: str
    working_prompt: str
    round_number: int
    attempt: int
    max_rounds: int
    rounds_completed: int = 0
    context_hint: Optional[str] = None
    audience_hint: Optional[str] = None
    recent_feedback: List[FeedbackEntry] = field(default_factory=list)
    recent_recommendations: List[str] = field(default_factory=list)
    candidate: Optional[EngineerResult] = None
    review: Optional[ReviewerResult] = None


def excerpt(text: str, limit: Optional[int] = None) -> str:
    """First ``limit`` characters of text, for logs and error reports."""
    limit = settings.DIAGNOSTIC_EXCERPT_CHARS if limit is None else limit
    return text[:limit]


def describe_validation_error(error: ValidationError) -> str:
    """Short reason for a failed result validation."""
    for detail in error.errors():
        blank = detail.get("type") == "value_error" and "is blank" in detail.get("msg", "")
        if detail.get("type") in ("missing", "string_too_short") or blank:
            loc = ".".join(str(part) for part in detail.get("loc", ()))
            return f"missing required field: {loc}"
    return "malformed output"


class AgentAdapter:
    """Base class for Engineer, Reviewer and Lead adapters."""

    role: AgentRole
    result_model: Type[BaseModel]
    system_text: str = ""

    def __init__(self, client: AgentClient):
        self.client = client

    def build_instructions(self, context: AgentContext) -> str:
        return self.system_text

    def build_content(self, context: AgentContext) -> str:
        raise NotImplementedError

    async def run(self, context: AgentContext) -> BaseModel:
        """
        Execute one agent step.

        Raises:
            AgentError: Reply is not JSON or lacks required fields
            ProviderError / EmptyResponseError: From the Agent Client
        """
        logger.info(f"{self.role.value}: starting round {context.round_number}")
        raw = await self.client.invoke(
            self.role,
            self.build_instructions(context),
            self.build_content(context),
            SAMPLING[self.role],
        )
        cleaned = sanitize(raw)
        logger.debug(f"{self.role.value} response: {excerpt(cleaned)}")

        try:
            payload = parse_json_object(cleaned)
        except ResponseParseError as e:
            logger.warning(f"{self.role.value}: {e}")
            raise AgentError(self.role.value, "malformed output", excerpt(cleaned)) from e

        try:
            result = self.result_model.model_validate(payload)
        except ValidationError as e:
            reason = describe_validation_error(e)
            logger.warning(f"{self.role.value}: invalid result ({reason})")
            raise AgentError(self.role.value, reason, excerpt(cleaned)) from e

        return self.check(result, cleaned)

    def check(self, result: BaseModel, cleaned: str) -> BaseModel:
        """Role-specific checks on a validated result. Default: accept."""
        return result
