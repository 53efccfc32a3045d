"""
Lead Agent: decides whether the team continues, approves or restarts.
"""

import logging

from pydantic import BaseModel

from ..core.config import settings
from ..errors import AgentError
from .base import AgentAdapter, AgentContext, excerpt
from .results import AgentRole, LeadResult

logger = logging.getLogger(__name__)


LEAD_INSTRUCTIONS = """You are the Lead of a multi-agent prompt improvement team.
Read the reviewer's assessment and the session progress, then decide:

- APPROVE: quality is high and further rounds are unlikely to add much
- CONTINUE: the prompt can still improve meaningfully in another round
- RESTART: the current direction is flawed; start again from the original prompt

Respond with a single JSON object and nothing else:
{
  "decision": "APPROVE | CONTINUE | RESTART",
  "reasoning": "Why this decision",
  "confidence_level": 90,
  "next_steps": "Priorities for the next round, if any"
}"""


class LeadAgent(AgentAdapter):
    """Makes the round decision."""

    role = AgentRole.LEAD
    result_model = LeadResult
    system_text = LEAD_INSTRUCTIONS

    def build_content(self, context: AgentContext) -> str:
        if context.review is None:
            raise ValueError("Lead needs the reviewer's assessment")
        review = context.review
        lines = [
            f"**STRATEGIC DECISION - ROUND {context.round_number}/{context.max_rounds}**",
            "",
            "**CURRENT REVIEW:**",
            f"Recommendation: {review.recommendation}",
            f"Quality Score: {review.quality_score}",
        ]
        if review.reasoning:
            lines.append(f"Feedback: {review.reasoning}")
        if review.weaknesses:
            lines.append(f"Weaknesses: {'; '.join(review.weaknesses)}")
        lines += [
            "",
            "**SESSION PROGRESS:**",
            f"Rounds completed: {context.rounds_completed}",
            f"Rounds remaining after this one: {max(0, context.max_rounds - context.round_number)}",
            f"Attempt: {context.attempt}",
        ]
        if context.recent_recommendations:
            lines.append(f"Recent reviewer recommendations: {' → '.join(context.recent_recommendations)}")
        lines += [
            "",
            "**TASK:**",
            "Make your decision. Respond in JSON format.",
        ]
        return "\n".join(lines)

    def check(self, result: BaseModel, cleaned: str) -> BaseModel:
        if not result.decision_recognized:
            if settings.STRICT_LEAD_DECISIONS:
                raise AgentError(
                    self.role.value,
                    f"unrecognized decision: {result.decision_token!r}",
                    excerpt(cleaned),
                )
            logger.warning(
                f"lead: unrecognized decision {result.decision_token!r} normalized to continue"
            )
        return result
