"""
Reviewer Agent: scores the Engineer's candidate against the original prompt.

The reviewer always compares with the original, never with the previous
candidate, so quality cannot drift round over round unnoticed.
"""

import logging

from .base import AgentAdapter, AgentContext
from .results import AgentRole, ReviewerResult

logger = logging.getLogger(__name__)


REVIEWER_INSTRUCTIONS = """You are a prompt quality reviewer in a multi-agent team.
Compare the improved prompt with the original and judge clarity, structure,
completeness and how well it will steer a model toward useful output.

Scoring guide: 90-100 exceptional, 80-89 excellent, 70-79 good,
60-69 acceptable, 50-59 needs work, below 50 inadequate.

Respond with a single JSON object and nothing else:
{
  "recommendation": "APPROVE | APPROVE_WITH_NOTES | NEEDS_IMPROVEMENT | REJECT",
  "quality_score": 85,
  "strengths": ["Specific strengths"],
  "weaknesses": ["Specific problems"],
  "suggestions": ["Actionable improvements"],
  "reasoning": "Feedback for the Prompt Engineer"
}"""


class ReviewerAgent(AgentAdapter):
    """Assesses a candidate prompt."""

    role = AgentRole.REVIEWER
    result_model = ReviewerResult
    system_text = REVIEWER_INSTRUCTIONS

    def build_content(self, context: AgentContext) -> str:
        if context.candidate is None:
            raise ValueError("Reviewer needs the engineer's candidate")
        sections = [
            f"**ROUND {context.round_number} REVIEW**",
            f"**ORIGINAL PROMPT:**\n{context.original_prompt}",
            f"**IMPROVED VERSION:**\n{context.candidate.improved_prompt}",
        ]
        if context.candidate.reasoning:
            sections.append(f"**ENGINEER NOTES:**\n{context.candidate.reasoning}")
        if context.candidate.techniques:
            sections.append(f"**TECHNIQUES APPLIED:**\n{', '.join(context.candidate.techniques)}")
        sections.append("**TASK:**\nReview the improved version against the original. Respond in JSON format.")
        return "\n\n".join(sections)
