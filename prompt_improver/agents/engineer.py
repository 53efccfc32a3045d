"""
Engineer Agent: proposes an improved version of the working prompt.
"""

import logging

from .base import AgentAdapter, AgentContext
from .results import AgentRole, EngineerResult

logger = logging.getLogger(__name__)


ENGINEER_INSTRUCTIONS = """You are an expert Prompt Engineer in a multi-agent team with a Reviewer and a Lead.
Your job is to improve the prompt you are given with specific, measurable changes.

Techniques to consider:
- Chain-of-Thought reasoning
- Few-shot examples when appropriate
- Role-based instructions
- Structured output formats
- Context enhancement
- Specificity improvements

Respond with a single JSON object and nothing else:
{
  "improved_prompt": "The enhanced prompt",
  "reasoning": "What you improved and why",
  "techniques": ["Techniques applied"],
  "changes_made": ["Specific changes from the previous version"]
}"""


class EngineerAgent(AgentAdapter):
    """Rewrites the working prompt, using the last reviewer feedback."""

    role = AgentRole.ENGINEER
    result_model = EngineerResult
    system_text = ENGINEER_INSTRUCTIONS

    def build_content(self, context: AgentContext) -> str:
        sections = [
            f"**IMPROVEMENT ROUND {context.round_number}/{context.max_rounds}**",
            f"**ORIGINAL PROMPT:**\n{context.original_prompt}",
        ]
        if context.working_prompt != context.original_prompt:
            sections.append(f"**CURRENT VERSION:**\n{context.working_prompt}")
        if context.context_hint:
            sections.append(f"**TASK CONTEXT:**\n{context.context_hint}")
        if context.audience_hint:
            sections.append(f"**TARGET AUDIENCE:**\n{context.audience_hint}")
        if context.recent_feedback:
            lines = []
            for entry in context.recent_feedback:
                lines.append(f"Round {entry.round_number} reviewer ({entry.recommendation}) noted: {entry.reasoning}")
                if entry.suggestions:
                    lines.append(f"Suggestions: {', '.join(entry.suggestions)}")
            sections.append("**PREVIOUS FEEDBACK:**\n" + "\n".join(lines))
        sections.append(
            "**TASK:**\nImprove the current prompt with specific enhancements. Respond in JSON format."
        )
        return "\n\n".join(sections)
