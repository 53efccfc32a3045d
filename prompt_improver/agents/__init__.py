"""
Agent team for prompt improvement.

Three roles work each round:
- Engineer: rewrites the working prompt
- Reviewer: scores the rewrite against the original prompt
- Lead: decides to continue, approve or restart

All three talk to the LLM through AgentClient and return validated
AgentResult models.
"""

from .base import SAMPLING, AgentAdapter, AgentContext, FeedbackEntry
from .client import AgentClient
from .engineer import EngineerAgent
from .gateway import LiteLLMGateway, ProviderGateway, SimulationGateway, build_gateway
from .lead import LeadAgent
from .results import AgentResult, AgentRole, Decision, EngineerResult, LeadResult, ReviewerResult
from .reviewer import ReviewerAgent


__all__ = [
    "AgentAdapter",
    "AgentClient",
    "AgentContext",
    "AgentResult",
    "AgentRole",
    "Decision",
    "EngineerAgent",
    "EngineerResult",
    "FeedbackEntry",
    "LeadAgent",
    "LeadResult",
    "LiteLLMGateway",
    "ProviderGateway",
    "ReviewerAgent",
    "ReviewerResult",
    "SAMPLING",
    "SimulationGateway",
    "build_gateway",
]
