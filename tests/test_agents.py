"""
Tests for the Engineer, Reviewer and Lead adapters.
"""

import json

import pytest

from fakes import MOCK_PROVIDER, ScriptedGateway
from prompt_improver.agents import (
    AgentContext,
    EngineerAgent,
    FeedbackEntry,
    LeadAgent,
    ReviewerAgent,
)
from prompt_improver.agents.base import SAMPLING
from prompt_improver.agents.client import AgentClient
from prompt_improver.agents.results import AgentRole, Decision, EngineerResult, ReviewerResult
from prompt_improver.core.config import settings
from prompt_improver.errors import AgentError

ORIGINAL = "Write a blog post about AI"


def make_client(gateway) -> AgentClient:
    return AgentClient(MOCK_PROVIDER, gateway=gateway, timeout=5, max_retries=0, backoff=0)


def make_context(**overrides) -> AgentContext:
    values = dict(
        original_prompt=ORIGINAL,
        working_prompt=ORIGINAL,
        round_number=1,
        attempt=1,
        max_rounds=5,
    )
    values.update(overrides)
    return AgentContext(**values)


CANDIDATE = EngineerResult(improved_prompt="Write a 500-word blog post about AI for beginners", reasoning="Added scope")
REVIEW = ReviewerResult(
    recommendation="APPROVE_WITH_NOTES",
    quality_score=84,
    weaknesses=["No tone guidance"],
    reasoning="Good scope",
)


class SamplingGateway:
    """Remembers the sampling parameters of every call."""

    def __init__(self, reply: dict):
        self.reply = reply
        self.sampling = []

    async def call(self, provider_name, model, system_text, user_text, sampling, role=None):
        self.sampling.append((role, sampling))
        return json.dumps(self.reply)


class TestEngineerAgent:
    """Test the engineer adapter."""

    @pytest.mark.asyncio
    async def test_fenced_json_accepted(self):
        gateway = ScriptedGateway(engineer=lambda text: '```json\n{"improved_prompt": "Better prompt"}\n```')
        result = await EngineerAgent(make_client(gateway)).run(make_context())
        assert result.improved_prompt == "Better prompt"
        assert gateway.roles_called() == [AgentRole.ENGINEER]

    @pytest.mark.asyncio
    async def test_missing_prompt_is_named(self):
        gateway = ScriptedGateway(engineer=lambda text: {"reasoning": "forgot the prompt"})
        with pytest.raises(AgentError) as exc_info:
            await EngineerAgent(make_client(gateway)).run(make_context())
        assert exc_info.value.reason == "missing required field: improved_prompt"
        assert exc_info.value.role == "engineer"
        assert exc_info.value.error_kind == "malformed_output"

    @pytest.mark.asyncio
    async def test_blank_prompt_is_named(self):
        gateway = ScriptedGateway(engineer=lambda text: {"improved_prompt": "   "})
        with pytest.raises(AgentError) as exc_info:
            await EngineerAgent(make_client(gateway)).run(make_context())
        assert exc_info.value.reason == "missing required field: improved_prompt"

    @pytest.mark.asyncio
    async def test_non_json_reply_has_bounded_excerpt(self):
        gateway = ScriptedGateway(engineer=lambda text: "I think the prompt is fine. " * 40)
        with pytest.raises(AgentError) as exc_info:
            await EngineerAgent(make_client(gateway)).run(make_context())
        assert exc_info.value.reason == "malformed output"
        assert 0 < len(exc_info.value.excerpt) <= settings.DIAGNOSTIC_EXCERPT_CHARS
        assert exc_info.value.excerpt.startswith("I think the prompt is fine.")

    def test_content_for_first_round(self):
        content = EngineerAgent(make_client(ScriptedGateway())).build_content(
            make_context(context_hint="Company blog", audience_hint="Developers")
        )
        assert "**IMPROVEMENT ROUND 1/5**" in content
        assert f"**ORIGINAL PROMPT:**\n{ORIGINAL}" in content
        assert "CURRENT VERSION" not in content
        assert "Company blog" in content
        assert "Developers" in content
        assert content.rstrip().endswith("Respond in JSON format.")

    def test_content_carries_working_prompt_and_feedback(self):
        context = make_context(
            working_prompt="Write a blog post about AI for developers",
            round_number=2,
            recent_feedback=[
                FeedbackEntry(1, "NEEDS_IMPROVEMENT", "Too broad", ["Narrow the topic"]),
            ],
        )
        content = EngineerAgent(make_client(ScriptedGateway())).build_content(context)
        assert "**CURRENT VERSION:**\nWrite a blog post about AI for developers" in content
        assert "Round 1 reviewer (NEEDS_IMPROVEMENT) noted: Too broad" in content
        assert "Narrow the topic" in content

    @pytest.mark.asyncio
    async def test_uses_engineer_sampling(self):
        gateway = SamplingGateway({"improved_prompt": "Better"})
        await EngineerAgent(make_client(gateway)).run(make_context())
        assert gateway.sampling == [(AgentRole.ENGINEER, SAMPLING[AgentRole.ENGINEER])]
        assert SAMPLING[AgentRole.ENGINEER]["temperature"] == 0.7


class TestReviewerAgent:
    """Test the reviewer adapter."""

    def test_compares_candidate_with_original(self):
        """Test the reviewer never sees the intermediate working prompt."""
        context = make_context(
            working_prompt="Intermediate version from round one",
            round_number=2,
            candidate=CANDIDATE,
        )
        content = ReviewerAgent(make_client(ScriptedGateway())).build_content(context)
        assert "**ROUND 2 REVIEW**" in content
        assert f"**ORIGINAL PROMPT:**\n{ORIGINAL}" in content
        assert f"**IMPROVED VERSION:**\n{CANDIDATE.improved_prompt}" in content
        assert "Intermediate version from round one" not in content

    def test_requires_candidate(self):
        with pytest.raises(ValueError):
            ReviewerAgent(make_client(ScriptedGateway())).build_content(make_context())

    @pytest.mark.asyncio
    async def test_missing_recommendation_fails(self):
        gateway = ScriptedGateway(reviewer=lambda text: {"quality_score": 80})
        with pytest.raises(AgentError) as exc_info:
            await ReviewerAgent(make_client(gateway)).run(make_context(candidate=CANDIDATE))
        assert exc_info.value.reason == "missing required field: recommendation"
        assert exc_info.value.role == "reviewer"

    @pytest.mark.asyncio
    async def test_defaults_score(self):
        gateway = ScriptedGateway(reviewer=lambda text: {"recommendation": "approve"})
        result = await ReviewerAgent(make_client(gateway)).run(make_context(candidate=CANDIDATE))
        assert result.recommendation == "APPROVE"
        assert result.quality_score == 95

    @pytest.mark.asyncio
    async def test_uses_reviewer_sampling(self):
        gateway = SamplingGateway({"recommendation": "APPROVE", "quality_score": 90})
        await ReviewerAgent(make_client(gateway)).run(make_context(candidate=CANDIDATE))
        assert gateway.sampling == [(AgentRole.REVIEWER, {"temperature": 0.3, "max_tokens": 1500})]


class TestLeadAgent:
    """Test the lead adapter."""

    def test_content_lists_review_and_progress(self):
        context = make_context(
            round_number=3,
            rounds_completed=2,
            candidate=CANDIDATE,
            review=REVIEW,
            recent_recommendations=["NEEDS_IMPROVEMENT", "APPROVE_WITH_NOTES"],
        )
        content = LeadAgent(make_client(ScriptedGateway())).build_content(context)
        assert "**STRATEGIC DECISION - ROUND 3/5**" in content
        assert "Recommendation: APPROVE_WITH_NOTES" in content
        assert "Quality Score: 84" in content
        assert "Weaknesses: No tone guidance" in content
        assert "Rounds completed: 2" in content
        assert "NEEDS_IMPROVEMENT → APPROVE_WITH_NOTES" in content

    def test_requires_review(self):
        with pytest.raises(ValueError):
            LeadAgent(make_client(ScriptedGateway())).build_content(make_context(candidate=CANDIDATE))

    @pytest.mark.asyncio
    async def test_unrecognized_decision_continues(self):
        gateway = ScriptedGateway(lead=lambda text: {"decision": "ESCALATE", "reasoning": "Unsure"})
        result = await LeadAgent(make_client(gateway)).run(make_context(candidate=CANDIDATE, review=REVIEW))
        assert result.decision == Decision.CONTINUE
        assert result.decision_recognized is False

    @pytest.mark.asyncio
    async def test_unrecognized_decision_fails_in_strict_mode(self, monkeypatch):
        monkeypatch.setattr(settings, "STRICT_LEAD_DECISIONS", True)
        gateway = ScriptedGateway(lead=lambda text: {"decision": "ESCALATE", "reasoning": "Unsure"})
        with pytest.raises(AgentError, match="unrecognized decision"):
            await LeadAgent(make_client(gateway)).run(make_context(candidate=CANDIDATE, review=REVIEW))

    @pytest.mark.asyncio
    async def test_missing_reasoning_fails(self):
        gateway = ScriptedGateway(lead=lambda text: {"decision": "APPROVE"})
        with pytest.raises(AgentError) as exc_info:
            await LeadAgent(make_client(gateway)).run(make_context(candidate=CANDIDATE, review=REVIEW))
        assert exc_info.value.reason.startswith("missing required field")
        assert exc_info.value.role == "lead"

    @pytest.mark.asyncio
    async def test_aliased_fields_accepted(self):
        gateway = ScriptedGateway(lead=lambda text: {"action": "Restart", "reason": "Wrong direction"})
        result = await LeadAgent(make_client(gateway)).run(make_context(candidate=CANDIDATE, review=REVIEW))
        assert result.decision == Decision.RESTART
