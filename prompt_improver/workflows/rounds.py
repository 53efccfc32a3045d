"""
Round Executor: one Engineer -> Reviewer -> Lead cycle.

A round either completes and appends exactly one RoundRecord, or fails and
appends nothing. Partial rounds never reach the session.
"""

import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional

from ..agents.base import AgentContext
from ..agents.engineer import EngineerAgent
from ..agents.lead import LeadAgent
from ..agents.results import AgentRole, Decision
from ..agents.reviewer import ReviewerAgent
from ..errors import AgentError, EmptyResponseError, ProviderError, RoundFailedError
from .session import RoundRecord, Session

logger = logging.getLogger(__name__)


StepCallback = Callable[[int, AgentRole], Awaitable[None]]


@dataclass(frozen=True)
class RoundConstraints:
    """Per-run settings each round needs."""
    max_rounds: int
    attempt: int = 1
    context_hint: Optional[str] = None
    audience_hint: Optional[str] = None


@dataclass(frozen=True)
class RoundOutcome:
    decision: Decision
    candidate_prompt: str
    record: RoundRecord


class RoundExecutor:
    """Runs the three agent steps of a round in order."""

    def __init__(
        self,
        engineer: EngineerAgent,
        reviewer: ReviewerAgent,
        lead: LeadAgent,
        on_step: Optional[StepCallback] = None,
    ):
        self.engineer = engineer
        self.reviewer = reviewer
        self.lead = lead
        self.on_step = on_step

    async def _step(self, round_number: int, role: AgentRole) -> None:
        if self.on_step is not None:
            await self.on_step(round_number, role)

    async def run_round(
        self,
        session: Session,
        working_prompt: str,
        original_prompt: str,
        constraints: RoundConstraints,
    ) -> RoundOutcome:
        """
        Execute one round and record it.

        Raises:
            RoundFailedError: An agent step failed; the session is unchanged
                apart from its round counter
        """
        round_number = session.begin_round()
        context = AgentContext(
            original_prompt=original_prompt,
            working_prompt=working_prompt,
            round_number=round_number,
            attempt=constraints.attempt,
            max_rounds=constraints.max_rounds,
            rounds_completed=session.rounds_completed,
            context_hint=constraints.context_hint,
            audience_hint=constraints.audience_hint,
            recent_feedback=session.recent_feedback(limit=2),
            recent_recommendations=session.recent_recommendations(),
        )

        role = AgentRole.ENGINEER
        try:
            await self._step(round_number, role)
            candidate = await self.engineer.run(context)

            role = AgentRole.REVIEWER
            await self._step(round_number, role)
            review = await self.reviewer.run(replace(context, candidate=candidate))

            role = AgentRole.LEAD
            await self._step(round_number, role)
            verdict = await self.lead.run(replace(context, candidate=candidate, review=review))
        except (AgentError, ProviderError, EmptyResponseError) as e:
            logger.error(f"Round {round_number} failed at {role.value}: {e}")
            raise RoundFailedError(round_number, role.value, e) from e

        record = RoundRecord(
            round_number=round_number,
            attempt=constraints.attempt,
            input_prompt=working_prompt,
            candidate_prompt=candidate.improved_prompt,
            engineer=candidate,
            review=review,
            lead=verdict,
        )
        session.append(record)
        logger.info(
            f"Round {round_number} complete: {review.recommendation} ({review.quality_score}) -> {verdict.decision.value}"
        )
        return RoundOutcome(decision=verdict.decision, candidate_prompt=candidate.improved_prompt, record=record)
