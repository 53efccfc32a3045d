"""
Session state for one orchestration run.

A Session is an append-only sequence of RoundRecords plus a few counters.
It is owned by a single run; nothing else writes to it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..agents.base import FeedbackEntry
from ..agents.results import Decision, EngineerResult, LeadResult, ReviewerResult
from ..errors import SessionClosedError

logger = logging.getLogger(__name__)


class FinalDecision(str, Enum):
    unset = "unset"
    continue_ = "continue"
    approve = "approve"
    restart = "restart"
    reject = "reject"


TERMINAL_DECISIONS = (FinalDecision.approve, FinalDecision.reject)


@dataclass(frozen=True)
class RoundRecord:
    """Everything that happened in one completed round."""
    round_number: int
    attempt: int
    input_prompt: str
    candidate_prompt: str
    engineer: EngineerResult
    review: ReviewerResult
    lead: LeadResult
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def decision(self) -> Decision:
        return self.lead.decision

    @property
    def reasoning(self) -> str:
        return self.lead.reasoning

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round_number": self.round_number,
            "attempt": self.attempt,
            "input_prompt": self.input_prompt,
            "candidate_prompt": self.candidate_prompt,
            "decision": self.decision.value,
            "reasoning": self.reasoning,
            "engineer": self.engineer.model_dump(mode="json"),
            "review": self.review.model_dump(mode="json"),
            "lead": self.lead.model_dump(mode="json"),
            "created_at": self.created_at.isoformat(),
        }


class Session:
    """Accumulated rounds of one run."""

    def __init__(self, run_id: str, original_prompt: str, max_rounds: int):
        self.run_id = run_id
        self.original_prompt = original_prompt
        self.max_rounds = max_rounds
        self.current_round = 0
        self.final_decision = FinalDecision.unset
        self._closed = False
        self._records: List[RoundRecord] = []

    @property
    def records(self) -> List[RoundRecord]:
        return list(self._records)

    @property
    def rounds_completed(self) -> int:
        return len(self._records)

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self.closed:
            raise SessionClosedError(f"Session {self.run_id} is closed ({self.final_decision.value})")

    def begin_round(self) -> int:
        """Advance the round counter and return the new round number."""
        self._ensure_open()
        self.current_round = self.rounds_completed + 1
        return self.current_round

    def append(self, record: RoundRecord) -> None:
        self._ensure_open()
        if self._records and record.round_number <= self._records[-1].round_number:
            raise ValueError(
                f"Round {record.round_number} does not follow round {self._records[-1].round_number}"
            )
        self._records.append(record)
        self.current_round = max(self.current_round, record.round_number)
        self.final_decision = FinalDecision(record.decision.value)

    def close(self, decision: FinalDecision) -> None:
        if decision not in TERMINAL_DECISIONS:
            raise ValueError(f"{decision.value} is not a terminal decision")
        self._ensure_open()
        self.final_decision = decision
        self._closed = True
        logger.info(f"Session {self.run_id} closed as {decision.value} after {self.rounds_completed} round(s)")

    def overrule(self, decision: FinalDecision) -> None:
        """Replace the terminal decision of a closed session, e.g. when its approval could not be stored."""
        if decision not in TERMINAL_DECISIONS:
            raise ValueError(f"{decision.value} is not a terminal decision")
        if not self.closed:
            raise ValueError(f"Session {self.run_id} is still open")
        logger.warning(f"Session {self.run_id}: final decision {self.final_decision.value} overruled to {decision.value}")
        self.final_decision = decision

    # Derived views

    @property
    def latest(self) -> Optional[RoundRecord]:
        return self._records[-1] if self._records else None

    @property
    def feedback_count(self) -> int:
        return len(self._records)

    @property
    def latest_recommendation(self) -> Optional[str]:
        return self._records[-1].review.recommendation if self._records else None

    def progress_percentage(self, max_rounds: Optional[int] = None) -> int:
        limit = max_rounds or self.max_rounds
        if limit <= 0:
            return 0
        return min(100, round(self.rounds_completed / limit * 100))

    def recent_feedback(self, limit: int = 2) -> List[FeedbackEntry]:
        return [
            FeedbackEntry(
                round_number=r.round_number,
                recommendation=r.review.recommendation,
                reasoning=r.review.reasoning,
                suggestions=list(r.review.suggestions),
            )
            for r in self._records[-limit:]
        ] if limit > 0 else []

    def recent_recommendations(self, limit: int = 3) -> List[str]:
        return [r.review.recommendation for r in self._records[-limit:]] if limit > 0 else []

    def summary(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "rounds_completed": self.rounds_completed,
            "current_round": self.current_round,
            "max_rounds": self.max_rounds,
            "final_decision": self.final_decision.value,
            "feedback_count": self.feedback_count,
            "latest_recommendation": self.latest_recommendation,
            "progress_percentage": self.progress_percentage(),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.summary()
        data["original_prompt"] = self.original_prompt
        data["rounds"] = [r.to_dict() for r in self._records]
        return data
