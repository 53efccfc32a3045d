"""
Collaboration Orchestrator: drives rounds until the team approves, the
budget runs out, a round fails or the run is cancelled.

States: initializing -> running -> approved | exhausted | failed | cancelled

Every terminal state produces one OrchestrationResult. Errors raised below
this layer are converted into a failed result and never escape ``run``.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..agents.client import AgentClient
from ..agents.engineer import EngineerAgent
from ..agents.gateway import ProviderGateway
from ..agents.lead import LeadAgent
from ..agents.results import AgentRole, Decision
from ..agents.reviewer import ReviewerAgent
from ..core.config import settings
from ..errors import PersistenceError, RoundFailedError
from ..llm_providers import ProviderConfig, get_provider_config
from .progress import ProgressEmitter, ProgressKind, ProgressReporter, round_percentage
from .rounds import RoundConstraints, RoundExecutor
from .session import FinalDecision, RoundRecord, Session

logger = logging.getLogger(__name__)


class ImprovementRequest(BaseModel):
    """Immutable input for one orchestration run."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    task_id: str
    original_prompt: str = Field(..., min_length=10, max_length=10000)
    context_hint: Optional[str] = Field(default=None, max_length=1000)
    audience_hint: Optional[str] = Field(default=None, max_length=500)
    provider: ProviderConfig = Field(default_factory=get_provider_config)
    max_rounds: int = Field(default_factory=lambda: settings.DEFAULT_MAX_ROUNDS, ge=1)

    @field_validator("original_prompt")
    @classmethod
    def _prompt_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("original_prompt is blank")
        return v

    @field_validator("max_rounds")
    @classmethod
    def _within_limit(cls, v: int) -> int:
        if v > settings.MAX_ROUNDS_LIMIT:
            raise ValueError(f"max_rounds must be at most {settings.MAX_ROUNDS_LIMIT}")
        return v


class RunStatus(str, Enum):
    approved = "approved"
    exhausted = "exhausted"
    failed = "failed"
    cancelled = "cancelled"


class OrchestrationResult(BaseModel):
    """Outcome of one run."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: RunStatus
    final_prompt: Optional[str] = None
    session: Session
    error_kind: Optional[str] = None
    message: str = ""
    role: Optional[str] = None
    excerpt: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "final_prompt": self.final_prompt,
            "error_kind": self.error_kind,
            "message": self.message,
            "role": self.role,
            "excerpt": self.excerpt,
            "session": self.session.summary(),
        }


class SessionPersistence(Protocol):
    """Durable record of a run, written after each round and at the end."""

    async def record_round(self, session: Session, record: RoundRecord) -> None:
        ...

    async def record_final(self, session: Session, result: OrchestrationResult) -> None:
        ...


class CollaborationOrchestrator:
    """Runs the Engineer / Reviewer / Lead team against one prompt."""

    def __init__(self, gateway: Optional[ProviderGateway] = None, **client_options: Any):
        self.gateway = gateway
        self.client_options = client_options

    def build_executor(self, request: ImprovementRequest, emitter: ProgressEmitter) -> RoundExecutor:
        client = AgentClient(request.provider, gateway=self.gateway, **self.client_options)

        async def on_step(round_number: int, role: AgentRole) -> None:
            await emitter.emit(
                ProgressKind.step,
                f"Round {round_number}: {role.value} working",
                progress=round_percentage(round_number - 1, request.max_rounds),
                round_number=round_number,
                role=role.value,
            )

        return RoundExecutor(EngineerAgent(client), ReviewerAgent(client), LeadAgent(client), on_step=on_step)

    async def run(
        self,
        request: ImprovementRequest,
        reporter: Optional[ProgressReporter] = None,
        persistence: Optional[SessionPersistence] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> OrchestrationResult:
        """
        Execute a full improvement run.

        Args:
            request: Validated run input
            reporter: Progress sink; its errors never affect the run
            persistence: Hook called after each round and at finalization
            cancel_event: Checked between rounds; when set, the run stops

        Returns:
            OrchestrationResult in one of the four terminal states
        """
        session = Session(request.task_id, request.original_prompt, request.max_rounds)
        emitter = ProgressEmitter(request.task_id, reporter)
        executor = self.build_executor(request, emitter)

        logger.info(
            f"Run {request.task_id}: starting with {request.provider.provider.value} "
            f"({request.provider.model_name}), max_rounds={request.max_rounds}"
        )
        await emitter.emit(ProgressKind.started, "Multi-agent collaboration started", progress=0)

        constraints = RoundConstraints(
            max_rounds=request.max_rounds,
            attempt=1,
            context_hint=request.context_hint,
            audience_hint=request.audience_hint,
        )
        working_prompt = request.original_prompt
        last_candidate: Optional[str] = None

        while session.rounds_completed < request.max_rounds:
            if cancel_event is not None and cancel_event.is_set():
                return await self._finish(
                    session, emitter, persistence,
                    status=RunStatus.cancelled,
                    final_prompt=last_candidate,
                    message=f"Cancelled after {session.rounds_completed} round(s)",
                )

            try:
                outcome = await executor.run_round(session, working_prompt, request.original_prompt, constraints)
            except RoundFailedError as e:
                return await self._finish(
                    session, emitter, persistence,
                    status=RunStatus.failed,
                    final_prompt=last_candidate,
                    message=str(e),
                    error_kind=e.error_kind,
                    role=e.role,
                    excerpt=e.excerpt or None,
                )
            except Exception as e:
                logger.error(f"Run {request.task_id}: round {session.rounds_completed + 1} crashed: {e}", exc_info=True)
                return await self._finish(
                    session, emitter, persistence,
                    status=RunStatus.failed,
                    final_prompt=last_candidate,
                    message=f"Round {session.rounds_completed + 1} failed unexpectedly: {type(e).__name__}",
                    error_kind="internal_error",
                )

            last_candidate = outcome.candidate_prompt
            record = outcome.record

            if persistence is not None:
                try:
                    await persistence.record_round(session, record)
                except Exception as e:
                    logger.error(f"Run {request.task_id}: persisting round {record.round_number} failed: {e}")
                    error = PersistenceError(f"Could not persist round {record.round_number}: {e}")
                    return await self._finish(
                        session, emitter, None,
                        status=RunStatus.failed,
                        final_prompt=last_candidate,
                        message=str(error),
                        error_kind=error.error_kind,
                    )

            await emitter.emit(
                ProgressKind.round_complete,
                f"Round {record.round_number} complete: lead decided {outcome.decision.value}",
                progress=round_percentage(record.round_number, request.max_rounds),
                round_number=record.round_number,
            )

            if outcome.decision == Decision.APPROVE:
                return await self._finish(
                    session, emitter, persistence,
                    status=RunStatus.approved,
                    final_prompt=outcome.candidate_prompt,
                    message=f"Approved in round {record.round_number}",
                )
            if outcome.decision == Decision.RESTART:
                logger.info(f"Run {request.task_id}: lead requested restart after round {record.round_number}")
                working_prompt = request.original_prompt
                constraints = RoundConstraints(
                    max_rounds=constraints.max_rounds,
                    attempt=constraints.attempt + 1,
                    context_hint=constraints.context_hint,
                    audience_hint=constraints.audience_hint,
                )
            else:
                working_prompt = outcome.candidate_prompt

        return await self._finish(
            session, emitter, persistence,
            status=RunStatus.exhausted,
            final_prompt=last_candidate,
            message=f"Round budget of {request.max_rounds} spent without approval",
        )

    async def _finish(
        self,
        session: Session,
        emitter: ProgressEmitter,
        persistence: Optional[SessionPersistence],
        status: RunStatus,
        final_prompt: Optional[str],
        message: str,
        error_kind: Optional[str] = None,
        role: Optional[str] = None,
        excerpt: Optional[str] = None,
    ) -> OrchestrationResult:
        session.close(FinalDecision.approve if status == RunStatus.approved else FinalDecision.reject)
        result = OrchestrationResult(
            status=status,
            final_prompt=final_prompt,
            session=session,
            error_kind=error_kind,
            message=message,
            role=role,
            excerpt=excerpt,
        )

        if persistence is not None:
            try:
                await persistence.record_final(session, result)
            except Exception as e:
                logger.error(f"Run {session.run_id}: persisting final result failed: {e}")
                error = PersistenceError(f"Could not persist final result: {e}")
                session.overrule(FinalDecision.reject)
                result = result.model_copy(update={
                    "status": RunStatus.failed,
                    "error_kind": error.error_kind,
                    "message": str(error),
                })

        if result.status == RunStatus.failed:
            await emitter.emit(ProgressKind.failed, result.message, role=result.role)
        elif result.status == RunStatus.cancelled:
            await emitter.emit(ProgressKind.cancelled, result.message)
        else:
            await emitter.emit(ProgressKind.completed, result.message)

        logger.info(f"Run {session.run_id}: finished as {result.status.value} after {session.rounds_completed} round(s)")
        return result
