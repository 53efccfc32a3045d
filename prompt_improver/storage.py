import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import selectinload

from .db.models import MultiAgentSession, PromptImprovement, PromptTask, TaskEvent
from .db.session import AsyncSessionLocal
from .models import Task, TaskCreate, TaskStatus
from .workflows.orchestrator import ImprovementRequest, OrchestrationResult, RunStatus
from .workflows.progress import ProgressEvent
from .workflows.session import RoundRecord, Session
from .workflows.summary import build_improvement

logger = logging.getLogger(__name__)


RUN_STATUS_TO_TASK = {
    RunStatus.approved: TaskStatus.completed,
    RunStatus.exhausted: TaskStatus.completed,
    RunStatus.failed: TaskStatus.failed,
    RunStatus.cancelled: TaskStatus.cancelled,
}


class PostgresStore:
    async def create_task(self, req: TaskCreate, provider: str, model: Optional[str]) -> Task:
        async with AsyncSessionLocal() as session:
            task_id = str(uuid4())
            row = PromptTask(
                id=task_id,
                original_prompt=req.prompt,
                context=req.context,
                target_audience=req.target_audience,
                provider=provider,
                ai_model=model,
                max_rounds=req.max_rounds,
                status=TaskStatus.queued.value,
                progress=0,
            )
            session.add(row)
            await session.flush()
            await self._add_event(session, task_id, "state", 0, {"status": TaskStatus.queued.value})
            await session.commit()
            await session.refresh(row)
            return self._task_from_row(row)

    async def get_task(self, task_id: str) -> Optional[Task]:
        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(PromptTask)
                .options(selectinload(PromptTask.session), selectinload(PromptTask.improvement))
                .where(PromptTask.id == task_id)
            )
            row = result.scalar_one_or_none()
            if not row:
                return None
            return self._task_from_row(row, include_children=True)

    async def list_tasks(
        self, limit: int = 20, status: Optional[TaskStatus] = None, provider: Optional[str] = None
    ) -> List[Task]:
        """Newest tasks first, optionally filtered by status and provider."""
        async with AsyncSessionLocal() as session:
            stmt = (
                select(PromptTask)
                .options(selectinload(PromptTask.session), selectinload(PromptTask.improvement))
                .order_by(PromptTask.created_at.desc())
                .limit(limit)
            )
            if status is not None:
                stmt = stmt.where(PromptTask.status == status.value)
            if provider:
                stmt = stmt.where(PromptTask.provider == provider)
            result = await session.execute(stmt)
            return [self._task_from_row(row, include_children=True) for row in result.scalars().all()]

    async def get_status(self, task_id: str) -> Optional[TaskStatus]:
        async with AsyncSessionLocal() as session:
            result = await session.execute(select(PromptTask.status).where(PromptTask.id == task_id))
            status = result.scalar_one_or_none()
            if status is None:
                return None
            return TaskStatus(status)

    async def update_status(
        self, task_id: str, status: TaskStatus, only_from: Optional[TaskStatus] = None, **values: Any
    ) -> bool:
        async with AsyncSessionLocal() as session:
            conditions = [PromptTask.id == task_id]
            if only_from is not None:
                conditions.append(PromptTask.status == only_from.value)
            stmt = (
                update(PromptTask)
                .where(*conditions)
                .values(status=status.value, updated_at=datetime.now(timezone.utc), **values)
                .returning(PromptTask.id)
            )
            res = await session.execute(stmt)
            if res.scalar_one_or_none() is None:
                await session.rollback()
                return False
            await self._add_event(session, task_id, "state", values.get("progress", 0), {"status": status.value})
            await session.commit()
            return True

    async def mark_running(self, task_id: str) -> bool:
        """Move a queued task to running. Returns False if it is no longer queued."""
        return await self.update_status(
            task_id, TaskStatus.running, only_from=TaskStatus.queued, started_at=datetime.now(timezone.utc)
        )

    async def cancel_queued(self, task_id: str) -> bool:
        """Cancel a task that has not started yet. Returns False if it already left the queue."""
        return await self.update_status(
            task_id,
            TaskStatus.cancelled,
            only_from=TaskStatus.queued,
            outcome=RunStatus.cancelled.value,
            completed_at=datetime.now(timezone.utc),
        )

    async def add_progress(self, event: ProgressEvent) -> None:
        async with AsyncSessionLocal() as session:
            await session.execute(
                update(PromptTask).where(PromptTask.id == event.run_id).values(progress=event.progress)
            )
            await self._add_event(session, event.run_id, "progress", event.progress, event.to_payload())
            await session.commit()

    async def list_events_since(self, task_id: str, last_id: int = 0) -> List[Dict[str, Any]]:
        async with AsyncSessionLocal() as session:
            result = await session.execute(
                select(TaskEvent)
                .where(TaskEvent.task_id == task_id, TaskEvent.id > last_id)
                .order_by(TaskEvent.id)
            )
            return [self._event_to_dict(ev) for ev in result.scalars().all()]

    async def save_round(self, task_id: str, session_state: Session, record: RoundRecord) -> None:
        async with AsyncSessionLocal() as session:
            row = await self._session_row(session, task_id)
            row.current_round = session_state.current_round
            row.rounds_completed = session_state.rounds_completed
            # Reassign so the JSON column is flagged dirty
            row.rounds = list(row.rounds or []) + [record.to_dict()]
            row.final_decision = session_state.final_decision.value
            await session.commit()

    async def finalize(
        self,
        task_id: str,
        session_state: Session,
        result: OrchestrationResult,
        improvement: Optional[Dict[str, Any]],
        duration_seconds: float,
    ) -> None:
        async with AsyncSessionLocal() as session:
            row = await self._session_row(session, task_id)
            row.current_round = session_state.current_round
            row.rounds_completed = session_state.rounds_completed
            row.final_decision = session_state.final_decision.value
            row.session_metadata = session_state.summary()

            if improvement is not None:
                session.add(PromptImprovement(
                    task_id=task_id,
                    improved_prompt=improvement["improved_prompt"],
                    analysis=improvement["analysis"],
                    improvements_metadata=improvement["metadata"],
                    provider_used=improvement["provider_used"],
                    ai_model_used=improvement["model_used"],
                    quality_score=improvement["quality_score"],
                    processing_time_seconds=duration_seconds,
                ))

            status = RUN_STATUS_TO_TASK[result.status]
            values: Dict[str, Any] = {
                "status": status.value,
                "outcome": result.status.value,
                "error_kind": result.error_kind,
                "error_message": result.message if status == TaskStatus.failed else None,
                "completed_at": datetime.now(timezone.utc),
                "updated_at": datetime.now(timezone.utc),
            }
            if status == TaskStatus.completed:
                values["progress"] = 100
            await session.execute(update(PromptTask).where(PromptTask.id == task_id).values(**values))
            await self._add_event(session, task_id, "state", values.get("progress", 0), {
                "status": status.value,
                "outcome": result.status.value,
                "error_kind": result.error_kind,
            })
            await session.commit()

    async def fail(self, task_id: str, error_kind: str, message: str) -> None:
        await self.update_status(
            task_id,
            TaskStatus.failed,
            error_kind=error_kind,
            error_message=message,
            outcome=RunStatus.failed.value,
            completed_at=datetime.now(timezone.utc),
        )

    async def _session_row(self, session, task_id: str) -> MultiAgentSession:
        result = await session.execute(select(MultiAgentSession).where(MultiAgentSession.task_id == task_id))
        row = result.scalar_one_or_none()
        if row is None:
            row = MultiAgentSession(task_id=task_id, current_round=0, rounds_completed=0, rounds=[], final_decision="unset")
            session.add(row)
        return row

    async def _add_event(self, session, task_id: str, event_type: str, progress: int, payload: Dict[str, Any]) -> None:
        event = TaskEvent(
            task_id=task_id,
            type=event_type,
            progress=progress or 0,
            payload=payload,
            message=payload.get("message"),
        )
        session.add(event)

    @staticmethod
    def _event_to_dict(event: TaskEvent) -> Dict[str, Any]:
        data = {"id": event.id, "type": event.type, "progress": event.progress, "ts": event.ts.isoformat()}
        data.update(event.payload or {})
        if event.message and "message" not in data:
            data["message"] = event.message
        return data

    @staticmethod
    def _task_from_row(row: PromptTask, include_children: bool = False) -> Task:
        session_data = None
        improvement_data = None
        if include_children:
            if row.session is not None:
                session_data = {
                    "current_round": row.session.current_round,
                    "rounds_completed": row.session.rounds_completed,
                    "final_decision": row.session.final_decision,
                    "rounds": row.session.rounds or [],
                    "summary": row.session.session_metadata,
                }
            if row.improvement is not None:
                improvement_data = {
                    "improved_prompt": row.improvement.improved_prompt,
                    "quality_score": row.improvement.quality_score,
                    "analysis": row.improvement.analysis,
                    "metadata": row.improvement.improvements_metadata,
                    "provider_used": row.improvement.provider_used,
                    "model_used": row.improvement.ai_model_used,
                    "processing_time_seconds": row.improvement.processing_time_seconds,
                }
        return Task(
            id=row.id,
            status=TaskStatus(row.status),
            outcome=row.outcome,
            progress=row.progress or 0,
            original_prompt=row.original_prompt,
            context=row.context,
            target_audience=row.target_audience,
            provider=row.provider,
            model=row.ai_model,
            max_rounds=row.max_rounds,
            error_kind=row.error_kind,
            error_message=row.error_message,
            session=session_data,
            improvement=improvement_data,
            created_at=row.created_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )


class TaskPersistence:
    """Persistence hook binding one orchestration run to its task rows."""

    def __init__(self, store: PostgresStore, request: ImprovementRequest):
        self.store = store
        self.request = request
        self.started = time.monotonic()

    async def record_round(self, session: Session, record: RoundRecord) -> None:
        await self.store.save_round(self.request.task_id, session, record)

    async def record_final(self, session: Session, result: OrchestrationResult) -> None:
        duration = time.monotonic() - self.started
        improvement = build_improvement(result, self.request, duration_seconds=duration)
        await self.store.finalize(self.request.task_id, session, result, improvement, duration)


class StoreProgressReporter:
    """Progress sink writing events to the task_events table for the SSE stream."""

    def __init__(self, store: PostgresStore):
        self.store = store

    async def report(self, event: ProgressEvent) -> None:
        await self.store.add_progress(event)


store = PostgresStore()
