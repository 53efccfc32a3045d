"""API endpoints for prompt improvement tasks."""

import asyncio
import json
import logging
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from fastapi.responses import ORJSONResponse, StreamingResponse

from ..jobs.improvement import request_cancel, run_improvement
from ..llm_providers import get_provider_config
from ..models import (
    TERMINAL_STATUSES,
    CancelRequest,
    RecentTask,
    Task,
    TaskCreate,
    TaskList,
    TaskResult,
    TaskStatus,
)
from ..storage import PostgresStore, store
from ..workflows.orchestrator import ImprovementRequest


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])

SSE_POLL_SECONDS = 0.5
RECENT_LIMIT = 10


def get_store() -> PostgresStore:
    return store


def get_job_runner() -> Callable[[ImprovementRequest], Awaitable[None]]:
    return run_improvement


@router.post("", response_model=Task, status_code=status.HTTP_201_CREATED, response_class=ORJSONResponse)
async def create_task(
    req: TaskCreate,
    bg: BackgroundTasks,
    task_store: PostgresStore = Depends(get_store),
    job_runner: Callable[[ImprovementRequest], Awaitable[None]] = Depends(get_job_runner),
):
    """Submit a prompt for multi-agent improvement."""
    provider_config = get_provider_config(req.provider, req.model, req.api_key)
    task = await task_store.create_task(
        req,
        provider=provider_config.provider.value,
        model=provider_config.model_name,
    )
    request = ImprovementRequest(
        task_id=task.id,
        original_prompt=req.prompt,
        context_hint=req.context,
        audience_hint=req.target_audience,
        provider=provider_config,
        max_rounds=req.max_rounds,
    )
    bg.add_task(job_runner, request)
    logger.info(f"Task {task.id}: queued ({provider_config.provider.value}, {req.max_rounds} rounds)")
    return task


@router.get("", response_model=TaskList, response_class=ORJSONResponse)
async def list_tasks(
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    provider: Optional[str] = None,
    task_store: PostgresStore = Depends(get_store),
):
    """List tasks, newest first."""
    tasks = await task_store.list_tasks(limit=limit, status=status_filter, provider=provider)
    return TaskList(tasks=tasks, total=len(tasks))


@router.get("/recent", response_model=List[RecentTask], response_class=ORJSONResponse)
async def recent_tasks(task_store: PostgresStore = Depends(get_store)):
    """The latest tasks with their quality score, if any."""
    tasks = await task_store.list_tasks(limit=RECENT_LIMIT)
    return [RecentTask.from_task(task) for task in tasks]


@router.get("/{task_id}", response_model=Task, response_class=ORJSONResponse)
async def get_task(task_id: str, task_store: PostgresStore = Depends(get_store)):
    """Get a task with its progress, session summary and improvement."""
    task = await task_store.get_task(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.get("/{task_id}/result", response_model=TaskResult, response_class=ORJSONResponse)
async def get_task_result(task_id: str, task_store: PostgresStore = Depends(get_store)):
    """Get the improved prompt. 409 until the task has completed."""
    task = await task_store.get_task(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    if task.status != TaskStatus.completed:
        raise HTTPException(status_code=409, detail=f"Task not completed yet ({task.status.value})")
    if task.improvement is None:
        raise HTTPException(status_code=404, detail="No improvement result found")
    return TaskResult(task=task, improvement=task.improvement, session=task.session)


@router.post("/{task_id}/cancel", status_code=status.HTTP_202_ACCEPTED, response_class=ORJSONResponse)
async def cancel_task(
    task_id: str,
    body: CancelRequest | None = None,
    task_store: PostgresStore = Depends(get_store),
):
    """Cancel a task. A running task stops at its next round boundary."""
    current = await task_store.get_status(task_id)
    if current is None:
        raise HTTPException(status_code=404, detail="Task not found")
    if current in TERMINAL_STATUSES:
        raise HTTPException(status_code=409, detail=f"Task already {current.value}")

    if current == TaskStatus.queued and await task_store.cancel_queued(task_id):
        return {"status": "cancelled", "task_id": task_id, "reason": getattr(body, "reason", None)}

    if not request_cancel(task_id):
        # Running in another process or already finishing
        logger.warning(f"Task {task_id}: no active run in this process to cancel")
    return {"status": "accepted", "task_id": task_id, "reason": getattr(body, "reason", None)}


async def sse_iter(task_store: PostgresStore, task_id: str) -> AsyncIterator[bytes]:
    last_id = 0

    current = await task_store.get_status(task_id)
    if current is None:
        yield b"event: error\n" + b"data: \"Task not found\"\n\n"
        return

    while True:
        events = await task_store.list_events_since(task_id, last_id)
        for ev in events:
            last_id = ev["id"]
            payload = {k: v for k, v in ev.items() if k != "id"}
            data = json.dumps(payload)
            yield f"id: {last_id}\n".encode() + b"event: message\n" + f"data: {data}\n\n".encode()

        current = await task_store.get_status(task_id)
        if current is None:
            yield b"event: error\n" + b"data: \"Task not found\"\n\n"
            return
        if current in TERMINAL_STATUSES and not events:
            yield b"event: end\n" + f"data: \"{current.value}\"\n\n".encode()
            break
        await asyncio.sleep(SSE_POLL_SECONDS)


@router.get("/{task_id}/events")
async def stream_task_events(task_id: str, task_store: PostgresStore = Depends(get_store)):
    """Stream task progress events via SSE."""
    headers = {"Cache-Control": "no-cache", "Connection": "keep-alive"}
    return StreamingResponse(sse_iter(task_store, task_id), media_type="text/event-stream", headers=headers)
