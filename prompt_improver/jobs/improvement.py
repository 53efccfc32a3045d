"""Background job running one improvement per task."""

import asyncio
import logging
from typing import Dict, Optional

from ..errors import PersistenceError
from ..models import TaskStatus
from ..storage import PostgresStore, StoreProgressReporter, TaskPersistence, store
from ..workflows.orchestrator import CollaborationOrchestrator, ImprovementRequest, RunStatus
from ..workflows.progress import CompositeProgressReporter, LoggingProgressReporter


logger = logging.getLogger(__name__)


# task_id -> cancellation signal for runs in this process
active_runs: Dict[str, asyncio.Event] = {}


def request_cancel(task_id: str) -> bool:
    """Signal a running task to stop at its next round boundary."""
    event = active_runs.get(task_id)
    if event is None:
        return False
    event.set()
    logger.info(f"Task {task_id}: cancellation requested")
    return True


async def run_improvement(
    request: ImprovementRequest,
    task_store: Optional[PostgresStore] = None,
    orchestrator: Optional[CollaborationOrchestrator] = None,
) -> None:
    """
    Drive one orchestration run for a stored task.

    Never raises: unexpected errors mark the task failed.
    """
    task_store = task_store or store
    orchestrator = orchestrator or CollaborationOrchestrator()
    task_id = request.task_id
    cancel_event = active_runs.setdefault(task_id, asyncio.Event())

    try:
        status = await task_store.get_status(task_id)
        if status is None:
            logger.warning(f"Task {task_id}: not found, skipping")
            return
        if status != TaskStatus.queued or not await task_store.mark_running(task_id):
            # Cancelled or picked up elsewhere since it was queued
            logger.info(f"Task {task_id}: no longer queued, skipping")
            return
        reporter = CompositeProgressReporter(LoggingProgressReporter(), StoreProgressReporter(task_store))
        result = await orchestrator.run(
            request,
            reporter=reporter,
            persistence=TaskPersistence(task_store, request),
            cancel_event=cancel_event,
        )

        if result.status == RunStatus.failed and result.error_kind == PersistenceError.error_kind:
            # The final write itself may be what failed
            await task_store.fail(task_id, result.error_kind, result.message)

        logger.info(f"Task {task_id}: finished as {result.status.value}")
    except Exception as e:
        logger.error(f"Task {task_id}: improvement job crashed: {e}", exc_info=True)
        try:
            await task_store.fail(task_id, "internal_error", "Unexpected error while improving the prompt")
        except Exception as store_error:
            logger.error(f"Task {task_id}: could not record failure: {store_error}")
    finally:
        active_runs.pop(task_id, None)
