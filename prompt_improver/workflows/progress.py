"""
Progress reporting for orchestration runs.

The orchestrator emits ProgressEvents through a ProgressEmitter, which
keeps the percentage non-decreasing and shields the run from sink errors.
Sinks implement ``report(event)``, synchronously or as a coroutine.
"""

import inspect
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ProgressKind(str, Enum):
    started = "started"
    step = "step"
    round_complete = "round_complete"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class ProgressEvent(BaseModel):
    run_id: str
    kind: ProgressKind
    progress: int = Field(ge=0, le=100)
    message: str = ""
    round: Optional[int] = None
    role: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class ProgressReporter(Protocol):
    def report(self, event: ProgressEvent) -> Any:
        ...


def round_percentage(current_round: int, max_rounds: int) -> int:
    """Share of the round budget used, as an integer percentage capped at 100."""
    if max_rounds <= 0:
        return 100
    return min(100, round(current_round / max_rounds * 100))


async def safe_report(reporter: Optional[ProgressReporter], event: ProgressEvent) -> None:
    """Deliver an event, logging and dropping any sink failure."""
    if reporter is None:
        return
    try:
        outcome = reporter.report(event)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception as e:
        logger.warning(f"Progress reporter {type(reporter).__name__} failed on {event.kind.value}: {e}")


class ProgressEmitter:
    """Builds events for one run and forwards them to a reporter."""

    def __init__(self, run_id: str, reporter: Optional[ProgressReporter]):
        self.run_id = run_id
        self.reporter = reporter
        self.last_progress = 0

    async def emit(
        self,
        kind: ProgressKind,
        message: str,
        progress: Optional[int] = None,
        round_number: Optional[int] = None,
        role: Optional[str] = None,
    ) -> ProgressEvent:
        if kind == ProgressKind.completed:
            progress = 100
        elif progress is None:
            progress = self.last_progress
        # Never go backwards
        progress = max(self.last_progress, min(100, progress))
        self.last_progress = progress

        event = ProgressEvent(
            run_id=self.run_id,
            kind=kind,
            progress=progress,
            message=message,
            round=round_number,
            role=role,
        )
        await safe_report(self.reporter, event)
        return event


class LoggingProgressReporter:
    """Writes every event to the log."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def report(self, event: ProgressEvent) -> None:
        self.log.info(f"[{event.run_id}] {event.kind.value} {event.progress}%: {event.message}")


class CollectingProgressReporter:
    """Keeps events in memory."""

    def __init__(self):
        self.events: List[ProgressEvent] = []

    def report(self, event: ProgressEvent) -> None:
        self.events.append(event)

    @property
    def percentages(self) -> List[int]:
        return [e.progress for e in self.events]

    @property
    def kinds(self) -> List[ProgressKind]:
        return [e.kind for e in self.events]


class CompositeProgressReporter:
    """Fans one event out to several sinks; one failing sink does not starve the rest."""

    def __init__(self, *reporters: ProgressReporter):
        self.reporters = [r for r in reporters if r is not None]

    async def report(self, event: ProgressEvent) -> None:
        for reporter in self.reporters:
            await safe_report(reporter, event)
