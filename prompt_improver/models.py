from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .core.config import settings


class TaskStatus(str, Enum):
    queued = "queued"
    running = "running"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


TERMINAL_STATUSES = {TaskStatus.completed, TaskStatus.failed, TaskStatus.cancelled}


class TaskCreate(BaseModel):
    prompt: str = Field(..., min_length=10, max_length=10000, description="Prompt to improve")
    context: Optional[str] = Field(default=None, max_length=1000, description="What the prompt is for")
    target_audience: Optional[str] = Field(default=None, max_length=500)
    provider: Optional[str] = Field(default=None, description="openai, anthropic, google, openrouter, vertex, bedrock, azure or mock")
    model: Optional[str] = None
    api_key: Optional[str] = Field(default=None, description="Provider key; used for this task only and never stored")
    max_rounds: int = Field(
        default_factory=lambda: settings.DEFAULT_MAX_ROUNDS,
        ge=1,
        le=settings.MAX_ROUNDS_LIMIT,
    )

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("prompt is blank")
        return v


class Task(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: TaskStatus
    outcome: Optional[str] = None
    progress: int = 0
    original_prompt: str
    context: Optional[str] = None
    target_audience: Optional[str] = None
    provider: str
    model: Optional[str] = None
    max_rounds: int
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    session: Optional[Dict[str, Any]] = None
    improvement: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class TaskList(BaseModel):
    tasks: List[Task]
    total: int


class RecentTask(BaseModel):
    """Short listing entry for the recent-tasks feed."""
    id: str
    status: TaskStatus
    provider: str
    created_at: Optional[datetime] = None
    quality_score: Optional[int] = None
    has_result: bool = False

    @classmethod
    def from_task(cls, task: Task) -> "RecentTask":
        return cls(
            id=task.id,
            status=task.status,
            provider=task.provider,
            created_at=task.created_at,
            quality_score=(task.improvement or {}).get("quality_score"),
            has_result=task.improvement is not None,
        )


class TaskResult(BaseModel):
    """Improvement of a completed task, with its session record."""
    task: Task
    improvement: Dict[str, Any]
    session: Optional[Dict[str, Any]] = None
