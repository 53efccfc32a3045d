"""Database models for the prompt improvement API.

This module defines SQLAlchemy ORM models for prompt tasks, their
multi-agent sessions, the stored improvement and progress events.
"""

from uuid import uuid4

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship


Base = declarative_base()


class PromptTask(Base):
    """A prompt submitted for improvement."""

    __tablename__ = "prompt_tasks"

    id = Column(String(), primary_key=True, default=lambda: str(uuid4()))
    original_prompt = Column(Text(), nullable=False)
    context = Column(Text(), nullable=True)
    target_audience = Column(String(500), nullable=True)
    provider = Column(String(50), nullable=False)
    ai_model = Column(String(255), nullable=True)
    max_rounds = Column(Integer(), nullable=False)
    status = Column(String(20), nullable=False, server_default="queued")
    outcome = Column(String(20), nullable=True)  # approved / exhausted / failed / cancelled
    progress = Column(Integer(), nullable=False, server_default="0")
    error_kind = Column(String(50), nullable=True)
    error_message = Column(Text(), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    session = relationship("MultiAgentSession", back_populates="task", uselist=False, cascade="all, delete-orphan")
    improvement = relationship("PromptImprovement", back_populates="task", uselist=False, cascade="all, delete-orphan")
    events = relationship("TaskEvent", back_populates="task", cascade="all, delete-orphan", order_by="TaskEvent.id")


class MultiAgentSession(Base):
    """Round history of a task's orchestration run."""

    __tablename__ = "multi_agent_sessions"

    id = Column(Integer(), primary_key=True, autoincrement=True)
    task_id = Column(String(), ForeignKey("prompt_tasks.id", ondelete="CASCADE"), nullable=False, unique=True)
    current_round = Column(Integer(), nullable=False, server_default="0")
    rounds_completed = Column(Integer(), nullable=False, server_default="0")
    rounds = Column(JSONB(astext_type=Text()), nullable=False, server_default="[]")
    final_decision = Column(String(20), nullable=False, server_default="unset")
    session_metadata = Column(JSONB(astext_type=Text()), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    task = relationship("PromptTask", back_populates="session")


class PromptImprovement(Base):
    """Final improved prompt and its analysis."""

    __tablename__ = "prompt_improvements"

    id = Column(Integer(), primary_key=True, autoincrement=True)
    task_id = Column(String(), ForeignKey("prompt_tasks.id", ondelete="CASCADE"), nullable=False, unique=True)
    improved_prompt = Column(Text(), nullable=False)
    analysis = Column(JSONB(astext_type=Text()), nullable=True)
    improvements_metadata = Column(JSONB(astext_type=Text()), nullable=True)
    provider_used = Column(String(50), nullable=True)
    ai_model_used = Column(String(255), nullable=True)
    quality_score = Column(Integer(), nullable=True)
    processing_time_seconds = Column(Float(), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    task = relationship("PromptTask", back_populates="improvement")


class TaskEvent(Base):
    """Progress event emitted while a task runs."""

    __tablename__ = "task_events"

    id = Column(Integer(), primary_key=True, autoincrement=True)
    task_id = Column(String(), ForeignKey("prompt_tasks.id", ondelete="CASCADE"), nullable=False)
    ts = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    type = Column(String(), nullable=False)
    progress = Column(Integer(), nullable=False, server_default="0")
    payload = Column(JSONB(astext_type=Text()), nullable=False)
    message = Column(Text(), nullable=True)

    task = relationship("PromptTask", back_populates="events")
