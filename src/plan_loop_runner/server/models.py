"""Pydantic models for API requests and responses."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class ToolResponse(BaseModel):
    """Text reply of a loop command."""

    output: str


class SessionIdleRequest(BaseModel):
    """Session-idle notification from the host."""

    session_id: Optional[str] = None


class TransitionInfo(BaseModel):
    """Outcome of handling one idle notification."""

    action: str
    active: bool
    detail: dict[str, Any] = Field(default_factory=dict)


class PlanRequest(BaseModel):
    action: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    file: Optional[str] = None
    content: Optional[str] = None


class TaskRequest(BaseModel):
    """Select a task by 1-based number or title substring."""

    task: str
    name: Optional[str] = None
    file: Optional[str] = None
    session_id: Optional[str] = None


class StartLoopRequest(BaseModel):
    name: Optional[str] = None
    file: Optional[str] = None
    max_iterations: Optional[int] = None
    session_id: Optional[str] = None


class FreeformLoopRequest(BaseModel):
    prompt: str
    max_iterations: Optional[int] = None
    completion_phrase: Optional[str] = None
    session_id: Optional[str] = None


class CheckCompletionRequest(BaseModel):
    text: str


class LoopStateInfo(BaseModel):
    """Persisted loop state as stored on disk."""

    active: bool
    mode: str
    iteration: int
    max_iterations: int
    completion_phrase: Optional[str] = None
    session_id: Optional[str] = None
    started_at: Optional[str] = None
    plan_path: Optional[str] = None
    current_task_id: Optional[str] = None
    current_task_ordinal: Optional[int] = None
    prompt: str = ""
