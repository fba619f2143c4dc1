"""Define the plan document, persisted loop state and loop transition models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class TaskStatus(str, Enum):
    """Status of a single checkbox task in a plan."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class LoopMode(str, Enum):
    """How the loop continues on each session idle notification."""

    FREEFORM_LOOP = "freeform-loop"
    PLAN_LOOP = "plan-loop"
    SINGLE_TASK = "single-task"


class StopReason(str, Enum):
    """Why a loop reached a terminal transition."""

    COMPLETED = "completed"
    PROMISE_FULFILLED = "promise_fulfilled"
    LIMIT_REACHED = "limit_reached"
    SINGLE_TASK_DONE = "single_task_done"
    PLAN_UNREADABLE = "plan_unreadable"
    ERROR = "error"


@dataclass
class PlanTask:
    """One checkbox item of a plan, anchored to its line in the raw document."""

    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    line_number: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED


@dataclass
class PlanDocument:
    """A parsed plan. `raw_text` is the exact source it was parsed from."""

    title: str = ""
    overview: str = ""
    tasks: list[PlanTask] = field(default_factory=list)
    completion_phrase: Optional[str] = None
    raw_text: str = ""

    @property
    def completed_count(self) -> int:
        return sum(1 for task in self.tasks if task.is_completed)

    @property
    def pending_tasks(self) -> list[PlanTask]:
        return [task for task in self.tasks if not task.is_completed]

    def first_pending(self) -> Optional[tuple[int, PlanTask]]:
        """Return `(ordinal, task)` for the first non-completed task in document order."""
        for index, task in enumerate(self.tasks):
            if not task.is_completed:
                return index + 1, task
        return None

    def task_by_id(self, task_id: Optional[str]) -> Optional[tuple[int, PlanTask]]:
        if not task_id:
            return None
        for index, task in enumerate(self.tasks):
            if task.id == task_id:
                return index + 1, task
        return None


@dataclass(frozen=True)
class PlanFileInfo:
    """A plan file discovered in the plan directory."""

    name: str
    path: str


@dataclass(frozen=True)
class ProjectTools:
    """Task runners detected in the project root."""

    has_justfile: bool = False
    has_package_json: bool = False
    has_makefile: bool = False


# Keys written by earlier releases of the state file.
_LEGACY_KEYS = {
    "completionPromise": "completionPhrase",
    "planFile": "planPath",
    "currentTaskNum": "currentTaskOrdinal",
}
_LEGACY_MODES = {"loop": LoopMode.PLAN_LOOP.value}


@dataclass
class LoopState:
    """Persisted record of the single active loop for a working directory."""

    active: bool = True
    iteration: int = 1
    max_iterations: int = 0
    completion_phrase: Optional[str] = None
    session_id: Optional[str] = None
    started_at: str = ""
    plan_path: Optional[str] = None
    current_task_id: Optional[str] = None
    current_task_ordinal: Optional[int] = None
    mode: LoopMode = LoopMode.FREEFORM_LOOP
    prompt: str = ""

    @property
    def is_unbounded(self) -> bool:
        return self.max_iterations <= 0

    def limit_reached(self) -> bool:
        return not self.is_unbounded and self.iteration >= self.max_iterations

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the on-disk camelCase field names."""
        return {
            "active": self.active,
            "iteration": self.iteration,
            "maxIterations": self.max_iterations,
            "completionPhrase": self.completion_phrase,
            "sessionId": self.session_id,
            "startedAt": self.started_at,
            "planPath": self.plan_path,
            "currentTaskId": self.current_task_id,
            "currentTaskOrdinal": self.current_task_ordinal,
            "mode": self.mode.value,
            "prompt": self.prompt,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LoopState":
        """Create a `LoopState` from a persisted dictionary.

        Args:
            data: Raw state payload from the state file.

        Returns:
            A `LoopState` instance.

        Raises:
            ValueError: If numeric fields cannot be coerced or the mode is unknown.
        """
        payload = dict(data)
        for old, new in _LEGACY_KEYS.items():
            if old in payload and new not in payload:
                payload[new] = payload[old]

        def _optional_str(key: str) -> Optional[str]:
            value = payload.get(key)
            return str(value) if value not in (None, "") else None

        def _optional_int(key: str) -> Optional[int]:
            value = payload.get(key)
            if value is None:
                return None
            return int(value)

        raw_mode = payload.get("mode")
        if raw_mode is None:
            mode = LoopMode.PLAN_LOOP if payload.get("planPath") else LoopMode.FREEFORM_LOOP
        else:
            mode = LoopMode(_LEGACY_MODES.get(str(raw_mode), str(raw_mode)))

        iteration = int(payload.get("iteration", 1) or 1)
        max_iterations = int(payload.get("maxIterations", 0) or 0)
        return cls(
            active=bool(payload.get("active", False)),
            iteration=max(iteration, 1),
            max_iterations=max(max_iterations, 0),
            completion_phrase=_optional_str("completionPhrase"),
            session_id=_optional_str("sessionId"),
            started_at=str(payload.get("startedAt") or ""),
            plan_path=_optional_str("planPath"),
            current_task_id=_optional_str("currentTaskId"),
            current_task_ordinal=_optional_int("currentTaskOrdinal"),
            mode=mode,
            prompt=str(payload.get("prompt") or ""),
        )


@dataclass(frozen=True)
class IdleEvent:
    """A session-idle notification, enriched by the controller before reduction."""

    session_id: Optional[str] = None
    promise_fulfilled: bool = False


@dataclass(frozen=True)
class SendPrompt:
    """Re-inject `text` into the session."""

    session_id: str
    text: str


@dataclass(frozen=True)
class Stop:
    """End the loop and tell the user why."""

    reason: StopReason
    message: str
    variant: str = "info"
    notify: bool = True


@dataclass(frozen=True)
class NoOp:
    """Leave everything as it is."""

    reason: str


Action = Union[SendPrompt, Stop, NoOp]


@dataclass(frozen=True)
class Transition:
    """Result of one loop reduction. `state` is None when the loop must be cleared."""

    state: Optional[LoopState]
    action: Action
