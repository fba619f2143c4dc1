"""Errors raised for invalid user requests against plans and loops."""

from __future__ import annotations


class PlanLoopError(Exception):
    """Base class for user-facing plan and loop errors."""

    pass


class PlanNotFoundError(PlanLoopError):
    """The requested plan file does not exist."""

    def __init__(self, plan_file: str, available: list[str] | None = None):
        self.plan_file = plan_file
        self.available = list(available or [])
        super().__init__(f"No plan file found at {plan_file}.")


class PlanExistsError(PlanLoopError):
    """A plan file already exists where a new one would be written."""

    def __init__(self, plan_file: str):
        self.plan_file = plan_file
        super().__init__(f"Plan file already exists at {plan_file}.")


class TaskNotFoundError(PlanLoopError):
    """No task matches the given selector."""

    def __init__(self, selector: str):
        self.selector = selector
        super().__init__(f'Task "{selector}" not found.')


class LoopAlreadyActiveError(PlanLoopError):
    """A loop is already running in this working directory."""

    def __init__(self, iteration: int):
        self.iteration = iteration
        super().__init__(f"A loop is already active (iteration {iteration}). Cancel it first.")


class NoActiveLoopError(PlanLoopError):
    """There is no loop to operate on."""

    def __init__(self) -> None:
        super().__init__("No active loop.")
