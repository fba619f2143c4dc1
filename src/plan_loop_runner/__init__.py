"""Provide the public `plan_loop_runner` package exports."""

from __future__ import annotations

from .commands import LoopCommands
from .controller import LoopController
from .fsm import reduce_loop
from .plan import parse_plan, set_task_status
from .promise import extract_promise_text

__all__ = ["LoopCommands", "LoopController", "extract_promise_text", "parse_plan", "reduce_loop", "set_task_status"]
