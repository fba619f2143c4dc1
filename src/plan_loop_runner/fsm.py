"""Decide what a loop does next when its session goes idle.

`reduce_loop` is pure. The controller performs the side effects that precede
it (marking the finished task, committing, re-reading the plan, scanning
session messages) and those that follow it (persisting or clearing state,
sending the prompt, notifying).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from .models import (
    IdleEvent,
    LoopMode,
    LoopState,
    NoOp,
    PlanDocument,
    SendPrompt,
    Stop,
    StopReason,
    Transition,
)
from .prompts import build_freeform_prompt, build_task_prompt


def _stay(state: LoopState, reason: str) -> Transition:
    return Transition(state=state, action=NoOp(reason=reason))


def _stop(reason: StopReason, message: str, *, variant: str = "info", notify: bool = True) -> Transition:
    return Transition(state=None, action=Stop(reason=reason, message=message, variant=variant, notify=notify))


def _limit_stop(state: LoopState) -> Transition:
    return _stop(
        StopReason.LIMIT_REACHED,
        f"Loop: Max iterations ({state.max_iterations}) reached.",
        variant="warning",
    )


def _reduce_single_task(state: LoopState) -> Transition:
    return _stop(
        StopReason.SINGLE_TASK_DONE,
        f"Task {state.current_task_ordinal or '?'} finished.",
        variant="success",
    )


def _reduce_plan_loop(state: LoopState, plan: Optional[PlanDocument], session_id: str) -> Transition:
    if plan is None:
        return _stop(
            StopReason.PLAN_UNREADABLE,
            f"Loop: plan file {state.plan_path} could not be read; loop stopped.",
            variant="error",
            notify=False,
        )

    nxt = plan.first_pending()
    if nxt is None:
        return _stop(
            StopReason.COMPLETED,
            f"All {len(plan.tasks)} tasks complete after {state.iteration} iterations!",
            variant="success",
        )

    if state.limit_reached():
        return _limit_stop(state)

    ordinal, task = nxt
    advanced = replace(
        state,
        iteration=state.iteration + 1,
        session_id=session_id,
        current_task_id=task.id,
        current_task_ordinal=ordinal,
    )
    text = build_task_prompt(plan, task, ordinal, True, compact=True)
    return Transition(state=advanced, action=SendPrompt(session_id=session_id, text=text))


def _reduce_freeform_loop(state: LoopState, event: IdleEvent, session_id: str) -> Transition:
    if state.completion_phrase and event.promise_fulfilled:
        return _stop(
            StopReason.PROMISE_FULFILLED,
            f"Loop completed after {state.iteration} iterations!",
            variant="success",
        )

    if state.limit_reached():
        return _limit_stop(state)

    advanced = replace(state, iteration=state.iteration + 1, session_id=session_id)
    text = build_freeform_prompt(advanced.iteration, advanced.completion_phrase, advanced.prompt)
    return Transition(state=advanced, action=SendPrompt(session_id=session_id, text=text))


def reduce_loop(
    state: Optional[LoopState],
    plan: Optional[PlanDocument],
    event: IdleEvent,
) -> Transition:
    """Compute the next loop state and the action to perform.

    Args:
        state: Stored loop state, or None when idle.
        plan: Plan re-read after the finished task was marked (plan loops only);
            None when it could not be read.
        event: The idle notification.

    Returns:
        A `Transition`. `state` is None when the loop must be cleared.
    """
    if state is None or not state.active:
        return Transition(state=None, action=NoOp(reason="no active loop"))

    session_id = event.session_id or state.session_id
    if not session_id:
        return _stay(state, "no session id available")

    if state.mode == LoopMode.SINGLE_TASK:
        return _reduce_single_task(state)
    if state.mode == LoopMode.PLAN_LOOP:
        return _reduce_plan_loop(state, plan, session_id)
    return _reduce_freeform_loop(state, event, session_id)
