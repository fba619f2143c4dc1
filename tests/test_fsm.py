"""Test the pure loop transition function."""

from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from plan_loop_runner.fsm import reduce_loop
from plan_loop_runner.models import (
    IdleEvent,
    LoopMode,
    LoopState,
    NoOp,
    SendPrompt,
    Stop,
    StopReason,
)
from plan_loop_runner.plan import parse_plan

PLAN_TEXT = "# P\n- [x] one\n- [ ] two\n- [ ] three\n"


def _plan_state(**overrides) -> LoopState:
    state = LoopState(
        iteration=1,
        max_iterations=0,
        session_id="ses-1",
        started_at="2026-01-01T00:00:00+00:00",
        plan_path=".opencode/plans/PLAN.md",
        current_task_id="task-1",
        current_task_ordinal=1,
        mode=LoopMode.PLAN_LOOP,
    )
    return replace(state, **overrides)


def _freeform_state(**overrides) -> LoopState:
    state = LoopState(
        iteration=1,
        max_iterations=3,
        completion_phrase="DONE",
        session_id="ses-1",
        mode=LoopMode.FREEFORM_LOOP,
        prompt="Improve the tests.",
    )
    return replace(state, **overrides)


def test_no_state_is_a_no_op() -> None:
    transition = reduce_loop(None, None, IdleEvent(session_id="ses-1"))

    assert transition.state is None
    assert isinstance(transition.action, NoOp)


def test_inactive_state_is_a_no_op() -> None:
    transition = reduce_loop(_plan_state(active=False), parse_plan(PLAN_TEXT), IdleEvent())

    assert isinstance(transition.action, NoOp)


def test_missing_session_id_keeps_the_state() -> None:
    state = _plan_state(session_id=None)

    transition = reduce_loop(state, parse_plan(PLAN_TEXT), IdleEvent())

    assert transition.state is state
    assert transition.action == NoOp(reason="no session id available")


def test_plan_loop_advances_to_first_pending_task() -> None:
    transition = reduce_loop(_plan_state(), parse_plan(PLAN_TEXT), IdleEvent(session_id="ses-2"))

    assert isinstance(transition.action, SendPrompt)
    assert transition.action.session_id == "ses-2"
    assert transition.action.text.startswith("## Task 2/3 (1 done)")
    assert transition.state.iteration == 2
    assert transition.state.current_task_id == "task-2"
    assert transition.state.current_task_ordinal == 2
    assert transition.state.session_id == "ses-2"


def test_plan_loop_falls_back_to_stored_session_id() -> None:
    transition = reduce_loop(_plan_state(), parse_plan(PLAN_TEXT), IdleEvent())

    assert transition.action.session_id == "ses-1"


def test_plan_loop_completes_when_nothing_is_pending() -> None:
    plan = parse_plan("- [x] one\n- [x] two\n")

    transition = reduce_loop(_plan_state(iteration=2), plan, IdleEvent(session_id="ses-1"))

    assert transition.state is None
    assert transition.action == Stop(
        reason=StopReason.COMPLETED,
        message="All 2 tasks complete after 2 iterations!",
        variant="success",
    )


def test_completion_wins_over_the_iteration_limit() -> None:
    plan = parse_plan("- [x] one\n")

    transition = reduce_loop(_plan_state(max_iterations=1), plan, IdleEvent(session_id="ses-1"))

    assert transition.action.reason == StopReason.COMPLETED


def test_plan_loop_stops_at_the_limit() -> None:
    transition = reduce_loop(_plan_state(max_iterations=1), parse_plan(PLAN_TEXT), IdleEvent(session_id="ses-1"))

    assert transition.state is None
    assert transition.action.reason == StopReason.LIMIT_REACHED
    assert transition.action.message == "Loop: Max iterations (1) reached."
    assert transition.action.variant == "warning"


def test_plan_loop_unreadable_plan_stops_silently() -> None:
    transition = reduce_loop(_plan_state(), None, IdleEvent(session_id="ses-1"))

    assert transition.state is None
    assert transition.action.reason == StopReason.PLAN_UNREADABLE
    assert transition.action.notify is False


def test_single_task_always_stops() -> None:
    state = _plan_state(mode=LoopMode.SINGLE_TASK, max_iterations=1, current_task_ordinal=3)

    transition = reduce_loop(state, None, IdleEvent(session_id="ses-1"))

    assert transition.state is None
    assert transition.action.reason == StopReason.SINGLE_TASK_DONE


def test_freeform_loop_resends_the_prompt() -> None:
    transition = reduce_loop(_freeform_state(), None, IdleEvent(session_id="ses-1"))

    assert transition.state.iteration == 2
    assert transition.action.text.startswith("Loop iteration 2 | To stop: output <promise>DONE</promise>")
    assert transition.action.text.endswith("\n\n---\n\nImprove the tests.")


def test_freeform_loop_stops_on_promise() -> None:
    transition = reduce_loop(_freeform_state(iteration=2), None, IdleEvent(session_id="ses-1", promise_fulfilled=True))

    assert transition.state is None
    assert transition.action.reason == StopReason.PROMISE_FULFILLED
    assert transition.action.message == "Loop completed after 2 iterations!"


def test_freeform_promise_is_ignored_without_a_phrase() -> None:
    state = _freeform_state(completion_phrase=None, max_iterations=0)

    transition = reduce_loop(state, None, IdleEvent(session_id="ses-1", promise_fulfilled=True))

    assert isinstance(transition.action, SendPrompt)
    assert "No completion promise set" in transition.action.text


def test_freeform_loop_stops_at_the_limit() -> None:
    transition = reduce_loop(_freeform_state(iteration=3), None, IdleEvent(session_id="ses-1"))

    assert transition.action.reason == StopReason.LIMIT_REACHED


def test_reduce_does_not_mutate_its_input() -> None:
    state = _plan_state()

    reduce_loop(state, parse_plan(PLAN_TEXT), IdleEvent(session_id="ses-9"))

    assert state.iteration == 1
    assert state.session_id == "ses-1"
