"""Test loop state persistence and its legacy on-disk format."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from plan_loop_runner.models import LoopMode, LoopState
from plan_loop_runner.state import LoopStateStore


def test_write_read_remove(tmp_path: Path) -> None:
    store = LoopStateStore(tmp_path)
    state = LoopState(
        iteration=2,
        max_iterations=5,
        completion_phrase="DONE",
        session_id="ses-1",
        started_at="2026-01-01T00:00:00+00:00",
        plan_path=".opencode/plans/PLAN.md",
        current_task_id="task-2",
        current_task_ordinal=2,
        mode=LoopMode.PLAN_LOOP,
    )

    with store.lock():
        store.write(state)

    assert store.path == tmp_path / ".opencode" / "plan-loop.local.json"
    raw = json.loads(store.path.read_text())
    assert raw["maxIterations"] == 5
    assert raw["currentTaskOrdinal"] == 2
    assert raw["mode"] == "plan-loop"
    assert store.read() == state
    assert store.read_active() == state

    assert store.remove() is True
    assert store.read() is None
    assert store.remove() is False


def test_lock_is_reentrant(tmp_path: Path) -> None:
    store = LoopStateStore(tmp_path, lock_timeout=1)

    with store.lock():
        with store.lock():
            store.write(LoopState(session_id="ses-1"))

    assert store.lock_path.name == "plan-loop.local.json.lock"
    assert store.read().session_id == "ses-1"


def test_corrupt_state_reads_as_idle(tmp_path: Path) -> None:
    store = LoopStateStore(tmp_path)
    store.path.parent.mkdir(parents=True)
    store.path.write_text("{not json")

    assert store.read() is None


def test_invalid_mode_reads_as_idle(tmp_path: Path) -> None:
    store = LoopStateStore(tmp_path)
    store.path.parent.mkdir(parents=True)
    store.path.write_text(json.dumps({"active": True, "mode": "mystery"}))

    assert store.read() is None


def test_inactive_state_is_not_active(tmp_path: Path) -> None:
    store = LoopStateStore(tmp_path)
    store.write(LoopState(active=False))

    assert store.read() is not None
    assert store.read_active() is None


def test_from_dict_accepts_legacy_keys() -> None:
    state = LoopState.from_dict(
        {
            "active": True,
            "iteration": 3,
            "maxIterations": 0,
            "completionPromise": "ALL_DONE",
            "sessionId": "ses-1",
            "startedAt": "2026-01-01T00:00:00Z",
            "planFile": ".opencode/plans/PLAN.md",
            "currentTaskId": "task-3",
            "currentTaskNum": 3,
            "mode": "loop",
        }
    )

    assert state.mode == LoopMode.PLAN_LOOP
    assert state.completion_phrase == "ALL_DONE"
    assert state.plan_path == ".opencode/plans/PLAN.md"
    assert state.current_task_ordinal == 3
    assert state.is_unbounded


@pytest.mark.parametrize(
    ("payload", "mode"),
    [
        ({"active": True, "planPath": "p.md"}, LoopMode.PLAN_LOOP),
        ({"active": True, "prompt": "go"}, LoopMode.FREEFORM_LOOP),
    ],
)
def test_from_dict_infers_missing_mode(payload, mode) -> None:
    assert LoopState.from_dict(payload).mode == mode


def test_limit_reached() -> None:
    assert not LoopState(iteration=10, max_iterations=0).limit_reached()
    assert not LoopState(iteration=1, max_iterations=2).limit_reached()
    assert LoopState(iteration=2, max_iterations=2).limit_reached()
