"""Test the text replies of the loop commands."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from plan_loop_runner.commands import LoopCommands
from plan_loop_runner.controller import LoopController
from plan_loop_runner.git_utils import CommitResult
from plan_loop_runner.host import LoggingHost
from plan_loop_runner.plan import PLAN_TEMPLATE

PLAN = """# Feature X
completion_promise: X_DONE

## Overview
Ship feature X.

## Tasks
- [x] **Design**
- [ ] **Build**
  Implement the core module.
- [ ] **Test**
"""


def _no_commit(project_dir: Path, title: str, num: int, tag: str) -> CommitResult:
    return CommitResult(False, "No changes to commit", skipped=True)


@pytest.fixture
def commands(tmp_path: Path) -> LoopCommands:
    controller = LoopController(tmp_path, host=LoggingHost(), committer=_no_commit)
    return LoopCommands(controller)


def _write(project_dir: Path, relative: str, text: str = PLAN) -> Path:
    path = project_dir / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def test_plan_create_points_at_the_slug(commands: LoopCommands) -> None:
    output = commands.plan("create", name="Feature X")

    assert "Target file: .opencode/plans/feature-x.md" in output
    assert "action='save'" in output
    assert output.endswith(PLAN_TEMPLATE)
    assert "- [ ] **Task 1: Setup and Configuration**" in output


def test_plan_create_refuses_existing_file(commands: LoopCommands, tmp_path: Path) -> None:
    _write(tmp_path, ".opencode/plans/feature-x.md")

    assert commands.plan("create", name="Feature X").startswith(
        "Plan file already exists at .opencode/plans/feature-x.md."
    )


def test_plan_save_and_view(commands: LoopCommands, tmp_path: Path) -> None:
    assert "No content provided" in commands.plan("save", name="Feature X", content="  ")

    saved = commands.plan("save", name="Feature X", content=PLAN)
    assert saved.startswith("Saved plan to .opencode/plans/feature-x.md")
    assert (tmp_path / ".opencode/plans/feature-x.md").read_text() == PLAN

    again = commands.plan("save", name="Feature X", content="# other\n")
    assert "already exists" in again
    assert (tmp_path / ".opencode/plans/feature-x.md").read_text() == PLAN

    view = commands.plan("view", name="Feature X")
    assert "📋 Plan: Feature X" in view
    assert "Overview: Ship feature X." in view
    assert "Tasks (1/3 complete):" in view
    assert "  2. ○ Build" in view
    assert "Completion promise: X_DONE" in view


def test_plan_unknown_action(commands: LoopCommands) -> None:
    assert commands.plan("delete").startswith("Unknown action 'delete'")


def test_plans_lists_progress(commands: LoopCommands, tmp_path: Path) -> None:
    assert commands.plans().startswith("No plans found in .opencode/plans/.")

    _write(tmp_path, ".opencode/plans/feature-x.md")
    _write(tmp_path, ".opencode/plans/empty.md", "# Nothing yet\n")

    output = commands.plans()
    assert "• empty (no tasks)" in output
    assert "• feature-x (1/3 tasks)" in output
    assert output.index("empty") < output.index("feature-x")


def test_missing_plan_lists_alternatives(commands: LoopCommands, tmp_path: Path) -> None:
    _write(tmp_path, ".opencode/plans/feature-x.md")

    output = commands.tasks()

    assert output.startswith("No plan file found at .opencode/plans/PLAN.md.")
    assert "Available plans: feature-x" in output


def test_tasks_listing(commands: LoopCommands, tmp_path: Path) -> None:
    _write(tmp_path, ".opencode/plans/PLAN.md")

    output = commands.tasks()

    assert "Progress: 1/3 complete" in output
    assert " 1. [x] Design" in output
    assert " 2. [ ] Build" in output
    assert "       Implement the core module." in output


def test_task_executes_a_single_task(commands: LoopCommands, tmp_path: Path) -> None:
    _write(tmp_path, ".opencode/plans/feature-x.md")
    (tmp_path / "justfile").write_text("test:\n\tpytest\n")

    output = commands.task("test", name="feature-x", session_id="ses-1")

    assert output.startswith("🎯 Executing single task: Test")
    assert "# Single Task Execution" in output
    assert "**Tools**: just available." in output
    assert "ONE-TIME execution" in output
    assert "Mode: single-task" in commands.status()


def test_task_errors_are_text(commands: LoopCommands, tmp_path: Path) -> None:
    _write(tmp_path, ".opencode/plans/PLAN.md")

    assert commands.task("nope") == 'Task "nope" not found.'
    assert "already marked as complete" in commands.task("1")


def test_complete_reports_the_promise_when_all_done(commands: LoopCommands, tmp_path: Path) -> None:
    _write(tmp_path, ".opencode/plans/PLAN.md")

    first = commands.complete("2")
    assert first.startswith("✓ Marked complete: Build")
    assert "Progress: 2/3 tasks complete" in first
    assert "<promise>" not in first

    last = commands.complete("Test")
    assert "All tasks complete!" in last
    assert last.endswith("<promise>X_DONE</promise>")


def test_start_and_status(commands: LoopCommands, tmp_path: Path) -> None:
    _write(tmp_path, ".opencode/plans/PLAN.md")

    output = commands.start(max_iterations=4, session_id="ses-1")

    assert output.startswith("🔄 Loop started from .opencode/plans/PLAN.md!")
    assert "Tasks: 2 pending, 1 complete" in output
    assert "Max iterations: 4" in output
    assert "Starting with task 2: Build" in output
    assert "→ 2. Build" in output
    assert "<promise>X_DONE</promise> when ALL tasks are done" in output

    status = commands.status()
    assert "- Mode: plan-loop" in status
    assert "- Current task: 2 (task-2)" in status

    assert commands.start().startswith("A loop is already active (iteration 1)")
    assert commands.cancel() == "🛑 Cancelled loop (was at iteration 1)"
    assert commands.cancel() == "No active loop found."
    assert commands.status() == "No active loop."


def test_freeform_loop_and_check(commands: LoopCommands) -> None:
    assert "No prompt provided" in commands.loop("")

    output = commands.loop("Fix lint", completion_phrase="CLEAN", session_id="ses-1")
    assert output.startswith("🔄 Loop activated!")
    assert "Max iterations: 2" in output
    assert "Completion promise: CLEAN (ONLY output when TRUE - do not lie!)" in output
    assert "\n\n---\n\nFix lint" in output

    status = commands.status()
    assert "Prompt:\nFix lint" in status

    miss = commands.check("<promise>DIRTY</promise>")
    assert "NOT detected" in miss
    assert "Found: <promise>DIRTY</promise>" in miss

    hit = commands.check("<promise>CLEAN</promise>")
    assert hit.startswith("✅ Completion promise detected")
    assert commands.check("anything") == "No active loop."


def test_freeform_loop_without_promise(commands: LoopCommands) -> None:
    output = commands.loop("Explore", max_iterations=0)

    assert "Max iterations: unlimited" in output
    assert "none (loop will stop at max iterations)" in output
    assert commands.check("<promise>x</promise>") == "No completion promise set for this loop."
