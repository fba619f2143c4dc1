from __future__ import annotations

import json
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from plan_loop_runner.cli import main


def _project(tmp_path: Path) -> Path:
    plans = tmp_path / ".opencode" / "plans"
    plans.mkdir(parents=True)
    (plans / "PLAN.md").write_text("# CLI Plan\n- [ ] one\n- [ ] two\n")
    (tmp_path / ".opencode" / "plan-loop.yaml").write_text("commit: false\n")
    return tmp_path


def test_plan_listing_commands(tmp_path: Path, capsys) -> None:
    project = str(_project(tmp_path))

    assert main(["--project-dir", project, "plans"]) == 0
    assert "• PLAN (0/2 tasks)" in capsys.readouterr().out

    assert main(["--project-dir", project, "tasks"]) == 0
    assert " 2. [ ] two" in capsys.readouterr().out


def test_plan_save_from_file(tmp_path: Path, capsys) -> None:
    content = tmp_path / "draft.md"
    content.write_text("# Draft\n- [ ] first\n")

    rc = main(["--project-dir", str(tmp_path), "plan", "save", "--name", "Draft", "--content-file", str(content)])

    assert rc == 0
    assert "Saved plan to .opencode/plans/draft.md" in capsys.readouterr().out
    assert (tmp_path / ".opencode" / "plans" / "draft.md").read_text() == "# Draft\n- [ ] first\n"


def test_start_idle_status_cancel(tmp_path: Path, capsys) -> None:
    project = str(_project(tmp_path))

    assert main(["--project-dir", project, "start", "--session-id", "ses-1"]) == 0
    assert "Starting with task 1: one" in capsys.readouterr().out

    assert main(["--project-dir", project, "idle"]) == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["action"] == "SendPrompt"
    assert summary["iteration"] == 2

    assert main(["--project-dir", project, "status"]) == 0
    assert "- Iteration: 2" in capsys.readouterr().out

    assert main(["--project-dir", project, "cancel"]) == 0
    assert "Cancelled loop (was at iteration 2)" in capsys.readouterr().out


def test_freeform_loop_and_check(tmp_path: Path, capsys) -> None:
    project = str(tmp_path)

    assert main(["--project-dir", project, "loop", "Keep going", "--completion-promise", "DONE"]) == 0
    assert "Loop activated!" in capsys.readouterr().out

    assert main(["--project-dir", project, "check", "<promise>DONE</promise>"]) == 0
    assert "Completion promise detected" in capsys.readouterr().out
