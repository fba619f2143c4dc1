"""Provide the git helpers used to commit each completed plan task."""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from .constants import DEFAULT_COMMIT_TAG, GITIGNORE_ENTRIES

_BOLD_HEADING_RE = re.compile(r"^\*\*(.+?)\*\*(.*)$", re.S)
_TITLE_SEPARATOR = " - "


@dataclass(frozen=True)
class CommitResult:
    """Outcome of a per-task commit attempt."""

    success: bool
    message: str
    skipped: bool = False


def format_commit_message(
    task_title: str,
    task_num: int,
    tag: str = DEFAULT_COMMIT_TAG,
) -> tuple[str, Optional[str]]:
    """Split a task title into a commit subject and optional body.

    A leading bold heading (`**Heading** rest`) or a dash-separated trailing
    clause (`Heading - rest`) moves the rest into the body.

    Args:
        task_title: Title as parsed from the plan.
        task_num: 1-based task ordinal.
        tag: Subject prefix.

    Returns:
        `(subject, body)`; `body` is None when there is nothing after the heading.
    """
    title = task_title.strip()
    match = _BOLD_HEADING_RE.match(title)
    if match:
        heading = match.group(1).strip()
        rest = match.group(2).strip().lstrip("-:").strip()
    else:
        clean = title.replace("**", "").strip()
        heading, _, rest = clean.partition(_TITLE_SEPARATOR)
        heading = heading.strip()
        rest = rest.strip()
    subject = f"{tag}: task {task_num} - {heading}"
    return subject, rest or None


def _run_git(project_dir: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        ["git", *args],
        cwd=project_dir,
        capture_output=True,
        text=True,
        check=False,
    )


def _git_is_repo(project_dir: Path) -> bool:
    try:
        result = _run_git(project_dir, "rev-parse", "--is-inside-work-tree")
    except OSError:
        return False
    return result.returncode == 0 and result.stdout.strip().lower() == "true"


def _git_has_changes(project_dir: Path) -> bool:
    result = _run_git(project_dir, "status", "--porcelain")
    return result.returncode == 0 and bool(result.stdout.strip())


def _git_has_staged_changes(project_dir: Path) -> bool:
    result = _run_git(project_dir, "diff", "--cached", "--quiet")
    return result.returncode == 1


def _ignore_file_has_entry(path: Path, ignore_entry: str) -> bool:
    if not path.exists():
        return False
    try:
        contents = path.read_text()
    except OSError:
        return False
    lines = {
        line.strip()
        for line in contents.splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    }
    return ignore_entry.strip() in lines


def _append_ignore_entry(path: Path, ignore_entry: str) -> None:
    contents = ""
    if path.exists():
        contents = path.read_text()
    if contents and not contents.endswith("\n"):
        contents += "\n"
    contents += ignore_entry + "\n"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents)


def _ensure_gitignore(project_dir: Path) -> None:
    gitignore_path = project_dir / ".gitignore"
    try:
        for ignore_entry in GITIGNORE_ENTRIES:
            if _ignore_file_has_entry(gitignore_path, ignore_entry):
                continue
            _append_ignore_entry(gitignore_path, ignore_entry)
    except OSError as exc:
        logger.warning("Unable to update .gitignore: {}", exc)


def create_task_commit(
    project_dir: Path,
    task_title: str,
    task_num: int,
    tag: str = DEFAULT_COMMIT_TAG,
) -> CommitResult:
    """Stage every working-tree change and commit it for one task.

    Never raises. A repository without changes yields a skipped result.
    """
    if not _git_is_repo(project_dir):
        return CommitResult(False, "Not a git repository")

    _ensure_gitignore(project_dir)
    if not _git_has_changes(project_dir):
        return CommitResult(False, "No changes to commit", skipped=True)

    added = _run_git(project_dir, "add", "-A", "--", ".")
    if added.returncode != 0:
        return CommitResult(False, f"Failed to stage changes: {added.stderr.strip()}")
    if not _git_has_staged_changes(project_dir):
        return CommitResult(False, "No changes to commit", skipped=True)

    subject, body = format_commit_message(task_title, task_num, tag)
    args = ["commit", "-m", subject]
    if body:
        args.extend(["-m", body])
    committed = _run_git(project_dir, *args)
    if committed.returncode != 0:
        detail = committed.stderr.strip() or committed.stdout.strip()
        return CommitResult(False, f"Failed to commit: {detail}")
    return CommitResult(True, f"Created commit: {subject}")
