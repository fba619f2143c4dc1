"""Parse, mutate, render and locate markdown plan files.

A plan is a loosely structured markdown document::

    # Title
    completion_promise: ALL_DONE

    ## Overview
    Free text handed to the agent as context.

    ## Tasks
    - [ ] **First task**
      Indented lines become the task description.
    - [x] Second task

Parsing is a single top-to-bottom scan that classifies each line. Anything the
grammar does not recognise is left alone, and tasks remember the line they were
found on, so a status change can be written back by touching exactly one line.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from loguru import logger

from .constants import DEFAULT_PLAN_DIR
from .io_utils import _atomic_write_text, _read_text
from .models import PlanDocument, PlanFileInfo, PlanTask, TaskStatus
from .utils import slugify

_TITLE_RE = re.compile(r"^#\s+(.+)")
_PROMISE_RE = re.compile(r"completion[_-]?promise:\s*[\"']?([^\"'\n]+)[\"']?", re.IGNORECASE)
_OVERVIEW_RE = re.compile(r"^##\s+Overview\s*$", re.IGNORECASE)
_TASKS_RE = re.compile(r"^##\s+Tasks\s*$", re.IGNORECASE)
_TASK_RE = re.compile(r"^(?:\d+\.\s+)?-?\s*\[([ xX])\]\s*(?:\*\*)?(.+?)(?:\*\*)?$")
_DESCRIPTION_RE = re.compile(r"^\s{2,}\S")
_CHECKBOX_RE = re.compile(r"^((?:\d+\.\s+)?-?\s*)\[([ xX])\]")
_COMMENT_CLOSE = "-->"

PLAN_TEMPLATE = """# Project Plan

<!-- Optional: set a completion promise -->
<!-- completion_promise: ALL_TASKS_COMPLETE -->

## Overview

Describe your project goals and context here. This section helps the agent
understand the bigger picture and make better decisions.

## Tasks

- [ ] **Task 1: Setup and Configuration**
  Initialize the project structure and configure dependencies.

- [ ] **Task 2: Implement Core Feature**
  Describe what needs to be built.
  List acceptance criteria if helpful.

- [ ] **Task 3: Add Tests**
  Write tests for the implemented features.

- [ ] **Task 4: Documentation**
  Update README and add inline documentation.

## Completion

When all tasks are complete and verified, output:
<promise>ALL_TASKS_COMPLETE</promise>
"""


def _clean_phrase(raw: str) -> str:
    phrase = raw.strip()
    # Declarations often live inside an HTML comment.
    if phrase.endswith(_COMMENT_CLOSE):
        phrase = phrase[: -len(_COMMENT_CLOSE)].strip()
    return phrase.strip("\"'").strip()


def parse_plan(raw_text: str) -> PlanDocument:
    """Parse markdown plan text into a `PlanDocument`.

    Never raises: anything unrecognised is skipped and missing parts default to
    empty values.

    Args:
        raw_text: Full plan file content.

    Returns:
        The parsed document, holding `raw_text` unchanged.
    """
    tasks: list[PlanTask] = []
    title = ""
    overview_lines: list[str] = []
    completion_phrase: Optional[str] = None
    in_overview = False
    current: Optional[PlanTask] = None
    description: list[str] = []

    def _flush() -> None:
        if current is not None:
            current.description = "\n".join(description).strip()
            tasks.append(current)

    for index, raw_line in enumerate(raw_text.split("\n")):
        line = raw_line.rstrip("\r")
        line_number = index + 1

        if not title:
            title_match = _TITLE_RE.match(line)
            if title_match:
                title = title_match.group(1).strip()
                continue

        promise_match = _PROMISE_RE.search(line)
        if promise_match:
            phrase = _clean_phrase(promise_match.group(1))
            if phrase:
                completion_phrase = phrase
            continue

        if _OVERVIEW_RE.match(line):
            in_overview = True
            continue
        if _TASKS_RE.match(line):
            in_overview = False
            continue

        task_match = _TASK_RE.match(line)
        if task_match:
            _flush()
            current = PlanTask(
                id=f"task-{len(tasks) + 1}",
                title=task_match.group(2).strip(),
                status=TaskStatus.COMPLETED if task_match.group(1).lower() == "x" else TaskStatus.PENDING,
                line_number=line_number,
            )
            description = []
            continue

        if in_overview:
            if line.strip():
                overview_lines.append(line)
            continue

        if current is not None and _DESCRIPTION_RE.match(line):
            description.append(line.strip())

    _flush()

    return PlanDocument(
        title=title,
        overview="\n".join(overview_lines),
        tasks=tasks,
        completion_phrase=completion_phrase,
        raw_text=raw_text,
    )


def set_task_status(
    raw_text: str,
    task_id: str,
    tasks: list[PlanTask],
    new_status: TaskStatus,
) -> str:
    """Rewrite the checkbox of one task and leave every other byte alone.

    Args:
        raw_text: Plan text the tasks were parsed from.
        task_id: Id of the task to change.
        tasks: Tasks parsed from `raw_text`.
        new_status: Either `completed` or `pending`.

    Returns:
        The updated text, or `raw_text` unchanged when the task is unknown.

    Raises:
        ValueError: If `new_status` is neither completed nor pending.
    """
    new_status = TaskStatus(new_status)
    if new_status not in (TaskStatus.COMPLETED, TaskStatus.PENDING):
        raise ValueError(f"Cannot write status {new_status.value!r} to a checkbox")

    task = next((t for t in tasks if t.id == task_id), None)
    if task is None:
        return raw_text

    lines = raw_text.split("\n")
    index = task.line_number - 1
    if index < 0 or index >= len(lines):
        return raw_text

    match = _CHECKBOX_RE.match(lines[index])
    if match is None:
        return raw_text
    completed = new_status == TaskStatus.COMPLETED
    if (match.group(2) != " ") == completed:
        return raw_text
    mark = "x" if completed else " "
    lines[index] = f"{match.group(1)}[{mark}]{lines[index][match.end():]}"
    return "\n".join(lines)


def render_plan(plan: PlanDocument) -> str:
    """Serialize a document back to the canonical plan markdown layout."""
    parts: list[str] = [f"# {plan.title or 'Project Plan'}", ""]
    if plan.completion_phrase:
        parts.extend([f"completion_promise: {plan.completion_phrase}", ""])
    if plan.overview:
        parts.extend(["## Overview", "", plan.overview, ""])
    parts.extend(["## Tasks", ""])
    for task in plan.tasks:
        checkbox = "[x]" if task.is_completed else "[ ]"
        parts.append(f"- {checkbox} **{task.title}**")
        for line in task.description.splitlines():
            if line.strip():
                parts.append(f"  {line.strip()}")
    parts.append("")
    return "\n".join(parts)


def select_task(plan: PlanDocument, selector: str) -> Optional[tuple[int, PlanTask]]:
    """Find a task by 1-based ordinal or by case-insensitive title substring.

    An in-range integer selector always wins over a title match.
    """
    selector = (selector or "").strip()
    if not selector:
        return None
    try:
        ordinal = int(selector)
    except ValueError:
        ordinal = None
    if ordinal is not None and 1 <= ordinal <= len(plan.tasks):
        return ordinal, plan.tasks[ordinal - 1]

    needle = selector.lower()
    for index, task in enumerate(plan.tasks):
        if needle in task.title.lower():
            return index + 1, task
    return None


def resolve_plan_file(name: str, plan_dir: str = DEFAULT_PLAN_DIR) -> str:
    """Map a plan name to its path; explicit paths are returned unchanged."""
    if "/" in name or name.endswith(".md"):
        return name
    return f"{plan_dir}/{slugify(name)}.md"


def plan_path(project_dir: Path, plan_file: str) -> Path:
    path = Path(plan_file)
    return path if path.is_absolute() else project_dir / path


def read_plan_file(project_dir: Path, plan_file: str) -> Optional[str]:
    """Return the plan text, or None when the file is missing or unreadable."""
    path = plan_path(project_dir, plan_file)
    if not path.is_file():
        return None
    content = _read_text(path)
    if content is None:
        logger.warning("Unable to read plan file {}", path)
    return content


def write_plan_file(project_dir: Path, plan_file: str, content: str) -> None:
    _atomic_write_text(plan_path(project_dir, plan_file), content)


def load_plan(project_dir: Path, plan_file: str) -> Optional[PlanDocument]:
    content = read_plan_file(project_dir, plan_file)
    if content is None:
        return None
    return parse_plan(content)


def list_plan_files(project_dir: Path, plan_dir: str = DEFAULT_PLAN_DIR) -> list[PlanFileInfo]:
    """List markdown plans in the plan directory, sorted by name."""
    directory = plan_path(project_dir, plan_dir)
    if not directory.is_dir():
        return []
    plans = [
        PlanFileInfo(name=path.stem, path=f"{plan_dir}/{path.name}")
        for path in directory.glob("*.md")
        if path.is_file()
    ]
    return sorted(plans, key=lambda info: info.name)
