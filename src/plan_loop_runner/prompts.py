"""Build the text prompts handed to the agent session for plan tasks and loops."""

from __future__ import annotations

from typing import Optional

from .models import PlanDocument, PlanTask, ProjectTools

NO_DESCRIPTION = "No description."
_BANNER_RULE = "═" * 59


def format_project_tools_compact(tools: Optional[ProjectTools]) -> str:
    if tools is None:
        return ""
    names: list[str] = []
    if tools.has_justfile:
        names.append("just")
    if tools.has_package_json:
        names.append("npm/bun")
    if tools.has_makefile:
        names.append("make")
    if not names:
        return ""
    return f"**Tools**: {', '.join(names)} available. Run `just` or check package.json for commands."


def build_task_prompt(
    plan: PlanDocument,
    task: PlanTask,
    task_num: int,
    loop_mode: bool,
    *,
    compact: bool = False,
    project_tools: Optional[ProjectTools] = None,
) -> str:
    """Render the prompt for one plan task.

    The full form carries plan context and the whole task list and is used for
    the first iteration. The compact form is used for later iterations, where the
    session already holds that context.

    Args:
        plan: Parsed plan the task belongs to.
        task: Task to work on.
        task_num: 1-based ordinal of `task`.
        loop_mode: Whether the task runs inside a plan loop (auto-commit).
        compact: Render the short form.
        project_tools: Detected task runners, shown in the full form only.

    Returns:
        Prompt text.
    """
    completed = plan.completed_count
    total = len(plan.tasks)

    if compact:
        return (
            f"## Task {task_num}/{total} ({completed} done)\n\n"
            f"**{task.title}**\n\n"
            f"{task.description or NO_DESCRIPTION}\n\n"
            "Complete this task, then the loop continues."
        )

    lines: list[str] = [f"# {plan.title or 'Project Plan'}", ""]
    if plan.overview:
        lines.extend([f"## Context\n{plan.overview}", ""])

    tools_line = format_project_tools_compact(project_tools)
    if tools_line:
        lines.extend([tools_line, ""])

    lines.extend([f"## Progress: {completed}/{total}", ""])
    for index, item in enumerate(plan.tasks):
        if item.is_completed:
            marker = "✓"
        elif index == task_num - 1:
            marker = "→"
        else:
            marker = " "
        lines.append(f"{marker} {index + 1}. {item.title}")

    lines.extend(["", f"## Current: Task {task_num}", "", f"**{task.title}**", ""])
    lines.extend([task.description or NO_DESCRIPTION, ""])
    if loop_mode:
        lines.append("Complete thoroughly. Task auto-marks done + commits. Focus on this task only.")
    else:
        lines.append("Complete thoroughly. Task auto-marks done. Commit manually when ready.")
    return "\n".join(lines)


def build_single_task_prompt(
    plan: PlanDocument,
    task: PlanTask,
    plan_file: str,
    project_tools: Optional[ProjectTools] = None,
) -> str:
    tools_line = format_project_tools_compact(project_tools)
    tools_block = f"\n{tools_line}\n" if tools_line else ""
    context_block = f"\n## Project Context\n\n{plan.overview}" if plan.overview else ""
    return f"""# Single Task Execution

**Plan:** {plan.title or plan_file}
{tools_block}
## Current Task

**{task.title}**

{task.description or "No additional description provided."}

## Instructions

1. Complete the task described above
2. When done, verify the work is correct
3. The task will be automatically marked complete when you finish
{context_block}"""


def build_completion_footer(completion_phrase: str, *, all_tasks: bool = False) -> str:
    """Render the boxed reminder of how to signal completion."""
    if all_tasks:
        instruction = f"COMPLETION: Output <promise>{completion_phrase}</promise> when ALL tasks are done"
    else:
        instruction = (
            f"COMPLETION: Output <promise>{completion_phrase}</promise> when truly done.\n"
            "Use exact tags. Statement must be TRUE. Never lie to exit early."
        )
    return f"{_BANNER_RULE}\n{instruction}\n{_BANNER_RULE}"


def build_freeform_banner(iteration: int, completion_phrase: Optional[str]) -> str:
    if completion_phrase:
        return (
            f"Loop iteration {iteration} | To stop: output <promise>{completion_phrase}</promise> "
            "(ONLY when the statement is TRUE)"
        )
    return f"Loop iteration {iteration} | No completion promise set - loop runs until max iterations"


def build_freeform_prompt(iteration: int, completion_phrase: Optional[str], prompt: str) -> str:
    """Prefix the original freeform prompt, verbatim, with the iteration banner."""
    return f"{build_freeform_banner(iteration, completion_phrase)}\n\n---\n\n{prompt}"
