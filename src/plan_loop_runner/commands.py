"""Render loop operations as the plain-text replies a host shows to the agent.

Each method mirrors one tool exposed to the session host. User mistakes come
back as descriptive text, never as exceptions.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .config import LoopSettings
from .constants import DESCRIPTION_PREVIEW_CHARS, OVERVIEW_PREVIEW_CHARS
from .controller import LoopController
from .errors import LoopAlreadyActiveError, NoActiveLoopError, PlanExistsError, PlanLoopError, PlanNotFoundError
from .host import SessionHost
from .models import LoopMode, LoopState
from .plan import PLAN_TEMPLATE, list_plan_files, parse_plan, read_plan_file, write_plan_file
from .prompts import build_completion_footer, build_single_task_prompt, build_task_prompt
from .utils import detect_project_tools, slugify

PLAN_ACTIONS = ("create", "view", "save")


def _limit_label(max_iterations: int) -> str:
    return str(max_iterations) if max_iterations > 0 else "unlimited"


class LoopCommands:
    """Tool-style command surface over a `LoopController`."""

    def __init__(self, controller: LoopController):
        self.controller = controller

    @classmethod
    def for_project(
        cls,
        project_dir: Path,
        host: Optional[SessionHost] = None,
        settings: Optional[LoopSettings] = None,
    ) -> "LoopCommands":
        return cls(LoopController(project_dir, host=host, settings=settings))

    @property
    def project_dir(self) -> Path:
        return self.controller.project_dir

    @property
    def plan_dir(self) -> str:
        return self.controller.settings.plan_dir

    def _plan_not_found(self, plan_file: str) -> str:
        available = [info.name for info in list_plan_files(self.project_dir, self.plan_dir)]
        message = f"No plan file found at {plan_file}."
        if available:
            message += f"\n\nAvailable plans: {', '.join(available)}"
            message += "\n\nUse one of these with the 'name' parameter, or create a new plan with the plan tool."
        else:
            message += f"\n\nNo plans found in {self.plan_dir}/. Use the plan tool to create one."
        return message

    def _error_text(self, exc: PlanLoopError) -> str:
        if isinstance(exc, PlanNotFoundError):
            return self._plan_not_found(exc.plan_file)
        if isinstance(exc, LoopAlreadyActiveError):
            return f"A loop is already active (iteration {exc.iteration}). Use cancel to stop it first."
        return str(exc)

    # -- plans ------------------------------------------------------------

    def plan(
        self,
        action: Optional[str] = None,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        file: Optional[str] = None,
        content: Optional[str] = None,
    ) -> str:
        """Create, view or save a plan file.

        The target file is `file`, else the slug of `name`, else the slug of
        `description`, else `plan.md` in the plan directory.
        """
        if file:
            plan_file = file
        else:
            base = name or description
            slug = slugify(base) if base else ""
            plan_file = f"{self.plan_dir}/{slug or 'plan'}.md"

        action = (action or "create").lower()
        if action not in PLAN_ACTIONS:
            return f"Unknown action '{action}'. Use one of: {', '.join(PLAN_ACTIONS)}."

        existing = read_plan_file(self.project_dir, plan_file)

        if action == "view":
            if existing is None:
                return self._plan_not_found(plan_file)
            return self._format_plan(parse_plan(existing), plan_file)

        if action == "save":
            if not content or not content.strip():
                return "Error: No content provided. Use content parameter to specify the plan content to save."
            if existing is not None:
                return f"{PlanExistsError(plan_file)} Delete it first to create a new one, or use a different filename."
            write_plan_file(self.project_dir, plan_file, content)
            return (
                f"Saved plan to {plan_file}\n\n"
                "You can now use:\n"
                "- tasks: List all tasks\n"
                "- start: Start the loop with this plan\n"
                "- task <num>: Execute a single task"
            )

        if existing is not None:
            return (
                f"{PlanExistsError(plan_file)} "
                "Use the plan tool with action='view' to see it, or delete it first to create a new one."
            )
        return (
            "Ready to create plan.\n\n"
            f"Target file: {plan_file}\n\n"
            "Generate a plan for the user based on their request, then show it to them.\n"
            "When they approve (or after any revisions), save it with:\n"
            f"  plan action='save' file='{plan_file}' content=<plan content>"
            "\n\nUse this format:\n\n"
        ) + PLAN_TEMPLATE

    def _format_plan(self, plan, plan_file: str) -> str:
        lines = [f"📋 Plan: {plan.title or plan_file}", ""]
        if plan.overview:
            preview = plan.overview[:OVERVIEW_PREVIEW_CHARS]
            ellipsis = "..." if len(plan.overview) > OVERVIEW_PREVIEW_CHARS else ""
            lines.extend([f"Overview: {preview}{ellipsis}", ""])
        lines.append(f"Tasks ({plan.completed_count}/{len(plan.tasks)} complete):")
        for index, task in enumerate(plan.tasks):
            lines.append(f"  {index + 1}. {'✓' if task.is_completed else '○'} {task.title}")
        if plan.completion_phrase:
            lines.extend(["", f"Completion promise: {plan.completion_phrase}"])
        return "\n".join(lines)

    def plans(self) -> str:
        available = list_plan_files(self.project_dir, self.plan_dir)
        if not available:
            return f'No plans found in {self.plan_dir}/.\n\nCreate a plan with: plan create name="my-plan"'

        lines = [f"📋 Available plans in {self.plan_dir}/", ""]
        for info in available:
            content = read_plan_file(self.project_dir, info.path)
            if content is None:
                lines.append(f"• {info.name}")
                continue
            parsed = parse_plan(content)
            total = len(parsed.tasks)
            progress = f"{parsed.completed_count}/{total} tasks" if total else "no tasks"
            lines.append(f"• {info.name} ({progress})")
        lines.extend(
            [
                "",
                "Usage:",
                '• tasks name="plan-name"  List tasks in a plan',
                '• task 1 name="plan-name" Execute task #1',
                '• start name="plan-name"  Start loop for all tasks',
            ]
        )
        return "\n".join(lines)

    # -- tasks ------------------------------------------------------------

    def tasks(self, *, name: Optional[str] = None, file: Optional[str] = None) -> str:
        plan_file = self.controller.resolve_plan_file(name, file)
        try:
            plan = self.controller.load_plan(plan_file)
        except PlanLoopError as exc:
            return self._error_text(exc)
        if not plan.tasks:
            return f"No tasks found in {plan_file}. Add tasks using checkbox format:\n- [ ] Task description"

        lines = [
            f"📋 Tasks from {plan_file}",
            "",
            f"Progress: {plan.completed_count}/{len(plan.tasks)} complete",
            "",
        ]
        for index, task in enumerate(plan.tasks):
            status = "[x]" if task.is_completed else "[ ]"
            lines.append(f"{index + 1:>2}. {status} {task.title}")
            if task.description:
                first = task.description.split("\n")[0][:DESCRIPTION_PREVIEW_CHARS]
                ellipsis = "..." if len(task.description) > DESCRIPTION_PREVIEW_CHARS else ""
                lines.append(f"       {first}{ellipsis}")
        lines.extend(
            [
                "",
                "Commands:",
                "- task 1      Execute task #1",
                '- task "name" Execute task by name',
                "- start       Start loop for all tasks",
            ]
        )
        return "\n".join(lines)

    def task(
        self,
        selector: str,
        *,
        name: Optional[str] = None,
        file: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """Execute one task without looping; it is marked done when the session goes idle."""
        plan_file = self.controller.resolve_plan_file(name, file)
        try:
            started = self.controller.start_single_task(plan_file, selector, session_id=session_id)
        except PlanLoopError as exc:
            return self._error_text(exc)

        task_prompt = build_single_task_prompt(
            started.plan,
            started.task,
            plan_file,
            detect_project_tools(self.project_dir),
        )
        return (
            f"🎯 Executing single task: {started.task.title}\n\n"
            f"---\n\n{task_prompt}\n\n---\n\n"
            "Note: This is a ONE-TIME execution (no loop). The task will be automatically\n"
            "marked complete when finished. No git commit will be created - review and\n"
            "commit your changes manually when ready."
        )

    def complete(self, selector: str, *, name: Optional[str] = None, file: Optional[str] = None) -> str:
        plan_file = self.controller.resolve_plan_file(name, file)
        try:
            result = self.controller.complete_task(plan_file, selector)
        except PlanLoopError as exc:
            return self._error_text(exc)

        output = (
            f"✓ Marked complete: {result.task.title}\n\n"
            f"Progress: {result.completed_count}/{len(result.plan.tasks)} tasks complete"
        )
        if result.all_complete and result.plan.completion_phrase:
            output += (
                "\n\n🎉 All tasks complete! The plan's completion promise is:\n"
                f"<promise>{result.plan.completion_phrase}</promise>"
            )
        return output

    # -- loops ------------------------------------------------------------

    def start(
        self,
        *,
        name: Optional[str] = None,
        file: Optional[str] = None,
        max_iterations: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """Start a plan loop over the pending tasks with a commit per task."""
        plan_file = self.controller.resolve_plan_file(name, file)
        try:
            started = self.controller.start_plan_loop(plan_file, max_iterations=max_iterations, session_id=session_id)
        except PlanLoopError as exc:
            return self._error_text(exc)

        plan = started.plan
        state = started.state
        pending = len(plan.pending_tasks)
        task_prompt = build_task_prompt(
            plan,
            started.task,
            started.task_num,
            True,
            compact=False,
            project_tools=detect_project_tools(self.project_dir),
        )
        output = (
            f"🔄 Loop started from {plan_file}!\n\n"
            f"Plan: {plan.title or 'Untitled'}\n"
            f"Tasks: {pending} pending, {len(plan.tasks) - pending} complete\n"
            f"Max iterations: {_limit_label(state.max_iterations)}\n"
            "Mode: Loop with auto-commit per task\n\n"
            f"Starting with task {started.task_num}: {started.task.title}\n\n"
            f"---\n\n{task_prompt}"
        )
        if state.completion_phrase:
            output += "\n\n" + build_completion_footer(state.completion_phrase, all_tasks=True)
        return output

    def loop(
        self,
        prompt: str,
        *,
        max_iterations: Optional[int] = None,
        completion_phrase: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """Start a freeform loop that feeds the same prompt back on every idle."""
        try:
            started = self.controller.start_freeform_loop(
                prompt,
                max_iterations=max_iterations,
                completion_phrase=completion_phrase,
                session_id=session_id,
            )
        except PlanLoopError as exc:
            return self._error_text(exc)

        state = started.state
        if state.completion_phrase:
            promise_line = f"{state.completion_phrase} (ONLY output when TRUE - do not lie!)"
        else:
            promise_line = "none (loop will stop at max iterations)"
        output = (
            "🔄 Loop activated!\n\n"
            "Iteration: 1\n"
            f"Max iterations: {_limit_label(state.max_iterations)}\n"
            f"Completion promise: {promise_line}\n\n"
            "The loop is now active. When the session becomes idle, the SAME PROMPT will be\n"
            "fed back to you. You'll see your previous work in files, so each iteration\n"
            "builds on the last.\n\n"
            "To stop the loop early, use cancel.\n\n"
            f"---\n\n{state.prompt}"
        )
        if state.completion_phrase:
            output += "\n\n" + build_completion_footer(state.completion_phrase)
        return output

    def cancel(self) -> str:
        state = self.controller.cancel()
        if state is None:
            return "No active loop found."
        return f"🛑 Cancelled loop (was at iteration {state.iteration})"

    def status(self) -> str:
        state = self.controller.status()
        if state is None:
            return "No active loop."
        return self._format_status(state)

    def _format_status(self, state: LoopState) -> str:
        lines = [
            "📊 Loop Status:",
            f"- Active: {state.active}",
            f"- Mode: {state.mode.value}",
            f"- Iteration: {state.iteration}",
            f"- Max iterations: {_limit_label(state.max_iterations)}",
            f"- Completion promise: {state.completion_phrase or 'none'}",
            f"- Session ID: {state.session_id or 'unknown'}",
            f"- Started at: {state.started_at}",
        ]
        if state.mode == LoopMode.FREEFORM_LOOP:
            lines.extend(["", "Prompt:", state.prompt])
        else:
            lines.append(f"- Plan: {state.plan_path}")
            lines.append(f"- Current task: {state.current_task_ordinal} ({state.current_task_id})")
        return "\n".join(lines)

    def check(self, text: str) -> str:
        """Check `text` for the active loop's completion promise."""
        try:
            result = self.controller.check_completion(text)
        except NoActiveLoopError:
            return "No active loop."
        except PlanLoopError as exc:
            return str(exc)

        phrase = result.state.completion_phrase
        if result.matched:
            return (
                f"✅ Completion promise detected: <promise>{phrase}</promise>\n"
                f"Loop completed successfully after {result.state.iteration} iterations."
            )
        found = (
            f"Found: <promise>{result.found}</promise>" if result.found else "No <promise> tags found in text."
        )
        return (
            "❌ Completion promise NOT detected.\n"
            f"Expected: <promise>{phrase}</promise>\n"
            f"{found}\n\n"
            f"Loop continues at iteration {result.state.iteration}."
        )
