"""Run plan, single-task and freeform loops on top of a session host.

`LoopController` owns the loop state file of one working directory. Tool calls
start, inspect and cancel loops. The host reports every session-idle
notification to `handle_session_idle`, which marks and commits the finished
task, re-reads the plan, and lets `reduce_loop` decide whether to send the next
prompt or stop.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from filelock import Timeout
from loguru import logger

from .config import LoopSettings
from .errors import (
    LoopAlreadyActiveError,
    NoActiveLoopError,
    PlanLoopError,
    PlanNotFoundError,
    TaskNotFoundError,
)
from .fsm import reduce_loop
from .git_utils import CommitResult, create_task_commit
from .host import LoggingHost, SessionHost
from .logging_utils import pretty, summarize_transition
from .models import (
    IdleEvent,
    LoopMode,
    LoopState,
    NoOp,
    PlanDocument,
    PlanTask,
    SendPrompt,
    Stop,
    StopReason,
    TaskStatus,
    Transition,
)
from .plan import (
    list_plan_files,
    load_plan as load_plan_document,
    parse_plan,
    read_plan_file,
    resolve_plan_file,
    select_task,
    set_task_status,
    write_plan_file,
)
from .promise import extract_promise_text, find_promise_in_messages
from .state import LoopStateStore
from .utils import _now_iso

Committer = Callable[[Path, str, int, str], CommitResult]


@dataclass
class LoopStart:
    """What a successful start request created."""

    state: LoopState
    plan: Optional[PlanDocument] = None
    task_num: Optional[int] = None
    task: Optional[PlanTask] = None


@dataclass
class TaskCompletion:
    """Result of marking a task complete by hand."""

    plan: PlanDocument
    task_num: int
    task: PlanTask
    completed_count: int

    @property
    def all_complete(self) -> bool:
        return self.completed_count == len(self.plan.tasks)


@dataclass
class CompletionCheck:
    """Result of checking arbitrary text for the active loop's completion phrase."""

    state: LoopState
    found: Optional[str]
    matched: bool


class LoopController:
    """Coordinate the loop state machine with plan files, git and the session host."""

    def __init__(
        self,
        project_dir: Path,
        host: Optional[SessionHost] = None,
        settings: Optional[LoopSettings] = None,
        *,
        committer: Committer = create_task_commit,
        store: Optional[LoopStateStore] = None,
    ):
        self.project_dir = project_dir.resolve()
        self.host = host or LoggingHost()
        self.settings = settings or LoopSettings()
        self.committer = committer
        self.store = store or LoopStateStore(self.project_dir)

    # -- plan helpers -----------------------------------------------------

    def resolve_plan_file(self, name: Optional[str] = None, file: Optional[str] = None) -> str:
        """Pick the plan path: `name` wins over `file`, which wins over the default."""
        if name:
            return resolve_plan_file(name, self.settings.plan_dir)
        return file or self.settings.default_plan_file

    def load_plan(self, plan_file: str) -> PlanDocument:
        plan = load_plan_document(self.project_dir, plan_file)
        if plan is None:
            available = [info.name for info in list_plan_files(self.project_dir, self.settings.plan_dir)]
            raise PlanNotFoundError(plan_file, available)
        return plan

    def _select(self, plan: PlanDocument, selector: str) -> tuple[int, PlanTask]:
        found = select_task(plan, selector)
        if found is None:
            raise TaskNotFoundError(selector)
        return found

    def _ensure_idle(self) -> None:
        existing = self.store.read_active()
        if existing is not None:
            raise LoopAlreadyActiveError(existing.iteration)

    # -- tool operations --------------------------------------------------

    def start_plan_loop(
        self,
        plan_file: str,
        *,
        max_iterations: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> LoopStart:
        """Start a loop that works through the plan's pending tasks in order.

        Raises:
            PlanLoopError: If the plan is missing, has no pending tasks, or a loop
                is already active.
        """
        if max_iterations is None:
            max_iterations = self.settings.plan_max_iterations
        if max_iterations < 0:
            raise PlanLoopError("maxIterations must be 0 (unlimited) or a positive number.")

        plan = self.load_plan(plan_file)
        if not plan.tasks:
            raise PlanLoopError(
                f"No tasks found in {plan_file}. Add tasks using checkbox format:\n- [ ] Task description"
            )
        first = plan.first_pending()
        if first is None:
            raise PlanLoopError(f"All tasks in {plan_file} are already complete!")
        task_num, task = first

        with self.store.lock():
            self._ensure_idle()
            state = LoopState(
                active=True,
                iteration=1,
                max_iterations=max_iterations,
                completion_phrase=plan.completion_phrase,
                session_id=session_id,
                started_at=_now_iso(),
                plan_path=plan_file,
                current_task_id=task.id,
                current_task_ordinal=task_num,
                mode=LoopMode.PLAN_LOOP,
            )
            self.store.write(state)
        logger.info("Plan loop started from {} at task {} ({})", plan_file, task_num, task.title)
        return LoopStart(state=state, plan=plan, task_num=task_num, task=task)

    def start_single_task(
        self,
        plan_file: str,
        selector: str,
        *,
        session_id: Optional[str] = None,
    ) -> LoopStart:
        """Run exactly one task: the next idle notification marks it done, without a commit."""
        plan = self.load_plan(plan_file)
        if not plan.tasks:
            raise PlanLoopError(f"No tasks found in {plan_file}.")
        task_num, task = self._select(plan, selector)
        if task.is_completed:
            raise PlanLoopError(
                f'Task "{task.title}" is already marked as complete. To re-run it, uncheck it in {plan_file} first.'
            )

        with self.store.lock():
            self._ensure_idle()
            state = LoopState(
                active=True,
                iteration=1,
                max_iterations=1,
                session_id=session_id,
                started_at=_now_iso(),
                plan_path=plan_file,
                current_task_id=task.id,
                current_task_ordinal=task_num,
                mode=LoopMode.SINGLE_TASK,
            )
            self.store.write(state)
        logger.info("Single task {} ({}) started from {}", task_num, task.title, plan_file)
        return LoopStart(state=state, plan=plan, task_num=task_num, task=task)

    def start_freeform_loop(
        self,
        prompt: str,
        *,
        max_iterations: Optional[int] = None,
        completion_phrase: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> LoopStart:
        """Start a loop that re-sends the same prompt on every idle notification."""
        if not prompt or not prompt.strip():
            raise PlanLoopError("No prompt provided. Please provide a task description.")
        if max_iterations is None:
            max_iterations = self.settings.freeform_max_iterations
        if max_iterations < 0:
            raise PlanLoopError("maxIterations must be 0 (unlimited) or a positive number.")

        with self.store.lock():
            self._ensure_idle()
            state = LoopState(
                active=True,
                iteration=1,
                max_iterations=max_iterations,
                completion_phrase=(completion_phrase or "").strip() or None,
                session_id=session_id,
                started_at=_now_iso(),
                mode=LoopMode.FREEFORM_LOOP,
                prompt=prompt,
            )
            self.store.write(state)
        logger.info("Freeform loop started (max iterations: {})", max_iterations or "unlimited")
        return LoopStart(state=state)

    def complete_task(self, plan_file: str, selector: str) -> TaskCompletion:
        """Mark one task complete in the plan file."""
        plan = self.load_plan(plan_file)
        task_num, task = self._select(plan, selector)
        if task.is_completed:
            raise PlanLoopError(f'Task "{task.title}" is already complete.')
        updated = set_task_status(plan.raw_text, task.id, plan.tasks, TaskStatus.COMPLETED)
        write_plan_file(self.project_dir, plan_file, updated)
        logger.info("Marked task {} complete in {}", task_num, plan_file)
        return TaskCompletion(plan=plan, task_num=task_num, task=task, completed_count=plan.completed_count + 1)

    def cancel(self) -> Optional[LoopState]:
        """Delete the loop state. Returns the state that was active, if any."""
        with self.store.lock():
            state = self.store.read()
            self.store.remove()
        if state is None or not state.active:
            return None
        logger.info("Loop cancelled at iteration {}", state.iteration)
        return state

    def status(self) -> Optional[LoopState]:
        return self.store.read_active()

    def check_completion(self, text: str) -> CompletionCheck:
        """Compare the first promise in `text` with the active loop's phrase.

        A match ends the loop.

        Raises:
            NoActiveLoopError: If no loop is active.
            PlanLoopError: If the loop has no completion phrase.
        """
        with self.store.lock():
            state = self.store.read_active()
            if state is None:
                raise NoActiveLoopError()
            if not state.completion_phrase:
                raise PlanLoopError("No completion promise set for this loop.")
            found = extract_promise_text(text)
            matched = found == state.completion_phrase
            if matched:
                self.store.remove()
                logger.info("Completion promise detected; loop finished after {} iterations", state.iteration)
        return CompletionCheck(state=state, found=found, matched=matched)

    # -- host events ------------------------------------------------------

    def handle_session_idle(self, session_id: Optional[str] = None) -> Transition:
        """Advance or stop the active loop for one idle notification. Never raises."""
        try:
            with self.store.lock():
                return self._handle_session_idle(session_id)
        except Timeout:
            logger.error("Loop: state lock {} is busy; skipping idle event", self.store.lock_path)
            return Transition(state=None, action=NoOp(reason="state lock busy"))
        except Exception:
            logger.exception("Loop: failed to handle session idle event")
            return Transition(state=None, action=NoOp(reason="internal error"))

    def _handle_session_idle(self, session_id: Optional[str]) -> Transition:
        state = self.store.read_active()
        if state is None:
            return Transition(state=None, action=NoOp(reason="no active loop"))

        resolved = session_id or state.session_id
        if not resolved:
            logger.warning("Loop: No session ID available, cannot continue loop.")
            return reduce_loop(state, None, IdleEvent())
        if resolved != state.session_id:
            state.session_id = resolved
            self.store.write(state)

        try:
            transition = self._decide(state, resolved)
        except Exception as exc:
            logger.exception("Loop: unexpected failure in {} mode", state.mode.value)
            transition = Transition(
                state=None,
                action=Stop(reason=StopReason.ERROR, message=f"Loop stopped after an error: {exc}", variant="error"),
            )

        logger.info("Loop transition: {}", pretty(summarize_transition(transition)))
        self._apply(transition)
        return transition

    def _decide(self, state: LoopState, session_id: str) -> Transition:
        plan: Optional[PlanDocument] = None
        fulfilled = False
        if state.mode == LoopMode.SINGLE_TASK:
            self._finish_current_task(state, commit=False)
        elif state.mode == LoopMode.PLAN_LOOP:
            if state.current_task_id:
                self._finish_current_task(state, commit=self.settings.commit)
            if state.plan_path:
                plan = load_plan_document(self.project_dir, state.plan_path)
        elif state.completion_phrase:
            fulfilled = self._promise_in_session(session_id, state.completion_phrase)
        return reduce_loop(state, plan, IdleEvent(session_id=session_id, promise_fulfilled=fulfilled))

    def _apply(self, transition: Transition) -> None:
        action = transition.action
        if transition.state is None:
            self.store.remove()
            if isinstance(action, Stop):
                if action.variant == "error":
                    logger.error(action.message)
                else:
                    logger.info(action.message)
                if action.notify:
                    self._notify(action.message, action.variant)
            return

        if isinstance(action, SendPrompt):
            self.store.write(transition.state)
            try:
                self.host.send_prompt(action.session_id, action.text)
            except Exception as exc:
                logger.error("Loop: Failed to send prompt - {}", exc)

    def _notify(self, message: str, variant: str) -> None:
        try:
            self.host.notify(message, variant)
        except Exception as exc:
            logger.warning("Loop: Failed to show notification - {}", exc)

    def _finish_current_task(self, state: LoopState, *, commit: bool) -> None:
        """Mark the stored task complete and optionally commit; failures are only logged."""
        if not state.plan_path or not state.current_task_id:
            logger.warning("Loop: no current task recorded; nothing to mark complete")
            return
        try:
            content = read_plan_file(self.project_dir, state.plan_path)
            if content is None:
                logger.error("Loop: plan file {} not found; cannot mark task complete", state.plan_path)
                return
            plan = parse_plan(content)
            found = plan.task_by_id(state.current_task_id)
            if found is None:
                logger.warning("Loop: task {} no longer exists in {}", state.current_task_id, state.plan_path)
                return
            task_num, task = found
            if not task.is_completed:
                updated = set_task_status(content, task.id, plan.tasks, TaskStatus.COMPLETED)
                write_plan_file(self.project_dir, state.plan_path, updated)
                logger.info("Loop: marked task {} complete: {}", task_num, task.title)
        except Exception:
            logger.exception("Loop: failed to mark task {} complete", state.current_task_id)
            return

        if not commit:
            return
        try:
            result = self.committer(self.project_dir, task.title, task_num, self.settings.commit_tag)
        except Exception as exc:
            logger.error("Loop: commit for task {} failed: {}", task_num, exc)
            return
        if result.success:
            logger.info("Loop: {}", result.message)
        elif result.skipped:
            logger.info("Loop: commit skipped for task {}: {}", task_num, result.message)
        else:
            logger.warning("Loop: commit for task {} failed: {}", task_num, result.message)

    def _promise_in_session(self, session_id: str, completion_phrase: str) -> bool:
        try:
            messages = self.host.recent_messages(session_id, self.settings.message_lookback)
        except Exception as exc:
            logger.warning("Loop: Failed to fetch session messages - {}", exc)
            return False
        texts = [
            text
            for message in reversed(messages)
            if message.role == "assistant"
            for text in message.texts
        ]
        return find_promise_in_messages(texts, completion_phrase)
