from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from rich.console import Console

from .commands import LoopCommands
from .config import LoopSettings, get_loop_settings, load_runner_config
from .controller import LoopController
from .host import LoggingHost, OpencodeHost, SessionHost
from .logging_utils import configure_logging, pretty, summarize_transition


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _settings(args: argparse.Namespace) -> LoopSettings:
    config, err = load_runner_config(_resolve_project_dir(args.project_dir))
    if err:
        logger.warning("Using default loop settings: {}", err)
    return get_loop_settings(config)


def _host(args: argparse.Namespace, settings: LoopSettings) -> SessionHost:
    url = args.host_url or settings.host_url
    return OpencodeHost(url) if url else LoggingHost()


def _ctx(args: argparse.Namespace) -> LoopCommands:
    settings = _settings(args)
    controller = LoopController(_resolve_project_dir(args.project_dir), host=_host(args, settings), settings=settings)
    return LoopCommands(controller)


def _emit(console: Console, text: str) -> int:
    # Prompts are copied verbatim, so rich must not wrap or style them.
    console.print(text, markup=False, highlight=False, soft_wrap=True)
    return 0


def _plan(args: argparse.Namespace, console: Console) -> int:
    commands = _ctx(args)
    content = None
    if args.content_file:
        content = Path(args.content_file).read_text(encoding="utf-8")
    return _emit(
        console,
        commands.plan(args.action, name=args.name, description=args.description, file=args.file, content=content),
    )


def _plans(args: argparse.Namespace, console: Console) -> int:
    return _emit(console, _ctx(args).plans())


def _tasks(args: argparse.Namespace, console: Console) -> int:
    return _emit(console, _ctx(args).tasks(name=args.name, file=args.file))


def _task(args: argparse.Namespace, console: Console) -> int:
    output = _ctx(args).task(args.selector, name=args.name, file=args.file, session_id=args.session_id)
    return _emit(console, output)


def _complete(args: argparse.Namespace, console: Console) -> int:
    return _emit(console, _ctx(args).complete(args.selector, name=args.name, file=args.file))


def _start(args: argparse.Namespace, console: Console) -> int:
    output = _ctx(args).start(
        name=args.name,
        file=args.file,
        max_iterations=args.max_iterations,
        session_id=args.session_id,
    )
    return _emit(console, output)


def _loop(args: argparse.Namespace, console: Console) -> int:
    output = _ctx(args).loop(
        args.prompt,
        max_iterations=args.max_iterations,
        completion_phrase=args.completion_promise,
        session_id=args.session_id,
    )
    return _emit(console, output)


def _cancel(args: argparse.Namespace, console: Console) -> int:
    return _emit(console, _ctx(args).cancel())


def _status(args: argparse.Namespace, console: Console) -> int:
    return _emit(console, _ctx(args).status())


def _check(args: argparse.Namespace, console: Console) -> int:
    text = args.text if args.text is not None else sys.stdin.read()
    return _emit(console, _ctx(args).check(text))


def _idle(args: argparse.Namespace, console: Console) -> int:
    commands = _ctx(args)
    try:
        transition = commands.controller.handle_session_idle(args.session_id)
    finally:
        commands.controller.host.close()
    return _emit(console, pretty(summarize_transition(transition)))


def _server(args: argparse.Namespace, console: Console) -> int:
    try:
        import uvicorn
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'plan-loop-runner[server]'\n")
        return 1

    from .server import create_app

    settings = _settings(args)
    app = create_app(project_dir=_resolve_project_dir(args.project_dir), host=_host(args, settings))
    uvicorn.run(app, host=args.host, port=args.port, reload=args.reload)
    return 0


def _add_plan_selection(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", default=None, help="Plan name (resolved to <plan_dir>/<slug>.md)")
    parser.add_argument("--file", default=None, help="Plan file path (default: .opencode/plans/PLAN.md)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Plan-driven agent loop runner")
    parser.add_argument("--project-dir", default=None, help="Target project directory (default: current working directory)")
    parser.add_argument("--host-url", default=None, help="Base URL of the session host API (overrides config)")
    parser.add_argument("--log-level", default=None, help="Log level (default: from config, else INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan = subparsers.add_parser("plan", help="Create, view or save a plan file")
    plan.add_argument("action", nargs="?", default="create", choices=["create", "view", "save"])
    _add_plan_selection(plan)
    plan.add_argument("--description", default=None)
    plan.add_argument("--content-file", default=None, help="File holding the plan content to save")
    plan.set_defaults(func=_plan)

    plans = subparsers.add_parser("plans", help="List plans in the plan directory")
    plans.set_defaults(func=_plans)

    tasks = subparsers.add_parser("tasks", help="List tasks of a plan")
    _add_plan_selection(tasks)
    tasks.set_defaults(func=_tasks)

    task = subparsers.add_parser("task", help="Execute a single task (no loop, no commit)")
    task.add_argument("selector", help="Task number or part of its title")
    _add_plan_selection(task)
    task.add_argument("--session-id", default=None)
    task.set_defaults(func=_task)

    complete = subparsers.add_parser("complete", help="Mark a task complete")
    complete.add_argument("selector", help="Task number or part of its title")
    _add_plan_selection(complete)
    complete.set_defaults(func=_complete)

    start = subparsers.add_parser("start", help="Start a plan loop with a commit per task")
    _add_plan_selection(start)
    start.add_argument("--max-iterations", default=None, type=int, help="0 means unlimited")
    start.add_argument("--session-id", default=None)
    start.set_defaults(func=_start)

    loop = subparsers.add_parser("loop", help="Start a freeform loop that repeats one prompt")
    loop.add_argument("prompt")
    loop.add_argument("--max-iterations", default=None, type=int, help="0 means unlimited")
    loop.add_argument("--completion-promise", default=None)
    loop.add_argument("--session-id", default=None)
    loop.set_defaults(func=_loop)

    cancel = subparsers.add_parser("cancel", help="Cancel the active loop")
    cancel.set_defaults(func=_cancel)

    status = subparsers.add_parser("status", help="Show the active loop")
    status.set_defaults(func=_status)

    check = subparsers.add_parser("check", help="Check text for the completion promise")
    check.add_argument("text", nargs="?", default=None, help="Text to check (default: stdin)")
    check.set_defaults(func=_check)

    idle = subparsers.add_parser("idle", help="Report a session-idle event to the loop")
    idle.add_argument("--session-id", default=None)
    idle.set_defaults(func=_idle)

    server = subparsers.add_parser("server", help="Start the HTTP server")
    server.add_argument("--host", default="127.0.0.1")
    server.add_argument("--port", default=8000, type=int)
    server.add_argument("--reload", action="store_true")
    server.set_defaults(func=_server)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    configure_logging(args.log_level or _settings(args).log_level)
    return int(handler(args, Console()) or 0)
