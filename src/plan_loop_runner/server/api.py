"""FastAPI application exposing the loop commands and the session-idle hook."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ..commands import LoopCommands
from ..config import get_loop_settings, load_runner_config
from ..controller import LoopController
from ..host import LoggingHost, OpencodeHost, SessionHost
from ..logging_utils import summarize_transition
from .models import (
    CheckCompletionRequest,
    FreeformLoopRequest,
    LoopStateInfo,
    PlanRequest,
    SessionIdleRequest,
    StartLoopRequest,
    TaskRequest,
    ToolResponse,
    TransitionInfo,
)


def create_app(
    project_dir: Optional[Path] = None,
    host: Optional[SessionHost] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        project_dir: Working directory the loop runs in (default: current directory).
        host: Session host; built from the configured `host_url` when omitted.
        enable_cors: Whether to enable CORS.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="Plan Loop Runner",
        description="Plan-driven agent loop: tool commands and session-idle events",
        version="1.0.0",
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    root_dir = (project_dir or Path.cwd()).resolve()
    config, err = load_runner_config(root_dir)
    if err:
        logger.warning("Using default loop settings: {}", err)
    settings = get_loop_settings(config)
    if host is None:
        host = OpencodeHost(settings.host_url) if settings.host_url else LoggingHost()

    controller = LoopController(root_dir, host=host, settings=settings)
    commands = LoopCommands(controller)
    app.state.controller = controller
    app.state.commands = commands

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Plan Loop Runner",
            "version": "1.0.0",
            "project_dir": str(root_dir),
        }

    @app.post("/api/events/session-idle", response_model=TransitionInfo)
    def session_idle(request: SessionIdleRequest) -> TransitionInfo:
        """Advance or stop the active loop after the agent finished a turn."""
        transition = controller.handle_session_idle(request.session_id)
        return TransitionInfo(
            action=transition.action.__class__.__name__,
            active=transition.state is not None and transition.state.active,
            detail=summarize_transition(transition),
        )

    @app.post("/api/plan", response_model=ToolResponse)
    def plan(request: PlanRequest) -> ToolResponse:
        output = commands.plan(
            request.action,
            name=request.name,
            description=request.description,
            file=request.file,
            content=request.content,
        )
        return ToolResponse(output=output)

    @app.get("/api/plans", response_model=ToolResponse)
    def plans() -> ToolResponse:
        return ToolResponse(output=commands.plans())

    @app.get("/api/tasks", response_model=ToolResponse)
    def tasks(name: Optional[str] = None, file: Optional[str] = None) -> ToolResponse:
        return ToolResponse(output=commands.tasks(name=name, file=file))

    @app.post("/api/tasks/execute", response_model=ToolResponse)
    def execute_task(request: TaskRequest) -> ToolResponse:
        output = commands.task(request.task, name=request.name, file=request.file, session_id=request.session_id)
        return ToolResponse(output=output)

    @app.post("/api/tasks/complete", response_model=ToolResponse)
    def complete_task(request: TaskRequest) -> ToolResponse:
        return ToolResponse(output=commands.complete(request.task, name=request.name, file=request.file))

    @app.post("/api/loop/start", response_model=ToolResponse)
    def start_loop(request: StartLoopRequest) -> ToolResponse:
        output = commands.start(
            name=request.name,
            file=request.file,
            max_iterations=request.max_iterations,
            session_id=request.session_id,
        )
        return ToolResponse(output=output)

    @app.post("/api/loop/freeform", response_model=ToolResponse)
    def freeform_loop(request: FreeformLoopRequest) -> ToolResponse:
        output = commands.loop(
            request.prompt,
            max_iterations=request.max_iterations,
            completion_phrase=request.completion_phrase,
            session_id=request.session_id,
        )
        return ToolResponse(output=output)

    @app.post("/api/loop/cancel", response_model=ToolResponse)
    def cancel_loop() -> ToolResponse:
        return ToolResponse(output=commands.cancel())

    @app.get("/api/loop/status", response_model=ToolResponse)
    def loop_status() -> ToolResponse:
        return ToolResponse(output=commands.status())

    @app.get("/api/loop/state", response_model=LoopStateInfo)
    def loop_state() -> LoopStateInfo:
        """Return the active loop state, or 404 when idle."""
        state = controller.status()
        if state is None:
            raise HTTPException(status_code=404, detail="No active loop")
        return LoopStateInfo(
            active=state.active,
            mode=state.mode.value,
            iteration=state.iteration,
            max_iterations=state.max_iterations,
            completion_phrase=state.completion_phrase,
            session_id=state.session_id,
            started_at=state.started_at or None,
            plan_path=state.plan_path,
            current_task_id=state.current_task_id,
            current_task_ordinal=state.current_task_ordinal,
            prompt=state.prompt,
        )

    @app.post("/api/loop/check", response_model=ToolResponse)
    def check_completion(request: CheckCompletionRequest) -> ToolResponse:
        return ToolResponse(output=commands.check(request.text))

    return app
