"""Configure logging and summarize loop transitions for the log."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .models import NoOp, SendPrompt, Stop, Transition

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
    "{message}"
)


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Configure the loguru logger with the specified level and optional file sink."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(str(log_file), level=level.upper(), format=LOG_FORMAT, colorize=False)


def summarize_transition(transition: Transition) -> dict[str, Any]:
    """Render a compact, JSON-friendly summary of a loop transition.

    Args:
        transition: Result of `reduce_loop`.

    Returns:
        A dictionary suitable for logging.
    """
    action = transition.action
    d: dict[str, Any] = {"action": action.__class__.__name__}

    state = transition.state
    if state is None:
        d["state"] = None
    else:
        d["mode"] = state.mode.value
        d["iteration"] = state.iteration
        d["max_iterations"] = state.max_iterations
        if state.current_task_id:
            d["task"] = state.current_task_id

    if isinstance(action, SendPrompt):
        d["session_id"] = action.session_id
        d["prompt_chars"] = len(action.text)
    elif isinstance(action, Stop):
        d["reason"] = action.reason.value
        message = action.message
        d["message"] = (message[:240] + "…") if len(message) > 240 else message
    elif isinstance(action, NoOp):
        d["reason"] = action.reason

    return d


def pretty(obj: Any, *, indent: int = 2) -> str:
    """Serialize an object as JSON for readable logs."""
    try:
        return json.dumps(obj, indent=indent, default=str)
    except Exception:
        return str(obj)
