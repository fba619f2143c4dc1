"""Load optional loop configuration from `.opencode/plan-loop.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .constants import (
    CONFIG_FILE,
    DEFAULT_COMMIT_TAG,
    DEFAULT_FREEFORM_MAX_ITERATIONS,
    DEFAULT_MESSAGE_LOOKBACK,
    DEFAULT_PLAN_DIR,
    DEFAULT_PLAN_NAME,
    DEFAULT_PLAN_MAX_ITERATIONS,
    STATE_DIR_NAME,
)
from .io_utils import _load_data_with_error

VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class LoopSettings:
    """Resolved loop settings with defaults applied."""

    plan_dir: str = DEFAULT_PLAN_DIR
    commit_tag: str = DEFAULT_COMMIT_TAG
    commit: bool = True
    freeform_max_iterations: int = DEFAULT_FREEFORM_MAX_ITERATIONS
    plan_max_iterations: int = DEFAULT_PLAN_MAX_ITERATIONS
    message_lookback: int = DEFAULT_MESSAGE_LOOKBACK
    host_url: Optional[str] = None
    log_level: str = "INFO"

    @property
    def default_plan_file(self) -> str:
        return f"{self.plan_dir}/{DEFAULT_PLAN_NAME}"


def load_runner_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional config file.

    Args:
        project_dir: Working directory the loop runs in.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    path = project_dir.resolve() / STATE_DIR_NAME / CONFIG_FILE
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _non_negative_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 0 else default


def _non_empty_str(value: Any, default: Optional[str]) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def get_loop_settings(config: dict[str, Any]) -> LoopSettings:
    """Resolve a raw config mapping into `LoopSettings`; bad values fall back to defaults."""
    defaults = LoopSettings()
    commit = config.get("commit")
    log_level = str(config.get("log_level") or defaults.log_level).upper()
    return LoopSettings(
        plan_dir=(_non_empty_str(config.get("plan_dir"), defaults.plan_dir) or defaults.plan_dir).rstrip("/"),
        commit_tag=_non_empty_str(config.get("commit_tag"), defaults.commit_tag) or defaults.commit_tag,
        commit=commit if isinstance(commit, bool) else defaults.commit,
        freeform_max_iterations=_non_negative_int(
            config.get("freeform_max_iterations"), defaults.freeform_max_iterations
        ),
        plan_max_iterations=_non_negative_int(config.get("plan_max_iterations"), defaults.plan_max_iterations),
        message_lookback=_non_negative_int(config.get("message_lookback"), defaults.message_lookback),
        host_url=_non_empty_str(config.get("host_url"), None),
        log_level=log_level if log_level in VALID_LOG_LEVELS else defaults.log_level,
    )
