"""Persist the single loop state of a working directory."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from filelock import FileLock
from loguru import logger

from .constants import DEFAULT_LOCK_TIMEOUT_SECONDS, LOOP_LOCK_SUFFIX, LOOP_STATE_FILE
from .io_utils import _atomic_write_json, _load_data_with_error
from .models import LoopState


class LoopStateStore:
    """Read, write and delete the loop state file.

    The file's absence means no loop is running. Writers always replace the
    whole file. Callers that read, decide and write back must hold `lock()` for
    the whole cycle so overlapping host events cannot both start or advance a
    loop.
    """

    def __init__(self, project_dir: Path, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        self.project_dir = project_dir
        self.path = project_dir / LOOP_STATE_FILE
        self.lock_path = self.path.with_name(self.path.name + LOOP_LOCK_SUFFIX)
        self._lock: Optional[FileLock] = None
        self._lock_timeout = lock_timeout

    def lock(self) -> FileLock:
        """Return the (re-entrant) advisory lock guarding the state file."""
        if self._lock is None:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            self._lock = FileLock(str(self.lock_path), timeout=self._lock_timeout)
        return self._lock

    def read(self) -> Optional[LoopState]:
        """Load the stored state; a corrupt file reads as no state."""
        if not self.path.exists():
            return None
        data, err = _load_data_with_error(self.path, {})
        if err:
            logger.warning("Ignoring unreadable loop state: {}", err)
            return None
        try:
            return LoopState.from_dict(data)
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring invalid loop state {}: {}", self.path, exc)
            return None

    def read_active(self) -> Optional[LoopState]:
        state = self.read()
        if state is None or not state.active:
            return None
        return state

    def write(self, state: LoopState) -> None:
        _atomic_write_json(self.path, state.to_dict())

    def remove(self) -> bool:
        """Delete the state file. Returns whether one existed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.error("Unable to remove loop state {}: {}", self.path, exc)
            return False
        return True
