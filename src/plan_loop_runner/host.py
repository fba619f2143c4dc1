"""Talk to the runtime that owns the agent session.

The loop never drives the agent directly. It asks a `SessionHost` to re-inject a
prompt into a session, to hand back recent messages, and to show the user a
notification.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from loguru import logger

from .constants import DEFAULT_HOST_TIMEOUT_SECONDS, DEFAULT_MESSAGE_LOOKBACK


class HostError(Exception):
    """The session host rejected or failed a request."""

    pass


@dataclass
class SessionMessage:
    """A message from the session history, reduced to its role and text parts."""

    role: str
    texts: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SessionMessage":
        info = payload.get("info") or {}
        texts = [
            part["text"]
            for part in payload.get("parts") or []
            if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str)
        ]
        return cls(role=str(info.get("role") or payload.get("role") or ""), texts=texts)


class SessionHost(ABC):
    """External collaborator owning the agent session."""

    @abstractmethod
    def send_prompt(self, session_id: str, text: str) -> None:
        """Re-inject `text` into the session as a user prompt."""

    @abstractmethod
    def recent_messages(self, session_id: str, limit: int = DEFAULT_MESSAGE_LOOKBACK) -> list[SessionMessage]:
        """Return up to `limit` of the latest messages, oldest first."""

    @abstractmethod
    def notify(self, message: str, variant: str = "info") -> None:
        """Show a short notification to the user."""

    def close(self) -> None:
        return None


class LoggingHost(SessionHost):
    """Host stand-in that only logs. Used when no host API is configured."""

    def send_prompt(self, session_id: str, text: str) -> None:
        logger.info("Prompt for session {} ({} chars):\n{}", session_id, len(text), text)

    def recent_messages(self, session_id: str, limit: int = DEFAULT_MESSAGE_LOOKBACK) -> list[SessionMessage]:
        return []

    def notify(self, message: str, variant: str = "info") -> None:
        logger.info("[{}] {}", variant, message)


class OpencodeHost(SessionHost):
    """Session host reached over the opencode server HTTP API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_HOST_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise HostError(f"{method} {path} failed: {exc}") from exc
        return response

    def send_prompt(self, session_id: str, text: str) -> None:
        self._request(
            "POST",
            f"/session/{session_id}/message",
            json={"parts": [{"type": "text", "text": text}]},
        )

    def recent_messages(self, session_id: str, limit: int = DEFAULT_MESSAGE_LOOKBACK) -> list[SessionMessage]:
        response = self._request("GET", f"/session/{session_id}/message")
        try:
            payload = response.json()
        except ValueError as exc:
            raise HostError(f"Invalid message history for session {session_id}: {exc}") from exc
        if not isinstance(payload, list):
            raise HostError(f"Unexpected message history payload for session {session_id}")
        messages = [SessionMessage.from_payload(item) for item in payload if isinstance(item, dict)]
        return messages[-limit:] if limit > 0 else []

    def notify(self, message: str, variant: str = "info") -> None:
        self._request("POST", "/tui/show-toast", json={"message": message, "variant": variant})

    def close(self) -> None:
        self._client.close()
