"""Detect the `<promise>...</promise>` exit signal in agent output."""

from __future__ import annotations

import re
from typing import Iterable, Optional

from .constants import PROMISE_CLOSE_TAG, PROMISE_OPEN_TAG

_PROMISE_SPAN_RE = re.compile(re.escape(PROMISE_OPEN_TAG) + r"(.*?)" + re.escape(PROMISE_CLOSE_TAG), re.S)
_WHITESPACE_RE = re.compile(r"\s+")


def extract_promise_text(text: Optional[str]) -> Optional[str]:
    """Return the normalized inner text of the first promise span.

    Leading and trailing whitespace is trimmed and every internal whitespace run
    collapses to one space. Later spans are ignored.

    Args:
        text: Arbitrary agent output.

    Returns:
        The normalized phrase, or None when no complete span exists.
    """
    if not text:
        return None
    match = _PROMISE_SPAN_RE.search(text)
    if not match:
        return None
    return _WHITESPACE_RE.sub(" ", match.group(1).strip())


def promise_matches(text: Optional[str], completion_phrase: Optional[str]) -> bool:
    """Exact, case-sensitive comparison of the first promise span with the phrase."""
    if not completion_phrase:
        return False
    return extract_promise_text(text) == completion_phrase


def find_promise_in_messages(texts: Iterable[str], completion_phrase: Optional[str]) -> bool:
    return any(promise_matches(text, completion_phrase) for text in texts)
