"""Provide helpers for timestamps, plan slugs and project tool detection."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path

from .constants import MAX_SLUG_LENGTH
from .models import ProjectTools

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"\s+")
_SLUG_DASH_RE = re.compile(r"-+")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def slugify(text: str) -> str:
    """Turn a free-form plan name into a filename-safe slug.

    Args:
        text: Plan name or description.

    Returns:
        Lowercase, hyphen-separated slug of at most 50 characters.
    """
    slug = _SLUG_STRIP_RE.sub("", text.strip().lower())
    slug = _SLUG_SPACE_RE.sub("-", slug)
    slug = _SLUG_DASH_RE.sub("-", slug).strip("-")
    return slug[:MAX_SLUG_LENGTH]


def detect_project_tools(project_dir: Path) -> ProjectTools:
    """Sniff the project root for common task runners."""
    return ProjectTools(
        has_justfile=(project_dir / "justfile").exists() or (project_dir / "Justfile").exists(),
        has_package_json=(project_dir / "package.json").exists(),
        has_makefile=(project_dir / "Makefile").exists(),
    )
