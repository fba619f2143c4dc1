"""HTTP surface of the plan loop runner."""

from .api import create_app

__all__ = ["create_app"]
