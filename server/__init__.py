"""Reference HTTP endpoints consumed by the measurement engine."""

from .app import create_app

__all__ = ["create_app"]
