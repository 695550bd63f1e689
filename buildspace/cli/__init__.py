"""Command-line interface for buildspace."""

from .app import app

__all__ = ["app"]
