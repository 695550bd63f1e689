"""CLI commands for buildspace."""

from . import (
    generate,
    validate,
    config_cmd,
)

__all__ = [
    "generate",
    "validate",
    "config_cmd",
]
