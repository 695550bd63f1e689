"""Typed callback protocols for progress reporting.

These Protocol classes provide type-safe callback signatures without
requiring runtime changes; existing callables continue to work via duck typing.
"""

from typing import Protocol


class ItemProgressCallback(Protocol):
    """Callback for item-based progress (row repair, pinned profiles).

    Args:
        current: Number of items completed
        total: Total items to process
    """

    def __call__(self, current: int, total: int) -> None: ...
