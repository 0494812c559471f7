"""Abstract event source protocol for file watching implementations."""

from collections.abc import Callable
from typing import Protocol

from appwatch_core.models import ChangeEvent

ChangeSink = Callable[[ChangeEvent], None]
"""Receives change events on the event loop thread."""


class ChangeEventSource(Protocol):
    """Protocol for file watcher implementations."""

    def start(self) -> None:
        """Start watching. Raises WatchStartupError on failure."""
        ...

    def stop(self) -> None:
        """Stop watching."""
        ...
