"""Shared data models for appwatch_core."""

import itertools
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any


class WatcherState(Enum):
    """States of the change-coalescing state machine.

    ::

                                 file change event
        initial state                 received
          -----------> WAITING ---------------------> INITIAL_DELAY
                          ^                                 |
                          |                                 | 100ms passed, executing push
                          |          push completed         v
                           ------------------------------ PUSHING
                                                          ^   |
                                           push completed |   | file change event received
                                       execute a new push |   v
                                                   PUSHING_AND_GOT_EVENT
    """

    WAITING = "waiting"
    INITIAL_DELAY = "initial_delay"
    PUSHING = "pushing"
    PUSHING_AND_GOT_EVENT = "pushing_and_got_event"


class ChangeKind(Enum):
    """Kind of filesystem change. Not load-bearing for the state machine."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"


@dataclass(frozen=True)
class ChangeEvent:
    """A single filesystem change notification."""

    path: Path
    """Absolute path that changed."""

    kind: ChangeKind = ChangeKind.MODIFIED
    """What happened to the path."""


class SignalKind(Enum):
    """The three inputs the control loop reacts to."""

    CHANGE = "change"
    DEBOUNCE_EXPIRED = "debounce_expired"
    PUSH_COMPLETED = "push_completed"


@dataclass(frozen=True)
class Signal:
    """An item in the state machine's inbox."""

    kind: SignalKind
    payload: Any = None


_run_ids = itertools.count(1)


@dataclass
class PushRun:
    """One execution of the push pipeline."""

    triggered_by_change: bool
    """False only for the initial push at startup."""

    open_browser: bool = False
    """Whether the pipeline opens the app in a browser when done."""

    id: int = field(default_factory=lambda: next(_run_ids))
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    succeeded: bool | None = None
    """None while in flight."""

    error: str | None = None
    """Failure message, if the pipeline raised."""

    @property
    def finished(self) -> bool:
        return self.finished_at is not None

    def mark_finished(self, error: str | None = None) -> None:
        """Record completion. A failed run is still a completed run."""
        self.finished_at = datetime.now()
        self.error = error
        self.succeeded = error is None

    @property
    def duration_str(self) -> str:
        """Human readable duration, e.g. "1.4s"."""
        if self.finished_at is None:
            return "running"
        seconds = (self.finished_at - self.started_at).total_seconds()
        return f"{seconds:.1f}s"
