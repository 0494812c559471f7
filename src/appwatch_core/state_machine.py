"""Change-coalescing state machine - decides when to push.

One control loop owns ``WatcherState``. Everything else (watchdog thread,
debounce timer, running pushes) talks to it only by putting a ``Signal`` in
its inbox, so the state needs no lock.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from appwatch_core.debounce import DEBOUNCE_DELAY
from appwatch_core.exceptions import WatcherInvariantError
from appwatch_core.ignore import EventFilter
from appwatch_core.models import ChangeEvent, PushRun, Signal, SignalKind, WatcherState
from appwatch_core.notifier import NoOpNotifier, WatchNotifier

logger = logging.getLogger(__name__)


class Timer(Protocol):
    """What the state machine needs from a debounce timer."""

    def arm(self, delay: float, on_expire: Callable[[], None]) -> None: ...


class PushStarter(Protocol):
    """What the state machine needs from a push invoker."""

    def start(self, triggered_by_change: bool, on_complete: Callable[[PushRun], None]) -> PushRun: ...


class CoalescingStateMachine:
    """Turns a noisy stream of change events into a minimal series of pushes.

    Guarantees:
    - at most one push in flight
    - no second debounce timer while one is armed
    - at most one follow-up push queued, as ``PUSHING_AND_GOT_EVENT``
    - every relevant change either arms the timer, is absorbed by it, or
      marks the running push for a re-run
    """

    def __init__(
        self,
        event_filter: EventFilter,
        timer: Timer,
        invoker: PushStarter,
        notifier: WatchNotifier | None = None,
        debounce_delay: float = DEBOUNCE_DELAY,
        verbose: bool = False,
    ):
        """Initialize state machine.

        Args:
            event_filter: Drops irrelevant change events
            timer: Debounce timer, armed on the first change after idle
            invoker: Starts change-triggered pushes
            notifier: Optional status line handler (defaults to silent)
            debounce_delay: Seconds to wait for a burst to settle
            verbose: Log every received event
        """
        self.event_filter = event_filter
        self.timer = timer
        self.invoker = invoker
        self.notifier = notifier or NoOpNotifier()
        self.debounce_delay = debounce_delay
        self.verbose = verbose

        self.state = WatcherState.WAITING
        self.current_run: PushRun | None = None
        self.runs_started = 0
        self._inbox: asyncio.Queue[Signal] = asyncio.Queue()

    # ========================================================================
    # Senders (enqueue only, never touch state)
    # ========================================================================

    def submit_change(self, event: ChangeEvent) -> None:
        """Queue a raw change notification. Must be called on the loop thread."""
        self._inbox.put_nowait(Signal(SignalKind.CHANGE, event))

    def submit_debounce_expired(self) -> None:
        self._inbox.put_nowait(Signal(SignalKind.DEBOUNCE_EXPIRED))

    def submit_push_completed(self, run: PushRun) -> None:
        self._inbox.put_nowait(Signal(SignalKind.PUSH_COMPLETED, run))

    @property
    def pending_signals(self) -> int:
        """Signals queued but not yet processed. For tests and embedders."""
        return self._inbox.qsize()

    # ========================================================================
    # Control loop
    # ========================================================================

    async def run(self) -> None:
        """Process signals one at a time, in arrival order, until cancelled."""
        logger.debug("Control loop started")
        while True:
            signal = await self._inbox.get()
            try:
                self.dispatch(signal)
            finally:
                self._inbox.task_done()

    def drain(self) -> None:
        """Process every signal queued so far, without waiting for new ones.

        For tests and embedders that step the machine by hand instead of
        running the control loop.
        """
        while not self._inbox.empty():
            signal = self._inbox.get_nowait()
            try:
                self.dispatch(signal)
            finally:
                self._inbox.task_done()

    def dispatch(self, signal: Signal) -> None:
        """Apply one input to the state machine."""
        if signal.kind is SignalKind.CHANGE:
            self._on_change(signal.payload)
        elif signal.kind is SignalKind.DEBOUNCE_EXPIRED:
            self._on_debounce_expired()
        elif signal.kind is SignalKind.PUSH_COMPLETED:
            self._on_push_completed(signal.payload)
        else:
            raise WatcherInvariantError(f"Unknown signal kind: {signal.kind}")

    # ========================================================================
    # Transitions
    # ========================================================================

    def _on_change(self, event: ChangeEvent) -> None:
        if self.verbose:
            logger.debug(f"File change event details: {event.kind.value} {event.path}")

        if not self.event_filter.is_relevant(event):
            return

        if self.state is WatcherState.WAITING:
            self._set_state(WatcherState.INITIAL_DELAY)
            self.timer.arm(self.debounce_delay, self.submit_debounce_expired)
        elif self.state is WatcherState.PUSHING:
            self._set_state(WatcherState.PUSHING_AND_GOT_EVENT)
        # INITIAL_DELAY: the armed timer covers this burst.
        # PUSHING_AND_GOT_EVENT: a re-run is already queued.

    def _on_debounce_expired(self) -> None:
        if self.state is not WatcherState.INITIAL_DELAY:
            raise WatcherInvariantError(f"Debounce timer fired in state {self.state.name}")

        self._set_state(WatcherState.PUSHING)
        self.notifier.info("File change detected, executing push.")
        self._start_push()

    def _on_push_completed(self, run: PushRun) -> None:
        if self.state is WatcherState.PUSHING_AND_GOT_EVENT:
            # A change arrived while the previous push was running, push again.
            self._set_state(WatcherState.PUSHING)
            self.notifier.info("Files changed during push, executing push again.")
            self._start_push()
        elif self.state is WatcherState.PUSHING:
            self.current_run = None
            self._set_state(WatcherState.WAITING)
            self.notifier.info("Push done, watching for file changes.")
        else:
            raise WatcherInvariantError(f"Push #{run.id} completed in state {self.state.name}")

    def _start_push(self) -> None:
        self.current_run = self.invoker.start(
            triggered_by_change=True,
            on_complete=self.submit_push_completed,
        )
        self.runs_started += 1

    def _set_state(self, state: WatcherState) -> None:
        logger.debug(f"Watcher state {self.state.name} -> {state.name}")
        self.state = state
