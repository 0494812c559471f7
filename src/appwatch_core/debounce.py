"""One-shot debounce timer running on the asyncio event loop."""

import asyncio
import logging
from collections.abc import Callable

from appwatch_core.exceptions import WatcherInvariantError

logger = logging.getLogger(__name__)

DEBOUNCE_DELAY = 0.1
"""Seconds to wait after the first change before pushing.

Some file watcher backends emit two events for one change, and editors like
vim perform several genuine writes for one save.
"""


class DebounceTimer:
    """Timer that can be armed only while unarmed and always fires once."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self, delay: float, on_expire: Callable[[], None]) -> None:
        """Schedule ``on_expire`` to run once after ``delay`` seconds.

        Raises:
            WatcherInvariantError: If the timer is already armed
        """
        if self._handle is not None:
            raise WatcherInvariantError("Debounce timer armed twice")

        loop = self._loop or asyncio.get_running_loop()

        def fire() -> None:
            self._handle = None
            on_expire()

        self._handle = loop.call_later(delay, fire)
        logger.debug(f"Debounce timer armed ({delay * 1000:.0f}ms)")

    def close(self) -> None:
        """Drop a pending expiry when the watch session ends."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
