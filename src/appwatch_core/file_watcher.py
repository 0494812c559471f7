"""File watcher implementation using watchdog."""

import asyncio
import logging
import os
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from appwatch_core.exceptions import WatchStartupError
from appwatch_core.models import ChangeEvent, ChangeKind
from appwatch_core.watchers import ChangeSink

logger = logging.getLogger(__name__)


class _ForwardingHandler(FileSystemEventHandler):
    """Hands every write-type event to the event loop, unfiltered.

    Runs on the watchdog observer thread. Open/close events are not
    forwarded, packaging reads files and would otherwise trigger pushes.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, sink: ChangeSink):
        self.loop = loop
        self.sink = sink

    def _forward(self, path: str | bytes, kind: ChangeKind) -> None:
        event = ChangeEvent(path=Path(os.fsdecode(path)), kind=kind)
        try:
            self.loop.call_soon_threadsafe(self.sink, event)
        except RuntimeError as e:
            # Loop already closed during shutdown
            logger.debug(f"Dropped change event for {path}: {e}")

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward(event.src_path, ChangeKind.CREATED)

    def on_modified(self, event: FileSystemEvent) -> None:
        # A directory "modification" only mirrors a change to one of its
        # entries, which arrives as its own event.
        if event.is_directory:
            return
        self._forward(event.src_path, ChangeKind.MODIFIED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._forward(event.src_path, ChangeKind.DELETED)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Either end of a rename may be the relevant one, e.g. a source file
        # renamed to an ignored backup name.
        self._forward(event.src_path, ChangeKind.MOVED)
        self._forward(event.dest_path, ChangeKind.MOVED)


class WatchdogEventSource:
    """Watches a directory tree recursively and feeds a change sink."""

    def __init__(self, root: Path, loop: asyncio.AbstractEventLoop, sink: ChangeSink):
        """Initialize event source.

        Args:
            root: Absolute directory to watch
            loop: Event loop the sink must be called on
            sink: Callback receiving ChangeEvents
        """
        self.root = root
        self.loop = loop
        self.handler = _ForwardingHandler(loop, sink)
        self.observer = Observer()

    def start(self) -> None:
        """Start the observer thread.

        Raises:
            WatchStartupError: If the directory cannot be watched
        """
        try:
            self.observer.schedule(self.handler, str(self.root), recursive=True)
            self.observer.start()
        except Exception as e:
            raise WatchStartupError(f"Cannot watch {self.root}: {e}") from e
        logger.info(f"Watching {self.root} for changes")

    def stop(self) -> None:
        """Stop the observer thread."""
        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join(timeout=2.0)
            logger.info("Stopped file watcher")
