"""Watch session controller. Wires the pieces together and runs the session."""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from appwatch.livereload import LiveReloadServer
from appwatch.push import PushInvoker, PushOptions, PushPipeline
from appwatch_core.config import WatchConfig, load_watch_config
from appwatch_core.debounce import DebounceTimer
from appwatch_core.exceptions import ConfigError, WatchStartupError
from appwatch_core.file_watcher import WatchdogEventSource
from appwatch_core.ignore import EventFilter
from appwatch_core.notifier import NoOpNotifier, WatchNotifier
from appwatch_core.state_machine import CoalescingStateMachine
from appwatch_core.watchers import ChangeEventSource, ChangeSink

logger = logging.getLogger(__name__)

EventSourceFactory = Callable[[Path, asyncio.AbstractEventLoop, ChangeSink], ChangeEventSource]
PipelineFactory = Callable[[Path, WatchConfig], PushPipeline]


class WatchController:
    """One watch session: initial push, then push on every settled change."""

    def __init__(
        self,
        app_path: str | Path,
        options: PushOptions | None = None,
        notifier: WatchNotifier | None = None,
        pipeline_factory: PipelineFactory = PushPipeline,
        event_source_factory: EventSourceFactory = WatchdogEventSource,
        enable_livereload: bool = True,
    ):
        """Initialize controller.

        Args:
            app_path: Folder to watch and push
            options: Push settings (defaults when omitted)
            notifier: Optional status line handler (defaults to silent)
            pipeline_factory: Builds the push pipeline from (root, config)
            event_source_factory: Builds the file event source
            enable_livereload: Start the live reload server if configured
        """
        self.app_path = Path(app_path)
        self.options = options or PushOptions()
        self.notifier = notifier or NoOpNotifier()
        self._pipeline_factory = pipeline_factory
        self._event_source_factory = event_source_factory
        self._enable_livereload = enable_livereload

        self.root: Path | None = None
        self.config: WatchConfig | None = None
        self.machine: CoalescingStateMachine | None = None
        self.invoker: PushInvoker | None = None
        self.livereload: LiveReloadServer | None = None

    def resolve_root(self) -> Path:
        """Absolute, existing app folder.

        Raises:
            WatchStartupError: If the path is missing or not a directory
        """
        try:
            root = self.app_path.resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise WatchStartupError(f"Cannot resolve app path {self.app_path}: {e}") from e
        if not root.is_dir():
            raise WatchStartupError(f"App path is not a directory: {root}")
        return root

    async def run(self) -> None:
        """Run the session until cancelled.

        Raises:
            WatchStartupError: On any unrecoverable startup precondition
        """
        loop = asyncio.get_running_loop()

        self.root = self.resolve_root()
        try:
            self.config = load_watch_config(self.root)
        except ConfigError as e:
            raise WatchStartupError(str(e)) from e

        if self._enable_livereload and self.config.livereload.enabled:
            self.livereload = LiveReloadServer(self.config.livereload.host, self.config.livereload.port)

        pipeline = self._pipeline_factory(self.root, self.config)
        self.invoker = PushInvoker(pipeline, self.options, self.livereload)
        timer = DebounceTimer(loop)
        self.machine = CoalescingStateMachine(
            EventFilter(self.root, self.config.ignore, verbose=self.options.verbose),
            timer,
            self.invoker,
            notifier=self.notifier,
            verbose=self.options.verbose,
        )

        source = self._event_source_factory(self.root, loop, self.machine.submit_change)
        source.start()

        try:
            await self._start_livereload()

            # Immediately push once, then start reacting to changes.
            run = await self.invoker.run_initial()
            if run.succeeded:
                self.notifier.info("Initial push done, watching for file changes.")
            else:
                self.notifier.warning(f"Initial push failed ({run.error}), watching for file changes.")

            await self.machine.run()
        finally:
            source.stop()
            timer.close()
            if self.livereload is not None:
                await self.livereload.stop()

    async def _start_livereload(self) -> None:
        if self.livereload is None:
            return
        try:
            await self.livereload.start()
        except OSError as e:
            logger.error(f"Failed to start live reload server: {e}")
            self.notifier.error(f"Live reload disabled: {e}")
            self.livereload = None
            self.invoker.livereload = None
            return

        if self.options.verbose:
            logger.info(f"Add this to your dev page to enable live reload:\n{self.livereload.client_snippet()}")
