"""Push pipeline (build, package, upload, poll) and the invoker that runs it.

The invoker is the only piece the state machine talks to: it starts one
pipeline run as a task and reports completion, success or not.
"""

import asyncio
import logging
import os
import tempfile
import webbrowser
import zipfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx
from cmdorc import CommandOrchestrator, RunState

from appwatch_core.config import IDLE_TIMEOUT, WatchConfig
from appwatch_core.exceptions import PushError
from appwatch_core.ignore import should_ignore
from appwatch_core.models import PushRun

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0


@dataclass
class PushOptions:
    """Per-session push settings, from the command line."""

    no_browser: bool = False
    verbose: bool = False
    request_timeout: float = 10.0
    idle_timeout: float = IDLE_TIMEOUT
    use_local_frontend: bool = False


class PushPipeline:
    """Builds the app, uploads it to the frontend and waits for bundling."""

    def __init__(
        self,
        app_path: Path,
        config: WatchConfig,
        orchestrator: CommandOrchestrator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        open_url: Callable[[str], object] = webbrowser.open,
        poll_interval: float = POLL_INTERVAL,
    ):
        """Initialize pipeline.

        Args:
            app_path: Absolute app folder
            config: Loaded appwatch.toml
            orchestrator: cmdorc orchestrator for build commands (built from
                config when omitted and the config defines commands)
            transport: Optional httpx transport (tests use MockTransport)
            open_url: Opens the bundled app in a browser
            poll_interval: Seconds between progress polls
        """
        self.app_path = app_path
        self.config = config
        if orchestrator is None and config.runner_config is not None:
            orchestrator = CommandOrchestrator(config.runner_config)
        self.orchestrator = orchestrator
        self._transport = transport
        self._open_url = open_url
        self.poll_interval = poll_interval

    async def push(
        self,
        open_browser: bool,
        verbose: bool,
        idle_timeout: float,
        request_timeout: float,
        use_local_frontend: bool,
    ) -> str | None:
        """Run one full push.

        Returns:
            URL of the bundled app, if the frontend reported one

        Raises:
            PushError: If any step fails
        """
        await self._build()

        archive = await asyncio.to_thread(self.package)
        try:
            async with httpx.AsyncClient(timeout=request_timeout, transport=self._transport) as client:
                upload_url = self.config.upload_target(use_local_frontend)
                progress_uri = await self._upload(client, upload_url, archive, verbose)
                app_url = await self._poll(client, progress_uri, idle_timeout, verbose)
        except httpx.HTTPError as e:
            raise PushError(f"Call to the frontend failed: {e}") from e
        finally:
            archive.unlink(missing_ok=True)

        if open_browser and app_url:
            logger.info(f"Opening {app_url}")
            self._open_url(app_url)

        return app_url

    async def _build(self) -> None:
        if self.orchestrator is None:
            return

        names = self.config.build_commands
        if names is None:
            names = self.orchestrator.list_commands()

        for name in names:
            logger.info(f"Running build command '{name}'")
            handle = await self.orchestrator.run_command(name)
            result = await handle.wait()
            if result.state != RunState.SUCCESS:
                raise PushError(f"Build command '{name}' finished with {result.state.value}")

    def package(self) -> Path:
        """Zip every non-ignored file of the app folder.

        The archive is written to the system temp dir, outside the watched
        tree, and must be removed by the caller.
        """
        fd, name = tempfile.mkstemp(prefix=f"{self.config.app_name}-", suffix=".zip")
        os.close(fd)
        archive = Path(name)

        count = 0
        with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as zf:
            for dirpath, dirnames, filenames in os.walk(self.app_path):
                rel_dir = Path(dirpath).relative_to(self.app_path)
                dirnames[:] = sorted(d for d in dirnames if not should_ignore(rel_dir / d, self.config.ignore))
                for filename in sorted(filenames):
                    rel_path = rel_dir / filename
                    if should_ignore(rel_path, self.config.ignore):
                        continue
                    zf.write(Path(dirpath) / filename, rel_path.as_posix())
                    count += 1

        logger.debug(f"Packaged {count} file(s) into {archive}")
        return archive

    async def _upload(self, client: httpx.AsyncClient, upload_url: str, archive: Path, verbose: bool) -> str:
        app_name = self.config.app_name
        if verbose:
            logger.info(f"Uploading the app to the frontend: {upload_url}")

        response = await client.post(
            upload_url,
            files={"file": (f"{app_name}.zip", archive.read_bytes(), "application/zip")},
            data={"name": app_name},
        )

        if verbose:
            logger.info(f"Frontend responded {response.status_code}: {response.text}")

        if response.status_code != httpx.codes.OK:
            raise PushError(f"Uploading failed, the frontend returned status code {response.status_code}")

        try:
            body = response.json()
            progress_uri = body["links"]["progress"]
        except (ValueError, KeyError, TypeError) as e:
            raise PushError(f"Uploading failed, invalid response from the frontend: {e}") from e

        if not isinstance(progress_uri, str) or not progress_uri.strip():
            raise PushError("Uploading failed, the frontend did not return a valid response")

        logger.info("The app has been uploaded to the frontend successfully.")
        return progress_uri

    async def _poll(self, client: httpx.AsyncClient, progress_uri: str, idle_timeout: float, verbose: bool) -> str | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + idle_timeout

        while True:
            response = await client.get(progress_uri)
            if response.status_code != httpx.codes.OK:
                raise PushError(f"Polling upload progress failed with status code {response.status_code}")

            try:
                body = response.json()
            except ValueError as e:
                raise PushError(f"Invalid progress response: {e}") from e

            status = body.get("status")
            if verbose:
                logger.info(f"Bundling status: {status}")

            if status == "done":
                return body.get("links", {}).get("app")
            if status == "failed":
                raise PushError(f"Bundling failed: {body.get('message', 'unknown error')}")

            if loop.time() >= deadline:
                raise PushError(f"Bundling did not finish within {idle_timeout:.0f}s")

            await asyncio.sleep(self.poll_interval)


class PushInvoker:
    """Runs pipeline pushes and reports their completion."""

    def __init__(self, pipeline: PushPipeline, options: PushOptions, livereload=None):
        """Initialize invoker.

        Args:
            pipeline: Anything with PushPipeline's push() signature
            options: Session push settings
            livereload: Optional LiveReloadServer, notified after change pushes
        """
        self.pipeline = pipeline
        self.options = options
        self.livereload = livereload
        self._tasks: set[asyncio.Task] = set()

    def start(self, triggered_by_change: bool, on_complete: Callable[[PushRun], None]) -> PushRun:
        """Start a push in the background; ``on_complete`` gets the finished run."""
        run = PushRun(
            triggered_by_change=triggered_by_change,
            open_browser=not triggered_by_change and not self.options.no_browser,
        )
        task = asyncio.get_running_loop().create_task(self._execute(run, on_complete))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return run

    async def run_initial(self) -> PushRun:
        """Run the startup push and wait for it."""
        run = PushRun(triggered_by_change=False, open_browser=not self.options.no_browser)
        await self._run_pipeline(run)
        return run

    async def _execute(self, run: PushRun, on_complete: Callable[[PushRun], None]) -> None:
        await self._run_pipeline(run)
        on_complete(run)

    async def _run_pipeline(self, run: PushRun) -> None:
        logger.debug(f"Push #{run.id} started")
        try:
            await self.pipeline.push(
                open_browser=run.open_browser,
                verbose=self.options.verbose,
                idle_timeout=self.options.idle_timeout,
                request_timeout=self.options.request_timeout,
                use_local_frontend=self.options.use_local_frontend,
            )
        except Exception as e:
            run.mark_finished(error=str(e))
            logger.error(f"Push #{run.id} failed: {e}")
        else:
            run.mark_finished()
            logger.info(f"Push #{run.id} finished ({run.duration_str})")

        if run.triggered_by_change and not run.open_browser and self.livereload is not None:
            self.livereload.send_reload()

    @property
    def in_flight(self) -> int:
        """Change-triggered pushes still running. For tests and embedders."""
        return len(self._tasks)
