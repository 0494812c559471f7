"""Tests for the push pipeline and the push invoker."""

import asyncio
import json
import zipfile
from pathlib import Path

import httpx
import pytest
from cmdorc import RunState

from appwatch.push import PushInvoker, PushOptions, PushPipeline
from appwatch_core.config import WatchConfig
from appwatch_core.exceptions import PushError

UPLOAD_URL = "https://frontend.test/upload"
LOCAL_URL = "http://localhost:3001/upload"
PROGRESS_URL = "https://frontend.test/upload/progress?sessionId=123"
APP_URL = "https://frontend.test/apps/my-app"


def make_config(**kwargs) -> WatchConfig:
    kwargs.setdefault("app_name", "my-app")
    kwargs.setdefault("upload_url", UPLOAD_URL)
    kwargs.setdefault("local_upload_url", LOCAL_URL)
    return WatchConfig(**kwargs)


class Frontend:
    """MockTransport handler imitating the upload frontend."""

    def __init__(self, upload_status=200, upload_body=None, statuses=("in-progress", "done")):
        self.upload_status = upload_status
        self.upload_body = upload_body if upload_body is not None else {"links": {"progress": PROGRESS_URL}}
        self.statuses = list(statuses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            return httpx.Response(self.upload_status, json=self.upload_body)

        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        body = {"status": status}
        if status == "done":
            body["links"] = {"app": APP_URL}
        if status == "failed":
            body["message"] = "syntax error in index.js"
        return httpx.Response(200, json=body)


def make_pipeline(app_dir, frontend, opened=None, **config_kwargs):
    opened = opened if opened is not None else []
    return PushPipeline(
        app_dir,
        make_config(**config_kwargs),
        transport=httpx.MockTransport(frontend),
        open_url=opened.append,
        poll_interval=0.001,
    )


async def push(pipeline, open_browser=False, idle_timeout=5.0, use_local_frontend=False):
    return await pipeline.push(
        open_browser=open_browser,
        verbose=False,
        idle_timeout=idle_timeout,
        request_timeout=5.0,
        use_local_frontend=use_local_frontend,
    )


class TestPackage:
    def test_package_skips_ignored_files(self, app_dir):
        pipeline = PushPipeline(app_dir, make_config())
        archive = pipeline.package()
        try:
            with zipfile.ZipFile(archive) as zf:
                names = sorted(zf.namelist())
        finally:
            archive.unlink()

        assert names == ["app.json", "src/index.js"]

    def test_package_is_written_outside_app_folder(self, app_dir):
        pipeline = PushPipeline(app_dir, make_config())
        archive = pipeline.package()
        try:
            assert app_dir not in archive.parents
        finally:
            archive.unlink()

    def test_package_honours_configured_ignores(self, app_dir):
        (app_dir / "debug.log").write_text("noise")
        pipeline = PushPipeline(app_dir, make_config(ignore=["*.log"]))
        archive = pipeline.package()
        try:
            with zipfile.ZipFile(archive) as zf:
                assert "debug.log" not in zf.namelist()
        finally:
            archive.unlink()


class TestPushPipeline:
    @pytest.mark.asyncio
    async def test_successful_push_uploads_and_polls(self, app_dir):
        frontend = Frontend()
        pipeline = make_pipeline(app_dir, frontend)

        app_url = await push(pipeline)

        assert app_url == APP_URL
        upload = frontend.requests[0]
        assert upload.method == "POST"
        assert str(upload.url) == UPLOAD_URL
        body = upload.read()
        assert b'name="name"' in body
        assert b"my-app" in body
        assert b'name="file"; filename="my-app.zip"' in body
        assert [str(r.url) for r in frontend.requests[1:]] == [PROGRESS_URL, PROGRESS_URL]

    @pytest.mark.asyncio
    async def test_local_frontend(self, app_dir):
        frontend = Frontend()
        pipeline = make_pipeline(app_dir, frontend)

        await push(pipeline, use_local_frontend=True)

        assert str(frontend.requests[0].url) == LOCAL_URL

    @pytest.mark.asyncio
    async def test_opens_browser_only_when_asked(self, app_dir):
        opened = []
        pipeline = make_pipeline(app_dir, Frontend(), opened=opened)

        await push(pipeline, open_browser=False)
        assert opened == []

        pipeline = make_pipeline(app_dir, Frontend(), opened=opened)
        await push(pipeline, open_browser=True)
        assert opened == [APP_URL]

    @pytest.mark.asyncio
    async def test_archive_removed_after_push(self, app_dir, monkeypatch):
        created = []
        pipeline = make_pipeline(app_dir, Frontend(upload_status=500))
        original = pipeline.package

        def package():
            archive = original()
            created.append(archive)
            return archive

        monkeypatch.setattr(pipeline, "package", package)

        with pytest.raises(PushError):
            await push(pipeline)

        assert len(created) == 1
        assert not created[0].exists()

    @pytest.mark.asyncio
    async def test_upload_error_status(self, app_dir):
        pipeline = make_pipeline(app_dir, Frontend(upload_status=502))

        with pytest.raises(PushError, match="status code 502"):
            await push(pipeline)

    @pytest.mark.asyncio
    async def test_upload_without_progress_link(self, app_dir):
        pipeline = make_pipeline(app_dir, Frontend(upload_body={"links": {"progress": "  "}}))

        with pytest.raises(PushError, match="did not return a valid response"):
            await push(pipeline)

    @pytest.mark.asyncio
    async def test_upload_with_malformed_body(self, app_dir):
        pipeline = make_pipeline(app_dir, Frontend(upload_body={"unexpected": True}))

        with pytest.raises(PushError, match="invalid response"):
            await push(pipeline)

    @pytest.mark.asyncio
    async def test_bundling_failure(self, app_dir):
        pipeline = make_pipeline(app_dir, Frontend(statuses=("in-progress", "failed")))

        with pytest.raises(PushError, match="syntax error"):
            await push(pipeline)

    @pytest.mark.asyncio
    async def test_idle_timeout(self, app_dir):
        pipeline = make_pipeline(app_dir, Frontend(statuses=("in-progress",)))

        with pytest.raises(PushError, match="did not finish"):
            await push(pipeline, idle_timeout=0.01)

    @pytest.mark.asyncio
    async def test_network_error_becomes_push_error(self, app_dir):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        pipeline = PushPipeline(app_dir, make_config(), transport=httpx.MockTransport(refuse))

        with pytest.raises(PushError, match="Call to the frontend failed"):
            await push(pipeline)


class FakeHandle:
    def __init__(self, state):
        self.state = state

    async def wait(self):
        return self


class FakeOrchestrator:
    """Stands in for cmdorc's CommandOrchestrator."""

    def __init__(self, states):
        self.states = states
        self.ran: list[str] = []

    def list_commands(self):
        return list(self.states)

    async def run_command(self, name):
        self.ran.append(name)
        return FakeHandle(self.states[name])


class TestBuildCommands:
    @pytest.mark.asyncio
    async def test_runs_all_commands_by_default(self, app_dir):
        orchestrator = FakeOrchestrator({"Lint": RunState.SUCCESS, "Build": RunState.SUCCESS})
        pipeline = PushPipeline(
            app_dir,
            make_config(),
            orchestrator=orchestrator,
            transport=httpx.MockTransport(Frontend()),
            poll_interval=0.001,
        )

        await push(pipeline)

        assert orchestrator.ran == ["Lint", "Build"]

    @pytest.mark.asyncio
    async def test_runs_only_configured_commands(self, app_dir):
        orchestrator = FakeOrchestrator({"Lint": RunState.SUCCESS, "Build": RunState.SUCCESS})
        pipeline = PushPipeline(
            app_dir,
            make_config(build_commands=["Build"]),
            orchestrator=orchestrator,
            transport=httpx.MockTransport(Frontend()),
            poll_interval=0.001,
        )

        await push(pipeline)

        assert orchestrator.ran == ["Build"]

    @pytest.mark.asyncio
    async def test_failed_build_stops_push(self, app_dir):
        frontend = Frontend()
        orchestrator = FakeOrchestrator({"Build": RunState.FAILED, "Other": RunState.SUCCESS})
        pipeline = PushPipeline(
            app_dir,
            make_config(),
            orchestrator=orchestrator,
            transport=httpx.MockTransport(frontend),
        )

        with pytest.raises(PushError, match="Build command 'Build'"):
            await push(pipeline)

        assert orchestrator.ran == ["Build"]
        assert frontend.requests == []


class FakePipeline:
    def __init__(self, error=None, delay=0.0):
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []

    async def push(self, **kwargs):
        self.calls.append(kwargs)
        await asyncio.sleep(self.delay)
        if self.error:
            raise self.error


class FakeLiveReload:
    def __init__(self):
        self.reloads = 0

    def send_reload(self):
        self.reloads += 1


class TestPushInvoker:
    @pytest.mark.asyncio
    async def test_start_reports_completion(self):
        pipeline = FakePipeline(delay=0.01)
        livereload = FakeLiveReload()
        invoker = PushInvoker(pipeline, PushOptions(request_timeout=7.0), livereload)
        done = asyncio.Event()
        completed = []

        def on_complete(run):
            completed.append(run)
            done.set()

        run = invoker.start(triggered_by_change=True, on_complete=on_complete)
        assert not run.finished
        assert invoker.in_flight == 1

        await asyncio.wait_for(done.wait(), timeout=1.0)

        assert completed == [run]
        assert run.succeeded is True
        assert pipeline.calls[0]["open_browser"] is False
        assert pipeline.calls[0]["request_timeout"] == 7.0
        assert livereload.reloads == 1

    @pytest.mark.asyncio
    async def test_failed_push_still_completes(self):
        pipeline = FakePipeline(error=PushError("upload failed"))
        livereload = FakeLiveReload()
        invoker = PushInvoker(pipeline, PushOptions(), livereload)
        done = asyncio.Event()
        completed = []

        def on_complete(run):
            completed.append(run)
            done.set()

        invoker.start(triggered_by_change=True, on_complete=on_complete)
        await asyncio.wait_for(done.wait(), timeout=1.0)

        assert completed[0].succeeded is False
        assert completed[0].error == "upload failed"
        # Reload is sent regardless of the outcome
        assert livereload.reloads == 1

    @pytest.mark.asyncio
    async def test_initial_push_opens_browser_without_reload(self):
        pipeline = FakePipeline()
        livereload = FakeLiveReload()
        invoker = PushInvoker(pipeline, PushOptions(), livereload)

        run = await invoker.run_initial()

        assert run.triggered_by_change is False
        assert run.succeeded is True
        assert pipeline.calls[0]["open_browser"] is True
        assert livereload.reloads == 0

    @pytest.mark.asyncio
    async def test_initial_push_respects_no_browser(self):
        pipeline = FakePipeline()
        invoker = PushInvoker(pipeline, PushOptions(no_browser=True))

        await invoker.run_initial()

        assert pipeline.calls[0]["open_browser"] is False

    @pytest.mark.asyncio
    async def test_options_are_passed_through(self):
        pipeline = FakePipeline()
        options = PushOptions(verbose=True, request_timeout=3.0, idle_timeout=60.0, use_local_frontend=True)
        invoker = PushInvoker(pipeline, options)

        await invoker.run_initial()

        assert pipeline.calls[0] == {
            "open_browser": True,
            "verbose": True,
            "idle_timeout": 60.0,
            "request_timeout": 3.0,
            "use_local_frontend": True,
        }
