"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from appwatch_core.exceptions import WatcherInvariantError  # noqa: E402
from appwatch_core.ignore import EventFilter  # noqa: E402
from appwatch_core.models import ChangeEvent, PushRun  # noqa: E402
from appwatch_core.state_machine import CoalescingStateMachine  # noqa: E402

ROOT = Path("/project")


class FakeTimer:
    """Debounce timer that only fires when told to."""

    def __init__(self):
        self.delays: list[float] = []
        self._callback = None

    @property
    def armed(self) -> bool:
        return self._callback is not None

    def arm(self, delay, on_expire):
        if self._callback is not None:
            raise WatcherInvariantError("Debounce timer armed twice")
        self.delays.append(delay)
        self._callback = on_expire

    def fire(self):
        callback, self._callback = self._callback, None
        callback()


class FakeInvoker:
    """Push invoker whose runs finish only when told to."""

    def __init__(self):
        self.runs: list[PushRun] = []
        self.pending: list[tuple[PushRun, object]] = []

    def start(self, triggered_by_change, on_complete):
        run = PushRun(triggered_by_change=triggered_by_change)
        self.runs.append(run)
        self.pending.append((run, on_complete))
        return run

    @property
    def in_flight(self) -> int:
        return len(self.pending)

    def complete(self, error=None):
        run, on_complete = self.pending.pop(0)
        run.mark_finished(error=error)
        on_complete(run)


class RecordingNotifier:
    """Keeps every notification in memory."""

    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def info(self, msg):
        self.messages.append(("info", msg))

    def warning(self, msg):
        self.messages.append(("warning", msg))

    def error(self, msg):
        self.messages.append(("error", msg))


def make_machine(root: Path = ROOT, **kwargs):
    """Build a state machine wired to fakes. Returns (machine, timer, invoker)."""
    timer = FakeTimer()
    invoker = FakeInvoker()
    machine = CoalescingStateMachine(EventFilter(root), timer, invoker, **kwargs)
    return machine, timer, invoker


def change(machine, name: str, root: Path = ROOT) -> None:
    """Deliver one change notification for ``root / name`` and process it."""
    machine.submit_change(ChangeEvent(root / name))
    machine.drain()


@pytest.fixture
def machine_parts():
    return make_machine(notifier=RecordingNotifier())


@pytest.fixture
def app_dir(tmp_path):
    """A small app folder with some noise that must never be packaged."""
    app = tmp_path / "my-app"
    (app / "src").mkdir(parents=True)
    (app / "src" / "index.js").write_text("console.log('hi');\n")
    (app / "app.json").write_text('{"name": "my-app"}\n')
    (app / ".git").mkdir()
    (app / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (app / "node_modules" / "lib").mkdir(parents=True)
    (app / "node_modules" / "lib" / "index.js").write_text("")
    (app / "src" / ".index.js.swp").write_text("")
    return app
