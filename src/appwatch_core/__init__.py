"""appwatch-core: change coalescing and file watching for appwatch."""

__version__ = "0.1.0"

# Models
from appwatch_core.models import ChangeEvent, ChangeKind, PushRun, Signal, SignalKind, WatcherState

# Config
from appwatch_core.config import WatchConfig, load_watch_config

# Core
from appwatch_core.debounce import DEBOUNCE_DELAY, DebounceTimer
from appwatch_core.ignore import EventFilter, should_ignore
from appwatch_core.state_machine import CoalescingStateMachine

__all__ = [
    "__version__",
    # Models
    "ChangeEvent",
    "ChangeKind",
    "PushRun",
    "Signal",
    "SignalKind",
    "WatcherState",
    # Config
    "WatchConfig",
    "load_watch_config",
    # Core
    "DEBOUNCE_DELAY",
    "DebounceTimer",
    "EventFilter",
    "should_ignore",
    "CoalescingStateMachine",
]
