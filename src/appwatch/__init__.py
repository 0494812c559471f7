"""appwatch: watch an app folder and push it whenever files change."""

__version__ = "0.1.0"

# Public API
from appwatch.controller import WatchController
from appwatch.push import PushInvoker, PushOptions, PushPipeline

__all__ = [
    "__version__",
    "WatchController",
    "PushInvoker",
    "PushOptions",
    "PushPipeline",
]
