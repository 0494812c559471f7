"""Exceptions raised by appwatch."""


class AppwatchError(Exception):
    """Base class for appwatch errors."""

    pass


class ConfigError(AppwatchError):
    """Raised when appwatch.toml cannot be read or parsed."""

    pass


class WatchStartupError(AppwatchError):
    """Raised when a watch session cannot start (bad path, observer failure)."""

    pass


class PushError(AppwatchError):
    """Raised by the push pipeline when a build, upload or poll fails."""

    pass


class WatcherInvariantError(RuntimeError):
    """Raised when the state machine receives an input its state cannot accept.

    This indicates a logic defect, never a user-facing condition.
    """

    pass


__all__ = [
    "AppwatchError",
    "ConfigError",
    "WatchStartupError",
    "PushError",
    "WatcherInvariantError",
]
