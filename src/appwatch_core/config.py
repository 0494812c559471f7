"""Configuration parsing for appwatch."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

from cmdorc import RunnerConfig, load_config

from appwatch_core.exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "appwatch.toml"

DEFAULT_UPLOAD_URL = "https://frontend.appwatch.dev/upload"
DEFAULT_LOCAL_UPLOAD_URL = "http://localhost:3001/upload"
DEFAULT_LIVERELOAD_PORT = 35729

IDLE_TIMEOUT = 180.0
"""Seconds to keep polling the bundling service before giving up."""


@dataclass
class LiveReloadConfig:
    """Live reload websocket server settings."""

    host: str = "127.0.0.1"
    port: int = DEFAULT_LIVERELOAD_PORT
    enabled: bool = True


@dataclass
class WatchConfig:
    """Everything appwatch reads from appwatch.toml."""

    app_name: str
    """Name sent along with the uploaded package."""

    upload_url: str = DEFAULT_UPLOAD_URL
    local_upload_url: str = DEFAULT_LOCAL_UPLOAD_URL

    ignore: list[str] = field(default_factory=list)
    """Extra ignore patterns (fnmatch style)."""

    livereload: LiveReloadConfig = field(default_factory=LiveReloadConfig)

    build_commands: list[str] | None = None
    """cmdorc commands to run before packaging. None means all of them."""

    runner_config: RunnerConfig | None = None
    """cmdorc runner config, when the file defines any [[command]]."""

    source: Path | None = None
    """Config file this was loaded from, if any."""

    def upload_target(self, use_local_frontend: bool) -> str:
        return self.local_upload_url if use_local_frontend else self.upload_url


def load_watch_config(app_path: str | Path) -> WatchConfig:
    """Load appwatch.toml from an app folder.

    Args:
        app_path: App folder (the watched directory)

    Returns:
        WatchConfig; defaults when the folder has no appwatch.toml

    Raises:
        ConfigError: If the file exists but cannot be parsed
    """
    app_path = Path(app_path)
    path = app_path / CONFIG_FILENAME

    if not path.exists():
        logger.debug(f"No {CONFIG_FILENAME} in {app_path}, using defaults")
        return WatchConfig(app_name=app_path.name)

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    app_raw = raw.get("app", {})
    frontend_raw = raw.get("frontend", {})
    watch_raw = raw.get("watch", {})
    livereload_raw = raw.get("livereload", {})
    push_raw = raw.get("push", {})

    livereload = LiveReloadConfig(
        host=livereload_raw.get("host", "127.0.0.1"),
        port=int(livereload_raw.get("port", DEFAULT_LIVERELOAD_PORT)),
        enabled=livereload_raw.get("enabled", True),
    )

    # Use cmdorc's loader for build commands
    runner_config = None
    if raw.get("command"):
        try:
            runner_config = load_config(path)
        except Exception as e:
            raise ConfigError(f"Invalid [[command]] entries in {path}: {e}") from e

    config = WatchConfig(
        app_name=app_raw.get("name", app_path.name),
        upload_url=frontend_raw.get("upload_url", DEFAULT_UPLOAD_URL),
        local_upload_url=frontend_raw.get("local_upload_url", DEFAULT_LOCAL_UPLOAD_URL),
        ignore=list(watch_raw.get("ignore", [])),
        livereload=livereload,
        build_commands=push_raw.get("build"),
        runner_config=runner_config,
        source=path,
    )
    logger.debug(f"Loaded config from {path}")
    return config
