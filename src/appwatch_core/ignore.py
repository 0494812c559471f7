"""Ignore rules for file change events and packaging."""

import fnmatch
import logging
from collections.abc import Iterable
from pathlib import Path, PurePath

from appwatch_core.models import ChangeEvent

logger = logging.getLogger(__name__)

# Version control metadata
VCS_DIRS = frozenset({".git", ".hg", ".svn", ".bzr"})

# Build output and caches
BUILD_DIRS = frozenset({"dist", "build", "node_modules", "__pycache__", ".appwatch"})

# Editor swap/backup/temp files (4913 is vim's write test file)
EDITOR_TEMP_PATTERNS = ("*.swp", "*.swo", "*.swx", "*~", ".#*", "#*#", "4913", "*.tmp", ".DS_Store")


def should_ignore(relative_path: str | PurePath, extra_patterns: Iterable[str] = ()) -> bool:
    """Decide whether a change at ``relative_path`` is irrelevant.

    Args:
        relative_path: Path relative to the watched root
        extra_patterns: Additional fnmatch patterns, matched against the
            POSIX form of the whole relative path and against the file name

    Returns:
        True if the path must be ignored. Unknown paths are never ignored.
    """
    path = PurePath(relative_path)
    parts = path.parts

    if any(part in VCS_DIRS or part in BUILD_DIRS for part in parts):
        return True

    name = path.name
    if any(fnmatch.fnmatch(name, pattern) for pattern in EDITOR_TEMP_PATTERNS):
        return True

    posix = path.as_posix()
    for pattern in extra_patterns:
        if fnmatch.fnmatch(posix, pattern) or fnmatch.fnmatch(name, pattern):
            return True

    return False


class EventFilter:
    """Applies the ignore rules to absolute change events under a root."""

    def __init__(self, root: Path, extra_patterns: Iterable[str] = (), verbose: bool = False):
        """Initialize filter.

        Args:
            root: Absolute path of the watched directory
            extra_patterns: Extra ignore patterns from configuration
            verbose: Log every ignored path
        """
        self.root = root
        self.extra_patterns = tuple(extra_patterns)
        self.verbose = verbose

    def relative(self, path: Path) -> Path | None:
        """Return ``path`` relative to the root, or None if it is outside it."""
        try:
            return path.relative_to(self.root)
        except ValueError:
            logger.warning(f"Error obtaining relative file path to {path}")
            return None

    def is_relevant(self, event: ChangeEvent) -> bool:
        """Return True if the event should reach the state machine."""
        rel_path = self.relative(event.path)
        if rel_path is None:
            return False

        if should_ignore(rel_path, self.extra_patterns):
            if self.verbose:
                logger.debug(f"Ignoring file changes: {event.path}")
            return False

        return True
