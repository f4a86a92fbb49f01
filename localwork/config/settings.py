import os
import sys
import threading
from contextlib import contextmanager
from enum import Enum
from logging import DEBUG, ERROR, INFO, WARNING
from pathlib import Path
from typing import Dict

from pydantic.dataclasses import dataclass


APP_NAME = "local-work"

DOT_DIR = ".local-work"

MARKER_FILE = "config.json"

MARKER_VERSION = "2.0.0"

LOG_DIR_NAME = "logs"

# Environment overrides for the family roots.
TASKS_DIR_ENV = "TASKS_DIR"
NOTES_DIR_ENV = "NOTES_DIR"

LOG_LEVEL_ENV = "LOCAL_WORK_LOG_LEVEL"


def global_data_dir() -> Path:
    """
    Per-user data directory holding the global workspace.

    Linux: $XDG_DATA_HOME/local-work (default ~/.local/share/local-work)
    macOS: ~/Library/Application Support/local-work
    Windows: %LOCALAPPDATA%\\local-work
    """
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
    elif sys.platform == "darwin":
        base = str(Path.home() / "Library" / "Application Support")
    else:
        base = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / APP_NAME


def env_overrides() -> Dict[str, Path]:
    """
    Explicit family root overrides from the environment, keyed by family name.
    """
    overrides = {}
    for family, var in (("tasks", TASKS_DIR_ENV), ("notes", NOTES_DIR_ENV)):
        value = os.environ.get(var, "").strip()
        if value:
            overrides[family] = Path(value).expanduser().absolute()
    return overrides


class LogLevel(Enum):
    debug = DEBUG
    info = INFO
    warning = WARNING
    message = WARNING  # Same as warning, just for important console messages.
    error = ERROR

    @classmethod
    def parse(cls, level_str: str):
        canon_name = level_str.strip().lower()
        if canon_name == "warn":
            canon_name = "warning"
        try:
            return cls[canon_name]
        except KeyError:
            raise ValueError(
                f"Invalid log level: `{level_str}`. Valid options are: {', '.join(f'`{name}`' for name in cls.__members__)}"
            )

    def __str__(self):
        return self.name


@dataclass
class Settings:
    console_log_level: LogLevel
    """The log level for console-based logging."""

    file_log_level: LogLevel
    """The log level for file-based logging."""

    default_priority: str
    """Priority given to new tasks when none is specified."""

    archive_days: int
    """Completed tasks untouched for longer than this are archived."""

    id_lock_max_attempts: int
    """How many times to try to take the id lock before degrading."""

    id_lock_retry_delay: float
    """Initial delay in seconds between id lock attempts. Doubles on each retry."""

    id_lock_max_delay: float
    """Cap on the delay between id lock attempts."""

    id_lock_stale_secs: float
    """A lock file older than this was left by a crashed process and is removed."""


def _initial_console_level() -> LogLevel:
    level_str = os.environ.get(LOG_LEVEL_ENV)
    return LogLevel.parse(level_str) if level_str else LogLevel.warning


# Initial default settings.
_settings = Settings(
    console_log_level=_initial_console_level(),
    file_log_level=LogLevel.info,
    default_priority="medium",
    archive_days=30,
    id_lock_max_attempts=12,
    id_lock_retry_delay=0.01,
    id_lock_max_delay=0.25,
    id_lock_stale_secs=30.0,
)


def global_settings() -> Settings:
    """
    Read access to global settings.
    """
    return _settings


_settings_lock = threading.RLock()


@contextmanager
def update_global_settings():
    """
    Context manager for thread-safe updates to global settings.
    """
    with _settings_lock:
        yield _settings


## Tests


def test_log_level_parse():
    assert LogLevel.parse("WARN") is LogLevel.warning
    assert LogLevel.parse(" debug ") is LogLevel.debug
    try:
        LogLevel.parse("loud")
        assert False, "Should have raised ValueError"
    except ValueError as e:
        assert "Invalid log level" in str(e)


def test_env_overrides(monkeypatch):
    monkeypatch.setenv(TASKS_DIR_ENV, "/tmp/my-tasks")
    monkeypatch.setenv(NOTES_DIR_ENV, "  ")
    assert env_overrides() == {"tasks": Path("/tmp/my-tasks")}


def test_global_data_dir_xdg(monkeypatch):
    if sys.platform in ("win32", "darwin"):
        return
    monkeypatch.setenv("XDG_DATA_HOME", "/data")
    assert global_data_dir() == Path("/data") / APP_NAME
