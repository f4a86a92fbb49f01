import logging
import os
import threading
from functools import cache
from logging import Formatter
from pathlib import Path
from typing import Optional

import rich
from rich import reconfigure
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from localwork.config.settings import (
    APP_NAME,
    global_data_dir,
    global_settings,
    LOG_DIR_NAME,
    LogLevel,
)
from localwork.config.text_styles import EMOJI_ERROR, EMOJI_WARN, LocalWorkHighlighter, RICH_STYLES

LOG_FILE_NAME = f"{APP_NAME}.log"

_log_root: Optional[Path] = None

_log_lock = threading.RLock()


def log_dir() -> Path:
    return (_log_root or global_data_dir()) / LOG_DIR_NAME


def log_file_path() -> Path:
    return log_dir() / LOG_FILE_NAME


@cache
def get_highlighter():
    return LocalWorkHighlighter()


@cache
def get_theme():
    return Theme(RICH_STYLES)


reconfigure(theme=get_theme(), highlighter=get_highlighter())


def get_console() -> Console:
    return rich.get_console()


_file_handler: Optional[logging.Handler] = None
_console_handler: Optional[logging.Handler] = None


def logging_setup():
    """
    Set up or reset logging setup. Call at initial run and again if log directory changes.
    Replaces all previous handlers on the root logger.
    """
    global _file_handler, _console_handler

    # Verbose logging to file, important logging to console.
    try:
        os.makedirs(log_dir(), exist_ok=True)
        file_handler: Optional[logging.Handler] = logging.FileHandler(log_file_path())
        file_handler.setLevel(global_settings().file_log_level.value)
        file_handler.setFormatter(Formatter("%(asctime)s %(levelname).1s %(name)s - %(message)s"))
    except OSError:
        # A read-only home directory shouldn't keep the CLI from working.
        file_handler = None

    console_handler = RichHandler(
        console=rich.get_console(),
        level=global_settings().console_log_level.value,
        show_time=False,
        show_path=False,
        show_level=False,
        highlighter=get_highlighter(),
        markup=False,
    )
    console_handler.setLevel(global_settings().console_log_level.value)
    console_handler.setFormatter(Formatter("%(message)s"))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        if handler is _file_handler:
            handler.close()
    root_logger.addHandler(console_handler)
    if file_handler:
        root_logger.addHandler(file_handler)

    _file_handler = file_handler
    _console_handler = console_handler


def prefix(line, emoji: str = "", warn_emoji: str = ""):
    emojis = f"{warn_emoji}{emoji}".strip()
    return " ".join(filter(None, [emojis, line]))


def prefix_args(args, emoji: str = "", warn_emoji: str = ""):
    if len(args) > 0:
        args = (prefix(args[0], emoji, warn_emoji),) + args[1:]
    return args


class CustomLogger:
    """
    Custom logger to be clearer about user messages.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def debug(self, *args, **kwargs):
        self.logger.debug(*prefix_args(args), **kwargs)

    def info(self, *args, **kwargs):
        self.logger.info(*prefix_args(args), **kwargs)

    def message(self, *args, **kwargs):
        self.logger.warning(*prefix_args(args), **kwargs)

    def warning(self, *args, **kwargs):
        self.logger.warning(*prefix_args(args, warn_emoji=EMOJI_WARN), **kwargs)

    def error(self, *args, **kwargs):
        self.logger.error(*prefix_args(args, warn_emoji=EMOJI_ERROR), **kwargs)

    def log(self, level: LogLevel, *args, **kwargs):
        getattr(self, level.name)(*args, **kwargs)

    # Fallback for other attributes/methods.
    def __getattr__(self, attr):
        return getattr(self.logger, attr)


def get_logger(name: str):
    return CustomLogger(name)


def reset_logging(log_root: Optional[Path] = None):
    """
    Reset the logging root, if it has changed. Log files live in the workspace's
    dot directory for local workspaces and in the global data directory otherwise.
    """
    global _log_root
    with _log_lock:
        if log_root and log_root != _log_root:
            _log_root = log_root
            logging_setup()
            log = get_logger(__name__)
            log.info("Resetting log root: %s", log_file_path().absolute())
