import warnings
from typing import Optional

from cachetools import cached
from dotenv import find_dotenv, load_dotenv

from localwork.config.logger import logging_setup


@cached(cache={})
def setup():
    """
    One-time setup of environment and logging. Idempotent.
    """
    env_setup()

    warnings.filterwarnings("ignore", category=DeprecationWarning)

    logging_setup()


def env_setup() -> Optional[str]:
    """
    Load a `.env` file from the current directory or its parents, so `TASKS_DIR` and
    `NOTES_DIR` overrides can be kept per project. Existing environment values win.
    """
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path, override=False)
    return dotenv_path or None
