"""
Output to the console for the CLI. Everything printed for the user goes through here,
using the shared rich console so logging and output interleave correctly.
"""

from typing import Optional

import rich.style
from rich.markdown import Markdown
from rich.text import Text

from localwork.config.logger import get_console
from localwork.config.text_styles import (
    COLOR_ERROR,
    COLOR_HEADING,
    COLOR_HINT,
    COLOR_SUCCESS,
    EMOJI_ERROR,
    EMOJI_HINT,
    EMOJI_SUCCESS,
)

null_style = rich.style.Style.null()


def rich_print(*args: str | Text | Markdown, **kwargs):
    get_console().print(*args, **kwargs)


def cprint(message: str | Text | Markdown = "", *args, color: Optional[str] = None, end="\n"):
    """
    Main way to print to the console. Plain strings are %-formatted with any args and
    printed without markup, so user text with brackets is safe.
    """
    if isinstance(message, (Text, Markdown)):
        rich_print(message, end=end)
    else:
        text = str(message) % args if args else str(message)
        rich_print(Text(text, style=color or null_style), end=end)


def print_heading(message: str, *args):
    text = message % args if args else message
    cprint()
    cprint(text.upper(), color=COLOR_HEADING)


def print_success(message: str, *args):
    cprint(f"{EMOJI_SUCCESS} {message}", *args, color=COLOR_SUCCESS)


def print_hint(message: str, *args):
    cprint(f"{EMOJI_HINT} {message}", *args, color=COLOR_HINT)


def print_error(message: str, hint: Optional[str] = None):
    cprint(f"{EMOJI_ERROR} {message}", color=COLOR_ERROR)
    if hint:
        print_hint(hint)


def print_markdown(doc_str: str):
    rich_print(Markdown(doc_str, justify="left"))


def print_line(*parts: tuple[str, Optional[str]]):
    """
    Print one line built from (text, style) parts.
    """
    rich_print(Text.assemble(*((text, style or null_style) for text, style in parts)))
