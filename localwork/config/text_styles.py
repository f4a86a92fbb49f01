import re

from rich.highlighter import RegexHighlighter

# Text styles for the console. Standard rich color names.

COLOR_HEADING = "bold bright_green"

COLOR_KEY = "bright_blue"

COLOR_VALUE = "cyan"

COLOR_PATH = "cyan"

COLOR_HINT = "bright_black"

COLOR_SUCCESS = "green"

COLOR_ERROR = "bright_red"

STATUS_COLORS = {
    "backlog": "bright_black",
    "active": "yellow",
    "completed": "green",
    "archived": "blue",
}

PRIORITY_COLORS = {
    "low": "bright_black",
    "medium": "yellow",
    "high": "bright_red",
}

NOTE_TYPE_COLORS = {
    "daily": "blue",
    "meetings": "yellow",
    "technical": "magenta",
    "learning": "green",
}

RICH_STYLES = {
    "markdown.h1": "bold bright_green",
    "markdown.h2": "bold bright_green",
    "localwork.task_id": "bold magenta",
    "localwork.date": "cyan",
    "localwork.path": COLOR_PATH,
    "localwork.arrow": COLOR_HINT,
}


# Symbols for output.

EMOJI_HINT = "👉"

EMOJI_WARN = "△"

EMOJI_ERROR = EMOJI_WARN + EMOJI_WARN

EMOJI_SAVED = "⩣"

EMOJI_SUCCESS = "[✓]"

EMOJI_ARROW = "→"


class LocalWorkHighlighter(RegexHighlighter):
    """
    Highlights task ids, ISO dates and status arrows in console output.
    """

    base_style = "localwork."
    highlights = [
        r"(?P<task_id>\bTASK-\d+\b)",
        r"(?P<date>\b\d{4}-\d{2}-\d{2}\b)",
        f"(?P<arrow>{re.escape(EMOJI_ARROW)})",
    ]
