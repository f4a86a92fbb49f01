import shlex
from datetime import datetime
from pathlib import Path
from textwrap import indent
from typing import Any, Iterable, Optional

import humanize
import regex


def fmt_lines(values: Iterable[Any], prefix: str = "    ", line_break: str = "\n") -> str:
    """
    Simple indented or prefixed formatting of values one per line.
    """
    return indent(line_break.join(str(value) for value in values), prefix).rstrip()


def single_line(text: str) -> str:
    """
    Convert newlines and other whitespace to spaces.
    """
    return regex.sub(r"\s+", " ", text).strip()


def fmt_path(path: str | Path, resolve: bool = True) -> str:
    """
    Format a path for display, relative to the current directory when inside it, and
    quoted if it contains whitespace.
    """
    if resolve:
        path = Path(path).resolve()
        cwd = Path.cwd().resolve()
        if path.is_relative_to(cwd):
            path = path.relative_to(cwd)
    else:
        path = Path(path)

    return shlex.quote(str(path))


def fmt_age(timestamp: float, now: Optional[datetime] = None) -> str:
    """
    Format a file timestamp as an age, e.g. "3 days ago".
    """
    now = now or datetime.now()
    return humanize.naturaltime(now - datetime.fromtimestamp(timestamp))


def fmt_count_items(count: int, name: str = "item") -> str:
    """
    Format a count and a name as a phrase, e.g. "1 task" or "2 tasks".
    """
    return f"{count} {name}" if count == 1 else f"{count} {name}s"


_hours_pattern = regex.compile(r"^(\d+(?:\.\d*)?)([hm])$")


def parse_hours(text: Optional[str]) -> Optional[float]:
    """
    Parse a time estimate like "2h", "1.5h" or "30m" as hours. None if unparseable.
    """
    match = _hours_pattern.match((text or "").strip().lower())
    if not match:
        return None
    value = float(match.group(1))
    return value if match.group(2) == "h" else value / 60


def fmt_hours(hours: float) -> str:
    """
    Format hours as "2h", "45m" or "2h 30m".
    """
    total_minutes = round(abs(hours) * 60)
    h, m = divmod(total_minutes, 60)
    if h and m:
        return f"{h}h {m}m"
    elif m:
        return f"{m}m"
    return f"{h}h"


## Tests


def test_single_line():
    assert single_line("  a\n b\t\tc  ") == "a b c"


def test_fmt_lines():
    assert fmt_lines(["a", "b"]) == "    a\n    b"
    assert fmt_lines([]) == ""


def test_fmt_count_items():
    assert fmt_count_items(1, "task") == "1 task"
    assert fmt_count_items(0, "task") == "0 tasks"
    assert fmt_count_items(3, "note") == "3 notes"


def test_fmt_path():
    assert fmt_path("has space/file.md", resolve=False) == "'has space/file.md'"


def test_hours():
    assert parse_hours("2h") == 2
    assert parse_hours("1.5h") == 1.5
    assert parse_hours("30m") == 0.5
    assert parse_hours(" 3H ") == 3
    assert parse_hours("soon") is None
    assert parse_hours(None) is None

    assert fmt_hours(0) == "0h"
    assert fmt_hours(2) == "2h"
    assert fmt_hours(0.75) == "45m"
    assert fmt_hours(2.5) == "2h 30m"
