import re
from datetime import date
from typing import Optional

from slugify import slugify

from localwork.errors import InvalidField

## File Naming Conventions

RECORD_EXT = ".md"

TASK_PREFIX = "TASK-"

ADR_PREFIX = "ADR-"

ID_WIDTH = 3

_task_id_pattern = re.compile(r"^TASK-(\d+)")

_id_arg_pattern = re.compile(r"^(?:TASK-)?(\d+)$", re.IGNORECASE)

_partial_file_pattern = re.compile(r".*\.partial\.[A-Za-z0-9]+$")


def title_slug(title: str) -> str:
    """
    Lowercase, dash-separated slug for a title.

    "Fix login bug" -> "fix-login-bug"
    """
    slug = slugify(title, separator="-", lowercase=True)
    if not slug:
        raise InvalidField(f"Title has no usable characters for a filename: {title!r}")
    return slug


def format_id(number: int, width: int = ID_WIDTH) -> str:
    """
    Zero-padded id. Numbers wider than `width` are not truncated.
    """
    return str(number).zfill(width)


def task_filename(task_id: str, title: str) -> str:
    return f"{TASK_PREFIX}{task_id}-{title_slug(title)}{RECORD_EXT}"


def adr_filename(adr_id: str, title: str) -> str:
    return f"{ADR_PREFIX}{adr_id}-{title_slug(title)}{RECORD_EXT}"


def dated_filename(on_date: date, title: Optional[str] = None) -> str:
    """
    Note filename from a date and an optional topic.

    (2024-03-01, None) -> "2024-03-01.md"
    (2024-03-01, "Sprint Planning") -> "2024-03-01-sprint-planning.md"
    """
    if title is None:
        return f"{on_date.isoformat()}{RECORD_EXT}"
    return f"{on_date.isoformat()}-{title_slug(title)}{RECORD_EXT}"


def parse_task_number(filename: str) -> Optional[int]:
    match = _task_id_pattern.match(filename)
    return int(match.group(1)) if match else None


def parse_id_arg(id_or_pattern: str) -> Optional[int]:
    """
    Parse a task id as a user would type it: "7", "007", "TASK-007", "task-7".
    Returns None if it's not an id.
    """
    match = _id_arg_pattern.match(id_or_pattern.strip())
    return int(match.group(1)) if match else None


## File Utilities


def skippable_file(filename: str) -> bool:
    """
    Check if a file should be skipped when listing records.
    This skips dot files (like the id marker and lock), __pycache__, .partial.xxx
    temporaries, etc.
    """
    return len(filename) > 1 and (
        filename.startswith(".")
        or filename.startswith("__")
        or bool(_partial_file_pattern.match(filename))
    )


def is_partial_file(filename: str) -> bool:
    return bool(_partial_file_pattern.match(filename))


def is_record_file(filename: str) -> bool:
    return filename.endswith(RECORD_EXT) and not skippable_file(filename)


## Tests


def test_task_filenames():
    assert task_filename("001", "Fix login bug") == "TASK-001-fix-login-bug.md"
    assert parse_task_number("TASK-042-something.md") == 42
    assert parse_task_number("TASK-1000-big.md") == 1000
    assert parse_task_number("notes.md") is None
    assert format_id(7) == "007"
    assert format_id(1234) == "1234"


def test_parse_id_arg():
    assert parse_id_arg("7") == 7
    assert parse_id_arg("007") == 7
    assert parse_id_arg("TASK-007") == 7
    assert parse_id_arg("task-12") == 12
    assert parse_id_arg("login") is None
    assert parse_id_arg("TASK-007-fix") is None


def test_dated_filename():
    assert dated_filename(date(2024, 3, 1)) == "2024-03-01.md"
    assert dated_filename(date(2024, 3, 1), "Sprint Planning!") == "2024-03-01-sprint-planning.md"


def test_skippable_file():
    assert skippable_file(".last-task-id")
    assert skippable_file(".task-id.lock")
    assert skippable_file("TASK-001-x.md.partial.a1b2c3")
    assert not skippable_file("TASK-001-x.md")
    assert is_record_file("2024-03-01.md")
    assert not is_record_file("README.txt")


def test_title_slug_rejects_empty():
    import pytest

    with pytest.raises(InvalidField):
        title_slug("!!!")
