"""
The record store: task and note files laid out in container directories under the
family roots of a workspace.

For tasks the container is the lifecycle status, so a status change is a move
between directories. All writes go through a temporary file in the destination
directory that is synced and renamed into place, and a move only deletes its source
after the new copy has been verified, so an interruption can leave a duplicate but
never lose a record. `repair()` cleans up after such interruptions.
"""

import os
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence

import regex

from localwork.config.logger import get_logger
from localwork.config.settings import global_settings
from localwork.config.text_styles import EMOJI_ARROW, EMOJI_SAVED
from localwork.errors import (
    FileExists,
    FileFormatError,
    InvalidField,
    InvalidInput,
    InvalidOperation,
    RecordNotFound,
    SkippableError,
    TargetUnreachable,
    UnexpectedError,
)
from localwork.file_formats.frontmatter_codec import (
    has_header,
    Header,
    parse_record,
    RawValue,
    render_record,
    Scalar,
    to_header_value,
    update_field,
    update_fields,
)
from localwork.file_formats.record_templates import NOTE_BODIES, TASK_BODY
from localwork.file_storage.filenames import (
    adr_filename,
    dated_filename,
    is_partial_file,
    is_record_file,
    parse_id_arg,
    parse_task_number,
    RECORD_EXT,
    task_filename,
    TASK_PREFIX,
)
from localwork.file_storage.id_allocator import adr_allocator, task_allocator
from localwork.model.records_model import Family, NoteType, Priority, Record, TaskStatus, Workspace
from localwork.util.file_utils import file_age_days, read_text, write_text_atomic
from localwork.util.format_utils import fmt_count_items, fmt_lines, fmt_path

log = get_logger(__name__)


# Fields `update()` may change on a task. Id, status and dates are managed here.
UPDATABLE_TASK_FIELDS = ("title", "priority", "assignee", "estimated", "actual", "tags")

# Fields set by `create()` that callers may not supply.
RESERVED_TASK_FIELDS = ("id", "status", "created", "updated")
RESERVED_NOTE_FIELDS = ("type", "date")

_task_id_pattern = regex.compile(r"^TASK-\d+", regex.IGNORECASE)


def _today() -> str:
    return date.today().isoformat()


def parse_status(value: str | TaskStatus) -> TaskStatus:
    if isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(value.strip().lower())
    except ValueError:
        raise InvalidField(
            f"Invalid task status: {value!r}",
            hint=f"Use one of: {', '.join(s.value for s in TaskStatus)}",
        )


def parse_note_type(value: str | NoteType) -> NoteType:
    if isinstance(value, NoteType):
        return value
    canon = value.strip().lower()
    for note_type in NoteType:
        if canon in (note_type.value, note_type.header_type):
            return note_type
    raise InvalidField(
        f"Invalid note type: {value!r}",
        hint=f"Use one of: {', '.join(t.value for t in NoteType)}",
    )


def parse_priority(value: str | Priority) -> Priority:
    if isinstance(value, Priority):
        return value
    try:
        return Priority(str(value).strip().lower())
    except ValueError:
        raise InvalidField(
            f"Invalid priority: {value!r}",
            hint=f"Use one of: {', '.join(p.value for p in Priority)}",
        )


def parse_tags(value: RawValue) -> List[str]:
    """
    Tags as given by a user: a list, or a comma-separated string.
    """
    value = to_header_value(value)
    if isinstance(value, Scalar):
        items = value.value.split(",")
    else:
        items = list(value.items)
    return [item.strip() for item in items if item.strip()]


def _require_title(title: Optional[str], kind: str) -> str:
    title = (title or "").strip()
    if not title:
        raise InvalidField(f"A title is required for a new {kind}")
    return title


def _check_reserved(fields: Mapping[str, RawValue], reserved: Sequence[str]) -> None:
    clashes = [field for field in fields if field in reserved]
    if clashes:
        raise InvalidField(
            f"Field can't be set on a new record: {', '.join(clashes)}",
            hint=f"These fields are set automatically: {', '.join(reserved)}",
        )


@dataclass(frozen=True)
class _Candidate:
    container: str
    path: Path


class RecordStore:
    """
    Create, find, move and update records in one workspace. Holds no state beyond the
    workspace paths, so every operation sees what is currently on disk.
    """

    def __init__(self, workspace: Workspace):
        self.workspace = workspace

    def __str__(self):
        return f"RecordStore({self.workspace.tasks_dir}, {self.workspace.notes_dir})"

    def family_root(self, family: Family) -> Path:
        return self.workspace.root_for(family)

    def container_dir(self, family: Family, container: str) -> Path:
        if container not in family.containers:
            raise InvalidField(f"Invalid {family.value} directory: {container!r}")
        return self.family_root(family) / container

    def _ensure_dir(self, dir_path: Path) -> Path:
        try:
            dir_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TargetUnreachable(
                f"Could not create directory {dir_path}: {e}",
                hint="Check that the workspace directory exists and is writable.",
            )
        return dir_path

    ## Reading

    def _family_for(self, path: Path) -> Family:
        parent = path.parent.parent.absolute()
        if parent == self.workspace.tasks_dir.absolute():
            return Family.tasks
        elif parent == self.workspace.notes_dir.absolute():
            return Family.notes
        raise InvalidInput(f"Not a record in this workspace: {path}")

    def load(self, path: Path, family: Optional[Family] = None) -> Record:
        """
        Read a record from disk. Tasks must have a complete header; notes may be plain
        Markdown written by hand.
        """
        family = family or self._family_for(path)
        text = read_text(path)
        if family is Family.tasks and not has_header(text):
            raise FileFormatError(
                f"Task file has no valid header: {path}",
                hint="The file should start with a `---` line and a closing `---` line.",
            )
        header, body = parse_record(text)

        record_id = path.stem
        if family is Family.tasks:
            match = _task_id_pattern.match(path.name)
            if match:
                record_id = match.group(0).upper()

        return Record(
            family=family,
            path=path,
            container=path.parent.name,
            record_id=record_id,
            header=header,
            body=body,
        )

    def _candidates(
        self, family: Family, containers: Optional[Sequence[str]] = None
    ) -> Iterator[_Candidate]:
        """
        Record files in the given containers, in search priority order and then by name.
        """
        for container in containers or family.search_order:
            dir_path = self.container_dir(family, container)
            if not dir_path.is_dir():
                continue
            for filename in sorted(os.listdir(dir_path)):
                if is_record_file(filename) and (dir_path / filename).is_file():
                    yield _Candidate(container, dir_path / filename)

    def find(self, family: Family, id_or_pattern: str) -> Record:
        """
        Find one record by id or filename. Each level of match is tried across all
        containers before the next, looser level: an exact task id, an exact filename
        (with or without `.md`), a case-insensitive filename, then a case-insensitive
        filename substring. The first hit wins.
        """
        query = id_or_pattern.strip()
        if not query:
            raise InvalidInput(f"Give an id or a name to find a {family.value[:-1]}")

        candidates = list(self._candidates(family))
        query_lower = query.lower()

        matchers: List[Callable[[str], bool]] = []
        number = parse_id_arg(query) if family is Family.tasks else None
        if number is not None:
            matchers.append(lambda name: parse_task_number(name) == number)
        matchers.extend(
            [
                lambda name: name in (query, query + RECORD_EXT),
                lambda name: name.lower() in (query_lower, query_lower + RECORD_EXT),
                lambda name: query_lower in name.lower(),
            ]
        )

        for matches in matchers:
            for candidate in candidates:
                if matches(candidate.path.name):
                    return self.load(candidate.path, family)

        command = "task" if family is Family.tasks else "note"
        raise RecordNotFound(
            f"No {family.value[:-1]} found matching: {query}",
            hint=f"See what exists with `{command} list`.",
        )

    def list_records(
        self, family: Family, containers: Optional[Sequence[str]] = None
    ) -> List[Record]:
        """
        All readable records in the given containers (default all, in taxonomy order).
        Unreadable files are skipped with a warning.
        """
        records = []
        for candidate in self._candidates(family, containers or family.containers):
            try:
                records.append(self.load(candidate.path, family))
            except (SkippableError, UnicodeDecodeError) as e:
                log.warning("Could not read file, skipping: %s: %s", fmt_path(candidate.path), e)
        return records

    def search(self, family: Family, term: str) -> List[Record]:
        """
        Records whose title or full text contains the term, case-insensitively.
        """
        term = term.strip().lower()
        if not term:
            raise InvalidInput("Give a search term")
        results = []
        for record in self.list_records(family):
            if term in record.title.lower() or term in read_text(record.path).lower():
                results.append(record)
        return results

    ## Creating

    def create(
        self,
        family: Family,
        initial_status: str | TaskStatus | NoteType,
        title: Optional[str],
        extra_fields: Optional[Mapping[str, RawValue]] = None,
    ) -> Record:
        """
        Create a new record file in its initial container. For tasks `initial_status` is
        a status; for notes it is the note type.
        """
        if family is Family.tasks:
            if isinstance(initial_status, NoteType):
                raise InvalidField(f"Not a task status: {initial_status.value}")
            return self._create_task(parse_status(initial_status), title, extra_fields or {})
        else:
            if isinstance(initial_status, TaskStatus):
                raise InvalidField(f"Not a note type: {initial_status.value}")
            return self._create_note(parse_note_type(initial_status), title, extra_fields or {})

    def _write_new(self, path: Path, header: Header, body: str, family: Family) -> Record:
        if path.exists():
            raise FileExists(f"File already exists: {fmt_path(path)}")
        write_text_atomic(path, render_record(header, body))
        log.message("%s Saved %s:\n%s", EMOJI_SAVED, family.value[:-1], fmt_lines([fmt_path(path)]))
        return self.load(path, family)

    def _create_task(
        self, status: TaskStatus, title: Optional[str], extra_fields: Mapping[str, RawValue]
    ) -> Record:
        title = _require_title(title, "task")
        _check_reserved(extra_fields, RESERVED_TASK_FIELDS)
        fields: Dict[str, RawValue] = dict(extra_fields)
        priority = parse_priority(
            fields.pop("priority", None) or global_settings().default_priority
        )
        tags = parse_tags(fields.pop("tags", []))

        tasks_root = self.family_root(Family.tasks)
        dir_path = self._ensure_dir(self.container_dir(Family.tasks, status.value))
        # Check the name before taking an id so a bad title doesn't consume one.
        task_filename("000", title)

        task_id = task_allocator(tasks_root).next_id()
        today = _today()
        header = Header.of(
            {
                "id": f"{TASK_PREFIX}{task_id}",
                "title": title,
                "status": status.value,
                "priority": priority.value,
                "created": today,
                "updated": today,
                "assignee": fields.pop("assignee", ""),
                "tags": tags,
                "estimated": fields.pop("estimated", "0h"),
                "actual": fields.pop("actual", "0h"),
            }
        )
        header.update(Header.of(fields))

        path = dir_path / task_filename(task_id, title)
        return self._write_new(path, header, TASK_BODY.format(title=title), Family.tasks)

    def _create_note(
        self, note_type: NoteType, title: Optional[str], extra_fields: Mapping[str, RawValue]
    ) -> Record:
        now = datetime.now()
        _check_reserved(extra_fields, RESERVED_NOTE_FIELDS)
        today = now.date()
        dir_path = self._ensure_dir(self.container_dir(Family.notes, note_type.value))

        values: Dict[str, RawValue] = {"date": today.isoformat(), "type": note_type.header_type}
        body_fields: Dict[str, str] = {"date": today.isoformat()}

        if note_type is NoteType.daily:
            path = dir_path / dated_filename(today)
            if path.exists():
                log.message("Daily note for %s already exists: %s", today, fmt_path(path))
                return self.load(path, Family.notes)
            title = (title or "").strip() or "Daily Notes"
            values.update({"title": title, "tags": []})
        elif note_type is NoteType.meetings:
            title = _require_title(title, "meeting note")
            path = dir_path / dated_filename(today, title)
            values.update({"title": title, "participants": [], "tags": [], "related_tasks": []})
            body_fields["time"] = now.strftime("%H:%M")
        elif note_type is NoteType.technical:
            title = _require_title(title, "technical decision")
            adr_filename("000", title)
            adr_id = adr_allocator(dir_path).next_id()
            path = dir_path / adr_filename(adr_id, title)
            values.update({"title": title, "tags": [], "related_tasks": [], "status": "proposed"})
            body_fields = {"adr_id": adr_id}
        else:
            title = _require_title(title, "learning note")
            path = dir_path / dated_filename(today, title)
            values.update({"title": title, "tags": []})
            body_fields = {}

        header = Header.of(values)
        header.update(Header.of(extra_fields))
        body = NOTE_BODIES[note_type].format(title=title, **body_fields)
        return self._write_new(path, header, body, Family.notes)

    ## Changing

    def _check_task(self, record: Record, action: str) -> None:
        if record.family is not Family.tasks:
            raise InvalidOperation(f"Only tasks can be {action}: {record.filename}")

    def _read_with_header(self, path: Path) -> str:
        text = read_text(path)
        if not has_header(text):
            raise FileFormatError(
                f"Record has no valid header: {path}",
                hint="The file should start with a `---` line and a closing `---` line.",
            )
        return text

    def transition(self, record: Record, target_status: str | TaskStatus) -> Record:
        """
        Move a task to another status directory, updating its `status` and `updated`
        fields. A no-op if it is already there.
        """
        self._check_task(record, "moved")
        target = parse_status(target_status)
        if record.container == target.value:
            log.message("Task %s is already %s", record.record_id, target.value)
            return record

        target_dir = self._ensure_dir(self.container_dir(Family.tasks, target.value))
        target_path = target_dir / record.filename
        if target_path.exists():
            raise FileExists(
                f"A copy of this task already exists in {target.value}: {fmt_path(target_path)}",
                hint="An earlier move may have been interrupted. Run `task repair` to fix it.",
            )

        text = self._read_with_header(record.path)
        new_text = update_fields(text, {"status": target.value, "updated": _today()})

        write_text_atomic(target_path, new_text)
        if read_text(target_path) != new_text:
            target_path.unlink()
            raise UnexpectedError(
                f"Moved task did not verify, leaving original in place: {record.path}"
            )
        record.path.unlink()

        log.message(
            "%s %s: %s %s %s",
            EMOJI_SAVED,
            record.record_id,
            record.container,
            EMOJI_ARROW,
            target.value,
        )
        return self.load(target_path, Family.tasks)

    def update(self, record: Record, fields: Mapping[str, RawValue]) -> Record:
        """
        Set header fields on a task and bump `updated`. Only the fields in
        `UPDATABLE_TASK_FIELDS` may be changed.
        """
        self._check_task(record, "updated")
        if not fields:
            raise InvalidInput("No fields to update")

        updates: Dict[str, RawValue] = {}
        for field, value in fields.items():
            if field not in UPDATABLE_TASK_FIELDS:
                raise InvalidField(
                    f"Field can't be updated: {field!r}",
                    hint=f"Valid fields: {', '.join(UPDATABLE_TASK_FIELDS)}",
                )
            if field == "priority":
                value = parse_priority(str(value)).value
            elif field == "tags":
                value = parse_tags(value)
            elif field == "title":
                value = _require_title(str(value), "task")
            updates[field] = value
        updates["updated"] = _today()

        text = self._read_with_header(record.path)
        write_text_atomic(record.path, update_fields(text, updates))
        log.message("%s Updated %s: %s", EMOJI_SAVED, record.record_id, ", ".join(fields))
        return self.load(record.path, Family.tasks)

    def archive_older_than(self, days: Optional[int] = None, now: Optional[float] = None) -> int:
        """
        Move completed tasks not modified for more than `days` days into `archived`.
        Uses the file's modification time, not header dates, and leaves headers as they
        are. Returns how many were moved.
        """
        days = global_settings().archive_days if days is None else days
        if days < 0:
            raise InvalidInput(f"Days must not be negative: {days}")

        completed_dir = self.container_dir(Family.tasks, TaskStatus.completed.value)
        if not completed_dir.is_dir():
            return 0
        archived_dir = self._ensure_dir(
            self.container_dir(Family.tasks, TaskStatus.archived.value)
        )

        count = 0
        for candidate in list(self._candidates(Family.tasks, [TaskStatus.completed.value])):
            path = candidate.path
            if file_age_days(path, now) <= days:
                continue
            target_path = archived_dir / path.name
            if target_path.exists():
                log.warning("Already in archived, skipping: %s", fmt_path(target_path))
                continue
            path.rename(target_path)
            log.info("Archived: %s", path.name)
            count += 1

        log.message("Archived %s older than %s days", fmt_count_items(count, "task"), days)
        return count

    ## Repair

    def repair(self) -> List[str]:
        """
        Best-effort cleanup after interrupted operations: remove leftover temporary
        files, remove duplicate copies of a task (keeping the most recently modified),
        and make each task's `status` field agree with its directory. Returns a
        description of each fix.
        """
        fixes: List[str] = []
        fixes.extend(self._remove_partial_files())
        fixes.extend(self._remove_duplicate_tasks())
        fixes.extend(self._fix_task_statuses())
        for fix in fixes:
            log.message("Repaired: %s", fix)
        return fixes

    def _remove_partial_files(self) -> List[str]:
        fixes = []
        for family in Family:
            for container in family.containers:
                dir_path = self.family_root(family) / container
                if not dir_path.is_dir():
                    continue
                for filename in sorted(os.listdir(dir_path)):
                    if is_partial_file(filename):
                        (dir_path / filename).unlink()
                        fixes.append(f"removed temporary file {container}/{filename}")
        return fixes

    def _remove_duplicate_tasks(self) -> List[str]:
        by_number: Dict[int, List[Path]] = {}
        for candidate in self._candidates(Family.tasks, Family.tasks.containers):
            number = parse_task_number(candidate.path.name)
            if number is not None:
                by_number.setdefault(number, []).append(candidate.path)

        fixes = []
        for paths in by_number.values():
            if len(paths) < 2:
                continue
            # Only copies of the same file, not distinct tasks that share a number.
            by_name: Dict[str, List[Path]] = {}
            for path in paths:
                by_name.setdefault(path.name, []).append(path)
            for name, copies in by_name.items():
                if len(copies) < 2:
                    continue
                copies.sort(key=lambda p: p.stat().st_mtime, reverse=True)
                keep = copies[0]
                for path in copies[1:]:
                    path.unlink()
                    fixes.append(
                        f"removed duplicate {path.parent.name}/{name} (kept {keep.parent.name})"
                    )
            if len(by_name) > 1:
                log.warning(
                    "Different tasks share an id, not changing them:\n%s",
                    fmt_lines(sorted(by_name)),
                )
        return fixes

    def _fix_task_statuses(self) -> List[str]:
        fixes = []
        for record in self.list_records(Family.tasks):
            status = record.header.get_str("status")
            container = record.container
            if status == container:
                continue
            if container == TaskStatus.archived.value and status == TaskStatus.completed.value:
                continue
            text = read_text(record.path)
            write_text_atomic(record.path, update_field(text, "status", container))
            fixes.append(f"set status of {record.filename} from {status!r} to {container!r}")
        return fixes
