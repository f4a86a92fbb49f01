import os
import subprocess
import sys
import time
from datetime import date
from pathlib import Path

import pytest

from localwork.errors import (
    FileExists,
    FileFormatError,
    InvalidField,
    InvalidOperation,
    RecordNotFound,
    TargetUnreachable,
    UnexpectedError,
)
from localwork.file_formats.frontmatter_codec import parse_header, Scalar, StrList
from localwork.file_storage import record_store
from localwork.file_storage.record_store import RecordStore
from localwork.model.records_model import Family, NoteType, TaskStatus, Workspace, WorkspaceMode
from localwork.workspaces.workspace_resolver import ensure_layout

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def store(tmp_path: Path) -> RecordStore:
    workspace = Workspace(
        tasks_dir=tmp_path / "tasks",
        notes_dir=tmp_path / "notes",
        mode=WorkspaceMode.local,
    )
    ensure_layout(workspace)
    return RecordStore(workspace)


def _task_files(store: RecordStore) -> list[str]:
    root = store.family_root(Family.tasks)
    return sorted(
        f"{status.value}/{name}"
        for status in TaskStatus
        for name in os.listdir(root / status.value)
    )


def test_create_task(store: RecordStore):
    record = store.create(Family.tasks, "backlog", "Fix login bug")

    assert record.path == store.family_root(Family.tasks) / "backlog" / "TASK-001-fix-login-bug.md"
    assert record.record_id == "TASK-001"
    assert record.status == "backlog"

    header = record.header
    assert list(header.keys()) == [
        "id",
        "title",
        "status",
        "priority",
        "created",
        "updated",
        "assignee",
        "tags",
        "estimated",
        "actual",
    ]
    assert header.get_str("id") == "TASK-001"
    assert header.get_str("status") == "backlog"
    assert header.get_str("priority") == "medium"
    assert header.get_str("created") == date.today().isoformat()
    assert header.get_list("tags") == []
    assert "## Description" in record.body


def test_create_task_with_extra_fields(store: RecordStore):
    record = store.create(
        Family.tasks,
        TaskStatus.active,
        "Ship it",
        {"priority": "high", "assignee": "sam", "tags": "release, ops", "sprint": "12"},
    )
    assert record.container == "active"
    assert record.header.get_str("priority") == "high"
    assert record.header.get_str("assignee") == "sam"
    assert record.header.get_list("tags") == ["release", "ops"]
    assert list(record.header.keys())[-1] == "sprint"


def test_create_task_rejects_bad_input(store: RecordStore):
    with pytest.raises(InvalidField):
        store.create(Family.tasks, "backlog", "   ")
    with pytest.raises(InvalidField):
        store.create(Family.tasks, "someday", "Title")
    with pytest.raises(InvalidField):
        store.create(Family.tasks, "backlog", "Title", {"priority": "urgent"})
    with pytest.raises(InvalidField):
        store.create(Family.tasks, "backlog", "!!!")
    # None of the failures consumed an id.
    assert store.create(Family.tasks, "backlog", "Real").record_id == "TASK-001"


def test_create_then_find_by_id(store: RecordStore):
    created = [store.create(Family.tasks, "backlog", f"Task number {n}") for n in range(3)]
    for record in created:
        found = store.find(Family.tasks, record.record_id)
        assert found.path == record.path
        assert found.container == "backlog"

    assert store.find(Family.tasks, "2").record_id == "TASK-002"
    assert store.find(Family.tasks, "002").record_id == "TASK-002"
    assert store.find(Family.tasks, "task-2").record_id == "TASK-002"


def test_transition_example(store: RecordStore):
    record = store.create(Family.tasks, "backlog", "Fix login bug")
    old_path = record.path
    old_text = old_path.read_text()
    today_line = "updated: " + date.today().isoformat()
    old_path.write_text(old_text.replace(today_line, "updated: 2000-01-01"))
    record = store.load(old_path)
    assert record.header.get_str("updated") == "2000-01-01"

    moved = store.transition(record, "active")

    assert moved.path == store.family_root(Family.tasks) / "active" / old_path.name
    assert not old_path.exists()
    assert moved.header.get_str("status") == "active"
    assert moved.header.get_str("updated") == date.today().isoformat()
    assert moved.body == record.body
    assert _task_files(store) == [f"active/{old_path.name}"]


def test_transition_same_status_is_noop(store: RecordStore):
    record = store.create(Family.tasks, "active", "Already going")
    before = record.path.read_bytes()
    mtime = record.path.stat().st_mtime_ns

    result = store.transition(record, TaskStatus.active)

    assert result.path == record.path
    assert record.path.read_bytes() == before
    assert record.path.stat().st_mtime_ns == mtime


def test_transition_preserves_hand_edits(store: RecordStore):
    record = store.create(Family.tasks, "backlog", "Edited by hand")
    text = record.path.read_text()
    text = text.replace("priority: medium\n", "priority: medium\n# keep this comment\n")
    record.path.write_text(text)

    moved = store.transition(store.load(record.path), "completed")

    moved_text = moved.path.read_text()
    assert "# keep this comment\n" in moved_text
    assert moved_text.split("---\n", 2)[2] == text.split("---\n", 2)[2]


def test_transition_errors(store: RecordStore):
    record = store.create(Family.tasks, "backlog", "Task")
    with pytest.raises(InvalidField):
        store.transition(record, "done")

    note = store.create(Family.notes, NoteType.learning, "Python tricks")
    with pytest.raises(InvalidOperation):
        store.transition(note, "active")


def test_transition_refuses_to_overwrite_copy(store: RecordStore):
    record = store.create(Family.tasks, "backlog", "Task")
    copy = store.family_root(Family.tasks) / "active" / record.filename
    copy.write_text(record.path.read_text())

    with pytest.raises(FileExists) as info:
        store.transition(record, "active")
    assert "repair" in (info.value.hint or "")
    assert record.path.exists()


def test_find_precedence(store: RecordStore):
    tasks = store.family_root(Family.tasks)
    header = "---\nid: TASK-{n}\ntitle: t\nstatus: {s}\n---\n"
    (tasks / "backlog" / "TASK-001-login.md").write_text(header.format(n="001", s="backlog"))
    (tasks / "active" / "TASK-002-login-sso.md").write_text(header.format(n="002", s="active"))
    (tasks / "completed" / "TASK-003-Logout.md").write_text(header.format(n="003", s="completed"))

    # Exact id beats everything.
    assert store.find(Family.tasks, "1").record_id == "TASK-001"
    # Exact filename beats a substring hit in a higher priority directory.
    assert store.find(Family.tasks, "TASK-001-login").record_id == "TASK-001"
    assert store.find(Family.tasks, "TASK-001-login.md").record_id == "TASK-001"
    # Case-insensitive filename.
    assert store.find(Family.tasks, "task-003-logout").record_id == "TASK-003"
    # Substring: active is searched before backlog.
    assert store.find(Family.tasks, "login").record_id == "TASK-002"
    assert store.find(Family.tasks, "LOGOUT").record_id == "TASK-003"

    with pytest.raises(RecordNotFound) as info:
        store.find(Family.tasks, "nothing-like-this")
    assert "task list" in (info.value.hint or "")


def test_find_task_without_header(store: RecordStore):
    path = store.family_root(Family.tasks) / "backlog" / "TASK-009-broken.md"
    path.write_text("just text\n")
    with pytest.raises(FileFormatError):
        store.find(Family.tasks, "9")
    assert store.list_records(Family.tasks) == []


def test_update(store: RecordStore):
    record = store.create(Family.tasks, "backlog", "Task")
    original = record.path.read_text()

    updated = store.update(record, {"priority": "HIGH", "tags": "a, b", "assignee": "kim"})

    assert updated.header.get_str("priority") == "high"
    assert updated.header.get_list("tags") == ["a", "b"]
    assert updated.header.get_str("assignee") == "kim"
    assert list(updated.header.keys()) == list(record.header.keys())
    assert updated.body == record.body
    assert updated.path.read_text().split("---\n", 2)[2] == original.split("---\n", 2)[2]


def test_update_rejects(store: RecordStore):
    record = store.create(Family.tasks, "backlog", "Task")
    with pytest.raises(InvalidField):
        store.update(record, {"status": "active"})
    with pytest.raises(InvalidField):
        store.update(record, {"id": "TASK-999"})
    with pytest.raises(InvalidField):
        store.update(record, {"priority": "urgent"})
    assert store.load(record.path).header["id"] == Scalar("TASK-001")


def test_archive_older_than(store: RecordStore):
    old = store.create(Family.tasks, "completed", "Old one")
    recent = store.create(Family.tasks, "completed", "Recent one")
    active = store.create(Family.tasks, "active", "Still going")
    now = time.time()
    long_ago = now - 45 * 24 * 60 * 60
    os.utime(old.path, (long_ago, long_ago))
    os.utime(active.path, (long_ago, long_ago))
    old_text = old.path.read_text()

    assert store.archive_older_than(30, now=now) == 1

    archived = store.family_root(Family.tasks) / "archived" / old.filename
    assert archived.read_text() == old_text
    assert parse_header(archived.read_text())["status"] == Scalar("completed")
    assert recent.path.exists()
    assert active.path.exists()
    assert store.archive_older_than(30, now=now) == 0


def test_archive_skips_name_clash(store: RecordStore):
    old = store.create(Family.tasks, "completed", "Old one")
    clash = store.family_root(Family.tasks) / "archived" / old.filename
    clash.write_text("other")
    long_ago = time.time() - 90 * 24 * 60 * 60
    os.utime(old.path, (long_ago, long_ago))

    assert store.archive_older_than(30) == 0
    assert old.path.exists()
    assert clash.read_text() == "other"


def test_list_and_search(store: RecordStore):
    store.create(Family.tasks, "backlog", "Write docs")
    store.create(Family.tasks, "active", "Fix parser")
    second = store.create(Family.tasks, "completed", "Refactor")
    second.path.write_text(second.path.read_text() + "\nThe PARSER needed work.\n")

    assert [r.title for r in store.list_records(Family.tasks)] == [
        "Write docs",
        "Fix parser",
        "Refactor",
    ]
    assert [r.title for r in store.list_records(Family.tasks, ["active"])] == ["Fix parser"]
    assert sorted(r.title for r in store.search(Family.tasks, "parser")) == [
        "Fix parser",
        "Refactor",
    ]


def test_notes(store: RecordStore):
    today = date.today().isoformat()

    daily = store.create(Family.notes, "daily", None)
    assert daily.filename == f"{today}.md"
    assert daily.header.get_str("type") == "daily"
    assert store.create(Family.notes, NoteType.daily, None).path == daily.path

    meeting = store.create(Family.notes, "meeting", "Sprint Planning")
    assert meeting.path.parent.name == "meetings"
    assert meeting.filename == f"{today}-sprint-planning.md"
    assert meeting.header.get_str("type") == "meeting"
    assert meeting.header.get_list("participants") == []
    with pytest.raises(FileExists):
        store.create(Family.notes, "meetings", "Sprint planning")

    adr = store.create(Family.notes, "technical", "Use Postgres")
    assert adr.filename == "ADR-001-use-postgres.md"
    assert adr.header.get_str("status") == "proposed"
    assert "# ADR-001: Use Postgres" in adr.body
    assert store.create(Family.notes, "technical", "Use Redis").filename.startswith("ADR-002-")

    til = store.create(Family.notes, "learning", "Python: walrus")
    assert til.header.get_str("title") == "Python: walrus"
    assert '"Python: walrus"' in til.path.read_text()

    with pytest.raises(InvalidField):
        store.create(Family.notes, "learning", "")
    with pytest.raises(InvalidField):
        store.create(Family.notes, "recipes", "Soup")

    assert store.find(Family.notes, "postgres").path == adr.path
    assert store.find(Family.notes, today).path == daily.path
    assert [r.filename for r in store.search(Family.notes, "walrus")] == [til.filename]


def test_notes_without_header_are_readable(store: RecordStore):
    path = store.family_root(Family.notes) / "learning" / "scratch.md"
    path.write_text("# Just markdown\n")
    record = store.find(Family.notes, "scratch")
    assert record.header == {}
    assert record.title == "scratch"
    assert record.body == "# Just markdown\n"


def test_repair(store: RecordStore):
    tasks = store.family_root(Family.tasks)
    record = store.create(Family.tasks, "backlog", "Interrupted move")

    # A move that wrote its copy but never deleted the source.
    newer = tasks / "active" / record.filename
    newer.write_text(record.path.read_text().replace("status: backlog", "status: active"))
    old = time.time() - 60
    os.utime(record.path, (old, old))

    # A header that disagrees with its directory.
    other = store.create(Family.tasks, "completed", "Mismatched")
    other.path.write_text(other.path.read_text().replace("status: completed", "status: active"))

    # Archived but still marked completed, which is fine.
    kept = store.create(Family.tasks, "completed", "Done long ago")
    os.rename(kept.path, tasks / "archived" / kept.filename)

    # A leftover temporary file.
    partial = tasks / "completed" / "TASK-009-x.md.partial.a1b2c3"
    partial.write_text("half")

    fixes = store.repair()

    assert len(fixes) == 3
    assert not partial.exists()
    assert not record.path.exists()
    assert newer.exists()
    assert parse_header(other.path.read_text())["status"] == Scalar("completed")
    archived = tasks / "archived" / kept.filename
    assert parse_header(archived.read_text())["status"] == Scalar("completed")
    assert store.repair() == []


def test_create_rejects_managed_fields(store: RecordStore):
    for field in ("id", "status", "created", "updated"):
        with pytest.raises(InvalidField):
            store.create(Family.tasks, "backlog", "Fix login bug", {field: "x"})
    with pytest.raises(InvalidField):
        store.create(Family.notes, "learning", "Python", {"type": "daily"})
    with pytest.raises(InvalidField):
        store.create(Family.notes, "meetings", "Retro", {"date": "2000-01-01"})

    assert _task_files(store) == []
    record = store.create(Family.tasks, "backlog", "Fix login bug")
    assert record.record_id == "TASK-001"
    assert record.header.get_str("status") == record.container


def test_header_values_with_line_separators(store: RecordStore):
    title = "Odd title\x85here"
    record = store.create(Family.tasks, "backlog", title)
    assert record.title == title
    moved = store.transition(record, "active")
    assert moved.title == title
    assert moved.header.get_str("status") == "active"


def test_tags_accept_header_values(store: RecordStore):
    record = store.create(Family.tasks, "backlog", "Task", {"tags": StrList(("a", "b"))})
    assert record.header.get_list("tags") == ["a", "b"]
    record = store.update(record, {"tags": Scalar("x, y")})
    assert record.header.get_list("tags") == ["x", "y"]


def test_transition_unreachable_target(store: RecordStore):
    record = store.create(Family.tasks, "backlog", "Task")
    active = store.family_root(Family.tasks) / "active"
    active.rmdir()
    active.write_text("not a directory")

    with pytest.raises(TargetUnreachable):
        store.transition(record, "active")
    assert record.path.exists()


def test_transition_cleans_up_unverified_copy(
    store: RecordStore, monkeypatch: pytest.MonkeyPatch
):
    record = store.create(Family.tasks, "backlog", "Task")
    target = store.family_root(Family.tasks) / "active" / record.filename
    real_read_text = record_store.read_text

    def corrupt_target(path: Path) -> str:
        text = real_read_text(path)
        return text + "corrupted" if path == target else text

    monkeypatch.setattr(record_store, "read_text", corrupt_target)

    with pytest.raises(UnexpectedError):
        store.transition(record, "active")
    assert record.path.exists()
    assert not target.exists()


_CREATE_SCRIPT = """
import sys
from pathlib import Path
from localwork.config.settings import update_global_settings
from localwork.file_storage.record_store import RecordStore
from localwork.model.records_model import Family, Workspace, WorkspaceMode

with update_global_settings() as settings:
    settings.id_lock_max_attempts = 400
    settings.id_lock_max_delay = 0.05
root = Path(sys.argv[1])
store = RecordStore(
    Workspace(tasks_dir=root / "tasks", notes_dir=root / "notes", mode=WorkspaceMode.local)
)
for n in range(int(sys.argv[3])):
    store.create(Family.tasks, "backlog", f"{sys.argv[2]} task {n}")
"""


def test_concurrent_creates_get_distinct_ids(store: RecordStore, tmp_path: Path):
    procs, per_proc = 4, 3
    python_path = os.pathsep.join([str(REPO_ROOT), os.environ.get("PYTHONPATH", "")])
    env = dict(os.environ, PYTHONPATH=python_path)
    children = [
        subprocess.Popen(
            [sys.executable, "-c", _CREATE_SCRIPT, str(tmp_path), f"worker{n}", str(per_proc)],
            env=env,
        )
        for n in range(procs)
    ]
    for child in children:
        assert child.wait(timeout=120) == 0

    names = os.listdir(store.family_root(Family.tasks) / "backlog")
    ids = sorted(name[: len("TASK-000")] for name in names)
    assert ids == [f"TASK-{n:03d}" for n in range(1, procs * per_proc + 1)]
