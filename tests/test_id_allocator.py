import os
import subprocess
import sys
import time
from pathlib import Path

import pytest

from localwork.errors import AllocatorDegraded
from localwork.file_storage.id_allocator import (
    adr_allocator,
    next_task_id,
    task_allocator,
    TASK_LOCK_FILE,
    TASK_MARKER_FILE,
)

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_sequential_ids_have_no_gaps(tmp_path: Path):
    ids = [next_task_id(tmp_path) for _ in range(12)]
    assert ids == [f"{n:03d}" for n in range(1, 13)]
    assert (tmp_path / TASK_MARKER_FILE).read_text().strip() == "12"
    assert not (tmp_path / TASK_LOCK_FILE).exists()


def test_reconciles_with_existing_files(tmp_path: Path):
    (tmp_path / "completed").mkdir()
    (tmp_path / "completed" / "TASK-041-old.md").write_text("")
    (tmp_path / TASK_MARKER_FILE).write_text("7\n")

    assert next_task_id(tmp_path) == "042"


def test_stale_marker_ahead_of_files_is_kept(tmp_path: Path):
    (tmp_path / "backlog").mkdir()
    (tmp_path / "backlog" / "TASK-003-x.md").write_text("")
    (tmp_path / TASK_MARKER_FILE).write_text("10")

    assert next_task_id(tmp_path) == "011"


def test_unreadable_marker_falls_back_to_files(tmp_path: Path):
    (tmp_path / "active").mkdir()
    (tmp_path / "active" / "TASK-005-x.md").write_text("")
    (tmp_path / TASK_MARKER_FILE).write_text("garbage")

    assert next_task_id(tmp_path) == "006"


def test_wide_ids_are_not_truncated(tmp_path: Path):
    (tmp_path / TASK_MARKER_FILE).write_text("999")
    assert next_task_id(tmp_path) == "1000"


def test_held_lock_degrades(tmp_path: Path):
    (tmp_path / TASK_LOCK_FILE).write_text("12345")
    allocator = task_allocator(tmp_path, max_attempts=3, retry_delay=0.001, stale_secs=60)

    assert allocator.next_id() == "001"
    assert allocator.last_degraded
    # Degraded allocation doesn't write the marker or touch the other holder's lock.
    assert not (tmp_path / TASK_MARKER_FILE).exists()
    assert (tmp_path / TASK_LOCK_FILE).exists()


def test_held_lock_strict_raises(tmp_path: Path):
    (tmp_path / TASK_LOCK_FILE).write_text("12345")
    allocator = task_allocator(
        tmp_path, max_attempts=2, retry_delay=0.001, stale_secs=60, strict=True
    )

    with pytest.raises(AllocatorDegraded) as info:
        allocator.next_id()
    assert info.value.hint and TASK_LOCK_FILE in info.value.hint


def test_stale_lock_is_broken(tmp_path: Path):
    lock = tmp_path / TASK_LOCK_FILE
    lock.write_text("12345")
    old = time.time() - 120
    os.utime(lock, (old, old))
    allocator = task_allocator(tmp_path, max_attempts=3, retry_delay=0.001, stale_secs=30)

    assert allocator.next_id() == "001"
    assert not allocator.last_degraded
    assert not lock.exists()
    assert sorted(p.name for p in tmp_path.iterdir()) == [TASK_MARKER_FILE]


def test_stale_lock_replaced_by_another_waiter_is_kept(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
):
    lock = tmp_path / TASK_LOCK_FILE
    lock.write_text("111")
    old = time.time() - 120
    os.utime(lock, (old, old))
    stale_stat = lock.stat()

    # Between our stat and our removal, another waiter breaks the stale lock and
    # takes a fresh one.
    lock.unlink()
    lock.write_text("222")

    allocator = task_allocator(tmp_path, max_attempts=2, retry_delay=0.001, stale_secs=30)
    monkeypatch.setattr(allocator, "_lock_stat", lambda: stale_stat)

    assert not allocator._break_stale_lock()
    assert lock.read_text() == "222"
    assert sorted(p.name for p in tmp_path.iterdir()) == [TASK_LOCK_FILE]


def test_release_leaves_a_lock_it_does_not_hold(tmp_path: Path):
    lock = tmp_path / TASK_LOCK_FILE
    allocator = task_allocator(tmp_path)
    with allocator._locked() as acquired:
        assert acquired
        other = tmp_path / "other"
        other.write_text("other holder")
        os.replace(other, lock)
    assert lock.read_text() == "other holder"


def test_adr_allocator_scans_its_own_dir(tmp_path: Path):
    (tmp_path / "ADR-002-pick-a-db.md").write_text("")
    (tmp_path / "TASK-009-unrelated.md").write_text("")

    allocator = adr_allocator(tmp_path)
    assert allocator.next_id() == "003"
    assert allocator.next_id() == "004"


_ALLOCATE_SCRIPT = """
import sys
from pathlib import Path
from localwork.file_storage.id_allocator import task_allocator

root = Path(sys.argv[1])
allocator = task_allocator(root, max_attempts=400, retry_delay=0.002, max_delay=0.05)
for _ in range(int(sys.argv[2])):
    print(allocator.next_id(), "degraded" if allocator.last_degraded else "locked", flush=True)
"""


def test_concurrent_processes_get_distinct_ids(tmp_path: Path):
    procs, per_proc = 6, 5
    python_path = os.pathsep.join([str(REPO_ROOT), os.environ.get("PYTHONPATH", "")])
    env = dict(os.environ, PYTHONPATH=python_path)
    children = [
        subprocess.Popen(
            [sys.executable, "-c", _ALLOCATE_SCRIPT, str(tmp_path), str(per_proc)],
            stdout=subprocess.PIPE,
            text=True,
            env=env,
        )
        for _ in range(procs)
    ]

    results = []
    for child in children:
        out, _ = child.communicate(timeout=120)
        assert child.returncode == 0
        results.extend(line.split() for line in out.splitlines() if line.strip())

    assert len(results) == procs * per_proc
    # The retry budget is far above what this much contention needs.
    assert all(how == "locked" for _, how in results)
    ids = sorted(int(task_id) for task_id, _ in results)
    assert ids == list(range(1, procs * per_proc + 1))
