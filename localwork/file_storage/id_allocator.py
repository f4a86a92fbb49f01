"""
Sequential id allocation for records, safe across independent processes.

There is no daemon and no database, so the filesystem is the only coordination
medium. A small marker file holds the last id issued, and an exclusive-create lock
file guards the read-increment-write. The marker is reconciled against the highest
id actually present in filenames on every call, so a stale, deleted, or missing
marker can't cause reuse of an existing id.

Lock acquisition is bounded. When retries run out the allocator degrades to an
unsynchronized read of the highest id seen, plus one, so the CLI stays usable under
contention. This can issue a duplicate under pathological concurrency and is logged.
"""

import os
import random
import re
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional, Pattern, Sequence

from localwork.config.logger import get_logger
from localwork.config.settings import global_settings
from localwork.errors import AllocatorDegraded
from localwork.file_storage.filenames import format_id, ID_WIDTH
from localwork.model.records_model import Family
from localwork.util.file_utils import read_text, write_text_atomic

log = get_logger(__name__)


TASK_MARKER_FILE = ".last-task-id"
TASK_LOCK_FILE = ".task-id.lock"

ADR_MARKER_FILE = ".last-adr-id"
ADR_LOCK_FILE = ".adr-id.lock"


class IdAllocator:
    """
    Allocates ids for files named `<prefix><number>...` found in `scan_dirs` under
    `root`. The marker and lock files live directly in `root`.
    """

    def __init__(
        self,
        root: Path,
        scan_dirs: Sequence[str],
        prefix: str,
        marker_name: str,
        lock_name: str,
        width: int = ID_WIDTH,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        stale_secs: Optional[float] = None,
        strict: bool = False,
    ):
        settings = global_settings()
        self.root = root
        self.scan_dirs = list(scan_dirs)
        self.id_pattern: Pattern[str] = re.compile(rf"^{re.escape(prefix)}(\d+)")
        self.marker_path = root / marker_name
        self.lock_path = root / lock_name
        self.width = width
        self.max_attempts = (
            max_attempts if max_attempts is not None else settings.id_lock_max_attempts
        )
        self.retry_delay = retry_delay if retry_delay is not None else settings.id_lock_retry_delay
        self.max_delay = max_delay if max_delay is not None else settings.id_lock_max_delay
        self.stale_secs = stale_secs if stale_secs is not None else settings.id_lock_stale_secs
        self.strict = strict
        self.last_degraded = False
        self._held_ino: Optional[int] = None

    def __str__(self):
        return f"IdAllocator({self.root})"

    def next_id(self) -> str:
        """
        Return the next id, zero-padded. Never returns the same value twice to callers
        that got the lock.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        self.last_degraded = False

        try:
            with self._locked() as acquired:
                if acquired:
                    number = max(self._read_marker(), self.max_observed()) + 1
                    write_text_atomic(self.marker_path, f"{number}\n")
                    log.debug("Allocated id %s in %s", number, self.root)
                    return format_id(number, self.width)
                reason = f"lock still held after {self.max_attempts} attempts"
        except OSError as e:
            reason = f"lock error: {e}"

        return self._degraded_id(reason)

    def max_observed(self) -> int:
        """
        Highest id among existing record filenames, or 0.
        """
        highest = 0
        for dir_name in self.scan_dirs:
            dir_path = self.root / dir_name
            if not dir_path.is_dir():
                continue
            for filename in os.listdir(dir_path):
                match = self.id_pattern.match(filename)
                if match:
                    highest = max(highest, int(match.group(1)))
        return highest

    def _read_marker(self) -> int:
        try:
            return int(read_text(self.marker_path).strip())
        except FileNotFoundError:
            return 0
        except ValueError:
            log.warning("Ignoring unreadable id marker: %s", self.marker_path)
            return 0

    def _degraded_id(self, reason: str) -> str:
        error = AllocatorDegraded(
            f"Could not lock {self.lock_path} ({reason}); "
            "allocating without the lock, so a concurrent command could get the same id",
            hint=f"If no other command is running, remove the stale lock file: {self.lock_path}",
        )
        if self.strict:
            raise error
        log.warning("%s", error)
        self.last_degraded = True
        return format_id(max(self._read_marker(), self.max_observed()) + 1, self.width)

    def _try_create_lock(self) -> bool:
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        try:
            os.write(fd, str(os.getpid()).encode("ascii"))
            self._held_ino = os.fstat(fd).st_ino
        finally:
            os.close(fd)
        return True

    def _release_lock(self) -> None:
        try:
            held = self.lock_path.stat().st_ino == self._held_ino
        except FileNotFoundError:
            held = False
        if held:
            self.lock_path.unlink()
        else:
            log.warning("Id lock was removed while held: %s", self.lock_path)
        self._held_ino = None

    def _lock_stat(self) -> os.stat_result:
        return self.lock_path.stat()

    def _break_stale_lock(self) -> bool:
        """
        Remove the lock if it is old enough that its holder must have crashed.

        Another waiter may break the same stale lock and take a fresh one between our
        stat and our removal. So the lock is renamed aside first, and only deleted if
        it is still the file we judged stale. Otherwise it is put back.
        """
        try:
            observed = self._lock_stat()
        except FileNotFoundError:
            # Released just now. Back off as usual so retries stay bounded.
            return False
        age = time.time() - observed.st_mtime
        if age < self.stale_secs:
            return False

        aside = self.lock_path.with_name(f"{self.lock_path.name}.stale.{uuid.uuid4().hex[:8]}")
        try:
            os.rename(self.lock_path, aside)
        except FileNotFoundError:
            # Someone else moved it. Retry right away.
            return True
        moved = aside.stat()
        if (moved.st_ino, moved.st_mtime_ns) != (observed.st_ino, observed.st_mtime_ns):
            try:
                os.link(aside, self.lock_path)
            except FileExistsError:
                log.warning("Could not restore a live id lock: %s", self.lock_path)
            aside.unlink()
            return False

        log.warning("Removing stale id lock (%.0fs old): %s", age, self.lock_path)
        aside.unlink()
        return True

    def _backoff(self, attempt: int) -> None:
        delay = min(self.retry_delay * (2**attempt), self.max_delay)
        time.sleep(delay * random.uniform(0.5, 1.0))

    @contextmanager
    def _locked(self) -> Generator[bool, None, None]:
        """
        Hold the lock file for the duration of the block. Yields False if it couldn't
        be acquired within the retry budget.
        """
        acquired = False
        for attempt in range(self.max_attempts):
            if self._try_create_lock():
                acquired = True
                break
            if self._break_stale_lock():
                continue
            self._backoff(attempt)

        try:
            yield acquired
        finally:
            if acquired:
                self._release_lock()


def task_allocator(tasks_root: Path, **kwargs) -> IdAllocator:
    return IdAllocator(
        tasks_root,
        scan_dirs=Family.tasks.containers,
        prefix="TASK-",
        marker_name=TASK_MARKER_FILE,
        lock_name=TASK_LOCK_FILE,
        **kwargs,
    )


def adr_allocator(technical_dir: Path, **kwargs) -> IdAllocator:
    return IdAllocator(
        technical_dir,
        scan_dirs=["."],
        prefix="ADR-",
        marker_name=ADR_MARKER_FILE,
        lock_name=ADR_LOCK_FILE,
        **kwargs,
    )


def next_task_id(tasks_root: Path) -> str:
    """
    Next zero-padded task id for the given tasks root.
    """
    return task_allocator(tasks_root).next_id()
