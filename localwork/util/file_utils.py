import os
import time
from pathlib import Path

from strif import atomic_output_file


def read_text(path: Path) -> str:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def write_text_atomic(path: Path, text: str, make_parents: bool = False) -> None:
    """
    Write via a temporary file in the same directory, flushed and synced to disk,
    then renamed into place. Readers see the old file or the new one, never a partial
    write.
    """
    with atomic_output_file(path, make_parents=make_parents) as temp_output:
        with open(temp_output, "w", encoding="utf-8", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())


def file_age_days(path: Path, now: float | None = None) -> float:
    """
    Days since the file was last modified.
    """
    now = time.time() if now is None else now
    return (now - path.stat().st_mtime) / (60 * 60 * 24)
