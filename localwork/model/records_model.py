from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from localwork.file_formats.frontmatter_codec import Header


class TaskStatus(Enum):
    """
    Lifecycle states of a task, in conventional forward order. Each is also the name
    of the directory holding tasks in that state.
    """

    backlog = "backlog"
    active = "active"
    completed = "completed"
    archived = "archived"


class NoteType(Enum):
    """
    Note categories, as directory names.
    """

    daily = "daily"
    meetings = "meetings"
    technical = "technical"
    learning = "learning"

    @property
    def header_type(self) -> str:
        """Value of the `type` header field for notes in this directory."""
        return "meeting" if self is NoteType.meetings else self.value


class Priority(Enum):
    low = "low"
    medium = "medium"
    high = "high"


class Family(Enum):
    """
    A record kind with its own root and directory taxonomy.
    """

    tasks = "tasks"
    notes = "notes"

    @property
    def containers(self) -> Tuple[str, ...]:
        """All container directories, in taxonomy order."""
        if self is Family.tasks:
            return tuple(s.value for s in TaskStatus)
        else:
            return tuple(t.value for t in NoteType)

    @property
    def search_order(self) -> Tuple[str, ...]:
        """Containers in the order they are searched when finding a record."""
        if self is Family.tasks:
            return ("active", "backlog", "completed", "archived")
        else:
            return self.containers


class WorkspaceMode(Enum):
    local = "local"
    global_ = "global"


@dataclass
class Workspace:
    """
    The pair of family roots in effect for one invocation.
    """

    tasks_dir: Path
    notes_dir: Path
    mode: WorkspaceMode
    marker_path: Optional[Path] = None
    warnings: List[str] = field(default_factory=list)

    def root_for(self, family: Family) -> Path:
        return self.tasks_dir if family is Family.tasks else self.notes_dir

    @property
    def log_root(self) -> Optional[Path]:
        """Directory for log files: the workspace dot dir when local."""
        return self.marker_path.parent if self.marker_path else None


@dataclass
class Record:
    """
    One task or note file, as last read from disk.
    """

    family: Family
    path: Path
    container: str
    record_id: str
    header: Header
    body: str

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def title(self) -> str:
        return self.header.get_str("title") or self.path.stem

    @property
    def status(self) -> str:
        """The containing directory, which is the record's lifecycle state for tasks."""
        return self.container

    def __str__(self):
        return f"Record({self.family.value}/{self.container}/{self.filename})"
