"""
The workspace marker: a small JSON document at `.local-work/config.json` whose
presence designates a local workspace and whose content names the family roots.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from localwork.config.logger import get_logger
from localwork.config.settings import DOT_DIR, MARKER_FILE, MARKER_VERSION
from localwork.errors import FileFormatError
from localwork.util.file_utils import read_text, write_text_atomic

log = get_logger(__name__)


MARKER_REL_PATH = Path(DOT_DIR) / MARKER_FILE

DEFAULT_TASKS_DIR = f"{DOT_DIR}/tasks"
DEFAULT_NOTES_DIR = f"{DOT_DIR}/notes"


class WorkspaceConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    version: str

    tasks_dir: str = Field(alias="tasksDir")
    """Tasks root, absolute or relative to the directory holding `.local-work/`."""

    notes_dir: str = Field(alias="notesDir")
    """Notes root, absolute or relative to the directory holding `.local-work/`."""

    project_root: Optional[str] = Field(default=None, alias="projectRoot")
    """Where the workspace was created. Informational only, so projects can move."""

    created_at: Optional[str] = Field(default=None, alias="createdAt")

    def resolve_dirs(self, workspace_root: Path) -> tuple[Path, Path]:
        """
        Absolute family roots, resolving relative paths against the workspace root.
        """
        return (
            (workspace_root / Path(self.tasks_dir).expanduser()).resolve(),
            (workspace_root / Path(self.notes_dir).expanduser()).resolve(),
        )


def workspace_root_for(marker_path: Path) -> Path:
    """
    The directory holding `.local-work/`, against which relative paths resolve.
    """
    return marker_path.parent.parent


def read_workspace_config(marker_path: Path) -> WorkspaceConfig:
    try:
        data = json.loads(read_text(marker_path))
        config = WorkspaceConfig.model_validate(data)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
        raise FileFormatError(f"Could not read workspace config {marker_path}: {e}")

    if config.version.split(".")[0] != MARKER_VERSION.split(".")[0]:
        log.warning(
            "Workspace config is version %r but we are using version %r: %s",
            config.version,
            MARKER_VERSION,
            marker_path,
        )
    return config


def write_workspace_config(
    workspace_root: Path,
    tasks_dir: str = DEFAULT_TASKS_DIR,
    notes_dir: str = DEFAULT_NOTES_DIR,
) -> Path:
    config = WorkspaceConfig(
        version=MARKER_VERSION,
        tasks_dir=tasks_dir,
        notes_dir=notes_dir,
        project_root=str(workspace_root),
        created_at=datetime.now().astimezone().isoformat(timespec="seconds"),
    )
    marker_path = workspace_root / MARKER_REL_PATH
    text = json.dumps(config.model_dump(by_alias=True), indent=2) + "\n"
    write_text_atomic(marker_path, text, make_parents=True)
    log.info("Wrote workspace config: %s", marker_path)
    return marker_path
