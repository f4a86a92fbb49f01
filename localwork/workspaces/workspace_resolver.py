from pathlib import Path
from typing import Dict, Iterator, List, Optional

from localwork.config.logger import get_logger
from localwork.config.settings import global_data_dir
from localwork.errors import FileExists, FileFormatError, TargetUnreachable, WorkspaceNotFound
from localwork.model.records_model import Family, Workspace, WorkspaceMode
from localwork.workspaces.workspace_config import (
    DEFAULT_NOTES_DIR,
    DEFAULT_TASKS_DIR,
    MARKER_REL_PATH,
    read_workspace_config,
    workspace_root_for,
    write_workspace_config,
)

log = get_logger(__name__)


# Files or directories that mark the root of a project.
PROJECT_MARKERS = [
    ".git",
    "package.json",
    "Cargo.toml",
    "go.mod",
    "pom.xml",
    "pyproject.toml",
    "setup.py",
    "composer.json",
    "Gemfile",
]

NO_WORKSPACE_HINT = (
    "Initialize a local workspace with `task init`, or use the global workspace with "
    "`task -g <command>`."
)


def _dirs_upward(start_dir: Path) -> Iterator[Path]:
    """
    The start directory and each parent, ending with the filesystem root.
    """
    path = start_dir.absolute()
    yield path
    yield from path.parents


def find_marker_paths(start_dir: Path) -> Iterator[Path]:
    """
    Existing workspace markers from the start directory upward, nearest first.
    """
    for dir_path in _dirs_upward(start_dir):
        marker_path = dir_path / MARKER_REL_PATH
        if marker_path.is_file():
            yield marker_path


def _discover_local(start_dir: Path, warnings: List[str]) -> Optional[Workspace]:
    for marker_path in find_marker_paths(start_dir):
        try:
            config = read_workspace_config(marker_path)
        except FileFormatError as e:
            log.warning("Skipping invalid workspace marker: %s", e)
            warnings.append(str(e))
            continue
        tasks_dir, notes_dir = config.resolve_dirs(workspace_root_for(marker_path))
        return Workspace(
            tasks_dir=tasks_dir,
            notes_dir=notes_dir,
            mode=WorkspaceMode.local,
            marker_path=marker_path,
        )
    return None


def global_workspace(global_dir: Optional[Path] = None) -> Workspace:
    global_dir = global_dir or global_data_dir()
    return Workspace(
        tasks_dir=global_dir / Family.tasks.value,
        notes_dir=global_dir / Family.notes.value,
        mode=WorkspaceMode.global_,
    )


def resolve_workspace(
    start_dir: Path,
    force_global: bool = False,
    global_dir: Optional[Path] = None,
    overrides: Optional[Dict[str, Path]] = None,
) -> Workspace:
    """
    Determine the workspace in effect, walking up from `start_dir` to find a local
    marker unless `force_global` is set. `overrides` maps a family name to an explicit
    root that takes precedence over whatever was discovered.

    Nothing is cached: a command run from another directory may see a different
    workspace.
    """
    overrides = overrides or {}
    warnings: List[str] = []

    if force_global:
        workspace = global_workspace(global_dir)
    else:
        workspace = _discover_local(start_dir, warnings)
        if not workspace:
            if all(family.value in overrides for family in Family):
                workspace = global_workspace(global_dir)
            else:
                message = f"Not in a local-work directory: {start_dir.absolute()}"
                if warnings:
                    message += f" ({len(warnings)} invalid workspace config(s) skipped)"
                raise WorkspaceNotFound(message, hint=NO_WORKSPACE_HINT)

    if Family.tasks.value in overrides:
        workspace.tasks_dir = overrides[Family.tasks.value]
    if Family.notes.value in overrides:
        workspace.notes_dir = overrides[Family.notes.value]
    workspace.warnings = warnings

    log.info(
        "Resolved %s workspace: tasks=%s notes=%s",
        workspace.mode.value,
        workspace.tasks_dir,
        workspace.notes_dir,
    )
    return workspace


def ensure_layout(workspace: Workspace) -> None:
    """
    Create the container directories for both families. Idempotent.
    """
    for family in Family:
        root = workspace.root_for(family)
        for container in family.containers:
            dir_path = root / container
            try:
                dir_path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise TargetUnreachable(f"Could not create directory {dir_path}: {e}")


def find_project_root(start_dir: Path) -> Optional[Path]:
    """
    Nearest directory at or above `start_dir` containing a project marker like `.git`.
    """
    for dir_path in _dirs_upward(start_dir):
        if dir_path.parent == dir_path:
            break
        if any((dir_path / marker).exists() for marker in PROJECT_MARKERS):
            return dir_path
    return None


def init_local_workspace(
    cwd: Path,
    tasks_dir: Optional[str] = None,
    notes_dir: Optional[str] = None,
    here: bool = False,
) -> Workspace:
    """
    Create `.local-work/config.json` at the detected project root (or in `cwd` if
    `here` is set or no project root is found) and all family directories.
    """
    cwd = cwd.absolute()
    existing = next(find_marker_paths(cwd), None)
    if existing:
        raise FileExists(
            f"Local configuration already exists at: {workspace_root_for(existing)}",
            hint="Use the existing workspace, or remove its .local-work/ directory first.",
        )

    if here:
        workspace_root = cwd
    else:
        workspace_root = find_project_root(cwd) or cwd
        if workspace_root != cwd:
            log.message("Detected project root at: %s", workspace_root)

    marker_path = write_workspace_config(
        workspace_root,
        tasks_dir=tasks_dir or DEFAULT_TASKS_DIR,
        notes_dir=notes_dir or DEFAULT_NOTES_DIR,
    )
    workspace = resolve_workspace(workspace_root)
    ensure_layout(workspace)
    log.message("Local configuration created: %s", marker_path)
    return workspace
