"""
Plumbing shared by the `task` and `note` commands: workspace resolution, the error
boundary, and record display.
"""

import argparse
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from localwork.config.logger import get_logger, reset_logging
from localwork.config.settings import (
    env_overrides,
    global_data_dir,
    LogLevel,
    update_global_settings,
)
from localwork.config.setup import setup
from localwork.config.text_styles import (
    COLOR_HINT,
    COLOR_KEY,
    COLOR_VALUE,
    NOTE_TYPE_COLORS,
    PRIORITY_COLORS,
    STATUS_COLORS,
)
from localwork.errors import is_fatal, SelfExplanatoryError
from localwork.file_formats.frontmatter_codec import StrList
from localwork.file_storage.record_store import RecordStore
from localwork.model.records_model import Record, WorkspaceMode
from localwork.shell.shell_output import cprint, print_error, print_line, print_markdown
from localwork.util.format_utils import fmt_age, fmt_path, single_line
from localwork.workspaces.workspace_resolver import ensure_layout, resolve_workspace

log = get_logger(__name__)


def add_global_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-g",
        "--global",
        dest="global_",
        action="store_true",
        help="use the global workspace instead of the local one",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="show informational log messages"
    )


def open_store(args: argparse.Namespace, cwd: Optional[Path] = None) -> RecordStore:
    """
    Resolve the workspace for this invocation and move logging into it.
    """
    workspace = resolve_workspace(
        cwd or Path.cwd(),
        force_global=args.global_,
        global_dir=global_data_dir(),
        overrides=env_overrides(),
    )
    if workspace.mode is WorkspaceMode.global_:
        ensure_layout(workspace)
    reset_logging(workspace.log_root or global_data_dir())
    for warning in workspace.warnings:
        log.warning("%s", warning)
    return RecordStore(workspace)


def run_cli(
    build_parser: Callable[[], argparse.ArgumentParser], argv: Optional[Sequence[str]] = None
) -> int:
    """
    Parse arguments and run the chosen subcommand. Expected errors print a short
    message and a hint and return 1. Anything else propagates with its traceback.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        with update_global_settings() as settings:
            settings.console_log_level = LogLevel.info
    setup()
    if not getattr(args, "func", None):
        parser.print_help()
        return 1
    try:
        args.func(args)
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        if is_fatal(e):
            raise
        hint = e.hint if isinstance(e, SelfExplanatoryError) else None
        print_error(str(e), hint)
        log.info("Command error details: %s", e, exc_info=True)
        return 1
    return 0


## Display


def print_task_line(record: Record) -> None:
    header = record.header
    priority = header.get_str("priority", "") or ""
    status = header.get_str("status", record.status) or record.status
    parts: List[tuple[str, Optional[str]]] = [
        (f"{record.record_id:<10}", "localwork.task_id"),
        (f" {status:<10}", STATUS_COLORS.get(status)),
        (f" {priority:<7}", PRIORITY_COLORS.get(priority)),
        (f" {single_line(record.title)}", None),
    ]
    assignee = header.get_str("assignee")
    if assignee:
        parts.append((f" @{assignee}", COLOR_KEY))
    tags = header.get_list("tags")
    if tags:
        parts.append((f" [{', '.join(tags)}]", COLOR_VALUE))
    print_line(*parts)


def print_note_line(record: Record) -> None:
    age = fmt_age(record.path.stat().st_mtime)
    print_line(
        (f"{record.container:<10}", NOTE_TYPE_COLORS.get(record.container)),
        (f" {record.filename}", None),
        (f"  {single_line(record.title)}", COLOR_VALUE),
        (f"  ({age})", COLOR_HINT),
    )


def print_record(record: Record) -> None:
    """
    Show a record's header fields and its body.
    """
    cprint(fmt_path(record.path), color=COLOR_HINT)
    for key, value in record.header.items():
        shown = f"[{value}]" if isinstance(value, StrList) else str(value)
        print_line((f"{key}: ", COLOR_KEY), (shown, None))
    if record.body.strip():
        cprint()
        print_markdown(record.body)
