"""
The `task` command.

Tasks move through backlog → active → completed → archived. Use `-g` to work with
the global workspace instead of the local one.
"""

import argparse
from pathlib import Path
from typing import Optional, Sequence

from localwork.cli.cli_common import (
    add_global_flag,
    open_store,
    print_record,
    print_task_line,
    run_cli,
)
from localwork.config.settings import global_settings
from localwork.config.text_styles import (
    COLOR_ERROR,
    COLOR_HINT,
    COLOR_SUCCESS,
    EMOJI_ARROW,
    PRIORITY_COLORS,
    STATUS_COLORS,
)
from localwork.file_storage.record_store import parse_status
from localwork.file_storage.task_reports import (
    completed_this_week,
    standup,
    standup_markdown,
    task_stats,
)
from localwork.model.records_model import Family, Priority, TaskStatus
from localwork.shell.shell_output import (
    cprint,
    print_heading,
    print_hint,
    print_line,
    print_success,
)
from localwork.util.format_utils import fmt_count_items, fmt_hours, fmt_path
from localwork.workspaces.workspace_resolver import init_local_workspace


def cmd_init(args: argparse.Namespace) -> None:
    workspace = init_local_workspace(
        Path.cwd(), tasks_dir=args.tasks_dir, notes_dir=args.notes_dir, here=args.here
    )
    print_success("Initialized local workspace")
    cprint("Tasks: %s", fmt_path(workspace.tasks_dir), color=COLOR_HINT)
    cprint("Notes: %s", fmt_path(workspace.notes_dir), color=COLOR_HINT)


def cmd_new(args: argparse.Namespace) -> None:
    store = open_store(args)
    extra = {"priority": args.priority, "assignee": args.assignee or ""}
    if args.tags:
        extra["tags"] = args.tags
    record = store.create(Family.tasks, args.status, " ".join(args.title), extra)
    print_success("Created %s: %s", record.record_id, record.title)
    cprint(fmt_path(record.path), color=COLOR_HINT)


def _move(args: argparse.Namespace, target: TaskStatus) -> None:
    store = open_store(args)
    record = store.find(Family.tasks, args.id)
    before = record.container
    moved = store.transition(record, target)
    if before == moved.container:
        print_hint("%s is already %s", moved.record_id, target.value)
    else:
        print_success("%s: %s %s %s", moved.record_id, before, EMOJI_ARROW, target.value)


def cmd_start(args: argparse.Namespace) -> None:
    _move(args, TaskStatus.active)


def cmd_done(args: argparse.Namespace) -> None:
    _move(args, TaskStatus.completed)


def cmd_move(args: argparse.Namespace) -> None:
    _move(args, TaskStatus(args.status))


def cmd_list(args: argparse.Namespace) -> None:
    store = open_store(args)
    if args.status:
        containers = [parse_status(s).value for s in args.status]
    else:
        containers = [s.value for s in TaskStatus if s is not TaskStatus.archived]
    for container in containers:
        records = store.list_records(Family.tasks, [container])
        print_heading("%s (%s)", container, len(records))
        for record in records:
            print_task_line(record)


def cmd_show(args: argparse.Namespace) -> None:
    store = open_store(args)
    print_record(store.find(Family.tasks, args.id))


def cmd_update(args: argparse.Namespace) -> None:
    store = open_store(args)
    record = store.find(Family.tasks, args.id)
    record = store.update(record, {args.field: " ".join(args.value)})
    print_success("Updated %s: %s", record.record_id, args.field)


def cmd_search(args: argparse.Namespace) -> None:
    store = open_store(args)
    term = " ".join(args.term)
    records = store.search(Family.tasks, term)
    print_heading("%s matching %r", fmt_count_items(len(records), "task"), term)
    for record in records:
        print_task_line(record)


def cmd_archive(args: argparse.Namespace) -> None:
    if args.id:
        _move(args, TaskStatus.archived)
        return
    store = open_store(args)
    count = store.archive_older_than(args.days)
    print_success("Archived %s", fmt_count_items(count, "completed task"))


def cmd_repair(args: argparse.Namespace) -> None:
    store = open_store(args)
    fixes = store.repair()
    if not fixes:
        print_success("Nothing to repair")
    for fix in fixes:
        cprint(fix)


def cmd_stats(args: argparse.Namespace) -> None:
    stats = task_stats(open_store(args))

    print_heading("By status")
    for status, count in stats.by_status.items():
        print_line((f"  {status:<12}", STATUS_COLORS.get(status)), (str(count), None))

    print_heading("By priority")
    for priority, count in stats.by_priority.items():
        print_line((f"  {priority:<12}", PRIORITY_COLORS.get(priority)), (str(count), None))

    print_heading("Time")
    cprint("  Estimated:  %s", fmt_hours(stats.estimated_hours))
    cprint("  Actual:     %s", fmt_hours(stats.actual_hours))
    if stats.estimated_hours > 0:
        variance = stats.variance_hours
        print_line(
            ("  Variance:   ", None),
            (fmt_hours(variance), COLOR_ERROR if variance > 0 else COLOR_SUCCESS),
            (" (over)" if variance > 0 else " (under)", COLOR_HINT),
        )

    cprint()
    cprint("Total: %s", fmt_count_items(stats.total, "task"))


def cmd_standup(args: argparse.Namespace) -> None:
    store = open_store(args)
    if args.weekly:
        records = completed_this_week(store)
        print_heading("Completed this week (%s)", len(records))
        for record in records:
            print_task_line(record)
        return

    report = standup(store)
    if args.markdown:
        cprint(standup_markdown(report), end="")
        return
    sections = [
        ("Yesterday", report.yesterday, "No tasks updated yesterday"),
        ("Today", report.today, "No active tasks"),
        ("Blockers", report.blockers, "No high priority tasks waiting in backlog"),
    ]
    for heading, records, empty in sections:
        print_heading(heading)
        for record in records:
            print_task_line(record)
        if not records:
            cprint(empty, color=COLOR_HINT)


def build_parser() -> argparse.ArgumentParser:
    statuses = [s.value for s in TaskStatus]
    parser = argparse.ArgumentParser(prog="task", description=__doc__)
    add_global_flag(parser)
    subparsers = parser.add_subparsers(title="commands")

    p = subparsers.add_parser("init", help="initialize a local workspace in this project")
    p.add_argument("tasks_dir", nargs="?", help="tasks directory (default .local-work/tasks)")
    p.add_argument("notes_dir", nargs="?", help="notes directory (default .local-work/notes)")
    p.add_argument(
        "--here", action="store_true", help="use this directory even inside a larger project"
    )
    p.set_defaults(func=cmd_init)

    p = subparsers.add_parser("new", aliases=["create"], help="create a new task")
    p.add_argument("title", nargs="+")
    p.add_argument(
        "-p",
        "--priority",
        choices=[priority.value for priority in Priority],
        default=global_settings().default_priority,
    )
    p.add_argument("-a", "--assignee")
    p.add_argument("-t", "--tags", help="comma-separated tags")
    p.add_argument("--status", choices=statuses, default=TaskStatus.backlog.value)
    p.set_defaults(func=cmd_new)

    p = subparsers.add_parser("start", help="move a task to active")
    p.add_argument("id")
    p.set_defaults(func=cmd_start)

    p = subparsers.add_parser("done", aliases=["complete"], help="move a task to completed")
    p.add_argument("id")
    p.set_defaults(func=cmd_done)

    p = subparsers.add_parser("move", help="move a task to any status")
    p.add_argument("id")
    p.add_argument("status", choices=statuses)
    p.set_defaults(func=cmd_move)

    p = subparsers.add_parser("list", help="list tasks, by default all but archived")
    p.add_argument("status", nargs="*", help=f"statuses to list: {', '.join(statuses)}")
    p.set_defaults(func=cmd_list)

    p = subparsers.add_parser("show", help="show a task")
    p.add_argument("id")
    p.set_defaults(func=cmd_show)

    p = subparsers.add_parser("update", help="set a field on a task")
    p.add_argument("id")
    p.add_argument("field", help="title, priority, assignee, estimated, actual or tags")
    p.add_argument("value", nargs="+")
    p.set_defaults(func=cmd_update)

    p = subparsers.add_parser("search", help="search task titles and text")
    p.add_argument("term", nargs="+")
    p.set_defaults(func=cmd_search)

    p = subparsers.add_parser(
        "archive", help="archive a task, or all completed tasks untouched for some days"
    )
    p.add_argument("id", nargs="?")
    p.add_argument("--days", type=int, default=None)
    p.set_defaults(func=cmd_archive)

    p = subparsers.add_parser("repair", help="clean up after interrupted commands")
    p.set_defaults(func=cmd_repair)

    p = subparsers.add_parser("stats", help="task counts and time totals")
    p.set_defaults(func=cmd_stats)

    p = subparsers.add_parser("standup", help="what moved yesterday, what is active, blockers")
    p.add_argument("--weekly", action="store_true", help="tasks completed this week instead")
    p.add_argument("--markdown", action="store_true", help="print the report as Markdown")
    p.set_defaults(func=cmd_standup)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    return run_cli(build_parser, argv)


if __name__ == "__main__":
    raise SystemExit(main())
