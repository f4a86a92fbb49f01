"""
The `note` command.

Notes are kept by type: daily notes, meeting notes, technical decisions (ADRs) and
learning notes. Use `-g` to work with the global workspace instead of the local one.
"""

import argparse
from typing import Optional, Sequence

from localwork.cli.cli_common import (
    add_global_flag,
    open_store,
    print_note_line,
    print_record,
    run_cli,
)
from localwork.cli.task_cli import cmd_init
from localwork.config.text_styles import COLOR_HINT
from localwork.file_storage.record_store import parse_note_type
from localwork.model.records_model import Family, NoteType
from localwork.shell.shell_output import cprint, print_heading, print_success
from localwork.util.format_utils import fmt_count_items, fmt_path


def _create(args: argparse.Namespace, note_type: NoteType) -> None:
    store = open_store(args)
    title = " ".join(args.title) if args.title else None
    record = store.create(Family.notes, note_type, title)
    print_success("%s note: %s", note_type.header_type.capitalize(), record.title)
    cprint(fmt_path(record.path), color=COLOR_HINT)


def cmd_daily(args: argparse.Namespace) -> None:
    _create(args, NoteType.daily)


def cmd_meeting(args: argparse.Namespace) -> None:
    _create(args, NoteType.meetings)


def cmd_tech(args: argparse.Namespace) -> None:
    _create(args, NoteType.technical)


def cmd_learn(args: argparse.Namespace) -> None:
    _create(args, NoteType.learning)


def cmd_list(args: argparse.Namespace) -> None:
    store = open_store(args)
    if args.type:
        containers = [parse_note_type(t).value for t in args.type]
    else:
        containers = list(Family.notes.containers)
    for container in containers:
        records = store.list_records(Family.notes, [container])
        print_heading("%s (%s)", container, len(records))
        for record in records:
            print_note_line(record)


def cmd_show(args: argparse.Namespace) -> None:
    store = open_store(args)
    print_record(store.find(Family.notes, args.name))


def cmd_search(args: argparse.Namespace) -> None:
    store = open_store(args)
    term = " ".join(args.term)
    records = store.search(Family.notes, term)
    print_heading("%s matching %r", fmt_count_items(len(records), "note"), term)
    for record in records:
        print_note_line(record)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="note", description=__doc__)
    add_global_flag(parser)
    subparsers = parser.add_subparsers(title="commands")

    p = subparsers.add_parser("init", help="initialize a local workspace in this project")
    p.add_argument("tasks_dir", nargs="?", help="tasks directory (default .local-work/tasks)")
    p.add_argument("notes_dir", nargs="?", help="notes directory (default .local-work/notes)")
    p.add_argument(
        "--here", action="store_true", help="use this directory even inside a larger project"
    )
    p.set_defaults(func=cmd_init)

    p = subparsers.add_parser("daily", help="create or open today's daily note")
    p.add_argument("title", nargs="*")
    p.set_defaults(func=cmd_daily)

    p = subparsers.add_parser("meeting", help="create a meeting note")
    p.add_argument("title", nargs="+")
    p.set_defaults(func=cmd_meeting)

    p = subparsers.add_parser("tech", aliases=["adr"], help="create a technical decision record")
    p.add_argument("title", nargs="+")
    p.set_defaults(func=cmd_tech)

    p = subparsers.add_parser("learn", aliases=["til"], help="create a learning note")
    p.add_argument("title", nargs="+")
    p.set_defaults(func=cmd_learn)

    p = subparsers.add_parser("list", help="list notes, by default of every type")
    p.add_argument(
        "type", nargs="*", help=f"types to list: {', '.join(t.value for t in NoteType)}"
    )
    p.set_defaults(func=cmd_list)

    p = subparsers.add_parser("show", help="show a note")
    p.add_argument("name", help="filename or part of one")
    p.set_defaults(func=cmd_show)

    p = subparsers.add_parser("search", help="search note titles and text")
    p.add_argument("term", nargs="+")
    p.set_defaults(func=cmd_search)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    return run_cli(build_parser, argv)


if __name__ == "__main__":
    raise SystemExit(main())
