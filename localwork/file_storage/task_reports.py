"""
Summaries over the tasks in a workspace: counts and time totals, and a standup
report of what moved recently and what is in progress. These only read files.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from localwork.file_storage.record_store import RecordStore
from localwork.model.records_model import Family, Priority, Record, TaskStatus
from localwork.util.format_utils import parse_hours


@dataclass
class TaskStats:
    by_status: Dict[str, int] = field(default_factory=lambda: {s.value: 0 for s in TaskStatus})
    by_priority: Dict[str, int] = field(default_factory=lambda: {p.value: 0 for p in Priority})
    estimated_hours: float = 0.0
    actual_hours: float = 0.0

    @property
    def total(self) -> int:
        return sum(self.by_status.values())

    @property
    def variance_hours(self) -> float:
        """Positive when more time was spent than estimated."""
        return self.actual_hours - self.estimated_hours


def task_stats(store: RecordStore) -> TaskStats:
    """
    Count tasks by directory and by priority, and total their `estimated` and
    `actual` times. Unknown priorities and unparseable times are not counted.
    """
    stats = TaskStats()
    for record in store.list_records(Family.tasks):
        stats.by_status[record.container] += 1
        priority = record.header.get_str("priority", "")
        if priority in stats.by_priority:
            stats.by_priority[priority] += 1
        stats.estimated_hours += parse_hours(record.header.get_str("estimated")) or 0.0
        stats.actual_hours += parse_hours(record.header.get_str("actual")) or 0.0
    return stats


def last_touched(record: Record) -> date:
    """
    The day a task last changed: its `updated` (or `created`) header date, or the
    file's modification date if neither is a valid date.
    """
    for key in ("updated", "created"):
        value = record.header.get_str(key)
        if value:
            try:
                return date.fromisoformat(value.strip())
            except ValueError:
                pass
    return datetime.fromtimestamp(record.path.stat().st_mtime).date()


@dataclass
class Standup:
    day: date
    yesterday: List[Record]
    today: List[Record]
    blockers: List[Record]


def standup(store: RecordStore, day: Optional[date] = None) -> Standup:
    """
    What was worked on the day before `day` (active or completed tasks touched that
    day), what is active now, and high priority tasks still waiting in the backlog.
    """
    day = day or date.today()
    previous = day - timedelta(days=1)
    records = store.list_records(
        Family.tasks,
        [TaskStatus.active.value, TaskStatus.completed.value, TaskStatus.backlog.value],
    )
    return Standup(
        day=day,
        yesterday=[
            r
            for r in records
            if r.container in (TaskStatus.active.value, TaskStatus.completed.value)
            and last_touched(r) == previous
        ],
        today=[r for r in records if r.container == TaskStatus.active.value],
        blockers=[
            r
            for r in records
            if r.container == TaskStatus.backlog.value
            and r.header.get_str("priority") == Priority.high.value
        ],
    )


def completed_this_week(store: RecordStore, day: Optional[date] = None) -> List[Record]:
    """
    Completed tasks last touched in the Monday to Sunday week containing `day`.
    """
    day = day or date.today()
    monday = day - timedelta(days=day.weekday())
    sunday = monday + timedelta(days=6)
    return [
        r
        for r in store.list_records(Family.tasks, [TaskStatus.completed.value])
        if monday <= last_touched(r) <= sunday
    ]


def standup_markdown(report: Standup) -> str:
    lines = [f"# Standup Report - {report.day.isoformat()}", ""]

    lines += ["## What I worked on yesterday", ""]
    for r in report.yesterday:
        mark = "[x]" if r.container == TaskStatus.completed.value else "[ ]"
        lines.append(f"- {mark} **{r.title}** ({r.record_id})")
    if not report.yesterday:
        lines.append("- No tasks updated yesterday")

    lines += ["", "## What I'm working on today", ""]
    for r in report.today:
        lines.append(f"- [ ] **{r.title}** ({r.record_id}) - {r.header.get_str('priority', '')}")
    if not report.today:
        lines.append("- No active tasks")

    lines += ["", "## Blockers / Issues", ""]
    for r in report.blockers:
        lines.append(f"- **{r.title}** ({r.record_id}) - high priority in backlog")
    if not report.blockers:
        lines.append("- No blockers")

    return "\n".join(lines) + "\n"
