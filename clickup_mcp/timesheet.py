"""
Time entry summaries: entries grouped by list, task and user.

Running timers report a negative duration; their elapsed time is measured
from the entry start up to ``now_ms``.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from .types import Record, timestamp_value

# Above this many tasks only per-list totals are shown
TASK_DETAIL_LIMIT = 100


def format_duration(duration_ms: int) -> str:
    """``1h 30m`` style duration, minutes rounded."""
    hours, minutes = divmod(round(max(duration_ms, 0) / 60_000), 60)
    return f"{hours}h {minutes}m" if hours else f"{minutes}m"


def format_entry_time(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp / 1000).strftime("%Y-%m-%d %H:%M")


def iso_to_timestamp(value: str) -> int:
    """
    Milliseconds since the epoch for an ISO 8601 date or datetime.

    Raises:
        ValueError: If the value is not ISO 8601
    """
    return int(datetime.fromisoformat(value).timestamp() * 1000)


def entry_duration(entry: Record, now_ms: int) -> tuple[int, bool]:
    """Duration in ms and whether the entry is a running timer."""
    duration = timestamp_value(entry.get("duration"))
    if duration < 0:
        return now_ms - timestamp_value(entry.get("start")), True
    return duration, False


@dataclass
class TimeGroup:
    name: str
    total: int = 0
    children: dict[str, "TimeGroup"] = field(default_factory=dict)
    entries: list[Record] = field(default_factory=list)

    def child(self, key: str, name: str) -> "TimeGroup":
        if key not in self.children:
            self.children[key] = TimeGroup(name)
        return self.children[key]


def group_entries(entries: Sequence[Record], now_ms: int) -> TimeGroup:
    """Build the list -> task -> user hierarchy with summed durations."""
    root = TimeGroup("")
    for entry in entries:
        location = entry.get("task_location") or {}
        task = entry.get("task") or {}
        user = entry.get("user") or {}
        duration, _ = entry_duration(entry, now_ms)

        task_list = root.child(
            str(location.get("list_id") or "no-list"), location.get("list_name") or "No List",
        )
        task_group = task_list.child(str(task.get("id") or "no-task"), task.get("name") or "No Task")
        user_group = task_group.child(
            str(user.get("id") or "no-user"), user.get("username") or "Unknown User",
        )
        for group in (root, task_list, task_group, user_group):
            group.total += duration
        user_group.entries.append(entry)
    return root


def _date_range(start_date: Optional[str], end_date: Optional[str]) -> str:
    start = start_date.split("T")[0] if start_date else None
    end = end_date.split("T")[0] if end_date else None
    if start and end:
        return f" ({start} to {end})"
    if start:
        return f" (from {start})"
    if end:
        return f" (until {end})"
    return ""


def format_time_entries(
    entries: Sequence[Record],
    *,
    task_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> str:
    """Hierarchical summary; per-list totals only for very large results."""
    if not entries:
        return f"No time entries found for task {task_id}." if task_id else "No time entries found."
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    root = group_entries(entries, now_ms)
    task_count = sum(len(task_list.children) for task_list in root.children.values())
    lines = [
        f"Time Entries Summary{_date_range(start_date, end_date)}",
        f"Total: {format_duration(root.total)}",
        "",
    ]

    if task_count > TASK_DETAIL_LIMIT:
        lines += [
            f"Large result ({task_count} tasks). Showing list totals only.",
            "Use list_id, space_id or date filters for a detailed view.",
            "",
        ]
        for list_id, task_list in root.children.items():
            tasks = len(task_list.children)
            lines.append(
                f"{task_list.name} (List: {list_id}) - {format_duration(task_list.total)} "
                f"across {tasks} task{'' if tasks == 1 else 's'}"
            )
        return "\n".join(lines)

    for list_id, task_list in root.children.items():
        lines.append(f"{task_list.name} (List: {list_id}) - {format_duration(task_list.total)}")
        for task_key, task in task_list.children.items():
            lines.append(f"  ├─ {task.name} (Task: {task_key}) - {format_duration(task.total)}")
            users = list(task.children.values())
            for i, user in enumerate(users):
                last_user = i == len(users) - 1
                lines.append(f"{'  └─' if last_user else '  ├─'} {user.name}: {format_duration(user.total)}")
                indent = "      " if last_user else "  │   "
                for j, entry in enumerate(user.entries):
                    branch = "└─" if j == len(user.entries) - 1 else "├─"
                    duration, running = entry_duration(entry, now_ms)
                    shown = format_duration(duration) + (" (running)" if running else "")
                    started = format_entry_time(timestamp_value(entry.get("start")))
                    lines.append(f"{indent}{branch} {started} - {shown}")
        lines.append("")
    return "\n".join(lines).rstrip("\n")
