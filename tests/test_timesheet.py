"""Tests for clickup_mcp.timesheet — grouped time entry summaries."""

import pytest

from clickup_mcp.timesheet import (
    TASK_DETAIL_LIMIT,
    entry_duration,
    format_duration,
    format_time_entries,
    group_entries,
    iso_to_timestamp,
)

NOW = 1_700_010_000_000
HOUR = 3_600_000


def _entry(task_id, task_name, user_id, username, duration, *, start=1_700_000_000_000, list_id="l1"):
    return {
        "task": {"id": task_id, "name": task_name},
        "task_location": {"list_id": list_id, "list_name": "Backlog"},
        "user": {"id": user_id, "username": username},
        "start": str(start),
        "duration": str(duration),
    }


class TestDurations:

    @pytest.mark.parametrize("ms,expected", [
        (0, "0m"),
        (45 * 60_000, "45m"),
        (90 * 60_000, "1h 30m"),
        (2 * HOUR, "2h 0m"),
        (-5, "0m"),
    ])
    def test_format_duration(self, ms, expected):
        assert format_duration(ms) == expected

    def test_running_timer_measured_from_start(self):
        entry = _entry("abc1234", "T", 1, "alice", -1, start=NOW - 600_000)
        assert entry_duration(entry, NOW) == (600_000, True)

    def test_finished_entry(self):
        assert entry_duration(_entry("abc1234", "T", 1, "alice", HOUR), NOW) == (HOUR, False)

    def test_iso_to_timestamp(self):
        assert iso_to_timestamp("2024-10-06T00:00:00+00:00") == 1_728_172_800_000

    def test_invalid_iso(self):
        with pytest.raises(ValueError):
            iso_to_timestamp("yesterday")


class TestGrouping:

    def test_totals_roll_up(self):
        root = group_entries([
            _entry("abc1234", "Fix login", 1, "alice", HOUR),
            _entry("abc1234", "Fix login", 2, "bob", HOUR // 2),
            _entry("def5678", "Docs", 1, "alice", HOUR, list_id="l2"),
        ], NOW)

        assert root.total == 2 * HOUR + HOUR // 2
        assert root.children["l1"].total == HOUR + HOUR // 2
        task = root.children["l1"].children["abc1234"]
        assert [u.name for u in task.children.values()] == ["alice", "bob"]

    def test_missing_location(self):
        root = group_entries([{"duration": "60000", "start": "0"}], NOW)
        task_list = root.children["no-list"]
        assert task_list.name == "No List"
        assert task_list.children["no-task"].children["no-user"].name == "Unknown User"


class TestSummary:

    def test_no_entries(self):
        assert format_time_entries([]) == "No time entries found."
        assert format_time_entries([], task_id="abc1234") == "No time entries found for task abc1234."

    def test_hierarchy(self):
        text = format_time_entries(
            [
                _entry("abc1234", "Fix login", 1, "alice", HOUR),
                _entry("abc1234", "Fix login", 2, "bob", HOUR // 2),
                _entry("def5678", "Docs", 1, "alice", -1, start=NOW - 600_000),
            ],
            start_date="2024-10-01T00:00:00+02:00",
            end_date="2024-10-31T23:59:59+02:00",
            now_ms=NOW,
        )
        lines = text.splitlines()

        assert lines[0] == "Time Entries Summary (2024-10-01 to 2024-10-31)"
        assert lines[1] == "Total: 1h 40m"
        assert lines[3] == "Backlog (List: l1) - 1h 40m"
        assert lines[4] == "  ├─ Fix login (Task: abc1234) - 1h 30m"
        assert lines[5] == "  ├─ alice: 1h 0m"
        assert lines[6].startswith("  │   └─ ") and lines[6].endswith(" - 1h 0m")
        assert lines[7] == "  └─ bob: 30m"
        assert lines[8].startswith("      └─ ") and lines[8].endswith(" - 30m")
        assert lines[9] == "  ├─ Docs (Task: def5678) - 10m"
        assert lines[-1].endswith(" - 10m (running)")

    def test_open_ended_range(self):
        text = format_time_entries([_entry("abc1234", "T", 1, "a", HOUR)], start_date="2024-10-01", now_ms=NOW)
        assert text.startswith("Time Entries Summary (from 2024-10-01)")

    def test_large_result_shows_list_totals_only(self):
        entries = [
            _entry(f"t{i:06d}", f"Task {i}", 1, "alice", 60_000)
            for i in range(TASK_DETAIL_LIMIT + 1)
        ]

        text = format_time_entries(entries, now_ms=NOW)

        assert f"Large result ({TASK_DETAIL_LIMIT + 1} tasks)" in text
        assert f"Backlog (List: l1) - 1h 41m across {TASK_DETAIL_LIMIT + 1} tasks" in text
        assert "├─" not in text
