"""
Plain-text rendering of ClickUp records for LLM consumption.
"""

import re
from typing import Any, Optional, Sequence

from .types import Record, timestamp_to_iso

APP_URL = "https://app.clickup.com"


def task_url(task_id: str) -> str:
    return f"{APP_URL}/t/{task_id}"


def list_url(list_id: str) -> str:
    return f"{APP_URL}/v/l/{list_id}"


def folder_url(folder_id: str) -> str:
    return f"{APP_URL}/v/f/{folder_id}"


def space_url(space_id: str) -> str:
    return f"{APP_URL}/v/s/{space_id}"


def document_url(team_id: str, doc_id: str, page_id: Optional[str] = None) -> str:
    url = f"{APP_URL}/{team_id}/v/dc/{doc_id}"
    return f"{url}/{page_id}" if page_id else url


def _name(value: Any, default: str = "") -> str:
    if isinstance(value, dict):
        return str(value.get("name") or value.get("username") or default)
    return default


def _custom_field_value(field: Record) -> Optional[str]:
    value = field.get("value")
    if value is None or value == "":
        return None
    if field.get("type") == "drop_down" and isinstance(value, int):
        options = (field.get("type_config") or {}).get("options") or []
        for option in options:
            if option.get("orderindex") == value:
                return str(option.get("name", value))
        return str(value)
    if isinstance(value, list):
        return ", ".join(str(v.get("name", v)) if isinstance(v, dict) else str(v) for v in value)
    if isinstance(value, dict):
        return str(value.get("username") or value.get("name") or value)
    return str(value)


def task_metadata(task: Record) -> str:
    """Key/value summary of a task, one field per line."""
    space = task.get("space") or {}
    status = task.get("status") or {}
    creator = task.get("creator") or {}
    task_list = task.get("list") or {}

    lines = [
        f"task_id: {task.get('id')}",
        f"task_url: {task.get('url') or task_url(str(task.get('id')))}",
        f"name: {task.get('name', '')}",
        f"status: {status.get('status', 'unknown')}",
        f"date_created: {timestamp_to_iso(task.get('date_created'))}",
        f"date_updated: {timestamp_to_iso(task.get('date_updated'))}",
    ]
    if creator:
        lines.append(f"creator: {creator.get('username')} ({creator.get('id')})")
    assignees = task.get("assignees") or []
    lines.append("assignee: " + ", ".join(f"{a.get('username')} ({a.get('id')})" for a in assignees))
    if task_list:
        lines.append(f"list: {task_list.get('name', '')} ({task_list.get('id')})")
    lines.append(f"space: {space.get('name') or 'Unknown Space'} ({space.get('id') or 'N/A'})")

    priority = task.get("priority")
    if isinstance(priority, dict):
        lines.append(f"priority: {priority.get('priority') or 'none'}")
    if task.get("due_date"):
        lines.append(f"due_date: {timestamp_to_iso(task['due_date'])}")
    if task.get("start_date"):
        lines.append(f"start_date: {timestamp_to_iso(task['start_date'])}")
    estimate = task.get("time_estimate")
    if estimate:
        estimate = int(estimate)
        lines.append(f"time_estimate: {estimate // 3_600_000}h {(estimate % 3_600_000) // 60_000}m")
    tags = task.get("tags") or []
    if tags:
        lines.append("tags: " + ", ".join(_name(t) for t in tags))
    watchers = task.get("watchers") or []
    if watchers:
        lines.append("watchers: " + ", ".join(_name(w) for w in watchers))
    if isinstance(task.get("parent"), str):
        lines.append(f"parent_task_id: {task['parent']}")
    subtasks = task.get("subtasks") or []
    if subtasks:
        lines.append("child_task_ids: " + ", ".join(str(s.get("id")) for s in subtasks))
    if task.get("archived"):
        lines.append("archived: true")

    for field in task.get("custom_fields") or []:
        value = _custom_field_value(field)
        if value is None:
            continue
        field_name = re.sub(r"\s+", "_", str(field.get("name", "field")).lower())
        lines.append(f"custom_{field_name}: {value}")

    return "\n".join(lines)


def comment_header(comment: Record) -> str:
    user = comment.get("user") or {}
    return f"Comment by {user.get('username', 'unknown')} on {timestamp_to_iso(comment.get('date'))}:"


def format_documents(docs: Sequence[Record], team_id: str) -> str:
    """Bullet list of documents with space context and URLs."""
    count = len(docs)
    lines = [f"Found {count} document{'' if count == 1 else 's'}:"]
    for doc in docs:
        meta = [f"doc_id {doc.get('id')}"]
        space = doc.get("space")
        if isinstance(space, dict) and space.get("name"):
            meta.append(f"space: {space['name']}")
        created = timestamp_to_iso(doc.get("date_created"))
        meta.append(f"Created: {created[:10] if created else 'Unknown'}")
        lines.append(f"- {doc.get('name', '')} ({', '.join(meta)}) {document_url(team_id, str(doc.get('id')))}")
    lines += ["", "Use readDocument with the doc_id to get full content and page structure."]
    return "\n".join(lines)


def _list_extra(task_list: Record) -> str:
    extras = []
    if task_list.get("task_count"):
        extras.append(f"{task_list['task_count']} tasks")
    if task_list.get("private"):
        extras.append("private")
    if task_list.get("archived"):
        extras.append("archived")
    return f", {', '.join(extras)}" if extras else ""


def space_header(space: Record) -> str:
    flags = ""
    if space.get("private"):
        flags += ", private"
    if space.get("archived"):
        flags += ", archived"
    return f"SPACE: {space.get('name', '')} (space_id: {space.get('id')}{flags}) {space_url(str(space.get('id')))}"


def format_space_tree(space: Record, folders: Sequence[Record], lists: Sequence[Record]) -> str:
    """Space with its folderless lists and folders as a tree."""
    total_lists = len(lists) + sum(len(f.get("lists") or []) for f in folders)
    lines = [
        space_header(space),
        f"   {total_lists} lists, {len(folders)} folders",
    ]

    for i, task_list in enumerate(lists):
        last = i == len(lists) - 1 and not folders
        branch = "└──" if last else "├──"
        lines.append(
            f"{branch} {task_list.get('name', '')} (list_id: {task_list.get('id')}{_list_extra(task_list)}) "
            f"{list_url(str(task_list.get('id')))}"
        )

    for i, folder in enumerate(folders):
        last = i == len(folders) - 1
        branch, cont = ("└──", "   ") if last else ("├──", "│  ")
        lines.append(
            f"{branch} {folder.get('name', '')} (folder_id: {folder.get('id')}) "
            f"{folder_url(str(folder.get('id')))}"
        )
        nested = folder.get("lists") or []
        for j, task_list in enumerate(nested):
            nested_branch = "└──" if j == len(nested) - 1 else "├──"
            lines.append(
                f"{cont} {nested_branch} {task_list.get('name', '')} "
                f"(list_id: {task_list.get('id')}{_list_extra(task_list)}) "
                f"{list_url(str(task_list.get('id')))}"
            )

    return "\n".join(lines)


def _flag(value: Any) -> str:
    return "true" if value else "false"


def _status_lines(statuses: Sequence[Record]) -> list[str]:
    lines = [f"Available statuses ({len(statuses)} total):"]
    for status in statuses:
        lines.append(f"  - {status.get('status')} ({status.get('type') or 'custom'})")
    return lines


def format_list_info(task_list: Record, space_tags: Sequence[Record] = ()) -> str:
    """List details with description, statuses and the space's tags."""
    list_id = str(task_list.get("id"))
    space = task_list.get("space") or {}
    folder = task_list.get("folder") or {}
    lines = [
        "List Information:",
        f"list_id: {list_id}",
        f"list_url: {list_url(list_id)}",
        f"name: {task_list.get('name', '')}",
        f"folder: {folder.get('name') or 'No folder'}",
        f"space: {space.get('name') or 'Unknown'} ({space.get('id') or 'N/A'})",
        f"space_url: {space_url(str(space.get('id') or ''))}",
        f"archived: {_flag(task_list.get('archived'))}",
        f"task_count: {task_list.get('task_count') or 0}",
    ]
    description = (
        task_list.get("markdown_description")
        or task_list.get("markdown_content")
        or task_list.get("content")
    )
    if description:
        lines.append(f"description: {description}")

    statuses = task_list.get("statuses")
    if isinstance(statuses, list):
        lines += _status_lines(statuses)
        lines.append("Valid status names: " + ", ".join(str(s.get("status")) for s in statuses))
    else:
        lines.append("No statuses found for this list.")

    tag_names = sorted(str(tag["name"]) for tag in space_tags if tag.get("name"))
    if tag_names:
        lines.append(f"Available tags in space (shared across all lists): {', '.join(tag_names)}")
    elif space.get("id"):
        lines.append("No tags found in this space.")
    return "\n".join(lines)


def format_folder_info(folder: Record) -> str:
    """Folder details with its lists and statuses."""
    folder_id = str(folder.get("id"))
    space = folder.get("space") or {}
    lines = [
        "Folder Information:",
        f"folder_id: {folder_id}",
        f"folder_url: {folder_url(folder_id)}",
        f"name: {folder.get('name', '')}",
        f"space: {space.get('name') or 'Unknown'} (space_id: {space.get('id') or 'N/A'})",
        f"space_url: {space_url(str(space.get('id') or ''))}",
        f"archived: {_flag(folder.get('archived'))}",
        f"hidden: {_flag(folder.get('hidden'))}",
    ]
    lists = folder.get("lists") or []
    if lists:
        lines.append(f"Lists in this folder ({len(lists)} total):")
        for task_list in lists:
            lines.append(
                f"  - {task_list.get('name', '')} (list_id: {task_list.get('id')}{_list_extra(task_list)}) "
                f"{list_url(str(task_list.get('id')))}"
            )
    else:
        lines.append("No lists found in this folder.")

    statuses = folder.get("statuses")
    if isinstance(statuses, list):
        lines += _status_lines(statuses)
    return "\n".join(lines)


def format_current_user(user: Record) -> str:
    return "\n".join([
        "Current User Information:",
        f"user_id: {user.get('id')}",
        f"username: {user.get('username')}",
        f"email: {user.get('email')}",
        f"color: {user.get('color') or 'None'}",
        f"profile_picture: {user.get('profilePicture') or 'None'}",
        f"initials: {user.get('initials') or 'N/A'}",
        f"week_start_day: {user.get('week_start_day') or 0}",
        f"timezone: {user.get('timezone') or 'Unknown'}",
    ])


def flatten_pages(listing: Sequence[Record]) -> list[Record]:
    """Depth-first list of every page in a page tree."""
    pages: list[Record] = []
    for page in listing:
        pages.append(page)
        pages += flatten_pages(page.get("pages") or [])
    return pages


def page_tree_lines(listing: Sequence[Record], current_id: str, depth: int = 0) -> list[str]:
    """Indented page tree with the current page marked."""
    lines = []
    for page in listing:
        current = page.get("id") == current_id
        marker = "▶ " if current else "  "
        suffix = " <- currently viewing" if current else ""
        lines.append(f"{'  ' * depth}{marker}{page.get('name', '')} ({page.get('id')}){suffix}")
        lines += page_tree_lines(page.get("pages") or [], current_id, depth + 1)
    return lines


def document_header(team_id: str, doc: Record, page: Record, listing: Sequence[Record]) -> str:
    """Document and current page metadata followed by the page structure."""
    doc_id = str(doc.get("id"))
    page_id = str(page.get("id"))
    lines = [
        f"doc_id: {doc_id}",
        f"Document Title: {doc.get('name', '')}",
        f"Document URL: {document_url(team_id, doc_id)}",
        f"Current page_id: {page_id}",
        f"Current Page Title: {page.get('name', '')}",
        f"Current Page URL: {document_url(team_id, doc_id, page_id)}",
        "Page Structure:",
    ]
    lines += page_tree_lines(listing, page_id)
    return "\n".join(lines)
