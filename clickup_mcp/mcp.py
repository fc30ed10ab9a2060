"""
MCP stdio server for ClickUp: search and read tasks, documents, lists and spaces.

Exposes the search subsystem as MCP tools so AI agents can find and read
ClickUp work items.

Usage:
    clickup-mcp mcp                                  # stdio server (via CLI)
    claude mcp add clickup -- clickup-mcp mcp        # Claude Code integration

No lock serializes tool calls: index builds for the same filters are
de-duplicated by the search caches, everything else is independent.
"""

import asyncio
import logging
import os
from typing import Annotated, Optional, Union

import httpx
from mcp.server.fastmcp import FastMCP
from mcp.types import ImageContent, TextContent, ToolAnnotations
from pydantic import Field

from .client import ClickUpClient
from .config import ClickUpConfig, load_config
from .errors import ClickUpError
from .formatting import (
    comment_header,
    document_header,
    document_url,
    flatten_pages,
    format_current_user,
    format_documents,
    format_folder_info,
    format_list_info,
    format_space_tree,
    space_header,
    task_metadata,
)
from .images import ImageFetcher, allocate_images
from .search import SearchService, with_space_name
from .text import process_clickup_markdown, process_clickup_text
from .timesheet import format_time_entries, iso_to_timestamp
from .types import ContentBlock, ImageBlock, PendingBlock, TextBlock, is_task_id

logger = logging.getLogger(__name__)

# Spaces are shown with their full list/folder tree up to this many matches
MAX_DETAILED_SPACES = 5

McpContent = Union[TextContent, ImageContent]

# ---------------------------------------------------------------------------
# Server setup
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "clickup",
    instructions=(
        "Search and read ClickUp tasks, documents and spaces. "
        "Search results are overviews; use getTaskById and readDocument for full details. "
        "Always reference tasks, documents and spaces by their URLs."
    ),
)

_config: Optional[ClickUpConfig] = None
_service: Optional[SearchService] = None
_fetcher: Optional[ImageFetcher] = None


def _get_config() -> ClickUpConfig:
    """Lazy-load configuration (raises ValueError if credentials are missing)."""
    global _config
    if _config is None:
        _config = load_config()
        apply_language_hint(_config.language_hint)
    return _config


def _get_service() -> SearchService:
    global _service
    if _service is None:
        config = _get_config()
        _service = SearchService(
            ClickUpClient.from_config(config), ttl=config.refresh_interval,
        )
    return _service


def _get_fetcher() -> ImageFetcher:
    global _fetcher
    if _fetcher is None:
        _fetcher = ImageFetcher()
    return _fetcher


async def shutdown() -> None:
    """Close HTTP clients and forget cached state."""
    global _service, _fetcher
    if _service is not None:
        await _service.client.close()
        _service = None
    if _fetcher is not None:
        await _fetcher.close()
        _fetcher = None


def _language_note(kind: str, hint: Optional[str]) -> str:
    """Tool description hint for workspaces written in another language."""
    if not hint:
        return ""
    return (
        f"For optimal results, as your ClickUp {kind} may be primarily in '{hint}', "
        f"consider providing search terms in English and '{hint}'. "
    )


def search_tasks_description(hint: Optional[str] = None) -> str:
    return (
        "Searches tasks by name, content, assignees, and ID (case insensitive) with fuzzy "
        "matching and support for multiple search terms (OR logic). "
        "Can filter by multiple list_ids, space_ids, todo status, or tasks assigned to the "
        "current user. If no search terms provided, returns most recently updated tasks. "
        + _language_note("tasks", hint)
        + "You'll get a rough overview of the tasks that match the search terms, sorted by "
        "relevance. Always use getTaskById to get more specific information if a task is relevant."
    )


def search_documents_description(hint: Optional[str] = None) -> str:
    return (
        "Search documents by name and space with fuzzy matching and support for multiple "
        "search terms (OR logic). Consider searching for documents and for tasks at the same "
        "time. Can filter by specific space_ids. If no search terms provided, returns most "
        "recently created documents. "
        + _language_note("documents", hint)
        + "Always reference documents by their URLs when discussing search results. "
        "Use readDocument to get the full content."
    )


def apply_language_hint(hint: Optional[str]) -> None:
    """Rewrite the search tool descriptions for the workspace language."""
    describe = {
        "searchTasks": search_tasks_description,
        "searchDocuments": search_documents_description,
    }
    for name, description in describe.items():
        tool = mcp._tool_manager.get_tool(name)
        if tool is not None:
            tool.description = description(hint)


def to_mcp_content(blocks: list[ContentBlock]) -> list[McpContent]:
    """Convert resolved blocks into MCP content."""
    content: list[McpContent] = []
    for block in blocks:
        if isinstance(block, ImageBlock):
            content.append(ImageContent(type="image", data=block.data, mimeType=block.mime_type))
        else:
            content.append(TextContent(type="text", text=block.text))
    return content


def _text(message: str) -> list[McpContent]:
    return [TextContent(type="text", text=message)]


# ---------------------------------------------------------------------------
# Tool annotations
# ---------------------------------------------------------------------------

_READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, openWorldHint=True)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool(
    name="searchTasks",
    description=search_tasks_description(),
    annotations=_READ_ONLY,
    structured_output=False,
)
async def search_tasks(
    terms: Annotated[Optional[list[str]], Field(
        description="Search terms (OR logic). Can include task IDs. If omitted, returns most recent tasks.",
    )] = None,
    list_ids: Annotated[Optional[list[str]], Field(
        description="Filter tasks to specific list IDs.",
    )] = None,
    space_ids: Annotated[Optional[list[str]], Field(
        description="Filter tasks to specific space IDs.",
    )] = None,
    todo: Annotated[bool, Field(
        description="Only open tasks (exclude done tasks).",
    )] = False,
    assigned_to_me: Annotated[bool, Field(
        description="Only tasks assigned to the current user.",
    )] = False,
) -> list[McpContent]:
    """Search tasks."""
    service = _get_service()
    try:
        assignees = None
        if assigned_to_me:
            user = await service.client.fetch_current_user()
            assignees = [str(user["id"])]
        tasks, space_names = await asyncio.gather(
            service.search_tasks(
                terms, space_ids=space_ids, list_ids=list_ids, assignees=assignees, todo=todo,
            ),
            service.space_names(),
        )
    except (ClickUpError, httpx.HTTPError) as e:
        return _text(f"Error: {e}")

    if not tasks:
        if terms:
            return _text("No tasks found matching the search criteria.")
        return _text("No tasks found.")

    return [
        TextContent(type="text", text=task_metadata(with_space_name(task, space_names)))
        for task in tasks
    ]


@mcp.tool(
    name="searchDocuments",
    description=search_documents_description(),
    annotations=_READ_ONLY,
)
async def search_documents(
    terms: Annotated[Optional[list[str]], Field(
        description="Search terms matched against document names, IDs and spaces.",
    )] = None,
    space_ids: Annotated[Optional[list[str]], Field(
        description="Filter documents to specific space IDs.",
    )] = None,
) -> str:
    """Search documents."""
    service = _get_service()
    try:
        docs = await service.search_documents(terms, space_ids=space_ids)
    except (ClickUpError, httpx.HTTPError) as e:
        return f"Error searching documents: {e}"

    if not docs:
        terms_text = f" for terms: {', '.join(terms)}" if terms else ""
        space_text = f" in spaces: {', '.join(space_ids)}" if space_ids else ""
        return (
            f"No documents found{terms_text}{space_text}.\n"
            "The content of documents is not searched, so ask the user for more details if needed."
        )
    return format_documents(docs, service.client.team_id)


@mcp.tool(
    name="searchSpaces",
    description=(
        "Searches spaces (sometimes called projects) by name or ID with fuzzy matching. "
        f"If {MAX_DETAILED_SPACES} or fewer spaces match, includes all lists and folders "
        "within those spaces as a tree. Otherwise returns only space information; search "
        "more precisely to see the tree. Always reference spaces by their URLs."
    ),
    annotations=_READ_ONLY,
    structured_output=False,
)
async def search_spaces(
    terms: Annotated[Optional[list[str]], Field(
        description="Search terms matched against space names or IDs. If omitted, returns all spaces.",
    )] = None,
    archived: Annotated[bool, Field(
        description="Include archived spaces.",
    )] = False,
) -> list[McpContent]:
    """Search spaces."""
    service = _get_service()
    try:
        spaces = await service.search_spaces(terms, archived=archived)
    except (ClickUpError, httpx.HTTPError) as e:
        return _text(f"Error: {e}")

    if not spaces:
        return _text("No spaces found matching the search criteria.")

    if len(spaces) > MAX_DETAILED_SPACES:
        lines = [space_header(space) for space in spaces]
        lines += [
            "",
            f"{len(spaces)} spaces matched. Search more precisely "
            f"({MAX_DETAILED_SPACES} or fewer) to see their lists and folders.",
        ]
        return _text("\n".join(lines))

    contents = await asyncio.gather(*(
        service.client.fetch_space_content(str(space["id"])) for space in spaces
    ))
    return [
        TextContent(
            type="text",
            text=format_space_tree(space, content["folders"], content["lists"]),
        )
        for space, content in zip(spaces, contents)
    ]


@mcp.tool(
    name="getTaskById",
    description=(
        "Get a ClickUp task with images and comments by ID. "
        "Always use the task URL when referencing tasks in conversations. "
        "The response contains task details, the description and all comments, oldest first."
    ),
    annotations=_READ_ONLY,
    structured_output=False,
)
async def get_task_by_id(
    id: Annotated[str, Field(
        description='The 6-9 character task ID without a prefix like "#", "CU-" or a URL.',
    )],
) -> list[McpContent]:
    """Retrieve a task with description, comments and images."""
    if not is_task_id(id):
        return _text(f"Error: {id!r} is not a valid task ID (6-9 alphanumeric characters).")

    service = _get_service()
    config = _get_config()
    try:
        task, comments, space_names = await asyncio.gather(
            service.client.fetch_task(id),
            service.client.fetch_task_comments(id),
            service.space_names(),
        )
    except (ClickUpError, httpx.HTTPError) as e:
        return _text(f"Error fetching task {id}: {e}")

    blocks: list[PendingBlock] = [TextBlock(task_metadata(with_space_name(task, space_names)))]
    blocks += process_clickup_markdown(
        task.get("markdown_description") or task.get("description") or "",
        task.get("attachments"),
    )
    for comment in comments:
        blocks.append(TextBlock(comment_header(comment)))
        blocks += process_clickup_text(comment.get("comment") or [])

    resolved = await allocate_images(
        blocks, config.max_images, config.max_response_bytes, _get_fetcher(),
    )
    return to_mcp_content(resolved)


@mcp.tool(
    name="readDocument",
    description=(
        "Get a ClickUp document with its page structure and the content of one page. "
        "Always use the document URL when referencing documents in conversations. "
        "Reads the first page unless a page ID or page name is given."
    ),
    annotations=_READ_ONLY,
    structured_output=False,
)
async def read_document(
    doc_id: Annotated[str, Field(
        description="The document ID to read.", min_length=1,
    )],
    page: Annotated[Optional[str], Field(
        description="Page ID or page name to read (defaults to the first page).",
    )] = None,
) -> list[McpContent]:
    """Read one page of a document."""
    client = _get_service().client
    try:
        doc, listing = await asyncio.gather(
            client.fetch_document(doc_id),
            client.fetch_document_page_listing(doc_id),
        )
    except (ClickUpError, httpx.HTTPError) as e:
        return _text(f"Error reading document {doc_id}: {e}")

    pages = flatten_pages(listing)
    if not pages:
        return _text(
            f"Document: {doc.get('name', '')} (doc_id: {doc_id})\n"
            f"Document URL: {document_url(client.team_id, doc_id)}\n"
            "This document has no pages yet."
        )

    if page:
        target = next((p for p in pages if page in (p.get("id"), p.get("name"))), None)
        if target is None:
            available = ", ".join(f'"{p.get("name", "")}" ({p.get("id")})' for p in pages)
            return _text(
                f'Page "{page}" not found in document "{doc.get("name", "")}". '
                f"Available pages: {available}"
            )
    else:
        target = pages[0]

    try:
        page_data = await client.fetch_document_page(doc_id, str(target.get("id")))
    except (ClickUpError, httpx.HTTPError) as e:
        return _text(f"Error reading document {doc_id}: {e}")

    header = document_header(client.team_id, doc, {**target, **page_data}, listing)
    content = page_data.get("content") or ""
    if not content.strip():
        return _text(f"{header}\n*This page is empty.*")
    return [
        TextContent(type="text", text=f"{header}\nPage Content:"),
        TextContent(type="text", text=content),
    ]


@mcp.tool(
    name="getListInfo",
    description=(
        "Gets information about a list including its description, available statuses and "
        "the tags of its space. The list description often holds project context and "
        "guidelines. Always reference lists by their URLs."
    ),
    annotations=_READ_ONLY,
    structured_output=False,
)
async def get_list_info(
    list_id: Annotated[str, Field(
        description="The list ID to get information for.", min_length=1,
    )],
) -> list[McpContent]:
    """List details with statuses and space tags."""
    client = _get_service().client
    try:
        task_list = await client.fetch_list(list_id)
    except (ClickUpError, httpx.HTTPError) as e:
        return _text(f"Error getting list info: {e}")

    space_id = (task_list.get("space") or {}).get("id")
    tags = await client.fetch_space_tags(str(space_id)) if space_id else []
    return _text(format_list_info(task_list, tags))


@mcp.tool(
    name="getFolderInfo",
    description=(
        "Gets information about a folder including its lists, parent space and statuses. "
        "Use this to discover the lists inside a folder. Always reference folders by their URLs."
    ),
    annotations=_READ_ONLY,
    structured_output=False,
)
async def get_folder_info(
    folder_id: Annotated[str, Field(
        description="The folder ID to get information for.", min_length=1,
    )],
) -> list[McpContent]:
    """Folder details with its lists."""
    client = _get_service().client
    try:
        folder = await client.fetch_folder(folder_id)
    except (ClickUpError, httpx.HTTPError) as e:
        return _text(f"Error getting folder info: {e}")
    return _text(format_folder_info(folder))


@mcp.tool(
    name="getCurrentUser",
    description="Gets information about the user the API key belongs to.",
    annotations=_READ_ONLY,
    structured_output=False,
)
async def get_current_user() -> list[McpContent]:
    """The authenticated user."""
    client = _get_service().client
    try:
        user = await client.fetch_current_user()
    except (ClickUpError, httpx.HTTPError) as e:
        return _text(f"Error fetching user info: {e}")
    return _text(format_current_user(user))


@mcp.tool(
    name="getTimeEntries",
    description=(
        "Gets time entries for a task or for the current user, grouped by list, task and user. "
        "Returns the last 30 days when no dates are given."
    ),
    annotations=_READ_ONLY,
    structured_output=False,
)
async def get_time_entries(
    task_id: Annotated[Optional[str], Field(
        description="6-9 character task ID to filter entries.",
    )] = None,
    start_date: Annotated[Optional[str], Field(
        description="Start of the range as an ISO date, e.g. '2024-10-06T00:00:00+02:00'.",
    )] = None,
    end_date: Annotated[Optional[str], Field(
        description="End of the range as an ISO date, e.g. '2024-10-06T23:59:59+02:00'.",
    )] = None,
    list_id: Annotated[Optional[str], Field(
        description="Only entries of tasks in this list.",
    )] = None,
    space_id: Annotated[Optional[str], Field(
        description="Only entries of tasks in this space (ignored when list_id is set).",
    )] = None,
    include_all_users: Annotated[bool, Field(
        description="Entries of every workspace member (requires owner/admin rights).",
    )] = False,
) -> list[McpContent]:
    """Summarize time entries."""
    if task_id and not is_task_id(task_id):
        return _text(f"Error: {task_id!r} is not a valid task ID (6-9 alphanumeric characters).")
    try:
        start_ms = iso_to_timestamp(start_date) if start_date else None
        end_ms = iso_to_timestamp(end_date) if end_date else None
    except ValueError as e:
        return _text(f"Error: invalid date: {e}")

    client = _get_service().client
    assignees: list[str] = []
    if include_all_users:
        try:
            assignees = await client.fetch_team_members()
        except (ClickUpError, httpx.HTTPError) as e:
            logger.warning("Could not list workspace members, showing own entries only: %s", e)

    try:
        entries = await client.fetch_time_entries(
            task_id=task_id, start_date=start_ms, end_date=end_ms,
            list_id=list_id, space_id=space_id, assignees=assignees,
        )
    except (ClickUpError, httpx.HTTPError) as e:
        return _text(f"Error fetching time entries: {e}")
    return _text(format_time_entries(
        entries, task_id=task_id, start_date=start_date, end_date=end_date,
    ))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Run the MCP stdio server."""
    import signal
    from .logging_config import configure_server_logging

    # anyio's stdin reader shields the blocking readline from cancellation,
    # so the first Ctrl+C would otherwise be swallowed.
    signal.signal(signal.SIGINT, lambda *_: os._exit(130))

    configure_server_logging()
    # Fail fast on missing credentials instead of on the first tool call
    _get_config()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
