"""
CLI interface for the ClickUp MCP server.

Usage:
    clickup-mcp mcp                       # run the stdio server
    clickup-mcp search login bug --todo   # search tasks
    clickup-mcp docs onboarding
    clickup-mcp spaces marketing
    clickup-mcp task 86b2x4k1q
    clickup-mcp doc 8cdu22c-13133 --page Setup
    clickup-mcp time --start 2024-10-01
"""

import asyncio
import json
import os
from typing import Any, Awaitable, Optional

import typer
from mcp.types import ImageContent, TextContent
from typing_extensions import Annotated

from .logging_config import configure_quiet_mode, enable_debug_mode

# Configure quiet mode by default (suppress verbose library output)
# Set CLICKUP_MCP_VERBOSE=1 to enable debug mode via environment
if os.environ.get("CLICKUP_MCP_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


app = typer.Typer(
    name="clickup-mcp",
    help="Search ClickUp tasks, documents and spaces; serve them over MCP.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


def _version_callback(value: bool):
    if value:
        from . import __version__
        print(f"clickup-mcp {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output MCP content blocks as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
):
    """Search ClickUp tasks, documents and spaces; serve them over MCP."""


# -----------------------------------------------------------------------------
# Output
# -----------------------------------------------------------------------------

def render_content(content: Any, as_json: bool = False) -> str:
    """Render a tool result (string or MCP content list) for the terminal."""
    if isinstance(content, str):
        return json.dumps([{"type": "text", "text": content}], indent=2) if as_json else content
    if as_json:
        return json.dumps([block.model_dump(exclude_none=True) for block in content], indent=2)

    parts = []
    for block in content:
        if isinstance(block, ImageContent):
            size = len(block.data) * 3 // 4
            parts.append(f"[image: {block.mimeType}, ~{size} bytes]")
        elif isinstance(block, TextContent):
            parts.append(block.text)
    return "\n\n".join(parts)


def _run(call: Awaitable[Any]) -> None:
    """Run one tool call, close the HTTP clients, print the result."""
    from . import mcp as server

    async def run() -> Any:
        try:
            return await call
        finally:
            await server.shutdown()

    typer.echo(render_content(asyncio.run(run()), as_json=_get_json_output()))


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

SpaceOption = Annotated[
    Optional[list[str]],
    typer.Option("--space", "-s", help="Filter by space ID (repeatable)"),
]


@app.command()
def search(
    terms: Annotated[Optional[list[str]], typer.Argument(
        help="Search terms (OR logic); omit for most recent tasks",
    )] = None,
    space: SpaceOption = None,
    list_id: Annotated[Optional[list[str]], typer.Option(
        "--list", "-l", help="Filter by list ID (repeatable)",
    )] = None,
    todo: Annotated[bool, typer.Option("--todo", help="Only open tasks")] = False,
    mine: Annotated[bool, typer.Option("--mine", help="Only tasks assigned to me")] = False,
):
    """Search tasks."""
    from .mcp import search_tasks
    _run(search_tasks(
        terms=terms or None, list_ids=list_id, space_ids=space,
        todo=todo, assigned_to_me=mine,
    ))


@app.command()
def docs(
    terms: Annotated[Optional[list[str]], typer.Argument(
        help="Search terms; omit for most recent documents",
    )] = None,
    space: SpaceOption = None,
):
    """Search documents."""
    from .mcp import search_documents
    _run(search_documents(terms=terms or None, space_ids=space))


@app.command()
def spaces(
    terms: Annotated[Optional[list[str]], typer.Argument(
        help="Search terms; omit for all spaces",
    )] = None,
    archived: Annotated[bool, typer.Option("--archived", help="Include archived spaces")] = False,
):
    """Search spaces."""
    from .mcp import search_spaces
    _run(search_spaces(terms=terms or None, archived=archived))


@app.command()
def task(
    id: Annotated[str, typer.Argument(help="Task ID (6-9 characters)")],
):
    """Show a task with description, comments and images."""
    from .mcp import get_task_by_id
    _run(get_task_by_id(id))


@app.command()
def doc(
    doc_id: Annotated[str, typer.Argument(help="Document ID")],
    page: Annotated[Optional[str], typer.Option(
        "--page", "-p", help="Page ID or name (default: first page)",
    )] = None,
):
    """Show a document page with the document's page structure."""
    from .mcp import read_document
    _run(read_document(doc_id, page=page))


@app.command("list")
def list_info(
    list_id: Annotated[str, typer.Argument(help="List ID")],
):
    """Show a list with its description, statuses and space tags."""
    from .mcp import get_list_info
    _run(get_list_info(list_id))


@app.command()
def folder(
    folder_id: Annotated[str, typer.Argument(help="Folder ID")],
):
    """Show a folder with its lists."""
    from .mcp import get_folder_info
    _run(get_folder_info(folder_id))


@app.command()
def me():
    """Show the user the API key belongs to."""
    from .mcp import get_current_user
    _run(get_current_user())


@app.command()
def time(
    task_id: Annotated[Optional[str], typer.Option("--task", "-t", help="Only this task")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="ISO start date")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="ISO end date")] = None,
    list_id: Annotated[Optional[str], typer.Option("--list", "-l", help="Only this list")] = None,
    space: Annotated[Optional[str], typer.Option("--space", "-s", help="Only this space")] = None,
    all_users: Annotated[bool, typer.Option("--all-users", help="Entries of every member")] = False,
):
    """Summarize time entries (last 30 days by default)."""
    from .mcp import get_time_entries
    _run(get_time_entries(
        task_id=task_id, start_date=start, end_date=end,
        list_id=list_id, space_id=space, include_all_users=all_users,
    ))


@app.command()
def mcp():
    """Start MCP stdio server for AI agent integration."""
    from .mcp import main as mcp_main
    mcp_main()


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="clickup-mcp CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
