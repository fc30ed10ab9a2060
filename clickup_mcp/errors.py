"""
Exceptions and error logging for clickup-mcp.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class ClickUpError(Exception):
    """Error communicating with the ClickUp API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ClickUpNotFound(ClickUpError):
    """The requested entity does not exist (HTTP 404)."""


def home_dir() -> Path:
    """Directory for config and error logs, respecting CLICKUP_MCP_HOME."""
    home = os.environ.get("CLICKUP_MCP_HOME")
    if home:
        return Path(home)
    return Path.home() / ".clickup-mcp"


def _error_log_path() -> Path:
    return home_dir() / "clickup-mcp-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
