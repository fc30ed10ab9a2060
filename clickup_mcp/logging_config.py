"""
Logging configuration for clickup-mcp.

The MCP server speaks JSON-RPC on stdout, so every handler configured here
writes to stderr.
"""

import logging
import os
import sys
import warnings

# Libraries that log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "mcp", "mcp.server.lowlevel.server")


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to suppress verbose library output.

    This silences:
    - per-request httpx/httpcore logging
    - MCP server request logging
    - Library warnings (deprecation, etc.)

    Args:
        quiet: If True, suppress verbose output. If False, show everything.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    else:
        warnings.filterwarnings("default")
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.NOTSET)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("clickup_mcp").setLevel(logging.DEBUG)
    # httpcore at DEBUG dumps every socket event
    logging.getLogger("httpcore").setLevel(logging.INFO)


def configure_server_logging():
    """Logging for the stdio server: INFO from clickup_mcp to stderr.

    Honors CLICKUP_MCP_VERBOSE for full debug output.
    """
    if os.environ.get("CLICKUP_MCP_VERBOSE"):
        enable_debug_mode()
        return

    configure_quiet_mode(True)
    logger = logging.getLogger("clickup_mcp")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(handler)
    if logger.level == logging.NOTSET or logger.level > logging.INFO:
        logger.setLevel(logging.INFO)
