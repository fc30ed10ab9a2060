"""
clickup-mcp: ClickUp search and task reading for AI agents over MCP.
"""

__version__ = "1.3.0"

from .cache import KeyedCache
from .client import ClickUpClient
from .config import ClickUpConfig, load_config
from .errors import ClickUpError, ClickUpNotFound
from .fuzzy import FuzzyIndex
from .images import allocate_images
from .search import SearchService, multi_term_search

__all__ = [
    "ClickUpClient",
    "ClickUpConfig",
    "ClickUpError",
    "ClickUpNotFound",
    "FuzzyIndex",
    "KeyedCache",
    "SearchService",
    "allocate_images",
    "load_config",
    "multi_term_search",
]
