"""
Shared pytest fixtures for clickup-mcp tests.

Provides record factories, a controllable clock and fakes for the network
layer so no test talks to ClickUp.
"""

from typing import Any, Optional
from unittest.mock import MagicMock

import pytest

from clickup_mcp.client import ClickUpClient
from clickup_mcp.errors import ClickUpNotFound
from clickup_mcp.types import ImageBlock


def make_task(
    id: str,
    name: str,
    *,
    text_content: str = "",
    tags: Optional[list[str]] = None,
    assignees: Optional[list[str]] = None,
    status_type: str = "open",
    date_updated: str = "1700000000000",
    space_id: str = "s1",
    **extra: Any,
) -> dict:
    """Create a task record shaped like ClickUp's team task endpoint."""
    task = {
        "id": id,
        "name": name,
        "text_content": text_content,
        "status": {"status": "done" if status_type == "done" else "to do", "type": status_type},
        "date_created": "1690000000000",
        "date_updated": date_updated,
        "creator": {"id": 1, "username": "alice"},
        "assignees": [{"id": i, "username": u} for i, u in enumerate(assignees or [])],
        "tags": [{"name": t} for t in tags or []],
        "list": {"id": "l1", "name": "Backlog"},
        "folder": {"id": "f1", "name": "Product"},
        "space": {"id": space_id},
        "url": f"https://app.clickup.com/t/{id}",
    }
    task.update(extra)
    return task


class FakeClock:
    """Monotonic clock under test control."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeImageFetcher:
    """ImageFetcher stand-in serving fixed-size images by URL.

    ``sizes`` maps URL -> byte size; unknown URLs fail like a 404.
    """

    def __init__(self, sizes: Optional[dict[str, int]] = None, mime_type: str = "image/png"):
        self.sizes = sizes or {}
        self.mime_type = mime_type
        self.calls: list[tuple[str, float]] = []

    async def fetch(self, url: str, budget: float) -> Optional[ImageBlock]:
        self.calls.append((url, budget))
        size = self.sizes.get(url)
        if size is None or size > budget:
            return None
        return ImageBlock(data="A" * (size * 4 // 3), mime_type=self.mime_type)

    async def close(self) -> None:
        pass


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def image_fetcher():
    return FakeImageFetcher()


@pytest.fixture
def mock_client():
    """ClickUpClient mock: async methods are AsyncMocks with empty results.

    Point lookups raise ClickUpNotFound unless a test sets a result.
    """
    client = MagicMock(spec=ClickUpClient)
    client.team_id = "team1"
    client.fetch_tasks.return_value = []
    client.fetch_spaces.return_value = [
        {"id": "s1", "name": "Engineering"},
        {"id": "s2", "name": "Marketing"},
    ]
    client.fetch_documents.return_value = []
    client.fetch_task_comments.return_value = []
    client.fetch_space_content.return_value = {"folders": [], "lists": []}
    client.fetch_current_user.return_value = {"id": 42, "username": "alice"}
    client.fetch_task.side_effect = ClickUpNotFound("Not found", status_code=404)
    client.fetch_document.side_effect = ClickUpNotFound("Not found", status_code=404)
    return client
