"""
Async HTTP client for the ClickUp REST API.

Wraps the v2 task/space endpoints and the v3 docs endpoints used by the
search subsystem. Paginated collection fetches are best-effort: a page that
fails contributes nothing and the rest of the build proceeds. Point lookups
raise ``ClickUpError`` / ``ClickUpNotFound`` and leave the decision to the
caller.

Pagination stops at a fixed page ceiling instead of following the result
set to exhaustion, bounding the request volume against ClickUp's rate
limit. Large workspaces are truncated at the ceiling.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Optional

import httpx

from .cache import KeyedCache
from .config import ClickUpConfig
from .errors import ClickUpError, ClickUpNotFound
from .types import Record, timestamp_value

logger = logging.getLogger(__name__)

API_URL = "https://api.clickup.com/api"

DEFAULT_TIMEOUT = 30.0

# Page ceilings for the team task endpoint (100 tasks per page)
FILTERED_PAGE_LIMIT = 10
UNFILTERED_PAGE_LIMIT = 30
TASKS_PER_PAGE = 100

# Page ceilings for the cursor-based docs endpoint
FILTERED_DOC_PAGE_LIMIT = 10
UNFILTERED_DOC_PAGE_LIMIT = 30
DOCS_PER_PAGE = 100

# v3 parent_type code for spaces
DOC_PARENT_TYPE_SPACE = 4


def page_limit(*filters: Optional[Iterable[Any]], filtered: int, unfiltered: int) -> int:
    """Fewer pages when any filter narrows the result set."""
    return filtered if any(f for f in filters) else unfiltered


def dedupe_by_id(records: Iterable[Record]) -> list[Record]:
    """Drop records without an id and repeated ids, first occurrence wins."""
    seen: set[str] = set()
    unique: list[Record] = []
    for record in records:
        record_id = record.get("id") if isinstance(record, dict) else None
        if not isinstance(record_id, str) or record_id in seen:
            continue
        seen.add(record_id)
        unique.append(record)
    return unique


class ClickUpClient:
    """Async client for one ClickUp workspace (team)."""

    def __init__(
        self,
        api_key: str,
        team_id: str,
        *,
        api_url: str = API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        content_ttl: float = 60.0,
    ):
        self._team_id = team_id
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers={"Authorization": api_key},
            timeout=timeout,
            transport=transport,
        )
        self._current_user: Optional[Record] = None
        self._space_content: KeyedCache[dict[str, list[Record]]] = KeyedCache(
            content_ttl, name="space content",
        )

    @classmethod
    def from_config(cls, config: ClickUpConfig, **kwargs: Any) -> "ClickUpClient":
        kwargs.setdefault("content_ttl", config.refresh_interval)
        return cls(config.api_key, config.team_id, **kwargs)

    @property
    def team_id(self) -> str:
        return self._team_id

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "ClickUpClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Low-level
    # ------------------------------------------------------------------

    async def _get_json(self, path: str, params: Any = None) -> Any:
        """GET a JSON document; raise ClickUpError on transport/HTTP failure."""
        try:
            resp = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise ClickUpError(f"Request to {path} failed: {e}") from e

        if resp.status_code == 404:
            raise ClickUpNotFound(f"Not found: {path}", status_code=404)
        if resp.status_code >= 400:
            raise ClickUpError(
                f"Request to {path} failed: {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ClickUpError(f"Invalid JSON from {path}") from e

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def fetch_task_page(
        self,
        page: int,
        *,
        space_ids: Optional[Iterable[str]] = None,
        list_ids: Optional[Iterable[str]] = None,
        assignees: Optional[Iterable[str]] = None,
    ) -> list[Record]:
        """GET /v2/team/{team}/task for one page. Empty list on any failure."""
        params: list[tuple[str, Any]] = [
            ("order_by", "updated"),
            ("subtasks", "true"),
            ("page", page),
        ]
        params += [("space_ids[]", v) for v in space_ids or []]
        params += [("list_ids[]", v) for v in list_ids or []]
        params += [("assignees[]", v) for v in assignees or []]

        try:
            data = await self._get_json(f"/v2/team/{self._team_id}/task", params=params)
        except ClickUpError as e:
            logger.warning("Error fetching task page %d: %s", page, e)
            return []
        tasks = data.get("tasks") if isinstance(data, dict) else None
        return tasks if isinstance(tasks, list) else []

    async def fetch_tasks(
        self,
        space_ids: Optional[Iterable[str]] = None,
        list_ids: Optional[Iterable[str]] = None,
        assignees: Optional[Iterable[str]] = None,
    ) -> list[Record]:
        """Fetch all pages up to the ceiling concurrently and merge them."""
        space_ids = list(space_ids or [])
        list_ids = list(list_ids or [])
        assignees = list(assignees or [])
        max_pages = page_limit(
            space_ids, list_ids, assignees,
            filtered=FILTERED_PAGE_LIMIT, unfiltered=UNFILTERED_PAGE_LIMIT,
        )
        pages = await asyncio.gather(*(
            self.fetch_task_page(
                i, space_ids=space_ids, list_ids=list_ids, assignees=assignees,
            )
            for i in range(max_pages)
        ))
        if pages and len(pages[-1]) >= TASKS_PER_PAGE:
            logger.info("Task fetch hit the %d page ceiling; results are truncated", max_pages)
        return dedupe_by_id(task for page in pages for task in page)

    async def fetch_task(self, task_id: str) -> Record:
        """GET /v2/task/{id} with markdown description and subtasks."""
        data = await self._get_json(
            f"/v2/task/{task_id}",
            params={"include_markdown_description": "true", "include_subtasks": "true"},
        )
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            raise ClickUpError(f"Unexpected task payload for {task_id}")
        return data

    async def fetch_task_comments(self, task_id: str) -> list[Record]:
        """All comments on a task, oldest first."""
        data = await self._get_json(f"/v2/task/{task_id}/comment", params={"start_date": 0})
        comments = data.get("comments") if isinstance(data, dict) else None
        if not isinstance(comments, list):
            return []
        return sorted(comments, key=lambda c: timestamp_value(c.get("date")))

    # ------------------------------------------------------------------
    # Users and spaces
    # ------------------------------------------------------------------

    async def fetch_current_user(self) -> Record:
        """GET /v2/user, memoized for the lifetime of the client."""
        if self._current_user is None:
            data = await self._get_json("/v2/user")
            user = data.get("user") if isinstance(data, dict) else None
            if not isinstance(user, dict):
                raise ClickUpError("Unexpected user payload")
            self._current_user = user
        return self._current_user

    async def fetch_spaces(self) -> list[Record]:
        """All spaces in the workspace, including archived ones."""
        data = await self._get_json(
            f"/v2/team/{self._team_id}/space", params={"archived": "true"},
        )
        spaces = data.get("spaces") if isinstance(data, dict) else None
        return dedupe_by_id(spaces) if isinstance(spaces, list) else []

    async def fetch_space_content(self, space_id: str) -> dict[str, list[Record]]:
        """Folders (each with its lists) and folderless lists of a space.

        Cached per space for the refresh interval. Failures degrade to
        empty collections.
        """
        return await self._space_content.get_or_build(
            space_id, lambda: self._load_space_content(space_id),
        )

    async def _load_space_content(self, space_id: str) -> dict[str, list[Record]]:
        async def collection(path: str, key: str) -> list[Record]:
            try:
                data = await self._get_json(path)
            except ClickUpError as e:
                logger.warning("Error fetching %s: %s", path, e)
                return []
            items = data.get(key) if isinstance(data, dict) else None
            return items if isinstance(items, list) else []

        folders, lists = await asyncio.gather(
            collection(f"/v2/space/{space_id}/folder", "folders"),
            collection(f"/v2/space/{space_id}/list", "lists"),
        )
        folders = [
            folder for folder in folders if isinstance(folder, dict) and folder.get("id")
        ]
        folder_lists = await asyncio.gather(*(
            collection(f"/v2/folder/{folder['id']}/list", "lists") for folder in folders
        ))
        folders = [
            {**folder, "lists": nested} for folder, nested in zip(folders, folder_lists)
        ]
        return {"folders": folders, "lists": lists}

    async def fetch_team_members(self) -> list[str]:
        """User ids of every member of this workspace (GET /v2/team)."""
        data = await self._get_json("/v2/team")
        teams = data.get("teams") if isinstance(data, dict) else None
        for team in teams if isinstance(teams, list) else []:
            if str(team.get("id")) != self._team_id:
                continue
            users = (member.get("user") for member in team.get("members") or [])
            return [
                str(user["id"]) for user in users
                if isinstance(user, dict) and user.get("id") is not None
            ]
        return []

    # ------------------------------------------------------------------
    # Lists and folders
    # ------------------------------------------------------------------

    async def fetch_list(self, list_id: str) -> Record:
        """GET /v2/list/{id} with the markdown description and statuses."""
        data = await self._get_json(
            f"/v2/list/{list_id}", params={"include_markdown_description": "true"},
        )
        if not isinstance(data, dict) or not data.get("id"):
            raise ClickUpError(f"Unexpected list payload for {list_id}")
        return data

    async def fetch_folder(self, folder_id: str) -> Record:
        """GET /v2/folder/{id}; the payload carries the folder's lists."""
        data = await self._get_json(f"/v2/folder/{folder_id}")
        if not isinstance(data, dict) or not data.get("id"):
            raise ClickUpError(f"Unexpected folder payload for {folder_id}")
        return data

    async def fetch_space_tags(self, space_id: str) -> list[Record]:
        """Tags shared by all lists of a space. Empty list on any failure."""
        try:
            data = await self._get_json(f"/v2/space/{space_id}/tag")
        except ClickUpError as e:
            logger.warning("Error fetching tags of space %s: %s", space_id, e)
            return []
        tags = data.get("tags") if isinstance(data, dict) else None
        return tags if isinstance(tags, list) else []

    # ------------------------------------------------------------------
    # Time tracking
    # ------------------------------------------------------------------

    async def fetch_time_entries(
        self,
        *,
        task_id: Optional[str] = None,
        start_date: Optional[int] = None,
        end_date: Optional[int] = None,
        list_id: Optional[str] = None,
        space_id: Optional[str] = None,
        assignees: Optional[Iterable[str]] = None,
    ) -> list[Record]:
        """GET /v2/team/{team}/time_entries.

        Dates are millisecond timestamps; ClickUp defaults to the last 30
        days. A list filter takes precedence over a space filter.
        """
        params: list[tuple[str, Any]] = [("include_location_names", "true")]
        if task_id:
            params.append(("task_id", task_id))
        if start_date is not None:
            params.append(("start_date", start_date))
        if end_date is not None:
            params.append(("end_date", end_date))
        if list_id:
            params.append(("list_id", list_id))
        elif space_id:
            params.append(("space_id", space_id))
        assignees = list(assignees or [])
        if assignees:
            params.append(("assignee", ",".join(assignees)))

        data = await self._get_json(f"/v2/team/{self._team_id}/time_entries", params=params)
        entries = data.get("data") if isinstance(data, dict) else None
        return entries if isinstance(entries, list) else []

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def _fetch_document_pages(self, parent_id: Optional[str], max_pages: int) -> list[Record]:
        docs: list[Record] = []
        cursor: Optional[str] = None
        for page in range(max_pages):
            params: dict[str, Any] = {"limit": DOCS_PER_PAGE}
            if parent_id:
                params["parent_id"] = parent_id
                params["parent_type"] = DOC_PARENT_TYPE_SPACE
            if cursor:
                params["cursor"] = cursor
            try:
                data = await self._get_json(f"/v3/workspaces/{self._team_id}/docs", params=params)
            except ClickUpError as e:
                logger.warning("Error fetching docs page %d (parent %s): %s", page, parent_id, e)
                break
            batch = data.get("docs") if isinstance(data, dict) else None
            if isinstance(batch, list):
                docs.extend(batch)
            cursor = data.get("next_cursor") if isinstance(data, dict) else None
            if not cursor:
                break
        else:
            logger.info("Doc fetch hit the %d page ceiling; results are truncated", max_pages)
        return docs

    async def fetch_documents(self, space_ids: Optional[Iterable[str]] = None) -> list[Record]:
        """Documents of the workspace, or of the given spaces (fetched concurrently)."""
        space_ids = list(space_ids or [])
        max_pages = page_limit(
            space_ids,
            filtered=FILTERED_DOC_PAGE_LIMIT, unfiltered=UNFILTERED_DOC_PAGE_LIMIT,
        )
        if not space_ids:
            return dedupe_by_id(await self._fetch_document_pages(None, max_pages))
        batches = await asyncio.gather(*(
            self._fetch_document_pages(space_id, max_pages) for space_id in space_ids
        ))
        return dedupe_by_id(doc for batch in batches for doc in batch)

    async def fetch_document(self, doc_id: str) -> Record:
        """GET /v3/workspaces/{team}/docs/{id}."""
        data = await self._get_json(f"/v3/workspaces/{self._team_id}/docs/{doc_id}")
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            raise ClickUpError(f"Unexpected document payload for {doc_id}")
        return data

    async def fetch_document_page_listing(self, doc_id: str) -> list[Record]:
        """The page tree of a document; nested pages sit under ``pages``."""
        data = await self._get_json(f"/v3/workspaces/{self._team_id}/docs/{doc_id}/pageListing")
        if isinstance(data, dict):
            data = data.get("pages")
        if not isinstance(data, list):
            raise ClickUpError(f"Unexpected page listing for {doc_id}")
        return [page for page in data if isinstance(page, dict)]

    async def fetch_document_page(self, doc_id: str, page_id: str) -> Record:
        """One document page with its content as markdown."""
        data = await self._get_json(
            f"/v3/workspaces/{self._team_id}/docs/{doc_id}/pages/{page_id}",
            params={"content_format": "text/md"},
        )
        if not isinstance(data, dict):
            raise ClickUpError(f"Unexpected page payload for {doc_id}/{page_id}")
        return data
