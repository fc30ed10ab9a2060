"""Tests for clickup_mcp.client — async HTTP client for the ClickUp API."""

import httpx
import pytest

from clickup_mcp.client import (
    FILTERED_PAGE_LIMIT,
    UNFILTERED_PAGE_LIMIT,
    ClickUpClient,
    dedupe_by_id,
    page_limit,
)
from clickup_mcp.config import ClickUpConfig
from clickup_mcp.errors import ClickUpError, ClickUpNotFound


class RecordingHandler:
    """MockTransport handler dispatching on path and recording requests."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"err": "not found"})
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    def paths(self):
        return [r.url.path for r in self.requests]


def _client(handler, **kwargs):
    return ClickUpClient("pk_test", "team1", transport=httpx.MockTransport(handler), **kwargs)


TASKS_PATH = "/api/v2/team/team1/task"


class TestHelpers:

    def test_page_limit(self):
        assert page_limit([], None, filtered=10, unfiltered=30) == 30
        assert page_limit([], ["s1"], filtered=10, unfiltered=30) == 10

    def test_dedupe_by_id(self):
        records = [{"id": "a"}, {"id": "b"}, {"id": "a", "dup": True}, {"name": "no id"}]
        assert dedupe_by_id(records) == [{"id": "a"}, {"id": "b"}]

    def test_from_config(self):
        config = ClickUpConfig(api_key="pk_x", team_id="t9", refresh_interval=30)
        client = ClickUpClient.from_config(config)
        assert client.team_id == "t9"


class TestRequests:

    @pytest.mark.asyncio
    async def test_sends_authorization_header(self):
        handler = RecordingHandler({"/api/v2/user": {"user": {"id": 1, "username": "alice"}}})
        async with _client(handler) as client:
            await client.fetch_current_user()

        assert handler.requests[0].headers["Authorization"] == "pk_test"

    @pytest.mark.asyncio
    async def test_not_found_raises(self):
        async with _client(RecordingHandler()) as client:
            with pytest.raises(ClickUpNotFound) as exc_info:
                await client.fetch_task("abc1234")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        handler = RecordingHandler({"/api/v2/task/abc1234": lambda r: httpx.Response(429)})
        async with _client(handler) as client:
            with pytest.raises(ClickUpError) as exc_info:
                await client.fetch_task("abc1234")
        assert exc_info.value.status_code == 429
        assert not isinstance(exc_info.value, ClickUpNotFound)

    @pytest.mark.asyncio
    async def test_transport_error_raises_clickup_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(ClickUpError, match="connection refused"):
                await client.fetch_spaces()

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        handler = RecordingHandler({"/api/v2/user": lambda r: httpx.Response(200, text="<html>")})
        async with _client(handler) as client:
            with pytest.raises(ClickUpError, match="Invalid JSON"):
                await client.fetch_current_user()


class TestTasks:

    @staticmethod
    def _paged(request):
        page = int(request.url.params["page"])
        return httpx.Response(200, json={"tasks": [{"id": f"task{page:03d}", "name": f"Task {page}"}]})

    @pytest.mark.asyncio
    async def test_unfiltered_fetches_thirty_pages(self):
        handler = RecordingHandler({TASKS_PATH: self._paged})
        async with _client(handler) as client:
            tasks = await client.fetch_tasks()

        assert len(handler.requests) == UNFILTERED_PAGE_LIMIT
        assert len(tasks) == UNFILTERED_PAGE_LIMIT
        assert sorted(int(r.url.params["page"]) for r in handler.requests) == list(range(30))

    @pytest.mark.asyncio
    async def test_filtered_fetches_ten_pages(self):
        handler = RecordingHandler({TASKS_PATH: self._paged})
        async with _client(handler) as client:
            await client.fetch_tasks(space_ids=["s1", "s2"], assignees=["42"])

        assert len(handler.requests) == FILTERED_PAGE_LIMIT
        params = handler.requests[0].url.params
        assert params.get_list("space_ids[]") == ["s1", "s2"]
        assert params.get_list("assignees[]") == ["42"]
        assert params["order_by"] == "updated"
        assert params["subtasks"] == "true"

    @pytest.mark.asyncio
    async def test_failing_page_contributes_nothing(self):
        def route(request):
            if request.url.params["page"] == "3":
                return httpx.Response(500)
            return self._paged(request)

        async with _client(RecordingHandler({TASKS_PATH: route})) as client:
            tasks = await client.fetch_tasks(list_ids=["l1"])

        ids = {t["id"] for t in tasks}
        assert len(ids) == FILTERED_PAGE_LIMIT - 1
        assert "task003" not in ids

    @pytest.mark.asyncio
    async def test_duplicates_across_pages_removed(self):
        def route(request):
            return httpx.Response(200, json={"tasks": [{"id": "same001"}, {"id": "x"}]})

        async with _client(RecordingHandler({TASKS_PATH: route})) as client:
            tasks = await client.fetch_tasks(space_ids=["s1"])

        assert [t["id"] for t in tasks] == ["same001", "x"]

    @pytest.mark.asyncio
    async def test_fetch_task_requests_markdown(self):
        handler = RecordingHandler({"/api/v2/task/abc1234": {"id": "abc1234", "name": "T"}})
        async with _client(handler) as client:
            task = await client.fetch_task("abc1234")

        assert task["name"] == "T"
        params = handler.requests[0].url.params
        assert params["include_markdown_description"] == "true"
        assert params["include_subtasks"] == "true"

    @pytest.mark.asyncio
    async def test_comments_sorted_oldest_first(self):
        handler = RecordingHandler({"/api/v2/task/abc1234/comment": {"comments": [
            {"id": "c2", "date": "2000"},
            {"id": "c1", "date": "1000"},
            {"id": "c3", "date": "3000"},
        ]}})
        async with _client(handler) as client:
            comments = await client.fetch_task_comments("abc1234")

        assert [c["id"] for c in comments] == ["c1", "c2", "c3"]


class TestUsersAndSpaces:

    @pytest.mark.asyncio
    async def test_current_user_is_memoized(self):
        handler = RecordingHandler({"/api/v2/user": {"user": {"id": 42, "username": "alice"}}})
        async with _client(handler) as client:
            first = await client.fetch_current_user()
            second = await client.fetch_current_user()

        assert first == second == {"id": 42, "username": "alice"}
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_spaces_include_archived(self):
        handler = RecordingHandler({"/api/v2/team/team1/space": {"spaces": [
            {"id": "s1", "name": "Engineering"},
            {"id": "s2", "name": "Old", "archived": True},
        ]}})
        async with _client(handler) as client:
            spaces = await client.fetch_spaces()

        assert [s["id"] for s in spaces] == ["s1", "s2"]
        assert handler.requests[0].url.params["archived"] == "true"

    @pytest.mark.asyncio
    async def test_space_content_tree_is_cached(self):
        handler = RecordingHandler({
            "/api/v2/space/s1/folder": {"folders": [{"id": "f1", "name": "Product"}]},
            "/api/v2/space/s1/list": {"lists": [{"id": "l0", "name": "Inbox"}]},
            "/api/v2/folder/f1/list": {"lists": [{"id": "l1", "name": "Roadmap"}]},
        })
        async with _client(handler) as client:
            content = await client.fetch_space_content("s1")
            again = await client.fetch_space_content("s1")

        assert content is again
        assert content["lists"] == [{"id": "l0", "name": "Inbox"}]
        assert content["folders"] == [
            {"id": "f1", "name": "Product", "lists": [{"id": "l1", "name": "Roadmap"}]},
        ]
        assert len(handler.requests) == 3

    @pytest.mark.asyncio
    async def test_space_content_degrades_on_errors(self):
        handler = RecordingHandler({"/api/v2/space/s1/list": {"lists": [{"id": "l0"}]}})
        async with _client(handler) as client:
            content = await client.fetch_space_content("s1")

        assert content == {"folders": [], "lists": [{"id": "l0"}]}

    @pytest.mark.asyncio
    async def test_folders_without_id_are_skipped(self):
        handler = RecordingHandler({
            "/api/v2/space/s1/folder": {"folders": [
                {"name": "Broken"},
                {"id": "f1", "name": "Product"},
            ]},
            "/api/v2/space/s1/list": {"lists": []},
            "/api/v2/folder/f1/list": {"lists": [{"id": "l1", "name": "Roadmap"}]},
        })
        async with _client(handler) as client:
            content = await client.fetch_space_content("s1")

        assert content["folders"] == [
            {"id": "f1", "name": "Product", "lists": [{"id": "l1", "name": "Roadmap"}]},
        ]
        assert "/api/v2/folder/None/list" not in handler.paths()


class TestDocuments:

    @pytest.mark.asyncio
    async def test_follows_cursor_until_exhausted(self):
        pages = {
            None: {"docs": [{"id": "d-1"}], "next_cursor": "c1"},
            "c1": {"docs": [{"id": "d-2"}], "next_cursor": "c2"},
            "c2": {"docs": [{"id": "d-3"}]},
        }
        handler = RecordingHandler({
            "/api/v3/workspaces/team1/docs":
                lambda r: httpx.Response(200, json=pages[r.url.params.get("cursor")]),
        })
        async with _client(handler) as client:
            docs = await client.fetch_documents()

        assert [d["id"] for d in docs] == ["d-1", "d-2", "d-3"]
        assert len(handler.requests) == 3
        assert handler.requests[0].url.params["limit"] == "100"

    @pytest.mark.asyncio
    async def test_stops_at_page_ceiling(self):
        handler = RecordingHandler({
            "/api/v3/workspaces/team1/docs":
                lambda r: httpx.Response(200, json={"docs": [], "next_cursor": "again"}),
        })
        async with _client(handler) as client:
            await client.fetch_documents(space_ids=["s1"])

        assert len(handler.requests) == FILTERED_PAGE_LIMIT

    @pytest.mark.asyncio
    async def test_space_filter_uses_parent(self):
        def route(request):
            parent = request.url.params["parent_id"]
            return httpx.Response(200, json={"docs": [{"id": f"doc-{parent}"}, {"id": "shared-1"}]})

        handler = RecordingHandler({"/api/v3/workspaces/team1/docs": route})
        async with _client(handler) as client:
            docs = await client.fetch_documents(space_ids=["s1", "s2"])

        assert sorted(d["id"] for d in docs) == ["doc-s1", "doc-s2", "shared-1"]
        assert {r.url.params["parent_type"] for r in handler.requests} == {"4"}

    @pytest.mark.asyncio
    async def test_fetch_document(self):
        handler = RecordingHandler({"/api/v3/workspaces/team1/docs/8cdu22c-1": {"id": "8cdu22c-1"}})
        async with _client(handler) as client:
            doc = await client.fetch_document("8cdu22c-1")

        assert doc == {"id": "8cdu22c-1"}

    @pytest.mark.asyncio
    async def test_page_listing(self):
        handler = RecordingHandler({"/api/v3/workspaces/team1/docs/8cdu22c-1/pageListing": [
            {"id": "p1", "name": "Intro", "pages": [{"id": "p2", "name": "Setup"}]},
        ]})
        async with _client(handler) as client:
            listing = await client.fetch_document_page_listing("8cdu22c-1")

        assert listing[0]["pages"][0]["id"] == "p2"

    @pytest.mark.asyncio
    async def test_page_listing_unexpected_payload(self):
        handler = RecordingHandler({"/api/v3/workspaces/team1/docs/8cdu22c-1/pageListing": {"err": 1}})
        async with _client(handler) as client:
            with pytest.raises(ClickUpError, match="Unexpected page listing"):
                await client.fetch_document_page_listing("8cdu22c-1")

    @pytest.mark.asyncio
    async def test_page_content_as_markdown(self):
        handler = RecordingHandler({"/api/v3/workspaces/team1/docs/8cdu22c-1/pages/p2": {
            "id": "p2", "name": "Setup", "content": "# Setup",
        }})
        async with _client(handler) as client:
            page = await client.fetch_document_page("8cdu22c-1", "p2")

        assert page["content"] == "# Setup"
        assert handler.requests[0].url.params["content_format"] == "text/md"


class TestListsAndFolders:

    @pytest.mark.asyncio
    async def test_fetch_list_requests_markdown(self):
        handler = RecordingHandler({"/api/v2/list/l1": {"id": "l1", "name": "Backlog"}})
        async with _client(handler) as client:
            task_list = await client.fetch_list("l1")

        assert task_list["name"] == "Backlog"
        assert handler.requests[0].url.params["include_markdown_description"] == "true"

    @pytest.mark.asyncio
    async def test_missing_list_raises_not_found(self):
        async with _client(RecordingHandler()) as client:
            with pytest.raises(ClickUpNotFound):
                await client.fetch_list("l404")

    @pytest.mark.asyncio
    async def test_fetch_folder(self):
        handler = RecordingHandler({"/api/v2/folder/f1": {
            "id": "f1", "name": "Product", "lists": [{"id": "l1"}],
        }})
        async with _client(handler) as client:
            folder = await client.fetch_folder("f1")

        assert folder["lists"] == [{"id": "l1"}]

    @pytest.mark.asyncio
    async def test_folder_payload_without_id(self):
        handler = RecordingHandler({"/api/v2/folder/f1": {"name": "Product"}})
        async with _client(handler) as client:
            with pytest.raises(ClickUpError, match="Unexpected folder payload"):
                await client.fetch_folder("f1")

    @pytest.mark.asyncio
    async def test_space_tags_degrade_to_empty(self):
        handler = RecordingHandler({"/api/v2/space/s1/tag": lambda r: httpx.Response(500)})
        async with _client(handler) as client:
            assert await client.fetch_space_tags("s1") == []

    @pytest.mark.asyncio
    async def test_space_tags(self):
        handler = RecordingHandler({"/api/v2/space/s1/tag": {"tags": [{"name": "urgent"}]}})
        async with _client(handler) as client:
            assert await client.fetch_space_tags("s1") == [{"name": "urgent"}]


class TestTimeEntries:

    @pytest.mark.asyncio
    async def test_filters_become_params(self):
        handler = RecordingHandler({"/api/v2/team/team1/time_entries": {"data": [{"id": "e1"}]}})
        async with _client(handler) as client:
            entries = await client.fetch_time_entries(
                task_id="abc1234", start_date=1000, end_date=2000,
                list_id="l1", space_id="s1", assignees=["1", "2"],
            )

        assert entries == [{"id": "e1"}]
        params = handler.requests[0].url.params
        assert params["task_id"] == "abc1234"
        assert params["start_date"] == "1000"
        assert params["end_date"] == "2000"
        assert params["list_id"] == "l1"
        assert "space_id" not in params
        assert params["assignee"] == "1,2"
        assert params["include_location_names"] == "true"

    @pytest.mark.asyncio
    async def test_no_filters(self):
        handler = RecordingHandler({"/api/v2/team/team1/time_entries": {"data": []}})
        async with _client(handler) as client:
            assert await client.fetch_time_entries(space_id="s1") == []

        params = handler.requests[0].url.params
        assert params["space_id"] == "s1"
        assert "assignee" not in params
        assert "start_date" not in params

    @pytest.mark.asyncio
    async def test_team_members_of_this_workspace(self):
        handler = RecordingHandler({"/api/v2/team": {"teams": [
            {"id": "other", "members": [{"user": {"id": 9}}]},
            {"id": "team1", "members": [{"user": {"id": 1}}, {"user": {"id": 2}}, {"invited_by": {}}]},
        ]}})
        async with _client(handler) as client:
            assert await client.fetch_team_members() == ["1", "2"]
