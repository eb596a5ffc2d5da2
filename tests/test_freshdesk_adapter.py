"""
Unit tests for the Freshdesk adapter's tool table and execution.
"""

import httpx
import pytest

from freshdesk_gateway.adapters.errors import ErrorKind, FreshdeskError
from freshdesk_gateway.adapters.freshdesk_adapter import FreshdeskAdapter
from freshdesk_gateway.auth.permissions import AccessLevel, Permission

from freshdesk_gateway.config import GatewayConfig

EXPECTED_TOOLS = {
    "create_ticket", "view_ticket", "list_tickets", "update_ticket", "delete_ticket", "search_tickets",
    "create_contact", "view_contact", "list_contacts", "update_contact", "delete_contact",
    "search_contacts", "merge_contacts",
    "list_agents", "view_agent", "current_agent", "list_agent_groups", "list_agent_roles", "update_agent",
    "create_company", "view_company", "list_companies", "list_company_contacts", "update_company", "delete_company",
    "search_companies",
    "list_conversations", "create_reply", "create_note", "update_conversation", "delete_conversation",
}


class TestToolTable:
    """Test cases for the declared tools."""

    def test_all_tools_present(self, make_adapter):
        adapter = make_adapter()
        assert set(adapter.get_tools()) == EXPECTED_TOOLS

    def test_every_tool_declares_requirement(self, make_adapter):
        adapter = make_adapter()
        for name, config in adapter.all_tools.items():
            requirement = config["requires"]
            assert requirement.minimum_access_level >= AccessLevel.READ, name
            if config["method"] != "GET":
                assert requirement.minimum_access_level >= AccessLevel.WRITE, name

    def test_delete_tools_need_delete_permission(self, make_adapter):
        adapter = make_adapter()
        assert adapter.get_requirement("delete_ticket").permissions == frozenset({Permission.TICKETS_DELETE})
        assert adapter.get_requirement("update_agent").minimum_access_level is AccessLevel.ADMIN
        assert adapter.get_requirement("search_tickets").permissions == frozenset(
            {Permission.TICKETS_READ, Permission.SEARCH}
        )

    @pytest.mark.asyncio
    async def test_available_tools_and_schema(self, make_adapter):
        adapter = make_adapter(max_requests=40)

        tools = await adapter.get_available_tools()
        schema = await adapter.discover_api_schema()

        assert len(tools) == len(EXPECTED_TOOLS)
        assert {tool["category"] for tool in tools} == set(schema["categories"])
        assert schema["rate_limits"]["requests_per_minute"] == 40


class TestExecuteTool:
    """Test cases for FreshdeskAdapter.execute_tool."""

    @pytest.mark.asyncio
    async def test_view_ticket_fills_path_and_include(self, make_adapter, recorder):
        recorder.responses.append(httpx.Response(200, json={"id": 42}))
        adapter = make_adapter()

        result = await adapter.execute_tool("view_ticket", {"ticket_id": 42, "include": ["requester", "stats"]})

        assert result == {"success": True, "tool_name": "view_ticket", "platform": "freshdesk", "result": {"id": 42}}
        request = recorder.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/api/v2/tickets/42"
        assert request.url.params["include"] == "requester,stats"

    @pytest.mark.asyncio
    async def test_create_ticket_sends_body(self, make_adapter, recorder):
        recorder.responses.append(httpx.Response(201, json={"id": 1}))
        adapter = make_adapter()

        await adapter.execute_tool(
            "create_ticket",
            {"subject": "Printer on fire", "description": "Help", "email": "a@b.com", "priority": 4, "status": 2},
        )

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/v2/tickets"
        assert recorder.body() == {
            "subject": "Printer on fire",
            "description": "Help",
            "email": "a@b.com",
            "priority": 4,
            "status": 2,
        }

    @pytest.mark.asyncio
    async def test_update_conversation_uses_both_ids(self, make_adapter, recorder):
        adapter = make_adapter()

        await adapter.execute_tool("update_conversation", {"ticket_id": 5, "conversation_id": 9, "body": "edited"})

        request = recorder.requests[0]
        assert request.method == "PUT"
        assert request.url.path == "/api/v2/tickets/5/conversations/9"
        assert recorder.body() == {"body": "edited"}

    @pytest.mark.asyncio
    async def test_merge_contacts(self, make_adapter, recorder):
        adapter = make_adapter()

        await adapter.execute_tool("merge_contacts", {"contact_id": 3, "secondary_contact_ids": [4, 5]})

        assert recorder.requests[0].url.path == "/api/v2/contacts/3/merge"
        assert recorder.body() == {"secondary_contact_ids": [4, 5]}

    @pytest.mark.asyncio
    async def test_search_query_is_quoted(self, make_adapter, recorder):
        recorder.responses.append(httpx.Response(200, json={"results": [], "total": 0}))
        adapter = make_adapter()

        await adapter.execute_tool("search_tickets", {"query": "priority:3 AND status:2"})

        request = recorder.requests[0]
        assert request.url.path == "/api/v2/search/tickets"
        assert request.url.params["query"] == '"priority:3 AND status:2"'

    @pytest.mark.asyncio
    async def test_current_agent_has_no_arguments(self, make_adapter, recorder):
        adapter = make_adapter()

        await adapter.execute_tool("current_agent")

        assert recorder.requests[0].url.path == "/api/v2/agents/me"

    @pytest.mark.asyncio
    async def test_agent_groups_and_roles(self, make_adapter, recorder):
        recorder.responses.append(httpx.Response(200, json=[{"id": 11, "name": "Billing"}]))
        recorder.responses.append(httpx.Response(200, json=[{"id": 21, "name": "Supervisor"}]))
        adapter = make_adapter()

        groups = await adapter.execute_tool("list_agent_groups", {"agent_id": 7})
        roles = await adapter.execute_tool("list_agent_roles", {"agent_id": 7})

        assert [request.url.path for request in recorder.requests] == [
            "/api/v2/agents/7/groups",
            "/api/v2/agents/7/roles",
        ]
        assert groups["result"] == [{"id": 11, "name": "Billing"}]
        assert roles["result"] == [{"id": 21, "name": "Supervisor"}]
        assert adapter.get_requirement("list_agent_roles").permissions == frozenset({Permission.AGENTS_READ})

    @pytest.mark.asyncio
    async def test_company_contacts_paginated(self, make_adapter, recorder):
        recorder.responses.append(httpx.Response(200, json=[{"id": 3}]))
        adapter = make_adapter()

        result = await adapter.execute_tool("list_company_contacts", {"company_id": 12, "page": 2, "per_page": 50})

        request = recorder.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/api/v2/companies/12/contacts"
        assert request.url.params["page"] == "2"
        assert request.url.params["per_page"] == "50"
        assert result["result"] == [{"id": 3}]
        assert adapter.get_requirement("list_company_contacts").permissions == frozenset(
            {Permission.COMPANIES_READ, Permission.CONTACTS_READ}
        )

    @pytest.mark.asyncio
    async def test_unknown_tool(self, make_adapter, recorder):
        adapter = make_adapter()

        with pytest.raises(FreshdeskError) as exc_info:
            await adapter.execute_tool("launch_rocket", {})

        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_invalid_arguments_make_no_request(self, make_adapter, recorder):
        adapter = make_adapter()

        with pytest.raises(FreshdeskError) as exc_info:
            await adapter.execute_tool("view_ticket", {"ticket_id": "abc"})

        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_failure_updates_stats(self, make_adapter, recorder):
        recorder.default = lambda request: httpx.Response(404)
        adapter = make_adapter()

        with pytest.raises(FreshdeskError) as exc_info:
            await adapter.execute_tool("view_contact", {"contact_id": 77})

        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert adapter.stats["requests_made"] == 1
        assert adapter.stats["failed_requests"] == 1
        assert adapter.stats["successful_requests"] == 0

    @pytest.mark.asyncio
    async def test_rate_limit_failure_counted(self, make_adapter, recorder):
        recorder.default = lambda request: httpx.Response(429, headers={"Retry-After": "1"})
        adapter = make_adapter(max_retries=1)

        with pytest.raises(FreshdeskError):
            await adapter.execute_tool("list_tickets", {})

        assert adapter.stats["rate_limit_hits"] == 1


class TestConnection:
    """Test cases for test_connection and construction."""

    @pytest.mark.asyncio
    async def test_connection_passes(self, make_adapter, recorder):
        recorder.responses.append(httpx.Response(200, json={"id": 1}))
        adapter = make_adapter()

        assert await adapter.test_connection() is True
        assert recorder.requests[0].url.path == "/api/v2/agents/me"

    @pytest.mark.asyncio
    async def test_connection_fails_on_bad_key(self, make_adapter, recorder):
        recorder.responses.append(httpx.Response(401, json={"message": "Bad key"}))
        adapter = make_adapter()

        assert await adapter.test_connection() is False

    def test_from_config(self):
        config = GatewayConfig(domain="acme", api_key="key", rate_limit_per_minute=10, max_retries=1)
        adapter = FreshdeskAdapter.from_config(config)

        assert adapter.base_url == "https://acme.freshdesk.com/api/v2"
        assert adapter.rate_limiter.max_requests == 10
        assert adapter.retry_policy.max_retries == 1
