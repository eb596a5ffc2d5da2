"""
Unit tests for the gateway container and MCP server wiring.
"""

import json
from unittest.mock import patch

import httpx
import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError

from freshdesk_gateway.adapters.errors import ErrorKind, FreshdeskError
from freshdesk_gateway.auth.permissions import AccessLevel, Permission, PermissionGrant
from freshdesk_gateway.config import GatewayConfig
from freshdesk_gateway.server import Gateway, create_server, exposed_name


def make_config(**overrides):
    values = {"domain": "acme", "api_key": "test-api-key-1234567890"}
    values.update(overrides)
    return GatewayConfig(**values)


class TestGateway:
    """Test cases for Gateway."""

    @pytest.mark.asyncio
    async def test_initialize_skipping_everything_keeps_configured_grant(self, make_adapter, recorder):
        config = make_config(skip_connection_test=True, skip_permission_discovery=True, access_level="read")
        gateway = Gateway(config, adapter=make_adapter())

        grant = await gateway.initialize()

        assert grant.access_level is AccessLevel.READ
        assert gateway.grant_source == "configuration"
        assert gateway.connected is None
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_initialize_uses_discovered_grant(self, make_adapter, recorder):
        def handler(request):
            if request.url.path.endswith("/agents/me"):
                return httpx.Response(200, json={"occasional": True})
            return httpx.Response(403, json={})

        recorder.default = handler
        gateway = Gateway(make_config(), adapter=make_adapter())

        grant = await gateway.initialize()

        assert gateway.connected is True
        assert gateway.grant_source == "discovery"
        assert grant.access_level is AccessLevel.READ

    @pytest.mark.asyncio
    async def test_discovery_failure_falls_back(self, make_adapter, recorder):
        recorder.default = lambda request: httpx.Response(500)
        gateway = Gateway(make_config(skip_connection_test=True), adapter=make_adapter(max_retries=0))

        grant = await gateway.initialize()

        assert gateway.grant_source == "configuration"
        assert grant == make_config().fallback_grant()

    @pytest.mark.asyncio
    async def test_bad_key_aborts_initialization(self, make_adapter, recorder):
        recorder.default = lambda request: httpx.Response(401, json={"message": "Bad key"})
        gateway = Gateway(make_config(), adapter=make_adapter())

        with pytest.raises(FreshdeskError) as exc_info:
            await gateway.initialize()

        assert exc_info.value.kind is ErrorKind.AUTHENTICATION
        assert gateway.connected is False

    @pytest.mark.asyncio
    async def test_local_tools(self, make_adapter, recorder):
        gateway = Gateway(make_config(), adapter=make_adapter(max_requests=10))

        health = json.loads(await gateway.registry.call_tool("health_check", {}, gateway.grant))
        rate = json.loads(await gateway.registry.call_tool("get_rate_limit_status", {}, gateway.grant))
        tools = json.loads(await gateway.registry.call_tool("discover_tools", {"category": "agents"}, gateway.grant))
        permissions = json.loads(await gateway.registry.call_tool("get_permissions", {}, gateway.grant))

        assert health["server"]["name"] == "Freshdesk-Gateway"
        assert "test-api-key-1234567890" not in json.dumps(health)
        assert rate["limit"] == 10
        assert rate["remaining"] == 10
        assert tools["total_tools"] == 6
        assert {tool["name"] for tool in tools["tools"] if not tool["available"]} == {"update_agent"}
        assert permissions["access_level"] == "write"
        assert permissions["source"] == "configuration"
        assert recorder.requests == []


class TestCreateServer:
    """Test cases for create_server."""

    def test_only_allowed_tools_exposed(self, make_adapter):
        gateway = Gateway(make_config(), adapter=make_adapter())

        with patch("freshdesk_gateway.server._register_mcp_tool") as register:
            create_server(gateway)

        exposed = {exposed_name(call.args[2]) for call in register.call_args_list}
        assert "freshdesk_view_ticket" in exposed
        assert "freshdesk_create_ticket" in exposed
        assert "health_check" in exposed
        assert "freshdesk_delete_ticket" not in exposed
        assert "freshdesk_update_agent" not in exposed

    def test_read_only_grant_hides_writes(self, make_adapter):
        gateway = Gateway(make_config(access_level="read"), adapter=make_adapter())

        with patch("freshdesk_gateway.server._register_mcp_tool") as register:
            create_server(gateway)

        exposed = {exposed_name(call.args[2]) for call in register.call_args_list}
        assert "freshdesk_list_tickets" in exposed
        assert "freshdesk_create_ticket" not in exposed
        assert "freshdesk_create_contact" not in exposed


class TestMcpClient:
    """Test cases for tools called through an in-memory MCP client."""

    @pytest.mark.asyncio
    async def test_tools_publish_their_parameters(self, make_adapter):
        gateway = Gateway(make_config(), adapter=make_adapter())

        async with Client(create_server(gateway)) as client:
            tools = {tool.name: tool for tool in await client.list_tools()}

        view_ticket = tools["freshdesk_view_ticket"].inputSchema
        assert set(view_ticket["properties"]) == {"ticket_id", "include"}
        assert view_ticket["required"] == ["ticket_id"]
        assert "category" in tools["discover_tools"].inputSchema["properties"]
        assert tools["freshdesk_list_company_contacts"].inputSchema["required"] == ["company_id"]

    @pytest.mark.asyncio
    async def test_top_level_arguments_reach_freshdesk(self, make_adapter, recorder):
        recorder.responses.append(httpx.Response(200, json={"id": 5, "subject": "Printer on fire"}))
        gateway = Gateway(make_config(), adapter=make_adapter())

        async with Client(create_server(gateway)) as client:
            result = await client.call_tool("freshdesk_view_ticket", {"ticket_id": 5})

        payload = json.loads(result.content[0].text)
        assert payload["success"] is True
        assert payload["result"]["subject"] == "Printer on fire"
        assert recorder.requests[0].url.path == "/api/v2/tickets/5"
        assert "include" not in recorder.requests[0].url.params

    @pytest.mark.asyncio
    async def test_unknown_field_rejected_before_request(self, make_adapter, recorder):
        gateway = Gateway(make_config(), adapter=make_adapter())

        async with Client(create_server(gateway)) as client:
            with pytest.raises(ToolError):
                await client.call_tool("freshdesk_view_ticket", {"ticket_id": 5, "colour": "red"})

        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_narrowed_grant_applies_at_call_time(self, make_adapter, recorder):
        gateway = Gateway(make_config(), adapter=make_adapter())
        mcp = create_server(gateway)
        gateway.grant = PermissionGrant(access_level=AccessLevel.READ, permissions=frozenset({Permission.AGENTS_READ}))

        async with Client(mcp) as client:
            result = await client.call_tool("freshdesk_view_ticket", {"ticket_id": 5})

        payload = json.loads(result.content[0].text)
        assert payload["error"] is True
        assert payload["kind"] == "authorization"
        assert recorder.requests == []
