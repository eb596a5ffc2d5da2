"""
Unit tests for permission discovery.
"""

import httpx
import pytest

from freshdesk_gateway.adapters.errors import ErrorKind, FreshdeskError
from freshdesk_gateway.auth.discovery import PermissionDiscovery
from freshdesk_gateway.auth.permissions import AccessLevel, Permission


def route(table, default_status=403):
    """Respond by URL path; unknown paths get `default_status`."""

    def handler(request):
        path = request.url.path.replace("/api/v2", "", 1)
        if path in table:
            status, body = table[path]
            return httpx.Response(status, json=body)
        return httpx.Response(default_status, json={"message": "denied"})

    return handler


class TestPermissionDiscovery:
    """Test cases for PermissionDiscovery."""

    @pytest.mark.asyncio
    async def test_full_time_agent_gets_write(self, make_adapter, recorder):
        recorder.default = route({
            "/agents/me": (200, {"id": 1, "occasional": False, "type": "support_agent"}),
            "/agents": (200, []),
            "/tickets": (200, []),
            "/contacts": (200, []),
            "/companies": (403, {}),
            "/search/tickets": (200, {"results": []}),
        })
        adapter = make_adapter()

        grant = await PermissionDiscovery(adapter).discover()

        assert grant.access_level is AccessLevel.WRITE
        assert {Permission.TICKETS_WRITE, Permission.CONTACTS_WRITE, Permission.CONVERSATIONS_WRITE} <= grant.permissions
        assert Permission.SEARCH in grant.permissions
        assert Permission.COMPANIES_READ not in grant.permissions
        assert Permission.TICKETS_DELETE not in grant.permissions

    @pytest.mark.asyncio
    async def test_only_get_requests_are_made(self, make_adapter, recorder):
        recorder.default = route({"/agents/me": (200, {"occasional": False})})
        adapter = make_adapter()

        await PermissionDiscovery(adapter).discover()

        assert recorder.requests
        assert {request.method for request in recorder.requests} == {"GET"}

    @pytest.mark.asyncio
    async def test_occasional_agent_gets_read(self, make_adapter, recorder):
        recorder.default = route({
            "/agents/me": (200, {"occasional": True}),
            "/tickets": (200, []),
        })
        adapter = make_adapter()

        grant = await PermissionDiscovery(adapter).discover()

        assert grant.access_level is AccessLevel.READ
        assert grant.permissions == frozenset({
            Permission.AGENTS_READ,
            Permission.TICKETS_READ,
            Permission.CONVERSATIONS_READ,
        })

    @pytest.mark.asyncio
    async def test_admin_endpoints_grant_admin(self, make_adapter, recorder):
        recorder.default = route({
            "/agents/me": (200, {"occasional": False}),
            "/admin/ticket_fields": (200, []),
        })
        adapter = make_adapter()

        grant = await PermissionDiscovery(adapter).discover()

        assert grant.access_level is AccessLevel.ADMIN
        assert grant.permissions == frozenset(Permission)

    @pytest.mark.asyncio
    async def test_nothing_visible_gives_none(self, make_adapter, recorder):
        recorder.default = route({}, default_status=404)
        adapter = make_adapter()

        discovery = PermissionDiscovery(adapter)
        grant = await discovery.discover()

        assert grant.access_level is AccessLevel.NONE
        assert grant.permissions == frozenset()
        assert not any(discovery.summary()["probes"].values())

    @pytest.mark.asyncio
    async def test_authentication_failure_raises(self, make_adapter, recorder):
        recorder.default = route({}, default_status=401)
        adapter = make_adapter()

        with pytest.raises(FreshdeskError) as exc_info:
            await PermissionDiscovery(adapter).discover()

        assert exc_info.value.kind is ErrorKind.AUTHENTICATION
        assert len(recorder.requests) == 1
