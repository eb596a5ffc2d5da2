"""
Permission discovery
Works out what the configured API key may do by probing read-only endpoints
"""

import logging
from typing import Any, Dict, Optional, Set, Tuple

from ..adapters.errors import ErrorKind, FreshdeskError
from .permissions import AccessLevel, Permission, PermissionGrant

logger = logging.getLogger(__name__)

# Failures that only mean "this key can't see that"
WITHHOLDING_KINDS = frozenset({ErrorKind.AUTHORIZATION, ErrorKind.NOT_FOUND})

READ_PROBES = {
    "/agents": Permission.AGENTS_READ,
    "/tickets": Permission.TICKETS_READ,
    "/contacts": Permission.CONTACTS_READ,
    "/companies": Permission.COMPANIES_READ,
}

ADMIN_PROBES = {
    "/admin/ticket_fields": Permission.CUSTOM_FIELDS_READ,
    "/automations/1/rules": Permission.AUTOMATIONS_READ,
}

# readable resource -> capabilities a full-time agent gets on it
WRITE_FOR_READ = {
    Permission.TICKETS_READ: (
        Permission.TICKETS_WRITE,
        Permission.CONVERSATIONS_READ,
        Permission.CONVERSATIONS_WRITE,
    ),
    Permission.CONTACTS_READ: (Permission.CONTACTS_WRITE,),
    Permission.COMPANIES_READ: (Permission.COMPANIES_WRITE,),
}


class PermissionDiscovery:
    """
    Builds a PermissionGrant from GET probes made through the adapter.

    Nothing is ever created or modified: write capabilities are inferred
    from the agent profile and from whether admin-only endpoints answer.
    """

    def __init__(self, adapter):
        self.adapter = adapter
        self.probe_results: Dict[str, bool] = {}
        self.agent_profile: Optional[Dict[str, Any]] = None

    async def _probe(self, path: str, params: Optional[Dict[str, Any]] = None) -> Tuple[bool, Any]:
        """
        GET `path`; True when it answered

        Raises:
            FreshdeskError: authentication failures and anything that is not
                a plain "not allowed"/"not there"
        """
        try:
            result = await self.adapter.send("GET", path, params=params)
        except FreshdeskError as e:
            if e.kind in WITHHOLDING_KINDS:
                logger.debug(f"🔍 Probe {path} withheld ({e.kind.value})")
                self.probe_results[path] = False
                return False, None
            raise
        self.probe_results[path] = True
        return True, result

    async def discover(self) -> PermissionGrant:
        logger.info("🔍 Discovering API key permissions...")
        self.probe_results.clear()

        granted: Set[Permission] = set()

        ok, profile = await self._probe("/agents/me")
        if ok and isinstance(profile, dict):
            self.agent_profile = profile
            granted.add(Permission.AGENTS_READ)

        for path, permission in READ_PROBES.items():
            ok, _ = await self._probe(path, params={"per_page": 1})
            if ok:
                granted.add(permission)

        ok, _ = await self._probe("/search/tickets", params={"query": '"status:2"'})
        if ok:
            granted.add(Permission.SEARCH)

        is_admin = False
        for path, permission in ADMIN_PROBES.items():
            ok, _ = await self._probe(path)
            if ok:
                granted.add(permission)
                is_admin = True

        grant = self._build_grant(granted, is_admin)
        logger.info(
            f"✅ Discovered access level '{grant.access_level.name.lower()}' "
            f"with {len(grant.permissions)} permissions"
        )
        return grant

    def _is_full_time_agent(self) -> bool:
        if not self.agent_profile:
            return False
        if self.agent_profile.get("occasional"):
            return False
        return self.agent_profile.get("type", "support_agent") != "collaborator"

    def _build_grant(self, granted: Set[Permission], is_admin: bool) -> PermissionGrant:
        if is_admin:
            return PermissionGrant(access_level=AccessLevel.ADMIN, permissions=frozenset(Permission))

        if not granted:
            return PermissionGrant(access_level=AccessLevel.NONE)

        if self._is_full_time_agent():
            permissions = set(granted)
            for readable, extra in WRITE_FOR_READ.items():
                if readable in granted:
                    permissions.update(extra)
            return PermissionGrant(access_level=AccessLevel.WRITE, permissions=frozenset(permissions))

        permissions = set(granted)
        if Permission.TICKETS_READ in granted:
            permissions.add(Permission.CONVERSATIONS_READ)
        return PermissionGrant(access_level=AccessLevel.READ, permissions=frozenset(permissions))

    def summary(self) -> Dict[str, Any]:
        return {
            "probes": dict(self.probe_results),
            "agent_type": (self.agent_profile or {}).get("type"),
            "occasional": (self.agent_profile or {}).get("occasional"),
        }
