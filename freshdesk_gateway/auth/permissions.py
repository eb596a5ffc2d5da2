"""
Access control for gateway operations
Decides, before any request is built, whether a caller may invoke an operation
"""

import logging
from enum import Enum, IntEnum
from typing import Any, FrozenSet, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..adapters.errors import AccessDeniedError

logger = logging.getLogger(__name__)


class AccessLevel(IntEnum):
    """Coarse privilege tiers, ordered none < read < write < admin"""
    NONE = 0
    READ = 1
    WRITE = 2
    ADMIN = 3

    @classmethod
    def parse(cls, value: Union[str, int, "AccessLevel"]) -> "AccessLevel":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown access level: {value!r}") from None
        return cls(value)


class Permission(str, Enum):
    """Fine-grained capabilities, named `<resource>:<action>`"""
    TICKETS_READ = "tickets:read"
    TICKETS_WRITE = "tickets:write"
    TICKETS_DELETE = "tickets:delete"

    CONTACTS_READ = "contacts:read"
    CONTACTS_WRITE = "contacts:write"
    CONTACTS_DELETE = "contacts:delete"

    AGENTS_READ = "agents:read"
    AGENTS_WRITE = "agents:write"

    COMPANIES_READ = "companies:read"
    COMPANIES_WRITE = "companies:write"
    COMPANIES_DELETE = "companies:delete"

    CONVERSATIONS_READ = "conversations:read"
    CONVERSATIONS_WRITE = "conversations:write"
    CONVERSATIONS_DELETE = "conversations:delete"

    CUSTOM_FIELDS_READ = "custom_fields:read"
    AUTOMATIONS_READ = "automations:read"

    SEARCH = "search"


# Grant used when neither discovery nor configuration supplies one
DEFAULT_PERMISSIONS = frozenset({
    Permission.TICKETS_READ,
    Permission.TICKETS_WRITE,
    Permission.CONTACTS_READ,
    Permission.CONTACTS_WRITE,
    Permission.AGENTS_READ,
    Permission.COMPANIES_READ,
    Permission.CONVERSATIONS_READ,
    Permission.SEARCH,
})
DEFAULT_ACCESS_LEVEL = AccessLevel.WRITE


class PermissionGrant(BaseModel):
    """Permissions and access level held by the current caller context"""
    model_config = ConfigDict(frozen=True)

    access_level: AccessLevel = AccessLevel.NONE
    permissions: FrozenSet[Permission] = Field(default_factory=frozenset)

    def has(self, permission: Permission) -> bool:
        return permission in self.permissions

    def describe(self) -> dict:
        return {
            "access_level": self.access_level.name.lower(),
            "is_read_only": self.access_level < AccessLevel.WRITE,
            "is_admin": self.access_level >= AccessLevel.ADMIN,
            "permissions": sorted(p.value for p in self.permissions),
        }


class OperationRequirement(BaseModel):
    """Declared once per operation at registration time"""
    model_config = ConfigDict(frozen=True)

    permissions: FrozenSet[Permission] = Field(default_factory=frozenset)
    minimum_access_level: AccessLevel = AccessLevel.READ

    def describe(self) -> dict:
        return {
            "minimum_access_level": self.minimum_access_level.name.lower(),
            "permissions": sorted(p.value for p in self.permissions),
        }


def requires(level: AccessLevel, *permissions: Permission) -> OperationRequirement:
    """Shorthand used by the tool tables"""
    return OperationRequirement(permissions=frozenset(permissions), minimum_access_level=level)


class AccessDecision(BaseModel):
    """Outcome of an authorization check"""
    allowed: bool
    reason: str
    missing_permissions: List[str] = Field(default_factory=list)


def _deny(reason: str, missing: Optional[List[str]] = None) -> AccessDecision:
    return AccessDecision(allowed=False, reason=reason, missing_permissions=missing or [])


def _valid_permission_set(value: Any) -> bool:
    return isinstance(value, (set, frozenset)) and all(isinstance(p, Permission) for p in value)


def authorize(grant: Optional[PermissionGrant], requirement: Optional[OperationRequirement]) -> AccessDecision:
    """
    Decide whether `grant` satisfies `requirement`.

    Allows only when the grant's access level is at least the required level
    and the grant holds every required permission. Anything missing or of
    the wrong shape is denied.
    """
    if not isinstance(requirement, OperationRequirement):
        return _deny("Operation requirement is missing or malformed")
    if not isinstance(requirement.minimum_access_level, AccessLevel) or not _valid_permission_set(
        requirement.permissions
    ):
        return _deny("Operation requirement is missing or malformed")

    if grant is None:
        return _deny("No permission grant supplied")
    if not isinstance(grant, PermissionGrant):
        return _deny("Permission grant is malformed")

    level = grant.access_level
    held = grant.permissions
    if not isinstance(level, AccessLevel) or not _valid_permission_set(held):
        return _deny("Permission grant is malformed")

    missing = sorted(p.value for p in requirement.permissions if p not in held)

    if level < requirement.minimum_access_level:
        return _deny(
            f"Access level '{level.name.lower()}' is below required "
            f"'{requirement.minimum_access_level.name.lower()}'",
            missing,
        )

    if missing:
        return _deny(f"Missing permissions: {', '.join(missing)}", missing)

    return AccessDecision(allowed=True, reason="allowed")


def ensure_authorized(
    grant: Optional[PermissionGrant],
    requirement: Optional[OperationRequirement],
    operation: str,
) -> None:
    """Raise AccessDeniedError unless `grant` satisfies `requirement`"""
    decision = authorize(grant, requirement)
    if not decision.allowed:
        logger.warning(f"🔒 Denied {operation}: {decision.reason}")
        raise AccessDeniedError(
            f"Insufficient permissions for {operation}. {decision.reason}",
            missing_permissions=decision.missing_permissions,
        )


def parse_permissions(values: Iterable[str]) -> FrozenSet[Permission]:
    """Parse permission names such as `tickets:read`; unknown names raise ValueError"""
    parsed = set()
    for value in values:
        name = value.strip()
        if not name:
            continue
        try:
            parsed.add(Permission(name))
        except ValueError:
            raise ValueError(f"Unknown permission: {name!r}") from None
    return frozenset(parsed)


def default_grant() -> PermissionGrant:
    return PermissionGrant(access_level=DEFAULT_ACCESS_LEVEL, permissions=DEFAULT_PERMISSIONS)
