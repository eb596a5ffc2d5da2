"""Access control: permission model, gate and discovery"""

from .permissions import (
    AccessDecision,
    AccessLevel,
    OperationRequirement,
    Permission,
    PermissionGrant,
    authorize,
    ensure_authorized,
    requires,
)
from .discovery import PermissionDiscovery

__all__ = [
    'AccessDecision',
    'AccessLevel',
    'OperationRequirement',
    'Permission',
    'PermissionGrant',
    'authorize',
    'ensure_authorized',
    'requires',
    'PermissionDiscovery',
]
