"""
Freshdesk Gateway
Rate-limited, permission-gated access to the Freshdesk v2 API over MCP
"""

__version__ = '1.0.0'

# adapters must load before auth
from .adapters import FreshdeskAdapter, FreshdeskError, ErrorKind, RateLimiter
from .auth import AccessLevel, Permission, PermissionGrant, authorize

__all__ = [
    'FreshdeskAdapter',
    'FreshdeskError',
    'ErrorKind',
    'RateLimiter',
    'AccessLevel',
    'Permission',
    'PermissionGrant',
    'authorize',
]
