"""
Freshdesk Gateway - API Adapters Package
Credentials, rate limiting, failure classification and the Freshdesk adapter
"""

from .credentials import CredentialProvider
from .errors import AccessDeniedError, ErrorKind, FreshdeskError, is_retryable
from .rate_limiter import RateLimiter
from .base_adapter import BaseAdapter, RetryPolicy
from .freshdesk_adapter import FreshdeskAdapter

__all__ = [
    'CredentialProvider',
    'AccessDeniedError',
    'ErrorKind',
    'FreshdeskError',
    'is_retryable',
    'RateLimiter',
    'BaseAdapter',
    'RetryPolicy',
    'FreshdeskAdapter',
]

__version__ = '1.0.0'
