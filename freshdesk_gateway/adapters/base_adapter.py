"""
Base API Adapter - request orchestration for the Freshdesk integration
Acquires quota, sends the request, classifies failures and retries per policy
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlsplit

import httpx

from .credentials import CredentialProvider
from .errors import FreshdeskError, classify_response, classify_transport_error
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

USER_AGENT = "Freshdesk-Gateway/1.0.0"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry ceiling and exponential backoff bounds, in milliseconds"""
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000

    def delay_ms(self, attempt: int, error: FreshdeskError) -> int:
        """
        Delay before the next attempt

        A server supplied retry-after hint is used verbatim; otherwise the
        delay doubles per attempt up to the cap.
        """
        if error.retry_after is not None:
            return error.retry_after * 1000
        return min(self.base_delay_ms * (2 ** attempt), self.max_delay_ms)


class BaseAdapter(ABC):
    """
    Abstract base class for API adapters.

    One adapter owns one credential, one HTTP client and one rate limiter;
    every request made through `send` shares that limiter.
    """

    platform_name = "base"

    def __init__(
        self,
        credentials: CredentialProvider,
        rate_limit_per_minute: int = 50,
        timeout_ms: int = 30000,
        retry_policy: Optional[RetryPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.credentials = credentials
        self.base_url = credentials.base_url().rstrip("/")
        self.timeout_ms = timeout_ms
        self.retry_policy = retry_policy or RetryPolicy()
        self.rate_limiter = rate_limiter or RateLimiter(
            max_requests=rate_limit_per_minute,
            window_minutes=1,
        )
        self._sleep = sleep

        self.client = httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=httpx.Timeout(timeout_ms / 1000),
            follow_redirects=True,
            transport=transport,
        )

        logger.info(f"🔌 Initialized {self.platform_name} adapter: {self.base_url}")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()

    def _build_url(self, path: str) -> str:
        # Auth headers only ever go to the configured Freshdesk host
        parts = urlsplit(path)
        if parts.scheme or parts.netloc:
            raise ValueError(f"Endpoint path must be relative to the API base URL: {path}")
        return f"{self.base_url}/{path.lstrip('/')}"

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"raw_response": response.text}

    async def send(
        self,
        method: str,
        path: str,
        data: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Make an HTTP request with rate limiting, classification and retries

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            path: Endpoint path relative to the API base URL
            data: JSON body for POST/PUT/PATCH
            params: Query parameters
            headers: Additional headers, merged over the auth headers

        Returns:
            Parsed JSON payload ({} for empty responses)

        Raises:
            FreshdeskError: the last classified failure once it is terminal
        """
        method = method.upper()
        if method not in SUPPORTED_METHODS:
            raise ValueError(f"Unsupported method: {method}")

        url = self._build_url(path)
        request_headers = {**self.credentials.auth_header(), **(headers or {})}
        query = {k: v for k, v in (params or {}).items() if v is not None} or None
        body = data if method in BODY_METHODS else None

        attempt = 0
        while True:
            await self.rate_limiter.check_limit()

            logger.debug(
                f"🌐 {method} {path} - attempt {attempt + 1}",
                extra={"event": "request_start", "method": method, "path": path, "attempt": attempt},
            )

            cause: Optional[Exception] = None
            try:
                response = await self.client.request(
                    method=method,
                    url=url,
                    params=query,
                    json=body,
                    headers=request_headers,
                )
            except httpx.RequestError as exc:
                cause = exc
                error = classify_transport_error(exc)
            else:
                logger.debug(
                    f"📥 {method} {path} -> {response.status_code}",
                    extra={
                        "event": "response_received",
                        "method": method,
                        "path": path,
                        "status": response.status_code,
                        "attempt": attempt,
                    },
                )
                if response.is_success:
                    self.rate_limiter.update_from_headers(response.headers)
                    return self._parse_body(response)
                error = classify_response(response)

            if not error.retryable or attempt >= self.retry_policy.max_retries:
                logger.warning(
                    f"❌ {method} {path} failed [{error.kind.value}] after {attempt + 1} attempt(s): {error.message}",
                    extra={
                        "event": "request_failed",
                        "method": method,
                        "path": path,
                        "status": error.status_code,
                        "attempt": attempt,
                    },
                )
                if cause is not None:
                    raise error from cause
                raise error

            delay_ms = self.retry_policy.delay_ms(attempt, error)
            logger.info(
                f"🔁 Retrying {method} {path} in {delay_ms}ms ({error.kind.value})",
                extra={
                    "event": "retry_scheduled",
                    "method": method,
                    "path": path,
                    "status": error.status_code,
                    "attempt": attempt,
                    "delay_ms": delay_ms,
                },
            )
            await self._sleep(delay_ms / 1000)
            attempt += 1

    # Abstract methods that subclasses must implement
    @abstractmethod
    async def test_connection(self) -> bool:
        """Test API connection and authentication"""

    @abstractmethod
    async def get_available_tools(self) -> List[Dict[str, Any]]:
        """Get list of all available tools for this platform"""

    @abstractmethod
    async def discover_api_schema(self) -> Dict[str, Any]:
        """Discover API schema and capabilities"""

    # Common utility methods
    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET request wrapper"""
        return await self.send("GET", endpoint, params=params)

    async def post(self, endpoint: str, data: Optional[Any] = None,
                   params: Optional[Dict[str, Any]] = None) -> Any:
        """POST request wrapper"""
        return await self.send("POST", endpoint, data=data, params=params)

    async def put(self, endpoint: str, data: Optional[Any] = None,
                  params: Optional[Dict[str, Any]] = None) -> Any:
        """PUT request wrapper"""
        return await self.send("PUT", endpoint, data=data, params=params)

    async def patch(self, endpoint: str, data: Optional[Any] = None,
                    params: Optional[Dict[str, Any]] = None) -> Any:
        """PATCH request wrapper"""
        return await self.send("PATCH", endpoint, data=data, params=params)

    async def delete(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """DELETE request wrapper"""
        return await self.send("DELETE", endpoint, params=params)

    def get_platform_info(self) -> Dict[str, Any]:
        """Get adapter platform information"""
        return {
            "platform": self.platform_name,
            "base_url": self.base_url,
            "authenticated": True,
            "rate_limit_per_minute": self.rate_limiter.max_requests,
            "max_retries": self.retry_policy.max_retries,
            "timeout_ms": self.timeout_ms,
        }
