"""
Shared fixtures for gateway tests.
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from freshdesk_gateway.adapters.base_adapter import RetryPolicy
from freshdesk_gateway.adapters.freshdesk_adapter import FreshdeskAdapter
from freshdesk_gateway.adapters.rate_limiter import RateLimiter

TEST_DOMAIN = "acme"
TEST_API_KEY = "test-api-key-1234567890"
BASE_URL = "https://acme.freshdesk.com/api/v2"


class FakeClock:
    """Manual clock whose sleep advances time instead of waiting."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingTransport:
    """Replays queued responses and records every request made."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.requests: List[httpx.Request] = []
        self.default: Any = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            item = self.responses.pop(0)
        elif self.default is not None:
            item = self.default
        else:
            item = httpx.Response(200, json={})

        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def body(self, index: int = -1) -> Dict[str, Any]:
        content = self.requests[index].content
        return json.loads(content) if content else {}


@pytest.fixture
def clock():
    """Create a fake clock."""
    return FakeClock()


@pytest.fixture
def recorder():
    """Create a recording transport."""
    return RecordingTransport()


@pytest.fixture
def make_adapter(clock, recorder):
    """Factory for adapters wired to the fake clock and transport."""

    def factory(max_requests: int = 50, max_retries: int = 3, **kwargs) -> FreshdeskAdapter:
        limiter = RateLimiter(max_requests=max_requests, clock=clock, sleep=clock.sleep)
        adapter = FreshdeskAdapter(
            domain=TEST_DOMAIN,
            api_key=TEST_API_KEY,
            retry_policy=RetryPolicy(max_retries=max_retries),
            rate_limiter=limiter,
            transport=recorder.transport(),
            sleep=clock.sleep,
            **kwargs,
        )
        return adapter

    return factory
