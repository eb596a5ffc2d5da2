"""
Rate Limiter for the Freshdesk adapter
Fixed-window request budget that suspends callers until quota is available
and adopts the server's own view of the quota from response headers
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

# Values below this are treated as "seconds from now" rather than epoch seconds
_EPOCH_THRESHOLD = 1_000_000_000


def _parse_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(str(value).strip()))
    except ValueError:
        return None


class RateLimiter:
    """
    Client-side approximation of the Freshdesk per-minute API budget.

    State is a remaining-call counter and the timestamp at which the current
    window resets. Every mutation happens between suspension points, so the
    limiter is safe to share between concurrent tasks on one event loop.
    """

    def __init__(
        self,
        max_requests: int = 50,
        window_minutes: int = 1,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_minutes * 60
        self._clock = clock
        self._sleep = sleep

        self._remaining = max_requests
        self._reset_at = clock() + self.window_seconds

        # Number of times a caller had to wait for the window to reset
        self._waits = 0

        logger.info(f"⚡ Rate limiter initialized: {max_requests} req/{window_minutes}min")

    def _roll_window(self, now: float) -> None:
        # A stale window is replaced by one starting now, never by the stale
        # boundary plus some number of widths.
        if now >= self._reset_at:
            self._remaining = self.max_requests
            self._reset_at = now + self.window_seconds

    async def check_limit(self) -> None:
        """
        Take one unit of budget, suspending until the window resets if none is left.
        """
        while True:
            now = self._clock()
            self._roll_window(now)

            if self._remaining > 0:
                self._remaining -= 1
                return

            wait_seconds = max(0.0, self._reset_at - now)
            self._waits += 1
            logger.warning(
                f"🚫 Rate limit reached: 0/{self.max_requests} remaining. Waiting {wait_seconds:.1f}s",
                extra={"event": "quota_wait", "wait_seconds": wait_seconds},
            )
            await self._sleep(wait_seconds)

    def update_from_headers(self, headers: Mapping[str, Any]) -> None:
        """
        Adopt the quota reported by Freshdesk as the new truth

        Args:
            headers: Response headers (any mapping; names are matched case-insensitively)
        """
        if not headers:
            return

        normalized = {str(k).lower(): v for k, v in headers.items()}
        remaining = _parse_int(normalized.get("x-ratelimit-remaining"))
        reset = _parse_int(normalized.get("x-ratelimit-reset"))

        if remaining is None and reset is None:
            return

        if remaining is not None:
            # The configured ceiling stays the upper bound even when the plan allows more
            self._remaining = min(max(0, remaining), self.max_requests)

        if reset is not None:
            self._reset_at = float(reset) if reset >= _EPOCH_THRESHOLD else self._clock() + reset

        total = normalized.get("x-ratelimit-total")
        logger.debug(
            f"📊 Freshdesk quota: {self._remaining} remaining (server total {total})"
        )

    def get_info(self) -> Dict[str, Any]:
        """Snapshot of the current window; never mutates state"""
        now = self._clock()
        if now >= self._reset_at:
            remaining = self.max_requests
            reset_at = now + self.window_seconds
        else:
            remaining = self._remaining
            reset_at = self._reset_at

        return {
            "limit": self.max_requests,
            "remaining": remaining,
            "reset_at": datetime.fromtimestamp(reset_at, tz=timezone.utc),
            "waits": self._waits,
        }

    def get_wait_time(self) -> float:
        """Seconds until a unit of budget is available (0 if available now)"""
        now = self._clock()
        if now >= self._reset_at or self._remaining > 0:
            return 0.0
        return self._reset_at - now

    def reset(self) -> None:
        """Start a fresh window with the full budget"""
        self._remaining = self.max_requests
        self._reset_at = self._clock() + self.window_seconds
        logger.info("🔄 Rate limiter window reset")

    def __str__(self) -> str:
        return f"RateLimiter(max_requests={self.max_requests}, window={self.window_seconds}s)"

    def __repr__(self) -> str:
        return (
            f"RateLimiter(max_requests={self.max_requests}, "
            f"window_seconds={self.window_seconds}, "
            f"remaining={self._remaining})"
        )
