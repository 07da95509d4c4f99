"""
In-memory rate limiting for the unauthenticated auth endpoints.

Single-process only. Counters reset on restart.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import UTC, datetime, timedelta

from fastapi import Request

from guardian import config
from guardian.errors import TooManyRequests


class RateLimiter:
    """
    Simple in-memory rate limiter.

    Tracks request timestamps per key (IP plus endpoint) within time windows.
    """

    def __init__(self):
        self._requests: dict[str, list[datetime]] = defaultdict(list)

    def check_rate_limit(self, key: str, max_requests: int, window_minutes: int = 60) -> bool:
        """
        Check if a key has exceeded the rate limit, recording the request if not.

        Args:
            key: Identifier to rate limit
            max_requests: Maximum requests allowed in the window
            window_minutes: Time window in minutes (default 60)

        Returns:
            True if under the limit, False if limit exceeded
        """
        now = datetime.now(UTC)
        cutoff = now - timedelta(minutes=window_minutes)

        self._requests[key] = [ts for ts in self._requests[key] if ts > cutoff]
        if len(self._requests[key]) >= max_requests:
            return False

        self._requests[key].append(now)
        return True

    def cleanup_old_entries(self, max_age_hours: int = 2):
        """Drop entries older than max_age_hours and forget idle keys."""
        cutoff = datetime.now(UTC) - timedelta(hours=max_age_hours)
        for key in list(self._requests.keys()):
            self._requests[key] = [ts for ts in self._requests[key] if ts > cutoff]
            if not self._requests[key]:
                del self._requests[key]

    def reset(self) -> None:
        self._requests.clear()


# Global rate limiter instance
rate_limiter = RateLimiter()


def limit_by_ip(scope: str, window_minutes: int = 15):
    """
    Build a FastAPI dependency limiting one endpoint per client IP.

    Args:
        scope: Name of the endpoint group sharing the budget
        window_minutes: Window length; the budget is LOGIN_RATE_LIMIT_PER_IP

    Raises:
        TooManyRequests: When the IP has used up its budget
    """

    async def dependency(request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        max_requests = config.settings.LOGIN_RATE_LIMIT_PER_IP
        if not rate_limiter.check_rate_limit(f"{scope}:{client_ip}", max_requests, window_minutes):
            raise TooManyRequests(
                f"Too many requests from this IP. Maximum {max_requests} per {window_minutes} minutes.",
                headers={"Retry-After": str(window_minutes * 60)},
            )

    return dependency
