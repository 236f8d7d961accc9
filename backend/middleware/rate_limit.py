"""
In-memory rate limiting for write-heavy endpoints (order creation, uploads).

Sliding window of request timestamps per (client IP, route) key.
State lives in the process; multi-instance deployments should put a shared
limiter in front of the service instead.
"""
import time
import logging
from collections import defaultdict, deque

from fastapi import Request

from domain.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window rate limiter.

    Each key keeps a deque of request timestamps, oldest first.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._requests: dict[str, deque] = defaultdict(deque)

    def _expire(self, key: str, window_seconds: int) -> deque:
        hits = self._requests[key]
        cutoff = self._clock() - window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        return hits

    def check(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """
        Record a request for `key` if it fits in the window.

        Returns:
            True if allowed, False if rate-limited
        """
        hits = self._expire(key, window_seconds)
        if len(hits) >= max_requests:
            return False
        hits.append(self._clock())
        return True

    def remaining(self, key: str, max_requests: int, window_seconds: int) -> int:
        hits = self._expire(key, window_seconds)
        return max(0, max_requests - len(hits))

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._requests.clear()
        else:
            self._requests.pop(key, None)


# Global rate limiter instance
_limiter = RateLimiter()


def get_limiter() -> RateLimiter:
    return _limiter


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    FastAPI dependency factory for rate limiting.

    Usage:
        @router.post("/orders", dependencies=[Depends(rate_limit(30, 60))])
        async def create_order(...):
            ...
    """
    async def _check_rate_limit(request: Request):
        client_ip = request.client.host if request.client else "unknown"
        route_path = request.url.path
        key = f"{client_ip}:{route_path}"

        if not _limiter.check(key, max_requests, window_seconds):
            logger.warning(
                f"Rate limit exceeded: {client_ip} on {route_path} "
                f"({max_requests}/{window_seconds}s)"
            )
            raise RateLimitError(
                f"Rate limit exceeded. Maximum {max_requests} requests "
                f"per {window_seconds} seconds. Try again later.",
                headers={
                    "Retry-After": str(window_seconds),
                    "X-RateLimit-Limit": str(max_requests),
                    "X-RateLimit-Remaining": "0",
                },
            )

    return _check_rate_limit
