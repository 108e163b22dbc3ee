"""
Per-IP throttling for the anonymous patient booking surface.

Two limits apply together: a sustained per-minute budget and a short burst
budget over the last few seconds. State is process local, which is enough
for a single API instance behind the load balancer.
"""

import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Sequence, Tuple

from fastapi import Request, Response
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

BURST_WINDOW_SECONDS = 5


def client_address(request: Request) -> str:
    """Caller IP; the first X-Forwarded-For hop wins over the socket peer."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """Sliding-window limiter usable as an HTTP middleware callable."""

    def __init__(
        self,
        requests_per_minute: int = 30,
        burst_size: int = 10,
        window_seconds: int = 60,
        path_prefixes: Sequence[str] = (),
        clock: Callable[[], float] = time.time
    ):
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size
        self.window_seconds = window_seconds
        self.path_prefixes = tuple(path_prefixes)
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def applies_to(self, path: str) -> bool:
        # No prefixes configured means every path is throttled
        return not self.path_prefixes or path.startswith(self.path_prefixes)

    @property
    def tracked_clients(self) -> int:
        return len(self._hits)

    def _prune(self, client: str, now: float) -> Deque[float]:
        """Drop hits outside the window; clients with none left are forgotten."""
        hits = self._hits.get(client)
        if hits is None:
            return deque()
        while hits and hits[0] <= now - self.window_seconds:
            hits.popleft()
        if not hits:
            del self._hits[client]
        return hits

    def _sweep(self, now: float) -> None:
        # Callers that never come back would otherwise stay tracked forever
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        for client in list(self._hits):
            self._prune(client, now)

    def remaining(self, client: str) -> int:
        return max(0, self.requests_per_minute - len(self._hits.get(client, ())))

    def is_allowed(self, request: Request) -> Tuple[bool, Optional[int]]:
        """Record the hit if within both budgets.

        Returns (allowed, seconds until the caller may retry).
        """
        client = client_address(request)
        now = self.clock()
        self._sweep(now)
        hits = self._prune(client, now)

        burst_start = now - BURST_WINDOW_SECONDS
        in_burst = [t for t in hits if t > burst_start]
        if len(in_burst) >= self.burst_size:
            logger.warning(f"Booking burst limit hit by {client} ({len(in_burst)} in {BURST_WINDOW_SECONDS}s)")
            return False, int(in_burst[0] - burst_start) + 1

        if len(hits) >= self.requests_per_minute:
            logger.warning(f"Booking rate limit hit by {client} ({len(hits)} in {self.window_seconds}s)")
            return False, int(hits[0] + self.window_seconds - now) + 1

        hits.append(now)
        self._hits[client] = hits
        return True, None

    def reset(self) -> None:
        self._hits.clear()
        self._last_sweep = self.clock()

    def _headers(self, remaining: int, reset_in: int) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.requests_per_minute),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(int(self.clock()) + reset_in),
        }

    async def __call__(self, request: Request, call_next: Callable) -> Response:
        if not self.applies_to(request.url.path):
            return await call_next(request)

        allowed, retry_after = self.is_allowed(request)
        if not allowed:
            headers = self._headers(0, retry_after)
            headers["Retry-After"] = str(retry_after)
            return JSONResponse(
                status_code=429,
                content={"success": False, "error": "Rate limit exceeded", "retry_after": retry_after},
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(self._headers(self.remaining(client_address(request)), self.window_seconds))
        return response


booking_limiter = RateLimiter(
    requests_per_minute=60,
    burst_size=20,
    path_prefixes=("/api/patient-booking", "/api/booking-sessions"),
)
