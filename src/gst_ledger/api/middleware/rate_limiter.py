"""
Report request throttling.
Each client gets a sliding one-minute window of report and export calls.
Webhooks and health checks pass straight through.
"""
import math
import time
from collections import deque
from typing import Deque, Dict, Optional, Sequence, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from gst_ledger.utils.logger import get_logger

DEFAULT_LIMITED_PREFIXES = ("/reports",)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding window limiter for report queries and CSV exports.

    Clients whose window has emptied are dropped, so the table only holds
    clients seen within the last window.
    """

    def __init__(self, app, requests_per_minute: int = 60,
                 limited_prefixes: Sequence[str] = DEFAULT_LIMITED_PREFIXES,
                 window_seconds: int = 60, clock=time.monotonic):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self.limited_prefixes = tuple(limited_prefixes)
        self._clock = clock
        self._windows: Dict[str, Deque[float]] = {}
        self._next_sweep = 0.0

    @staticmethod
    def client_key(request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip
        return request.client.host if request.client else "unknown"

    def _expire(self, window: Deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()

    def sweep(self, now: float) -> None:
        """Drop every client with no calls inside the current window."""
        for key in list(self._windows):
            window = self._windows[key]
            self._expire(window, now)
            if not window:
                del self._windows[key]
        self._next_sweep = now + self.window_seconds

    def admit(self, key: str, now: float) -> Tuple[bool, int, Optional[int]]:
        """
        Record a call for key if the window has room.

        Returns (allowed, remaining, retry_after_seconds).
        """
        if now >= self._next_sweep:
            self.sweep(now)

        window = self._windows.get(key)
        if window is not None:
            self._expire(window, now)

        if window and len(window) >= self.requests_per_minute:
            retry_after = max(1, math.ceil(window[0] + self.window_seconds - now))
            return False, 0, retry_after

        if window is None:
            window = self._windows[key] = deque()
        window.append(now)
        return True, self.requests_per_minute - len(window), None

    @property
    def tracked_clients(self) -> int:
        return len(self._windows)

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.limited_prefixes):
            return await call_next(request)

        key = self.client_key(request)
        allowed, remaining, retry_after = self.admit(key, self._clock())

        if not allowed:
            get_logger().warning(f"Report rate limit hit by {key} on {request.url.path}", component="RateLimit")
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "detail": f"Maximum {self.requests_per_minute} report requests per minute",
                    "retry_after": retry_after,
                },
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(self.requests_per_minute),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
