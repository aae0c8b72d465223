"""
Per-IP rate limiting middleware for the proxy endpoints.
Uses an in-memory sliding window; every client IP gets its own budget.
"""
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from utils.logger import get_logger

UNLIMITED_PREFIXES = ("/health", "/docs", "/redoc", "/openapi.json")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window limiter: at most ``requests_per_minute`` per client IP."""

    def __init__(self, app, requests_per_minute: int = 60, window_seconds: int = 60):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)

    def _get_client_ip(self, request: Request) -> str:
        # Cloud Run / reverse proxies put the caller first in X-Forwarded-For
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip
        if request.client:
            return request.client.host
        return "unknown"

    def _prune(self, ip: str, now: float) -> Deque[float]:
        window = self._requests[ip]
        cutoff = now - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()
        return window

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/" or request.url.path.startswith(UNLIMITED_PREFIXES):
            return await call_next(request)

        ip = self._get_client_ip(request)
        now = time.time()
        window = self._prune(ip, now)

        if len(window) >= self.requests_per_minute:
            get_logger().warning(f"Rate limit hit for {ip} on {request.url.path}", component="API")
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "detail": f"Maximum {self.requests_per_minute} requests per minute",
                    "retry_after": self.window_seconds,
                },
                headers={
                    "Retry-After": str(self.window_seconds),
                    "X-RateLimit-Limit": str(self.requests_per_minute),
                    "X-RateLimit-Remaining": "0",
                },
            )

        window.append(now)
        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.requests_per_minute - len(window)))
        return response
