# File: app/middleware/rate_limit.py | Version: 2.0 | Title: Lightweight in-memory rate limiting middleware
import os
import time
from collections import deque
from typing import Deque, Dict, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

DEFAULT_LIMITED_PATHS = ("/auth/login", "/auth/token", "/query", "/search", "/upload")


def _boolenv(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "y", "on"}


def _paths_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return tuple(p.strip() for p in val.split(",") if p.strip())


class MemoryRateLimiter(BaseHTTPMiddleware):
    """
    Sliding-window limiter (per-IP per-path) for the expensive/auth endpoints.
    Off by default; enable via RATE_LIMIT_ENABLED=true.

    Env:
      RATE_LIMIT_WINDOW_SECONDS (default 60)
      RATE_LIMIT_MAX_REQUESTS    (default 120)
      RATE_LIMIT_PATHS           (comma-separated prefixes; default login/token/query/search/upload)
    """

    def __init__(self, app):
        super().__init__(app)
        self.enabled = _boolenv("RATE_LIMIT_ENABLED", False)
        self.window = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
        self.max_req = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "120"))
        self.paths = _paths_env("RATE_LIMIT_PATHS", DEFAULT_LIMITED_PATHS)
        self._buckets: Dict[Tuple[str, str], Deque[float]] = {}

    def _limited(self, path: str) -> bool:
        return any(path == p or path.startswith(p.rstrip("/") + "/") for p in self.paths)

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or not self._limited(request.url.path):
            return await call_next(request)

        client_ip = request.headers.get("x-forwarded-for") or (
            request.client.host if request.client else "unknown"
        )
        key = (client_ip, request.url.path)
        now = time.time()
        window_start = now - self.window

        bucket = self._buckets.setdefault(key, deque())
        # purge old
        while bucket and bucket[0] < window_start:
            bucket.popleft()

        if len(bucket) >= self.max_req:
            retry_after = max(1, int(bucket[0] + self.window - now))
            return JSONResponse(
                {"detail": "Too Many Requests"},
                status_code=429,
                headers={"Retry-After": str(retry_after)},
            )

        bucket.append(now)
        return await call_next(request)
