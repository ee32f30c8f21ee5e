"""
HTTP middleware: per-IP rate limits, response security headers, CORS, trusted hosts.
"""
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Iterable, Optional, Tuple

from fastapi import Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.logger import logger


# Endpoints that accept a roll number + password
AUTH_PATHS = ("/api/login", "/api/activate")


class SlidingWindow:
    """Request timestamps per client inside a fixed-length window."""

    def __init__(self, limit: int, seconds: int):
        self.limit = limit
        self.seconds = seconds
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)

    def _trim(self, key: str, now: float) -> Deque[float]:
        hits = self.hits[key]
        while hits and now - hits[0] >= self.seconds:
            hits.popleft()
        return hits

    def would_exceed(self, key: str, now: float) -> bool:
        if not self.limit:
            return False
        return len(self._trim(key, now)) >= self.limit

    def record(self, key: str, now: float):
        if self.limit:
            self.hits[key].append(now)

    def retry_after(self, key: str, now: float) -> int:
        hits = self.hits.get(key)
        if not hits:
            return 1
        return max(1, int(self.seconds - (now - hits[0])) + 1)

    def purge(self, now: float):
        """Forget clients with no hits left in the window."""
        for key in list(self.hits):
            if not self._trim(key, now):
                del self.hits[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP request limits.

    Every request counts against the general minute/hour windows; login and
    activation additionally count against a smaller credentials window, which
    is the only brake on password guessing.
    """

    def __init__(
        self,
        app,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
        auth_requests_per_minute: int = 10,
        auth_paths: Iterable[str] = AUTH_PATHS,
    ):
        """
        Args:
            app: ASGI application
            requests_per_minute: General limit per IP (0 disables)
            requests_per_hour: General limit per IP (0 disables)
            auth_requests_per_minute: Limit per IP on auth_paths (0 disables)
            auth_paths: Paths guarded by the credentials window
        """
        super().__init__(app)
        self.windows = (
            SlidingWindow(requests_per_minute, 60),
            SlidingWindow(requests_per_hour, 3600),
        )
        self.auth_window = SlidingWindow(auth_requests_per_minute, 60)
        self.auth_paths = frozenset(auth_paths)
        self.cleanup_interval = 300
        self.last_cleanup = time.time()

    def _blocking_window(self, client_ip: str, path: str, now: float) -> Optional[Tuple[SlidingWindow, str]]:
        if path in self.auth_paths and self.auth_window.would_exceed(client_ip, now):
            return self.auth_window, "Too many login attempts. Please try again later."
        for window in self.windows:
            if window.would_exceed(client_ip, now):
                return window, "Rate limit exceeded. Please try again later."
        return None

    async def dispatch(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path
        now = time.time()

        if now - self.last_cleanup > self.cleanup_interval:
            for window in (*self.windows, self.auth_window):
                window.purge(now)
            self.last_cleanup = now

        blocked = self._blocking_window(client_ip, path, now)
        if blocked:
            window, message = blocked
            logger.warning(f"Rate limit hit by {client_ip} on {path}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"message": message},
                headers={"Retry-After": str(window.retry_after(client_ip, now))},
            )

        for window in self.windows:
            window.record(client_ip, now)
        if path in self.auth_paths:
            self.auth_window.record(client_ip, now)

        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.url.path.startswith("/api/"):
            # Complaint lists carry student details
            response.headers["Cache-Control"] = "no-store"

        return response


def setup_cors(app, allowed_origins: list[str]):
    """Allow the browser front end to call the API with a bearer token."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )


def setup_trusted_hosts(app, allowed_hosts: list[str]):
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)
