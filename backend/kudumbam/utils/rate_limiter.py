"""
Kudumbam — Rate Limiter Middleware
Per-IP sliding window kept in memory.
"""

import time
from collections import defaultdict
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from kudumbam.utils.logger import logger


class RateLimiter(BaseHTTPMiddleware):
    """
    Simple in-memory rate limiter.
    Default: 120 requests per minute per IP.
    """

    def __init__(self, app, requests_per_minute: int = 120):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.window = 60  # seconds
        self._store: dict[str, list[float]] = defaultdict(list)

    async def dispatch(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "unknown"
        now = time.time()

        # Clean old entries
        self._store[client_ip] = [
            t for t in self._store[client_ip] if now - t < self.window
        ]

        if len(self._store[client_ip]) >= self.requests_per_minute:
            logger.warning(f"🐢 Rate limit hit for {client_ip} on {request.url.path}")
            return JSONResponse(
                status_code=429,
                content={"success": False, "error": "Too many requests. Please wait a minute and try again."},
            )

        self._store[client_ip].append(now)
        return await call_next(request)
