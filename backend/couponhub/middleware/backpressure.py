from typing import Awaitable, Callable

import anyio
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from couponhub.core.config import settings
from couponhub.schemas.error import ErrorResponse

HEALTH_PREFIX = "/api/health"


class BackpressureMiddleware(BaseHTTPMiddleware):
    """Answers 429 instead of queueing once ``max_concurrent`` requests are in flight."""

    def __init__(self, app, max_concurrent: int | None = None, exempt_prefix: str = HEALTH_PREFIX):
        super().__init__(app)
        limit = settings.max_concurrent_requests if max_concurrent is None else int(max_concurrent)
        self.limiter = anyio.CapacityLimiter(limit) if limit > 0 else None
        self.exempt_prefix = exempt_prefix

    def _overloaded(self) -> JSONResponse:
        body = ErrorResponse(message="Too many requests", code="too_many_requests")
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=body.model_dump(exclude_none=True),
            headers={"Retry-After": "1"},
        )

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable]):
        if self.limiter is None or request.url.path.startswith(self.exempt_prefix):
            return await call_next(request)
        try:
            self.limiter.acquire_nowait()
        except anyio.WouldBlock:
            return self._overloaded()
        try:
            return await call_next(request)
        finally:
            self.limiter.release()
