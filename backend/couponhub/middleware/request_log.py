import logging
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from couponhub.core.logging_config import request_id_ctx_var

logger = logging.getLogger("couponhub.request")

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_INBOUND_ID = 128


def _request_id(request: Request) -> str:
    inbound = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if inbound and len(inbound) <= _MAX_INBOUND_ID:
        return inbound
    return uuid.uuid4().hex


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id (echoing a caller-supplied one) and logs its outcome."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = _request_id(request)
        request.state.request_id = request_id
        token = request_id_ctx_var.set(request_id)
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            level = logging.WARNING if status_code >= 500 else logging.INFO
            logger.log(
                level,
                "request",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": int((time.perf_counter() - started) * 1000),
                },
            )
            request_id_ctx_var.reset(token)
