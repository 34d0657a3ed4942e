import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from couponhub.api import api_router
from couponhub.core.config import settings
from couponhub.core.logging_config import configure_logging
from couponhub.core.redis_client import close_redis
from couponhub.core.sentry import init_sentry
from couponhub.core.startup_checks import validate_production_settings
from couponhub.middleware import BackpressureMiddleware, RequestLoggingMiddleware, SecurityHeadersMiddleware
from couponhub.schemas.error import ErrorResponse

logger = logging.getLogger(__name__)

_ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    422: "validation_error",
    429: "too_many_requests",
    500: "internal_error",
    503: "service_unavailable",
}


@asynccontextmanager
async def lifespan(_: FastAPI):
    validate_production_settings()
    yield
    await close_redis()


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    init_sentry()
    tags_metadata = [
        {"name": "coupons", "description": "Public coupon listing and claiming"},
        {"name": "admin", "description": "Admin login and coupon inventory"},
        {"name": "health", "description": "Liveness and readiness probes"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(BackpressureMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(message=exc.detail, code=_ERROR_CODES.get(exc.status_code))
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(payload.model_dump(exclude_none=True)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        payload = ErrorResponse(message="Validation error", code="validation_error", errors=jsonable_encoder(exc.errors()))
        return JSONResponse(status_code=422, content=payload.model_dump())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", extra={"path": request.url.path, "method": request.method})
        payload = ErrorResponse(message="Internal Server Error", code="internal_error")
        return JSONResponse(status_code=500, content=payload.model_dump(exclude_none=True))

    return app


app = get_application()
