from couponhub.middleware.backpressure import BackpressureMiddleware
from couponhub.middleware.request_log import RequestLoggingMiddleware
from couponhub.middleware.security import SecurityHeadersMiddleware

__all__ = [
    "BackpressureMiddleware",
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
]
