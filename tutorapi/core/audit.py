"""
Audit Middleware - Request/response logging for monitoring.

Every handler invocation is logged with method, path, status, duration,
client address and the caller's user id when the auth dependency set it.
"""
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from tutorapi.core.logging_config import get_logger

logger = get_logger(__name__)

QUIET_PATHS = ("/health", "/health/ready")


class AuditMiddleware(BaseHTTPMiddleware):
    """Logs one line per request and adds an X-Response-Time header."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                f"REQUEST FAILED: {method} {path} "
                f"client={client_ip} duration={duration:.3f}s error={e}"
            )
            raise

        duration = time.time() - start_time
        user_id = getattr(request.state, "user_id", None) or "-"

        if path in QUIET_PATHS:
            logger.debug(f"HEALTH: {path} status={response.status_code} duration={duration:.3f}s")
        else:
            if response.status_code >= 500:
                log_fn = logger.error
            elif response.status_code >= 400:
                log_fn = logger.warning
            else:
                log_fn = logger.info

            log_fn(
                f"REQUEST: {method} {path} "
                f"status={response.status_code} duration={duration:.3f}s "
                f"client={client_ip} user={user_id[:8]}"
            )

        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds the standard hardening headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response
