"""
Request correlation and access logging.

Mobile clients and the operator tooling may send their own X-Request-ID;
it is reused when it looks like an id, otherwise a UUID is generated. The
id is bound to the logging context for the lifetime of the request and
echoed on the response.
"""
import logging
import re
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from coursepush.core.logging_config import set_request_id, clear_request_id
from coursepush.core.metrics import record_request_metrics

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Client-supplied ids end up in headers and log lines
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_request_id(header_value: str) -> str:
    """Reuse a well-formed client request id, or mint a new one."""
    if header_value and _REQUEST_ID_PATTERN.match(header_value):
        return header_value
    return str(uuid.uuid4())


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Binds a request id, logs one access line per request and records HTTP metrics."""

    # Scraped or polled endpoints are counted but not logged
    QUIET_PATHS = frozenset({"/health", "/metrics", "/docs", "/redoc", "/openapi.json"})

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER, ""))
        context_token = set_request_id(request_id)
        request.state.request_id = request_id

        path = request.url.path
        started = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        except Exception as e:
            logger.error(
                "Unhandled error while serving request",
                extra={"method": request.method, "path": path, "error_type": type(e).__name__},
                exc_info=True
            )
            raise
        finally:
            elapsed = time.perf_counter() - started
            record_request_metrics(request.method, path, status_code, elapsed)
            if path not in self.QUIET_PATHS:
                logger.log(
                    _level_for(status_code),
                    f"{request.method} {path} {status_code}",
                    extra={
                        "event_type": "access",
                        "method": request.method,
                        "path": path,
                        "status_code": status_code,
                        "response_time_ms": round(elapsed * 1000, 2),
                        "client_ip": request.client.host if request.client else "unknown",
                    }
                )
            clear_request_id(context_token)
