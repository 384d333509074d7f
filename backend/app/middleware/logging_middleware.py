"""
Request Logging Middleware

For every request:
- reuse the caller's X-Request-ID (sanitized) or mint a uuid4
- expose it to all log lines through the request-id contextvar
- log start and completion with timing, level chosen by status code
- record request count/latency metrics
"""
import time
import uuid
import logging
from typing import Callable, Dict, Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging_config import set_request_id, clear_request_id, sanitize_log_value
from app.core.metrics import record_request_metrics

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 64


def _level_for_status(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every HTTP request with timing and a correlation ID.

    The dashboard can send its own X-Request-ID so a label action is
    traceable from the browser through each S3 copy to the database write.
    """

    # Probe and docs paths are timed but not logged
    QUIET_PATHS = frozenset({'/health', '/metrics', '/docs', '/redoc', '/openapi.json'})

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        request_id = sanitize_log_value(incoming)[:MAX_REQUEST_ID_LENGTH] if incoming else str(uuid.uuid4())

        token = set_request_id(request_id)
        request.state.request_id = request_id

        context: Dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else "unknown",
        }
        verbose = context["path"] not in self.QUIET_PATHS
        started = time.perf_counter()

        if verbose:
            logger.info(
                "Request started",
                extra={
                    "event_type": "request_start",
                    "query_params": str(request.query_params) if request.query_params else None,
                    **context,
                }
            )

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            logger.error(
                "Request failed with exception",
                extra={
                    "event_type": "request_error",
                    "response_time_ms": round(elapsed * 1000, 2),
                    "error_type": type(e).__name__,
                    "error_message": sanitize_log_value(str(e)),
                    **context,
                },
                exc_info=True
            )
            record_request_metrics(context["method"], context["path"], 500, elapsed)
            raise
        finally:
            clear_request_id(token)

        elapsed = time.perf_counter() - started
        response.headers[REQUEST_ID_HEADER] = request_id

        if verbose:
            logger.log(
                _level_for_status(response.status_code),
                "Request completed",
                extra={
                    "event_type": "request_complete",
                    "status_code": response.status_code,
                    "response_time_ms": round(elapsed * 1000, 2),
                    "request_id": request_id,
                    **context,
                }
            )

        record_request_metrics(context["method"], context["path"], response.status_code, elapsed)
        return response
