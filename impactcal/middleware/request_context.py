"""
Request Context Middleware.

Adds:
- Unique request_id to every request (for log correlation)
- Request timing (X-Response-Time header)
- Structured request/response logging

The request_id is read from the X-Request-ID header when an upstream proxy
provides one, generated otherwise, echoed back in the response and bound
into the structlog context for every log line of the request.
A calibration run started by the request is echoed as X-Calibration-Run-ID
and added to the completion log line.
"""

import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Adds request_id and timing to every request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"
        run_id = getattr(request.state, "calibration_run_id", None)
        if run_id:
            response.headers["X-Calibration-Run-ID"] = run_id

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "request_completed",
            status=response.status_code,
            elapsed_ms=elapsed_ms,
            run_id=run_id,
        )
        return response
