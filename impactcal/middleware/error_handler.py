"""
Error responses.

Every error body has one shape, whether it comes from the calibration engine
or from an unexpected exception:

{
  "error": {"code": "...", "message": "...", "details": {...}},
  "request_id": "X-Request-ID of the request"
}

Unexpected exceptions carry an error_id in details for correlation with
server logs, and never expose stack traces, SQL or internal paths.
"""

import traceback
import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from impactcal.calibration.errors import CalibrationError, ErrorCode
from impactcal.config import settings

logger = structlog.get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "An internal error occurred. Please try again later."


def error_response(request: Request, status_code: int, error: dict) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "request_id": getattr(request.state, "request_id", None),
        },
    )


async def calibration_error_handler(request: Request, exc: CalibrationError) -> JSONResponse:
    """Exception handler for engine errors; context stays in details."""
    logger.warning(
        "calibration_error",
        code=exc.code.value,
        status_code=exc.status_code,
        error=exc.message,
        details=exc.details,
    )
    return error_response(request, exc.status_code, exc.to_dict())


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Outermost application middleware. Turns any escaped exception into a 500."""

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)

        except Exception as exc:
            error_id = str(uuid.uuid4())

            logger.error(
                "unhandled_exception",
                error_id=error_id,
                path=request.url.path,
                method=request.method,
                run_id=getattr(request.state, "calibration_run_id", None),
                error=str(exc),
                traceback=traceback.format_exc(),
            )

            details: dict = {"error_id": error_id}
            if settings.debug:
                details["exception"] = type(exc).__name__

            return error_response(
                request,
                500,
                {
                    "code": ErrorCode.INTERNAL_ERROR.value,
                    "message": INTERNAL_ERROR_MESSAGE,
                    "details": details,
                },
            )
