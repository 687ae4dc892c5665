"""
Calibration Exceptions.

Centralized error definitions with:
- Error codes for client handling
- HTTP status code mapping
- Failure context (stage, tenant_id, run_id) in ``details``
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Calibration error codes."""

    INTERNAL_ERROR = "internal_error"
    MISSING_FIELD = "missing_field"
    INVALID_SCORE = "invalid_score"
    UPSTREAM_READ_FAILURE = "upstream_read_failure"
    PERSISTENCE_FAILURE = "persistence_failure"
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    INVALID_WEIGHTS = "invalid_weights"


class CalibrationError(Exception):
    """Base exception for the calibration engine."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def with_context(self, **context: Any) -> "CalibrationError":
        """Attach failure context without overwriting what is already known."""
        for key, value in context.items():
            if value is not None:
                self.details.setdefault(key, str(value))
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class MissingFieldError(CalibrationError):
    """A required trigger field is absent. Raised before any work begins."""

    def __init__(self, fields: list[str]):
        super().__init__(
            message=f"Missing required fields: {', '.join(fields)}",
            code=ErrorCode.MISSING_FIELD,
            status_code=400,
            details={"missing_fields": fields},
        )


class InvalidScoreError(CalibrationError):
    """A score outside [0, 100] reached the classifier."""

    def __init__(self, score: Any, kind: str = "score"):
        super().__init__(
            message=f"Invalid {kind}: {score!r} (expected a number in [0, 100])",
            code=ErrorCode.INVALID_SCORE,
            status_code=422,
            details={"score": repr(score), "kind": kind},
        )


class UpstreamReadError(CalibrationError):
    """Fetching validation samples or the active weight vector failed."""

    def __init__(self, source: str, reason: str, **context: Any):
        super().__init__(
            message=f"Failed to read {source}: {reason}",
            code=ErrorCode.UPSTREAM_READ_FAILURE,
            status_code=502,
            details={"source": source},
        )
        self.with_context(**context)


class PersistenceError(CalibrationError):
    """A calibration write failed. Rows already written are left in place."""

    def __init__(self, target: str, reason: str, **context: Any):
        super().__init__(
            message=f"Failed to persist {target}: {reason}",
            code=ErrorCode.PERSISTENCE_FAILURE,
            status_code=500,
            details={"target": target},
        )
        self.with_context(**context)


class NotFoundError(CalibrationError):
    """Resource not found (or not visible to the caller's tenant)."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            code=ErrorCode.NOT_FOUND,
            status_code=404,
            details={"resource": resource, "identifier": identifier},
        )


class InvalidTransitionError(CalibrationError):
    """A suggestion review was attempted from a non-draft status."""

    def __init__(self, suggestion_id: str, current: str, requested: str):
        super().__init__(
            message=f"Suggestion {suggestion_id} is {current}; cannot mark it {requested}",
            code=ErrorCode.INVALID_TRANSITION,
            status_code=409,
            details={"suggestion_id": suggestion_id, "current": current, "requested": requested},
        )


class InvalidWeightsError(CalibrationError):
    """A submitted weight vector is negative or does not sum to 1."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Invalid weight vector: {reason}",
            code=ErrorCode.INVALID_WEIGHTS,
            status_code=422,
            details={"reason": reason},
        )
