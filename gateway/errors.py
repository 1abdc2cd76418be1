"""Gateway error types.

Error codes are stable strings for programmatic handling. Every error maps to
one HTTP status and renders as::

    {"error": {"code": ..., "message": ..., "details": {...}, "request_id": ...}}
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


class GatewayError(Exception):
    """Base error for all gateway exceptions."""

    code: str = "internal_error"
    message: str = "An internal error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        **extra: Any,
    ) -> None:
        self.message = message or self.__class__.message
        self.details = {**(details or {}), **extra}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Render the error as an API response body."""
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }
        if request_id:
            error["request_id"] = request_id
        return {"error": error}


@dataclass
class FieldViolation:
    """A single invalid field in a request."""

    field: str
    message: str


class ValidationError(GatewayError):
    """Request validation error (400).

    Carries every violated field, not just the first one found.
    """

    code = "validation_error"
    message = "Validation error"
    status_code = 400

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        *,
        violations: list[FieldViolation] | None = None,
        **extra: Any,
    ) -> None:
        self.violations = list(violations or [])
        if self.violations:
            extra["violations"] = [asdict(v) for v in self.violations]
        super().__init__(message, details, **extra)

    @classmethod
    def for_field(cls, field: str, message: str) -> ValidationError:
        return cls(message, violations=[FieldViolation(field, message)])


class UnauthorizedError(GatewayError):
    """Authentication required or credential rejected (401)."""

    code = "unauthorized"
    message = "Authentication required"
    status_code = 401


class ForbiddenError(GatewayError):
    """Permission denied (403)."""

    code = "forbidden"
    message = "Permission denied"
    status_code = 403


class NotFoundError(GatewayError):
    """Resource not found (404)."""

    code = "not_found"
    message = "Resource not found"
    status_code = 404


class MethodNotAllowedError(GatewayError):
    """HTTP method does not match the endpoint definition (405)."""

    code = "method_not_allowed"
    message = "Method not allowed"
    status_code = 405


class ConflictError(GatewayError):
    """State conflict, e.g. a live key already exists (409)."""

    code = "conflict"
    message = "Conflict"
    status_code = 409


class PreconditionFailedError(GatewayError):
    """Operation not allowed in the current state (409)."""

    code = "precondition_failed"
    message = "Precondition failed"
    status_code = 409


class ExecutionError(GatewayError):
    """Query executor reported a failure (502)."""

    code = "execution_error"
    message = "Query execution failed"
    status_code = 502


class RequestTimeoutError(ExecutionError):
    """Query executor did not answer in time (504)."""

    code = "timeout"
    message = "Query execution timed out"
    status_code = 504
