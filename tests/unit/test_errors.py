"""Unit tests for error rendering."""

from __future__ import annotations

from gateway.errors import (
    ConflictError,
    ExecutionError,
    FieldViolation,
    NotFoundError,
    PreconditionFailedError,
    RequestTimeoutError,
    ValidationError,
)


class TestGatewayErrors:
    def test_to_dict_with_request_id(self):
        error = NotFoundError("Endpoint not found: ep-1", endpoint_id="ep-1")

        assert error.to_dict("req-1") == {
            "error": {
                "code": "not_found",
                "message": "Endpoint not found: ep-1",
                "details": {"endpoint_id": "ep-1"},
                "request_id": "req-1",
            }
        }

    def test_default_message(self):
        assert ConflictError().message == "Conflict"
        assert "request_id" not in ConflictError().to_dict()["error"]

    def test_validation_error_lists_violations(self):
        error = ValidationError(
            "Invalid endpoint definition",
            violations=[FieldViolation("name", "name is required"), FieldViolation("type", "bad")],
        )

        assert error.status_code == 400
        assert error.details["violations"] == [
            {"field": "name", "message": "name is required"},
            {"field": "type", "message": "bad"},
        ]

    def test_status_codes(self):
        assert PreconditionFailedError().status_code == 409
        assert PreconditionFailedError().code == "precondition_failed"
        assert ExecutionError().status_code == 502
        assert RequestTimeoutError().status_code == 504
        assert isinstance(RequestTimeoutError(), ExecutionError)
