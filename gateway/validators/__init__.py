"""Request validators."""

from gateway.validators.endpoint import (
    PATH_PATTERN,
    RATE_LIMIT_MAX,
    RATE_LIMIT_MIN,
    validate_endpoint_fields,
)

__all__ = [
    "PATH_PATTERN",
    "RATE_LIMIT_MAX",
    "RATE_LIMIT_MIN",
    "validate_endpoint_fields",
]
