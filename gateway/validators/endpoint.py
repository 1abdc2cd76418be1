"""Endpoint field validation.

Collects every violation instead of stopping at the first one, so a caller
can fix a definition in one round trip. Uniqueness of ``path`` needs the
database and is checked by the registry on top of these rules.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from gateway.errors import FieldViolation
from gateway.models.endpoint import EndpointType, HttpMethod, ParameterType

PATH_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
PARAMETER_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
RATE_LIMIT_MIN = 1
RATE_LIMIT_MAX = 10000

_REQUIRED_FIELDS = ("name", "type", "target")
# Fields that may be omitted but never explicitly cleared
_NON_NULLABLE_FIELDS = ("name", "type", "target", "method", "rate_limit", "parameters")

_TYPES = {t.value for t in EndpointType}
_METHODS = {m.value for m in HttpMethod}
_PARAMETER_TYPES = {t.value for t in ParameterType}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_endpoint_fields(
    values: Mapping[str, Any],
    *,
    partial: bool = False,
) -> list[FieldViolation]:
    """Validate endpoint fields.

    Args:
        values: Field values (snake_case keys). For a partial update only the
            keys present are checked.
        partial: True for patches; required fields may then be absent.

    Returns:
        List of violations, empty when valid.
    """
    violations: list[FieldViolation] = []

    if not partial:
        for field in _REQUIRED_FIELDS:
            if _is_blank(values.get(field)):
                violations.append(FieldViolation(field, f"{field} is required"))
    else:
        for field in _NON_NULLABLE_FIELDS:
            if field in values and values[field] is None:
                violations.append(FieldViolation(field, f"{field} cannot be cleared"))
        for field in _REQUIRED_FIELDS:
            if field in values and isinstance(values[field], str) and not values[field].strip():
                violations.append(FieldViolation(field, f"{field} is required"))

    endpoint_type = values.get("type")
    if endpoint_type is not None and endpoint_type not in _TYPES:
        violations.append(
            FieldViolation("type", f"type must be one of: {', '.join(sorted(_TYPES))}")
        )

    method = values.get("method")
    if method is not None and str(method).upper() not in _METHODS:
        violations.append(
            FieldViolation("method", f"method must be one of: {', '.join(sorted(_METHODS))}")
        )

    rate_limit = values.get("rate_limit")
    if rate_limit is not None and not (RATE_LIMIT_MIN <= rate_limit <= RATE_LIMIT_MAX):
        violations.append(
            FieldViolation(
                "rate_limit",
                f"rate_limit must be between {RATE_LIMIT_MIN} and {RATE_LIMIT_MAX}",
            )
        )

    path = values.get("path")
    if path is not None and not PATH_PATTERN.match(path):
        violations.append(
            FieldViolation(
                "path",
                "path may only contain letters, digits, underscores and hyphens",
            )
        )

    parameters = values.get("parameters")
    if parameters:
        violations.extend(_validate_parameters(parameters))

    return violations


def _validate_parameters(parameters: list[Any]) -> list[FieldViolation]:
    violations: list[FieldViolation] = []
    seen: set[str] = set()

    for index, param in enumerate(parameters):
        data = param if isinstance(param, Mapping) else param.model_dump()
        name = data.get("name") or ""
        field = f"parameters[{index}]"

        if not PARAMETER_NAME_PATTERN.match(name):
            violations.append(
                FieldViolation(f"{field}.name", f"invalid parameter name: {name!r}")
            )
        elif name in seen:
            violations.append(
                FieldViolation(f"{field}.name", f"duplicate parameter name: {name}")
            )
        seen.add(name)

        if data.get("type") not in _PARAMETER_TYPES:
            violations.append(
                FieldViolation(
                    f"{field}.type",
                    f"type must be one of: {', '.join(sorted(_PARAMETER_TYPES))}",
                )
            )

    return violations
