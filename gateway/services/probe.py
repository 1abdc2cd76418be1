"""Probe/test invoker.

Stateless: validates a target descriptor (or a stored endpoint definition),
binds parameters and dispatches to the query executor under a timeout.
Nothing is persisted here.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from gateway.config import ProbeConfig
from gateway.errors import FieldViolation, RequestTimeoutError, ValidationError
from gateway.executors.base import (
    Pagination,
    ParameterBinding,
    QueryExecutor,
    TargetDescriptor,
)
from gateway.models.endpoint import Endpoint, EndpointType

logger = structlog.get_logger()


@dataclass
class ProbeResult:
    """Outcome of a probe."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    duration_ms: float = 0.0


class ProbeService:
    """Runs targets against the executor with validation and a timeout."""

    def __init__(self, executor: QueryExecutor, config: ProbeConfig) -> None:
        self._executor = executor
        self._config = config
        self._log = logger.bind(service="probe")

    async def probe_target(
        self,
        target_type: str | None,
        target: str | None,
        parameters: Sequence[ParameterBinding] = (),
        *,
        limit: int | None = None,
        offset: int | None = None,
    ) -> ProbeResult:
        """Validate and run an ad-hoc target (no endpoint record involved)."""
        violations: list[FieldViolation] = []

        endpoint_type: EndpointType | None = None
        try:
            endpoint_type = EndpointType(target_type)
        except ValueError:
            allowed = ", ".join(t.value for t in EndpointType)
            violations.append(FieldViolation("type", f"type must be one of: {allowed}"))

        if not target or not target.strip():
            violations.append(FieldViolation("target", "target is required"))

        violations.extend(self._check_bindings(parameters))
        pagination = self._pagination(endpoint_type, limit, offset, violations)

        if violations:
            raise ValidationError("Invalid probe request", violations=violations)

        return await self._run(
            TargetDescriptor(type=endpoint_type, target=target),
            list(parameters),
            pagination,
        )

    async def probe_endpoint(
        self,
        endpoint: Endpoint,
        parameters: Sequence[ParameterBinding] = (),
        *,
        limit: int | None = None,
        offset: int | None = None,
        default_limit: int | None = None,
    ) -> ProbeResult:
        """Run a stored endpoint definition with request parameters.

        Bindings are ordered by the endpoint's parameter definitions; unbound
        parameters take their default, and every required parameter left
        without a value is reported.
        """
        violations = self._check_bindings(parameters)
        bindings = self._bind(endpoint, parameters, violations)
        pagination = self._pagination(
            endpoint.type, limit, offset, violations, default_limit=default_limit
        )

        if violations:
            raise ValidationError("Invalid parameters", violations=violations)

        return await self._run(
            TargetDescriptor(type=endpoint.type, target=endpoint.target),
            bindings,
            pagination,
        )

    def _check_bindings(self, parameters: Sequence[ParameterBinding]) -> list[FieldViolation]:
        return [
            FieldViolation(f"parameters[{i}].name", "parameter name is required")
            for i, p in enumerate(parameters)
            if not p.name or not p.name.strip()
        ]

    def _bind(
        self,
        endpoint: Endpoint,
        parameters: Sequence[ParameterBinding],
        violations: list[FieldViolation],
    ) -> list[ParameterBinding]:
        definitions = endpoint.parameter_definitions()
        if not definitions:
            # No declared parameters: pass through in request order
            return list(parameters)

        supplied = {p.name: p.value for p in parameters}
        bindings: list[ParameterBinding] = []
        for definition in definitions:
            if definition.name in supplied and supplied[definition.name] is not None:
                value = supplied[definition.name]
            else:
                value = definition.default
            if value is None and definition.required:
                violations.append(
                    FieldViolation(
                        f"parameters.{definition.name}",
                        f"missing required parameter: {definition.name}",
                    )
                )
            bindings.append(ParameterBinding(name=definition.name, value=value))

        declared = {d.name for d in definitions}
        for name in supplied:
            if name not in declared:
                violations.append(
                    FieldViolation(f"parameters.{name}", f"unknown parameter: {name}")
                )
        return bindings

    def _pagination(
        self,
        endpoint_type: EndpointType | None,
        limit: int | None,
        offset: int | None,
        violations: list[FieldViolation],
        *,
        default_limit: int | None = None,
    ) -> Pagination | None:
        if endpoint_type is not EndpointType.TABLE:
            if limit is not None:
                violations.append(
                    FieldViolation("limit", "limit is only supported for table targets")
                )
            if offset is not None:
                violations.append(
                    FieldViolation("offset", "offset is only supported for table targets")
                )
            return None

        if limit is None:
            limit = default_limit or self._config.default_table_limit
        if offset is None:
            offset = 0

        if not (1 <= limit <= self._config.max_table_limit):
            violations.append(
                FieldViolation(
                    "limit",
                    f"limit must be between 1 and {self._config.max_table_limit}",
                )
            )
        if offset < 0:
            violations.append(FieldViolation("offset", "offset must be >= 0"))
        return Pagination(limit=limit, offset=offset)

    async def _run(
        self,
        target: TargetDescriptor,
        bindings: list[ParameterBinding],
        pagination: Pagination | None,
    ) -> ProbeResult:
        timeout = self._config.timeout_seconds
        started = time.perf_counter()
        self._log.info(
            "probe.start",
            target_type=target.type.value,
            parameters=len(bindings),
            timeout=timeout,
        )

        try:
            result = await asyncio.wait_for(
                self._executor.execute(target, bindings, pagination),
                timeout=timeout,
            )
        except TimeoutError:
            self._log.warning("probe.timeout", target_type=target.type.value, timeout=timeout)
            raise RequestTimeoutError(
                f"Query execution timed out after {timeout:g}s",
                timeout_seconds=timeout,
            )
        except asyncio.CancelledError:
            self._log.info("probe.cancelled", target_type=target.type.value)
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        duration_ms = result.duration_ms if result.duration_ms is not None else elapsed_ms
        self._log.info(
            "probe.done",
            target_type=target.type.value,
            row_count=result.row_count,
            duration_ms=round(duration_ms, 2),
        )
        return ProbeResult(
            rows=result.rows,
            row_count=result.row_count if result.row_count is not None else len(result.rows),
            duration_ms=duration_ms,
        )
