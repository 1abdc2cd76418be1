"""Query executor interface.

The executor is the opaque component that actually runs a target (SQL text,
stored procedure, function or table scan) against the data warehouse. The
gateway only hands it a descriptor plus bound parameters.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from gateway.models.endpoint import EndpointType


@dataclass(frozen=True)
class TargetDescriptor:
    """What to execute."""

    type: EndpointType
    target: str


@dataclass(frozen=True)
class ParameterBinding:
    """A named value bound positionally, in list order."""

    name: str
    value: Any = None


@dataclass(frozen=True)
class Pagination:
    """Row window for table targets."""

    limit: int
    offset: int = 0


@dataclass
class ExecutionResult:
    """Rows returned by the executor."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int | None = None
    duration_ms: float | None = None

    def __post_init__(self) -> None:
        if self.row_count is None:
            self.row_count = len(self.rows)


class QueryExecutor(ABC):
    """Abstract query executor.

    Implementations raise ExecutionError (or RequestTimeoutError) for backend
    failures and must be safe to cancel.
    """

    @abstractmethod
    async def execute(
        self,
        target: TargetDescriptor,
        parameters: list[ParameterBinding],
        pagination: Pagination | None = None,
    ) -> ExecutionResult:
        """Run a target and return its rows."""
        ...
