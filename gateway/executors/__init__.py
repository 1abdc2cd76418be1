"""Query executors."""

from gateway.executors.base import (
    ExecutionResult,
    Pagination,
    ParameterBinding,
    QueryExecutor,
    TargetDescriptor,
)
from gateway.executors.http import HttpQueryExecutor

__all__ = [
    "ExecutionResult",
    "HttpQueryExecutor",
    "Pagination",
    "ParameterBinding",
    "QueryExecutor",
    "TargetDescriptor",
]
