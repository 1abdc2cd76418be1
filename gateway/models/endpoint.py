"""Endpoint data model.

An endpoint exposes one backing target (query, stored procedure, function or
table) behind an HTTP method and an optional custom path segment.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, field_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from gateway.utils.datetime import utcnow


class EndpointType(str, Enum):
    """Kind of backing target."""

    QUERY = "query"
    STORED_PROCEDURE = "stored_procedure"
    FUNCTION = "function"
    TABLE = "table"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class EndpointStatus(str, Enum):
    """Endpoint lifecycle states."""

    DRAFT = "draft"  # initial, not invocable
    ACTIVE = "active"  # invocable; requires a live API key
    SUSPENDED = "suspended"  # temporarily not invocable


class ParameterType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"


def _blank_to_none(value: str | None) -> str | None:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ParameterDefinition(BaseModel):
    """Declared input of an endpoint, bound positionally in declaration order."""

    name: str
    type: str = ParameterType.STRING.value
    required: bool = False
    default: Any = None
    description: str | None = None


class Endpoint(SQLModel, table=True):
    """Externally exposed data-access endpoint."""

    __tablename__ = "endpoints"

    id: str = Field(primary_key=True)
    name: str = Field(index=True)
    description: str | None = Field(default=None)

    type: EndpointType = Field()
    target: str = Field()
    method: HttpMethod = Field(default=HttpMethod.GET)

    # Custom URL segment; when absent the id is used
    path: str | None = Field(default=None, unique=True, index=True)
    rate_limit: int = Field(default=100)  # requests per minute

    # Format: [{name, type, required, default, description}, ...]
    parameters: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )

    status: EndpointStatus = Field(default=EndpointStatus.DRAFT, index=True)

    created_by: str = Field(default="anonymous")
    updated_by: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def public_path(self) -> str:
        return self.path or self.id

    def parameter_definitions(self) -> list[ParameterDefinition]:
        return [ParameterDefinition.model_validate(p) for p in self.parameters or []]


class EndpointSpec(BaseModel):
    """Fields accepted when creating an endpoint.

    Types are loose on purpose so that the registry can report every invalid
    field at once instead of failing on the first one.
    """

    name: str | None = None
    type: str | None = None
    target: str | None = None
    method: str | None = HttpMethod.GET.value
    path: str | None = None
    description: str | None = None
    rate_limit: int | None = None
    parameters: list[ParameterDefinition] = []

    @field_validator("path")
    @classmethod
    def blank_path_to_none(cls, value: str | None) -> str | None:
        return _blank_to_none(value)


class EndpointPatch(BaseModel):
    """Partial update. Only fields explicitly set are applied.

    ``status`` is routed through the status state machine.
    """

    name: str | None = None
    type: str | None = None
    target: str | None = None
    method: str | None = None
    path: str | None = None
    description: str | None = None
    rate_limit: int | None = None
    parameters: list[ParameterDefinition] | None = None
    status: str | None = None

    @field_validator("path")
    @classmethod
    def blank_path_to_none(cls, value: str | None) -> str | None:
        return _blank_to_none(value)

    def changes(self) -> dict[str, Any]:
        """Fields explicitly present in the patch, status excluded."""
        data = {name: getattr(self, name) for name in self.model_fields_set if name != "status"}
        if data.get("parameters") is not None:
            data["parameters"] = [p.model_dump() for p in data["parameters"]]
        return data
