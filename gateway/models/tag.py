"""Tag data model and endpoint/tag link table."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from gateway.utils.datetime import utcnow

DEFAULT_TAG_COLOR = "#3B82F6"


class Tag(SQLModel, table=True):
    """Named, coloured label attachable to endpoints."""

    __tablename__ = "tags"

    id: str = Field(primary_key=True)
    name: str = Field(index=True)
    # Lower-cased name, unique; names compare case-insensitively
    name_key: str = Field(unique=True, index=True)
    color: str = Field(default=DEFAULT_TAG_COLOR)
    description: str | None = Field(default=None)

    created_by: str = Field(default="anonymous")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class EndpointTagLink(SQLModel, table=True):
    """Many-to-many link between endpoints and tags."""

    __tablename__ = "endpoint_tags"

    endpoint_id: str = Field(foreign_key="endpoints.id", primary_key=True)
    tag_id: str = Field(foreign_key="tags.id", primary_key=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)
