"""Activity log model (append-only)."""

from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from gateway.utils.datetime import utcnow


class ActivityType(str, Enum):
    """Lifecycle event types."""

    ENDPOINT_CREATED = "endpoint_created"
    ENDPOINT_UPDATED = "endpoint_updated"
    ENDPOINT_ENABLED = "endpoint_enabled"
    ENDPOINT_DISABLED = "endpoint_disabled"  # suspended because its key was revoked
    ENDPOINT_SUSPENDED = "endpoint_suspended"
    ENDPOINT_DRAFT = "endpoint_draft"
    ENDPOINT_DELETED = "endpoint_deleted"
    ENDPOINT_DELETE_FAILED = "endpoint_delete_failed"
    ENDPOINT_TAGS_UPDATED = "endpoint_tags_updated"
    API_KEY_GENERATED = "api_key_generated"
    API_KEY_USED = "api_key_used"
    API_KEY_REVOKED = "api_key_revoked"
    API_KEY_DELETED = "api_key_deleted"
    TAG_CREATED = "tag_created"
    TAG_UPDATED = "tag_updated"
    TAG_DELETED = "tag_deleted"


class ActivityEvent(SQLModel, table=True):
    """Recorded lifecycle event. Informational, never authoritative."""

    __tablename__ = "activity_events"

    id: str = Field(primary_key=True)
    type: ActivityType = Field(index=True)
    entity_type: str = Field()  # endpoint | api_key | tag
    entity_id: str = Field(index=True)
    entity_name: str | None = Field(default=None)
    actor: str = Field(default="system")
    message: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, index=True)
