"""API key data model.

Stores hashed per-endpoint API keys. Plaintext keys are never stored, only
SHA-256 hashes plus a short prefix for identification.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, Index, text
from sqlmodel import Field, SQLModel

from gateway.utils.datetime import utcnow


class ApiKey(SQLModel, table=True):
    """Credential gating invocation of a single endpoint.

    Lifecycle: active -> revoked (is_active=False) -> deleted (is_deleted=True).
    Deleted keys are kept as tombstones and never returned by reads.
    """

    __tablename__ = "api_keys"
    __table_args__ = (
        CheckConstraint(
            "NOT (is_deleted AND is_active)",
            name="ck_api_keys_deleted_inactive",
        ),
        # At most one live key per endpoint
        Index(
            "uq_api_keys_live_endpoint",
            "endpoint_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: str = Field(primary_key=True)
    endpoint_id: str = Field(index=True)
    key_hash: str = Field(index=True)  # SHA-256 hex digest
    key_prefix: str = Field()  # First 12 chars of plaintext (e.g. "sk-gw-1a2b3c")

    is_active: bool = Field(default=True)
    is_deleted: bool = Field(default=False)

    usage_count: int = Field(default=0)
    last_used_at: datetime | None = Field(default=None)

    created_by: str = Field(default="anonymous")
    created_at: datetime = Field(default_factory=utcnow)
    revoked_at: datetime | None = Field(default=None)
    deleted_at: datetime | None = Field(default=None)
