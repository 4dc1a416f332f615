"""ProvisioningToken — bearer credential an IdP uses to call the SCIM endpoints.

Only the prefix and a bcrypt hash of the secret are stored.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from scimgate.models.base import (
    Base,
    ScopeMixin,
    TimestampMixin,
    ULIDPrimaryKeyMixin,
    UTCDateTime,
)


class ProvisioningToken(ULIDPrimaryKeyMixin, ScopeMixin, TimestampMixin, Base):
    __tablename__ = "provisioning_tokens"
    __table_args__ = (
        Index("ix_provisioning_tokens_scope", "app_id", "environment_id", "organization_id"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Lookup key, unique across active and revoked tokens
    token_prefix: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    token_hash: Mapped[str] = mapped_column(Text, nullable=False)

    # e.g. ["users:read", "users:write", "groups:read", "groups:write"]
    scopes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    rotated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_used_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def is_active(self, now: datetime) -> bool:
        if self.revoked_at is not None:
            return False
        return self.expires_at is None or self.expires_at > now

    def __repr__(self) -> str:
        return f"<ProvisioningToken {self.name!r} prefix={self.token_prefix!r}>"
