"""ProvisioningLog — one immutable row per provisioning attempt."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from scimgate.models.base import Base, ScopeMixin, ULIDPrimaryKeyMixin, UTCDateTime


class ProvisioningLog(ULIDPrimaryKeyMixin, ScopeMixin, Base):
    __tablename__ = "provisioning_logs"
    __table_args__ = (
        Index("ix_provisioning_logs_scope", "app_id", "environment_id", "organization_id"),
        Index("ix_provisioning_logs_created_at", "created_at"),
        Index("ix_provisioning_logs_operation", "operation"),
    )

    token_id: Mapped[str | None] = mapped_column(String(26), nullable=True)

    # CREATE_USER, UPDATE_USER, DELETE_USER, CREATE_GROUP, ...
    operation: Mapped[str] = mapped_column(String(64), nullable=False)
    # User | Group
    resource_type: Mapped[str] = mapped_column(String(32), nullable=False)
    resource_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    method: Mapped[str] = mapped_column(String(10), nullable=False)
    path: Mapped[str] = mapped_column(String(1024), nullable=False)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<ProvisioningLog {self.operation} {self.status_code} ok={self.success}>"
