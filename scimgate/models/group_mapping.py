"""GroupMapping — links an IdP group to one internal team or role."""

from __future__ import annotations

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from scimgate.models.base import Base, ScopeMixin, TimestampMixin, ULIDPrimaryKeyMixin


class GroupMapping(ULIDPrimaryKeyMixin, ScopeMixin, TimestampMixin, Base):
    __tablename__ = "group_mappings"
    __table_args__ = (
        UniqueConstraint(
            "app_id", "environment_id", "organization_id", "scim_group_id",
            name="uq_group_mappings_scim_group",
        ),
        UniqueConstraint(
            "app_id", "environment_id", "organization_id", "idempotency_key",
            name="uq_group_mappings_idempotency_key",
        ),
        Index("ix_group_mappings_target_id", "target_id"),
    )

    scim_group_id: Mapped[str] = mapped_column(String(255), nullable=False)
    scim_group_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    target_id: Mapped[str] = mapped_column(String(64), nullable=False)
    # "team" | "role"
    target_type: Mapped[str] = mapped_column(String(20), nullable=False, default="team")
    # "app" | "organization" | None (unknown, resolved by fallback)
    target_schema: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # "auto" (created by group sync) | "manual" (created by an admin)
    creation_source: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")
    delete_when_empty: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<GroupMapping {self.scim_group_id!r} -> {self.target_type}:{self.target_id}>"
