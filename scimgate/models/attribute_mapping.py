"""AttributeMapping — per-scope SCIM attribute paths.

A NULL column means "inherit from the parent scope".
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from scimgate.models.base import Base, ScopeMixin, TimestampMixin, ULIDPrimaryKeyMixin

MAPPED_FIELDS = (
    "username_field",
    "email_field",
    "given_name_field",
    "family_name_field",
    "display_name_field",
    "active_field",
    "employee_number_field",
    "department_field",
    "manager_field",
)


class AttributeMapping(ULIDPrimaryKeyMixin, ScopeMixin, TimestampMixin, Base):
    __tablename__ = "attribute_mappings"
    __table_args__ = (
        UniqueConstraint(
            "app_id", "environment_id", "organization_id", name="uq_attribute_mappings_scope"
        ),
    )

    username_field: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email_field: Mapped[str | None] = mapped_column(String(255), nullable=True)
    given_name_field: Mapped[str | None] = mapped_column(String(255), nullable=True)
    family_name_field: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name_field: Mapped[str | None] = mapped_column(String(255), nullable=True)
    active_field: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Enterprise extension
    employee_number_field: Mapped[str | None] = mapped_column(String(255), nullable=True)
    department_field: Mapped[str | None] = mapped_column(String(255), nullable=True)
    manager_field: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Extra SCIM attribute -> internal field pairs
    custom: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def fields(self) -> dict[str, str | None]:
        return {name: getattr(self, name) for name in MAPPED_FIELDS}

    def __repr__(self) -> str:
        return f"<AttributeMapping app={self.app_id!r} org={self.organization_id!r}>"
