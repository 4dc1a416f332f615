"""Host directory team tables addressed by the team adapters.

These tables belong to the host application and are not created by this
project's migrations. They are declared here so the adapters can address
them, and so tests can create them.
"""

from __future__ import annotations

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from scimgate.models.base import Base, TimestampMixin, ULIDPrimaryKeyMixin


class AppTeam(ULIDPrimaryKeyMixin, TimestampMixin, Base):
    """Application-scoped team."""

    __tablename__ = "teams"

    app_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    provisioned_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)


class AppTeamMember(TimestampMixin, Base):
    __tablename__ = "team_members"

    team_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True
    )
    member_id: Mapped[str] = mapped_column(String(26), primary_key=True)
    provisioned_by: Mapped[str | None] = mapped_column(String(50), nullable=True)


class OrganizationTeam(ULIDPrimaryKeyMixin, TimestampMixin, Base):
    """Organization-scoped team."""

    __tablename__ = "organization_teams"

    organization_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    provisioned_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)


class OrganizationTeamMember(TimestampMixin, Base):
    __tablename__ = "organization_team_members"

    team_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("organization_teams.id", ondelete="CASCADE"), primary_key=True
    )
    member_id: Mapped[str] = mapped_column(String(26), primary_key=True)
    provisioned_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
