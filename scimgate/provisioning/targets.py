"""Team-like targets living in the two internal tenancy schemas.

The host keeps application-scoped teams (``teams`` / ``team_members``) and
organization-scoped teams (``organization_teams`` /
``organization_team_members``). Both are reached through the same adapter
interface; the resolver walks the adapters in a fixed priority order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from scimgate.models.team import AppTeam, AppTeamMember, OrganizationTeam, OrganizationTeamMember
from scimgate.provisioning.scope import Scope

SCHEMA_APP = "app"
SCHEMA_ORGANIZATION = "organization"


@dataclass(frozen=True)
class TargetRef:
    """An internal entity a SCIM group maps to."""

    id: str
    schema: str | None = None
    type: str = "team"


class TeamAdapter(Protocol):
    name: str

    async def exists(self, session: AsyncSession, team_id: str) -> bool: ...

    async def mark_team(
        self,
        session: AsyncSession,
        team_id: str,
        provisioned_by: str | None,
        external_id: str | None,
        now: datetime,
    ) -> int: ...

    async def mark_member(
        self,
        session: AsyncSession,
        team_id: str,
        member_id: str,
        provisioned_by: str | None,
        now: datetime,
    ) -> int: ...

    async def count_members(self, session: AsyncSession, team_id: str) -> int: ...

    async def delete_if_empty(self, session: AsyncSession, team_id: str) -> int: ...


class SqlTeamAdapter:
    """Adapter over one (team table, member table) pair."""

    def __init__(self, name: str, team_model, member_model) -> None:
        self.name = name
        self._team = team_model
        self._member = member_model

    async def exists(self, session: AsyncSession, team_id: str) -> bool:
        result = await session.execute(select(self._team.id).where(self._team.id == team_id))
        return result.scalar_one_or_none() is not None

    async def mark_team(self, session, team_id, provisioned_by, external_id, now) -> int:
        result = await session.execute(
            update(self._team)
            .where(self._team.id == team_id)
            .values(provisioned_by=provisioned_by, external_id=external_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def mark_member(self, session, team_id, member_id, provisioned_by, now) -> int:
        result = await session.execute(
            update(self._member)
            .where(self._member.team_id == team_id, self._member.member_id == member_id)
            .values(provisioned_by=provisioned_by, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def count_members(self, session: AsyncSession, team_id: str) -> int:
        result = await session.execute(
            select(func.count()).select_from(self._member).where(self._member.team_id == team_id)
        )
        return result.scalar_one()

    async def delete_if_empty(self, session: AsyncSession, team_id: str) -> int:
        """Conditional delete; 0 when the team is gone or gained a member meanwhile."""
        has_members = exists().where(self._member.team_id == team_id)
        result = await session.execute(
            delete(self._team)
            .where(self._team.id == team_id, ~has_members)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def __repr__(self) -> str:
        return f"<SqlTeamAdapter {self.name}>"


APP_TEAMS = SqlTeamAdapter(SCHEMA_APP, AppTeam, AppTeamMember)
ORGANIZATION_TEAMS = SqlTeamAdapter(SCHEMA_ORGANIZATION, OrganizationTeam, OrganizationTeamMember)

# Priority order for untagged targets
DEFAULT_ADAPTERS: tuple[TeamAdapter, ...] = (APP_TEAMS, ORGANIZATION_TEAMS)


class TargetFactory(Protocol):
    """Creates the internal entity for an unmapped SCIM group inside *session*."""

    async def __call__(
        self, session: AsyncSession, scope: Scope, external_group_id: str, display_name: str
    ) -> TargetRef: ...


async def create_team_target(
    session: AsyncSession, scope: Scope, external_group_id: str, display_name: str
) -> TargetRef:
    """Default factory: an organization team for org scopes, an app team otherwise."""
    if scope.is_organization:
        team = OrganizationTeam(
            organization_id=scope.organization_id,
            name=display_name,
            provisioned_by="scim",
            external_id=external_group_id,
        )
        schema = SCHEMA_ORGANIZATION
    else:
        team = AppTeam(
            app_id=scope.app_id,
            name=display_name,
            provisioned_by="scim",
            external_id=external_group_id,
        )
        schema = SCHEMA_APP
    session.add(team)
    await session.flush()
    return TargetRef(id=team.id, schema=schema, type="team")
