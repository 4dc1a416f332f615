"""Persistence primitives for provisioning tokens.

Every method works inside the caller's session; transaction boundaries belong
to ``TokenLifecycleManager``.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from scimgate.models.token import ProvisioningToken
from scimgate.provisioning.scope import Pagination, Scope


class TokenStore:
    async def insert(self, session: AsyncSession, token: ProvisioningToken) -> None:
        session.add(token)
        # Surfaces a prefix collision as IntegrityError right here
        await session.flush()

    async def get(
        self, session: AsyncSession, token_id: str, *, for_update: bool = False
    ) -> ProvisioningToken | None:
        query = select(ProvisioningToken).where(ProvisioningToken.id == token_id)
        if for_update:
            query = query.with_for_update()
        return (await session.execute(query)).scalar_one_or_none()

    async def find_by_prefix(self, session: AsyncSession, prefix: str) -> ProvisioningToken | None:
        """Unique-index lookup, active or not; takes no row locks."""
        result = await session.execute(
            select(ProvisioningToken).where(ProvisioningToken.token_prefix == prefix)
        )
        return result.scalar_one_or_none()

    def _scoped(self, query, scope: Scope, now: datetime, include_revoked: bool):
        query = query.where(*scope.matches(ProvisioningToken))
        if not include_revoked:
            query = query.where(
                ProvisioningToken.revoked_at.is_(None),
                or_(ProvisioningToken.expires_at.is_(None), ProvisioningToken.expires_at > now),
            )
        return query

    async def list(
        self,
        session: AsyncSession,
        scope: Scope,
        page: Pagination,
        now: datetime,
        *,
        include_revoked: bool = False,
    ) -> list[ProvisioningToken]:
        query = self._scoped(select(ProvisioningToken), scope, now, include_revoked)
        query = query.order_by(ProvisioningToken.created_at.desc(), ProvisioningToken.id.desc())
        result = await session.execute(query.offset(page.offset).limit(page.limit))
        return list(result.scalars().all())

    async def count(
        self, session: AsyncSession, scope: Scope, now: datetime, *, include_revoked: bool = False
    ) -> int:
        query = self._scoped(
            select(func.count()).select_from(ProvisioningToken), scope, now, include_revoked
        )
        return (await session.execute(query)).scalar_one()

    async def record_usage(self, session: AsyncSession, token_id: str, now: datetime) -> int:
        """Atomic counter bump; leaves ``updated_at`` alone."""
        result = await session.execute(
            update(ProvisioningToken)
            .where(ProvisioningToken.id == token_id)
            .values(
                usage_count=ProvisioningToken.usage_count + 1,
                last_used_at=now,
                updated_at=ProvisioningToken.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
