"""Attribute and group mapping resolution.

Attribute mappings inherit along ``organization → (app, env) → built-in
defaults``. Group mappings tie an IdP group id to one team living in either
internal tenancy schema (see ``scimgate.provisioning.targets``).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scimgate.core.clock import Clock, IdFactory, generate_ulid
from scimgate.core.config import AttributeDefaults, GroupSyncConfig
from scimgate.core.database import transaction
from scimgate.core.errors import (
    ConflictError,
    MappingNotFound,
    TargetNotFound,
    ValidationError,
)
from scimgate.core.logging import get_logger
from scimgate.models.attribute_mapping import MAPPED_FIELDS, AttributeMapping
from scimgate.models.group_mapping import GroupMapping
from scimgate.models.base import NO_ORGANIZATION
from scimgate.provisioning.scope import Scope
from scimgate.provisioning.targets import (
    DEFAULT_ADAPTERS,
    TargetFactory,
    TargetRef,
    TeamAdapter,
    create_team_target,
)

logger = get_logger(__name__)

TARGET_TYPES = ("team", "role")


@dataclass(frozen=True)
class EffectiveAttributeMapping:
    scope: Scope
    values: dict[str, str]
    # field -> True when this scope's own row shadows the inherited value
    overridden: dict[str, bool]
    custom: dict[str, str] = field(default_factory=dict)
    custom_overridden: dict[str, bool] = field(default_factory=dict)

    def is_overridden(self, name: str) -> bool:
        return self.overridden.get(name, self.custom_overridden.get(name, False))


def _layer(
    parent_values: dict[str, str],
    parent_custom: dict[str, str],
    row: AttributeMapping | None,
) -> tuple[dict[str, str], dict[str, bool], dict[str, str], dict[str, bool]]:
    values = dict(parent_values)
    overridden = dict.fromkeys(MAPPED_FIELDS, False)
    custom = dict(parent_custom)
    custom_overridden = dict.fromkeys(parent_custom, False)
    if row is None:
        return values, overridden, custom, custom_overridden

    for name, value in row.fields().items():
        if value is None:
            continue
        overridden[name] = value != parent_values[name]
        values[name] = value
    for key, value in (row.custom or {}).items():
        custom_overridden[key] = parent_custom.get(key) != value
        custom[key] = value
    return values, overridden, custom, custom_overridden


class MappingResolver:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Clock,
        defaults: AttributeDefaults | None = None,
        group_sync: GroupSyncConfig | None = None,
        adapters: Sequence[TeamAdapter] = DEFAULT_ADAPTERS,
        target_factory: TargetFactory | None = create_team_target,
        id_factory: IdFactory = generate_ulid,
    ) -> None:
        self._sessions = session_factory
        self._clock = clock
        self._defaults = (defaults or AttributeDefaults()).model_dump()
        self._group_sync = group_sync or GroupSyncConfig()
        self._adapters = tuple(adapters)
        self._target_factory = target_factory
        self._new_id = id_factory

    # ── Attribute mappings ──────────────────────────────────────────────────

    async def _attribute_rows(
        self, session: AsyncSession, scope: Scope
    ) -> tuple[AttributeMapping | None, AttributeMapping | None]:
        """(application row, organization row) for *scope*."""
        org_keys = {NO_ORGANIZATION, scope.org_key}
        result = await session.execute(
            select(AttributeMapping).where(
                AttributeMapping.app_id == scope.app_id,
                AttributeMapping.environment_id == scope.environment_id,
                AttributeMapping.organization_id.in_(org_keys),
            )
        )
        app_row = org_row = None
        for row in result.scalars():
            if row.organization_id == NO_ORGANIZATION:
                app_row = row
            else:
                org_row = row
        return app_row, org_row

    async def get_effective(self, scope: Scope) -> EffectiveAttributeMapping:
        """Resolve every mapped field for *scope*; read-only."""
        async with transaction(self._sessions) as session:
            app_row, org_row = await self._attribute_rows(session, scope)

        values, overridden, custom, custom_overridden = _layer(self._defaults, {}, app_row)
        if scope.is_organization:
            values, overridden, custom, custom_overridden = _layer(values, custom, org_row)
        return EffectiveAttributeMapping(
            scope=scope,
            values=values,
            overridden=overridden,
            custom=custom,
            custom_overridden=custom_overridden,
        )

    async def set_overrides(
        self,
        scope: Scope,
        fields: Mapping[str, str | None],
        *,
        custom: Mapping[str, str] | None = None,
    ) -> EffectiveAttributeMapping:
        """Upsert this scope's row. ``None`` clears a field back to inherited."""
        unknown = sorted(set(fields) - set(MAPPED_FIELDS))
        if unknown:
            raise ValidationError(f"unknown mapping fields: {unknown}", unknown=unknown)
        blank = sorted(k for k, v in fields.items() if v is not None and not v.strip())
        if blank:
            raise ValidationError(f"mapping fields cannot be blank: {blank}", blank=blank)

        for attempt in (1, 2):
            try:
                async with transaction(self._sessions) as session:
                    now = self._clock.now()
                    result = await session.execute(
                        select(AttributeMapping)
                        .where(*scope.matches(AttributeMapping))
                        .with_for_update()
                    )
                    row = result.scalar_one_or_none()
                    if row is None:
                        row = AttributeMapping(
                            id=self._new_id(), **scope.as_columns(), custom={}, created_at=now
                        )
                        session.add(row)
                    for name, value in fields.items():
                        setattr(row, name, value.strip() if value is not None else None)
                    if custom is not None:
                        row.custom = dict(custom)
                    row.updated_at = now
                break
            except IntegrityError:
                # Another writer created the row first; update it on the second pass
                if attempt == 2:
                    raise ConflictError("attribute mapping was modified concurrently")

        logger.info("Attribute mapping updated", scope=str(scope), fields=sorted(fields))
        return await self.get_effective(scope)

    async def reset_overrides(self, scope: Scope) -> bool:
        """Drop this scope's row so every field inherits again."""
        async with transaction(self._sessions) as session:
            result = await session.execute(
                delete(AttributeMapping).where(*scope.matches(AttributeMapping))
            )
        return result.rowcount > 0

    # ── Group mappings ──────────────────────────────────────────────────────

    async def _find_group(
        self, session: AsyncSession, scope: Scope, scim_group_id: str
    ) -> GroupMapping | None:
        result = await session.execute(
            select(GroupMapping).where(
                *scope.matches(GroupMapping), GroupMapping.scim_group_id == scim_group_id
            )
        )
        return result.scalar_one_or_none()

    async def _find_by_key(
        self, session: AsyncSession, scope: Scope, idempotency_key: str
    ) -> GroupMapping | None:
        result = await session.execute(
            select(GroupMapping).where(
                *scope.matches(GroupMapping), GroupMapping.idempotency_key == idempotency_key
            )
        )
        return result.scalar_one_or_none()

    async def _existing(
        self,
        session: AsyncSession,
        scope: Scope,
        external_group_id: str,
        idempotency_key: str | None,
    ) -> GroupMapping | None:
        mapping = await self._find_group(session, scope, external_group_id)
        if mapping is not None or not idempotency_key:
            return mapping
        mapping = await self._find_by_key(session, scope, idempotency_key)
        if mapping is not None and mapping.scim_group_id != external_group_id:
            raise ConflictError(
                "idempotency key already used for another group",
                idempotency_key=idempotency_key,
                scim_group_id=mapping.scim_group_id,
            )
        return mapping

    async def resolve_target(
        self,
        scope: Scope,
        external_group_id: str,
        *,
        create_target: TargetFactory | None = None,
        create_missing: bool | None = None,
        idempotency_key: str | None = None,
        display_name: str | None = None,
        target_type: str = "team",
    ) -> GroupMapping:
        """Return the mapping for *external_group_id*, creating target and mapping if allowed.

        The target is created by *create_target* inside the same transaction and
        the mapping row is written last, so a failure anywhere leaves neither.
        """
        if not external_group_id:
            raise ValidationError("external group id is required")
        if create_missing is None:
            create_missing = self._group_sync.enabled and self._group_sync.create_missing_groups

        try:
            async with transaction(self._sessions) as session:
                mapping = await self._existing(session, scope, external_group_id, idempotency_key)
                if mapping is not None:
                    return mapping
                if not create_missing:
                    raise MappingNotFound(
                        "no group mapping", scope=scope, scim_group_id=external_group_id
                    )
                factory = create_target or self._target_factory
                if factory is None:
                    raise ValidationError("no target factory configured")

                name = display_name or external_group_id
                target = await factory(session, scope, external_group_id, name)
                mapping = GroupMapping(
                    id=self._new_id(),
                    **scope.as_columns(),
                    scim_group_id=external_group_id,
                    scim_group_name=name,
                    target_id=target.id,
                    target_type=target.type or target_type,
                    target_schema=target.schema,
                    creation_source="auto",
                    delete_when_empty=self._group_sync.delete_empty_groups,
                    idempotency_key=idempotency_key,
                    created_at=self._clock.now(),
                    updated_at=self._clock.now(),
                )
                session.add(mapping)
                await session.flush()
        except IntegrityError:
            # A concurrent caller won; our target was rolled back with the transaction
            async with transaction(self._sessions) as session:
                mapping = await self._existing(session, scope, external_group_id, idempotency_key)
            if mapping is None:
                raise ConflictError("group mapping creation conflicted", scim_group_id=external_group_id)
            logger.info("Group mapping created concurrently", scim_group_id=external_group_id)
            return mapping

        logger.info(
            "Group mapping created",
            scope=str(scope),
            scim_group_id=external_group_id,
            target_id=mapping.target_id,
            target_schema=mapping.target_schema,
        )
        return mapping

    async def create_mapping(
        self,
        scope: Scope,
        scim_group_id: str,
        target: TargetRef,
        *,
        scim_group_name: str = "",
        delete_when_empty: bool = False,
    ) -> GroupMapping:
        """Manually map an IdP group onto an existing target."""
        if not scim_group_id:
            raise ValidationError("scim group id is required")
        if target.type not in TARGET_TYPES:
            raise ValidationError(f"target type must be one of {TARGET_TYPES}")
        now = self._clock.now()
        mapping = GroupMapping(
            id=self._new_id(),
            **scope.as_columns(),
            scim_group_id=scim_group_id,
            scim_group_name=scim_group_name or scim_group_id,
            target_id=target.id,
            target_type=target.type,
            target_schema=target.schema,
            creation_source="manual",
            delete_when_empty=delete_when_empty,
            created_at=now,
            updated_at=now,
        )
        try:
            async with transaction(self._sessions) as session:
                session.add(mapping)
                await session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "group is already mapped in this scope", scim_group_id=scim_group_id
            ) from exc
        logger.info("Group mapping created", scim_group_id=scim_group_id, target_id=target.id)
        return mapping

    async def get_mapping(self, mapping_id: str) -> GroupMapping:
        async with transaction(self._sessions) as session:
            mapping = await session.get(GroupMapping, mapping_id)
        if mapping is None:
            raise MappingNotFound("group mapping not found", mapping_id=mapping_id)
        return mapping

    async def list_mappings(self, scope: Scope) -> list[GroupMapping]:
        async with transaction(self._sessions) as session:
            result = await session.execute(
                select(GroupMapping)
                .where(*scope.matches(GroupMapping))
                .order_by(GroupMapping.created_at.desc(), GroupMapping.id.desc())
            )
            return list(result.scalars().all())

    async def find_by_target(self, target_id: str) -> list[GroupMapping]:
        async with transaction(self._sessions) as session:
            result = await session.execute(
                select(GroupMapping).where(GroupMapping.target_id == target_id)
            )
            return list(result.scalars().all())

    async def update_mapping(self, mapping_id: str, **changes: Any) -> GroupMapping:
        allowed = {"scim_group_name", "delete_when_empty", "target_id", "target_type", "target_schema"}
        unknown = sorted(set(changes) - allowed)
        if unknown:
            raise ValidationError(f"cannot update fields: {unknown}")
        if "target_type" in changes and changes["target_type"] not in TARGET_TYPES:
            raise ValidationError(f"target type must be one of {TARGET_TYPES}")
        async with transaction(self._sessions) as session:
            mapping = await session.get(GroupMapping, mapping_id, with_for_update=True)
            if mapping is None:
                raise MappingNotFound("group mapping not found", mapping_id=mapping_id)
            for name, value in changes.items():
                setattr(mapping, name, value)
            mapping.updated_at = self._clock.now()
        return mapping

    async def delete_mapping(self, mapping_id: str) -> None:
        async with transaction(self._sessions) as session:
            result = await session.execute(delete(GroupMapping).where(GroupMapping.id == mapping_id))
            if result.rowcount == 0:
                raise MappingNotFound("group mapping not found", mapping_id=mapping_id)
        logger.info("Group mapping deleted", mapping_id=mapping_id)

    # ── Target provenance / pruning ─────────────────────────────────────────

    def _adapters_for(self, schema: str | None) -> tuple[TeamAdapter, ...]:
        if schema is None:
            return self._adapters
        chosen = tuple(a for a in self._adapters if a.name == schema)
        if not chosen:
            raise ValidationError(f"unknown target schema {schema!r}")
        return chosen

    async def sync_membership_metadata(
        self,
        target_id: str,
        provisioned_by: str | None,
        external_id: str | None = None,
        *,
        member_id: str | None = None,
        schema: str | None = None,
    ) -> str:
        """Stamp provenance on a team (or a team membership when *member_id* is given).

        Untagged targets are tried against each schema in priority order and the
        first one that updates a row wins. Returns the schema that matched.
        """
        async with transaction(self._sessions) as session:
            now = self._clock.now()
            for adapter in self._adapters_for(schema):
                if member_id is None:
                    affected = await adapter.mark_team(
                        session, target_id, provisioned_by, external_id, now
                    )
                else:
                    affected = await adapter.mark_member(
                        session, target_id, member_id, provisioned_by, now
                    )
                if affected:
                    return adapter.name

        if member_id is None:
            raise TargetNotFound("team not found in any schema", target_id=target_id)
        raise TargetNotFound(
            "team member not found in any schema", target_id=target_id, member_id=member_id
        )

    async def delete_if_empty(self, target_id: str, *, schema: str | None = None) -> bool:
        """Delete the team when it has no members. False when it was not deleted by this call.

        Two concurrent calls both seeing "empty" is fine: the conditional delete
        makes the second one a no-op.
        """
        async with transaction(self._sessions) as session:
            for adapter in self._adapters_for(schema):
                if not await adapter.exists(session, target_id):
                    continue
                if await adapter.count_members(session, target_id) > 0:
                    return False
                if not await adapter.delete_if_empty(session, target_id):
                    return False
                # mappings tagged with the other schema point at a different team
                await session.execute(
                    delete(GroupMapping).where(
                        GroupMapping.target_id == target_id,
                        or_(
                            GroupMapping.target_schema == adapter.name,
                            GroupMapping.target_schema.is_(None),
                        ),
                    )
                )
                logger.info("Empty team deleted", target_id=target_id, schema=adapter.name)
                return True
        return False

    async def prune_after_removal(self, target_id: str) -> bool:
        """Called after a membership removal; deletes the team if group-sync policy asks for it."""
        mappings = await self.find_by_target(target_id)
        wanted = self._group_sync.delete_empty_groups or any(m.delete_when_empty for m in mappings)
        if not wanted:
            return False
        schemas = {m.target_schema for m in mappings if m.target_schema}
        schema = schemas.pop() if len(schemas) == 1 else None
        return await self.delete_if_empty(target_id, schema=schema)
