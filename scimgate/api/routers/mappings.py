"""Mappings router — attribute overrides and SCIM group → team mappings (admin only)."""

from __future__ import annotations

from fastapi import APIRouter, status

from scimgate.api.dependencies import PlaneDep, ScopeDep
from scimgate.core.logging import get_logger
from scimgate.models.group_mapping import GroupMapping
from scimgate.provisioning.mappings import EffectiveAttributeMapping
from scimgate.provisioning.scope import Scope
from scimgate.provisioning.targets import TargetRef
from scimgate.schemas.mapping import (
    AttributeMappingOut,
    AttributeOverrides,
    DeleteIfEmptyOut,
    GroupMappingCreate,
    GroupMappingList,
    GroupMappingOut,
    GroupMappingUpdate,
    MembershipSync,
    MembershipSyncOut,
)

router = APIRouter(prefix="/mappings", tags=["mappings"])
logger = get_logger(__name__)


def _attribute_out(effective: EffectiveAttributeMapping) -> AttributeMappingOut:
    return AttributeMappingOut(
        app_id=effective.scope.app_id,
        environment_id=effective.scope.environment_id,
        organization_id=effective.scope.organization_id,
        values=effective.values,
        overridden=effective.overridden,
        custom=effective.custom,
    )


# ── Attribute mappings ──────────────────────────────────────────────────────

@router.get("/attributes", response_model=AttributeMappingOut)
async def get_attribute_mapping(plane: PlaneDep, scope: ScopeDep) -> AttributeMappingOut:
    return _attribute_out(await plane.mappings.get_effective(scope))


@router.put("/attributes", response_model=AttributeMappingOut)
async def set_attribute_overrides(
    payload: AttributeOverrides, plane: PlaneDep, scope: ScopeDep
) -> AttributeMappingOut:
    effective = await plane.mappings.set_overrides(scope, payload.fields, custom=payload.custom)
    return _attribute_out(effective)


@router.delete("/attributes", status_code=status.HTTP_204_NO_CONTENT)
async def reset_attribute_overrides(plane: PlaneDep, scope: ScopeDep) -> None:
    await plane.mappings.reset_overrides(scope)


# ── Group mappings ──────────────────────────────────────────────────────────

@router.get("/groups", response_model=GroupMappingList)
async def list_group_mappings(plane: PlaneDep, scope: ScopeDep) -> GroupMappingList:
    items = await plane.mappings.list_mappings(scope)
    return GroupMappingList(total=len(items), items=items)


@router.post("/groups", response_model=GroupMappingOut, status_code=status.HTTP_201_CREATED)
async def create_group_mapping(payload: GroupMappingCreate, plane: PlaneDep) -> GroupMapping:
    scope = Scope(payload.app_id, payload.environment_id, payload.organization_id or None)
    return await plane.mappings.create_mapping(
        scope,
        payload.scim_group_id,
        TargetRef(id=payload.target_id, schema=payload.target_schema, type=payload.target_type),
        scim_group_name=payload.scim_group_name,
        delete_when_empty=payload.delete_when_empty,
    )


@router.get("/groups/{mapping_id}", response_model=GroupMappingOut)
async def get_group_mapping(mapping_id: str, plane: PlaneDep) -> GroupMapping:
    return await plane.mappings.get_mapping(mapping_id)


@router.patch("/groups/{mapping_id}", response_model=GroupMappingOut)
async def update_group_mapping(
    mapping_id: str, payload: GroupMappingUpdate, plane: PlaneDep
) -> GroupMapping:
    return await plane.mappings.update_mapping(mapping_id, **payload.model_dump(exclude_unset=True))


@router.delete("/groups/{mapping_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group_mapping(mapping_id: str, plane: PlaneDep) -> None:
    await plane.mappings.delete_mapping(mapping_id)


@router.post("/targets/{target_id}/provenance", response_model=MembershipSyncOut)
async def sync_target_provenance(
    target_id: str, payload: MembershipSync, plane: PlaneDep
) -> MembershipSyncOut:
    schema = await plane.mappings.sync_membership_metadata(
        target_id,
        payload.provisioned_by,
        payload.external_id,
        member_id=payload.member_id,
        schema=payload.schema_name,
    )
    return MembershipSyncOut(target_id=target_id, schema_name=schema)


@router.post("/targets/{target_id}/delete-if-empty", response_model=DeleteIfEmptyOut)
async def delete_target_if_empty(
    target_id: str, plane: PlaneDep, schema: str | None = None
) -> DeleteIfEmptyOut:
    deleted = await plane.mappings.delete_if_empty(target_id, schema=schema)
    logger.info("Delete-if-empty requested", target_id=target_id, deleted=deleted)
    return DeleteIfEmptyOut(target_id=target_id, deleted=deleted)
