"""Schemas for attribute and group mappings."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AttributeMappingOut(BaseModel):
    app_id: str
    environment_id: str
    organization_id: str | None
    values: dict[str, str]
    overridden: dict[str, bool]
    custom: dict[str, str]


class AttributeOverrides(BaseModel):
    # field name -> SCIM path; null clears the override
    fields: dict[str, str | None] = Field(default_factory=dict)
    custom: dict[str, str] | None = None


class GroupMappingCreate(BaseModel):
    app_id: str = Field(..., min_length=1, max_length=26)
    environment_id: str = Field(..., min_length=1, max_length=26)
    organization_id: str | None = Field(default=None, max_length=26)
    scim_group_id: str = Field(..., min_length=1, max_length=255)
    scim_group_name: str = ""
    target_id: str = Field(..., min_length=1, max_length=64)
    target_type: str = Field(default="team", pattern="^(team|role)$")
    target_schema: str | None = Field(default=None, pattern="^(app|organization)$")
    delete_when_empty: bool = False


class GroupMappingUpdate(BaseModel):
    scim_group_name: str | None = None
    delete_when_empty: bool | None = None


class GroupMappingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    app_id: str
    environment_id: str
    organization_id: str
    scim_group_id: str
    scim_group_name: str
    target_id: str
    target_type: str
    target_schema: str | None
    creation_source: str
    delete_when_empty: bool
    idempotency_key: str | None
    created_at: datetime
    updated_at: datetime


class GroupMappingList(BaseModel):
    total: int
    items: list[GroupMappingOut]


class MembershipSync(BaseModel):
    provisioned_by: str | None = "scim"
    external_id: str | None = None
    member_id: str | None = None
    schema_name: str | None = Field(default=None, pattern="^(app|organization)$")


class MembershipSyncOut(BaseModel):
    target_id: str
    schema_name: str


class DeleteIfEmptyOut(BaseModel):
    target_id: str
    deleted: bool
