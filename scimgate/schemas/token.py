"""Schemas for provisioning tokens."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from scimgate.provisioning.tokens import DEFAULT_SCOPES


class TokenCreate(BaseModel):
    app_id: str = Field(..., min_length=1, max_length=26)
    environment_id: str = Field(..., min_length=1, max_length=26)
    organization_id: str | None = Field(default=None, max_length=26)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    expires_at: datetime | None = None
    no_expiry: bool = False


class TokenOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    app_id: str
    environment_id: str
    organization_id: str
    name: str
    description: str
    token_prefix: str
    scopes: list[str]
    expires_at: datetime | None
    revoked_at: datetime | None
    rotated_at: datetime | None
    last_used_at: datetime | None
    usage_count: int
    created_by: str | None
    created_at: datetime
    updated_at: datetime


class TokenList(BaseModel):
    total: int
    items: list[TokenOut]


class TokenSecretOut(BaseModel):
    """Returned once, on issue and on rotate. The plaintext is never stored."""

    token: str
    record: TokenOut
