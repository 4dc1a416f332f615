"""Tokens router — issue, list, rotate and revoke provisioning tokens (admin only)."""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from scimgate.api.dependencies import AdminDep, PageDep, PlaneDep, ScopeDep
from scimgate.core.logging import get_logger
from scimgate.models.token import ProvisioningToken
from scimgate.provisioning.scope import Scope
from scimgate.schemas.token import TokenCreate, TokenList, TokenOut, TokenSecretOut

router = APIRouter(prefix="/tokens", tags=["tokens"])
logger = get_logger(__name__)


@router.get("", response_model=TokenList)
async def list_tokens(
    plane: PlaneDep,
    scope: ScopeDep,
    page: PageDep,
    include_revoked: bool = Query(default=False),
) -> TokenList:
    total = await plane.tokens.count(scope, include_revoked=include_revoked)
    items = await plane.tokens.list(scope, page, include_revoked=include_revoked)
    return TokenList(total=total, items=items)


@router.post("", response_model=TokenSecretOut, status_code=status.HTTP_201_CREATED)
async def issue_token(payload: TokenCreate, plane: PlaneDep, admin: AdminDep) -> TokenSecretOut:
    scope = Scope(payload.app_id, payload.environment_id, payload.organization_id or None)
    secret, record = await plane.tokens.issue(
        scope,
        payload.name,
        description=payload.description,
        scopes=payload.scopes,
        expires_at=payload.expires_at,
        no_expiry=payload.no_expiry,
        created_by=admin.get("sub"),
    )
    return TokenSecretOut(token=secret.reveal(), record=TokenOut.model_validate(record))


@router.get("/{token_id}", response_model=TokenOut)
async def get_token(token_id: str, plane: PlaneDep) -> ProvisioningToken:
    return await plane.tokens.get(token_id)


@router.post("/{token_id}/rotate", response_model=TokenSecretOut)
async def rotate_token(token_id: str, plane: PlaneDep, admin: AdminDep) -> TokenSecretOut:
    secret, record = await plane.tokens.rotate(token_id)
    logger.info("Token rotated via API", token_id=token_id, by=admin.get("sub"))
    return TokenSecretOut(token=secret.reveal(), record=TokenOut.model_validate(record))


@router.delete("/{token_id}", response_model=TokenOut)
async def revoke_token(token_id: str, plane: PlaneDep, admin: AdminDep) -> ProvisioningToken:
    record = await plane.tokens.revoke(token_id)
    logger.info("Token revoked via API", token_id=token_id, by=admin.get("sub"))
    return record
