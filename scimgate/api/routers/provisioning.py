"""IdP-facing endpoints authenticated by provisioning tokens."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status

from scimgate.api.dependencies import PlaneDep, ProvisioningTokenDep, client_ip
from scimgate.provisioning.scope import Scope
from scimgate.provisioning.tokens import has_scope
from scimgate.schemas.logs import ConnectionTestOut

router = APIRouter(prefix="/provisioning", tags=["provisioning"])


@router.get("/connection", response_model=ConnectionTestOut)
async def test_connection(
    request: Request, plane: PlaneDep, token: ProvisioningTokenDep
) -> ConnectionTestOut:
    """Let an IdP check its token before it starts pushing users."""
    scope = Scope.of(token)
    async with plane.audit.track(
        scope,
        "CONNECTION_TEST",
        "Token",
        method=request.method,
        path=request.url.path,
        token_id=token.id,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    ) as op:
        if not has_scope(token, "users:read"):
            op.status_code = status.HTTP_403_FORBIDDEN
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient scope")
        op.resource_id = token.id
        return ConnectionTestOut(
            token_id=token.id,
            app_id=token.app_id,
            environment_id=token.environment_id,
            organization_id=token.organization_id or None,
            scopes=list(token.scopes),
        )
