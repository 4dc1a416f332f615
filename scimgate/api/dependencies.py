"""FastAPI dependency providers."""

from __future__ import annotations

import math
from typing import Annotated

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from scimgate.core.errors import TokenVerificationError
from scimgate.core.logging import get_logger
from scimgate.core.security import decode_admin_token
from scimgate.models.token import ProvisioningToken
from scimgate.provisioning.audit import LogEntry
from scimgate.provisioning.plane import ControlPlane
from scimgate.provisioning.scope import Pagination, Scope

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_control_plane(request: Request) -> ControlPlane:
    """Return the ControlPlane built during application startup."""
    return request.app.state.plane


PlaneDep = Annotated[ControlPlane, Depends(get_control_plane)]
BearerDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


# ── Admin API ───────────────────────────────────────────────────────────────

async def require_admin(credentials: BearerDep) -> dict:
    """Decode the admin JWT; raise 403 unless it carries the admin role."""
    if credentials is None:
        raise _unauthorized()
    payload = decode_admin_token(credentials.credentials)
    if payload.get("role") != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required"
        )
    return payload


def scope_params(
    app_id: Annotated[str, Query(min_length=1, max_length=26)],
    environment_id: Annotated[str, Query(min_length=1, max_length=26)],
    organization_id: Annotated[str | None, Query(max_length=26)] = None,
) -> Scope:
    return Scope(app_id, environment_id, organization_id or None)


def pagination_params(
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> Pagination:
    return Pagination(limit=limit, offset=offset)


ScopeDep = Annotated[Scope, Depends(scope_params)]
PageDep = Annotated[Pagination, Depends(pagination_params)]
AdminDep = Annotated[dict, Depends(require_admin)]


# ── IdP-facing guard ────────────────────────────────────────────────────────

def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _rate_limited(plane: ControlPlane, key: str) -> HTTPException:
    retry_after = max(1, math.ceil(plane.limiter.retry_after(key)))
    logger.warning("Provisioning request rate limited", key=key)
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded",
        headers={"Retry-After": str(retry_after)},
    )


async def require_provisioning_token(
    request: Request, plane: PlaneDep, credentials: BearerDep
) -> ProvisioningToken:
    """Transport / IP policy, then bearer verification, then the per-token limit.

    Unauthenticated attempts drain an ``ip:<address>`` bucket that is checked
    before any hashing work; a verified token draws on its own ``token:<id>``
    bucket, so a forged credential carrying a known prefix cannot throttle
    the real holder. Every verification failure answers the same generic
    401; the precise reason only goes to the audit log.
    """
    ip = client_ip(request)
    presented = credentials.credentials if credentials else None

    ip_key = f"ip:{ip or 'unknown'}"
    if plane.limiter.retry_after(ip_key) > 0:
        raise _rate_limited(plane, ip_key)

    if not plane.policy.is_secure_transport(
        request.url.scheme, request.headers.get("x-forwarded-proto")
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="HTTPS required")
    if not plane.policy.is_ip_allowed(ip):
        logger.warning("Provisioning request from disallowed address", ip=ip)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Address not allowed")

    if not presented:
        plane.limiter.allow(ip_key)
        raise _unauthorized()
    try:
        token = await plane.tokens.verify(presented)
    except TokenVerificationError as exc:
        plane.limiter.allow(ip_key)
        logger.info("Provisioning token refused", reason=exc.reason, ip=ip)
        scope = exc.context.get("scope")
        if isinstance(scope, Scope):
            plane.audit.record(
                LogEntry(
                    scope=scope,
                    operation="AUTHENTICATE",
                    resource_type="Token",
                    method=request.method,
                    path=request.url.path,
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    token_id=exc.context.get("token_id"),
                    ip_address=ip,
                    user_agent=request.headers.get("user-agent"),
                    error_message=f"token {exc.reason}",
                )
            )
        raise _unauthorized() from exc

    token_key = f"token:{token.id}"
    if not plane.limiter.allow(token_key):
        raise _rate_limited(plane, token_key)
    return token


ProvisioningTokenDep = Annotated[ProvisioningToken, Depends(require_provisioning_token)]
