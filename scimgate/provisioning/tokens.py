"""Token lifecycle: issue, verify, rotate, revoke.

Flow on every inbound IdP request::

    verify(presented) → split prefix/secret → prefix lookup (unique index, no locks)
                     → bcrypt check → revoked? expired? → record returned
                     → usage counter bumped in a background task

Rotation writes the new prefix and hash onto the same row in one UPDATE, so
a concurrent ``verify`` sees either the old pair or the new pair, never a mix.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scimgate.core.clock import Clock, IdFactory, RandomSource, as_utc, generate_ulid, system_random
from scimgate.core.database import transaction
from scimgate.core.errors import (
    ConflictError,
    TokenExpired,
    TokenInvalid,
    TokenNotFound,
    TokenRevoked,
    ValidationError,
)
from scimgate.core.logging import get_logger
from scimgate.core.security import OneTimeSecret, check_secret, mint_credential, split_credential
from scimgate.core.tasks import BackgroundTasks
from scimgate.models.token import ProvisioningToken
from scimgate.provisioning.scope import Pagination, Scope, TenancyMode
from scimgate.provisioning.token_store import TokenStore

logger = get_logger(__name__)

KNOWN_SCOPES = frozenset({"users:read", "users:write", "groups:read", "groups:write"})
DEFAULT_SCOPES = ("users:read", "users:write", "groups:read", "groups:write")


def has_scope(token: ProvisioningToken, required: str) -> bool:
    """``users:read`` is implied by ``users:write``."""
    granted = set(token.scopes or ())
    if required in granted:
        return True
    resource, _, action = required.partition(":")
    return action == "read" and f"{resource}:write" in granted


class TokenLifecycleManager:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Clock,
        tasks: BackgroundTasks,
        random_source: RandomSource = system_random,
        id_factory: IdFactory = generate_ulid,
        store: TokenStore | None = None,
        tenancy_mode: TenancyMode = "application",
        default_lifetime: timedelta | None = timedelta(days=90),
        hash_rounds: int = 12,
        max_mint_attempts: int = 5,
    ) -> None:
        self._sessions = session_factory
        self._clock = clock
        self._tasks = tasks
        self._random = random_source
        self._new_id = id_factory
        self._store = store or TokenStore()
        self._mode = tenancy_mode
        self._default_lifetime = default_lifetime
        self._rounds = hash_rounds
        self._max_attempts = max_mint_attempts

    async def _mint(self):
        # bcrypt is CPU bound; keep it off the event loop
        return await asyncio.to_thread(mint_credential, self._random, self._rounds)

    # ── Issuance ────────────────────────────────────────────────────────────

    async def issue(
        self,
        scope: Scope,
        name: str,
        *,
        description: str = "",
        scopes: Iterable[str] | None = None,
        expires_at: datetime | None = None,
        no_expiry: bool = False,
        created_by: str | None = None,
    ) -> tuple[OneTimeSecret, ProvisioningToken]:
        """Create a token; the returned secret is the only copy of the plaintext."""
        scope.validate(self._mode)
        if not name or not name.strip():
            raise ValidationError("token name is required")
        granted = list(dict.fromkeys(scopes if scopes is not None else DEFAULT_SCOPES))
        if not granted:
            raise ValidationError("at least one scope is required")
        unknown = sorted(set(granted) - KNOWN_SCOPES)
        if unknown:
            raise ValidationError(f"unknown scopes: {unknown}", unknown=unknown)

        now = self._clock.now()
        # naive timestamps are read as UTC, like every other stored time
        expires_at = as_utc(expires_at)
        if expires_at is None and not no_expiry and self._default_lifetime is not None:
            expires_at = now + self._default_lifetime
        if expires_at is not None and expires_at <= now:
            raise ValidationError("expires_at must be in the future")

        for attempt in range(1, self._max_attempts + 1):
            material = await self._mint()
            token = ProvisioningToken(
                id=self._new_id(),
                **scope.as_columns(),
                name=name.strip(),
                description=description,
                token_prefix=material.prefix,
                token_hash=material.secret_hash,
                scopes=granted,
                expires_at=expires_at,
                usage_count=0,
                created_by=created_by,
                created_at=now,
                updated_at=now,
            )
            try:
                async with transaction(self._sessions) as session:
                    await self._store.insert(session, token)
            except IntegrityError:
                logger.warning("Token prefix collision, retrying", attempt=attempt)
                continue
            logger.info(
                "Provisioning token issued",
                token_id=token.id,
                scope=str(scope),
                prefix=token.token_prefix,
                expires_at=expires_at.isoformat() if expires_at else None,
            )
            return material.plaintext, token

        raise ConflictError("could not allocate a unique token prefix")

    # ── Verification ────────────────────────────────────────────────────────

    async def verify(self, presented: str) -> ProvisioningToken:
        prefix, secret = split_credential(presented)

        async with transaction(self._sessions) as session:
            token = await self._store.find_by_prefix(session, prefix)
        if token is None:
            raise TokenNotFound("no token with this prefix", prefix=prefix)

        context = {"token_id": token.id, "scope": Scope.of(token)}
        if not await asyncio.to_thread(check_secret, secret, token.token_hash):
            raise TokenInvalid("secret does not match", **context)

        now = self._clock.now()
        if token.revoked_at is not None:
            raise TokenRevoked("token has been revoked", **context)
        if token.expires_at is not None and token.expires_at <= now:
            raise TokenExpired("token has expired", **context)

        self._tasks.spawn(self._record_usage(token.id, now), name=f"token-usage:{token.id}")
        return token

    async def _record_usage(self, token_id: str, now: datetime) -> None:
        async with transaction(self._sessions) as session:
            await self._store.record_usage(session, token_id, now)

    # ── Rotation / revocation ───────────────────────────────────────────────

    async def rotate(self, token_id: str) -> tuple[OneTimeSecret, ProvisioningToken]:
        """Replace the credential of *token_id*; the old plaintext stops working at commit."""
        for attempt in range(1, self._max_attempts + 1):
            material = await self._mint()
            try:
                async with transaction(self._sessions) as session:
                    token = await self._store.get(session, token_id, for_update=True)
                    if token is None:
                        raise TokenNotFound("token not found", token_id=token_id)
                    now = self._clock.now()
                    if token.revoked_at is not None:
                        raise TokenRevoked("cannot rotate a revoked token", token_id=token_id)
                    if token.expires_at is not None and token.expires_at <= now:
                        raise TokenExpired("cannot rotate an expired token", token_id=token_id)

                    token.token_prefix = material.prefix
                    token.token_hash = material.secret_hash
                    token.rotated_at = now
                    token.updated_at = now
                    await session.flush()
            except IntegrityError:
                logger.warning("Token prefix collision on rotation, retrying", attempt=attempt)
                continue
            logger.info("Provisioning token rotated", token_id=token_id, prefix=material.prefix)
            return material.plaintext, token

        raise ConflictError("could not allocate a unique token prefix")

    async def revoke(self, token_id: str) -> ProvisioningToken:
        """Idempotent: a second call returns the record with its original ``revoked_at``."""
        async with transaction(self._sessions) as session:
            token = await self._store.get(session, token_id, for_update=True)
            if token is None:
                raise TokenNotFound("token not found", token_id=token_id)
            if token.revoked_at is None:
                now = self._clock.now()
                token.revoked_at = now
                token.updated_at = now
                await session.flush()
                logger.info("Provisioning token revoked", token_id=token_id)
        return token

    # ── Reads ───────────────────────────────────────────────────────────────

    async def get(self, token_id: str) -> ProvisioningToken:
        async with transaction(self._sessions) as session:
            token = await self._store.get(session, token_id)
        if token is None:
            raise TokenNotFound("token not found", token_id=token_id)
        return token

    async def list(
        self, scope: Scope, page: Pagination = Pagination(), *, include_revoked: bool = False
    ) -> list[ProvisioningToken]:
        async with transaction(self._sessions) as session:
            return await self._store.list(
                session, scope, page, self._clock.now(), include_revoked=include_revoked
            )

    async def count(self, scope: Scope, *, include_revoked: bool = False) -> int:
        async with transaction(self._sessions) as session:
            return await self._store.count(
                session, scope, self._clock.now(), include_revoked=include_revoked
            )
