"""Token issue / verify / rotate / revoke against a real database."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from scimgate.core.errors import (
    InvalidScope,
    TokenExpired,
    TokenInvalid,
    TokenNotFound,
    TokenRevoked,
    TokenVerificationError,
    ValidationError,
)
from scimgate.models.token import ProvisioningToken
from scimgate.provisioning.scope import Pagination, Scope
from scimgate.provisioning.tokens import TokenLifecycleManager, has_scope

APP_SCOPE = Scope("app_1", "env_prod")
ORG_SCOPE = Scope("app_1", "env_prod", "org_acme")


@pytest.mark.asyncio
async def test_issue_then_verify(plane):
    secret, record = await plane.tokens.issue(APP_SCOPE, "okta")
    plaintext = secret.reveal()

    assert plaintext.startswith(f"scim_{record.token_prefix}_")
    assert record.token_hash not in plaintext
    assert record.expires_at == plane.clock.now() + timedelta(days=90)
    assert record.usage_count == 0

    verified = await plane.tokens.verify(plaintext)
    assert verified.id == record.id


@pytest.mark.asyncio
async def test_verify_bumps_usage_in_background(plane):
    secret, record = await plane.tokens.issue(APP_SCOPE, "okta")
    plaintext = secret.reveal()

    await plane.tokens.verify(plaintext)
    await plane.tokens.verify(plaintext)
    await plane.tasks.drain()

    stored = await plane.tokens.get(record.id)
    assert stored.usage_count == 2
    assert stored.last_used_at == plane.clock.now()
    # The counter bump is not an edit of the record
    assert stored.updated_at == record.updated_at


@pytest.mark.asyncio
async def test_verify_fails_after_revoke(plane):
    secret, record = await plane.tokens.issue(APP_SCOPE, "okta")
    plaintext = secret.reveal()
    await plane.tokens.revoke(record.id)

    with pytest.raises(TokenRevoked) as exc:
        await plane.tokens.verify(plaintext)
    assert exc.value.reason == "revoked"
    assert isinstance(exc.value, TokenVerificationError)


@pytest.mark.asyncio
async def test_revoke_is_idempotent(plane, clock):
    _, record = await plane.tokens.issue(APP_SCOPE, "okta")
    first = await plane.tokens.revoke(record.id)
    clock.advance(timedelta(minutes=5))
    second = await plane.tokens.revoke(record.id)
    assert first.revoked_at == second.revoked_at


@pytest.mark.asyncio
async def test_default_lifetime_expires(plane, clock):
    secret, _ = await plane.tokens.issue(APP_SCOPE, "okta")
    plaintext = secret.reveal()
    await plane.tokens.verify(plaintext)

    clock.advance(timedelta(days=91))
    with pytest.raises(TokenExpired):
        await plane.tokens.verify(plaintext)


@pytest.mark.asyncio
async def test_no_expiry_token(plane, clock):
    secret, record = await plane.tokens.issue(APP_SCOPE, "okta", no_expiry=True)
    assert record.expires_at is None
    clock.advance(timedelta(days=3650))
    assert (await plane.tokens.verify(secret.reveal())).id == record.id


@pytest.mark.asyncio
async def test_verify_unknown_prefix(plane):
    with pytest.raises(TokenNotFound):
        await plane.tokens.verify("scim_0123456789ab_somesecret")


@pytest.mark.asyncio
async def test_verify_wrong_secret(plane):
    secret, record = await plane.tokens.issue(APP_SCOPE, "okta")
    secret.reveal()
    with pytest.raises(TokenInvalid):
        await plane.tokens.verify(f"scim_{record.token_prefix}_wrong-secret")


@pytest.mark.asyncio
async def test_verify_malformed(plane):
    with pytest.raises(TokenInvalid):
        await plane.tokens.verify("Bearer nope")


@pytest.mark.asyncio
async def test_rotate_swaps_credentials(plane, clock):
    old_secret, record = await plane.tokens.issue(APP_SCOPE, "okta")
    old = old_secret.reveal()
    clock.advance(timedelta(hours=1))

    new_secret, rotated = await plane.tokens.rotate(record.id)
    new = new_secret.reveal()

    assert rotated.id == record.id
    assert rotated.rotated_at == clock.now()
    assert rotated.token_prefix != record.token_prefix
    with pytest.raises(TokenNotFound):
        await plane.tokens.verify(old)
    assert (await plane.tokens.verify(new)).id == record.id


@pytest.mark.asyncio
async def test_rotate_during_concurrent_verifies(plane):
    old_secret, record = await plane.tokens.issue(APP_SCOPE, "okta")
    old = old_secret.reveal()

    results = await asyncio.gather(
        *(plane.tokens.verify(old) for _ in range(3)),
        plane.tokens.rotate(record.id),
        *(plane.tokens.verify(old) for _ in range(3)),
        return_exceptions=True,
    )
    new_secret, rotated = results[3]
    for outcome in results[:3] + results[4:]:
        # Either the pre-rotation credential was still current, or it is gone
        assert isinstance(outcome, TokenNotFound) or outcome.id == record.id
    await plane.tasks.drain()

    assert rotated.token_prefix != record.token_prefix
    with pytest.raises(TokenNotFound):
        await plane.tokens.verify(old)
    assert (await plane.tokens.verify(new_secret.reveal())).id == record.id


@pytest.mark.asyncio
async def test_rotate_revoked_or_expired_token(plane, clock):
    _, revoked = await plane.tokens.issue(APP_SCOPE, "revoked")
    await plane.tokens.revoke(revoked.id)
    with pytest.raises(TokenRevoked):
        await plane.tokens.rotate(revoked.id)

    _, expiring = await plane.tokens.issue(APP_SCOPE, "expiring", expires_at=clock.now() + timedelta(days=1))
    clock.advance(timedelta(days=2))
    with pytest.raises(TokenExpired):
        await plane.tokens.rotate(expiring.id)


@pytest.mark.asyncio
async def test_naive_expiry_is_read_as_utc(plane, clock):
    _, record = await plane.tokens.issue(APP_SCOPE, "okta", expires_at=datetime(2030, 1, 1))
    assert record.expires_at == datetime(2030, 1, 1, tzinfo=timezone.utc)

    with pytest.raises(ValidationError):
        await plane.tokens.issue(APP_SCOPE, "okta", expires_at=datetime(2020, 1, 1))


@pytest.mark.asyncio
async def test_rotate_unknown_token(plane):
    with pytest.raises(TokenNotFound):
        await plane.tokens.rotate("01HZZZZZZZZZZZZZZZZZZZZZZZ")


@pytest.mark.asyncio
async def test_issue_validation(plane, clock):
    with pytest.raises(ValidationError):
        await plane.tokens.issue(APP_SCOPE, "   ")
    with pytest.raises(ValidationError):
        await plane.tokens.issue(APP_SCOPE, "okta", scopes=["users:delete"])
    with pytest.raises(ValidationError):
        await plane.tokens.issue(APP_SCOPE, "okta", scopes=[])
    with pytest.raises(ValidationError):
        await plane.tokens.issue(APP_SCOPE, "okta", expires_at=clock.now() - timedelta(seconds=1))
    with pytest.raises(InvalidScope):
        await plane.tokens.issue(Scope("", "env_prod"), "okta")


@pytest.mark.asyncio
async def test_organization_tenancy_requires_org(session_factory, clock, plane):
    manager = TokenLifecycleManager(
        session_factory, clock=clock, tasks=plane.tasks, tenancy_mode="organization", hash_rounds=4
    )
    with pytest.raises(InvalidScope):
        await manager.issue(APP_SCOPE, "okta")
    _, record = await manager.issue(ORG_SCOPE, "okta")
    assert record.organization_id == "org_acme"


@pytest.mark.asyncio
async def test_prefix_collision_is_retried(session_factory, clock, plane):
    draws = iter([b"\x01" * 6, b"\x02" * 32, b"\x01" * 6, b"\x03" * 32, b"\x04" * 6, b"\x05" * 32])
    manager = TokenLifecycleManager(
        session_factory,
        clock=clock,
        tasks=plane.tasks,
        random_source=lambda n: next(draws),
        hash_rounds=4,
    )
    _, first = await manager.issue(APP_SCOPE, "first")
    _, second = await manager.issue(APP_SCOPE, "second")
    assert first.token_prefix == "010101010101"
    assert second.token_prefix == "040404040404"


@pytest.mark.asyncio
async def test_list_and_count_are_scoped(plane, clock):
    await plane.tokens.issue(APP_SCOPE, "a")
    _, b = await plane.tokens.issue(APP_SCOPE, "b")
    await plane.tokens.issue(ORG_SCOPE, "org")
    await plane.tokens.revoke(b.id)

    assert await plane.tokens.count(APP_SCOPE) == 1
    assert await plane.tokens.count(APP_SCOPE, include_revoked=True) == 2
    assert await plane.tokens.count(ORG_SCOPE) == 1

    listed = await plane.tokens.list(APP_SCOPE, Pagination(limit=10), include_revoked=True)
    assert {t.name for t in listed} == {"a", "b"}


def test_write_scope_implies_read():
    token = ProvisioningToken(scopes=["users:write"])
    assert has_scope(token, "users:write")
    assert has_scope(token, "users:read")
    assert not has_scope(token, "groups:read")
