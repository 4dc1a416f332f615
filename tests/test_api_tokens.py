"""Admin API tests for provisioning tokens."""

import pytest

SCOPE = {"app_id": "app_1", "environment_id": "env_prod"}


async def _issue(client, name="okta", **extra):
    r = await client.post("/api/v1/tokens", json={**SCOPE, "name": name, **extra})
    assert r.status_code == 201
    return r.json()


@pytest.mark.asyncio
async def test_issue_returns_plaintext_once(client):
    data = await _issue(client)
    record = data["record"]
    assert data["token"].startswith(f"scim_{record['token_prefix']}_")
    assert record["created_by"] == "admin@test.local"
    assert "token_hash" not in record

    r = await client.get(f"/api/v1/tokens/{record['id']}")
    assert r.status_code == 200
    assert "token" not in r.json()


@pytest.mark.asyncio
async def test_issue_validation_errors(client):
    r = await client.post("/api/v1/tokens", json={**SCOPE, "name": "okta", "scopes": ["root"]})
    assert r.status_code == 422
    r = await client.post("/api/v1/tokens", json={"app_id": "app_1", "name": "okta"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_issue_accepts_naive_expiry_as_utc(client):
    record = (await _issue(client, expires_at="2030-01-01T00:00:00"))["record"]
    assert record["expires_at"].startswith("2030-01-01T00:00:00")

    r = await client.post(
        "/api/v1/tokens", json={**SCOPE, "name": "okta", "expires_at": "2020-01-01T00:00:00"}
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_list_tokens(client):
    await _issue(client, "one")
    await _issue(client, "two")
    r = await client.get("/api/v1/tokens", params=SCOPE)
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 2
    assert {t["name"] for t in data["items"]} == {"one", "two"}


@pytest.mark.asyncio
async def test_rotate_and_revoke(client):
    data = await _issue(client)
    token_id = data["record"]["id"]

    r = await client.post(f"/api/v1/tokens/{token_id}/rotate")
    assert r.status_code == 200
    rotated = r.json()
    assert rotated["token"] != data["token"]
    assert rotated["record"]["rotated_at"] is not None

    r = await client.delete(f"/api/v1/tokens/{token_id}")
    assert r.status_code == 200
    assert r.json()["revoked_at"] is not None

    # Revoked tokens cannot be rotated
    r = await client.post(f"/api/v1/tokens/{token_id}/rotate")
    assert r.status_code == 409

    r = await client.get("/api/v1/tokens", params=SCOPE)
    assert r.json()["total"] == 0
    r = await client.get("/api/v1/tokens", params={**SCOPE, "include_revoked": "true"})
    assert r.json()["total"] == 1


@pytest.mark.asyncio
async def test_token_not_found(client):
    r = await client.get("/api/v1/tokens/01HZZZZZZZZZZZZZZZZZZZZZZZ")
    assert r.status_code == 404
    r = await client.delete("/api/v1/tokens/01HZZZZZZZZZZZZZZZZZZZZZZZ")
    assert r.status_code == 404
