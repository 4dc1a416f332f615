"""Admin API tests for attribute and group mappings."""

import pytest

from scimgate.models.team import AppTeam

SCOPE = {"app_id": "app_1", "environment_id": "env_prod"}
ORG = {**SCOPE, "organization_id": "org_acme"}


@pytest.mark.asyncio
async def test_attribute_overrides_roundtrip(client):
    r = await client.get("/api/v1/mappings/attributes", params=ORG)
    assert r.status_code == 200
    assert r.json()["values"]["username_field"] == "userName"
    assert not any(r.json()["overridden"].values())

    r = await client.put(
        "/api/v1/mappings/attributes", params=ORG, json={"fields": {"email_field": "mail"}}
    )
    assert r.status_code == 200
    data = r.json()
    assert data["values"]["email_field"] == "mail"
    assert data["overridden"]["email_field"] is True
    assert data["organization_id"] == "org_acme"

    # The parent application scope is untouched
    r = await client.get("/api/v1/mappings/attributes", params=SCOPE)
    assert r.json()["values"]["email_field"] == "emails[0].value"

    r = await client.delete("/api/v1/mappings/attributes", params=ORG)
    assert r.status_code == 204
    r = await client.get("/api/v1/mappings/attributes", params=ORG)
    assert r.json()["values"]["email_field"] == "emails[0].value"


@pytest.mark.asyncio
async def test_attribute_unknown_field(client):
    r = await client.put(
        "/api/v1/mappings/attributes", params=SCOPE, json={"fields": {"nope": "x"}}
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_group_mapping_crud(client):
    payload = {**SCOPE, "scim_group_id": "okta-eng-42", "target_id": "team_1", "target_schema": "app"}
    r = await client.post("/api/v1/mappings/groups", json=payload)
    assert r.status_code == 201
    mapping = r.json()
    assert mapping["creation_source"] == "manual"

    r = await client.post("/api/v1/mappings/groups", json=payload)
    assert r.status_code == 409

    r = await client.patch(
        f"/api/v1/mappings/groups/{mapping['id']}", json={"delete_when_empty": True}
    )
    assert r.status_code == 200
    assert r.json()["delete_when_empty"] is True

    r = await client.get("/api/v1/mappings/groups", params=SCOPE)
    assert r.json()["total"] == 1

    r = await client.delete(f"/api/v1/mappings/groups/{mapping['id']}")
    assert r.status_code == 204
    r = await client.get(f"/api/v1/mappings/groups/{mapping['id']}")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_target_provenance_and_cleanup(client, session_factory):
    async with session_factory() as session:
        session.add(AppTeam(id="team_1", app_id="app_1", name="Eng"))
        await session.commit()

    r = await client.post(
        "/api/v1/mappings/targets/team_1/provenance", json={"provisioned_by": "scim"}
    )
    assert r.status_code == 200
    assert r.json()["schema_name"] == "app"

    r = await client.post(
        "/api/v1/mappings/targets/missing/provenance", json={"provisioned_by": "scim"}
    )
    assert r.status_code == 404

    r = await client.post("/api/v1/mappings/targets/team_1/delete-if-empty")
    assert r.json() == {"target_id": "team_1", "deleted": True}
    r = await client.post("/api/v1/mappings/targets/team_1/delete-if-empty")
    assert r.json()["deleted"] is False
