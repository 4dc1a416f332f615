"""Admin API tests for provisioning logs, stats, health and export."""

import csv
import io

import pytest

from scimgate.provisioning.audit import EXPORT_COLUMNS, LogEntry
from scimgate.provisioning.scope import Scope

SCOPE = {"app_id": "app_1", "environment_id": "env_prod"}
APP_SCOPE = Scope("app_1", "env_prod")


async def _seed(plane, total: int, failed: int) -> None:
    for i in range(total):
        await plane.audit.write(
            LogEntry(
                scope=APP_SCOPE,
                operation="CREATE_USER" if i % 2 else "UPDATE_USER",
                resource_type="User",
                method="POST",
                path="/scim/v2/Users",
                status_code=500 if i < failed else 201,
                error_message="upstream timeout" if i < failed else None,
            )
        )


@pytest.mark.asyncio
async def test_query_logs(client, plane):
    await _seed(plane, 4, 1)
    r = await client.get("/api/v1/logs", params={**SCOPE, "success": "false"})
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 1
    assert data["items"][0]["error_message"] == "upstream timeout"

    r = await client.get("/api/v1/logs", params={**SCOPE, "limit": 2})
    assert r.json()["total"] == 4
    assert len(r.json()["items"]) == 2


@pytest.mark.asyncio
async def test_stats(client, plane):
    await _seed(plane, 10, 3)
    r = await client.get("/api/v1/logs/stats", params=SCOPE)
    assert r.status_code == 200
    data = r.json()
    assert data["total_operations"] == 10
    assert data["failed_count"] == 3
    assert data["success_rate"] == 70.0
    assert data["operations_by_type"] == {"CREATE_USER": 5, "UPDATE_USER": 5}


@pytest.mark.asyncio
async def test_query_rejects_inverted_range(client):
    r = await client.get(
        "/api/v1/logs",
        params={**SCOPE, "start": "2026-02-01T00:00:00Z", "end": "2026-01-01T00:00:00Z"},
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_health(client, plane):
    await _seed(plane, 2, 0)
    r = await client.get("/api/v1/logs/health", params=SCOPE)
    assert r.status_code == 200
    data = r.json()
    assert data["healthy"] is True
    assert data["window_hours"] == 24
    assert data["total_operations"] == 2


@pytest.mark.asyncio
async def test_export_csv(client, plane):
    await _seed(plane, 3, 1)
    r = await client.get("/api/v1/logs/export", params=SCOPE)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "attachment" in r.headers["content-disposition"]

    rows = list(csv.reader(io.StringIO(r.text)))
    assert tuple(rows[0]) == EXPORT_COLUMNS
    assert len(rows) == 4


@pytest.mark.asyncio
async def test_export_json(client, plane):
    await _seed(plane, 2, 0)
    r = await client.get("/api/v1/logs/export", params={**SCOPE, "format": "json"})
    assert r.status_code == 200
    assert len(r.json()) == 2


@pytest.mark.asyncio
async def test_export_rejects_unknown_format(client):
    r = await client.get("/api/v1/logs/export", params={**SCOPE, "format": "xml"})
    assert r.status_code == 422
