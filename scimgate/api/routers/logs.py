"""Logs router — provisioning audit trail, stats, health and export (admin only)."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from scimgate.api.dependencies import PageDep, PlaneDep, ScopeDep
from scimgate.core.clock import as_utc
from scimgate.provisioning.audit import LogFilters
from scimgate.schemas.logs import HealthSummaryOut, ProvisioningLogList, ProvisioningStatsOut

router = APIRouter(prefix="/logs", tags=["logs"])


def log_filters(
    operation: str | None = None,
    resource_type: str | None = None,
    success: bool | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    token_id: str | None = None,
) -> LogFilters:
    return LogFilters(
        operation=operation,
        resource_type=resource_type,
        success=success,
        start=as_utc(start),
        end=as_utc(end),
        token_id=token_id,
    )


FiltersDep = Annotated[LogFilters, Depends(log_filters)]


@router.get("", response_model=ProvisioningLogList)
async def query_logs(
    plane: PlaneDep, scope: ScopeDep, filters: FiltersDep, page: PageDep
) -> ProvisioningLogList:
    rows, total = await plane.audit.query(scope, filters, page)
    return ProvisioningLogList(total=total, items=rows)


@router.get("/stats", response_model=ProvisioningStatsOut)
async def provisioning_stats(
    plane: PlaneDep,
    scope: ScopeDep,
    start: datetime | None = None,
    end: datetime | None = None,
) -> ProvisioningStatsOut:
    stats = await plane.audit.stats(scope, as_utc(start), as_utc(end))
    return ProvisioningStatsOut.model_validate(stats)


@router.get("/health", response_model=HealthSummaryOut)
async def provisioning_health(
    plane: PlaneDep,
    scope: ScopeDep,
    window_hours: int | None = Query(default=None, ge=1, le=24 * 90),
) -> HealthSummaryOut:
    window = timedelta(hours=window_hours) if window_hours else plane.health_window
    return HealthSummaryOut.model_validate(await plane.audit.health(scope, window))


@router.get("/export")
async def export_logs(
    plane: PlaneDep,
    scope: ScopeDep,
    filters: FiltersDep,
    format: Literal["csv", "json"] = "csv",
) -> StreamingResponse:
    stamp = plane.clock.now().strftime("%Y%m%d_%H%M%S")
    media_type = "text/csv" if format == "csv" else "application/json"
    headers = {
        "Content-Disposition": f'attachment; filename="provisioning_logs_{stamp}.{format}"'
    }
    return StreamingResponse(
        plane.audit.export(scope, filters, fmt=format),
        media_type=media_type,
        headers=headers,
    )
