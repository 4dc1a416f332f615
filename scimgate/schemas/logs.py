"""Schemas for provisioning logs, stats and health."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class ProvisioningLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    app_id: str
    environment_id: str
    organization_id: str
    token_id: str | None
    operation: str
    resource_type: str
    resource_id: str | None
    external_id: str | None
    method: str
    path: str
    status_code: int
    success: bool
    duration_ms: int
    ip_address: str | None
    user_agent: str | None
    error_message: str | None
    details: dict[str, Any] | None
    created_at: datetime


class ProvisioningLogList(BaseModel):
    total: int
    items: list[ProvisioningLogOut]


class ProvisioningStatsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_operations: int
    success_count: int
    failed_count: int
    success_rate: float
    operations_by_type: dict[str, int]
    operations_by_resource_type: dict[str, int]
    operations_by_status: dict[str, int]
    average_duration_ms: float


class HealthSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    window_hours: int
    total_operations: int
    success_count: int
    failed_count: int
    success_rate: float
    last_operation_at: datetime | None
    last_operation_success: bool | None
    healthy: bool


class ConnectionTestOut(BaseModel):
    status: str = "ok"
    token_id: str
    app_id: str
    environment_id: str
    organization_id: str | None
    scopes: list[str]
