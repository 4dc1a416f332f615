"""Audit & stats engine over ``provisioning_logs``.

Appends are best effort: ``record`` hands the write to a background task and
returns immediately; a failed write is logged and dropped. Reads are exact
scope matches (an organization's logs never include its parent app's).
"""

from __future__ import annotations

import csv
import io
import json
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Literal

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scimgate.core.clock import Clock, IdFactory, generate_ulid
from scimgate.core.database import transaction
from scimgate.core.errors import ProvisioningError, ValidationError
from scimgate.core.logging import get_logger
from scimgate.core.tasks import BackgroundTasks
from scimgate.models.provisioning_log import ProvisioningLog
from scimgate.provisioning.masking import mask_details, mask_sensitive
from scimgate.provisioning.policy import SecurityPolicy
from scimgate.provisioning.scope import Pagination, Scope

logger = get_logger(__name__)

EXPORT_COLUMNS = (
    "Timestamp",
    "Event Type",
    "Resource Type",
    "Status",
    "Direction",
    "Duration (ms)",
    "Error",
)
EXPORT_BATCH = 500
ExportFormat = Literal["csv", "json"]

# Cells starting with these are interpreted as formulas by spreadsheet apps
_CSV_DANGEROUS_PREFIXES = ("=", "+", "-", "@")


@dataclass(frozen=True)
class LogEntry:
    scope: Scope
    operation: str
    resource_type: str
    method: str
    path: str
    status_code: int
    success: bool | None = None
    duration_ms: int = 0
    token_id: str | None = None
    resource_id: str | None = None
    external_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    error_message: str | None = None
    details: dict[str, Any] | None = None

    @property
    def succeeded(self) -> bool:
        if self.success is not None:
            return self.success
        return self.status_code < 400


@dataclass(frozen=True)
class LogFilters:
    """Conjunctive filters; ``None`` means "don't filter"."""

    operation: str | None = None
    resource_type: str | None = None
    success: bool | None = None
    start: datetime | None = None
    end: datetime | None = None
    token_id: str | None = None

    def __post_init__(self) -> None:
        if self.start and self.end and self.start > self.end:
            raise ValidationError("start must not be after end")

    def clauses(self) -> list:
        clauses = []
        if self.operation:
            clauses.append(ProvisioningLog.operation == self.operation)
        if self.resource_type:
            clauses.append(ProvisioningLog.resource_type == self.resource_type)
        if self.success is not None:
            clauses.append(ProvisioningLog.success.is_(self.success))
        if self.start:
            clauses.append(ProvisioningLog.created_at >= self.start)
        if self.end:
            clauses.append(ProvisioningLog.created_at <= self.end)
        if self.token_id:
            clauses.append(ProvisioningLog.token_id == self.token_id)
        return clauses


@dataclass
class ProvisioningStats:
    total_operations: int = 0
    success_count: int = 0
    failed_count: int = 0
    success_rate: float = 0.0
    operations_by_type: dict[str, int] = field(default_factory=dict)
    operations_by_resource_type: dict[str, int] = field(default_factory=dict)
    operations_by_status: dict[str, int] = field(default_factory=dict)
    average_duration_ms: float = 0.0


@dataclass
class HealthSummary:
    window_hours: int
    total_operations: int
    success_count: int
    failed_count: int
    success_rate: float
    last_operation_at: datetime | None
    last_operation_success: bool | None
    healthy: bool


@dataclass
class TrackedOperation:
    """Mutable handle yielded by ``AuditEngine.track``."""

    status_code: int = 200
    resource_id: str | None = None
    external_id: str | None = None
    error_message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


def success_rate(success: int, total: int) -> float:
    """Percentage rounded to two decimals; 0.0 when nothing happened."""
    if total <= 0:
        return 0.0
    return round(success * 100.0 / total, 2)


def _csv_safe(value: str) -> str:
    if value and value.startswith(_CSV_DANGEROUS_PREFIXES):
        return f"'{value}"
    return value


def _rfc3339(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def _write_csv_row(values: Sequence[Any]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(values)
    return output.getvalue()


def _export_row(row: ProvisioningLog) -> list[str]:
    return [
        _rfc3339(row.created_at),
        _csv_safe(row.operation),
        _csv_safe(row.resource_type),
        "success" if row.success else "failed",
        "inbound",
        str(row.duration_ms),
        _csv_safe(row.error_message or ""),
    ]


class AuditEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Clock,
        tasks: BackgroundTasks,
        policy: SecurityPolicy | None = None,
        id_factory: IdFactory = generate_ulid,
        export_max_rows: int = 10_000,
        health_min_success_rate: float = 95.0,
    ) -> None:
        self._sessions = session_factory
        self._clock = clock
        self._tasks = tasks
        self._policy = policy or SecurityPolicy()
        self._new_id = id_factory
        self._export_max_rows = export_max_rows
        self._health_threshold = health_min_success_rate

    # ── Writes ──────────────────────────────────────────────────────────────

    def _prepare(self, entry: LogEntry) -> LogEntry | None:
        """Apply the audit policy; ``None`` when the entry is not to be stored."""
        if not self._policy.audit_all_operations and entry.succeeded:
            return None
        if self._policy.mask_sensitive_data:
            entry = replace(
                entry,
                error_message=mask_sensitive(entry.error_message) if entry.error_message else None,
                details=mask_details(entry.details) if entry.details else entry.details,
            )
        return entry

    def record(self, entry: LogEntry) -> None:
        """Fire-and-forget append. Never raises."""
        self._tasks.spawn(self._record(entry), name=f"audit:{entry.operation}")

    async def _record(self, entry: LogEntry) -> None:
        try:
            await self.write(entry)
        except Exception as exc:
            logger.warning(
                "Audit append failed",
                operation=entry.operation,
                scope=str(entry.scope),
                error=str(exc),
            )

    async def write(self, entry: LogEntry) -> ProvisioningLog | None:
        prepared = self._prepare(entry)
        if prepared is None:
            return None
        row = ProvisioningLog(
            id=self._new_id(),
            **prepared.scope.as_columns(),
            token_id=prepared.token_id,
            operation=prepared.operation,
            resource_type=prepared.resource_type,
            resource_id=prepared.resource_id,
            external_id=prepared.external_id,
            method=prepared.method,
            path=prepared.path,
            status_code=prepared.status_code,
            success=prepared.succeeded,
            duration_ms=max(prepared.duration_ms, 0),
            ip_address=prepared.ip_address,
            user_agent=prepared.user_agent,
            error_message=prepared.error_message,
            details=prepared.details,
            created_at=self._clock.now(),
        )
        async with transaction(self._sessions) as session:
            session.add(row)
        return row

    @asynccontextmanager
    async def track(
        self,
        scope: Scope,
        operation: str,
        resource_type: str,
        *,
        method: str = "GET",
        path: str = "",
        token_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AsyncIterator[TrackedOperation]:
        """Time the enclosed block and record its outcome; exceptions propagate."""
        outcome = TrackedOperation()
        started = self._clock.monotonic()
        try:
            yield outcome
        except BaseException as exc:
            if outcome.status_code < 400:
                outcome.status_code = 500
            if outcome.error_message is None:
                outcome.error_message = (
                    exc.message if isinstance(exc, ProvisioningError) else str(exc) or type(exc).__name__
                )
            raise
        finally:
            elapsed = self._clock.monotonic() - started
            self.record(
                LogEntry(
                    scope=scope,
                    operation=operation,
                    resource_type=resource_type,
                    method=method,
                    path=path,
                    status_code=outcome.status_code,
                    duration_ms=int(elapsed * 1000),
                    token_id=token_id,
                    resource_id=outcome.resource_id,
                    external_id=outcome.external_id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    error_message=outcome.error_message,
                    details=outcome.details or None,
                )
            )

    # ── Reads ───────────────────────────────────────────────────────────────

    async def query(
        self,
        scope: Scope,
        filters: LogFilters = LogFilters(),
        page: Pagination = Pagination(),
    ) -> tuple[list[ProvisioningLog], int]:
        """Newest first, plus the total matching row count."""
        where = [*scope.matches(ProvisioningLog), *filters.clauses()]
        async with transaction(self._sessions) as session:
            total = (
                await session.execute(select(func.count()).select_from(ProvisioningLog).where(*where))
            ).scalar_one()
            result = await session.execute(
                select(ProvisioningLog)
                .where(*where)
                .order_by(ProvisioningLog.created_at.desc(), ProvisioningLog.id.desc())
                .offset(page.offset)
                .limit(page.limit)
            )
            return list(result.scalars().all()), total

    async def stats(
        self, scope: Scope, start: datetime | None = None, end: datetime | None = None
    ) -> ProvisioningStats:
        """Aggregate over ``[start, end]``; all time when both are omitted."""
        where = [*scope.matches(ProvisioningLog), *LogFilters(start=start, end=end).clauses()]
        success_sum = func.coalesce(
            func.sum(case((ProvisioningLog.success.is_(True), 1), else_=0)), 0
        )
        async with transaction(self._sessions) as session:
            total, succeeded, avg_duration = (
                await session.execute(
                    select(func.count(), success_sum, func.avg(ProvisioningLog.duration_ms)).where(
                        *where
                    )
                )
            ).one()
            by_type = await session.execute(
                select(ProvisioningLog.operation, func.count())
                .where(*where)
                .group_by(ProvisioningLog.operation)
            )
            by_resource = await session.execute(
                select(ProvisioningLog.resource_type, func.count())
                .where(*where)
                .group_by(ProvisioningLog.resource_type)
            )
            operations_by_type = dict(by_type.tuples().all())
            operations_by_resource_type = dict(by_resource.tuples().all())

        total = int(total or 0)
        succeeded = int(succeeded or 0)
        failed = total - succeeded
        return ProvisioningStats(
            total_operations=total,
            success_count=succeeded,
            failed_count=failed,
            success_rate=success_rate(succeeded, total),
            operations_by_type=operations_by_type,
            operations_by_resource_type=operations_by_resource_type,
            operations_by_status={"success": succeeded, "failed": failed},
            average_duration_ms=round(float(avg_duration), 2) if avg_duration is not None else 0.0,
        )

    async def health(self, scope: Scope, window: timedelta = timedelta(hours=24)) -> HealthSummary:
        now = self._clock.now()
        stats = await self.stats(scope, now - window, now)
        async with transaction(self._sessions) as session:
            last = (
                await session.execute(
                    select(ProvisioningLog)
                    .where(*scope.matches(ProvisioningLog))
                    .order_by(ProvisioningLog.created_at.desc(), ProvisioningLog.id.desc())
                    .limit(1)
                )
            ).scalar_one_or_none()
        healthy = stats.total_operations == 0 or stats.success_rate >= self._health_threshold
        return HealthSummary(
            window_hours=int(window.total_seconds() // 3600),
            total_operations=stats.total_operations,
            success_count=stats.success_count,
            failed_count=stats.failed_count,
            success_rate=stats.success_rate,
            last_operation_at=last.created_at if last else None,
            last_operation_success=last.success if last else None,
            healthy=healthy,
        )

    # ── Export ──────────────────────────────────────────────────────────────

    async def _export_rows(
        self, scope: Scope, filters: LogFilters
    ) -> AsyncIterator[ProvisioningLog]:
        """Newest first, paged by keyset on (created_at, id).

        Rows appended while an export runs sort above the cursor and are left
        out, so the pages never overlap or skip.
        """
        where = [*scope.matches(ProvisioningLog), *filters.clauses()]
        sent = 0
        cursor: tuple[datetime, str] | None = None
        while sent < self._export_max_rows:
            batch = min(EXPORT_BATCH, self._export_max_rows - sent)
            stmt = select(ProvisioningLog).where(*where)
            if cursor is not None:
                created_at, row_id = cursor
                stmt = stmt.where(
                    or_(
                        ProvisioningLog.created_at < created_at,
                        and_(ProvisioningLog.created_at == created_at, ProvisioningLog.id < row_id),
                    )
                )
            async with transaction(self._sessions) as session:
                result = await session.execute(
                    stmt.order_by(ProvisioningLog.created_at.desc(), ProvisioningLog.id.desc())
                    .limit(batch)
                )
                rows = list(result.scalars().all())
            for row in rows:
                yield row
            sent += len(rows)
            if len(rows) < batch:
                return
            cursor = (rows[-1].created_at, rows[-1].id)

    async def export(
        self, scope: Scope, filters: LogFilters = LogFilters(), fmt: ExportFormat = "csv"
    ) -> AsyncIterator[str]:
        """Stream matching logs, newest first, capped at ``export_max_rows``."""
        if fmt not in ("csv", "json"):
            raise ValidationError(f"unsupported export format {fmt!r}")

        if fmt == "csv":
            yield _write_csv_row(EXPORT_COLUMNS)
            async for row in self._export_rows(scope, filters):
                yield _write_csv_row(_export_row(row))
            return

        yield "["
        first = True
        async for row in self._export_rows(scope, filters):
            item = {
                "id": row.id,
                "timestamp": _rfc3339(row.created_at),
                "operation": row.operation,
                "resource_type": row.resource_type,
                "resource_id": row.resource_id,
                "status": "success" if row.success else "failed",
                "status_code": row.status_code,
                "direction": "inbound",
                "duration_ms": row.duration_ms,
                "error": row.error_message,
            }
            yield ("" if first else ",") + json.dumps(item, sort_keys=True)
            first = False
        yield "]"
