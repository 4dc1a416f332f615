"""ControlPlane — every provisioning component wired by explicit constructor injection."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scimgate.core.clock import Clock, IdFactory, RandomSource, SystemClock, generate_ulid, system_random
from scimgate.core.config import Settings
from scimgate.core.logging import get_logger
from scimgate.core.tasks import BackgroundTasks
from scimgate.provisioning.audit import AuditEngine
from scimgate.provisioning.mappings import MappingResolver
from scimgate.provisioning.policy import SecurityPolicy
from scimgate.provisioning.ratelimit import TokenBucketLimiter
from scimgate.provisioning.tokens import TokenLifecycleManager

logger = get_logger(__name__)


@dataclass
class ControlPlane:
    settings: Settings
    clock: Clock
    tasks: BackgroundTasks
    policy: SecurityPolicy
    limiter: TokenBucketLimiter
    tokens: TokenLifecycleManager
    mappings: MappingResolver
    audit: AuditEngine
    health_window: timedelta = field(default=timedelta(hours=24))

    @classmethod
    def build(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Clock | None = None,
        random_source: RandomSource = system_random,
        id_factory: IdFactory = generate_ulid,
    ) -> ControlPlane:
        clock = clock or SystemClock()
        tasks = BackgroundTasks()
        policy = SecurityPolicy.from_config(settings.security)
        return cls(
            settings=settings,
            clock=clock,
            tasks=tasks,
            policy=policy,
            limiter=TokenBucketLimiter.from_config(settings.rate_limit, clock),
            tokens=TokenLifecycleManager(
                session_factory,
                clock=clock,
                tasks=tasks,
                random_source=random_source,
                id_factory=id_factory,
                tenancy_mode=settings.tenancy_mode,
                default_lifetime=timedelta(days=settings.token_expiry_days),
                hash_rounds=settings.token_hash_rounds,
            ),
            mappings=MappingResolver(
                session_factory,
                clock=clock,
                defaults=settings.attribute_defaults,
                group_sync=settings.group_sync,
                id_factory=id_factory,
            ),
            audit=AuditEngine(
                session_factory,
                clock=clock,
                tasks=tasks,
                policy=policy,
                id_factory=id_factory,
                export_max_rows=settings.export_max_rows,
                health_min_success_rate=settings.health_min_success_rate,
            ),
            health_window=timedelta(hours=settings.health_window_hours),
        )

    async def aclose(self, timeout: float | None = 10.0) -> None:
        """Flush in-flight usage bumps and audit appends."""
        pending = self.tasks.pending
        await self.tasks.drain(timeout)
        if pending:
            logger.info("Background tasks drained", count=pending)
