"""Declarative base and shared mixins."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from scimgate.core.clock import generate_ulid

# Stored value for "no organization" so composite unique indexes treat it as a value
NO_ORGANIZATION = ""


class UTCDateTime(TypeDecorator):
    """Timezone-aware DateTime that always comes back as UTC, SQLite included."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class Base(DeclarativeBase):
    """Shared declarative base for all models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Adds created_at / updated_at columns to a model.

    Services pass explicit values from their injected clock; the defaults only
    cover rows written outside of them.
    """

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=_utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )


class ULIDPrimaryKeyMixin:
    """Adds a lexically sortable ULID primary key column."""

    id: Mapped[str] = mapped_column(
        String(26),
        primary_key=True,
        default=generate_ulid,
        nullable=False,
    )


class ScopeMixin:
    """The (application, environment, organization) tenancy key."""

    app_id: Mapped[str] = mapped_column(String(26), nullable=False)
    environment_id: Mapped[str] = mapped_column(String(26), nullable=False)
    organization_id: Mapped[str] = mapped_column(
        String(26), nullable=False, default=NO_ORGANIZATION, server_default=""
    )
