"""Tenancy scope and pagination value types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from scimgate.core.errors import InvalidScope
from scimgate.models.base import NO_ORGANIZATION

TenancyMode = Literal["application", "organization"]


@dataclass(frozen=True)
class Scope:
    """(application, environment, organization) key partitioning all provisioning data."""

    app_id: str
    environment_id: str
    organization_id: str | None = None

    @property
    def org_key(self) -> str:
        """Organization id as stored (empty string when absent)."""
        return self.organization_id or NO_ORGANIZATION

    @property
    def is_organization(self) -> bool:
        return bool(self.organization_id)

    def parent(self) -> Scope | None:
        """The application-level scope an organization scope inherits from."""
        if not self.is_organization:
            return None
        return Scope(self.app_id, self.environment_id)

    def validate(self, mode: TenancyMode = "application") -> Scope:
        missing = [
            name
            for name, value in (("app_id", self.app_id), ("environment_id", self.environment_id))
            if not value
        ]
        if mode == "organization" and not self.organization_id:
            missing.append("organization_id")
        if missing:
            raise InvalidScope(
                f"scope is incomplete for {mode} tenancy: missing {', '.join(missing)}",
                missing=missing,
            )
        return self

    def matches(self, model) -> list:
        """WHERE clauses selecting rows of *model* in exactly this scope."""
        return [
            model.app_id == self.app_id,
            model.environment_id == self.environment_id,
            model.organization_id == self.org_key,
        ]

    def as_columns(self) -> dict[str, str]:
        return {
            "app_id": self.app_id,
            "environment_id": self.environment_id,
            "organization_id": self.org_key,
        }

    @classmethod
    def of(cls, row) -> Scope:
        """Scope of a persisted row carrying the scope columns."""
        return cls(row.app_id, row.environment_id, row.organization_id or None)

    def __str__(self) -> str:
        return f"{self.app_id}/{self.environment_id}/{self.organization_id or '-'}"


@dataclass(frozen=True)
class Pagination:
    limit: int = 50
    offset: int = 0

    def __post_init__(self) -> None:
        if self.limit < 1 or self.offset < 0:
            raise ValueError("limit must be >= 1 and offset >= 0")
