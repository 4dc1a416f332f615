"""Provisioning schema: tokens, attribute mappings, group mappings, logs.

Revision ID: 0001
Revises:
Create Date: 2026-01-01 00:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _scope_columns() -> list[sa.Column]:
    return [
        sa.Column("app_id", sa.String(26), nullable=False),
        sa.Column("environment_id", sa.String(26), nullable=False),
        sa.Column("organization_id", sa.String(26), nullable=False, server_default=""),
    ]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # ── provisioning_tokens ─────────────────────────────────────────────────
    op.create_table(
        "provisioning_tokens",
        sa.Column("id", sa.String(26), primary_key=True, nullable=False),
        *_scope_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("token_prefix", sa.String(32), nullable=False, unique=True),
        sa.Column("token_hash", sa.Text(), nullable=False),
        sa.Column("scopes", sa.JSON(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rotated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_provisioning_tokens_scope",
        "provisioning_tokens",
        ["app_id", "environment_id", "organization_id"],
    )

    # ── attribute_mappings ──────────────────────────────────────────────────
    op.create_table(
        "attribute_mappings",
        sa.Column("id", sa.String(26), primary_key=True, nullable=False),
        *_scope_columns(),
        sa.Column("username_field", sa.String(255), nullable=True),
        sa.Column("email_field", sa.String(255), nullable=True),
        sa.Column("given_name_field", sa.String(255), nullable=True),
        sa.Column("family_name_field", sa.String(255), nullable=True),
        sa.Column("display_name_field", sa.String(255), nullable=True),
        sa.Column("active_field", sa.String(255), nullable=True),
        sa.Column("employee_number_field", sa.String(255), nullable=True),
        sa.Column("department_field", sa.String(255), nullable=True),
        sa.Column("manager_field", sa.String(255), nullable=True),
        sa.Column("custom", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "app_id", "environment_id", "organization_id", name="uq_attribute_mappings_scope"
        ),
    )

    # ── group_mappings ──────────────────────────────────────────────────────
    op.create_table(
        "group_mappings",
        sa.Column("id", sa.String(26), primary_key=True, nullable=False),
        *_scope_columns(),
        sa.Column("scim_group_id", sa.String(255), nullable=False),
        sa.Column("scim_group_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("target_id", sa.String(64), nullable=False),
        sa.Column("target_type", sa.String(20), nullable=False, server_default="team"),
        sa.Column("target_schema", sa.String(20), nullable=True),
        sa.Column("creation_source", sa.String(20), nullable=False, server_default="manual"),
        sa.Column(
            "delete_when_empty", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "app_id", "environment_id", "organization_id", "scim_group_id",
            name="uq_group_mappings_scim_group",
        ),
        sa.UniqueConstraint(
            "app_id", "environment_id", "organization_id", "idempotency_key",
            name="uq_group_mappings_idempotency_key",
        ),
    )
    op.create_index("ix_group_mappings_target_id", "group_mappings", ["target_id"])

    # ── provisioning_logs ───────────────────────────────────────────────────
    op.create_table(
        "provisioning_logs",
        sa.Column("id", sa.String(26), primary_key=True, nullable=False),
        *_scope_columns(),
        sa.Column("token_id", sa.String(26), nullable=True),
        sa.Column("operation", sa.String(64), nullable=False),
        sa.Column("resource_type", sa.String(32), nullable=False),
        sa.Column("resource_id", sa.String(255), nullable=True),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("method", sa.String(10), nullable=False),
        sa.Column("path", sa.String(1024), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("duration_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_provisioning_logs_scope",
        "provisioning_logs",
        ["app_id", "environment_id", "organization_id"],
    )
    op.create_index("ix_provisioning_logs_created_at", "provisioning_logs", ["created_at"])
    op.create_index("ix_provisioning_logs_operation", "provisioning_logs", ["operation"])


def downgrade() -> None:
    op.drop_table("provisioning_logs")
    op.drop_table("group_mappings")
    op.drop_table("attribute_mappings")
    op.drop_table("provisioning_tokens")
