"""Initial schema: keys, providers, proxies, payments, packages, request logs

Revision ID: 3c1f0a9d2b7e
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "3c1f0a9d2b7e"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "keys",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("credit", sa.Integer(), nullable=False),
        sa.Column("max_activations", sa.Integer(), nullable=False),
        sa.Column("note", sa.String(500), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("credit >= 0", name="ck_keys_credit_non_negative"),
    )
    op.create_index("ix_keys_key", "keys", ["key"], unique=True)

    op.create_table(
        "providers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(64), nullable=False, unique=True),
        sa.Column("api_keys", JSONType, nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "uq_providers_name_lower",
        "providers",
        [sa.text("lower(name)")],
        unique=True,
    )

    op.create_table(
        "provider_key_statuses",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "provider_id",
            sa.Uuid(),
            sa.ForeignKey("providers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("key", sa.String(512), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("quota_exceeded", sa.Boolean(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_error_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("request_count", sa.Integer(), nullable=False),
        sa.Column("last_used", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("provider_id", "key", name="uq_provider_key_statuses_key"),
    )
    op.create_index(
        "ix_provider_key_statuses_provider_id",
        "provider_key_statuses",
        ["provider_id"],
    )

    op.create_table(
        "proxies",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("host", sa.String(255), nullable=False),
        sa.Column("port", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(255), nullable=True),
        sa.Column("password", sa.String(255), nullable=True),
        sa.Column("protocol", sa.String(16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("location", sa.String(128), nullable=False),
        sa.Column("provider", sa.String(128), nullable=False),
        sa.Column("last_used", sa.DateTime(timezone=True), nullable=True),
        sa.Column("success_count", sa.Integer(), nullable=False),
        sa.Column("failure_count", sa.Integer(), nullable=False),
        sa.Column("avg_response_time", sa.Float(), nullable=False),
        sa.Column("assigned_api_key", sa.String(512), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("host", "port", name="uq_proxies_host_port"),
        sa.CheckConstraint(
            "port >= 1 AND port <= 65535", name="ck_proxies_port_range"
        ),
    )
    op.create_index(
        "ix_proxies_assigned_api_key", "proxies", ["assigned_api_key"], unique=True
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_key", sa.String(128), nullable=False),
        sa.Column("credit_amount", sa.Integer(), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("transaction_id", sa.String(255), nullable=True, unique=True),
        sa.Column("order_code", sa.BigInteger(), nullable=True, unique=True),
        sa.Column("payment_data", JSONType, nullable=False),
        sa.Column("metadata", JSONType, nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("credit_amount >= 1", name="ck_payments_credit_amount"),
    )
    op.create_index(
        "ix_payments_status_expired_at", "payments", ["status", "expired_at"]
    )
    op.create_index(
        "ix_payments_user_key_created_at", "payments", ["user_key", "created_at"]
    )

    op.create_table(
        "credit_packages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("bonus", sa.String(128), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("is_popular", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_credit_packages_credits", "credit_packages", ["credits"])

    op.create_table(
        "api_request_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("provider", sa.String(64), nullable=False),
        sa.Column("user_key", sa.String(128), nullable=False),
        sa.Column("request_type", sa.String(16), nullable=False),
        sa.Column("prompt_length", sa.Integer(), nullable=False),
        sa.Column("response_length", sa.Integer(), nullable=False),
        sa.Column("token_usage", sa.Integer(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("retries", sa.Integer(), nullable=False),
        sa.Column("duration_ms", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_api_request_logs_provider", "api_request_logs", ["provider"])
    op.create_index("ix_api_request_logs_user_key", "api_request_logs", ["user_key"])
    op.create_index(
        "ix_api_request_logs_created_at", "api_request_logs", ["created_at"]
    )


def downgrade() -> None:
    op.drop_table("api_request_logs")
    op.drop_table("credit_packages")
    op.drop_table("payments")
    op.drop_table("proxies")
    op.drop_table("provider_key_statuses")
    op.drop_index("uq_providers_name_lower", table_name="providers")
    op.drop_table("providers")
    op.drop_table("keys")
