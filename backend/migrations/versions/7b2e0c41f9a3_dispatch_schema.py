"""Dispatch schema: customers, workers, service requests and their logs.

Revision ID: 7b2e0c41f9a3
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7b2e0c41f9a3"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("customer_id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), server_default="", nullable=False),
        sa.Column("phone", sa.String(length=20), server_default="", nullable=False),
        sa.Column("phone_key", sa.String(length=20), nullable=True),
        sa.Column("email", sa.String(length=255), server_default="", nullable=False),
        sa.Column("city", sa.String(length=100), server_default="", nullable=False),
        sa.Column("pincode", sa.String(length=10), server_default="", nullable=False),
        sa.Column("address", sa.Text(), server_default="", nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("customer_id"),
        sa.UniqueConstraint("phone_key", name="uq_customers_phone_key"),
        if_not_exists=True,
    )
    op.create_index("ix_customers_phone", "customers", ["phone"], if_not_exists=True)
    op.create_index("ix_customers_email", "customers", ["email"], if_not_exists=True)

    op.create_table(
        "workers",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("worker_id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("phone_secondary", sa.String(length=20), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("house_no", sa.String(length=100), nullable=True),
        sa.Column("area", sa.String(length=100), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("district", sa.String(length=100), nullable=True),
        sa.Column("state", sa.String(length=100), nullable=True),
        sa.Column("pincode", sa.String(length=10), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("referral_code", sa.String(length=20), nullable=True),
        sa.Column("referred_by", sa.String(length=32), nullable=True),
        sa.Column("status", sa.String(length=20), server_default="PENDING", nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("worker_id"),
        if_not_exists=True,
    )
    op.create_index("ix_workers_phone", "workers", ["phone"], if_not_exists=True)
    op.create_index("ix_workers_city", "workers", ["city"], if_not_exists=True)
    op.create_index("ix_workers_status", "workers", ["status"], if_not_exists=True)

    op.create_table(
        "verified_workers",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("worker_id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("area", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), server_default="VERIFIED", nullable=False),
        sa.UniqueConstraint("worker_id"),
        if_not_exists=True,
    )
    op.create_index(
        "ix_verified_workers_city", "verified_workers", ["city"], if_not_exists=True
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("user_type", sa.String(length=20), server_default="customer", nullable=False),
        sa.Column("username", sa.String(length=100), nullable=True),
        sa.Column("auth_provider", sa.String(length=20), server_default="phone", nullable=False),
        _created_at(),
        sa.UniqueConstraint("user_id"),
        if_not_exists=True,
    )
    op.create_index("ix_users_phone", "users", ["phone"], if_not_exists=True)
    op.create_index("ix_users_email", "users", ["email"], if_not_exists=True)

    op.create_table(
        "service_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("request_id", sa.String(length=32), nullable=False),
        sa.Column("customer_id", sa.String(length=32), nullable=False),
        # NULL while the request is a broadcast
        sa.Column("worker_id", sa.String(length=32), nullable=True),
        sa.Column("service_type", sa.String(length=50), nullable=False),
        sa.Column("urgency", sa.String(length=50), server_default="", nullable=False),
        sa.Column("status", sa.String(length=20), server_default="NEW", nullable=False),
        sa.Column("preferred_date", sa.String(length=20), server_default="", nullable=False),
        sa.Column("preferred_slot", sa.String(length=50), server_default="", nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("city", sa.String(length=100), server_default="", nullable=False),
        sa.Column("pincode", sa.String(length=10), server_default="", nullable=False),
        sa.Column("address", sa.Text(), server_default="", nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("customer_name", sa.String(length=255), server_default="", nullable=False),
        sa.Column("customer_phone", sa.String(length=20), server_default="", nullable=False),
        sa.Column("customer_address", sa.Text(), server_default="", nullable=False),
        sa.Column("customer_city", sa.String(length=100), server_default="", nullable=False),
        sa.Column("worker_name", sa.String(length=255), nullable=True),
        sa.Column("worker_phone", sa.String(length=20), nullable=True),
        sa.Column("worker_city", sa.String(length=100), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("request_id"),
        sa.CheckConstraint(
            "status IN ('NEW', 'ACCEPTED', 'SUCCESS', 'CANCELLED', 'PAID')",
            name="ck_service_requests_status",
        ),
        if_not_exists=True,
    )
    op.create_index(
        "ix_service_requests_customer_id",
        "service_requests",
        ["customer_id"],
        if_not_exists=True,
    )
    op.create_index(
        "ix_service_requests_status_worker",
        "service_requests",
        ["status", "worker_id"],
        if_not_exists=True,
    )
    op.create_index(
        "idx_service_requests_recent",
        "service_requests",
        [sa.text("created_at DESC")],
        if_not_exists=True,
    )

    op.create_table(
        "request_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("request_id", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        if_not_exists=True,
    )
    op.create_index(
        "ix_request_logs_request_id_created_at",
        "request_logs",
        ["request_id", "created_at"],
        if_not_exists=True,
    )

    op.create_table(
        "sync_checkpoints",
        sa.Column("source", sa.String(length=50), primary_key=True, nullable=False),
        sa.Column(
            "last_sync_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("record_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("error_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        if_not_exists=True,
    )


def downgrade() -> None:
    op.drop_table("sync_checkpoints", if_exists=True)
    op.drop_index("ix_request_logs_request_id_created_at", table_name="request_logs", if_exists=True)
    op.drop_table("request_logs", if_exists=True)
    op.drop_index("idx_service_requests_recent", table_name="service_requests", if_exists=True)
    op.drop_index("ix_service_requests_status_worker", table_name="service_requests", if_exists=True)
    op.drop_index("ix_service_requests_customer_id", table_name="service_requests", if_exists=True)
    op.drop_table("service_requests", if_exists=True)
    op.drop_table("users", if_exists=True)
    op.drop_table("verified_workers", if_exists=True)
    op.drop_table("workers", if_exists=True)
    op.drop_table("customers", if_exists=True)
