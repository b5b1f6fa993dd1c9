"""Initial schema for the request lifecycle.

Revision ID: 001
Revises: None
Create Date: 2026-03-01 00:00:00.000000+00:00

Creates the tables owned by the lifecycle core:
- delivery_requests (one negotiation per vehicle movement)
- delivery_request_events (append-only audit trail)
- jobs (side-effect queue)

vehicles, vehicle_history, clients, addresses and collection_fees belong to
other services and are not touched here.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Apply migration: lifecycle tables, enum types and audit immutability."""
    request_status = postgresql.ENUM(
        "requested",
        "approved",
        "scheduled",
        "in_transit",
        "delivered",
        "rejected",
        "canceled",
        name="delivery_request_status",
        create_type=False,
    )
    request_status.create(op.get_bind(), checkfirst=True)

    event_type = postgresql.ENUM(
        "proposed",
        "approved",
        "rejected",
        "scheduled",
        "in_transit",
        "delivered",
        "canceled",
        name="delivery_event_type",
        create_type=False,
    )
    event_type.create(op.get_bind(), checkfirst=True)

    actor_role = postgresql.ENUM(
        "admin", "client", "specialist", name="actor_role", create_type=False
    )
    actor_role.create(op.get_bind(), checkfirst=True)

    job_status = postgresql.ENUM(
        "pending",
        "running",
        "completed",
        "failed",
        "cancelled",
        name="job_status",
        create_type=False,
    )
    job_status.create(op.get_bind(), checkfirst=True)

    # -------------------------------------------------------------------------
    # delivery_requests
    # -------------------------------------------------------------------------
    op.create_table(
        "delivery_requests",
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("vehicle_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("client_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("address_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("collection_address_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "status",
            request_status,
            nullable=False,
            server_default=sa.text("'requested'"),
        ),
        sa.Column("desired_date", sa.Date(), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("approved_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("fee_amount", sa.Numeric(10, 2), nullable=True),
        sa.CheckConstraint(
            "(window_start IS NULL) = (window_end IS NULL)",
            name=op.f("ck_delivery_requests_window_pair"),
        ),
        sa.CheckConstraint(
            "window_end IS NULL OR window_end > window_start",
            name=op.f("ck_delivery_requests_window_order"),
        ),
        sa.CheckConstraint(
            "address_id IS NULL OR collection_address_id IS NULL",
            name=op.f("ck_delivery_requests_single_address_role"),
        ),
        sa.PrimaryKeyConstraint("request_id", name=op.f("pk_delivery_requests")),
    )
    op.create_index(
        op.f("ix_delivery_requests_client_id_status"),
        "delivery_requests",
        ["client_id", "status"],
        unique=False,
    )
    op.create_index(
        op.f("ix_delivery_requests_vehicle_id"),
        "delivery_requests",
        ["vehicle_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_delivery_requests_status"),
        "delivery_requests",
        ["status"],
        unique=False,
    )
    op.create_index(
        op.f("uq_delivery_requests_active_vehicle_kind"),
        "delivery_requests",
        ["vehicle_id", sa.text("(address_id IS NULL)")],
        unique=True,
        postgresql_where=sa.text("status IN ('requested', 'approved', 'scheduled')"),
    )

    # -------------------------------------------------------------------------
    # delivery_request_events
    # -------------------------------------------------------------------------
    op.create_table(
        "delivery_request_events",
        sa.Column(
            "event_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", event_type, nullable=False),
        sa.Column("status_from", request_status, nullable=True),
        sa.Column("status_to", request_status, nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("actor_role", actor_role, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "event_time",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["request_id"],
            ["delivery_requests.request_id"],
            name=op.f("fk_delivery_request_events_request_id_delivery_requests"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("event_id", name=op.f("pk_delivery_request_events")),
    )
    op.create_index(
        op.f("ix_delivery_request_events_request_id_time"),
        "delivery_request_events",
        ["request_id", "event_time"],
        unique=False,
    )

    # Audit rows are insert-only
    op.execute(
        """
        CREATE OR REPLACE FUNCTION delivery_request_events_immutable()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'delivery_request_events rows are immutable';
        END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_delivery_request_events_immutable
        BEFORE UPDATE OR DELETE ON delivery_request_events
        FOR EACH ROW EXECUTE FUNCTION delivery_request_events_immutable()
        """
    )

    # -------------------------------------------------------------------------
    # jobs
    # -------------------------------------------------------------------------
    op.create_table(
        "jobs",
        sa.Column(
            "job_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("job_type", sa.String(100), nullable=False),
        sa.Column("status", job_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(255), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default=sa.text("3")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "base_backoff_seconds",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("30"),
        ),
        sa.Column("payload_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("result_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("queue", sa.String(100), nullable=False, server_default="default"),
        sa.Column("correlation_id", sa.String(255), nullable=True),
        sa.Column("duration_ms", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("job_id", name=op.f("pk_jobs")),
    )
    op.create_index(
        op.f("ix_jobs_queue_pending"),
        "jobs",
        ["queue", "status", "run_at", "priority"],
        unique=False,
    )
    op.create_index(op.f("ix_jobs_status"), "jobs", ["status"], unique=False)
    op.create_index(op.f("ix_jobs_correlation_id"), "jobs", ["correlation_id"], unique=False)
    op.create_index(op.f("ix_jobs_completed_at"), "jobs", ["completed_at"], unique=False)


def downgrade() -> None:
    """Revert migration: drop lifecycle tables and enum types."""
    op.drop_table("jobs")
    op.execute(
        "DROP TRIGGER IF EXISTS trg_delivery_request_events_immutable ON delivery_request_events"
    )
    op.execute("DROP FUNCTION IF EXISTS delivery_request_events_immutable()")
    op.drop_table("delivery_request_events")
    op.drop_table("delivery_requests")

    op.execute("DROP TYPE IF EXISTS job_status")
    op.execute("DROP TYPE IF EXISTS actor_role")
    op.execute("DROP TYPE IF EXISTS delivery_event_type")
    op.execute("DROP TYPE IF EXISTS delivery_request_status")
