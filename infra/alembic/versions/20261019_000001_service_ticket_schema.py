"""Service ticket, case and status update schema."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "service_tickets",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("ticket_number", sa.String(length=32), nullable=False),
        sa.Column("customer_id", sa.String(length=36), nullable=False),
        sa.Column("complaint", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=True),
        sa.Column("location_id", sa.String(length=36), nullable=True),
        sa.Column("due_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("vehicle_make", sa.String(length=100), nullable=True),
        sa.Column("vehicle_model", sa.String(length=100), nullable=True),
        sa.Column("vehicle_reg_no", sa.String(length=32), nullable=True),
        sa.Column("vehicle_year", sa.Integer(), nullable=True),
        sa.Column("customer_bringing", sa.String(length=16), nullable=True),
        sa.Column("triaged_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("triaged_by", sa.String(length=255), nullable=True),
        sa.Column("triage_notes", sa.Text(), nullable=True),
        sa.Column("vehicle_case_id", sa.String(length=36), nullable=True),
        sa.Column("battery_case_id", sa.String(length=36), nullable=True),
        sa.Column("assigned_to", sa.String(length=255), nullable=True),
        sa.Column("assigned_by", sa.String(length=255), nullable=True),
        sa.Column("assigned_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("closed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("updated_by", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.UniqueConstraint("location_id", "ticket_number", name="uq_ticket_number_per_location"),
    )
    op.create_index("ix_service_tickets_status", "service_tickets", ["status"])
    op.create_index("ix_service_tickets_location_id", "service_tickets", ["location_id"])
    op.create_index("ix_service_tickets_assigned_to", "service_tickets", ["assigned_to"])

    op.create_table(
        "vehicle_cases",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "ticket_id",
            sa.String(length=36),
            sa.ForeignKey("service_tickets.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("vehicle_make", sa.String(length=100), nullable=True),
        sa.Column("vehicle_model", sa.String(length=100), nullable=True),
        sa.Column("vehicle_reg_no", sa.String(length=32), nullable=True),
        sa.Column("vehicle_year", sa.Integer(), nullable=True),
        sa.Column("initial_diagnosis", sa.Text(), nullable=True),
        sa.Column("diagnostic_notes", sa.Text(), nullable=True),
        sa.Column("technician_notes", sa.Text(), nullable=True),
        sa.Column("assigned_technician", sa.String(length=255), nullable=True),
        sa.Column("estimated_cost", sa.Float(), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "battery_cases",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "ticket_id",
            sa.String(length=36),
            sa.ForeignKey("service_tickets.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("serial_number", sa.String(length=100), nullable=True),
        sa.Column("battery_type", sa.String(length=32), nullable=True),
        sa.Column("initial_diagnosis", sa.Text(), nullable=True),
        sa.Column("diagnostic_notes", sa.Text(), nullable=True),
        sa.Column("technician_notes", sa.Text(), nullable=True),
        sa.Column("assigned_technician", sa.String(length=255), nullable=True),
        sa.Column("estimated_cost", sa.Float(), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "ticket_status_updates",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "ticket_id",
            sa.String(length=36),
            sa.ForeignKey("service_tickets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("author", sa.String(length=255), nullable=False),
        sa.Column("is_system_update", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_ticket_status_updates_ticket_id", "ticket_status_updates", ["ticket_id"])


def downgrade() -> None:
    op.drop_index("ix_ticket_status_updates_ticket_id", table_name="ticket_status_updates")
    op.drop_table("ticket_status_updates")
    op.drop_table("battery_cases")
    op.drop_table("vehicle_cases")
    op.drop_index("ix_service_tickets_assigned_to", table_name="service_tickets")
    op.drop_index("ix_service_tickets_location_id", table_name="service_tickets")
    op.drop_index("ix_service_tickets_status", table_name="service_tickets")
    op.drop_table("service_tickets")
