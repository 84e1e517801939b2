"""SQLModel table definitions for the evdesk data layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class ServiceTicketTable(SQLModel, table=True):
    """Service tickets logged at the front desk."""

    __tablename__ = "service_tickets"
    __table_args__ = (UniqueConstraint("location_id", "ticket_number", name="uq_ticket_number_per_location"),)

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_number: str = Field(sa_column=Column(String(32), nullable=False))
    customer_id: str = Field(sa_column=Column(String(36), nullable=False))
    complaint: str = Field(sa_column=Column(Text, nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    status: str = Field(sa_column=Column(String(32), nullable=False, index=True))
    priority: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    location_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True, index=True))
    due_date: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))

    vehicle_make: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    vehicle_model: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    vehicle_reg_no: str | None = Field(default=None, sa_column=Column(String(32), nullable=True))
    vehicle_year: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))

    customer_bringing: str | None = Field(default=None, sa_column=Column(String(16), nullable=True))
    triaged_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    triaged_by: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    triage_notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    # Plain columns: the case tables reference tickets, not the other way round.
    vehicle_case_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    battery_case_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))

    assigned_to: str | None = Field(default=None, sa_column=Column(String(255), nullable=True, index=True))
    assigned_by: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    assigned_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))

    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    delivered_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    closed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))

    created_by: str = Field(sa_column=Column(String(255), nullable=False))
    updated_by: str = Field(sa_column=Column(String(255), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    version: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))


class VehicleCaseTable(SQLModel, table=True):
    """Vehicle service cases created at triage."""

    __tablename__ = "vehicle_cases"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("service_tickets.id", ondelete="CASCADE"), nullable=False, unique=True)
    )
    status: str = Field(sa_column=Column(String(32), nullable=False))
    vehicle_make: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    vehicle_model: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    vehicle_reg_no: str | None = Field(default=None, sa_column=Column(String(32), nullable=True))
    vehicle_year: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    initial_diagnosis: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    diagnostic_notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    technician_notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    assigned_technician: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    estimated_cost: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    created_by: str = Field(sa_column=Column(String(255), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class BatteryCaseTable(SQLModel, table=True):
    """Battery service cases created at triage."""

    __tablename__ = "battery_cases"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("service_tickets.id", ondelete="CASCADE"), nullable=False, unique=True)
    )
    status: str = Field(sa_column=Column(String(32), nullable=False))
    serial_number: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    battery_type: str | None = Field(default=None, sa_column=Column(String(32), nullable=True))
    initial_diagnosis: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    diagnostic_notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    technician_notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    assigned_technician: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    estimated_cost: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    created_by: str = Field(sa_column=Column(String(255), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketStatusUpdateTable(SQLModel, table=True):
    """Append-only narrative updates attached to a ticket."""

    __tablename__ = "ticket_status_updates"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("service_tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    status: str = Field(sa_column=Column(String(32), nullable=False))
    message: str = Field(sa_column=Column(Text, nullable=False))
    author: str = Field(sa_column=Column(String(255), nullable=False))
    is_system_update: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
