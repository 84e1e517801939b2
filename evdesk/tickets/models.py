from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence, Union

from .state import CaseStatus, CustomerBringing, Priority, TicketStatus


@dataclass(slots=True)
class ServiceTicket:
    """A customer service request tracked through its own lifecycle."""

    id: str
    ticket_number: str
    customer_id: str
    complaint: str
    status: TicketStatus
    created_by: str
    updated_by: str
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    vehicle_reg_no: str | None = None
    vehicle_year: int | None = None
    priority: Priority | None = None
    location_id: str | None = None
    due_date: datetime | None = None
    customer_bringing: CustomerBringing | None = None
    triaged_at: datetime | None = None
    triaged_by: str | None = None
    triage_notes: str | None = None
    vehicle_case_id: str | None = None
    battery_case_id: str | None = None
    assigned_to: str | None = None
    assigned_by: str | None = None
    assigned_at: datetime | None = None
    completed_at: datetime | None = None
    delivered_at: datetime | None = None
    closed_at: datetime | None = None
    version: int = 1


@dataclass(slots=True)
class VehicleCase:
    """Vehicle service case created by triage."""

    id: str
    ticket_id: str
    status: CaseStatus
    created_by: str
    created_at: datetime
    updated_at: datetime
    vehicle_make: str | None = None
    vehicle_model: str | None = None
    vehicle_reg_no: str | None = None
    vehicle_year: int | None = None
    initial_diagnosis: str | None = None
    diagnostic_notes: str | None = None
    technician_notes: str | None = None
    assigned_technician: str | None = None
    estimated_cost: float | None = None

    kind = "vehicle"


@dataclass(slots=True)
class BatteryCase:
    """Battery service case created by triage."""

    id: str
    ticket_id: str
    status: CaseStatus
    created_by: str
    created_at: datetime
    updated_at: datetime
    serial_number: str | None = None
    battery_type: str | None = None
    initial_diagnosis: str | None = None
    diagnostic_notes: str | None = None
    technician_notes: str | None = None
    assigned_technician: str | None = None
    estimated_cost: float | None = None

    kind = "battery"


ServiceCase = Union[VehicleCase, BatteryCase]


@dataclass(slots=True)
class StatusUpdateEntry:
    """Append-only narrative note tied to the status a ticket had when written."""

    id: str
    ticket_id: str
    status: TicketStatus
    message: str
    author: str
    created_at: datetime
    is_system_update: bool = False


@dataclass(slots=True)
class WorkflowResult:
    """Outcome of a successful workflow operation."""

    ticket: ServiceTicket
    cases: Sequence[ServiceCase] = field(default_factory=list)
    entry: StatusUpdateEntry | None = None
