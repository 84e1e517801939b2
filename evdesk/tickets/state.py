from __future__ import annotations

from enum import Enum, IntEnum
from typing import Mapping


class TicketStatus(str, Enum):
    """Supported states for a service ticket's lifecycle."""

    REPORTED = "reported"
    TRIAGED = "triaged"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELIVERED = "delivered"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"
    WAITING_APPROVAL = "waiting_approval"


class CustomerBringing(str, Enum):
    """What the customer brought in, decided at triage."""

    BATTERY = "battery"
    VEHICLE = "vehicle"
    BOTH = "both"

    @property
    def needs_vehicle_case(self) -> bool:
        return self in (CustomerBringing.VEHICLE, CustomerBringing.BOTH)

    @property
    def needs_battery_case(self) -> bool:
        return self in (CustomerBringing.BATTERY, CustomerBringing.BOTH)


class CaseStatus(str, Enum):
    """Sub-lifecycle of a vehicle or battery case."""

    RECEIVED = "received"
    TRIAGED = "triaged"
    DIAGNOSED = "diagnosed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELIVERED = "delivered"


class Priority(IntEnum):
    HIGH = 1
    MEDIUM = 2
    LOW = 3


class TicketStateMachine:
    """Ticket lifecycle graph."""

    _TRANSITIONS: Mapping[TicketStatus, frozenset[TicketStatus]] = {
        TicketStatus.REPORTED: frozenset({TicketStatus.TRIAGED}),
        TicketStatus.TRIAGED: frozenset({TicketStatus.ASSIGNED}),
        TicketStatus.ASSIGNED: frozenset(
            {TicketStatus.IN_PROGRESS, TicketStatus.ON_HOLD, TicketStatus.CANCELLED}
        ),
        TicketStatus.IN_PROGRESS: frozenset(
            {
                TicketStatus.COMPLETED,
                TicketStatus.ON_HOLD,
                TicketStatus.WAITING_APPROVAL,
                TicketStatus.CANCELLED,
            }
        ),
        TicketStatus.ON_HOLD: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED}),
        TicketStatus.WAITING_APPROVAL: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED}),
        TicketStatus.COMPLETED: frozenset({TicketStatus.DELIVERED, TicketStatus.CLOSED}),
        TicketStatus.DELIVERED: frozenset({TicketStatus.CLOSED}),
        TicketStatus.CLOSED: frozenset(),
        TicketStatus.CANCELLED: frozenset(),
    }

    # Edges that exist in the graph but may only be taken by a dedicated operation.
    _RESERVED: Mapping[tuple[TicketStatus, TicketStatus], str] = {
        (TicketStatus.REPORTED, TicketStatus.TRIAGED): "triage",
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.REPORTED

    @classmethod
    def allowed_targets(cls, current: TicketStatus) -> frozenset[TicketStatus]:
        return cls._TRANSITIONS.get(current, frozenset())

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        return new in cls.allowed_targets(current)

    @classmethod
    def reserved_operation(cls, current: TicketStatus, new: TicketStatus) -> str | None:
        return cls._RESERVED.get((current, new))

    @classmethod
    def is_terminal(cls, status: TicketStatus) -> bool:
        return not cls.allowed_targets(status)
