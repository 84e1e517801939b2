from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from evdesk.tickets.memory import InMemoryTicketRepository
from evdesk.tickets.models import ServiceTicket
from evdesk.tickets.state import Priority, TicketStatus
from evdesk.tickets.workflow import WorkflowFacade


class SteppingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        return self.current


def _build_ticket(**overrides) -> ServiceTicket:
    now = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
    values = {
        "id": "ticket-1",
        "ticket_number": "EVW-00001",
        "customer_id": "customer-1",
        "complaint": "Scooter does not charge",
        "status": TicketStatus.REPORTED,
        "created_by": "desk-1",
        "updated_by": "desk-1",
        "created_at": now,
        "updated_at": now,
        "vehicle_make": "Ather",
        "vehicle_model": "450X",
        "vehicle_reg_no": "KA01AB1234",
        "vehicle_year": 2022,
        "priority": Priority.LOW,
        "location_id": "loc-1",
    }
    values.update(overrides)
    return ServiceTicket(**values)


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def repository() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def workflow(repository, clock) -> WorkflowFacade:
    return WorkflowFacade(repository, clock=clock)


@pytest_asyncio.fixture
async def reported_ticket(workflow) -> ServiceTicket:
    result = await workflow.open_ticket(
        actor_role="front_desk_manager",
        actor_id="desk-1",
        customer_id="customer-1",
        complaint="Scooter does not charge",
        vehicle_make="Ather",
        vehicle_model="450X",
        vehicle_reg_no="KA01AB1234",
        vehicle_year=2022,
        location_id="loc-1",
    )
    return result.ticket


@pytest.fixture
def make_ticket():
    return _build_ticket
